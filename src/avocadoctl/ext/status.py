# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Read-only status report combining the catalog with live merge state."""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final

from rich import box
from rich.table import Table

from ..errors import AvocadoError, StatusParseError
from ..output import OutputSink
from ..process import CommandRunner
from ..settings import ExtensionPaths, RuntimeSettings
from .catalog import CatalogBuilder
from .models import RAW_SUFFIX, Extension, Layer, MountedExtension

LOGGER = logging.getLogger(__name__)

HEADER_PREFIX: Final[str] = "HIERARCHY"
EMPTY_MARKER: Final[str] = "none"
UNKNOWN_ORIGIN: Final[str] = "Unknown"
_NAME_SPLIT: Final[re.Pattern[str]] = re.compile(r"[,\s]+")

_STATE_STYLES: Final[dict[str, str]] = {
    "MOUNTED": "green",
    "SYSEXT": "cyan",
    "CONFEXT": "magenta",
    "AVAILABLE": "dim",
}


class MountState(StrEnum):
    """Live state of a single extension."""

    MOUNTED = "MOUNTED"
    SYSEXT = "SYSEXT"
    CONFEXT = "CONFEXT"
    AVAILABLE = "AVAILABLE"


@dataclass(frozen=True, slots=True)
class StatusRow:
    name: str
    state: MountState
    origin: str
    since: str = ""


@dataclass(slots=True)
class StatusReport:
    """Rows of the status table, ordered by extension name."""

    rows: list[StatusRow] = field(default_factory=list)

    def origin_counts(self) -> Counter[str]:
        return Counter(row.origin for row in self.rows)

    def state_counts(self) -> Counter[MountState]:
        return Counter(row.state for row in self.rows)

    def summary(self) -> str:
        """Return a one-line summary with counts by origin and by state."""

        origins = ", ".join(f"{origin}: {count}" for origin, count in sorted(self.origin_counts().items()))
        states = self.state_counts()
        state_text = ", ".join(f"{state.value.lower()}: {states.get(state, 0)}" for state in MountState)
        total = f"Total: {len(self.rows)} extension(s)"
        return " | ".join(part for part in (total, origins, state_text) if part)


def _split_names(field_text: str) -> list[str]:
    return [name for name in _NAME_SPLIT.split(field_text.strip()) if name and name != EMPTY_MARKER]


def _split_hierarchy_line(line: str, columns: tuple[int, int] | None) -> tuple[str, str, str]:
    if columns is not None and len(line) > columns[0]:
        ext_col, since_col = columns
        hierarchy = line[:ext_col].strip()
        names = line[ext_col:since_col].strip()
        since = line[since_col:].strip()
        if hierarchy and names:
            return hierarchy, names, since

    tokens = line.split()
    if len(tokens) < 2:
        raise StatusParseError(f"Malformed status line: {line.strip()!r}")
    hierarchy = tokens[0]
    index = 1
    names = [tokens[index]]
    while names[-1].endswith(",") and index + 1 < len(tokens):
        index += 1
        names.append(tokens[index])
    return hierarchy, " ".join(names), " ".join(tokens[index + 1 :])


def parse_status_output(output: str) -> list[MountedExtension]:
    """Parse the table printed by ``systemd-sysext status``.

    Args:
        output: Raw standard output of the status query.

    Returns:
        list[MountedExtension]: One entry per live extension and hierarchy.

    Raises:
        StatusParseError: When a line cannot be interpreted.
    """

    mounted: list[MountedExtension] = []
    columns: tuple[int, int] | None = None
    hierarchy: str | None = None
    since = ""
    for line in output.splitlines():
        if not line.strip():
            continue
        if line.startswith(HEADER_PREFIX):
            ext_col = line.find("EXTENSIONS")
            since_col = line.find("SINCE")
            columns = (ext_col, since_col) if 0 < ext_col < since_col else None
            continue
        if line[0].isspace():
            if hierarchy is None:
                raise StatusParseError(f"Continuation line before any hierarchy: {line.strip()!r}")
            names_field = line.strip()
        else:
            hierarchy, names_field, since = _split_hierarchy_line(line, columns)
            if since == "-":
                since = ""
        mounted.extend(
            MountedExtension(name=name, hierarchy=hierarchy, since=since) for name in _split_names(names_field)
        )
    return mounted


def origin_label(path: Path | None, paths: ExtensionPaths) -> str:
    """Describe where ``path`` comes from for display purposes."""

    if path is None:
        return UNKNOWN_ORIGIN
    if path.is_relative_to(paths.hitl_dir):
        return "HITL"
    if path.is_relative_to(paths.loop_mount_dir) or path.suffix == RAW_SUFFIX:
        return "Loop"
    if path.is_relative_to(paths.extensions_dir):
        return "Local"
    return "/".join(path.parts[-2:]) or UNKNOWN_ORIGIN


class StatusAggregator:
    """Build the status report; never mounts, links, or merges anything."""

    def __init__(
        self,
        settings: RuntimeSettings,
        runner: CommandRunner,
        catalog: CatalogBuilder,
        sink: OutputSink,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._catalog = catalog
        self._sink = sink

    def live(self, layer: Layer) -> list[MountedExtension]:
        """Return the extensions currently merged into ``layer``."""

        tool = self._settings.tools.sysext if layer is Layer.SYSEXT else self._settings.tools.confext
        return parse_status_output(self._runner.run([tool, "status"]))

    def collect(self) -> StatusReport:
        """Gather catalog and live state into a :class:`StatusReport`.

        Raises:
            AvocadoError: When a status query or the catalog scan fails.
        """

        sysext_live = {entry.name: entry for entry in self.live(Layer.SYSEXT)}
        confext_live = {entry.name: entry for entry in self.live(Layer.CONFEXT)}
        catalog = self._catalog.scan(read_only=True)

        rows: list[StatusRow] = []
        for name in sorted(set(catalog) | set(sysext_live) | set(confext_live)):
            in_sysext = name in sysext_live
            in_confext = name in confext_live
            if in_sysext and in_confext:
                state = MountState.MOUNTED
            elif in_sysext:
                state = MountState.SYSEXT
            elif in_confext:
                state = MountState.CONFEXT
            else:
                state = MountState.AVAILABLE
            live_entry = sysext_live.get(name) or confext_live.get(name)
            rows.append(
                StatusRow(
                    name=name,
                    state=state,
                    origin=origin_label(self._source_path(name, catalog.get(name)), self._settings.paths),
                    since=live_entry.since if live_entry else "",
                )
            )
        return StatusReport(rows=rows)

    def report(self) -> StatusReport:
        """Collect the report and print it as a table followed by a summary."""

        report = self.collect()
        self._sink.status_header("Avocado Extension Status")
        if not report.rows:
            self._sink.status("No extensions found")
            return report
        self._sink.table(render_table(report))
        self._sink.status(report.summary())
        return report

    def _source_path(self, name: str, extension: Extension | None) -> Path | None:
        if extension is not None:
            return extension.path
        for root in self._settings.paths.staging_roots():
            link = root / name
            if not link.is_symlink():
                continue
            try:
                return Path(os.readlink(link))
            except OSError as exc:
                LOGGER.debug("cannot read staging link %s: %s", link, exc)
        return None


def render_table(report: StatusReport) -> Table:
    """Render ``report`` as a fixed-width table."""

    table = Table(box=box.SIMPLE, expand=False)
    table.add_column("Extension", style="bold", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Origin", no_wrap=True)
    table.add_column("Since", overflow="fold")
    for row in report.rows:
        style = _STATE_STYLES[row.state]
        table.add_row(row.name, f"[{style}]{row.state}[/]", row.origin, row.since or "-")
    return table


_LEGACY_SECTIONS: Final[tuple[tuple[Layer, str, str, str], ...]] = (
    (Layer.SYSEXT, "System Extensions (/opt, /usr):", "No system extensions currently merged.", "system extensions"),
    (
        Layer.CONFEXT,
        "Configuration Extensions (/etc):",
        "No configuration extensions currently merged.",
        "configuration extensions",
    ),
)


def print_legacy_status(settings: RuntimeSettings, runner: CommandRunner, sink: OutputSink) -> None:
    """Print each layer's live status as ``hierarchy -> extensions`` lines.

    Used when the full report cannot be built. Output that cannot be parsed is
    printed verbatim, and a layer whose query fails is reported and skipped.
    """

    sink.status_header("Avocado Extension Status")
    for layer, title, empty_message, label in _LEGACY_SECTIONS:
        tool = settings.tools.sysext if layer is Layer.SYSEXT else settings.tools.confext
        sink.status(title)
        try:
            output = runner.run([tool, "status"])
        except AvocadoError as exc:
            sink.error("Status", f"Error getting {label} status: {exc}")
            continue
        try:
            entries = parse_status_output(output)
        except StatusParseError as exc:
            LOGGER.debug("legacy status: %s", exc)
            sink.status(output.rstrip() or empty_message)
            continue
        if not entries:
            sink.status(f"  {empty_message}")
            continue
        grouped: dict[str, list[str]] = {}
        since_by_hierarchy: dict[str, str] = {}
        for entry in entries:
            grouped.setdefault(entry.hierarchy, []).append(entry.name)
            since_by_hierarchy.setdefault(entry.hierarchy, entry.since)
        for hierarchy, names in grouped.items():
            since = since_by_hierarchy[hierarchy] or "-"
            sink.status(f"  {hierarchy} -> {', '.join(names)} (since {since})")


__all__ = [
    "MountState",
    "StatusAggregator",
    "StatusReport",
    "StatusRow",
    "origin_label",
    "parse_status_output",
    "print_legacy_status",
]
