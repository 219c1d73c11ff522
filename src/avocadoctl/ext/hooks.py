# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Post-merge hooks driven by extension release metadata.

Release files are ``KEY=value`` documents. Two keys are recognised:

``AVOCADO_ON_MERGE=depmod``
    Refresh kernel module dependencies once after the merge.
``AVOCADO_MODPROBE="mod_a mod_b"``
    Load the listed kernel modules, in order. Only the first such line found
    across all release files is honoured.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from ..errors import AvocadoError
from ..output import OutputSink
from ..process import CommandRunner
from ..settings import RuntimeSettings

LOGGER = logging.getLogger(__name__)

OPERATION: Final[str] = "Post-merge"
ON_MERGE_KEY: Final[str] = "AVOCADO_ON_MERGE"
MODPROBE_KEY: Final[str] = "AVOCADO_MODPROBE"
DEPMOD_VALUE: Final[str] = "depmod"


def iter_release_entries(content: str) -> Iterator[tuple[str, str]]:
    """Yield ``(key, value)`` pairs from release file ``content``.

    Values may be wrapped in double quotes; lines without ``=`` are ignored.
    """

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        yield key.strip(), value.strip().strip('"').strip()


@dataclass(slots=True)
class HookPlan:
    """Hooks requested by the release metadata of one merge cycle."""

    run_depmod: bool = False
    modules: list[str] = field(default_factory=list)
    modules_source: Path | None = None

    def absorb(self, source: Path, content: str) -> None:
        """Fold the directives from one release file into the plan."""

        for key, value in iter_release_entries(content):
            if key == ON_MERGE_KEY and value == DEPMOD_VALUE:
                self.run_depmod = True
            elif key == MODPROBE_KEY and self.modules_source is None:
                self.modules = value.split()
                self.modules_source = source


class HookProcessor:
    """Read release metadata after a merge and dispatch the requested hooks."""

    def __init__(self, settings: RuntimeSettings, runner: CommandRunner, sink: OutputSink) -> None:
        self._release_dir = settings.paths.sysext_release_dir
        self._tools = settings.tools
        self._runner = runner
        self._sink = sink

    def plan(self) -> HookPlan:
        """Collect hook directives from every release file.

        A missing release directory means nothing was merged with metadata and
        yields an empty plan; unreadable files are reported and skipped.
        """

        plan = HookPlan()
        if not self._release_dir.exists():
            return plan
        try:
            candidates = sorted(path for path in self._release_dir.iterdir() if path.is_file())
        except OSError as exc:
            self._sink.warning(OPERATION, f"Could not read extension release directory {self._release_dir}: {exc}")
            return plan

        for path in candidates:
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                self._sink.warning(OPERATION, f"Could not read release file {path}: {exc}")
                continue
            plan.absorb(path, content)
        return plan

    def run(self) -> HookPlan:
        """Run ``depmod`` at most once, then load each requested module.

        Returns:
            HookPlan: The plan that was executed.

        Raises:
            AvocadoError: When ``depmod`` fails. Module load failures are only
                reported as warnings.
        """

        plan = self.plan()
        if plan.run_depmod:
            self.run_depmod()
        for module in plan.modules:
            self._load_module(module)
        return plan

    def run_depmod(self) -> None:
        """Refresh kernel module dependencies."""

        self._sink.info(OPERATION, "Running depmod to update kernel module dependencies...")
        self._runner.run([self._tools.depmod])
        self._sink.progress("depmod completed successfully.")

    def _load_module(self, module: str) -> None:
        self._sink.step("modprobe", module)
        try:
            self._runner.run([self._tools.modprobe, module])
        except AvocadoError as exc:
            LOGGER.debug("modprobe %s failed", module, exc_info=exc)
            self._sink.warning(OPERATION, f"Failed to load module {module}: {exc}")
            return
        self._sink.progress(f"Loaded module {module}")


__all__ = [
    "HookPlan",
    "HookProcessor",
    "iter_release_entries",
]
