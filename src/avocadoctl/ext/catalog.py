# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Discover extensions across every source and resolve name collisions.

Sources are scanned in priority order: HITL dev overrides, extension
directories, then raw images. The first source to provide a name wins; later
candidates with the same name are dropped and reported in verbose mode.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from ..errors import FilesystemError
from ..output import OutputSink
from ..settings import RuntimeSettings
from .loops import LoopManager
from .models import RAW_SUFFIX, Extension, ExtensionOrigin

LOGGER = logging.getLogger(__name__)

OPERATION: Final[str] = "Extension scan"
SYSEXT_RELEASE_SUBDIR: Final[Path] = Path("usr/lib/extension-release.d")
CONFEXT_RELEASE_SUBDIR: Final[Path] = Path("etc/extension-release.d")
RELEASE_FILE_PREFIX: Final[str] = "extension-release."


@dataclass(frozen=True, slots=True)
class ScanIssue:
    """A directory entry that could not be inspected during a scan."""

    path: Path
    message: str


ScanResult = Extension | ScanIssue


def classify(name: str, path: Path, origin: ExtensionOrigin) -> Extension:
    """Build an :class:`Extension`, detecting which layers it provides.

    The extension tree is checked for ``extension-release.<name>`` under the
    sysext and confext release directories. When neither exists the extension
    is treated as applicable to both layers.
    """

    release_file = f"{RELEASE_FILE_PREFIX}{name}"
    has_sysext = (path / SYSEXT_RELEASE_SUBDIR / release_file).is_file()
    has_confext = (path / CONFEXT_RELEASE_SUBDIR / release_file).is_file()
    if not has_sysext and not has_confext:
        has_sysext = has_confext = True
    return Extension(
        name=name,
        path=path,
        origin=origin,
        provides_sysext=has_sysext,
        provides_confext=has_confext,
    )


class CatalogBuilder:
    """Build the ``name -> Extension`` catalog for a single command invocation."""

    def __init__(self, settings: RuntimeSettings, loops: LoopManager, sink: OutputSink) -> None:
        self._paths = settings.paths
        self._loops = loops
        self._sink = sink

    def scan(self, *, read_only: bool = False) -> dict[str, Extension]:
        """Return every available extension keyed by name.

        Args:
            read_only: When ``True`` no loop mounts are created or torn down;
                raw images without a live loop reference are reported with the
                image path and default layer flags.

        Returns:
            dict[str, Extension]: Catalog in discovery order.

        Raises:
            FilesystemError: When a source root exists but cannot be read.
            MountError: When a raw image cannot be loop mounted.
        """

        catalog: dict[str, Extension] = {}
        for result in self.iter_results(read_only=read_only):
            if isinstance(result, ScanIssue):
                LOGGER.error("skipping %s: %s", result.path, result.message)
                self._sink.warning(OPERATION, f"Error reading entry {result.path}: {result.message}")
                continue
            catalog[result.name] = result
        return catalog

    def list_names(self) -> dict[str, ExtensionOrigin]:
        """Return every extension name with the source that would provide it.

        Unlike :meth:`scan` this never touches loop mounts or release metadata.
        """

        names: dict[str, ExtensionOrigin] = {}
        sources = (
            (ExtensionOrigin.DEV_OVERRIDE, self._paths.hitl_dir, True),
            (ExtensionOrigin.DIRECTORY, self._paths.extensions_dir, True),
            (ExtensionOrigin.LOOP_BACKED, self._paths.extensions_dir, False),
        )
        for origin, root, want_dirs in sources:
            for item in self._iter_entries(root, want_dirs=want_dirs):
                if isinstance(item, ScanIssue):
                    self._sink.warning(OPERATION, f"Error reading entry {item.path}: {item.message}")
                    continue
                name = item.name if want_dirs else item.name.removesuffix(RAW_SUFFIX)
                if name:
                    names.setdefault(name, origin)
        return names

    def iter_results(self, *, read_only: bool = False) -> Iterator[ScanResult]:
        """Lazily yield resolved extensions and per-entry scan issues."""

        seen: dict[str, ExtensionOrigin] = {}
        directory_sources = (
            (ExtensionOrigin.DEV_OVERRIDE, self._paths.hitl_dir),
            (ExtensionOrigin.DIRECTORY, self._paths.extensions_dir),
        )
        for origin, root in directory_sources:
            for item in self._iter_entries(root, want_dirs=True):
                if isinstance(item, ScanIssue):
                    yield item
                    continue
                if self._is_shadowed(item.name, origin, seen):
                    continue
                seen[item.name] = origin
                yield classify(item.name, item, origin)

        pending: list[tuple[str, Path]] = []
        for item in self._iter_entries(self._paths.extensions_dir, want_dirs=False):
            if isinstance(item, ScanIssue):
                yield item
                continue
            name = item.name.removesuffix(RAW_SUFFIX)
            if not name:
                continue
            if self._is_shadowed(name, ExtensionOrigin.LOOP_BACKED, seen):
                continue
            seen[name] = ExtensionOrigin.LOOP_BACKED
            pending.append((name, item))

        if not read_only:
            self._loops.cleanup_stale(set(seen))

        for name, image in pending:
            yield self._resolve_image(name, image, read_only=read_only)

    def _resolve_image(self, name: str, image: Path, *, read_only: bool) -> Extension:
        if read_only:
            if not self._loops.is_already_mounted(name):
                return Extension(name=name, path=image, origin=ExtensionOrigin.LOOP_BACKED)
            mount_point = self._loops.mount_point(name)
        else:
            mount_point = self._loops.ensure_mounted(name, image)
        return classify(name, mount_point, ExtensionOrigin.LOOP_BACKED)

    def _is_shadowed(self, name: str, origin: ExtensionOrigin, seen: dict[str, ExtensionOrigin]) -> bool:
        winner = seen.get(name)
        if winner is None:
            return False
        self._sink.progress(f"Skipping {origin.label} extension {name}: already provided by {winner.label}")
        return True

    def _iter_entries(self, root: Path, *, want_dirs: bool) -> Iterator[Path | ScanIssue]:
        """Yield directories (or ``.raw`` files) directly under ``root``.

        A missing root yields nothing; any other failure to open it is fatal.
        """

        try:
            with os.scandir(root) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise FilesystemError("read extensions directory", root, exc) from exc

        for entry in entries:
            path = Path(entry.path)
            try:
                if want_dirs:
                    matches = entry.is_dir()
                else:
                    matches = entry.name.endswith(RAW_SUFFIX) and entry.is_file()
            except OSError as exc:
                yield ScanIssue(path=path, message=exc.strerror or str(exc))
                continue
            if matches:
                yield path


__all__ = ["CatalogBuilder", "ScanIssue", "ScanResult", "classify"]
