# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Staging symlinks that tell the merge tools which extensions to fold in."""

from __future__ import annotations

import shutil
from pathlib import Path

from ..errors import FilesystemError
from ..output import OutputSink
from .models import Extension


class StagingManager:
    """Maintain symlinks named after extensions inside a staging root."""

    def __init__(self, sink: OutputSink) -> None:
        self._sink = sink

    def verify_clean(self, root: Path) -> list[Path]:
        """Create ``root`` if needed and remove any symlinks left in it.

        Returns:
            list[Path]: Stale symlinks that were removed.

        Raises:
            FilesystemError: When the root cannot be created or read, or a
                symlink cannot be removed.
        """

        self._ensure_root(root)
        removed = self._remove_symlinks(root)
        if removed:
            self._sink.progress(f"Removed {len(removed)} stale symlink(s) from {root}")
        return removed

    def create_symlink(self, root: Path, extension: Extension) -> Path:
        """Link ``root/<name>`` to the extension's resolved path.

        Any existing entry at the link path is replaced, so repeated merges
        converge on the same layout.

        Returns:
            Path: The created symlink.

        Raises:
            FilesystemError: When the existing entry or the link cannot be
                replaced.
        """

        self._ensure_root(root)
        link = root / extension.name
        if link.exists() or link.is_symlink():
            self._remove_existing(link)
        try:
            link.symlink_to(extension.path)
        except OSError as exc:
            raise FilesystemError("create symlink", link, exc) from exc
        self._sink.step("Symlink", f"{link} -> {extension.path}")
        return link

    def cleanup_all(self, root: Path) -> list[Path]:
        """Remove every symlink from ``root``; a missing root is a no-op."""

        if not root.exists():
            return []
        removed = self._remove_symlinks(root)
        if removed:
            self._sink.progress(f"Removed {len(removed)} symlink(s) from {root}")
        return removed

    def _ensure_root(self, root: Path) -> None:
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError("create directory", root, exc) from exc

    def _remove_symlinks(self, root: Path) -> list[Path]:
        try:
            entries = sorted(root.iterdir())
        except OSError as exc:
            raise FilesystemError("read directory", root, exc) from exc
        removed: list[Path] = []
        for entry in entries:
            if not entry.is_symlink():
                continue
            try:
                entry.unlink()
            except OSError as exc:
                raise FilesystemError("remove symlink", entry, exc) from exc
            removed.append(entry)
        return removed

    def _remove_existing(self, link: Path) -> None:
        try:
            link.unlink()
        except (IsADirectoryError, PermissionError) as exc:
            # unlink(2) on a real directory reports EISDIR on Linux, EPERM elsewhere.
            if not link.is_dir() or link.is_symlink():
                raise FilesystemError("remove", link, exc) from exc
            try:
                shutil.rmtree(link)
            except OSError as rmtree_exc:
                raise FilesystemError("remove directory", link, rmtree_exc) from rmtree_exc
        except OSError as exc:
            raise FilesystemError("remove", link, exc) from exc


__all__ = ["StagingManager"]
