# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Persistent loop mounts backing raw (``.raw``) extension images."""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ..errors import AvocadoError, LoopTeardownError, MountError
from ..output import OutputSink
from ..process import CommandRunner
from ..settings import RuntimeSettings

LOGGER = logging.getLogger(__name__)

OPERATION = "Loop mount"


@runtime_checkable
class LoopRegistry(Protocol):
    """Observe which named loop references currently exist."""

    def exists(self, name: str) -> bool:
        """Return ``True`` when a loop reference for ``name`` is present."""

        raise NotImplementedError

    def names(self) -> Iterable[str]:
        """Return the names of every loop reference managed by avocadoctl."""

        raise NotImplementedError


class DeviceLoopRegistry(LoopRegistry):
    """Registry backed by ``/dev/disk/by-loop-ref`` device nodes.

    A reference is considered ours when its mount point exists under the loop
    mount root; other loop references on the system are ignored.
    """

    def __init__(self, ref_dir: Path, mount_dir: Path) -> None:
        self._ref_dir = ref_dir
        self._mount_dir = mount_dir

    def exists(self, name: str) -> bool:
        ref = self._ref_dir / name
        return ref.exists() or ref.is_symlink()

    def names(self) -> Iterable[str]:
        try:
            entries = sorted(self._mount_dir.iterdir())
        except FileNotFoundError:
            return []
        return [entry.name for entry in entries if entry.is_dir() and self.exists(entry.name)]


class LoopManager:
    """Create, reuse, and tear down named loop mounts via ``systemd-dissect``."""

    def __init__(
        self,
        settings: RuntimeSettings,
        runner: CommandRunner,
        sink: OutputSink,
        registry: LoopRegistry | None = None,
    ) -> None:
        self._mount_dir = settings.paths.loop_mount_dir
        self._dissect = settings.tools.dissect
        self._runner = runner
        self._sink = sink
        self._registry = registry or DeviceLoopRegistry(settings.paths.loop_ref_dir, self._mount_dir)

    def mount_point(self, name: str) -> Path:
        """Return the deterministic mount point for extension ``name``."""

        return self._mount_dir / name

    def is_already_mounted(self, name: str) -> bool:
        """Return ``True`` when a loop reference for ``name`` already exists."""

        return self._registry.exists(name)

    def ensure_mounted(self, name: str, image: Path) -> Path:
        """Return the mount point of ``image``, mounting it first when needed.

        Args:
            name: Extension name, also used as the loop reference name.
            image: Raw image backing the extension.

        Returns:
            Path: Directory the image is mounted on.

        Raises:
            MountError: When the mount point cannot be created or the mount
                tool cannot be run or fails.
        """

        mount_point = self.mount_point(name)
        if self.is_already_mounted(name):
            self._sink.progress(f"Reusing loop mount for {name} at {mount_point}")
            return mount_point

        created = not mount_point.exists()
        try:
            mount_point.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MountError(name, f"cannot create mount point '{mount_point}': {exc}") from exc

        self._sink.step("Loop mount", f"{image} -> {mount_point}")
        try:
            self._runner.run(
                [
                    self._dissect,
                    "--mount",
                    "--read-only",
                    "--mkdir",
                    f"--loop-ref={name}",
                    str(image),
                    str(mount_point),
                ]
            )
        except AvocadoError as exc:
            if created:
                self._remove_empty_mount_point(mount_point)
            raise MountError(name, str(exc)) from exc
        return mount_point

    def teardown(self, name: str) -> None:
        """Unmount the loop mount for ``name`` and remove its mount point."""

        mount_point = self.mount_point(name)
        self._sink.step("Loop teardown", f"{name} ({mount_point})")
        try:
            self._runner.run([self._dissect, "--umount", "--rmdir", str(mount_point)])
        except AvocadoError as exc:
            raise MountError(name, str(exc), action="tear down") from exc

    def teardown_all(self) -> list[str]:
        """Tear down every registered loop reference.

        Every reference is attempted even when an earlier one fails; failures are
        reported as they happen and raised together at the end.

        Returns:
            list[str]: Names that were torn down.

        Raises:
            LoopTeardownError: When at least one teardown failed.
        """

        return self._teardown_many(self._registry.names(), strict=True)

    def cleanup_stale(self, keep: Collection[str]) -> list[str]:
        """Tear down references whose names are not in ``keep`` (best effort).

        Args:
            keep: Names of extensions still present in some source.

        Returns:
            list[str]: Names that were torn down.
        """

        stale = [name for name in self._registry.names() if name not in keep]
        if stale:
            self._sink.info(OPERATION, f"Cleaning up stale loop references: {', '.join(stale)}")
        return self._teardown_many(stale, strict=False)

    def inspect(self, image: Path) -> dict[str, Any] | str:
        """Return image metadata reported by ``systemd-dissect``.

        The JSON document is returned parsed when possible, otherwise as text.
        """

        output = self._runner.run([self._dissect, "--json=short", str(image)])
        try:
            parsed = json.loads(output)
        except json.JSONDecodeError:
            return output
        return parsed if isinstance(parsed, dict) else output

    def _teardown_many(self, names: Iterable[str], *, strict: bool) -> list[str]:
        removed: list[str] = []
        failures: list[tuple[str, AvocadoError]] = []
        for name in names:
            try:
                self.teardown(name)
            except MountError as exc:
                self._sink.warning(OPERATION, str(exc))
                failures.append((name, exc))
                continue
            removed.append(name)
        if failures and strict:
            raise LoopTeardownError(failures)
        return removed

    def _remove_empty_mount_point(self, mount_point: Path) -> None:
        try:
            mount_point.rmdir()
        except OSError as exc:
            LOGGER.debug("could not remove mount point %s after failed mount: %s", mount_point, exc)


__all__ = ["DeviceLoopRegistry", "LoopManager", "LoopRegistry"]
