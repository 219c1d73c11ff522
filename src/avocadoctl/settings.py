# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Runtime settings threaded explicitly into every extension component.

Environment overrides are read exactly once, in
:meth:`RuntimeSettings.from_environment`; components never consult
``os.environ`` themselves.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from .config import Config

EXTENSIONS_PATH_ENV: Final[str] = "AVOCADO_EXTENSIONS_PATH"
HITL_DIR_ENV: Final[str] = "AVOCADO_HITL_DIR"
SYSEXT_DIR_ENV: Final[str] = "AVOCADO_SYSEXT_DIR"
CONFEXT_DIR_ENV: Final[str] = "AVOCADO_CONFEXT_DIR"
LOOP_MOUNT_DIR_ENV: Final[str] = "AVOCADO_LOOP_MOUNT_DIR"
LOOP_REF_DIR_ENV: Final[str] = "AVOCADO_LOOP_REF_DIR"
SYSEXT_RELEASE_DIR_ENV: Final[str] = "AVOCADO_EXTENSION_RELEASE_DIR"
TEST_MODE_ENV: Final[str] = "AVOCADO_TEST_MODE"

MOCK_PREFIX: Final[str] = "mock-"
RUN_ROOT: Final[Path] = Path("/run")


@dataclass(frozen=True, slots=True)
class ExtensionPaths:
    """Well-known filesystem roots used by the extension engine."""

    extensions_dir: Path
    hitl_dir: Path = Path("/run/avocado/hitl")
    sysext_dir: Path = Path("/run/extensions")
    confext_dir: Path = Path("/run/confexts")
    loop_mount_dir: Path = Path("/run/avocado/extensions")
    loop_ref_dir: Path = Path("/dev/disk/by-loop-ref")
    sysext_release_dir: Path = Path("/usr/lib/extension-release.d")

    def staging_roots(self) -> tuple[Path, Path]:
        """Return the sysext and confext staging roots."""

        return self.sysext_dir, self.confext_dir


@dataclass(frozen=True, slots=True)
class ToolCommands:
    """Executable names of the external tools the engine drives."""

    sysext: str = "systemd-sysext"
    confext: str = "systemd-confext"
    dissect: str = "systemd-dissect"
    depmod: str = "depmod"
    modprobe: str = "modprobe"

    @classmethod
    def mocked(cls) -> ToolCommands:
        """Return commands resolving to ``mock-*`` fixtures on ``PATH``."""

        base = cls()
        return cls(
            sysext=f"{MOCK_PREFIX}{base.sysext}",
            confext=f"{MOCK_PREFIX}{base.confext}",
            dissect=f"{MOCK_PREFIX}{base.dissect}",
            depmod=f"{MOCK_PREFIX}{base.depmod}",
            modprobe=f"{MOCK_PREFIX}{base.modprobe}",
        )


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Everything a command needs to know about its environment."""

    paths: ExtensionPaths
    tools: ToolCommands = field(default_factory=ToolCommands)
    sysext_mutable: str = "ephemeral"
    confext_mutable: str = "ephemeral"

    @classmethod
    def from_environment(
        cls,
        config: Config,
        env: Mapping[str, str] | None = None,
    ) -> RuntimeSettings:
        """Build settings from ``config`` with environment overrides applied.

        In test mode every tool resolves to its ``mock-`` counterpart and the
        ``/run`` and ``/dev`` defaults move under ``$TMPDIR`` so tests never touch the
        real system directories.

        Args:
            config: Loaded configuration file contents.
            env: Environment mapping; defaults to :data:`os.environ`.

        Returns:
            RuntimeSettings: Fully resolved settings.
        """

        environ = os.environ if env is None else env
        test_mode = TEST_MODE_ENV in environ
        defaults = ExtensionPaths(extensions_dir=config.ext.dir)
        if test_mode:
            defaults = _relocate_run_dirs(defaults, Path(environ.get("TMPDIR", "/tmp")))

        def _path(name: str, fallback: Path) -> Path:
            value = environ.get(name)
            return Path(value) if value else fallback

        paths = ExtensionPaths(
            extensions_dir=_path(EXTENSIONS_PATH_ENV, defaults.extensions_dir),
            hitl_dir=_path(HITL_DIR_ENV, defaults.hitl_dir),
            sysext_dir=_path(SYSEXT_DIR_ENV, defaults.sysext_dir),
            confext_dir=_path(CONFEXT_DIR_ENV, defaults.confext_dir),
            loop_mount_dir=_path(LOOP_MOUNT_DIR_ENV, defaults.loop_mount_dir),
            loop_ref_dir=_path(LOOP_REF_DIR_ENV, defaults.loop_ref_dir),
            sysext_release_dir=_path(SYSEXT_RELEASE_DIR_ENV, defaults.sysext_release_dir),
        )
        return cls(
            paths=paths,
            tools=ToolCommands.mocked() if test_mode else ToolCommands(),
            sysext_mutable=config.ext.sysext_mutable_mode,
            confext_mutable=config.ext.confext_mutable_mode,
        )


def _relocate_run_dirs(paths: ExtensionPaths, temp_root: Path) -> ExtensionPaths:
    def _move(path: Path) -> Path:
        if path.is_relative_to(RUN_ROOT):
            return temp_root / path.relative_to(RUN_ROOT)
        return temp_root / path.relative_to(path.anchor)

    return ExtensionPaths(
        extensions_dir=paths.extensions_dir,
        hitl_dir=_move(paths.hitl_dir),
        sysext_dir=_move(paths.sysext_dir),
        confext_dir=_move(paths.confext_dir),
        loop_mount_dir=_move(paths.loop_mount_dir),
        loop_ref_dir=_move(paths.loop_ref_dir),
        sysext_release_dir=paths.sysext_release_dir,
    )


__all__ = [
    "ExtensionPaths",
    "RuntimeSettings",
    "TEST_MODE_ENV",
    "ToolCommands",
]
