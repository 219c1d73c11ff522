# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Value objects describing extensions and their live state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from pathlib import Path
from typing import Final

RAW_SUFFIX: Final[str] = ".raw"


class ExtensionOrigin(IntEnum):
    """Source an extension was resolved from; lower values win name collisions."""

    DEV_OVERRIDE = 0
    DIRECTORY = 1
    LOOP_BACKED = 2

    @property
    def label(self) -> str:
        """Return the human-readable origin label."""

        return _ORIGIN_LABELS[self]


_ORIGIN_LABELS: Final[dict[ExtensionOrigin, str]] = {
    ExtensionOrigin.DEV_OVERRIDE: "HITL",
    ExtensionOrigin.DIRECTORY: "Local",
    ExtensionOrigin.LOOP_BACKED: "Loop",
}


@dataclass(frozen=True, slots=True)
class Extension:
    """An extension resolved by a catalog scan."""

    name: str
    path: Path
    origin: ExtensionOrigin
    provides_sysext: bool = True
    provides_confext: bool = True


class Layer(StrEnum):
    """Overlay hierarchy an extension can contribute to."""

    SYSEXT = "sysext"
    CONFEXT = "confext"


@dataclass(frozen=True, slots=True)
class MountedExtension:
    """An extension reported live by a merge tool's ``status`` output."""

    name: str
    hierarchy: str
    since: str


__all__ = [
    "Extension",
    "ExtensionOrigin",
    "Layer",
    "MountedExtension",
    "RAW_SUFFIX",
]
