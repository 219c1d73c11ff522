# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models and loading for avocadoctl."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_CONFIG_PATH: Final[Path] = Path("/etc/avocado/avocadoctl.conf")
DEFAULT_EXTENSIONS_DIR: Final[Path] = Path("/var/lib/avocado/extensions")
DEFAULT_MUTABLE_MODE: Final[str] = "ephemeral"
MUTABLE_MODES: Final[tuple[str, ...]] = ("no", "auto", "yes", "import", "ephemeral", "ephemeral-import")


class ExtSection(BaseModel):
    """Settings under ``[avocado.ext]``."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    dir: Path = DEFAULT_EXTENSIONS_DIR
    sysext_mutable: str | None = None
    confext_mutable: str | None = None
    # Deprecated: applies to both layers unless a layer-specific value is set.
    mutable: str | None = None

    @field_validator("sysext_mutable", "confext_mutable", "mutable")
    @classmethod
    def _validate_mutable(cls, value: str | None) -> str | None:
        if value is not None and value not in MUTABLE_MODES:
            choices = ", ".join(MUTABLE_MODES)
            raise ValueError(f"Invalid mutable value '{value}'. Must be one of: {choices}")
        return value

    @property
    def sysext_mutable_mode(self) -> str:
        """Return the sysext mutability mode, falling back to the legacy key."""

        return self.sysext_mutable or self.mutable or DEFAULT_MUTABLE_MODE

    @property
    def confext_mutable_mode(self) -> str:
        """Return the confext mutability mode, falling back to the legacy key."""

        return self.confext_mutable or self.mutable or DEFAULT_MUTABLE_MODE


class AvocadoSection(BaseModel):
    """Settings under ``[avocado]``."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    ext: ExtSection = Field(default_factory=ExtSection)


class Config(BaseModel):
    """Root configuration document."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    avocado: AvocadoSection = Field(default_factory=AvocadoSection)

    @property
    def ext(self) -> ExtSection:
        """Return the extension section."""

        return self.avocado.ext


def load_config(path: Path | None = None) -> Config:
    """Load configuration from ``path`` or the default location.

    A missing file is not an error: the built-in defaults are returned.

    Args:
        path: Optional explicit configuration file.

    Returns:
        Config: Validated configuration.

    Raises:
        ConfigError: When the file cannot be read, is not valid TOML, or
            contains invalid values.
    """

    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return Config()

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {exc}", path=config_path) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config file: {exc}", path=config_path) from exc

    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        messages = "; ".join(_format_validation_error(error) for error in exc.errors())
        raise ConfigError(messages, path=config_path) from exc


def _format_validation_error(error: object) -> str:
    if not isinstance(error, dict):
        return str(error)
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


__all__ = [
    "AvocadoSection",
    "Config",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_EXTENSIONS_DIR",
    "DEFAULT_MUTABLE_MODE",
    "ExtSection",
    "MUTABLE_MODES",
    "load_config",
]
