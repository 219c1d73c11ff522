# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception hierarchy shared by the extension engine and the CLI."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path


class AvocadoError(RuntimeError):
    """Base error for failures that should terminate a command with ``exit_code``."""

    exit_code: int = 1

    def details(self) -> str | None:
        """Return extra diagnostic text shown only in verbose mode."""

        return None


class ConfigError(AvocadoError):
    """Raised when the configuration file cannot be read, parsed, or validated."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        """Initialise the error with the offending configuration path.

        Args:
            message: Human-readable description of the failure.
            path: Configuration file involved in the failure, when known.
        """

        prefix = f"'{path}': " if path is not None else ""
        super().__init__(f"{prefix}{message}")
        self.path = path


class ProcessInvocationError(AvocadoError):
    """Raised when an external tool could not be started at all."""

    def __init__(self, command: Sequence[str], reason: str) -> None:
        """Initialise the error with the command that failed to launch.

        Args:
            command: Command sequence that was requested.
            reason: Description of why the process could not be started.
        """

        super().__init__(f"Failed to run command '{command[0]}': {reason}")
        self.command = tuple(command)
        self.reason = reason


class ToolExitError(AvocadoError):
    """Raised when an external tool ran but exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str | None,
        stderr: str | None,
    ) -> None:
        """Initialise the error with captured subprocess metadata.

        Args:
            command: Command sequence that was executed.
            returncode: Exit status reported by the subprocess.
            stdout: Captured standard output stream.
            stderr: Captured standard error stream.
        """

        super().__init__(f"Command '{command[0]}' exited with error code {returncode}")
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def details(self) -> str | None:
        stderr = (self.stderr or "").strip()
        return f"stderr: {stderr}" if stderr else None


class FilesystemError(AvocadoError):
    """Raised when creating, removing, or linking a staging path fails."""

    def __init__(self, operation: str, path: Path, cause: OSError) -> None:
        """Initialise the error with the failed operation and path.

        Args:
            operation: Short verb phrase describing the attempted operation.
            path: Filesystem path involved in the failure.
            cause: Underlying operating system error.
        """

        super().__init__(f"Failed to {operation} '{path}': {cause.strerror or cause}")
        self.operation = operation
        self.path = path


class MountError(AvocadoError):
    """Raised when a loop mount for a raw extension image cannot be managed."""

    def __init__(self, name: str, message: str, *, action: str = "mount") -> None:
        """Initialise the error for extension ``name``.

        Args:
            name: Extension whose loop mount failed.
            message: Description of the failure.
            action: Loop operation that failed, such as ``"mount"`` or ``"tear down"``.
        """

        super().__init__(f"Failed to {action} extension '{name}': {message}")
        self.action = action
        self.name = name


class LoopTeardownError(MountError):
    """Raised after tearing down every loop reference when some of them failed."""

    def __init__(self, failures: Sequence[tuple[str, AvocadoError]]) -> None:
        """Initialise the error with every per-reference failure.

        Args:
            failures: Pairs of extension name and the error raised for it.
        """

        names = ", ".join(name for name, _ in failures)
        AvocadoError.__init__(self, f"Failed to tear down loop references: {names}")
        self.action = "tear down"
        self.name = names
        self.failures = tuple(failures)

    def details(self) -> str | None:
        return "\n".join(f"{name}: {error}" for name, error in self.failures)


class StatusParseError(AvocadoError):
    """Raised when live status output from the merge tool cannot be interpreted."""


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Yield ``error`` followed by each exception in its ``__cause__`` chain."""

    current: BaseException | None = error
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


__all__ = [
    "AvocadoError",
    "ConfigError",
    "FilesystemError",
    "LoopTeardownError",
    "MountError",
    "ProcessInvocationError",
    "StatusParseError",
    "ToolExitError",
    "iter_causes",
]
