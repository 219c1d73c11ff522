# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Safe wrappers around ``subprocess`` execution of the external system tools."""

from __future__ import annotations

import logging
import shutil

# Bandit: subprocess usage is intentional; we provide a controlled wrapper around
# external tool execution, normalising arguments and disabling ``shell=True``.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from subprocess import CompletedProcess
from typing import Protocol, runtime_checkable

from .errors import ProcessInvocationError, ToolExitError

LOGGER = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = 124


@dataclass(frozen=True, slots=True)
class CommandOptions:
    """Execution options applied to every tool invocation."""

    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    capture_output: bool = True
    text: bool = True
    timeout: float | None = None
    discard_stdin: bool = True


def _ensure_text(value: str | bytes | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return value.decode(errors="ignore")


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Normalise the subprocess argument sequence.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Argument list whose head is an absolute executable path.

    Raises:
        ValueError: If no arguments are provided.
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
    """

    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        msg = f"Executable '{head}' was not found on PATH"
        raise FileNotFoundError(msg)
    return [resolved, *rest]


def run_command(
    args: Sequence[str],
    *,
    options: CommandOptions | None = None,
) -> CompletedProcess[str]:
    """Execute ``args`` after normalising the executable path.

    The return code is never checked here; :class:`ToolRunner` decides what a
    non-zero exit means.

    Args:
        args: Command and argument sequence to execute.
        options: Options configuring execution semantics.

    Returns:
        CompletedProcess: Subprocess execution metadata.

    Raises:
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
        OSError: If the operating system refuses to start the process.
    """

    normalized = _normalize_args(args)
    resolved_options = options or CommandOptions()

    try:
        # Bandit: commands are assembled from fixed tool names and extension
        # names; arguments are passed as a list without shell expansion.
        completed: CompletedProcess[str] = subprocess.run(  # nosec B603
            normalized,
            cwd=str(resolved_options.cwd) if resolved_options.cwd is not None else None,
            env=dict(resolved_options.env) if resolved_options.env is not None else None,
            check=False,
            capture_output=resolved_options.capture_output,
            text=resolved_options.text,
            timeout=resolved_options.timeout,
            stdin=subprocess.DEVNULL if resolved_options.discard_stdin else None,
        )
    except subprocess.TimeoutExpired as exc:
        stdout = _ensure_text(exc.stdout) or ""
        stderr = _ensure_text(exc.stderr)
        timeout_value = resolved_options.timeout
        timeout_msg = (
            f"Command timed out after {timeout_value:.1f}s" if timeout_value is not None else "Command timed out"
        )
        combined_stderr = f"{stderr}\n{timeout_msg}" if stderr else timeout_msg
        completed = subprocess.CompletedProcess(
            args=list(normalized),
            returncode=TIMEOUT_RETURNCODE,
            stdout=stdout,
            stderr=combined_stderr,
        )

    return completed


@runtime_checkable
class CommandRunner(Protocol):
    """Run an external tool and return its captured standard output."""

    def run(self, args: Sequence[str]) -> str:
        """Execute ``args`` and return stdout.

        Raises:
            ProcessInvocationError: When the tool cannot be started.
            ToolExitError: When the tool exits with a non-zero status.
        """

        raise NotImplementedError


class ToolRunner(CommandRunner):
    """Default :class:`CommandRunner` backed by :func:`run_command`."""

    def __init__(self, options: CommandOptions | None = None) -> None:
        self._options = options or CommandOptions()

    def run(self, args: Sequence[str]) -> str:
        LOGGER.debug("running command=%s", " ".join(args))
        try:
            completed = run_command(args, options=self._options)
        except (FileNotFoundError, PermissionError) as exc:
            raise ProcessInvocationError(args, str(exc)) from exc
        except OSError as exc:
            raise ProcessInvocationError(args, exc.strerror or str(exc)) from exc

        stdout = completed.stdout if isinstance(completed.stdout, str) else ""
        stderr = completed.stderr if isinstance(completed.stderr, str) else None
        if completed.returncode != 0:
            raise ToolExitError(args, completed.returncode, stdout, stderr)
        return stdout


__all__ = [
    "CommandOptions",
    "CommandRunner",
    "ToolRunner",
    "run_command",
]
