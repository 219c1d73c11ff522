# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""User-facing output sink with verbosity control and optional colour."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field

from rich.console import Console, RenderableType
from rich.logging import RichHandler
from rich.text import Text

LOGGER_NAMESPACE = "avocadoctl"


def detect_tty() -> bool:
    """Return ``True`` when stdout appears to be backed by a terminal."""

    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


def emoji(symbol: str, enable: bool) -> str:
    """Return ``symbol`` when emoji output is enabled, otherwise blank."""

    return symbol if enable else ""


def _build_console(*, stderr: bool, color: bool) -> Console:
    tty = detect_tty()
    return Console(
        stderr=stderr,
        color_system="auto" if color and tty else None,
        no_color=not (color and tty),
        highlight=False,
        soft_wrap=True,
    )


@dataclass(slots=True)
class OutputSink:
    """Leveled output used by every command.

    ``success``, ``status`` and ``table`` always print to stdout and ``error`` and
    ``warning`` always print to stderr. ``info``, ``step``, ``progress`` and
    ``raw`` are shown only in verbose mode.
    """

    verbose: bool = False
    use_emoji: bool = True
    use_color: bool = True
    console: Console = field(init=False)
    err_console: Console = field(init=False)

    def __post_init__(self) -> None:
        self.console = _build_console(stderr=False, color=self.use_color)
        self.err_console = _build_console(stderr=True, color=self.use_color)

    def _print(self, message: str, *, style: str | None = None, stderr: bool = False) -> None:
        text = Text(message)
        if style:
            text.stylize(style)
        (self.err_console if stderr else self.console).print(text)

    def success(self, operation: str, message: str) -> None:
        """Print a success message, prefixed by ``operation`` when verbose."""

        prefix = emoji("✅ ", self.use_emoji)
        body = f"{operation}: {message}" if self.verbose else message
        self._print(f"{prefix}{body}", style="green")

    def error(self, operation: str, message: str) -> None:
        """Print an error message to stderr."""

        self._print(f"{emoji('❌ ', self.use_emoji)}{operation}: {message}", style="red", stderr=True)
        if not self.verbose:
            self._print("   Use --verbose for more details", style="dim", stderr=True)

    def warning(self, operation: str, message: str) -> None:
        """Print a non-fatal warning to stderr."""

        self._print(f"{emoji('⚠️  ', self.use_emoji)}{operation}: {message}", style="yellow", stderr=True)

    def detail(self, message: str) -> None:
        """Print an indented diagnostic line to stderr (verbose only)."""

        if self.verbose:
            self._print(f"   {message}", style="dim", stderr=True)

    def info(self, operation: str, message: str) -> None:
        """Print an informational message (verbose only)."""

        if self.verbose:
            self._print(f"{emoji('ℹ️  ', self.use_emoji)}{operation}: {message}", style="cyan")

    def step(self, step: str, description: str) -> None:
        """Print one step of a multi-step process (verbose only)."""

        if self.verbose:
            self._print(f"   → {step}: {description}")

    def progress(self, message: str) -> None:
        """Print detailed progress (verbose only)."""

        if self.verbose:
            self._print(f"   {message}")

    def raw(self, content: str) -> None:
        """Print tool output verbatim (verbose only)."""

        if self.verbose:
            self.console.print(content, markup=False, highlight=False)

    def status_header(self, title: str) -> None:
        """Print a status section header."""

        if self.verbose:
            self._print(f"\n{title}", style="bold")
            self._print("=" * len(title))
            self.console.print()
        else:
            self._print(title, style="bold")

    def status(self, message: str) -> None:
        """Print a brief status line (always shown)."""

        self._print(message)

    def table(self, renderable: RenderableType) -> None:
        """Print a rich renderable such as a status table (always shown)."""

        self.console.print(renderable)


def configure_logging(*, verbose: bool) -> None:
    """Route the package's diagnostic logger to stderr when ``verbose``."""

    logger = logging.getLogger(LOGGER_NAMESPACE)
    if getattr(logger, "_avocadoctl_configured", False):
        logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
        return
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    setattr(logger, "_avocadoctl_configured", True)


__all__ = ["OutputSink", "configure_logging", "detect_tty", "emoji"]
