# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared state, service wiring, and error reporting for CLI commands."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer

from ..config import DEFAULT_CONFIG_PATH, load_config
from ..errors import AvocadoError, iter_causes
from ..ext.catalog import CatalogBuilder
from ..ext.loops import LoopManager, LoopRegistry
from ..ext.orchestrator import ExtensionOrchestrator
from ..ext.status import StatusAggregator
from ..output import OutputSink
from ..process import CommandRunner, ToolRunner
from ..settings import RuntimeSettings


@dataclass(slots=True)
class CLIState:
    """Values carried on ``typer.Context.obj`` from the root callback to commands.

    Tests may pre-populate ``runner``, ``registry`` and ``env`` through
    ``CliRunner.invoke(..., obj=CLIState(...))``.
    """

    config_path: Path | None = None
    verbose: bool = False
    runner: CommandRunner | None = None
    registry: LoopRegistry | None = None
    env: Mapping[str, str] | None = None


@dataclass(slots=True)
class ExtServices:
    """Collaborators built once per command invocation."""

    settings: RuntimeSettings
    sink: OutputSink
    runner: CommandRunner
    loops: LoopManager
    catalog: CatalogBuilder

    def orchestrator(self) -> ExtensionOrchestrator:
        return ExtensionOrchestrator(
            self.settings,
            runner=self.runner,
            sink=self.sink,
            loops=self.loops,
            catalog=self.catalog,
        )

    def status(self) -> StatusAggregator:
        return StatusAggregator(self.settings, self.runner, self.catalog, self.sink)


def cli_state(ctx: typer.Context) -> CLIState:
    """Return the :class:`CLIState` attached to ``ctx``."""

    return ctx.ensure_object(CLIState)


def build_sink(state: CLIState) -> OutputSink:
    return OutputSink(verbose=state.verbose)


def build_services(state: CLIState, sink: OutputSink) -> ExtServices:
    """Load configuration and wire the extension engine for one command.

    Args:
        state: Global CLI options and injected collaborators.
        sink: Output sink the command reports through.

    Returns:
        ExtServices: Ready-to-use services.

    Raises:
        ConfigError: When the configuration file is unreadable or invalid.
    """

    config_path = state.config_path or DEFAULT_CONFIG_PATH
    config = load_config(config_path)
    settings = RuntimeSettings.from_environment(config, state.env)
    runner = state.runner or ToolRunner()
    loops = LoopManager(settings, runner, sink, state.registry)
    return ExtServices(
        settings=settings,
        sink=sink,
        runner=runner,
        loops=loops,
        catalog=CatalogBuilder(settings, loops, sink),
    )


def report_error(sink: OutputSink, operation: str, error: AvocadoError) -> None:
    """Print ``error`` and, in verbose mode, its cause chain and details."""

    sink.error(operation, str(error))
    if not sink.verbose:
        return
    for cause in list(iter_causes(error))[1:]:
        sink.detail(f"Caused by: {cause}")
    details = error.details()
    if details:
        for line in details.splitlines():
            sink.detail(line)


@contextmanager
def exit_on_error(sink: OutputSink, operation: str) -> Iterator[None]:
    """Translate :class:`AvocadoError` into a reported ``typer.Exit``."""

    try:
        yield
    except AvocadoError as exc:
        report_error(sink, operation, exc)
        raise typer.Exit(code=exc.exit_code) from exc


__all__ = [
    "CLIState",
    "ExtServices",
    "build_services",
    "build_sink",
    "cli_state",
    "exit_on_error",
    "report_error",
]
