# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring global options and command groups."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from .. import __version__
from ..output import configure_logging
from .ext import ext_app
from .shared import cli_state
from .typer_ext import create_typer

app = create_typer(
    name="avocadoctl",
    help="Avocado Linux control utility.",
    no_args_is_help=True,
    add_completion=False,
)
app.add_typer(ext_app, name="ext")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"avocadoctl {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to the configuration file.", dir_okay=False),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed progress and diagnostics."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option("--version", help="Show the version and exit.", callback=_print_version, is_eager=True),
    ] = False,
) -> None:
    """Avocado Linux control utility."""

    del version
    state = cli_state(ctx)
    state.config_path = config
    state.verbose = verbose
    configure_logging(verbose=verbose)


def main() -> None:
    """Console-script entry point."""

    app()


__all__ = ["app", "main"]
