# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""``avocadoctl ext`` subcommands."""

from __future__ import annotations

import json
from typing import Annotated

import typer

from ..errors import AvocadoError
from ..ext.models import RAW_SUFFIX
from ..ext.status import print_legacy_status
from .shared import build_services, build_sink, cli_state, exit_on_error, report_error
from .typer_ext import create_typer

ext_app = create_typer(
    name="ext",
    help="Manage system and configuration extensions.",
    no_args_is_help=True,
)


@ext_app.command("list")
def list_extensions(ctx: typer.Context) -> None:
    """List every extension available from any source."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "List"):
        services = build_services(cli_state(ctx), sink)
        names = services.catalog.list_names()
    if not names:
        sink.status(f"No extensions found in {services.settings.paths.extensions_dir}")
        return
    sink.status("Available extensions:")
    for name, origin in names.items():
        sink.status(f"  {name} ({origin.label})" if sink.verbose else f"  {name}")


@ext_app.command("merge")
def merge(ctx: typer.Context) -> None:
    """Stage every extension and merge it with systemd-sysext and systemd-confext."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "Merge"):
        build_services(cli_state(ctx), sink).orchestrator().merge()
    sink.success("Merge", "Extensions merged successfully.")


@ext_app.command("unmerge")
def unmerge(
    ctx: typer.Context,
    unmount: Annotated[
        bool,
        typer.Option("--unmount", help="Also tear down the loop mounts backing raw images."),
    ] = False,
) -> None:
    """Unmerge every extension and remove the staging symlinks."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "Unmerge"):
        build_services(cli_state(ctx), sink).orchestrator().unmerge(unmount=unmount)
    sink.success("Unmerge", "Extensions unmerged successfully.")


@ext_app.command("refresh")
def refresh(ctx: typer.Context) -> None:
    """Unmerge and merge again, picking up added or removed extensions."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "Refresh"):
        build_services(cli_state(ctx), sink).orchestrator().refresh()
    sink.success("Refresh", "Extensions refreshed successfully.")


@ext_app.command("status")
def status(ctx: typer.Context) -> None:
    """Show catalogued and merged extensions with their origin and state."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "Status"):
        services = build_services(cli_state(ctx), sink)
        try:
            services.status().report()
        except AvocadoError as exc:
            report_error(sink, "Status", exc)
            sink.warning("Status", "Falling back to per-layer status output")
            print_legacy_status(services.settings, services.runner, sink)


@ext_app.command("inspect")
def inspect(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Extension name, with or without the .raw suffix.")],
) -> None:
    """Show image metadata for a raw extension image."""

    sink = build_sink(cli_state(ctx))
    with exit_on_error(sink, "Inspect"):
        services = build_services(cli_state(ctx), sink)
        image = services.settings.paths.extensions_dir / f"{name.removesuffix(RAW_SUFFIX)}{RAW_SUFFIX}"
        if not image.is_file():
            sink.error("Inspect", f"No raw image for extension '{name}' at {image}")
            raise typer.Exit(code=1)
        metadata = services.loops.inspect(image)
    if isinstance(metadata, dict):
        sink.status(json.dumps(metadata, indent=2, sort_keys=True))
    else:
        sink.status(metadata.rstrip())


__all__ = ["ext_app"]
