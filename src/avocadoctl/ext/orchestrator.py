# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Merge, unmerge, and refresh sequencing for system and configuration extensions."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Final, TypeVar

from ..errors import AvocadoError
from ..output import OutputSink
from ..process import CommandRunner
from ..settings import RuntimeSettings
from .catalog import CatalogBuilder
from .hooks import HookProcessor
from .loops import LoopManager
from .models import Extension, Layer
from .staging import StagingManager

LOGGER = logging.getLogger(__name__)

MERGE_OPERATION: Final[str] = "Merge"
UNMERGE_OPERATION: Final[str] = "Unmerge"
REFRESH_OPERATION: Final[str] = "Refresh"

ResultT = TypeVar("ResultT")


class OrchestratorState(StrEnum):
    """States visited by the merge and unmerge sequences."""

    IDLE = "idle"
    PREPARING = "preparing"
    MERGING_SYSEXT = "merging-sysext"
    MERGING_CONFEXT = "merging-confext"
    POST_PROCESSING = "post-processing"
    MERGED = "merged"
    UNMERGING_SYSEXT = "unmerging-sysext"
    UNMERGING_CONFEXT = "unmerging-confext"
    CLEANING_SYMLINKS = "cleaning-symlinks"
    DEPENDENCY_REFRESH = "dependency-refresh"
    LOOP_TEARDOWN = "loop-teardown"
    UNMERGED = "unmerged"
    ERROR = "error"


def format_tool_output(operation: str, output: str) -> str:
    """Return the merge tool ``output`` rendered for display.

    JSON documents are re-emitted compactly; anything else is passed through.
    """

    if not output.strip():
        return f"{operation}: No output (operation may have completed with no changes)"
    try:
        payload = json.loads(output)
    except json.JSONDecodeError:
        return f"{operation}: {output.rstrip()}"
    return f"{operation}: {json.dumps(payload, separators=(',', ':'))}"


class ExtensionOrchestrator:
    """Own the merge/unmerge state machine and sequence its collaborators."""

    def __init__(
        self,
        settings: RuntimeSettings,
        *,
        runner: CommandRunner,
        sink: OutputSink,
        loops: LoopManager,
        catalog: CatalogBuilder | None = None,
        staging: StagingManager | None = None,
        hooks: HookProcessor | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._sink = sink
        self._loops = loops
        self._catalog = catalog or CatalogBuilder(settings, loops, sink)
        self._staging = staging or StagingManager(sink)
        self._hooks = hooks or HookProcessor(settings, runner, sink)
        self.state = OrchestratorState.IDLE
        self.history: list[OrchestratorState] = [OrchestratorState.IDLE]

    def merge(self) -> dict[str, Extension]:
        """Stage every available extension and merge both layers.

        Returns:
            dict[str, Extension]: The catalog that was staged.

        Raises:
            AvocadoError: When any step fails; completed steps are not rolled back.
        """

        self._sink.info(MERGE_OPERATION, "Merging extensions...")
        catalog = self._step(OrchestratorState.PREPARING, self._prepare)
        self._step(OrchestratorState.MERGING_SYSEXT, lambda: self._merge_layer(Layer.SYSEXT))
        self._step(OrchestratorState.MERGING_CONFEXT, lambda: self._merge_layer(Layer.CONFEXT))
        self._step(OrchestratorState.POST_PROCESSING, self._hooks.run)
        self._enter(OrchestratorState.MERGED)
        return catalog

    def unmerge(self, *, run_depmod: bool = True, unmount: bool = False) -> None:
        """Unmerge both layers and remove the staging symlinks.

        Args:
            run_depmod: Refresh module dependencies once the layers are gone.
            unmount: Also tear down every loop mount backing raw images.

        Raises:
            AvocadoError: When any step fails.
        """

        self._sink.info(UNMERGE_OPERATION, "Unmerging extensions...")
        self._step(OrchestratorState.UNMERGING_SYSEXT, lambda: self._unmerge_layer(Layer.SYSEXT))
        self._step(OrchestratorState.UNMERGING_CONFEXT, lambda: self._unmerge_layer(Layer.CONFEXT))
        self._step(OrchestratorState.CLEANING_SYMLINKS, self._cleanup_symlinks)
        if run_depmod:
            self._step(OrchestratorState.DEPENDENCY_REFRESH, self._hooks.run_depmod)
        if unmount:
            self._step(OrchestratorState.LOOP_TEARDOWN, self._loops.teardown_all)
        self._enter(OrchestratorState.UNMERGED)

    def refresh(self) -> dict[str, Extension]:
        """Unmerge without a dependency refresh, then merge again."""

        self._sink.info(REFRESH_OPERATION, "Refreshing extensions (unmerge then merge)...")
        self.unmerge(run_depmod=False)
        self._sink.progress("Extensions unmerged successfully.")
        return self.merge()

    def _enter(self, state: OrchestratorState) -> None:
        LOGGER.debug("state %s -> %s", self.state, state)
        self.state = state
        self.history.append(state)

    def _step(self, state: OrchestratorState, action: Callable[[], ResultT]) -> ResultT:
        self._enter(state)
        try:
            return action()
        except AvocadoError:
            self._enter(OrchestratorState.ERROR)
            raise

    def _prepare(self) -> dict[str, Extension]:
        sysext_root, confext_root = self._settings.paths.staging_roots()
        self._staging.verify_clean(sysext_root)
        self._staging.verify_clean(confext_root)

        catalog = self._catalog.scan()
        if not catalog:
            self._sink.status("No extensions found")
            return catalog

        for extension in catalog.values():
            if extension.provides_sysext:
                self._staging.create_symlink(sysext_root, extension)
            if extension.provides_confext:
                self._staging.create_symlink(confext_root, extension)
        self._sink.progress(f"Staged {len(catalog)} extension(s)")
        return catalog

    def _tool_for(self, layer: Layer) -> str:
        tools = self._settings.tools
        return tools.sysext if layer is Layer.SYSEXT else tools.confext

    def _merge_layer(self, layer: Layer) -> None:
        mutable = self._settings.sysext_mutable if layer is Layer.SYSEXT else self._settings.confext_mutable
        tool = self._tool_for(layer)
        output = self._runner.run([tool, "merge", f"--mutable={mutable}", "--json=short"])
        self._sink.raw(format_tool_output(f"systemd-{layer} merge", output))

    def _unmerge_layer(self, layer: Layer) -> None:
        output = self._runner.run([self._tool_for(layer), "unmerge", "--json=short"])
        self._sink.raw(format_tool_output(f"systemd-{layer} unmerge", output))

    def _cleanup_symlinks(self) -> None:
        for root in self._settings.paths.staging_roots():
            self._staging.cleanup_all(root)


__all__ = ["ExtensionOrchestrator", "OrchestratorState", "format_tool_output"]
