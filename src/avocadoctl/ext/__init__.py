# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Extension discovery, staging, merging, and status reporting."""

from __future__ import annotations

from .catalog import CatalogBuilder, classify
from .hooks import HookPlan, HookProcessor
from .loops import DeviceLoopRegistry, LoopManager, LoopRegistry
from .models import Extension, ExtensionOrigin, Layer, MountedExtension
from .orchestrator import ExtensionOrchestrator, OrchestratorState
from .staging import StagingManager
from .status import MountState, StatusAggregator, StatusReport, parse_status_output

__all__ = [
    "CatalogBuilder",
    "DeviceLoopRegistry",
    "Extension",
    "ExtensionOrchestrator",
    "ExtensionOrigin",
    "HookPlan",
    "HookProcessor",
    "Layer",
    "LoopManager",
    "LoopRegistry",
    "MountState",
    "MountedExtension",
    "OrchestratorState",
    "StagingManager",
    "StatusAggregator",
    "StatusReport",
    "classify",
    "parse_status_output",
]
