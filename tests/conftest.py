# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

import pytest

from avocadoctl.errors import ToolExitError
from avocadoctl.ext.loops import LoopManager, LoopRegistry
from avocadoctl.output import OutputSink
from avocadoctl.process import CommandRunner
from avocadoctl.settings import ExtensionPaths, RuntimeSettings


class RecordingRunner(CommandRunner):
    """Command runner that records calls and replays canned results."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._outputs: list[tuple[tuple[str, ...], str]] = []
        self._failures: list[tuple[tuple[str, ...], int, str]] = []
        self.hooks: list[Callable[[tuple[str, ...]], None]] = []

    def set_output(self, *prefix: str, output: str) -> None:
        self._outputs.insert(0, (prefix, output))

    def fail(self, *prefix: str, returncode: int = 1, stderr: str = "boom") -> None:
        self._failures.append((prefix, returncode, stderr))

    def run(self, args: Sequence[str]) -> str:
        call = tuple(args)
        self.calls.append(call)
        for prefix, returncode, stderr in self._failures:
            if call[: len(prefix)] == prefix:
                raise ToolExitError(call, returncode, "", stderr)
        for hook in self.hooks:
            hook(call)
        for prefix, output in self._outputs:
            if call[: len(prefix)] == prefix:
                return output
        return ""

    def commands(self, tool: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == tool]


class FakeLoopRegistry(LoopRegistry):
    """In-memory loop reference registry."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self.refs: set[str] = set(names)

    def exists(self, name: str) -> bool:
        return name in self.refs

    def names(self) -> list[str]:
        return sorted(self.refs)


@pytest.fixture
def paths(tmp_path: Path) -> ExtensionPaths:
    return ExtensionPaths(
        extensions_dir=tmp_path / "extensions",
        hitl_dir=tmp_path / "hitl",
        sysext_dir=tmp_path / "staging" / "extensions",
        confext_dir=tmp_path / "staging" / "confexts",
        loop_mount_dir=tmp_path / "loops",
        loop_ref_dir=tmp_path / "loop-refs",
        sysext_release_dir=tmp_path / "release",
    )


@pytest.fixture
def settings(paths: ExtensionPaths) -> RuntimeSettings:
    return RuntimeSettings(paths=paths)


@pytest.fixture
def sink() -> OutputSink:
    return OutputSink(verbose=True, use_emoji=False, use_color=False)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def registry() -> FakeLoopRegistry:
    return FakeLoopRegistry()


@pytest.fixture
def mounting_runner(runner: RecordingRunner, registry: FakeLoopRegistry) -> RecordingRunner:
    """Runner whose ``systemd-dissect`` calls update ``registry`` like the real tool."""

    def _track(call: tuple[str, ...]) -> None:
        if call[0] != "systemd-dissect":
            return
        if "--mount" in call:
            ref = next(arg for arg in call if arg.startswith("--loop-ref="))
            registry.refs.add(ref.removeprefix("--loop-ref="))
        elif "--umount" in call:
            registry.refs.discard(Path(call[-1]).name)

    runner.hooks.append(_track)
    return runner


@pytest.fixture
def loops(
    settings: RuntimeSettings,
    mounting_runner: RecordingRunner,
    sink: OutputSink,
    registry: FakeLoopRegistry,
) -> LoopManager:
    return LoopManager(settings, mounting_runner, sink, registry)


@pytest.fixture
def make_extension() -> Callable[..., Path]:
    """Return a factory creating an extension directory tree."""

    def _make(root: Path, name: str, *, sysext: bool = False, confext: bool = False) -> Path:
        path = root / name
        path.mkdir(parents=True, exist_ok=True)
        if sysext:
            release = path / "usr" / "lib" / "extension-release.d"
            release.mkdir(parents=True, exist_ok=True)
            (release / f"extension-release.{name}").write_text("ID=_any\n", encoding="utf-8")
        if confext:
            release = path / "etc" / "extension-release.d"
            release.mkdir(parents=True, exist_ok=True)
            (release / f"extension-release.{name}").write_text("ID=_any\n", encoding="utf-8")
        return path

    return _make


@pytest.fixture
def make_raw() -> Callable[[Path, str], Path]:
    """Return a factory creating an empty raw image file."""

    def _make(root: Path, name: str) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        image = root / f"{name}.raw"
        image.write_bytes(b"")
        return image

    return _make
