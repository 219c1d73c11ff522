# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for loop mount lifecycle management."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from avocadoctl.errors import LoopTeardownError, MountError
from avocadoctl.ext.loops import DeviceLoopRegistry, LoopManager
from avocadoctl.settings import ExtensionPaths

if TYPE_CHECKING:
    from conftest import FakeLoopRegistry, RecordingRunner


def test_ensure_mounted_issues_dissect_mount(
    loops: LoopManager,
    paths: ExtensionPaths,
    runner: RecordingRunner,
    tmp_path: Path,
) -> None:
    image = tmp_path / "tools.raw"

    mount_point = loops.ensure_mounted("tools", image)

    assert mount_point == paths.loop_mount_dir / "tools"
    assert mount_point.is_dir()
    assert runner.calls == [
        (
            "systemd-dissect",
            "--mount",
            "--read-only",
            "--mkdir",
            "--loop-ref=tools",
            str(image),
            str(mount_point),
        )
    ]


def test_ensure_mounted_is_idempotent(
    loops: LoopManager,
    runner: RecordingRunner,
    registry: FakeLoopRegistry,
    tmp_path: Path,
) -> None:
    image = tmp_path / "tools.raw"

    first = loops.ensure_mounted("tools", image)
    second = loops.ensure_mounted("tools", image)

    assert first == second
    assert len(runner.calls) == 1
    assert registry.refs == {"tools"}


def test_failed_mount_removes_created_mount_point(
    loops: LoopManager,
    paths: ExtensionPaths,
    runner: RecordingRunner,
    tmp_path: Path,
) -> None:
    runner.fail("systemd-dissect", "--mount", stderr="no such image")

    with pytest.raises(MountError) as excinfo:
        loops.ensure_mounted("ghost", tmp_path / "ghost.raw")

    assert "Failed to mount extension 'ghost'" in str(excinfo.value)
    assert not (paths.loop_mount_dir / "ghost").exists()


def test_teardown_all_attempts_every_reference(
    loops: LoopManager,
    paths: ExtensionPaths,
    runner: RecordingRunner,
    registry: FakeLoopRegistry,
) -> None:
    registry.refs.update({"a", "b", "c"})
    runner.fail("systemd-dissect", "--umount", "--rmdir", str(paths.loop_mount_dir / "b"))

    with pytest.raises(LoopTeardownError) as excinfo:
        loops.teardown_all()

    attempted = [Path(call[-1]).name for call in runner.commands("systemd-dissect")]
    assert attempted == ["a", "b", "c"]
    assert [name for name, _ in excinfo.value.failures] == ["b"]
    assert registry.refs == {"b"}
    assert "b: Failed to tear down extension 'b'" in (excinfo.value.details() or "")
    assert excinfo.value.failures[0][1].action == "tear down"


def test_cleanup_stale_keeps_current_and_never_raises(
    loops: LoopManager,
    paths: ExtensionPaths,
    runner: RecordingRunner,
    registry: FakeLoopRegistry,
    capsys: pytest.CaptureFixture[str],
) -> None:
    registry.refs.update({"current", "gone", "broken"})
    runner.fail("systemd-dissect", "--umount", "--rmdir", str(paths.loop_mount_dir / "broken"))

    removed = loops.cleanup_stale({"current"})

    assert removed == ["gone"]
    assert registry.refs == {"current", "broken"}
    err = capsys.readouterr().err
    assert "Failed to tear down extension 'broken'" in err
    assert "Failed to mount" not in err


def test_inspect_parses_json_or_returns_text(loops: LoopManager, runner: RecordingRunner, tmp_path: Path) -> None:
    image = tmp_path / "img.raw"
    runner.set_output("systemd-dissect", "--json=short", output='{"name": "img", "size": 4096}\n')

    assert loops.inspect(image) == {"name": "img", "size": 4096}

    runner.set_output("systemd-dissect", "--json=short", output="not json")

    assert loops.inspect(image) == "not json"


def test_device_registry_reports_only_managed_references(tmp_path: Path) -> None:
    ref_dir = tmp_path / "by-loop-ref"
    mount_dir = tmp_path / "mounts"
    ref_dir.mkdir()
    for name in ("ours", "foreign"):
        (ref_dir / name).symlink_to(tmp_path / f"loop-{name}")
    (mount_dir / "ours").mkdir(parents=True)
    (mount_dir / "orphan").mkdir()

    registry = DeviceLoopRegistry(ref_dir, mount_dir)

    assert registry.exists("ours")
    assert registry.exists("foreign")
    assert list(registry.names()) == ["ours"]


def test_device_registry_without_mount_dir(tmp_path: Path) -> None:
    registry = DeviceLoopRegistry(tmp_path / "refs", tmp_path / "missing")

    assert list(registry.names()) == []
    assert not registry.exists("anything")
