# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for staging symlink management."""

from __future__ import annotations

from pathlib import Path

import pytest

from avocadoctl.errors import FilesystemError
from avocadoctl.ext.models import Extension, ExtensionOrigin
from avocadoctl.ext.staging import StagingManager
from avocadoctl.output import OutputSink


@pytest.fixture
def staging(sink: OutputSink) -> StagingManager:
    return StagingManager(sink)


def _extension(tmp_path: Path, name: str) -> Extension:
    path = tmp_path / "store" / name
    path.mkdir(parents=True, exist_ok=True)
    return Extension(name=name, path=path, origin=ExtensionOrigin.DIRECTORY)


def test_verify_clean_creates_root(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "run" / "extensions"

    assert staging.verify_clean(root) == []
    assert root.is_dir()


def test_verify_clean_removes_only_symlinks(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "extensions"
    root.mkdir()
    (root / "stale").symlink_to(tmp_path / "nowhere")
    (root / "keep.txt").write_text("data", encoding="utf-8")
    (root / "keep-dir").mkdir()

    removed = staging.verify_clean(root)

    assert removed == [root / "stale"]
    assert sorted(entry.name for entry in root.iterdir()) == ["keep-dir", "keep.txt"]


def test_create_symlink_points_at_extension(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "extensions"
    extension = _extension(tmp_path, "app")

    link = staging.create_symlink(root, extension)

    assert link == root / "app"
    assert link.is_symlink()
    assert link.resolve() == extension.path.resolve()


def test_create_symlink_replaces_existing_entries(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "extensions"
    root.mkdir()
    (root / "old-link").symlink_to(tmp_path / "previous")
    (root / "old-dir").mkdir()
    (root / "old-dir" / "file").write_text("x", encoding="utf-8")

    for name in ("old-link", "old-dir"):
        extension = _extension(tmp_path, name)
        link = staging.create_symlink(root, extension)
        assert link.is_symlink()
        assert link.resolve() == extension.path.resolve()


def test_create_symlink_reports_unusable_root(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "not-a-dir"
    root.write_text("", encoding="utf-8")

    with pytest.raises(FilesystemError) as excinfo:
        staging.create_symlink(root, _extension(tmp_path, "app"))

    assert excinfo.value.path == root


def test_cleanup_all_missing_root_is_noop(staging: StagingManager, tmp_path: Path) -> None:
    assert staging.cleanup_all(tmp_path / "absent") == []
    assert not (tmp_path / "absent").exists()


def test_cleanup_all_removes_every_symlink(staging: StagingManager, tmp_path: Path) -> None:
    root = tmp_path / "confexts"
    for name in ("a", "b"):
        staging.create_symlink(root, _extension(tmp_path, name))

    removed = staging.cleanup_all(root)

    assert sorted(path.name for path in removed) == ["a", "b"]
    assert list(root.iterdir()) == []
