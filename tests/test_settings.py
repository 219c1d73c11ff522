# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for runtime settings resolution."""

from __future__ import annotations

from pathlib import Path

from avocadoctl.config import AvocadoSection, Config, ExtSection
from avocadoctl.settings import TEST_MODE_ENV, RuntimeSettings, ToolCommands


def _config(**ext: str) -> Config:
    return Config(avocado=AvocadoSection(ext=ExtSection(**ext)))


def test_defaults_follow_config() -> None:
    settings = RuntimeSettings.from_environment(_config(dir="/data/ext", sysext_mutable="yes"), env={})

    assert settings.paths.extensions_dir == Path("/data/ext")
    assert settings.paths.hitl_dir == Path("/run/avocado/hitl")
    assert settings.paths.staging_roots() == (Path("/run/extensions"), Path("/run/confexts"))
    assert settings.paths.loop_ref_dir == Path("/dev/disk/by-loop-ref")
    assert settings.tools == ToolCommands()
    assert settings.sysext_mutable == "yes"
    assert settings.confext_mutable == "ephemeral"


def test_environment_overrides_paths(tmp_path: Path) -> None:
    env = {
        "AVOCADO_EXTENSIONS_PATH": str(tmp_path / "ext"),
        "AVOCADO_HITL_DIR": str(tmp_path / "hitl"),
        "AVOCADO_SYSEXT_DIR": str(tmp_path / "sys"),
        "AVOCADO_CONFEXT_DIR": str(tmp_path / "conf"),
        "AVOCADO_LOOP_MOUNT_DIR": str(tmp_path / "loops"),
        "AVOCADO_LOOP_REF_DIR": str(tmp_path / "refs"),
        "AVOCADO_EXTENSION_RELEASE_DIR": str(tmp_path / "release"),
    }

    paths = RuntimeSettings.from_environment(Config(), env=env).paths

    assert paths.extensions_dir == tmp_path / "ext"
    assert paths.hitl_dir == tmp_path / "hitl"
    assert paths.sysext_dir == tmp_path / "sys"
    assert paths.confext_dir == tmp_path / "conf"
    assert paths.loop_mount_dir == tmp_path / "loops"
    assert paths.loop_ref_dir == tmp_path / "refs"
    assert paths.sysext_release_dir == tmp_path / "release"


def test_empty_override_falls_back_to_default() -> None:
    paths = RuntimeSettings.from_environment(Config(), env={"AVOCADO_HITL_DIR": ""}).paths

    assert paths.hitl_dir == Path("/run/avocado/hitl")


def test_test_mode_uses_mock_tools_and_temp_dirs(tmp_path: Path) -> None:
    env = {TEST_MODE_ENV: "1", "TMPDIR": str(tmp_path)}

    settings = RuntimeSettings.from_environment(Config(), env=env)

    assert settings.tools.sysext == "mock-systemd-sysext"
    assert settings.tools.modprobe == "mock-modprobe"
    assert settings.paths.hitl_dir == tmp_path / "avocado" / "hitl"
    assert settings.paths.sysext_dir == tmp_path / "extensions"
    assert settings.paths.loop_mount_dir == tmp_path / "avocado" / "extensions"
    assert settings.paths.loop_ref_dir == tmp_path / "dev" / "disk" / "by-loop-ref"
    assert settings.paths.extensions_dir == Config().ext.dir
