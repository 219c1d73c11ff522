# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Unit tests for ``avocadoctl.process``."""

from __future__ import annotations

import sys
from subprocess import CompletedProcess

import pytest

from avocadoctl.errors import ProcessInvocationError, ToolExitError
from avocadoctl.process import CommandOptions, ToolRunner, run_command


def _completed(
    args: list[str],
    *,
    stdout: str = "",
    stderr: str = "",
    returncode: int = 0,
) -> CompletedProcess[str]:
    return CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr=stderr)


def test_tool_runner_returns_stdout(monkeypatch) -> None:
    commands: list[list[str]] = []

    def fake_run_command(args, **kwargs):  # noqa: ANN001
        commands.append(list(args))
        return _completed(list(args), stdout='{"ok":true}')

    monkeypatch.setattr("avocadoctl.process.run_command", fake_run_command)

    assert ToolRunner().run(["systemd-sysext", "status"]) == '{"ok":true}'
    assert commands == [["systemd-sysext", "status"]]


def test_tool_runner_raises_on_nonzero_exit(monkeypatch) -> None:
    def fake_run_command(args, **kwargs):  # noqa: ANN001
        return _completed(list(args), stderr="device busy\n", returncode=3)

    monkeypatch.setattr("avocadoctl.process.run_command", fake_run_command)

    with pytest.raises(ToolExitError) as excinfo:
        ToolRunner().run(["systemd-sysext", "merge"])

    assert str(excinfo.value) == "Command 'systemd-sysext' exited with error code 3"
    assert excinfo.value.returncode == 3
    assert excinfo.value.details() == "stderr: device busy"


def test_tool_runner_reports_missing_executable() -> None:
    with pytest.raises(ProcessInvocationError) as excinfo:
        ToolRunner().run(["avocadoctl-test-no-such-tool", "status"])

    assert "Failed to run command 'avocadoctl-test-no-such-tool'" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_run_command_captures_output() -> None:
    completed = run_command([sys.executable, "-c", "print('hello')"])

    assert completed.returncode == 0
    assert completed.stdout.strip() == "hello"


def test_run_command_timeout_maps_to_returncode() -> None:
    completed = run_command(
        [sys.executable, "-c", "import time; time.sleep(5)"],
        options=CommandOptions(timeout=0.2),
    )

    assert completed.returncode == 124
    assert "timed out" in completed.stderr
