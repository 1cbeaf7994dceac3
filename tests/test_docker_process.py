from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest

from taskexec.execution.docker_exec import DockerProcess


class FakePopen:
    def __init__(self, args: list[str], **kwargs: Any) -> None:
        self.args = args
        self.kwargs = kwargs
        self.stdin = None
        self.stdout = None
        self.stderr = None
        self.returncode = 0

    def poll(self) -> int:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        return self.returncode


def capture_popen(monkeypatch: Any) -> dict[str, Any]:
    calls: dict[str, Any] = {}

    def fake_popen(args: list[str], **kwargs: Any) -> FakePopen:
        calls["args"] = args
        calls["kwargs"] = kwargs
        return FakePopen(args, **kwargs)

    monkeypatch.setattr(subprocess, "Popen", fake_popen)
    return calls


def test_docker_process_builds_command(monkeypatch: Any) -> None:
    calls = capture_popen(monkeypatch)
    workspace = Path("/repo")
    process = DockerProcess(["pytest", "-q"], workspace_root=workspace, image="python:3.11-slim")
    process.configure(working_directory=Path("tests"), env={"PYTHONUNBUFFERED": "1"})

    process.start()

    command = calls["args"]
    expected_prefix = [
        "docker",
        "run",
        "--rm",
        "-v",
        f"{workspace.resolve()}:/workspace",
        "-w",
        "/workspace/tests",
        "-e",
        "PYTHONUNBUFFERED=1",
        "python:3.11-slim",
    ]
    assert command[: len(expected_prefix)] == expected_prefix
    assert command[len(expected_prefix) :] == ["pytest", "-q"]
    assert calls["kwargs"]["cwd"] is None
    assert calls["kwargs"]["env"] is None


def test_docker_process_adds_interactive_flags(monkeypatch: Any) -> None:
    calls = capture_popen(monkeypatch)
    process = DockerProcess(["sh"], workspace_root=Path("/repo"), image="alpine")
    process.configure(tty=True)

    process.start()

    command = calls["args"]
    assert command[command.index("alpine") - 2 : command.index("alpine")] == ["-i", "-t"]
    assert process.command_line == "sh"


def test_docker_process_rejects_external_cwd() -> None:
    process = DockerProcess(["ls"], workspace_root=Path("/repo"), image="python:3.11")

    with pytest.raises(ValueError) as excinfo:
        process.configure(working_directory=Path("/tmp"))

    assert "workspace" in str(excinfo.value)
