from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from taskexec.app import (
    AppConfigError,
    build_process,
    build_runtime,
    configure_controller,
    initialize_config,
    load_workspace_config,
    run_command,
)
from taskexec.config import AppConfig, ExecutorConfig, OutputConfig
from taskexec.execution.base import Interactive
from taskexec.execution.controller import ExecutionController
from taskexec.execution.docker_exec import DockerProcess
from taskexec.execution.local_exec import LocalProcess


def test_initialize_config_writes_defaults(tmp_path: Path) -> None:
    config_path = initialize_config(tmp_path)

    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["workspace_root"] == str(tmp_path.resolve())
    assert data["executor"]["mode"] == "local"

    with pytest.raises(AppConfigError):
        initialize_config(tmp_path)


def test_load_workspace_config_defaults_root_to_workspace(tmp_path: Path) -> None:
    config = load_workspace_config(tmp_path)

    assert config.workspace_root == tmp_path.resolve()


def test_build_process_selects_backend(tmp_path: Path) -> None:
    local = build_process(["ls"], AppConfig(workspace_root=tmp_path))
    docker = build_process(
        ["ls"], AppConfig(workspace_root=tmp_path, executor=ExecutorConfig(mode="docker"))
    )

    assert isinstance(local, LocalProcess)
    assert isinstance(docker, DockerProcess)
    with pytest.raises(AppConfigError):
        build_process(["ls"], AppConfig(executor=ExecutorConfig(mode="ssh")))


def test_configure_controller_applies_settings(tmp_path: Path) -> None:
    config = AppConfig(
        workspace_root=tmp_path,
        executor=ExecutorConfig(
            timeout_s=10,
            idle_timeout_s=2,
            env={"CI": "1"},
            working_dir=Path("build"),
            interactive=False,
        ),
        output=OutputConfig(print_output=False, print_metadata=False),
    )

    controller = configure_controller(ExecutionController(), config)

    assert controller.config.timeout == 10
    assert controller.config.idle_timeout == 2
    assert controller.config.env == {"CI": "1"}
    assert controller.config.working_directory == tmp_path / "build"
    assert controller.config.interactive is Interactive.DISABLED
    assert controller.config.print_output is False
    assert controller.config.print_metadata is False


def test_build_runtime_shares_observability(tmp_path: Path) -> None:
    runtime = build_runtime(["ls"], AppConfig(workspace_root=tmp_path))

    assert runtime.process.command_line == "ls"
    assert runtime.controller.process is None


def test_run_command_executes_locally(tmp_path: Path) -> None:
    config = AppConfig(
        workspace_root=tmp_path,
        executor=ExecutorConfig(interactive=False),
        output=OutputConfig(print_output=False, print_metadata=False),
    )

    result = run_command(
        [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read())"],
        tmp_path,
        config=config,
        stdin="piped",
    )

    assert result.exit_code == 0
    assert result.output == "piped"
    assert result.metadata == {}


def test_run_command_in_background_waits_for_exit(tmp_path: Path) -> None:
    config = AppConfig(
        workspace_root=tmp_path,
        executor=ExecutorConfig(interactive=False),
        output=OutputConfig(print_metadata=False),
    )

    result = run_command(
        [sys.executable, "-c", "print('bg'); raise SystemExit(4)"],
        tmp_path,
        config=config,
        background=True,
    )

    assert result.exit_code == 4
    assert result.output.strip() == "bg"
