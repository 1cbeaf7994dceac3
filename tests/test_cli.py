from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from typer.testing import CliRunner

from taskexec.cli.main import app
from taskexec.execution.base import ExecutionResult


def test_cli_init_creates_config_file(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0
    config_path = tmp_path / "taskexec.yaml"
    assert config_path.exists()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["workspace_root"] == str(tmp_path.resolve())


def test_cli_init_fails_when_config_exists(tmp_path: Path) -> None:
    runner = CliRunner()
    (tmp_path / "taskexec.yaml").write_text("{}", encoding="utf-8")

    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_cli_run_passes_options(monkeypatch: Any, tmp_path: Path) -> None:
    runner = CliRunner()
    captured: dict[str, Any] = {}

    def fake_run_command(command: list[str], workspace: Path, **kwargs: Any) -> ExecutionResult:
        captured["command"] = command
        captured["workspace"] = workspace
        captured.update(kwargs)
        return ExecutionResult(3, "out", {})

    monkeypatch.setattr("taskexec.cli.main.run_command", fake_run_command)

    result = runner.invoke(
        app,
        [
            "run",
            "--workspace",
            str(tmp_path),
            "--timeout",
            "5",
            "--env",
            "A=1",
            "--no-interactive",
            "--silent",
            "--input",
            "data",
            "make",
            "build",
        ],
    )

    assert result.exit_code == 3
    assert captured["command"] == ["make", "build"]
    assert captured["stdin"] == "data"
    assert captured["background"] is False
    config = captured["config"]
    assert config.executor.timeout_s == 5.0
    assert config.executor.env == {"A": "1"}
    assert config.executor.interactive is False
    assert config.output.print_output is False
    assert config.output.print_metadata is False


def test_cli_run_rejects_malformed_env(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(app, ["run", "-w", str(tmp_path), "--env", "NOVALUE", "true"])

    assert result.exit_code == 1
    assert "KEY=VALUE" in result.output


def test_cli_run_prints_background_output(monkeypatch: Any, tmp_path: Path) -> None:
    runner = CliRunner()

    def fake_run_command(command: list[str], workspace: Path, **kwargs: Any) -> ExecutionResult:
        return ExecutionResult(0, "finished\n", {})

    monkeypatch.setattr("taskexec.cli.main.run_command", fake_run_command)

    result = runner.invoke(app, ["run", "-w", str(tmp_path), "--background", "sleep", "1"])

    assert result.exit_code == 0
    assert "finished" in result.output


def test_cli_run_maps_signal_exit_to_shell_convention(monkeypatch: Any, tmp_path: Path) -> None:
    runner = CliRunner()

    def fake_run_command(command: list[str], workspace: Path, **kwargs: Any) -> ExecutionResult:
        return ExecutionResult(-15, "", {})

    monkeypatch.setattr("taskexec.cli.main.run_command", fake_run_command)

    result = runner.invoke(app, ["run", "-w", str(tmp_path), "sleep", "30"])

    assert result.exit_code == 143
