from pathlib import Path

import pytest

from taskexec.config import (
    AppConfig,
    config_to_dict,
    load_config,
    update_executor,
    update_output,
)


def test_app_config_defaults() -> None:
    config = AppConfig()
    assert config.workspace_root == Path(".")
    assert config.executor.mode == "local"
    assert config.executor.timeout_s is None
    assert config.executor.interactive is None
    assert config.output.print_output is True
    assert config.output.print_metadata is True


def test_load_config_returns_defaults_without_file(tmp_path: Path) -> None:
    assert load_config(tmp_path) == AppConfig()


def test_load_config_from_pyproject(tmp_path: Path) -> None:
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(
        """
[tool.taskexec]
workspace_root = "workspace"

[tool.taskexec.executor]
mode = "docker"
docker_image = "python:3.12"
timeout_s = 30
idle_timeout_s = 5
working_dir = "build"
interactive = false

[tool.taskexec.executor.env]
CI = "1"

[tool.taskexec.output]
print_metadata = false
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.workspace_root == (tmp_path / "workspace").resolve()
    assert config.executor.mode == "docker"
    assert config.executor.docker_image == "python:3.12"
    assert config.executor.timeout_s == 30.0
    assert config.executor.idle_timeout_s == 5.0
    assert config.executor.working_dir == Path("build")
    assert config.executor.interactive is False
    assert config.executor.env == {"CI": "1"}
    assert config.output.print_output is True
    assert config.output.print_metadata is False


def test_load_config_from_json_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "taskexec.yaml"
    config_path.write_text(
        '{"executor": {"timeout_s": 2.5, "env": {"A": 1}}, "output": {"print_output": false}}',
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.executor.timeout_s == 2.5
    assert config.executor.env == {"A": "1"}
    assert config.output.print_output is False


def test_load_config_from_non_json_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "taskexec.yml"
    config_path.write_text(
        """
executor:
  mode: docker
  idle_timeout_s: 10
output:
  print_metadata: false
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.executor.mode == "docker"
    assert config.executor.idle_timeout_s == 10.0
    assert config.output.print_metadata is False


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "taskexec.yaml"
    config_path.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(config_path)


def test_update_helpers_skip_none_values() -> None:
    config = AppConfig()

    updated = update_executor(config, timeout_s=3.0, mode=None)
    updated = update_output(updated, print_output=False, print_metadata=None)

    assert updated.executor.timeout_s == 3.0
    assert updated.executor.mode == "local"
    assert updated.output.print_output is False
    assert updated.output.print_metadata is True
    assert update_executor(config) is config


def test_config_to_dict_round_trips_through_loader(tmp_path: Path) -> None:
    import json

    config = update_executor(AppConfig(workspace_root=tmp_path), working_dir=Path("src"))
    config_path = tmp_path / "taskexec.yaml"
    config_path.write_text(json.dumps(config_to_dict(config)), encoding="utf-8")

    assert load_config(config_path) == config
