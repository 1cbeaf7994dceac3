"""Configuration models and loaders for taskexec."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

CONFIG_FILENAMES: tuple[str, ...] = ("taskexec.yaml", "taskexec.yml", "pyproject.toml")


@dataclass(frozen=True)
class ExecutorConfig:
    """Configuration for process handles and execution limits.

    Attributes:
        mode: Process backend, either "local" or "docker".
        docker_image: Image used when mode is "docker".
        timeout_s: Wall-clock limit for a command.
        idle_timeout_s: Limit between output events.
        env: Environment variables layered over the inherited environment.
        working_dir: Working directory, relative to the workspace root.
        interactive: Attach a TTY; None means auto-detect.
    """

    mode: str = "local"
    docker_image: str = "python:3.11-slim"
    timeout_s: float | None = None
    idle_timeout_s: float | None = None
    env: dict[str, str] = field(default_factory=dict)
    working_dir: Path | None = None
    interactive: bool | None = None


@dataclass(frozen=True)
class OutputConfig:
    """Configuration for what the controller prints."""

    print_output: bool = True
    print_metadata: bool = True


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration for the application.

    Attributes:
        workspace_root: Root path commands run relative to.
        executor: Configuration for process execution.
        output: Configuration for output and status lines.
    """

    workspace_root: Path = Path(".")
    executor: ExecutorConfig = field(default_factory=lambda: ExecutorConfig())
    output: OutputConfig = field(default_factory=lambda: OutputConfig())


def load_config(path: Path | None = None) -> AppConfig:
    """Load application configuration from disk.

    Args:
        path: Optional path to a configuration file or workspace directory.

    Returns:
        Parsed AppConfig with defaults applied when no config exists.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return AppConfig()

    if config_path.suffix in {".yaml", ".yml"}:
        raw_data = _load_yaml(config_path)
    elif config_path.name == "pyproject.toml" or config_path.suffix == ".toml":
        raw_data = _load_toml(config_path)
    else:
        raise ValueError(f"Unsupported config file type: {config_path}")

    return _parse_app_config(raw_data, base_path=config_path.parent)


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    """Serialize an AppConfig into a JSON-compatible dictionary."""

    executor = config.executor
    return {
        "workspace_root": str(config.workspace_root),
        "executor": {
            "mode": executor.mode,
            "docker_image": executor.docker_image,
            "timeout_s": executor.timeout_s,
            "idle_timeout_s": executor.idle_timeout_s,
            "env": dict(executor.env),
            "working_dir": str(executor.working_dir) if executor.working_dir else None,
            "interactive": executor.interactive,
        },
        "output": {
            "print_output": config.output.print_output,
            "print_metadata": config.output.print_metadata,
        },
    }


def update_workspace_root(config: AppConfig, workspace_root: Path) -> AppConfig:
    """Return a config copy with an updated workspace root."""

    return replace(config, workspace_root=workspace_root)


def update_executor(config: AppConfig, **changes: Any) -> AppConfig:
    """Return a config copy with executor fields replaced (None values are skipped)."""

    applied = {key: value for key, value in changes.items() if value is not None}
    if not applied:
        return config
    return replace(config, executor=replace(config.executor, **applied))


def update_output(config: AppConfig, **changes: Any) -> AppConfig:
    """Return a config copy with output fields replaced (None values are skipped)."""

    applied = {key: value for key, value in changes.items() if value is not None}
    if not applied:
        return config
    return replace(config, output=replace(config.output, **applied))


def _resolve_config_path(path: Path | None) -> Path | None:
    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILENAMES)
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILENAMES)
    else:
        candidate_paths.append(path)

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("taskexec", {})
        if not isinstance(tool_config, dict):
            raise ValueError("tool.taskexec must be a mapping.")
        return tool_config
    if not isinstance(data, dict):
        raise ValueError("TOML configuration must be a mapping.")
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if data is not None:
        if not isinstance(data, dict):
            raise ValueError("YAML configuration must be a mapping.")
        return data
    import yaml

    parsed = yaml.safe_load(text)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError("YAML configuration must be a mapping.")
    return parsed


def _parse_app_config(raw_data: dict[str, Any], base_path: Path) -> AppConfig:
    workspace_root = Path(raw_data.get("workspace_root", ".")) if raw_data else Path(".")
    if not workspace_root.is_absolute():
        workspace_root = (base_path / workspace_root).resolve()

    return AppConfig(
        workspace_root=workspace_root,
        executor=_parse_executor_config(raw_data.get("executor", {})),
        output=_parse_output_config(raw_data.get("output", {})),
    )


def _parse_executor_config(raw: Any) -> ExecutorConfig:
    if not isinstance(raw, dict):
        return ExecutorConfig()
    env = raw.get("env", {})
    env_map: dict[str, str] = {}
    if isinstance(env, dict):
        env_map = {str(key): str(value) for key, value in env.items()}
    working_dir = _optional_str(raw.get("working_dir"))
    interactive = raw.get("interactive")
    return ExecutorConfig(
        mode=str(raw.get("mode", "local")),
        docker_image=str(raw.get("docker_image", "python:3.11-slim")),
        timeout_s=_optional_float(raw.get("timeout_s")),
        idle_timeout_s=_optional_float(raw.get("idle_timeout_s")),
        env=env_map,
        working_dir=Path(working_dir) if working_dir else None,
        interactive=interactive if isinstance(interactive, bool) else None,
    )


def _parse_output_config(raw: Any) -> OutputConfig:
    if not isinstance(raw, dict):
        return OutputConfig()
    return OutputConfig(
        print_output=bool(raw.get("print_output", True)),
        print_metadata=bool(raw.get("print_metadata", True)),
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
