"""Application wiring for CLI-friendly process execution."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path

from taskexec.config import AppConfig, config_to_dict, load_config, update_workspace_root
from taskexec.execution.base import ExecutionResult, OutputCallback, ProcessHandle, ProcessInput
from taskexec.execution.controller import ExecutionController
from taskexec.execution.docker_exec import DockerProcess
from taskexec.execution.local_exec import LocalProcess
from taskexec.util.logging import get_logger
from taskexec.util.observability import ObservabilityManager, create_observability_manager


class AppConfigError(RuntimeError):
    """Raised when configuration or runtime setup fails."""


@dataclass(frozen=True)
class RuntimeContext:
    """A configured controller and the process handle it will execute."""

    config: AppConfig
    controller: ExecutionController
    process: ProcessHandle
    observability: ObservabilityManager


_LOGGER = get_logger("taskexec.app")


def initialize_config(workspace: Path) -> Path:
    """Create a default configuration file in the workspace.

    Args:
        workspace: Workspace directory where the config should be written.

    Returns:
        Path to the generated configuration file.

    Raises:
        AppConfigError: If the config file already exists.
    """

    workspace = workspace.resolve()
    config_path = workspace / "taskexec.yaml"
    if config_path.exists():
        raise AppConfigError(
            f"Config file already exists at {config_path}. Remove it or choose another "
            "workspace."
        )
    config_path.write_text(
        json.dumps(config_to_dict(AppConfig(workspace_root=workspace)), indent=2),
        encoding="utf-8",
    )
    _LOGGER.info("Initialized configuration at %s", config_path)
    return config_path


def load_workspace_config(workspace: Path) -> AppConfig:
    """Load the configuration for ``workspace``, defaulting its root to it."""

    workspace = workspace.resolve()
    try:
        config = load_config(workspace)
    except ValueError as exc:
        raise AppConfigError(str(exc)) from exc
    if config.workspace_root == Path("."):
        config = update_workspace_root(config, workspace)
    return config


def build_process(command: list[str] | str, config: AppConfig) -> ProcessHandle:
    """Create the process handle for the configured executor mode."""

    mode = config.executor.mode
    if mode == "local":
        return LocalProcess(command)
    if mode == "docker":
        return DockerProcess(
            command,
            workspace_root=config.workspace_root,
            image=config.executor.docker_image,
        )
    raise AppConfigError(f"Unsupported executor mode: {mode}")


def configure_controller(controller: ExecutionController, config: AppConfig) -> ExecutionController:
    """Apply configuration to a controller through its builder methods."""

    executor = config.executor
    controller.timeout(executor.timeout_s).idle_timeout(executor.idle_timeout_s)
    if executor.env:
        controller.env_vars(executor.env)
    if executor.working_dir is not None:
        working_dir = executor.working_dir
        if config.executor.mode == "local" and not working_dir.is_absolute():
            working_dir = config.workspace_root / working_dir
        controller.dir(working_dir)
    if executor.interactive is not None:
        controller.interactive(executor.interactive)
    return controller.print_output(config.output.print_output).print_metadata(
        config.output.print_metadata
    )


def build_runtime(
    command: list[str] | str,
    config: AppConfig,
    observability: ObservabilityManager | None = None,
) -> RuntimeContext:
    """Build a configured controller and process handle for ``command``."""

    observability = observability or create_observability_manager()
    controller = configure_controller(ExecutionController(observability=observability), config)
    return RuntimeContext(
        config=config,
        controller=controller,
        process=build_process(command, config),
        observability=observability,
    )


def run_command(
    command: list[str] | str,
    workspace: Path,
    *,
    config: AppConfig | None = None,
    background: bool = False,
    stdin: ProcessInput | None = None,
    output_callback: OutputCallback | None = None,
) -> ExecutionResult:
    """Run ``command`` with workspace configuration applied.

    Args:
        command: Command to execute.
        workspace: Path to the workspace root.
        config: Configuration to use instead of loading it from ``workspace``.
        background: Start the command, then poll until it finishes. A
            KeyboardInterrupt stops the child.
        stdin: Data piped to the child's standard input.
        output_callback: Receives output chunks in streamed mode.

    Returns:
        ExecutionResult of the run.
    """

    runtime = build_runtime(command, config or load_workspace_config(workspace))
    controller = runtime.controller
    if stdin is not None:
        controller.set_input(stdin)
    if not background:
        return controller.execute(runtime.process, output_callback)

    started = controller.background().execute(runtime.process, output_callback)
    try:
        while controller.is_running():
            time.sleep(0.1)
    except KeyboardInterrupt:
        controller.stop()
    process = runtime.process
    exit_code = process.wait()
    return ExecutionResult(exit_code, process.output or started.output, started.metadata)
