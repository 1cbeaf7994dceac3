"""CLI entrypoints for taskexec."""

from __future__ import annotations

from pathlib import Path

import typer

from taskexec.app import AppConfigError, initialize_config, load_workspace_config, run_command
from taskexec.config import update_executor, update_output
from taskexec.util.logging import configure_logging

app = typer.Typer(help="Run external commands with timeouts, streaming and status reporting.")


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    ),
) -> None:
    """Configure CLI-level options."""

    configure_logging(log_level)


@app.command()
def init(workspace: Path = typer.Argument(Path("."))) -> None:
    """Initialize configuration for a workspace."""

    try:
        config_path = initialize_config(workspace)
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")


@app.command(
    "run",
    context_settings={"allow_interspersed_args": False},
)
def run_command_cli(
    command: list[str] = typer.Argument(..., help="Command and arguments to execute."),
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Path to the workspace root.",
    ),
    execution_mode: str | None = typer.Option(
        None,
        "--exec-mode",
        help="Execution mode: local|docker",
    ),
    timeout: float | None = typer.Option(None, "--timeout", help="Wall-clock limit in seconds."),
    idle_timeout: float | None = typer.Option(
        None, "--idle-timeout", help="Limit in seconds between output events."
    ),
    directory: Path | None = typer.Option(None, "--dir", help="Working directory."),
    env: list[str] | None = typer.Option(None, "--env", "-e", help="Environment override KEY=VALUE."),
    input_text: str | None = typer.Option(None, "--input", help="Text piped to stdin."),
    interactive: bool | None = typer.Option(
        None,
        "--interactive/--no-interactive",
        help="Attach a TTY. Detected from the terminal when omitted.",
    ),
    silent: bool = typer.Option(False, "--silent", help="Print neither output nor status lines."),
    no_output: bool = typer.Option(False, "--no-output", help="Capture output without printing."),
    no_metadata: bool = typer.Option(False, "--no-metadata", help="Suppress status lines."),
    background: bool = typer.Option(
        False, "--background", help="Start in the background and wait; Ctrl-C stops it."
    ),
) -> None:
    """Run a command and exit with its exit code."""

    try:
        config = load_workspace_config(workspace)
        config = update_executor(
            config,
            mode=execution_mode,
            timeout_s=timeout,
            idle_timeout_s=idle_timeout,
            working_dir=directory,
            interactive=interactive,
            env={**config.executor.env, **_parse_env(env)} if env else None,
        )
        if silent:
            config = update_output(config, print_output=False, print_metadata=False)
        config = update_output(
            config,
            print_output=False if no_output else None,
            print_metadata=False if no_metadata else None,
        )
        result = run_command(
            command,
            workspace,
            config=config,
            background=background,
            stdin=input_text,
        )
    except Exception as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    if background and config.output.print_output and result.output:
        typer.echo(result.output, nl=False)
    raise typer.Exit(code=_shell_exit_code(result.exit_code))


def _shell_exit_code(exit_code: int | None) -> int:
    # Popen reports death by signal N as -N; shells report it as 128 + N.
    if exit_code is None:
        return 0
    if exit_code < 0:
        return 128 - exit_code
    return exit_code


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not key or not sep:
            raise ValueError(f"Environment override must be KEY=VALUE: {pair}")
        env[key] = value
    return env
