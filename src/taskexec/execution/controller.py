"""Process execution controller."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping

from taskexec.execution.base import (
    ExecutionConfig,
    ExecutionResult,
    Interactive,
    OutputCallback,
    ProcessHandle,
    ProcessInput,
    ProcessStartError,
)
from taskexec.execution.host import (
    ConsoleMessageSink,
    ExecutionTimer,
    LoggerVerbosity,
    MessageSink,
    ProgressDisplay,
    ProgressIndicator,
    StdoutTerminalProbe,
    TerminalProbe,
    Timer,
    VerbosityPolicy,
)
from taskexec.util.logging import get_logger
from taskexec.util.observability import ObservabilityManager, create_observability_manager


class ExecutionController:
    """Drives a process handle through one of three execution modes.

    The mode is chosen from ``(background, print_output)`` when
    :meth:`execute` is called:

    * foreground, silent: block until exit, capture output.
    * foreground, streamed: block until exit, forward chunks as they arrive.
    * background: start and return immediately.

    Builder methods mutate one setting each and return the controller so
    calls can be chained.
    """

    def __init__(
        self,
        *,
        timer: Timer | None = None,
        progress: ProgressDisplay | None = None,
        sink: MessageSink | None = None,
        verbosity: VerbosityPolicy | None = None,
        terminal: TerminalProbe | None = None,
        describe_command: Callable[[], str] | None = None,
        observability: ObservabilityManager | None = None,
        config: ExecutionConfig | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            timer: Measures elapsed time of foreground runs.
            progress: Progress indicator hidden while output is written.
            sink: Receives status lines and raw process output.
            verbosity: Decides whether output should be shown at all.
            terminal: Reports whether the host terminal is interactive.
            describe_command: Returns the command description for status lines.
                Defaults to the process handle's command line.
            observability: Event logger and metrics collector.
            config: Initial settings.
        """

        self.config = config or ExecutionConfig()
        self._timer = timer or ExecutionTimer()
        self._progress = progress or ProgressIndicator()
        self._sink = sink or ConsoleMessageSink()
        self._verbosity = verbosity or LoggerVerbosity()
        self._terminal = terminal or StdoutTerminalProbe()
        self._describe_command = describe_command
        self._observability = observability or create_observability_manager()
        self._process: ProcessHandle | None = None
        self._logger = get_logger(self.__class__.__name__)

    @property
    def process(self) -> ProcessHandle | None:
        return self._process

    def get_command_description(self) -> str:
        if self._describe_command is not None:
            return self._describe_command()
        if self._process is not None:
            return self._process.command_line
        return ""

    def detect_interactive(self) -> ExecutionController:
        """Enable interactive mode when unset, output is shown and stdout is a TTY."""

        if (
            self.config.interactive is Interactive.UNSPECIFIED
            and self._verbosity.meets_threshold()
            and self._terminal.is_interactive()
        ):
            self.config.interactive = Interactive.ENABLED
        return self

    def background(self, enabled: bool = True) -> ExecutionController:
        """Execute the command in background mode (asynchronously)."""

        if isinstance(enabled, bool):
            self.config.background = enabled
        return self

    def timeout(self, seconds: float | None) -> ExecutionController:
        """Stop the command if it runs longer than ``seconds``."""

        self.config.timeout = seconds
        return self

    def idle_timeout(self, seconds: float | None) -> ExecutionController:
        """Stop the command if it produces no output for ``seconds``."""

        self.config.idle_timeout = seconds
        return self

    def env(self, name: str | Mapping[str, str], value: str | None = None) -> ExecutionController:
        """Set a single environment variable, or several from a mapping.

        A single variable given without a value is set to ``"1"``.
        """

        if isinstance(name, Mapping):
            return self.env_vars(name)
        return self.env_vars({name: value if value else "1"})

    def env_vars(self, env: Mapping[str, str]) -> ExecutionController:
        """Replace the environment overrides for the command."""

        self.config.env = {str(key): str(val) for key, val in env.items()}
        return self

    def set_input(self, data: ProcessInput | None) -> ExecutionController:
        """Pipe ``data`` (text, bytes or a readable stream) to stdin."""

        self.config.input = data
        return self

    def interactive(self, enabled: bool = True) -> ExecutionController:
        """Attach a TTY to the process for interactive input."""

        if isinstance(enabled, bool):
            self.config.interactive = Interactive.from_bool(enabled)
        return self

    def dir(self, path: str | Path | None) -> ExecutionController:
        """Change the working directory of the command."""

        self.config.working_directory = Path(path) if path else None
        return self

    def print_output(self, enabled: bool) -> ExecutionController:
        if isinstance(enabled, bool):
            self.config.print_output = enabled
        return self

    def print_metadata(self, enabled: bool) -> ExecutionController:
        """Toggle status lines (command announcement, timer)."""

        if isinstance(enabled, bool):
            self.config.print_metadata = enabled
        return self

    def silent(self, enabled: bool) -> ExecutionController:
        """Shortcut for disabling (or re-enabling) output and metadata together."""

        if isinstance(enabled, bool):
            self.config.print_output = not enabled
            self.config.print_metadata = not enabled
        return self

    def get_printed(self) -> bool:
        return self.config.print_output

    def execute(
        self,
        process: ProcessHandle,
        output_callback: OutputCallback | None = None,
    ) -> ExecutionResult:
        """Configure ``process`` and run it in the selected mode.

        Args:
            process: Unstarted process handle.
            output_callback: Receives ``(stream, chunk)`` in streamed mode.
                Defaults to writing chunks to the message sink.

        Returns:
            ExecutionResult for the run. Foreground failures and background
            start failures are reported through the exit code.

        Raises:
            RuntimeError: If a background process started by this controller
                is still running.
        """

        config = self.config
        if config.background and self._process is not None and self._process.is_running():
            raise RuntimeError(
                f"A background process is already running: {self.get_command_description()}"
            )
        self._process = process

        if output_callback is None:
            output_callback = self._write_output

        self.detect_interactive()

        if config.print_metadata:
            self.print_action()

        process.configure(
            timeout=config.timeout,
            idle_timeout=config.idle_timeout,
            working_directory=config.working_directory,
            stdin=config.input if config.input else None,
            tty=config.interactive is Interactive.ENABLED,
            env=config.env,
        )

        if not config.background and not config.print_output:
            return self._run_foreground(process, "silent", None)

        if not config.background and config.print_output:
            return self._run_foreground(process, "streamed", output_callback)

        return self._start_background(process)

    def is_running(self) -> bool:
        return self._process is not None and self._process.is_running()

    def stop(self) -> None:
        """Stop a running background process and report it."""

        if self.config.background and self._process is not None and self._process.is_running():
            self._process.stop()
            command = self.get_command_description()
            self._sink.print_task_info("Stopped {command}", {"command": command})
            self._observability.record_stop(command, self._process.exit_code)

    def print_action(self, context: Mapping[str, Any] | None = None) -> None:
        """Announce the command (and working directory) before it starts."""

        directory = self.config.working_directory
        suffix = " in {dir}" if directory else ""
        parameters: dict[str, Any] = {
            "command": self.get_command_description(),
            "dir": str(directory) if directory else None,
        }
        parameters.update(context or {})
        self._sink.print_task_info(f"Running {{command}}{suffix}", parameters)

    def get_result_data(self) -> dict[str, Any]:
        """Return the metadata attached to an ExecutionResult."""

        if self.config.print_metadata:
            return {"time": self._timer.get_execution_time()}
        return {}

    def _run_foreground(
        self,
        process: ProcessHandle,
        mode: str,
        output_callback: OutputCallback | None,
    ) -> ExecutionResult:
        command = self.get_command_description()
        self._timer.start_timer()
        try:
            if output_callback is None:
                process.run()
            else:
                process.run(output_callback)
        except BaseException:
            if process.is_running():
                self._logger.warning("Stopping %s after an error during execution", command)
                process.stop()
            raise
        finally:
            self._timer.stop_timer()

        result = ExecutionResult(process.exit_code, process.output, self.get_result_data())
        if process.timed_out:
            self._logger.warning("Command timed out: %s", command)
        if self.config.print_metadata:
            self._sink.print_task_info(
                "Done in {time}s with exit code {exit_code}",
                {"time": f"{result.metadata['time']:.3f}", "exit_code": result.exit_code},
            )
        self._observability.record_execution(
            "process.finished", mode, command, result.exit_code, self._timer.get_execution_time()
        )
        return result

    def _start_background(self, process: ProcessHandle) -> ExecutionResult:
        command = self.get_command_description()
        try:
            process.start()
        except (ProcessStartError, OSError) as exc:
            exit_code = process.exit_code
            if exit_code is None:
                exit_code = getattr(exc, "exit_code", 1)
            self._logger.error("Failed to start %s: %s", command, exc)
            self._observability.record_execution(
                "process.start_failed", "background", command, exit_code
            )
            return ExecutionResult(exit_code, str(exc), self.get_result_data())

        self._observability.record_execution(
            "process.started", "background", command, process.exit_code
        )
        return ExecutionResult(process.exit_code)

    def _write_output(self, stream: str, chunk: str) -> None:
        was_visible = self._progress.hide_task_progress()
        self._sink.write_message(chunk)
        self._progress.show_task_progress(was_visible)
