"""Host collaborators used by the execution controller.

The controller depends on these protocols only. The default implementations
here are what the CLI wires in; tests substitute their own.
"""

from __future__ import annotations

import logging
import re
import sys
import time
from typing import Any, Mapping, Protocol

import typer

from taskexec.util.logging import get_logger

_PLACEHOLDER = re.compile(r"\{([A-Za-z0-9_.]+)\}")


class Timer(Protocol):
    def start_timer(self) -> None: ...

    def stop_timer(self) -> None: ...

    def get_execution_time(self) -> float: ...


class ProgressDisplay(Protocol):
    def hide_task_progress(self) -> bool: ...

    def show_task_progress(self, visible: bool) -> None: ...


class MessageSink(Protocol):
    def print_task_info(self, template: str, context: Mapping[str, Any] | None = None) -> None: ...

    def write_message(self, text: str) -> None: ...


class VerbosityPolicy(Protocol):
    def meets_threshold(self) -> bool: ...


class TerminalProbe(Protocol):
    def is_interactive(self) -> bool: ...


def interpolate(template: str, context: Mapping[str, Any] | None) -> str:
    """Replace ``{name}`` placeholders with values from ``context``.

    Unknown placeholders are left as-is so a missing key never hides a message.
    """

    if not context:
        return template

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in context or context[key] is None:
            return match.group(0)
        return str(context[key])

    return _PLACEHOLDER.sub(_replace, template)


class ExecutionTimer:
    """Measures one execution attempt with a monotonic clock."""

    def __init__(self) -> None:
        self._started: float | None = None
        self._elapsed = 0.0

    def start_timer(self) -> None:
        self._started = time.perf_counter()
        self._elapsed = 0.0

    def stop_timer(self) -> None:
        if self._started is None:
            return
        self._elapsed = time.perf_counter() - self._started
        self._started = None

    def get_execution_time(self) -> float:
        if self._started is not None:
            return time.perf_counter() - self._started
        return self._elapsed


class ProgressIndicator:
    """Tracks whether a task progress indicator is on screen."""

    def __init__(self, visible: bool = False) -> None:
        self.visible = visible

    def hide_task_progress(self) -> bool:
        was_visible = self.visible
        self.visible = False
        return was_visible

    def show_task_progress(self, visible: bool) -> None:
        self.visible = visible


class ConsoleMessageSink:
    """Sends status lines to the log and raw process output to stdout."""

    def __init__(self, logger: logging.Logger | None = None, err: bool = False) -> None:
        """Initialize the sink.

        Args:
            logger: Logger receiving status lines. Defaults to ``taskexec``.
            err: Write raw output to stderr instead of stdout.
        """

        self._logger = logger or get_logger("taskexec")
        self._err = err

    def print_task_info(self, template: str, context: Mapping[str, Any] | None = None) -> None:
        self._logger.info(interpolate(template, context))

    def write_message(self, text: str) -> None:
        typer.echo(text, nl=False, err=self._err)


class LoggerVerbosity:
    """Output is shown when the logger is enabled for ``threshold``."""

    def __init__(self, logger: logging.Logger | None = None, threshold: int = logging.INFO) -> None:
        self._logger = logger or get_logger("taskexec")
        self._threshold = threshold

    def meets_threshold(self) -> bool:
        return self._logger.isEnabledFor(self._threshold)


class StdoutTerminalProbe:
    """Reports whether standard output is a terminal."""

    def is_interactive(self) -> bool:
        isatty = getattr(sys.stdout, "isatty", None)
        return bool(isatty and isatty())
