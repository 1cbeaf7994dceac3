"""Execution base types and the process handle interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Callable, Union

TIMEOUT_EXIT_CODE = 124
PERMISSION_DENIED_EXIT_CODE = 126
NOT_FOUND_EXIT_CODE = 127

OutputCallback = Callable[[str, str], None]
ProcessInput = Union[str, bytes, IO[Any]]


class ProcessStartError(RuntimeError):
    """Raised when a child process cannot be spawned.

    Attributes:
        exit_code: Exit code reported for the failed start.
    """

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class Interactive(Enum):
    """Whether a terminal is attached to the child process."""

    UNSPECIFIED = "unspecified"
    ENABLED = "enabled"
    DISABLED = "disabled"

    @classmethod
    def from_bool(cls, value: bool | None) -> Interactive:
        if value is None:
            return cls.UNSPECIFIED
        return cls.ENABLED if value else cls.DISABLED


@dataclass(frozen=True)
class ExecutionResult:
    """Result of executing a process.

    Attributes:
        exit_code: Exit code of the process, or None while a background
            process is still running.
        output: Captured standard output, or the failure message when a
            background process could not be started.
        metadata: Elapsed time under ``"time"`` when metadata printing is on.
    """

    exit_code: int | None
    output: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def time(self) -> float | None:
        return self.metadata.get("time")


@dataclass
class ExecutionConfig:
    """Mutable execution settings owned by a controller."""

    background: bool = False
    timeout: float | None = None
    idle_timeout: float | None = None
    env: dict[str, str] | None = None
    input: ProcessInput | None = None
    interactive: Interactive = Interactive.UNSPECIFIED
    print_output: bool = True
    print_metadata: bool = True
    working_directory: Path | None = None


class ProcessHandle(ABC):
    """A child process that can be started at most once.

    Handles move through Created, Configured, Running and Terminated. The
    handle owns timeout enforcement: exceeding a timeout terminates the child
    and is reported through :attr:`exit_code`, not by raising.
    """

    @property
    @abstractmethod
    def command_line(self) -> str:
        """Return a printable form of the command."""

    @abstractmethod
    def configure(
        self,
        *,
        timeout: float | None = None,
        idle_timeout: float | None = None,
        working_directory: Path | None = None,
        stdin: ProcessInput | None = None,
        tty: bool = False,
        env: dict[str, str] | None = None,
    ) -> None:
        """Apply execution settings before the process starts.

        Args:
            timeout: Wall-clock limit in seconds.
            idle_timeout: Limit in seconds between output events.
            working_directory: Directory to run the process in.
            stdin: Data piped to the child's standard input.
            tty: Attach the caller's terminal to the child.
            env: Variables layered over the inherited environment.
        """

    @abstractmethod
    def run(self, callback: OutputCallback | None = None) -> int:
        """Start the process and block until it exits.

        Args:
            callback: Invoked with ``(stream, chunk)`` as output arrives.

        Returns:
            The process exit code.
        """

    @abstractmethod
    def start(self) -> None:
        """Start the process without waiting for it.

        Raises:
            ProcessStartError: If the process cannot be spawned.
        """

    @abstractmethod
    def wait(self, callback: OutputCallback | None = None) -> int:
        """Block until a started process exits and return its exit code."""

    @abstractmethod
    def is_running(self) -> bool:
        """Return True while the process has not exited."""

    @abstractmethod
    def stop(self, grace_s: float = 10.0) -> int | None:
        """Terminate the process, killing it after ``grace_s`` seconds."""

    @property
    @abstractmethod
    def exit_code(self) -> int | None:
        """Return the exit code, or None if not yet available."""

    @property
    @abstractmethod
    def output(self) -> str:
        """Return captured standard output."""

    @property
    @abstractmethod
    def error_output(self) -> str:
        """Return captured standard error."""

    @property
    @abstractmethod
    def timed_out(self) -> bool:
        """Return True if the process was killed by a timeout."""
