"""Local process handle implementation."""

from __future__ import annotations

import codecs
import os
import queue
import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Any

from taskexec.execution.base import (
    NOT_FOUND_EXIT_CODE,
    PERMISSION_DENIED_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    OutputCallback,
    ProcessHandle,
    ProcessInput,
    ProcessStartError,
)
from taskexec.util.logging import get_logger

STDOUT = "out"
STDERR = "err"
_CHUNK_SIZE = 4096


class LocalProcess(ProcessHandle):
    """Run a command on the local host with ``subprocess.Popen``.

    Output pipes are drained by one reader thread each. Chunks are handed to
    the calling thread through a queue, so output callbacks and timeout checks
    always run on the caller's thread.
    """

    poll_interval_s = 0.05
    drain_grace_s = 0.5

    def __init__(self, command: list[str] | str) -> None:
        """Initialize the handle.

        Args:
            command: Argument vector, or a string split with ``shlex``.
        """

        argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            raise ValueError("Command must contain at least one argument.")
        self._command = argv
        self._timeout: float | None = None
        self._idle_timeout: float | None = None
        self._working_directory: Path | None = None
        self._stdin: ProcessInput | None = None
        self._tty = False
        self._env: dict[str, str] | None = None

        self._popen: subprocess.Popen[bytes] | None = None
        self._started = False
        self._exit_code: int | None = None
        self._timed_out = False
        self._chunks: queue.Queue[tuple[str, bytes | None]] = queue.Queue()
        self._open_streams = 0
        self._parts: dict[str, list[str]] = {STDOUT: [], STDERR: []}
        self._decoders = {
            STDOUT: codecs.getincrementaldecoder("utf-8")(errors="replace"),
            STDERR: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        }
        self._start_time = 0.0
        self._last_output = 0.0
        self._drain_deadline: float | None = None
        self._logger = get_logger(self.__class__.__name__)

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def command_line(self) -> str:
        return shlex.join(self._command)

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
        if self._started:
            raise RuntimeError("Cannot configure a process that has already started.")
        self._timeout = timeout
        self._idle_timeout = idle_timeout
        self._working_directory = working_directory
        self._stdin = stdin
        self._tty = tty
        self._env = dict(env) if env is not None else None

    def run(self, callback: OutputCallback | None = None) -> int:
        try:
            self.start()
        except ProcessStartError as exc:
            self._parts[STDERR].append(str(exc))
            return exc.exit_code
        return self.wait(callback)

    def start(self) -> None:
        if self._started:
            raise RuntimeError("Process has already been started.")
        self._started = True

        stdin_data = _read_input(self._stdin)
        if self._tty:
            stdin: Any = subprocess.PIPE if stdin_data is not None else None
            stdout: Any = None
            stderr: Any = None
        else:
            stdin = subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL
            stdout = subprocess.PIPE
            stderr = subprocess.PIPE

        argv = self._build_argv()
        self._logger.debug("Spawning %s", argv)
        try:
            self._popen = subprocess.Popen(
                argv,
                cwd=self._build_cwd(),
                env=self._build_env(),
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
            )
        except PermissionError as exc:
            self._exit_code = PERMISSION_DENIED_EXIT_CODE
            raise ProcessStartError(str(exc), self._exit_code) from exc
        except FileNotFoundError as exc:
            self._exit_code = NOT_FOUND_EXIT_CODE
            raise ProcessStartError(str(exc), self._exit_code) from exc
        except OSError as exc:
            self._exit_code = 1
            raise ProcessStartError(str(exc), self._exit_code) from exc

        self._start_time = self._last_output = time.monotonic()
        if stdin_data is not None and self._popen.stdin is not None:
            self._spawn(self._feed, self._popen.stdin, stdin_data)
        if not self._tty:
            for name, pipe in ((STDOUT, self._popen.stdout), (STDERR, self._popen.stderr)):
                if pipe is not None:
                    self._open_streams += 1
                    self._spawn(self._drain, name, pipe)

    def wait(self, callback: OutputCallback | None = None) -> int:
        if self._exit_code is not None:
            return self._exit_code
        popen = self._popen
        if popen is None:
            raise RuntimeError("Process has not been started.")

        while True:
            self._check_timeout()
            if self._tty:
                try:
                    popen.wait(timeout=self.poll_interval_s)
                    break
                except subprocess.TimeoutExpired:
                    continue
            self._pump(callback, block=True)
            if popen.poll() is not None and (self._open_streams == 0 or self._drain_expired()):
                break
        return self._finish(popen)

    def is_running(self) -> bool:
        if self._popen is None:
            return False
        self._pump(None, block=False)
        self._check_timeout()
        return self._popen.poll() is None

    def stop(self, grace_s: float = 10.0) -> int | None:
        popen = self._popen
        if popen is None:
            return None
        if popen.poll() is None:
            self._logger.debug("Stopping %s", self.command_line)
            popen.terminate()
            try:
                popen.wait(timeout=grace_s)
            except subprocess.TimeoutExpired:
                popen.kill()
                popen.wait()
            self._drain_deadline = time.monotonic() + self.drain_grace_s
        self._pump(None, block=False)
        return self.exit_code

    @property
    def exit_code(self) -> int | None:
        if self._exit_code is not None:
            return self._exit_code
        if self._popen is None or self._popen.poll() is None:
            return None
        return TIMEOUT_EXIT_CODE if self._timed_out else self._popen.returncode

    @property
    def output(self) -> str:
        self._pump(None, block=False)
        return "".join(self._parts[STDOUT])

    @property
    def error_output(self) -> str:
        self._pump(None, block=False)
        return "".join(self._parts[STDERR])

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def _build_argv(self) -> list[str]:
        return list(self._command)

    def _build_cwd(self) -> str | None:
        if self._working_directory is None:
            return None
        return str(self._working_directory)

    def _build_env(self) -> dict[str, str] | None:
        if self._env is None:
            return None
        merged_env = os.environ.copy()
        merged_env.update(self._env)
        return merged_env

    def _spawn(self, target: Any, *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()

    def _drain(self, name: str, pipe: IO[bytes]) -> None:
        try:
            while True:
                data = pipe.read1(_CHUNK_SIZE)  # type: ignore[attr-defined]
                if not data:
                    break
                self._chunks.put((name, data))
        finally:
            pipe.close()
            self._chunks.put((name, None))

    def _feed(self, pipe: IO[bytes], data: bytes) -> None:
        try:
            pipe.write(data)
            pipe.close()
        except BrokenPipeError:
            # The child exited without reading all of its input.
            self._logger.debug("Input pipe closed early for %s", self.command_line)

    def _pump(self, callback: OutputCallback | None, block: bool) -> None:
        if self._open_streams == 0 and self._chunks.empty():
            if block:
                time.sleep(self.poll_interval_s)
            return
        wait_s: float | None = self.poll_interval_s if block else None
        while True:
            try:
                if wait_s is None:
                    name, data = self._chunks.get_nowait()
                else:
                    name, data = self._chunks.get(timeout=wait_s)
            except queue.Empty:
                return
            wait_s = None
            if data is None:
                self._open_streams -= 1
                text = self._decoders[name].decode(b"", final=True)
            else:
                self._last_output = time.monotonic()
                text = self._decoders[name].decode(data)
            if not text:
                continue
            self._parts[name].append(text)
            if callback is not None:
                callback(name, text)

    def _check_timeout(self) -> None:
        popen = self._popen
        if popen is None or popen.poll() is not None:
            return
        now = time.monotonic()
        if self._timeout is not None and now - self._start_time > self._timeout:
            self._kill_on_timeout(popen, f"exceeded the timeout of {self._timeout} seconds")
        elif (
            self._idle_timeout is not None
            and not self._tty
            and now - self._last_output > self._idle_timeout
        ):
            self._kill_on_timeout(popen, f"exceeded the idle timeout of {self._idle_timeout} seconds")

    def _kill_on_timeout(self, popen: subprocess.Popen[bytes], reason: str) -> None:
        self._logger.debug("Killing %s: %s", self.command_line, reason)
        self._timed_out = True
        popen.kill()
        popen.wait()
        self._drain_deadline = time.monotonic() + self.drain_grace_s
        self._parts[STDERR].append(f"The process {reason}.\n")

    def _drain_expired(self) -> bool:
        # Descendants that inherited the pipes can keep them open after a kill.
        return self._drain_deadline is not None and time.monotonic() > self._drain_deadline

    def _finish(self, popen: subprocess.Popen[bytes]) -> int:
        returncode = popen.wait()
        self._exit_code = TIMEOUT_EXIT_CODE if self._timed_out else returncode
        self._logger.debug("%s exited with %s", self.command_line, self._exit_code)
        return self._exit_code


def _read_input(data: ProcessInput | None) -> bytes | None:
    if data is None:
        return None
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        return data.encode("utf-8")
    content = data.read()
    return content.encode("utf-8") if isinstance(content, str) else content
