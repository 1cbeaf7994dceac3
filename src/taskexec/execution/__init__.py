"""Process execution package."""

from taskexec.execution.base import (
    ExecutionConfig,
    ExecutionResult,
    Interactive,
    ProcessHandle,
    ProcessStartError,
)
from taskexec.execution.controller import ExecutionController
from taskexec.execution.docker_exec import DockerProcess
from taskexec.execution.local_exec import LocalProcess

__all__ = [
    "DockerProcess",
    "ExecutionConfig",
    "ExecutionController",
    "ExecutionResult",
    "Interactive",
    "LocalProcess",
    "ProcessHandle",
    "ProcessStartError",
]
