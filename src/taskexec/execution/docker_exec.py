"""Docker-based process handle implementation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from taskexec.execution.local_exec import LocalProcess


class DockerProcess(LocalProcess):
    """Run a command inside a Docker container.

    The workspace root is bind-mounted at ``/workspace``. Working directories
    and environment overrides are translated into ``docker run`` flags, so the
    ``docker`` client itself runs with the host environment.
    """

    def __init__(
        self,
        command: list[str] | str,
        workspace_root: Path,
        image: str,
        docker_binary: str = "docker",
    ) -> None:
        """Initialize the handle.

        Args:
            command: Command to execute inside the container.
            workspace_root: Root directory to bind-mount into the container.
            image: Docker image to run.
            docker_binary: Docker client executable.
        """

        super().__init__(command)
        self._workspace_root = workspace_root.resolve()
        self._image = image
        self._docker_binary = docker_binary

    def configure(self, **settings: Any) -> None:
        self._resolve_container_cwd(settings.get("working_directory"))
        super().configure(**settings)

    def _build_argv(self) -> list[str]:
        docker_command = [
            self._docker_binary,
            "run",
            "--rm",
            "-v",
            f"{self._workspace_root}:/workspace",
            "-w",
            self._resolve_container_cwd(self._working_directory),
        ]
        if self._stdin is not None or self._tty:
            docker_command.append("-i")
        if self._tty:
            docker_command.append("-t")
        for key, value in (self._env or {}).items():
            docker_command.extend(["-e", f"{key}={value}"])
        docker_command.append(self._image)
        docker_command.extend(self._command)
        return docker_command

    def _build_cwd(self) -> str | None:
        return None

    def _build_env(self) -> dict[str, str] | None:
        return None

    def _resolve_container_cwd(self, cwd: Path | None) -> str:
        if cwd is None:
            return "/workspace"
        resolved = (self._workspace_root / cwd).resolve()
        try:
            relative = resolved.relative_to(self._workspace_root)
        except ValueError as exc:
            raise ValueError("Working directory must be inside workspace root") from exc
        if relative == Path("."):
            return "/workspace"
        return f"/workspace/{relative.as_posix()}"
