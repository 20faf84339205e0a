"""ContainerController — Docker control for the inference server container.

Uses the Docker SDK for Python; blocking SDK calls are offloaded with
``asyncio.to_thread``.  The tool never creates or removes containers, it
only inspects, restarts and reads logs from an existing one.
"""

from __future__ import annotations

import asyncio
import logging
import re

import docker
import docker.errors

from ggufswitch.errors import DockerUnavailableError, RestartFailedError

logger = logging.getLogger(__name__)

CONTAINER_NAME_PATTERN: re.Pattern[str] = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


def validate_container_name(name: str) -> str:
    """Raise ``ValueError`` if *name* is not a valid Docker container name."""
    if not name or not CONTAINER_NAME_PATTERN.match(name):
        msg = f"Invalid container name: {name!r}"
        raise ValueError(msg)
    return name


class ContainerController:
    """Inspect and restart a single named container.

    Parameters
    ----------
    client:
        Optional Docker client for dependency injection (testing).
        Defaults to ``docker.from_env()`` created lazily on first use.
    restart_timeout:
        Seconds Docker waits for the container to stop before killing it.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        restart_timeout: int = 10,
    ) -> None:
        self._client = client
        self._restart_timeout = restart_timeout

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as exc:
                raise DockerUnavailableError(str(exc)) from exc
        return self._client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        """Check the Docker daemon is reachable.

        Raises
        ------
        DockerUnavailableError
            If the client cannot be created or the daemon does not answer.
        """
        client = self.client
        try:
            await asyncio.to_thread(client.ping)
        except docker.errors.DockerException as exc:
            raise DockerUnavailableError(str(exc)) from exc

    async def is_running(self, name: str) -> bool:
        """Return True if a container called *name* exists and is running."""
        validate_container_name(name)
        try:
            container = await asyncio.to_thread(self.client.containers.get, name)
        except docker.errors.NotFound:
            return False
        except docker.errors.DockerException as exc:
            logger.warning("Could not inspect container %s: %s", name, exc)
            return False
        return container.status == "running"

    async def restart(self, name: str) -> None:
        """Restart the container.

        Raises
        ------
        RestartFailedError
            If the container is missing or Docker rejects the restart.
        """
        validate_container_name(name)
        try:
            container = await asyncio.to_thread(self.client.containers.get, name)
            await asyncio.to_thread(container.restart, timeout=self._restart_timeout)
        except docker.errors.NotFound as exc:
            raise RestartFailedError(name, "container not found") from exc
        except docker.errors.DockerException as exc:
            raise RestartFailedError(name, str(exc)) from exc
        logger.info("Restarted container %s", name)

    async def logs(self, name: str, tail: int = 50) -> list[str]:
        """Return the last *tail* log lines, or an empty list on any error."""
        validate_container_name(name)
        try:
            container = await asyncio.to_thread(self.client.containers.get, name)
            raw = await asyncio.to_thread(container.logs, tail=tail)
        except docker.errors.DockerException as exc:
            logger.debug("Could not read logs for %s: %s", name, exc)
            return []
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
        return text.splitlines()
