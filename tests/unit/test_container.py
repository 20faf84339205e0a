"""Unit tests for ContainerController."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import docker.errors
import pytest

from ggufswitch.container import ContainerController, validate_container_name
from ggufswitch.errors import DockerUnavailableError, OperationError, RestartFailedError

NAME = "ampere-llama-server"


@pytest.fixture
def mock_docker_client() -> MagicMock:
    """Create a mock Docker client."""
    client = MagicMock()
    client.containers = MagicMock()
    return client


@pytest.fixture
def controller(mock_docker_client: MagicMock) -> ContainerController:
    return ContainerController(client=mock_docker_client)


def _container(status: str = "running") -> MagicMock:
    container = MagicMock()
    container.status = status
    return container


# ---------------------------------------------------------------------------
# Name validation
# ---------------------------------------------------------------------------


class TestValidateContainerName:
    """Container names are passed to Docker verbatim, so reject junk."""

    @pytest.mark.parametrize("name", [NAME, "llama_1", "a.b-c"])
    def test_accepts_valid(self, name: str) -> None:
        assert validate_container_name(name) == name

    @pytest.mark.parametrize("name", ["", "-leading", "x; rm -rf /", "a b", "../etc"])
    def test_rejects_invalid(self, name: str) -> None:
        with pytest.raises(ValueError, match="container name"):
            validate_container_name(name)


# ---------------------------------------------------------------------------
# ping()
# ---------------------------------------------------------------------------


class TestPing:
    """Tests for ContainerController.ping()."""

    async def test_ping_ok(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        await controller.ping()

        mock_docker_client.ping.assert_called_once()

    async def test_ping_failure_raises(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.ping.side_effect = docker.errors.APIError("daemon down")

        with pytest.raises(DockerUnavailableError, match="daemon down"):
            await controller.ping()

    async def test_client_creation_failure_raises(self) -> None:
        with patch(
            "ggufswitch.container.docker.from_env",
            side_effect=docker.errors.DockerException("no socket"),
        ):
            with pytest.raises(DockerUnavailableError, match="no socket"):
                await ContainerController().ping()


# ---------------------------------------------------------------------------
# is_running()
# ---------------------------------------------------------------------------


class TestIsRunning:
    """Tests for ContainerController.is_running()."""

    async def test_running(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.containers.get.return_value = _container("running")

        assert await controller.is_running(NAME) is True
        mock_docker_client.containers.get.assert_called_once_with(NAME)

    @pytest.mark.parametrize("status", ["exited", "created", "restarting", "paused"])
    async def test_not_running_states(
        self, controller: ContainerController, mock_docker_client: MagicMock, status: str
    ) -> None:
        mock_docker_client.containers.get.return_value = _container(status)

        assert await controller.is_running(NAME) is False

    async def test_missing_container(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.containers.get.side_effect = docker.errors.NotFound("gone")

        assert await controller.is_running(NAME) is False


# ---------------------------------------------------------------------------
# restart()
# ---------------------------------------------------------------------------


class TestRestart:
    """Tests for ContainerController.restart()."""

    async def test_restart_calls_sdk(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        container = _container()
        mock_docker_client.containers.get.return_value = container

        await controller.restart(NAME)

        container.restart.assert_called_once_with(timeout=10)

    async def test_restart_missing_container_raises(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.containers.get.side_effect = docker.errors.NotFound("gone")

        with pytest.raises(RestartFailedError, match="not found") as exc_info:
            await controller.restart(NAME)

        assert isinstance(exc_info.value, OperationError)
        assert exc_info.value.container == NAME

    async def test_restart_api_error_raises(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        container = _container()
        container.restart.side_effect = docker.errors.APIError("conflict")
        mock_docker_client.containers.get.return_value = container

        with pytest.raises(RestartFailedError, match="conflict"):
            await controller.restart(NAME)

    async def test_restart_rejects_bad_name(self, controller: ContainerController) -> None:
        with pytest.raises(ValueError):
            await controller.restart("bad name")


# ---------------------------------------------------------------------------
# logs()
# ---------------------------------------------------------------------------


class TestLogs:
    """Tests for ContainerController.logs()."""

    async def test_logs_split_lines(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        container = _container()
        container.logs.return_value = b"loading model\nerror: out of memory\n"
        mock_docker_client.containers.get.return_value = container

        lines = await controller.logs(NAME, tail=20)

        assert lines == ["loading model", "error: out of memory"]
        container.logs.assert_called_once_with(tail=20)

    async def test_logs_error_returns_empty(
        self, controller: ContainerController, mock_docker_client: MagicMock
    ) -> None:
        mock_docker_client.containers.get.side_effect = docker.errors.NotFound("gone")

        assert await controller.logs(NAME) == []
