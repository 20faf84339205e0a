"""Error taxonomy for ggufswitch.

Every failure the switcher can surface derives from :class:`SwitchError` so
the CLI can render it uniformly.  Only :class:`HealthCheckTimeout` is
recovered locally (via rollback); everything else is terminal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class SwitchError(Exception):
    """Base class for all ggufswitch errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(SwitchError):
    """The environment is not set up for a switch."""


class ModelsDirNotFoundError(ConfigurationError):
    """Raised when the models directory does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Models directory not found: {path}")


class NoModelsFoundError(ConfigurationError):
    """Raised when the models directory holds no artifacts."""

    def __init__(self, path: Path, pattern: str) -> None:
        self.path = path
        self.pattern = pattern
        super().__init__(f"No {pattern} files found in {path}")


class DockerUnavailableError(ConfigurationError):
    """Raised when the Docker daemon cannot be reached."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Docker is not running or not accessible: {reason}")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class ConcurrencyError(SwitchError):
    """Another switch is in progress."""


class AlreadyRunningError(ConcurrencyError):
    """Raised when the lock marker is held by a live process."""

    def __init__(self, lock_path: Path, pid: int | None) -> None:
        self.lock_path = lock_path
        self.pid = pid
        holder = f" by pid {pid}" if pid is not None else ""
        super().__init__(
            f"Another instance is already running (lock held{holder}: {lock_path})"
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(SwitchError):
    """Operator input or the selected artifact is invalid."""


class InvalidSelectionError(ValidationError):
    """Raised when the chosen index is non-numeric or out of range."""

    def __init__(self, choice: object, count: int) -> None:
        self.choice = choice
        self.count = count
        super().__init__(f"Invalid selection: {choice!r} (expected 0..{count - 1})")


class ModelFileMissingError(ValidationError):
    """Raised when the selected model file vanished before the swap."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Selected model file not found: {path}")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class OperationError(SwitchError):
    """An external command failed."""


class RestartFailedError(OperationError):
    """Raised when the container restart request itself fails.

    The pointer swap stays in place; it takes effect on the next start.
    """

    def __init__(self, container: str, reason: str) -> None:
        self.container = container
        self.reason = reason
        super().__init__(f"Failed to restart container {container}: {reason}")


class HealthCheckTimeout(SwitchError):  # noqa: N818
    """Raised when the health endpoint never succeeded within the wait budget."""

    def __init__(self, url: str, attempts: int, elapsed: float) -> None:
        self.url = url
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Health check failed after {elapsed:.1f}s ({attempts} attempts): {url}"
        )


class RollbackError(SwitchError):
    """Raised when the previous pointer target could not be restored."""
