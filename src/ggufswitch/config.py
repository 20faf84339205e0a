"""Centralized configuration for ggufswitch.

All settings are configurable via environment variables with the
``GGUFSWITCH_`` prefix.  For example, ``GGUFSWITCH_MODELS_DIR`` overrides the
default models directory.

Environment Variables
---------------------
GGUFSWITCH_MODELS_DIR : str
    Flat directory holding the model artifacts and the active pointer.
    Default: ``./models`` (resolved against the working directory)
GGUFSWITCH_MODEL_PATTERN : str
    Glob matched case-insensitively against artifact filenames.
    Default: ``*.gguf``
GGUFSWITCH_POINTER_NAME : str
    Name of the symlink the inference server loads.
    Default: ``current``
GGUFSWITCH_BACKUP_NAME : str
    Name of the rollback symlink kept during a switch.
    Default: ``.current_backup``
GGUFSWITCH_CONTAINER_NAME : str
    Docker container running the inference server.
    Default: ``ampere-llama-server``
GGUFSWITCH_HEALTH_URL : str
    Readiness endpoint polled after a restart. http/https only.
    Default: ``http://localhost:8080/v1/models``
GGUFSWITCH_MAX_WAIT : float
    Health polling budget in seconds. Must be > 0.
    Default: 120
GGUFSWITCH_POLL_INTERVAL : float
    Seconds between health polls. Must be > 0.
    Default: 3
GGUFSWITCH_REQUEST_TIMEOUT : float
    Per-request timeout for a single health probe.
    Default: 5
GGUFSWITCH_ROLLBACK_SETTLE : float
    Seconds to wait after the rollback restart before the confirmation probe.
    Default: 5
GGUFSWITCH_LOG_LINES : int
    Container log lines shown when a switch fails.
    Default: 50
GGUFSWITCH_LOCK_PATH : str
    Lock marker serializing concurrent invocations.
    Default: ``/tmp/model_switcher.lock``
GGUFSWITCH_LOG_LEVEL : str
    Logging level. One of: DEBUG, INFO, WARNING, ERROR, CRITICAL.
    Default: ``WARNING``
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ggufswitch.container import validate_container_name
from ggufswitch.health import RetryPolicy

# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class SwitcherSettings(BaseSettings):
    """Centralized settings for the model switcher.

    All fields can be overridden via environment variables prefixed with
    ``GGUFSWITCH_``.  See module docstring for the full list.
    """

    model_config = SettingsConfigDict(
        env_prefix="GGUFSWITCH_",
    )

    # Filesystem
    models_dir: Path = Field(default_factory=lambda: Path.cwd() / "models")
    model_pattern: str = "*.gguf"
    pointer_name: str = "current"
    backup_name: str = ".current_backup"
    lock_path: Path = Path("/tmp/model_switcher.lock")

    # Container
    container_name: str = "ampere-llama-server"
    log_lines: int = Field(default=50, ge=0)

    # Health polling
    health_url: str = "http://localhost:8080/v1/models"
    max_wait: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=3.0, gt=0)
    request_timeout: float = Field(default=5.0, gt=0)
    rollback_settle: float = Field(default=5.0, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase and validate."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("health_url", mode="before")
    @classmethod
    def _validate_health_url(cls, v: str) -> str:
        """Only http and https endpoints can be probed."""
        from urllib.parse import urlparse

        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https"):
            msg = f"health_url must use http or https scheme, got {parsed.scheme!r}"
            raise ValueError(msg)
        if not parsed.hostname:
            msg = f"health_url must include a host, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("pointer_name", "backup_name", mode="after")
    @classmethod
    def _validate_link_name(cls, v: str) -> str:
        """Pointer and backup live directly inside the models directory."""
        if not v or "/" in v or v in (".", ".."):
            msg = f"link names must be plain filenames, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("container_name", mode="after")
    @classmethod
    def _validate_container_name(cls, v: str) -> str:
        """Reject names Docker would not accept before any command runs."""
        return validate_container_name(v)

    @property
    def pointer_path(self) -> Path:
        return self.models_dir / self.pointer_name

    @property
    def backup_path(self) -> Path:
        return self.models_dir / self.backup_name

    def retry_policy(self) -> RetryPolicy:
        """Build the health polling policy from the configured budget."""
        return RetryPolicy(
            interval=self.poll_interval,
            max_wait=self.max_wait,
            request_timeout=self.request_timeout,
        )


# ---------------------------------------------------------------------------
# Singleton / cached accessor
# ---------------------------------------------------------------------------

_settings_instance: SwitcherSettings | None = None


def get_settings() -> SwitcherSettings:
    """Return the cached SwitcherSettings singleton.

    Creates the instance on first call, then returns the same object
    on subsequent calls.  Use :func:`_clear_settings_cache` in tests
    to reset.
    """
    global _settings_instance  # noqa: PLW0603
    if _settings_instance is None:
        _settings_instance = SwitcherSettings()
    return _settings_instance


def _clear_settings_cache() -> None:
    """Clear the settings singleton cache.

    Intended for test teardown so each test can start with fresh settings.
    """
    global _settings_instance  # noqa: PLW0603
    _settings_instance = None
