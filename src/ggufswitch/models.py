"""Pydantic models and enums for ggufswitch."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

_SIZE_UNITS = ("B", "K", "M", "G", "T", "P")


def format_size(num_bytes: int) -> str:
    """Render a byte count the way ``du -h`` does, e.g. ``4.1G``."""
    size = float(num_bytes)
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(size)}B"
            return f"{size:.1f}{unit}" if size < 10 else f"{size:.0f}{unit}"
        size /= 1024
    return f"{size:.0f}{_SIZE_UNITS[-1]}"  # pragma: no cover


class SwitchState(StrEnum):
    """States a single switch invocation moves through."""

    IDLE = "idle"
    LOCKED = "locked"
    SWAPPED = "swapped"
    RESTARTING = "restarting"
    HEALTH_POLLING = "health_polling"
    HEALTHY = "healthy"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    RELEASED = "released"


class SwitchOutcome(StrEnum):
    """Final result of a switch invocation."""

    COMMITTED = "committed"
    UNCHANGED = "unchanged"
    DEFERRED = "deferred"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


_SUCCESS_OUTCOMES: frozenset[SwitchOutcome] = frozenset(
    {SwitchOutcome.COMMITTED, SwitchOutcome.UNCHANGED, SwitchOutcome.DEFERRED}
)


class ModelFile(BaseModel):
    """A quantized model artifact on disk."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    size_bytes: int
    path: Path

    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class SwitchResult(BaseModel):
    """Outcome of :meth:`ggufswitch.switcher.ModelSwitcher.switch`."""

    model_config = ConfigDict(extra="forbid")

    outcome: SwitchOutcome
    model: str
    previous_model: str | None = None
    states: list[SwitchState] = []
    rollback_healthy: bool | None = None
    message: str | None = None
    container_logs: list[str] = []

    @property
    def success(self) -> bool:
        """Return True when the operator's selection is now in effect."""
        return self.outcome in _SUCCESS_OUTCOMES
