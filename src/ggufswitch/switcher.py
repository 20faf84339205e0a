"""ModelSwitcher — swap the active model with health-gated rollback.

Single Responsibility: drives one switch invocation through
``idle → locked → swapped → restarting → health_polling → {healthy,
rolling_back} → rolled_back|failed → released``.  Listing and selection
live in :mod:`ggufswitch.inventory`; rendering lives in the CLI.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ggufswitch.errors import (
    HealthCheckTimeout,
    ModelsDirNotFoundError,
    OperationError,
    RestartFailedError,
    RollbackError,
)
from ggufswitch.health import wait_until_healthy
from ggufswitch.inventory import resolve_current
from ggufswitch.models import SwitchOutcome, SwitchResult, SwitchState

if TYPE_CHECKING:
    from collections.abc import Callable

    from ggufswitch.container import ContainerController
    from ggufswitch.health import HealthProbe, RetryPolicy
    from ggufswitch.lock import SwitchLock
    from ggufswitch.models import ModelFile
    from ggufswitch.pointer import ModelPointer

logger = logging.getLogger(__name__)


class ModelSwitcher:
    """Orchestrates lock, pointer swap, restart, health poll and rollback.

    Parameters
    ----------
    pointer:
        Handle on the active-model symlink.
    container:
        Docker controller for the inference server.
    probe:
        Readiness probe for the inference server.
    policy:
        Bounded polling policy for the post-restart health wait.
    lock:
        Lock marker serializing invocations.
    container_name:
        Name of the inference server container.
    log_lines:
        Container log lines captured when a switch fails.
    rollback_settle:
        Seconds to wait after the rollback restart before the single
        confirmation probe.
    on_state:
        Callback invoked on every state transition.
    on_poll:
        Callback forwarded to :func:`wait_until_healthy`.
    """

    def __init__(
        self,
        pointer: ModelPointer,
        container: ContainerController,
        probe: HealthProbe,
        policy: RetryPolicy,
        lock: SwitchLock,
        container_name: str,
        *,
        log_lines: int = 50,
        rollback_settle: float = 5.0,
        on_state: Callable[[SwitchState], None] | None = None,
        on_poll: Callable[[int, bool], None] | None = None,
    ) -> None:
        self.pointer = pointer
        self.container = container
        self.probe = probe
        self.policy = policy
        self.lock = lock
        self.container_name = container_name
        self._log_lines = log_lines
        self._rollback_settle = rollback_settle
        self.on_state = on_state
        self.on_poll = on_poll

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def preflight(self) -> None:
        """Check the models directory and Docker before anything interactive.

        Raises
        ------
        ModelsDirNotFoundError
            If the models directory is missing.
        DockerUnavailableError
            If the Docker daemon cannot be reached.
        """
        if not self.pointer.models_dir.is_dir():
            raise ModelsDirNotFoundError(self.pointer.models_dir)
        await self.container.ping()

    async def switch(self, target: ModelFile) -> SwitchResult:
        """Make *target* the active model.

        Raises
        ------
        AlreadyRunningError
            If another invocation holds the lock. Nothing is mutated.
        ModelFileMissingError
            If the artifact disappeared before the swap.
        RestartFailedError
            If the restart request fails. The new pointer is kept.
        """
        states: list[SwitchState] = []
        self._transition(states, SwitchState.IDLE)

        with self.lock:
            self._transition(states, SwitchState.LOCKED)
            result = await self._switch_locked(target, states)

        self._transition(result.states, SwitchState.RELEASED)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transition(self, states: list[SwitchState], state: SwitchState) -> None:
        states.append(state)
        logger.debug("Switch state -> %s", state)
        if self.on_state is not None:
            self.on_state(state)

    async def _switch_locked(self, target: ModelFile, states: list[SwitchState]) -> SwitchResult:
        current = resolve_current(self.pointer)
        if current == target.name:
            logger.info("Model %s is already loaded", target.name)
            return SwitchResult(
                outcome=SwitchOutcome.UNCHANGED,
                model=target.name,
                previous_model=current,
                states=states,
                message=f"Model '{target.name}' is already loaded",
            )

        rollback_target = self._snapshot()
        try:
            self.pointer.swap(target.name)
        except OSError as exc:
            self.pointer.discard_backup()
            msg = f"Failed to update symlink: {exc}"
            raise OperationError(msg) from exc
        except Exception:
            self.pointer.discard_backup()
            raise
        self._transition(states, SwitchState.SWAPPED)
        self.pointer.record_history(target.name, current)

        if not await self.container.is_running(self.container_name):
            logger.warning("Container %s is not running; skipping restart", self.container_name)
            self.pointer.discard_backup()
            return SwitchResult(
                outcome=SwitchOutcome.DEFERRED,
                model=target.name,
                previous_model=current,
                states=states,
                message=(
                    f"Container '{self.container_name}' is not running; "
                    "the new model loads on next start"
                ),
            )

        self._transition(states, SwitchState.RESTARTING)
        await self.container.restart(self.container_name)

        self._transition(states, SwitchState.HEALTH_POLLING)
        try:
            await wait_until_healthy(self.probe, self.policy, on_attempt=self.on_poll)
        except HealthCheckTimeout as exc:
            return await self._recover(target, current, rollback_target, exc, states)

        self.pointer.discard_backup()
        self._transition(states, SwitchState.HEALTHY)
        return SwitchResult(
            outcome=SwitchOutcome.COMMITTED,
            model=target.name,
            previous_model=current,
            states=states,
            message=f"Model successfully loaded: {target.name}",
        )

    def _snapshot(self) -> str | None:
        """Back up the current pointer; failures only cost the rollback option."""
        try:
            return self.pointer.snapshot()
        except OSError as exc:
            logger.warning("Could not back up current symlink: %s", exc)
            return None

    async def _recover(
        self,
        target: ModelFile,
        current: str | None,
        rollback_target: str | None,
        timeout: HealthCheckTimeout,
        states: list[SwitchState],
    ) -> SwitchResult:
        container_logs = await self.container.logs(self.container_name, tail=self._log_lines)

        if rollback_target is None or not self.pointer.has_backup():
            logger.error("Health check timed out and no rollback is available")
            self._transition(states, SwitchState.FAILED)
            return SwitchResult(
                outcome=SwitchOutcome.FAILED,
                model=target.name,
                previous_model=current,
                states=states,
                message=f"{timeout}; no rollback available (no previous model backup)",
                container_logs=container_logs,
            )

        self._transition(states, SwitchState.ROLLING_BACK)
        try:
            restored = self.pointer.restore()
        except RollbackError as exc:
            logger.error("Rollback failed: %s", exc)
            self._transition(states, SwitchState.FAILED)
            return SwitchResult(
                outcome=SwitchOutcome.FAILED,
                model=target.name,
                previous_model=current,
                states=states,
                message=f"{timeout}; {exc}",
                container_logs=container_logs,
            )

        try:
            await self.container.restart(self.container_name)
        except RestartFailedError as exc:
            logger.warning("Restart for rollback failed: %s", exc)

        await asyncio.sleep(self._rollback_settle)
        rollback_healthy = await self.probe.check()
        if rollback_healthy:
            logger.info("Rollback successful - %s restored", restored)
        else:
            logger.warning("Rollback to %s may not have fully succeeded", restored)

        self._transition(states, SwitchState.ROLLED_BACK)
        return SwitchResult(
            outcome=SwitchOutcome.ROLLED_BACK,
            model=target.name,
            previous_model=restored,
            states=states,
            rollback_healthy=rollback_healthy,
            message=f"{timeout}; rolled back to {restored}",
            container_logs=container_logs,
        )
