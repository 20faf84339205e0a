"""Health probing for the inference server.

A single probe is an HTTP GET that counts as healthy on any 2xx status; the
response body is ignored.  :func:`wait_until_healthy` repeats the probe under
a :class:`RetryPolicy` until it succeeds or the wall-clock budget runs out.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from ggufswitch.errors import HealthCheckTimeout

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded fixed-interval polling policy.

    Attributes
    ----------
    interval:
        Seconds to sleep between attempts.
    max_wait:
        Wall-clock budget in seconds for the whole polling loop.
    request_timeout:
        Timeout applied to each individual probe.
    """

    interval: float
    max_wait: float
    request_timeout: float = 5.0

    def __post_init__(self) -> None:
        if self.interval <= 0:
            msg = f"interval must be > 0, got {self.interval}"
            raise ValueError(msg)
        if self.max_wait <= 0:
            msg = f"max_wait must be > 0, got {self.max_wait}"
            raise ValueError(msg)

    @property
    def max_attempts(self) -> int:
        """Upper bound on probes if every probe returned instantly."""
        return max(1, math.ceil(self.max_wait / self.interval))


class HealthProbe:
    """Readiness probe against a fixed URL.

    Parameters
    ----------
    url:
        Endpoint to GET.
    request_timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport for dependency injection (testing).
    """

    def __init__(
        self,
        url: str,
        request_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._request_timeout = request_timeout
        self._transport = transport

    async def check(self) -> bool:
        """Return True if the endpoint answered with a 2xx status."""
        try:
            async with httpx.AsyncClient(
                timeout=self._request_timeout, transport=self._transport
            ) as client:
                resp = await client.get(self.url)
                return resp.is_success
        except (httpx.HTTPError, OSError) as exc:
            logger.debug("Health probe %s failed: %s", self.url, exc)
            return False


async def wait_until_healthy(
    probe: HealthProbe,
    policy: RetryPolicy,
    on_attempt: Callable[[int, bool], None] | None = None,
) -> int:
    """Poll *probe* until it succeeds or *policy* runs out of budget.

    Parameters
    ----------
    probe:
        The probe to call.
    policy:
        Interval and wall-clock budget.
    on_attempt:
        Optional callback invoked with ``(attempt_number, healthy)`` after
        every probe, used by the CLI to draw progress.

    Returns
    -------
    int
        The number of attempts it took to see a healthy response.

    Raises
    ------
    HealthCheckTimeout
        If no probe succeeded before the budget was exhausted.
    """
    start_time = time.monotonic()
    attempts = 0

    while True:
        attempts += 1
        healthy = await probe.check()
        if on_attempt is not None:
            on_attempt(attempts, healthy)
        if healthy:
            logger.info("Health check passed after %d attempt(s)", attempts)
            return attempts

        elapsed = time.monotonic() - start_time
        if elapsed + policy.interval > policy.max_wait:
            logger.warning(
                "Health check timed out for %s after %.1fs (%d attempts)",
                probe.url,
                elapsed,
                attempts,
            )
            raise HealthCheckTimeout(probe.url, attempts, elapsed)

        await asyncio.sleep(policy.interval)
