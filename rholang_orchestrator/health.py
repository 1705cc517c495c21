"""Validator health checks.

``AvailabilityProbe`` issues one ``GET /status`` against a validator
node's HTTP port. ``ReadinessWaiter`` repeats that probe on a fixed
interval until it succeeds or the attempt budget runs out.

Failure is never an exception here: connection errors, timeouts and
non-200 responses all come back as ``reachable=False``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from rholang_orchestrator.constants import (
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_READY_ATTEMPTS,
    DEFAULT_READY_INTERVAL,
    HEALTH_CHECK_PATH,
    utcnow,
)
from rholang_orchestrator.protocols import Prober
from rholang_orchestrator.utils.logger import logger


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one liveness check."""

    reachable: bool
    timestamp: datetime = field(default_factory=utcnow)
    detail: str | None = None

    def __bool__(self) -> bool:
        return self.reachable


class AvailabilityProbe:
    """Single bounded-timeout HTTP liveness check."""

    def __init__(
        self,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        path: str = HEALTH_CHECK_PATH,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            timeout: Upper bound in seconds for the whole request.
            path: Health endpoint path.
            transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        """
        self._timeout = timeout
        self._path = path
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._timeout

    async def probe(self, host: str, port: int, timeout: float | None = None) -> ProbeResult:
        """Check whether ``http://host:port/status`` answers 200 in time."""
        limit = self._timeout if timeout is None else timeout
        url = f"http://{host}:{port}{self._path}"
        try:
            async with asyncio.timeout(limit):
                async with httpx.AsyncClient(
                    timeout=limit, transport=self._transport
                ) as client:
                    response = await client.get(url)
        except TimeoutError:
            return ProbeResult(False, detail=f"timed out after {limit:.1f}s")
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            logger.debug(f"Probe {url} failed: {exc!r}")
            return ProbeResult(False, detail=str(exc) or type(exc).__name__)

        if response.status_code != 200:
            return ProbeResult(False, detail=f"HTTP {response.status_code}")
        return ProbeResult(True)


class ReadinessWaiter:
    """Polls a ``Prober`` sequentially until it succeeds or gives up.

    Worst-case latency is roughly ``max_attempts * (interval + probe timeout)``.
    A ``cancel`` event aborts the wait between (not during) probes.
    """

    def __init__(
        self,
        probe: Prober,
        max_attempts: int = DEFAULT_READY_ATTEMPTS,
        interval: float = DEFAULT_READY_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self._probe = probe
        self._max_attempts = max_attempts
        self._interval = interval
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def interval(self) -> float:
        return self._interval

    async def wait_until_ready(
        self,
        host: str,
        port: int,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        """Probe until ready.

        Returns:
            True on the first successful probe; False once attempts are
            exhausted or *cancel* is set.
        """
        for attempt in range(1, self._max_attempts + 1):
            if cancel is not None and cancel.is_set():
                logger.info(f"Readiness wait for {host}:{port} cancelled after {attempt - 1} attempts")
                return False

            result = await self._probe.probe(host, port)
            if result.reachable:
                logger.debug(f"{host}:{port} ready after {attempt} attempt(s)")
                return True

            if attempt < self._max_attempts:
                if await self._pause(cancel):
                    logger.info(f"Readiness wait for {host}:{port} cancelled after {attempt} attempts")
                    return False

        logger.info(f"{host}:{port} not ready after {self._max_attempts} attempts")
        return False

    async def _pause(self, cancel: asyncio.Event | None) -> bool:
        """Sleep one interval. Returns True if cancelled meanwhile."""
        if cancel is None:
            await self._sleep(self._interval)
            return False
        try:
            async with asyncio.timeout(self._interval):
                await cancel.wait()
        except TimeoutError:
            return False
        return True
