"""Post-launch readiness verification for the supervised service.

A returned `start()` call only means the process launched; the HTTP listener
may not be bound yet. `ReadinessChecker` waits a short grace interval, then
issues a single bounded probe. A failed probe fails the start attempt and the
caller decides whether to run another full start cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, Union

import aiohttp

from svc_keeper.runtime_config import (
    normalize_probe_timeout_s,
    normalize_startup_grace_s,
)
from svc_keeper.settings_store import DEFAULT_PROBE_URL

logger = logging.getLogger(__name__)


class ProbeStatusError(RuntimeError):
    """Probe endpoint answered with a non-2xx status."""

    def __init__(self, status: int) -> None:
        super().__init__(f"readiness probe returned HTTP {status}")
        self.status = status


class ReadinessProbe(Protocol):
    """One network call confirming the service accepts requests.

    Implementations raise `asyncio.TimeoutError` when `timeout_s` elapses and
    any other exception for a failed probe.
    """

    async def __call__(self, timeout_s: float) -> None: ...


class HttpReadinessProbe:
    """GET a fixed loopback URL; any 2xx response counts as ready."""

    def __init__(self, url: str = DEFAULT_PROBE_URL) -> None:
        self.url = url

    async def __call__(self, timeout_s: float) -> None:
        timeout = aiohttp.ClientTimeout(total=timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(self.url) as response:
                if not 200 <= response.status < 300:
                    raise ProbeStatusError(response.status)


@dataclass(frozen=True)
class Ready:
    """The probe answered successfully."""

    elapsed_s: float


@dataclass(frozen=True)
class ReadinessTimeout:
    """The probe did not answer within its time budget."""

    timeout_s: float


@dataclass(frozen=True)
class ProbeFailed:
    """The probe completed with an error."""

    detail: str


ReadinessResult = Union[Ready, ReadinessTimeout, ProbeFailed]


class ReadinessChecker:
    """Grace wait followed by exactly one bounded readiness probe."""

    def __init__(
        self,
        probe: ReadinessProbe,
        *,
        grace_s: float = 0.5,
        probe_timeout_s: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._probe = probe
        self._grace_s = normalize_startup_grace_s(grace_s)
        self._probe_timeout_s = normalize_probe_timeout_s(probe_timeout_s)
        self._sleep = sleep

    async def await_ready(self, deadline_s: float | None = None) -> ReadinessResult:
        """Return readiness outcome; never raises for probe failures.

        `deadline_s` bounds the whole wait (grace plus probe) when given.
        """
        started = time.monotonic()
        grace_s = self._grace_s
        if deadline_s is not None:
            grace_s = min(grace_s, max(0.0, deadline_s))
        if grace_s > 0:
            await self._sleep(grace_s)
        timeout_s = self._probe_timeout_s
        if deadline_s is not None:
            remaining = deadline_s - (time.monotonic() - started)
            if remaining <= 0:
                return ReadinessTimeout(0.0)
            timeout_s = min(timeout_s, remaining)
        try:
            await asyncio.wait_for(self._probe(timeout_s), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Readiness probe timed out after %.2fs", timeout_s)
            return ReadinessTimeout(timeout_s)
        except Exception as exc:
            logger.warning("Readiness probe failed: %s", exc)
            return ProbeFailed(str(exc) or exc.__class__.__name__)
        return Ready(time.monotonic() - started)
