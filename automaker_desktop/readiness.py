"""Poll the backend health endpoint until it answers 200."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import aiohttp

from automaker_desktop.exceptions import ReadinessTimeoutError
from automaker_desktop.models import HealthProbeResult, ProbeFailure

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_INTERVAL = 0.5
DEFAULT_PROBE_TIMEOUT = 1.0

Probe = Callable[[str, float], Awaitable[HealthProbeResult]]
Sleep = Callable[[float], Awaitable[None]]


async def http_probe(url: str, timeout: float) -> HealthProbeResult:
    """Issue one GET against ``url``; every failure is folded into the result."""
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=timeout)
            ) as resp:
                if resp.status == 200:
                    return HealthProbeResult.success(resp.status)
                return HealthProbeResult.failed(
                    ProbeFailure.STATUS, f"Status: {resp.status}", status=resp.status
                )
    except asyncio.TimeoutError:
        return HealthProbeResult.failed(ProbeFailure.TIMEOUT, "Timeout")
    except aiohttp.ClientError as exc:
        return HealthProbeResult.failed(ProbeFailure.CONNECTION, str(exc) or type(exc).__name__)


class ReadinessGate:
    """Bounded retry loop in front of the health endpoint.

    The probe and the sleep primitive are injectable so tests can drive the
    loop without a server or wall-clock delays.
    """

    def __init__(self, probe: Probe = http_probe, sleep: Sleep = asyncio.sleep):
        self.probe = probe
        self.sleep = sleep
        self.attempts = 0

    async def wait_until_ready(
        self,
        health_url: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> HealthProbeResult:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.attempts = 0
        last: Optional[HealthProbeResult] = None
        while self.attempts < max_attempts:
            self.attempts += 1
            try:
                last = await asyncio.wait_for(
                    self.probe(health_url, probe_timeout), timeout=probe_timeout
                )
            except asyncio.TimeoutError:
                last = HealthProbeResult.failed(ProbeFailure.TIMEOUT, "Timeout")

            if last.ok:
                logger.info("Server is ready (attempt %d)", self.attempts)
                return last

            logger.debug(
                "Health probe %d/%d failed: %s", self.attempts, max_attempts, last.reason
            )
            if self.attempts < max_attempts:
                await self.sleep(interval)

        raise ReadinessTimeoutError(
            f"Server failed to start: {health_url} not healthy after "
            f"{max_attempts} attempts (last: {last.reason if last else 'n/a'})"
        )
