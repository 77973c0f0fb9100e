"""Tests for the health-endpoint readiness gate."""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from automaker_desktop.exceptions import ReadinessTimeoutError
from automaker_desktop.models import HealthProbeResult, ProbeFailure
from automaker_desktop.readiness import ReadinessGate, http_probe
from tests.fixtures.fakes import FakeClock, SequenceProbe

URL = "http://localhost:3008/api/health"


def test_ready_after_five_failures_takes_six_attempts():
    clock = FakeClock()
    probe = SequenceProbe(failures=5)
    gate = ReadinessGate(probe=probe, sleep=clock.sleep)

    result = asyncio.run(gate.wait_until_ready(URL, max_attempts=30, interval=0.5))

    assert result.ok
    assert probe.calls == 6
    assert gate.attempts == 6
    assert clock.now >= 5 * 0.5
    assert clock.sleeps == [0.5] * 5


def test_never_healthy_raises_timeout_after_budget():
    clock = FakeClock()
    probe = SequenceProbe(failures=10_000)
    gate = ReadinessGate(probe=probe, sleep=clock.sleep)

    with pytest.raises(ReadinessTimeoutError) as excinfo:
        asyncio.run(gate.wait_until_ready(URL, max_attempts=30, interval=0.5))

    assert isinstance(excinfo.value, TimeoutError)
    assert "Connection refused" in str(excinfo.value)
    assert probe.calls == 30
    assert len(clock.sleeps) == 29


def test_immediate_success_does_not_sleep():
    clock = FakeClock()
    gate = ReadinessGate(probe=SequenceProbe(failures=0), sleep=clock.sleep)

    asyncio.run(gate.wait_until_ready(URL, max_attempts=3, interval=0.5))
    assert clock.sleeps == []


def test_slow_probe_counts_as_failed_attempt_not_whole_budget():
    calls = []

    async def probe(url, timeout):
        calls.append(url)
        if len(calls) == 1:
            await asyncio.sleep(5)
        return HealthProbeResult.success()

    clock = FakeClock()
    gate = ReadinessGate(probe=probe, sleep=clock.sleep)
    result = asyncio.run(
        gate.wait_until_ready(URL, max_attempts=3, interval=0.5, probe_timeout=0.05)
    )

    assert result.ok
    assert len(calls) == 2


def test_rejects_zero_attempts():
    gate = ReadinessGate(probe=SequenceProbe(failures=0))
    with pytest.raises(ValueError):
        asyncio.run(gate.wait_until_ready(URL, max_attempts=0))


class TestHttpProbe:
    @staticmethod
    async def _with_server(path):
        async def healthy(request):
            return web.json_response({"status": "ok"})

        async def starting(request):
            return web.Response(status=503, text="starting")

        app = web.Application()
        app.router.add_get("/api/health", healthy)
        app.router.add_get("/api/starting", starting)
        server = TestServer(app)
        await server.start_server()
        try:
            return await http_probe(str(server.make_url(path)), timeout=1.0)
        finally:
            await server.close()

    def test_200_is_success(self):
        result = asyncio.run(self._with_server("/api/health"))
        assert result.ok
        assert result.status == 200

    def test_non_200_is_status_failure(self):
        result = asyncio.run(self._with_server("/api/starting"))
        assert not result.ok
        assert result.failure is ProbeFailure.STATUS
        assert result.status == 503
        assert result.reason == "Status: 503"

    def test_connection_refused_is_connection_failure(self):
        url = f"http://127.0.0.1:{unused_port()}/api/health"
        result = asyncio.run(http_probe(url, timeout=1.0))
        assert not result.ok
        assert result.failure is ProbeFailure.CONNECTION

    def test_gate_against_real_server_eventually_ready(self):
        hits = []

        async def health(request):
            hits.append(1)
            if len(hits) < 3:
                return web.Response(status=503)
            return web.Response(text="ok")

        async def scenario():
            app = web.Application()
            app.router.add_get("/api/health", health)
            server = TestServer(app)
            await server.start_server()
            try:
                gate = ReadinessGate()
                await gate.wait_until_ready(
                    str(server.make_url("/api/health")), max_attempts=5, interval=0.01
                )
                return gate.attempts
            finally:
                await server.close()

        assert asyncio.run(scenario()) == 3
