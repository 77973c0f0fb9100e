"""Test doubles for the orchestrator's collaborators."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Optional

from automaker_desktop.models import HealthProbeResult, ProbeFailure


class FakeProcessHandle:
    def __init__(self, pid: int = 4242):
        self.pid = pid
        self.exit_code: Optional[int] = None
        self.exited = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self.exited.is_set()

    def finish(self, code: int) -> None:
        self.exit_code = code
        self.exited.set()


class FakeSupervisor:
    def __init__(self, fail: Optional[Exception] = None, stop_error: Optional[Exception] = None):
        self.fail = fail
        self.stop_error = stop_error
        self.started: list[dict] = []
        self.stop_calls = 0
        self.handle: Optional[FakeProcessHandle] = None

    async def start(self, executable, args, environment, working_directory,
                    on_output=None, on_exit=None):
        if self.fail is not None:
            raise self.fail
        self.started.append(
            {"executable": executable, "args": list(args), "env": environment,
             "cwd": working_directory}
        )
        self.handle = FakeProcessHandle()
        return self.handle

    async def stop(self, handle=None):
        self.stop_calls += 1
        if self.stop_error is not None:
            raise self.stop_error
        handle = handle or self.handle
        if handle is not None and handle.running:
            handle.finish(-15)
        self.handle = None

    async def wait(self):
        if self.handle is None:
            return None
        await self.handle.exited.wait()
        return self.handle.exit_code


class FakeStaticServer:
    def __init__(self, fail: Optional[Exception] = None):
        self.fail = fail
        self.listened: list[int] = []
        self.closed: list[object] = []

    async def listen(self, port):
        if self.fail is not None:
            raise self.fail
        self.listened.append(port)
        return SimpleNamespace(port=port, url=f"http://localhost:{port}")

    async def close(self, handle=None):
        self.closed.append(handle)


class FakeResolver:
    def __init__(self, node: str = "/opt/node/bin/node"):
        self.node = node
        self.calls = 0

    async def resolve(self) -> str:
        self.calls += 1
        return self.node


class SequenceProbe:
    """Fails ``failures`` times, then answers 200."""

    def __init__(self, failures: int, on_call=None):
        self.failures = failures
        self.calls = 0
        self.on_call = on_call

    async def __call__(self, url: str, timeout: float) -> HealthProbeResult:
        self.calls += 1
        if self.on_call is not None:
            self.on_call(self.calls)
        if self.calls <= self.failures:
            return HealthProbeResult.failed(ProbeFailure.CONNECTION, "Connection refused")
        return HealthProbeResult.success()


class FakeClock:
    """Sleep primitive that advances a virtual clock instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)
