"""Runtime state objects shared by the supervisor and orchestrator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

OutputObserver = Callable[[str, str], None]
ExitObserver = Callable[[Optional[int]], None]


class StartupState(str, Enum):
    IDLE = "idle"
    STATIC_SERVER_STARTING = "static_server_starting"
    BACKEND_STARTING = "backend_starting"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StartupState.READY, StartupState.FAILED)


class ProbeFailure(str, Enum):
    STATUS = "status"
    CONNECTION = "connection"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class HealthProbeResult:
    """Outcome of a single readiness probe."""

    ok: bool
    status: Optional[int] = None
    failure: Optional[ProbeFailure] = None
    reason: str = ""

    @classmethod
    def success(cls, status: int = 200) -> HealthProbeResult:
        return cls(ok=True, status=status)

    @classmethod
    def failed(
        cls, failure: ProbeFailure, reason: str, status: Optional[int] = None
    ) -> HealthProbeResult:
        return cls(ok=False, status=status, failure=failure, reason=reason)


@dataclass(frozen=True)
class LaunchPlan:
    """Command line and working directory for one backend start."""

    command: str
    args: list[str]
    cwd: Path
    node_modules: Path
    entry_point: Path


@dataclass
class ServerProcessHandle:
    """The supervised backend process and the observers bound to it."""

    process: asyncio.subprocess.Process
    output_observers: list[OutputObserver] = field(default_factory=list)
    exit_observers: list[ExitObserver] = field(default_factory=list)
    exit_code: Optional[int] = None
    reader_tasks: list[asyncio.Task] = field(default_factory=list)
    exited: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return not self.exited.is_set()
