"""Startup / shutdown sequencing for the desktop shell.

Startup is strictly sequential: static server (packaged builds only), then
the backend process, then the readiness gate, and only then the UI. The
window must never load against a backend that is still binding its port.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Mapping, Optional

from automaker_desktop.config import Config
from automaker_desktop.environment import build_backend_environment
from automaker_desktop.exceptions import SpawnError
from automaker_desktop.launch_plan import build_launch_plan
from automaker_desktop.models import ServerProcessHandle, StartupState
from automaker_desktop.readiness import ReadinessGate
from automaker_desktop.runtime_resolver import RuntimeResolver
from automaker_desktop.static_server import StaticAssetServer, StaticServerHandle
from automaker_desktop.supervisor import ChildProcessSupervisor

logger = logging.getLogger(__name__)

FATAL_HINT = "Please ensure Node.js is installed and accessible."

_ALLOWED = {
    StartupState.IDLE: {StartupState.STATIC_SERVER_STARTING, StartupState.BACKEND_STARTING},
    StartupState.STATIC_SERVER_STARTING: {StartupState.BACKEND_STARTING},
    StartupState.BACKEND_STARTING: {StartupState.AWAITING_READY},
    StartupState.AWAITING_READY: {StartupState.READY},
    StartupState.READY: set(),
    StartupState.FAILED: set(),
}


def format_fatal_message(error: BaseException) -> str:
    return f"Error: {error}\n\n{FATAL_HINT}"


class StartupOrchestrator:
    """Drive the startup state machine and own every resource it creates.

    ``on_ready`` is called exactly once when the backend is healthy.
    ``on_fatal`` is called exactly once with the error when startup fails;
    the caller is expected to show it and exit the process.
    """

    def __init__(
        self,
        config: Config,
        resolver: Optional[RuntimeResolver] = None,
        supervisor: Optional[ChildProcessSupervisor] = None,
        gate: Optional[ReadinessGate] = None,
        static_server: Optional[StaticAssetServer] = None,
        on_ready: Optional[Callable[[], None]] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.resolver = resolver or RuntimeResolver()
        self.supervisor = supervisor or ChildProcessSupervisor(
            stop_timeout=config.backend.stop_timeout
        )
        self.gate = gate or ReadinessGate()
        self.static_server = static_server or StaticAssetServer(config.static_root)
        self.on_ready = on_ready
        self.on_fatal = on_fatal
        self.environ = environ

        self.state = StartupState.IDLE
        self.history: list[StartupState] = [StartupState.IDLE]
        self.error: Optional[BaseException] = None
        self.process_handle: Optional[ServerProcessHandle] = None
        self.static_handle: Optional[StaticServerHandle] = None
        self.startup_task: Optional[asyncio.Task] = None
        self.shutdown = ShutdownCoordinator(self)
        self._ready_signalled = False

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: StartupState) -> None:
        if new_state is not StartupState.FAILED and new_state not in _ALLOWED[self.state]:
            raise RuntimeError(f"Illegal startup transition {self.state.value} -> {new_state.value}")
        if self.state.is_terminal:
            raise RuntimeError(f"Startup already finished in state {self.state.value}")
        logger.debug("Startup state %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def _on_backend_exit(self, code: Optional[int]) -> None:
        self.process_handle = None
        if self.state is StartupState.READY:
            logger.error("Backend exited unexpectedly with code %s", code)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def launch(self) -> asyncio.Task:
        """Run ``start()`` as a task that shutdown can cancel."""
        if self.startup_task is None:
            self.startup_task = asyncio.create_task(self.start())
        return self.startup_task

    async def start(self) -> StartupState:
        if self.state is not StartupState.IDLE:
            raise RuntimeError(f"Startup already ran (state {self.state.value})")

        try:
            if self.config.serve_static:
                self._transition(StartupState.STATIC_SERVER_STARTING)
                self.static_handle = await self.static_server.listen(self.config.static.port)

            self._transition(StartupState.BACKEND_STARTING)
            await self._start_backend()

            self._transition(StartupState.AWAITING_READY)
            await self._await_ready()

            self._transition(StartupState.READY)
        except asyncio.CancelledError:
            logger.info("Startup cancelled in state %s", self.state.value)
            if not self.state.is_terminal:
                self._transition(StartupState.FAILED)
            raise
        except Exception as exc:
            await self._fail(exc)
            raise

        self._signal_ready()
        return self.state

    async def _start_backend(self) -> None:
        logger.info("Starting backend server...")
        plan = await build_launch_plan(self.config, self.resolver)
        env = build_backend_environment(self.config, plan, base=self.environ)
        self.process_handle = await self.supervisor.start(
            plan.command,
            plan.args,
            env,
            plan.cwd,
            on_exit=self._on_backend_exit,
        )

    async def _await_ready(self) -> None:
        """Poll health, failing early if the backend dies while we wait."""
        readiness = self.config.readiness
        ready = asyncio.create_task(
            self.gate.wait_until_ready(
                self.config.health_url,
                max_attempts=readiness.max_attempts,
                interval=readiness.interval,
                probe_timeout=readiness.probe_timeout,
            )
        )
        handle = self.process_handle
        if handle is None:
            ready.cancel()
            raise SpawnError("Backend exited before readiness checks began")

        exited = asyncio.create_task(handle.exited.wait())
        try:
            done, _ = await asyncio.wait({ready, exited}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (ready, exited):
                if not task.done():
                    task.cancel()

        if ready in done:
            ready.result()
            return
        raise SpawnError(f"Backend exited with code {handle.exit_code} before becoming ready")

    def _signal_ready(self) -> None:
        if self._ready_signalled:
            return
        self._ready_signalled = True
        logger.info("Backend ready - creating window")
        if self.on_ready is not None:
            self.on_ready()

    async def _fail(self, error: BaseException) -> None:
        logger.error("Failed to start: %s", error)
        self.error = error
        self._transition(StartupState.FAILED)
        await self.shutdown.teardown()
        if self.on_fatal is not None:
            try:
                self.on_fatal(error)
            except Exception:
                logger.exception("Fatal error handler failed")


class ShutdownCoordinator:
    """Tear down whatever startup managed to create.

    Safe to call any number of times and from any startup state; each
    resource is released in its own guarded step and errors are logged.
    """

    def __init__(self, orchestrator: StartupOrchestrator):
        self.orchestrator = orchestrator
        self.calls = 0

    async def __call__(self) -> None:
        await self.shutdown()

    async def shutdown(self) -> None:
        self.calls += 1
        await self._cancel_startup()
        await self.teardown()

    async def _cancel_startup(self) -> None:
        task = self.orchestrator.startup_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        logger.info("Cancelling in-flight startup")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug("Startup task ended with %s during shutdown", exc)

    async def teardown(self) -> None:
        orch = self.orchestrator

        handle = orch.process_handle
        orch.process_handle = None
        if handle is not None or orch.supervisor.handle is not None:
            try:
                logger.info("Stopping server...")
                await orch.supervisor.stop(handle)
            except Exception as exc:
                logger.warning("Error stopping server: %s", exc)

        static_handle = orch.static_handle
        orch.static_handle = None
        if static_handle is not None:
            try:
                logger.info("Stopping static server...")
                await orch.static_server.close(static_handle)
            except Exception as exc:
                logger.warning("Error stopping static server: %s", exc)
