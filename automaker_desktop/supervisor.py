"""Spawn the backend server and watch it until it exits."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from automaker_desktop.exceptions import SpawnError, SupervisorBusyError
from automaker_desktop.models import ExitObserver, OutputObserver, ServerProcessHandle

logger = logging.getLogger(__name__)
backend_log = logging.getLogger("automaker_desktop.backend")

STDOUT = "stdout"
STDERR = "stderr"
READ_CHUNK = 65536


def log_output(stream: str, line: str) -> None:
    """Default sink: backend output goes straight into the launcher log."""
    if stream == STDERR:
        backend_log.warning("[Server Error] %s", line)
    else:
        backend_log.info("[Server] %s", line)


class ChildProcessSupervisor:
    """Own at most one backend process at a time.

    Output observers and exit observers are attached when the process is
    spawned and dropped together with its handle.
    """

    def __init__(self, stop_timeout: float = 5.0):
        self.stop_timeout = stop_timeout
        self.last_exit_code: Optional[int] = None
        self._handle: Optional[ServerProcessHandle] = None
        self._watcher: Optional[asyncio.Task] = None

    @property
    def handle(self) -> Optional[ServerProcessHandle]:
        return self._handle

    async def start(
        self,
        executable: str,
        args: Sequence[str],
        environment: dict[str, str],
        working_directory: Path,
        on_output: Optional[OutputObserver] = None,
        on_exit: Optional[ExitObserver] = None,
    ) -> ServerProcessHandle:
        if self._handle is not None and self._handle.running:
            raise SupervisorBusyError(
                f"Backend already running (pid {self._handle.pid})"
            )

        logger.info("Starting backend: %s %s", executable, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=str(working_directory),
                env=environment,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._handle = None
            logger.error("Failed to start server process: %s", exc)
            raise SpawnError(f"Failed to start {executable}: {exc}") from exc

        handle = ServerProcessHandle(process=process)
        handle.output_observers.append(log_output)
        if on_output is not None:
            handle.output_observers.append(on_output)
        if on_exit is not None:
            handle.exit_observers.append(on_exit)

        handle.reader_tasks = [
            asyncio.create_task(self._pump(handle, process.stdout, STDOUT)),
            asyncio.create_task(self._pump(handle, process.stderr, STDERR)),
        ]
        self._handle = handle
        self._watcher = asyncio.create_task(self._watch(handle))
        logger.info("Backend started (pid %d)", process.pid)
        return handle

    async def _pump(
        self, handle: ServerProcessHandle, stream: asyncio.StreamReader, name: str
    ) -> None:
        # Chunked reads: readline() gives up on lines over the 64 KiB stream limit
        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for raw in lines:
                self._emit(handle, name, raw)
        if pending:
            self._emit(handle, name, pending)

    @staticmethod
    def _emit(handle: ServerProcessHandle, name: str, raw: bytes) -> None:
        line = raw.decode(errors="replace").rstrip()
        if not line:
            return
        for observer in list(handle.output_observers):
            try:
                observer(name, line)
            except Exception:
                logger.exception("Output observer failed")

    async def _watch(self, handle: ServerProcessHandle) -> None:
        code = await handle.process.wait()
        # Grandchildren may hold the pipes open; don't wait on them forever.
        await asyncio.wait(handle.reader_tasks, timeout=1.0)
        for task in handle.reader_tasks:
            task.cancel()

        handle.exit_code = code
        self.last_exit_code = code
        handle.exited.set()
        logger.info("[Server] Process exited with code %s", code)

        for observer in list(handle.exit_observers):
            try:
                observer(code)
            except Exception:
                logger.exception("Exit observer failed")
        handle.output_observers.clear()
        handle.exit_observers.clear()
        if self._handle is handle:
            self._handle = None

    async def wait(self) -> Optional[int]:
        """Block until the current backend exits; return its exit code."""
        handle = self._handle
        if handle is None:
            return self.last_exit_code
        await handle.exited.wait()
        return handle.exit_code

    async def stop(self, handle: Optional[ServerProcessHandle] = None) -> None:
        """Terminate the backend; a no-op when nothing is running."""
        handle = handle or self._handle
        if handle is None or not handle.running:
            return

        logger.info("Stopping server (pid %d)...", handle.pid)
        try:
            handle.process.terminate()
        except ProcessLookupError:
            pass

        try:
            await asyncio.wait_for(handle.exited.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Server did not exit within %.1fs, killing", self.stop_timeout
            )
            try:
                handle.process.kill()
            except ProcessLookupError:
                pass
            await handle.exited.wait()

        if self._handle is handle:
            self._handle = None
