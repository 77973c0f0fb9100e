"""Native window shell around the orchestrator (pywebview).

The orchestrator runs on its own asyncio loop in a background thread; the
GUI toolkit keeps the main thread. A loading page is shown until the
backend is healthy, then the window navigates to the UI. A failed startup
replaces the loading page with a single error page and the process exits
non-zero once it is closed.
"""

from __future__ import annotations

import asyncio
import html
import logging
import os
import subprocess
import sys
import tempfile
import threading
import webbrowser
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Coroutine, Optional

from automaker_desktop.config import Config
from automaker_desktop.environment import default_workspace_dir
from automaker_desktop.orchestrator import StartupOrchestrator, format_fatal_message

logger = logging.getLogger(__name__)

LOADING_HTML = (
    "<body style='background:#0a0a0a;color:#e6edf3;"
    "font-family:-apple-system,sans-serif;display:flex;"
    "align-items:center;justify-content:center;height:100vh;"
    "font-size:18px;gap:12px'>Starting Automaker…</body>"
)

_ERROR_HTML = """<!DOCTYPE html>
<html lang="en"><head><meta charset="utf-8"><style>
*{{box-sizing:border-box;margin:0;padding:0}}
body{{background:#0a0a0a;color:#e6edf3;
     font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',sans-serif;
     display:flex;align-items:center;justify-content:center;
     min-height:100vh;padding:40px}}
.card{{max-width:560px;width:100%;background:#161b22;
      border:1px solid #21262d;border-radius:16px;padding:40px}}
h1{{font-size:20px;font-weight:800;color:#f85149;margin-bottom:16px}}
pre{{font-size:13px;color:#c9d1d9;line-height:1.6;white-space:pre-wrap}}
</style></head><body>
<div class="card"><h1>{title}</h1><pre>{message}</pre></div>
</body></html>"""


def render_error_page(title: str, error: BaseException) -> str:
    return _ERROR_HTML.format(
        title=html.escape(title), message=html.escape(format_fatal_message(error))
    )


def get_icon_path(resources: Path, platform: str = sys.platform) -> Optional[str]:
    icon_file = "icon.ico" if platform == "win32" else "logo_larger.png"
    icon_path = resources / "public" / icon_file
    if not icon_path.is_file():
        logger.warning("Icon not found at: %s", icon_path)
        return None
    return str(icon_path)


def open_with_system(target: str) -> None:
    if sys.platform == "win32":
        os.startfile(target)  # noqa: S606
    elif sys.platform == "darwin":
        subprocess.Popen(["open", target])
    else:
        subprocess.Popen(["xdg-open", target])


class LoopThread:
    """An asyncio event loop running forever in a daemon thread."""

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self.loop.run_forever, name="automaker-core", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        if not self.loop.is_running():
            self.loop.close()


class DesktopApi:
    """Native features exposed to the page as ``window.pywebview.api``."""

    def __init__(self, config: Config):
        self.config = config
        self.window = None

    def _dialog(self, kind, **kwargs):
        if self.window is None:
            return None
        return self.window.create_file_dialog(kind, **kwargs)

    def open_directory(self) -> dict:
        import webview  # noqa: PLC0415

        paths = self._dialog(webview.FileDialog.FOLDER)
        return {"canceled": not paths, "filePaths": list(paths or [])}

    def open_file(self, options: Optional[dict] = None) -> dict:
        import webview  # noqa: PLC0415

        options = options or {}
        paths = self._dialog(
            webview.FileDialog.OPEN,
            directory=options.get("defaultPath", ""),
            allow_multiple=bool(options.get("multiple", False)),
            file_types=tuple(options.get("fileTypes", ())),
        )
        return {"canceled": not paths, "filePaths": list(paths or [])}

    def save_file(self, options: Optional[dict] = None) -> dict:
        import webview  # noqa: PLC0415

        options = options or {}
        result = self._dialog(
            webview.FileDialog.SAVE,
            directory=options.get("defaultPath", ""),
            save_filename=options.get("defaultName", ""),
        )
        if isinstance(result, (list, tuple)):
            result = result[0] if result else None
        return {"canceled": not result, "filePath": result}

    def open_external(self, url: str) -> dict:
        try:
            webbrowser.open(url)
            return {"success": True}
        except webbrowser.Error as exc:
            return {"success": False, "error": str(exc)}

    def open_path(self, file_path: str) -> dict:
        try:
            open_with_system(file_path)
            return {"success": True}
        except OSError as exc:
            return {"success": False, "error": str(exc)}

    def get_path(self, name: str) -> Optional[str]:
        paths = {
            "home": Path.home(),
            "documents": Path.home() / "Documents",
            "userData": self.config.data_path,
            "logs": self.config.log_path,
            "temp": Path(tempfile.gettempdir()),
            "workspace": default_workspace_dir(),
        }
        path = paths.get(name)
        return str(path) if path is not None else None

    def get_version(self) -> str:
        return self.config.app.version

    def is_packaged(self) -> bool:
        return self.config.is_packaged

    def ping(self) -> str:
        return "pong"

    def get_server_url(self) -> str:
        return self.config.backend_url


class DesktopShell:
    """Window lifecycle glued to the startup orchestrator."""

    def __init__(self, config: Config):
        self.config = config
        self.core = LoopThread()
        self.api = DesktopApi(config)
        self.window = None
        self.exit_code = 0
        self._shutdown_lock = threading.Lock()
        self._shut_down = False
        self.orchestrator = StartupOrchestrator(
            config, on_ready=self._on_ready, on_fatal=self._on_fatal
        )

    def _on_ready(self) -> None:
        logger.info("Loading UI from %s", self.config.ui_url)
        self.window.title = self.config.window.title
        self.window.load_url(self.config.ui_url)

    def _on_fatal(self, error: BaseException) -> None:
        self.exit_code = 1
        title = f"{self.config.app.name} Failed to Start"
        self.window.title = title
        self.window.load_html(render_error_page(title, error))

    def _run_startup(self) -> None:
        """Runs on pywebview's worker thread once the GUI loop is up."""
        future = self.core.submit(self._launch())
        try:
            future.result()
        except Exception as exc:
            # Already reported through _on_fatal
            logger.debug("Startup ended with %s", exc)

    async def _launch(self):
        return await self.orchestrator.launch()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shut_down:
                return
            self._shut_down = True

        timeout = self.config.backend.stop_timeout + 5
        try:
            self.core.submit(self.orchestrator.shutdown.shutdown()).result(timeout=timeout)
        except Exception as exc:
            logger.warning("Shutdown did not complete cleanly: %s", exc)

    def run(self) -> int:
        import webview  # noqa: PLC0415  (deferred so headless use needs no GUI)

        webview.settings["OPEN_EXTERNAL_LINKS_IN_BROWSER"] = True
        self.core.start()

        win = self.config.window
        self.window = webview.create_window(
            self.config.app.name,
            html=LOADING_HTML,
            width=win.width,
            height=win.height,
            min_size=(win.min_width, win.min_height),
            background_color=win.background_color,
            js_api=self.api,
        )
        self.api.window = self.window
        self.window.events.closed += self.shutdown

        webview.start(
            self._run_startup,
            debug=win.open_devtools,
            icon=get_icon_path(self.config.resources_path),
        )

        logger.info("Webview closed - exiting")
        self.shutdown()
        self.core.stop()
        return self.exit_code


async def run_headless(config: Config, stop: Optional[asyncio.Event] = None) -> int:
    """Start everything without a window and wait for a stop request.

    Returns 1 when startup fails, otherwise 0 after a clean shutdown. The
    wait also ends if the backend exits on its own.
    """
    stop = stop or asyncio.Event()
    orchestrator = StartupOrchestrator(config)

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        import signal  # noqa: PLC0415

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

    try:
        await orchestrator.launch()
    except Exception as exc:
        logger.debug("Headless startup failed: %s", exc)
        return 1

    stopper = asyncio.create_task(stop.wait())
    backend = asyncio.create_task(orchestrator.supervisor.wait())
    try:
        await asyncio.wait({stopper, backend}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (stopper, backend):
            task.cancel()
        await orchestrator.shutdown.shutdown()
    return 0
