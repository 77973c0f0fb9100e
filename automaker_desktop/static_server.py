"""Serve the pre-built single-page app for packaged builds.

Deliberately minimal: no caching headers, no range requests, no directory
listings. Any route that does not map to a file falls back to the app shell
(``index.html``) so client-side routing can take over.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from aiohttp import web

from automaker_desktop.exceptions import (
    AutomakerError,
    PortInUseError,
    StaticAssetsMissingError,
)

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".html": "text/html",
    ".js": "application/javascript",
    ".css": "text/css",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".eot": "application/vnd.ms-fontobject",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def resolve_request_path(root: Path, request_path: str) -> Path:
    """Map a request path onto a file under ``root``.

    Unknown routes, directories and anything escaping ``root`` resolve to
    the root ``index.html``.
    """
    index = root / "index.html"
    path = unquote(request_path.split("?", 1)[0])

    if path.endswith("/"):
        path += "index.html"
    elif not posixpath.splitext(path)[1]:
        path += ".html"

    relative = posixpath.normpath("/" + path.lstrip("/")).lstrip("/")
    target = root / relative
    try:
        target.resolve().relative_to(root.resolve())
        found = target.is_file()
    except (ValueError, OSError):
        # Outside root, or the stat itself failed (e.g. name too long)
        return index

    return target if found else index


@dataclass
class StaticServerHandle:
    runner: web.AppRunner
    root: Path
    port: int

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"


class StaticAssetServer:
    """Tiny HTTP server for one static build directory."""

    def __init__(self, root: Path, host: str = "localhost"):
        self.root = Path(root)
        self.host = host
        self._handle: Optional[StaticServerHandle] = None

    @property
    def handle(self) -> Optional[StaticServerHandle]:
        return self._handle

    def verify(self) -> None:
        """Fail fast when the static build is missing."""
        logger.info("Static server path: %s", self.root)
        if not self.root.is_dir():
            raise StaticAssetsMissingError(f"Static files not found at: {self.root}")
        index = self.root / "index.html"
        if not index.is_file():
            raise StaticAssetsMissingError(f"index.html not found at: {index}")

    def make_app(self) -> web.Application:
        app = web.Application()
        # Every verb is treated as a GET-like lookup
        app.router.add_route("*", "/{tail:.*}", self.handle_request)
        return app

    async def handle_request(self, request: web.Request) -> web.Response:
        file_path = resolve_request_path(self.root, request.raw_path)
        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(None, file_path.read_bytes)
        except OSError as exc:
            logger.error("[Static Server] Error reading file %s: %s", file_path, exc)
            return web.Response(status=500, text="Server Error")

        return web.Response(
            status=200, body=content, content_type=content_type_for(file_path)
        )

    async def listen(self, port: int) -> StaticServerHandle:
        self.verify()
        logger.info("Static files verified, starting server...")

        runner = web.AppRunner(self.make_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            if exc.errno in _ADDR_IN_USE:
                raise PortInUseError(f"Static server port {port} is already in use") from exc
            raise AutomakerError(f"Static server failed to listen on {port}: {exc}") from exc

        bound_port = runner.addresses[0][1] if runner.addresses else port
        self._handle = StaticServerHandle(runner=runner, root=self.root, port=bound_port)
        logger.info("Static server running at %s", self._handle.url)
        return self._handle

    async def close(self, handle: Optional[StaticServerHandle] = None) -> None:
        handle = handle or self._handle
        if handle is None:
            return
        if self._handle is handle:
            self._handle = None
        await handle.runner.cleanup()
        logger.info("Static server on port %d closed", handle.port)
