"""Tests for the window shell glue (no GUI is started)."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

from automaker_desktop.config import Config
from automaker_desktop.desktop import (
    DesktopApi,
    DesktopShell,
    get_icon_path,
    render_error_page,
    run_headless,
)
from automaker_desktop.exceptions import SpawnError


def _config(tmp_path, packaged=True):
    return Config(
        app={
            "packaged": packaged,
            "resources_dir": str(tmp_path),
            "data_dir": str(tmp_path / "data"),
            "version": "1.2.3",
        }
    )


def test_error_page_is_escaped():
    page = render_error_page("Automaker Failed to Start", SpawnError("<script>x</script>"))
    assert "&lt;script&gt;" in page
    assert "<script>x" not in page
    assert "Please ensure Node.js is installed and accessible." in page


def test_icon_path_per_platform(tmp_path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "logo_larger.png").write_bytes(b"png")

    assert get_icon_path(tmp_path, "darwin") == str(public / "logo_larger.png")
    assert get_icon_path(tmp_path, "win32") is None

    (public / "icon.ico").write_bytes(b"ico")
    assert get_icon_path(tmp_path, "win32") == str(public / "icon.ico")


class TestDesktopApi:
    def test_simple_queries(self, tmp_path):
        api = DesktopApi(_config(tmp_path))
        assert api.ping() == "pong"
        assert api.get_version() == "1.2.3"
        assert api.is_packaged() is True
        assert api.get_server_url() == "http://localhost:3008"
        assert api.get_path("userData") == str(tmp_path / "data")
        assert api.get_path("logs") == str(tmp_path / "data" / "logs")
        assert api.get_path("bogus") is None

    def test_open_directory_uses_window_dialog(self, tmp_path):
        api = DesktopApi(_config(tmp_path))
        api.window = MagicMock()
        api.window.create_file_dialog.return_value = ("/projects/demo",)

        assert api.open_directory() == {"canceled": False, "filePaths": ["/projects/demo"]}

    def test_cancelled_dialog(self, tmp_path):
        api = DesktopApi(_config(tmp_path))
        api.window = MagicMock()
        api.window.create_file_dialog.return_value = None

        assert api.open_file() == {"canceled": True, "filePaths": []}
        assert api.save_file() == {"canceled": True, "filePath": None}

    def test_open_external(self, tmp_path):
        api = DesktopApi(_config(tmp_path))
        with patch("automaker_desktop.desktop.webbrowser.open") as mock_open:
            assert api.open_external("https://example.com") == {"success": True}
        mock_open.assert_called_once_with("https://example.com")


class TestDesktopShell:
    def test_ready_loads_ui(self, tmp_path):
        shell = DesktopShell(_config(tmp_path))
        shell.window = MagicMock()

        shell._on_ready()

        shell.window.load_url.assert_called_once_with("http://localhost:3007")
        assert shell.exit_code == 0

    def test_fatal_shows_error_page_and_sets_exit_code(self, tmp_path):
        shell = DesktopShell(_config(tmp_path))
        shell.window = MagicMock()

        shell._on_fatal(SpawnError("spawn node ENOENT"))

        assert shell.exit_code == 1
        page = shell.window.load_html.call_args[0][0]
        assert "spawn node ENOENT" in page
        assert "Automaker Failed to Start" in page

    def test_shutdown_runs_once(self, tmp_path):
        shell = DesktopShell(_config(tmp_path))
        shell.core.start()
        try:
            shell.shutdown()
            shell.shutdown()
        finally:
            shell.core.stop()

        assert shell.orchestrator.shutdown.calls == 1


def test_headless_run_fails_without_static_build(tmp_path):
    code = asyncio.run(run_headless(_config(tmp_path), stop=asyncio.Event()))
    assert code == 1
