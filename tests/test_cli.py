"""Tests for the click command line."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from aiohttp.test_utils import unused_port
from click.testing import CliRunner

from automaker_desktop.__main__ import cli


def _invoke(tmp_path, *args):
    runner = CliRunner()
    env = {"AUTOMAKER_APP__RESOURCES_DIR": str(tmp_path)}
    return runner.invoke(cli, ["--config", str(tmp_path / "absent.yaml"), *args], env=env)


def test_context_write_read_delete(tmp_path):
    project = str(tmp_path / "project")

    result = _invoke(tmp_path, "context", "write", project, "feat-1", "notes")
    assert result.exit_code == 0

    result = _invoke(tmp_path, "context", "read", project, "feat-1")
    assert result.exit_code == 0
    assert result.output == "notes"

    result = _invoke(tmp_path, "context", "delete", project, "feat-1")
    assert result.exit_code == 0
    assert not (Path(project) / ".automaker" / "agents-context" / "feat-1.md").exists()


def test_context_read_missing_exits_nonzero(tmp_path):
    result = _invoke(tmp_path, "context", "read", str(tmp_path), "missing")
    assert result.exit_code == 1


def test_check_health_fails_against_closed_port(tmp_path):
    url = f"http://127.0.0.1:{unused_port()}/api/health"
    result = _invoke(tmp_path, "check-health", "--url", url, "--attempts", "1")
    assert result.exit_code == 1
    assert "Server failed to start" in result.output


def test_serve_static_missing_build(tmp_path):
    result = _invoke(tmp_path, "serve-static", "--root", str(tmp_path / "out"))
    assert result.exit_code == 1
    assert "Static files not found" in result.output


class _StubResolver:
    def candidates(self):
        return [Path("/opt/homebrew/bin/node"), Path("/usr/bin/node")]

    def is_file(self, path):
        return str(path) == "/usr/bin/node"

    async def resolve(self):
        return "/usr/bin/node"


def test_resolve_runtime_lists_candidates(tmp_path):
    with patch("automaker_desktop.__main__.RuntimeResolver", _StubResolver):
        result = _invoke(tmp_path, "resolve-runtime")

    assert result.exit_code == 0
    assert "/opt/homebrew/bin/node" in result.output
    assert "Resolved: /usr/bin/node" in result.output


def test_run_headless_reports_startup_failure(tmp_path):
    # No static build under the resources directory
    result = _invoke(tmp_path, "--packaged", "run")
    assert result.exit_code == 1
