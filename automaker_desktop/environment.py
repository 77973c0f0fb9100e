"""Build the process environment handed to the backend server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from automaker_desktop.config import Config
from automaker_desktop.models import LaunchPlan

logger = logging.getLogger(__name__)


def default_workspace_dir(home: Optional[Path] = None) -> Path:
    return (home or Path.home()) / "Documents" / "Automaker"


def ensure_workspace_dir(path: Path) -> None:
    """Create the workspace directory; failure is logged, not fatal."""
    if path.exists():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Created workspace directory: %s", path)
    except OSError as exc:
        logger.error("Failed to create workspace directory %s: %s", path, exc)


def prepend_to_path(search_path: str, directory: str) -> str:
    """Put ``directory`` in front of PATH unless it is already listed."""
    entries = search_path.split(os.pathsep) if search_path else []
    if directory in entries:
        return search_path
    return os.pathsep.join([directory] + entries)


def parse_dotenv(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; ``export`` prefixes and matching quotes are dropped."""
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if line.startswith("#") or not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key] = value
    return values


def merge_dev_dotenv(env: dict[str, str], dotenv_path: Path) -> list[str]:
    """Fill gaps in ``env`` from the project's .env; returns the keys added.

    Development only: a packaged build never reads a .env file. Variables
    already present in ``env`` are left alone.
    """
    try:
        text = dotenv_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        logger.warning("Failed to read %s: %s", dotenv_path, exc)
        return []

    added = []
    for key, value in parse_dotenv(text).items():
        if key not in env:
            env[key] = value
            added.append(key)
    logger.info("Merged %d variable(s) from %s", len(added), dotenv_path)
    return added


def build_backend_environment(
    config: Config,
    plan: LaunchPlan,
    base: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> dict[str, str]:
    """Return a fresh environment for one backend process.

    Inherits ``base`` (default ``os.environ``) and overrides PORT, DATA_DIR,
    NODE_PATH and WORKSPACE_DIR. Packaged builds also get the runtime's
    directory prepended to PATH, since the backend spawns ``node`` itself.
    """
    env = dict(os.environ if base is None else base)
    if not config.is_packaged:
        merge_dev_dotenv(env, config.resources_path / ".env")

    workspace = env.get("WORKSPACE_DIR") or str(default_workspace_dir(home))
    ensure_workspace_dir(Path(workspace))

    search_path = env.get("PATH", "")
    if config.is_packaged and os.path.dirname(plan.command):
        node_dir = os.path.dirname(plan.command)
        search_path = prepend_to_path(search_path, node_dir)
        logger.info("Enhanced PATH for server: %s", node_dir)

    env.update(
        {
            "PATH": search_path,
            "PORT": str(config.backend.port),
            "DATA_DIR": str(config.data_path),
            "NODE_PATH": str(plan.node_modules),
            "WORKSPACE_DIR": workspace,
        }
    )
    return env
