"""Decide how the backend server is started in dev and packaged builds."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from automaker_desktop.config import Config
from automaker_desktop.exceptions import BackendEntryMissingError
from automaker_desktop.models import LaunchPlan
from automaker_desktop.runtime_resolver import FALLBACK_COMMAND, RuntimeResolver

logger = logging.getLogger(__name__)

TSX_CLI = Path("tsx") / "dist" / "cli.mjs"


def find_tsx_cli(resources: Path) -> Optional[Path]:
    """tsx from the server's node_modules first, then the workspace root."""
    for node_modules in (resources / "server" / "node_modules", resources / "node_modules"):
        candidate = node_modules / TSX_CLI
        if candidate.is_file():
            return candidate
    return None


def development_plan(resources: Path) -> LaunchPlan:
    """Run the TypeScript sources directly through ``tsx watch``.

    The PATH of a dev shell is trusted, so the bare ``node`` command is used.
    """
    server_dir = resources / "server"
    entry = server_dir / "src" / "index.ts"
    tsx_cli = find_tsx_cli(resources)
    if tsx_cli is None:
        raise BackendEntryMissingError(
            "Could not find tsx. Please run 'npm install' in the server directory."
        )
    return LaunchPlan(
        command=FALLBACK_COMMAND,
        args=[str(tsx_cli), "watch", str(entry)],
        cwd=entry.parent,
        node_modules=server_dir / "node_modules",
        entry_point=entry,
    )


def production_plan(resources: Path, node: str) -> LaunchPlan:
    """Run the compiled server bundle with the resolved Node.js binary."""
    server_dir = resources / "server"
    entry = server_dir / "index.js"
    if not entry.is_file():
        raise BackendEntryMissingError(f"Server not found at: {entry}")
    return LaunchPlan(
        command=node,
        args=[str(entry)],
        cwd=server_dir,
        node_modules=server_dir / "node_modules",
        entry_point=entry,
    )


async def build_launch_plan(config: Config, resolver: RuntimeResolver) -> LaunchPlan:
    resources = config.resources_path
    if not config.is_packaged:
        plan = development_plan(resources)
    else:
        plan = production_plan(resources, await resolver.resolve())

    logger.info("Server path: %s", plan.entry_point)
    logger.info("NODE_PATH: %s", plan.node_modules)
    return plan
