"""Locate a Node.js executable when the inherited PATH cannot be trusted.

Apps launched from Finder or a desktop menu get a stripped PATH
(``/usr/bin:/bin``), so a bare ``node`` frequently fails to spawn even though
Node.js is installed through Homebrew, nvm or fnm.

Search order:
0. Version managers: fnm first, then nvm (latest installed version of each).
1. Absolute paths at the well-known installer locations.
2. ``dirname($NODE_PATH)/node`` when NODE_PATH is set.
3. Login shell ``which node`` (``where node`` on Windows).
4. The bare command name, left to PATH resolution at spawn time.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

FALLBACK_COMMAND = "node"

_POSIX_PATHS = [
    "/opt/homebrew/bin/node",  # Homebrew on Apple Silicon
    "/usr/local/bin/node",     # Homebrew on Intel / manual installs
    "/usr/bin/node",           # System package
]

_SHELLS = ("/bin/zsh", "/bin/bash", "/bin/sh")
_DIGITS = re.compile(r"(\d+)")


def natural_key(name: str) -> list:
    """Sort key that compares digit runs numerically ("10" > "9")."""
    parts = _DIGITS.split(name)
    return [int(part) if i % 2 else part.lower() for i, part in enumerate(parts)]


def sort_versions_desc(names: list[str]) -> list[str]:
    return sorted(names, key=natural_key, reverse=True)


class VersionManager:
    """A directory layout that keeps several runtime versions side by side."""

    def __init__(self, name: str, base_dir: Path, binary: str):
        self.name = name
        self.base_dir = base_dir
        self.binary = binary

    def latest(self, is_file: Callable[[Path], bool]) -> Optional[Path]:
        """Return the binary of the newest installed version, if any."""
        try:
            if not self.base_dir.is_dir():
                return None
            versions = [entry.name for entry in self.base_dir.iterdir()]
        except OSError as exc:
            logger.warning("Error reading %s directory %s: %s", self.name, self.base_dir, exc)
            return None

        for version in sort_versions_desc(versions):
            candidate = self.base_dir / version / self.binary
            try:
                found = is_file(candidate)
            except OSError as exc:
                logger.debug("Cannot check %s: %s", candidate, exc)
                continue
            if found:
                return candidate
        return None


def _default_is_file(path: Path) -> bool:
    # A path that cannot be stat'ed (EACCES, ENAMETOOLONG) is not a candidate
    try:
        return path.is_file()
    except OSError:
        return False


async def shell_which(command: str, platform: str = sys.platform) -> Optional[str]:
    """Ask the user's shell where ``command`` lives; None if it does not know."""
    if platform == "win32":
        argv_options = [["where", command]]
    else:
        shells = [os.environ.get("SHELL", "")] + list(_SHELLS)
        argv_options = [
            [shell, "-l", "-c", f"which {command}"]
            for shell in dict.fromkeys(shells)
            if shell and os.path.isfile(shell)
        ]

    for argv in argv_options:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=20)
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Shell lookup %s raised: %s", argv, exc)
            continue

        lines = stdout.decode(errors="ignore").strip().splitlines()
        logger.debug("Shell lookup %s -> rc=%s out=%r", argv, proc.returncode, lines[:1])
        if proc.returncode == 0 and lines:
            return lines[0].strip()
    return None


class RuntimeResolver:
    """Find the Node.js binary used to run the backend.

    ``resolve()`` never fails: when nothing is found it returns the bare
    command name and lets the OS search PATH when the process is spawned.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        environ: Optional[dict] = None,
        platform: str = sys.platform,
        is_file: Callable[[Path], bool] = _default_is_file,
        shell_lookup: Optional[Callable[[str], Awaitable[Optional[str]]]] = None,
    ):
        self.environ = dict(os.environ) if environ is None else environ
        self.home = home or Path(self.environ.get("HOME") or Path.home())
        self.platform = platform
        self.is_file = is_file
        self.shell_lookup = shell_lookup or (lambda cmd: shell_which(cmd, self.platform))

    @property
    def version_managers(self) -> list[VersionManager]:
        return [
            VersionManager("nvm", self.home / ".nvm" / "versions" / "node", "bin/node"),
            VersionManager(
                "fnm",
                self.home / ".local" / "share" / "fnm" / "node-versions",
                "installation/bin/node",
            ),
        ]

    def fixed_candidates(self) -> list[Path]:
        if self.platform == "win32":
            paths = [
                Path(base) / "nodejs" / "node.exe"
                for base in (
                    self.environ.get("ProgramFiles"),
                    self.environ.get("ProgramFiles(x86)"),
                )
                if base
            ]
        else:
            paths = [Path(p) for p in _POSIX_PATHS]

        node_path = self.environ.get("NODE_PATH")
        if node_path:
            paths.append(Path(node_path).parent / FALLBACK_COMMAND)
        return paths

    def candidates(self) -> list[Path]:
        """Ordered candidate list, version-manager hits first."""
        candidates = self.fixed_candidates()
        for manager in self.version_managers:
            found = manager.latest(self.is_file)
            if found is not None:
                logger.debug("%s provides %s", manager.name, found)
                candidates.insert(0, found)
        return candidates

    async def resolve(self) -> str:
        for path in self.candidates():
            if self.is_file(path):
                logger.info("Found Node.js at: %s", path)
                return str(path)

        shell_path = await self.shell_lookup(FALLBACK_COMMAND)
        if shell_path and self.is_file(Path(shell_path)):
            logger.info("Found Node.js via shell: %s", shell_path)
            return shell_path

        logger.warning("Using fallback %r command", FALLBACK_COMMAND)
        return FALLBACK_COMMAND
