"""Packaged app entry point (PyInstaller).

Bundle layout
─────────────
The frozen bundle contains:
  • Python interpreter + stdlib, pywebview, aiohttp, pydantic
  • automaker_desktop/
  • server/       compiled backend (index.js + node_modules)
  • out/          static UI build
  • public/       window icons
  • config.yaml   optional defaults

Node.js itself is NOT bundled: the launcher finds the user's install
(Homebrew / nvm / fnm / login shell) because apps started from Finder or a
desktop menu inherit a stripped PATH.
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# ── Stable paths ──────────────────────────────────────────────────────────────
_APP_SUPPORT = Path.home() / ".automaker"
_LOG_DIR     = _APP_SUPPORT / "logs"

# ── Logging (no console in a windowed bundle) ────────────────────────────────
_LOG_DIR.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    filename=str(_LOG_DIR / "launcher.log"),
    level=logging.DEBUG,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
log = logging.getLogger(__name__)


def resource_path(relative: str) -> Path:
    """Resolve a resource path for both frozen and dev modes."""
    base = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))
    return base / relative


def _clean_env() -> None:
    """Drop DYLD_* keys that PyInstaller points at the bundle.

    The backend is an external Node.js binary; inheriting the bundle's
    dylib search path makes it load the wrong libraries.
    """
    for key in [k for k in os.environ if k.startswith("DYLD_")]:
        os.environ.pop(key, None)


def main() -> int:
    log.info("Launcher started - MEIPASS=%s", getattr(sys, "_MEIPASS", None))
    _clean_env()

    config_file = resource_path("config.yaml")
    if config_file.exists():
        os.environ.setdefault("AUTOMAKER_CONFIG", str(config_file))
    os.environ.setdefault("AUTOMAKER_APP__RESOURCES_DIR", str(resource_path(".")))
    os.environ.setdefault("AUTOMAKER_APP__DATA_DIR", str(_APP_SUPPORT))
    os.environ.setdefault("AUTOMAKER_APP__LOG_DIR", str(_LOG_DIR))

    from automaker_desktop.config import Config  # noqa: PLC0415
    from automaker_desktop.desktop import DesktopShell  # noqa: PLC0415

    config = Config.load()
    config.app.packaged = True
    logging.getLogger().setLevel(config.app.log_level.upper())

    code = DesktopShell(config).run()
    log.info("Launcher exiting with code %d", code)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
