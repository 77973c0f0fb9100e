"""Automaker desktop shell - launches and supervises the local backend."""

from automaker_desktop.config import Config
from automaker_desktop.models import HealthProbeResult, StartupState
from automaker_desktop.orchestrator import ShutdownCoordinator, StartupOrchestrator

__version__ = "0.1.0"
__all__ = [
    "Config",
    "HealthProbeResult",
    "ShutdownCoordinator",
    "StartupOrchestrator",
    "StartupState",
]
