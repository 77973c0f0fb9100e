"""Custom exceptions for the Automaker desktop shell."""


class AutomakerError(Exception):
    """Base exception for all desktop shell errors."""


class RuntimeNotFoundError(AutomakerError):
    """No Node.js runtime could be located."""


class SpawnError(AutomakerError):
    """The backend process could not be created."""


class BackendEntryMissingError(SpawnError):
    """Backend entry point or its dev tooling is missing."""


class SupervisorBusyError(AutomakerError):
    """A backend process is already being supervised."""


class StaticAssetsMissingError(AutomakerError):
    """Expected static build output is absent."""


class PortInUseError(AutomakerError):
    """A listening port is already bound by another process."""


class ReadinessTimeoutError(AutomakerError, TimeoutError):
    """Backend never became healthy within the probe budget."""


class ConfigError(AutomakerError):
    """Configuration error."""
