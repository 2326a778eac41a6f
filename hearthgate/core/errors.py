"""Domain-specific errors for hearthgate."""


class HearthgateError(Exception):
    """Base error for hearthgate."""


class ConfigError(HearthgateError):
    """Raised when the gateway configuration is unreadable or invalid."""


class PluginLoadError(HearthgateError):
    """Raised when loading plugin sources fails."""


class PluginLoadTimeoutError(PluginLoadError):
    """Raised when a plugin batch does not finish before its timeout.

    This is fatal: nothing can be paired without interfaces and drivers.
    """


class PluginValidationError(HearthgateError):
    """Raised when a plugin file does not conform to schema or semantics."""


class InterfaceValidationError(PluginValidationError):
    """Raised when an interface definition is rejected."""


class DriverValidationError(PluginValidationError):
    """Raised when a driver fails capability validation."""

    def __init__(self, message: str, missing: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.missing = missing


class ScanError(HearthgateError):
    """Raised when a network scan cannot produce any result."""


class PairingError(HearthgateError):
    """Raised when a discovered device cannot be bound to a known endpoint."""
