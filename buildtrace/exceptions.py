"""
Exception classes for buildtrace.
"""


class BuildTraceError(Exception):
    """Base exception for all buildtrace errors."""

    pass


class ConfigurationError(BuildTraceError):
    """Raised when exporter or trace view configuration is invalid.

    Always raised before any lifecycle event is processed.
    """

    def __init__(self, message: str, field: str = ""):
        self.field = field
        if field:
            super().__init__(f"Invalid configuration for '{field}': {message}")
        else:
            super().__init__(message)


class TransportError(BuildTraceError):
    """Raised by an exporter when a batch could not be delivered."""

    def __init__(self, endpoint: str, reason: str):
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Failed to export spans to {endpoint}: {reason}")


class ObservationError(BuildTraceError):
    """Raised when lifecycle events arrive in an impossible order."""

    pass
