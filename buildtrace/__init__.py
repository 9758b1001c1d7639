"""Build tracing: turn build lifecycle events into an OpenTelemetry trace."""

__version__ = "0.3.0"
