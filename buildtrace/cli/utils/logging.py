"""Console logging for the buildtrace CLI."""

import logging
import sys

logger = logging.getLogger("buildtrace")

# batch processor and exporter failures inside the SDK log here
sdk_logger = logging.getLogger("opentelemetry")

_CONSOLE_HANDLER = "buildtrace-console"


def configure_logging(debug: bool) -> None:
    """
    Send buildtrace and OpenTelemetry SDK records to stdout.

    Build output stays plain. With ``debug`` every record is prefixed by its
    logger name, so exporter and batching detail (``buildtrace.telemetry.*``,
    ``opentelemetry.*``) reads apart from the build's own lines.
    """
    # stdout may have been swapped since the last call, never reuse the handler
    for existing in (logger, sdk_logger):
        for handler in list(existing.handlers):
            if handler.get_name() == _CONSOLE_HANDLER:
                existing.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_CONSOLE_HANDLER)
    handler.setFormatter(
        logging.Formatter("%(name)s: %(message)s" if debug else "%(message)s")
    )

    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.addHandler(handler)
    sdk_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    sdk_logger.addHandler(handler)
