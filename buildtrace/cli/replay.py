"""CLI command replaying recorded lifecycle events as a traced build."""

import click
from pydantic import ValidationError

from buildtrace.cli.utils.args import config_from_options, exporter_options
from buildtrace.cli.utils.logging import logger
from buildtrace.exceptions import ConfigurationError, ObservationError
from buildtrace.telemetry import BuildTraceSession, SpanStatus, parse_event


@click.command(name="replay")
@click.option(
    "--input",
    "-i",
    "input_file",
    type=click.File("r"),
    default="-",
    help="JSON Lines file with lifecycle events (default: stdin).",
)
@exporter_options
@click.pass_context
def replay(ctx, input_file, **options):
    """Replay lifecycle events (JSON Lines) and export the resulting trace.

    Each line holds one event, e.g.
    {"kind": "task_started", "task_path": ":test", "task_type": "pytest"}.
    Exits 1 if the replayed build failed.
    """
    try:
        config = config_from_options(**options)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        ctx.exit(2)

    events = 0
    errors = 0
    with BuildTraceSession(config) as session:
        for line_number, line in enumerate(input_file, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                event = parse_event(line)
            except ValidationError as e:
                logger.warning(f"Skipping invalid event on line {line_number}: {e}")
                errors += 1
                continue
            try:
                session.handle(event)
            except ObservationError as e:
                logger.error(f"Error on line {line_number}: {e}")
                errors += 1
                continue
            events += 1

    logger.info(f"Replayed {events} event(s), {errors} error(s).")

    trace = session.builder.trace
    if trace is None:
        logger.error("No build_started event found.")
        ctx.exit(1)
    if trace.root_span.status == SpanStatus.ERROR:
        ctx.exit(1)
