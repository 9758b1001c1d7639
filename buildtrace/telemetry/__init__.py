"""
Telemetry for build runs.

Turns build lifecycle events into an OpenTelemetry trace and ships it over
OTLP/gRPC, OTLP/HTTP or Zipkin. A build is represented as a two-level span
hierarchy:

    build (root span)
    ├── :compileJava
    ├── :processResources
    └── :test

Usage:
    from buildtrace.config import load_config
    from buildtrace.telemetry import BuildTraceSession, TaskOutcome

    with BuildTraceSession(load_config(endpoint=..., mode="HTTP")) as session:
        session.build_started("build", task_names=["test"])

        # During execution, from any worker thread:
        session.task_started(":test", "pytest")
        session.task_finished(":test", TaskOutcome.FAILED, "Assertion failed")

        session.build_finished()
"""

from buildtrace.telemetry.events import Span, SpanStatus
from buildtrace.telemetry.lifecycle import (
    BuildFinished,
    BuildStarted,
    TaskFinished,
    TaskOutcome,
    TaskStarted,
    parse_event,
)
from buildtrace.telemetry.session import BuildTraceSession
from buildtrace.telemetry.spans import SpanTreeBuilder

__all__ = [
    "BuildTraceSession",
    "SpanTreeBuilder",
    "Span",
    "SpanStatus",
    "TaskOutcome",
    "BuildStarted",
    "TaskStarted",
    "TaskFinished",
    "BuildFinished",
    "parse_event",
]
