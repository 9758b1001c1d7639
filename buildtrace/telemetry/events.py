"""
Span data model for build traces.

This module defines the mutable span the builder works on, and its
conversion to the OpenTelemetry SDK's immutable ReadableSpan once the
span is finished.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional
import time
import uuid

from opentelemetry import trace as trace_api
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import Event, ReadableSpan
from opentelemetry.trace.status import Status, StatusCode


class SpanKind(IntEnum):
    """OpenTelemetry span kinds."""

    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class SpanStatus(IntEnum):
    """OpenTelemetry span status codes."""

    UNSET = 0  # Still open
    OK = 1  # Completed successfully
    ERROR = 2  # Failed


@dataclass
class SpanEvent:
    """An event within a span (e.g., a task failure)."""

    name: str
    timestamp_ns: int
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Span:
    """
    A unit of work in a build trace.

    A build trace holds exactly two levels of spans:
    - The entire build run (root, no parent)
    - One span per task execution, parented to the root
    """

    trace_id: str
    span_id: str
    parent_span_id: Optional[str]
    name: str
    kind: SpanKind = SpanKind.INTERNAL
    start_time_ns: int = 0
    end_time_ns: Optional[int] = None
    status: SpanStatus = SpanStatus.UNSET
    status_message: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    @property
    def is_finished(self) -> bool:
        return self.end_time_ns is not None

    def finish(
        self,
        end_time_ns: int,
        status: SpanStatus,
        message: str = "",
    ) -> "Span":
        """Close the span; the end time never precedes the start time."""
        self.end_time_ns = max(end_time_ns, self.start_time_ns)
        self.status = status
        self.status_message = message
        return self


def generate_trace_id() -> str:
    """Generate a 32-character hex trace ID (16 bytes)."""
    return uuid.uuid4().hex  # uuid4().hex is already 32 chars


def generate_span_id() -> str:
    """Generate a 16-character hex span ID (8 bytes)."""
    return uuid.uuid4().hex[:16]


def now_ns() -> int:
    """Current time in nanoseconds since Unix epoch."""
    return time.time_ns()


def span_context(trace_id: str, span_id: str) -> trace_api.SpanContext:
    """Build a sampled SDK span context from hex ids."""
    return trace_api.SpanContext(
        trace_id=int(trace_id, 16),
        span_id=int(span_id, 16),
        is_remote=False,
        trace_flags=trace_api.TraceFlags(trace_api.TraceFlags.SAMPLED),
    )


def to_readable_span(span: Span, resource: Resource) -> ReadableSpan:
    """Freeze a finished span into the SDK's ReadableSpan."""
    parent = None
    if span.parent_span_id:
        parent = span_context(span.trace_id, span.parent_span_id)

    code = StatusCode[span.status.name]
    # the SDK keeps a description on ERROR only
    description = span.status_message if code is StatusCode.ERROR else None

    events = tuple(
        Event(name=e.name, attributes=dict(e.attributes), timestamp=e.timestamp_ns)
        for e in span.events
    )
    end_time_ns = span.end_time_ns if span.end_time_ns is not None else span.start_time_ns

    return ReadableSpan(
        name=span.name,
        context=span_context(span.trace_id, span.span_id),
        parent=parent,
        resource=resource,
        attributes=dict(span.attributes),
        events=events,
        kind=trace_api.SpanKind[span.kind.name],
        status=Status(code, description),
        start_time=span.start_time_ns,
        end_time=end_time_ns,
    )
