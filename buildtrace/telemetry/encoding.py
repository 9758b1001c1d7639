"""
Wire encodings for span batches.

- OTLP: a protobuf ``ExportTraceServiceRequest``, shared by the GRPC and
  HTTP exporters.
- Zipkin: the v2 JSON span array.

Both read the SDK's ReadableSpan, which is what the batch processor hands
to the exporters.
"""

from typing import Any, Iterable, Mapping, Sequence

from opentelemetry.proto.collector.trace.v1 import trace_service_pb2
from opentelemetry.proto.common.v1 import common_pb2
from opentelemetry.proto.resource.v1 import resource_pb2
from opentelemetry.proto.trace.v1 import trace_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.trace import SpanKind as ApiSpanKind
from opentelemetry.trace import format_span_id, format_trace_id
from opentelemetry.trace.status import StatusCode

from buildtrace.constants import SDK_NAME, SDK_VERSION, ZIPKIN_SERVICE_NAME
from buildtrace.telemetry.events import SpanKind


def trace_id_to_bytes(trace_id: int) -> bytes:
    return trace_id.to_bytes(16, "big")


def span_id_to_bytes(span_id: int) -> bytes:
    return span_id.to_bytes(8, "big")


def to_any_value(value: Any) -> common_pb2.AnyValue:
    """Convert a scalar attribute value to protobuf AnyValue."""
    # bool first, it is a subclass of int
    if isinstance(value, bool):
        return common_pb2.AnyValue(bool_value=value)
    elif isinstance(value, int):
        return common_pb2.AnyValue(int_value=value)
    elif isinstance(value, float):
        return common_pb2.AnyValue(double_value=value)
    return common_pb2.AnyValue(string_value=str(value))


def to_key_values(attributes: Mapping[str, Any]) -> list[common_pb2.KeyValue]:
    return [
        common_pb2.KeyValue(key=key, value=to_any_value(value))
        for key, value in attributes.items()
    ]


def span_to_protobuf(span: ReadableSpan) -> trace_pb2.Span:
    parent_span_id = b""
    if span.parent is not None:
        parent_span_id = span_id_to_bytes(span.parent.span_id)

    events = [
        trace_pb2.Span.Event(
            time_unix_nano=event.timestamp,
            name=event.name,
            attributes=to_key_values(event.attributes or {}),
        )
        for event in span.events
    ]

    return trace_pb2.Span(
        trace_id=trace_id_to_bytes(span.context.trace_id),
        span_id=span_id_to_bytes(span.context.span_id),
        parent_span_id=parent_span_id,
        name=span.name,
        # OTLP numbers kinds from 1, as SpanKind does
        kind=int(SpanKind[span.kind.name]),
        start_time_unix_nano=span.start_time,
        end_time_unix_nano=span.end_time,
        attributes=to_key_values(span.attributes),
        events=events,
        status=trace_pb2.Status(
            code=span.status.status_code.value,
            message=span.status.description or "",
        ),
    )


def encode_otlp_request(
    spans: Sequence[ReadableSpan],
) -> trace_service_pb2.ExportTraceServiceRequest:
    """Wrap a batch of spans into one OTLP export request.

    The spans of a batch belong to one build and share its resource.
    """
    resource_attributes = spans[0].resource.attributes if spans else {}
    resource = resource_pb2.Resource(attributes=to_key_values(resource_attributes))
    scope = common_pb2.InstrumentationScope(name=SDK_NAME, version=SDK_VERSION)

    return trace_service_pb2.ExportTraceServiceRequest(
        resource_spans=[
            trace_pb2.ResourceSpans(
                resource=resource,
                scope_spans=[
                    trace_pb2.ScopeSpans(
                        scope=scope,
                        spans=[span_to_protobuf(s) for s in spans],
                    )
                ],
            )
        ]
    )


def _tag_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def span_to_zipkin(span: ReadableSpan) -> dict:
    """Convert to a Zipkin v2 span. Times are microseconds."""
    tags = {key: _tag_value(value) for key, value in span.attributes.items()}

    status_code = span.status.status_code
    if status_code is StatusCode.ERROR:
        tags["otel.status_code"] = "ERROR"
        tags["error"] = span.status.description or "true"
    elif status_code is StatusCode.OK:
        tags["otel.status_code"] = "OK"

    zipkin_span = {
        "traceId": format_trace_id(span.context.trace_id),
        "id": format_span_id(span.context.span_id),
        "name": span.name,
        "timestamp": span.start_time // 1000,
        "duration": max((span.end_time - span.start_time) // 1000, 1),
        "localEndpoint": {"serviceName": ZIPKIN_SERVICE_NAME},
        "tags": tags,
    }

    if span.parent is not None:
        zipkin_span["parentId"] = format_span_id(span.parent.span_id)

    if span.kind is ApiSpanKind.SERVER:
        zipkin_span["kind"] = "SERVER"

    if span.events:
        zipkin_span["annotations"] = [
            {"timestamp": event.timestamp // 1000, "value": event.name}
            for event in span.events
        ]

    return zipkin_span


def encode_zipkin_spans(spans: Iterable[ReadableSpan]) -> list[dict]:
    return [span_to_zipkin(s) for s in spans]
