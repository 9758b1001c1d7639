"""Tests for OTLP and Zipkin span encodings."""

import pytest
from opentelemetry.sdk.resources import Resource

from buildtrace.constants import SDK_NAME, ZIPKIN_SERVICE_NAME
from buildtrace.telemetry.encoding import (
    encode_otlp_request,
    encode_zipkin_spans,
    span_to_zipkin,
    to_any_value,
)
from buildtrace.telemetry.events import (
    Span,
    SpanEvent,
    SpanKind,
    SpanStatus,
    to_readable_span,
)

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
ROOT_ID = "00f067aa0ba902b7"
CHILD_ID = "b7ad6b7169203331"

RESOURCE = Resource({"service.name": "my-build"})


def readable(*spans):
    return [to_readable_span(span, RESOURCE) for span in spans]


@pytest.fixture
def root():
    return Span(
        trace_id=TRACE_ID,
        span_id=ROOT_ID,
        parent_span_id=None,
        name="build",
        kind=SpanKind.SERVER,
        start_time_ns=1_000_000_000,
        end_time_ns=3_000_000_000,
        status=SpanStatus.OK,
        attributes={"service.name": "my-build", "foo1": "bar1", "system.is_ci": False},
    )


@pytest.fixture
def failed_child():
    return Span(
        trace_id=TRACE_ID,
        span_id=CHILD_ID,
        parent_span_id=ROOT_ID,
        name=":test",
        start_time_ns=1_500_000_000,
        end_time_ns=2_500_000_000,
        status=SpanStatus.ERROR,
        status_message="Assertion failed",
        attributes={"task.path": ":test", "task.type": "Test"},
        events=[
            SpanEvent(
                name="exception",
                timestamp_ns=2_500_000_000,
                attributes={"exception.message": "Assertion failed"},
            )
        ],
    )


@pytest.mark.short
class TestOtlpEncoding:
    def test_any_value_types(self):
        assert to_any_value(True).bool_value is True
        assert to_any_value(3).int_value == 3
        assert to_any_value(0.5).double_value == 0.5
        assert to_any_value("x").string_value == "x"
        assert to_any_value(None).string_value == "None"

    def test_request_structure(self, root, failed_child):
        request = encode_otlp_request(readable(failed_child, root))

        resource_spans = request.resource_spans[0]
        resource = {kv.key: kv.value.string_value for kv in resource_spans.resource.attributes}
        assert resource == {"service.name": "my-build"}

        scope_spans = resource_spans.scope_spans[0]
        assert scope_spans.scope.name == SDK_NAME
        child_pb, root_pb = scope_spans.spans

        assert root_pb.trace_id == bytes.fromhex(TRACE_ID)
        assert root_pb.span_id == bytes.fromhex(ROOT_ID)
        assert root_pb.parent_span_id == b""
        assert root_pb.kind == 2
        assert root_pb.start_time_unix_nano == 1_000_000_000
        assert root_pb.end_time_unix_nano == 3_000_000_000
        assert root_pb.status.code == 1

        assert child_pb.parent_span_id == bytes.fromhex(ROOT_ID)
        assert child_pb.status.code == 2
        assert child_pb.status.message == "Assertion failed"
        assert child_pb.events[0].name == "exception"

    def test_attribute_types_preserved(self, root):
        request = encode_otlp_request(readable(root))
        attributes = {
            kv.key: kv.value for kv in request.resource_spans[0].scope_spans[0].spans[0].attributes
        }
        assert attributes["foo1"].string_value == "bar1"
        assert attributes["system.is_ci"].HasField("bool_value")

    def test_serialized_payload_contains_literal_tokens(self, root, failed_child):
        spans = [to_readable_span(s, Resource({"foo2": "bar2"})) for s in (failed_child, root)]
        payload = encode_otlp_request(spans).SerializeToString()

        for token in (b"foo1", b"bar1", b"foo2", b"bar2", b"Assertion failed", b":test"):
            assert token in payload


@pytest.mark.short
class TestZipkinEncoding:
    def test_root_span(self, root):
        zipkin = span_to_zipkin(*readable(root))

        assert zipkin["traceId"] == TRACE_ID
        assert zipkin["id"] == ROOT_ID
        assert "parentId" not in zipkin
        assert zipkin["kind"] == "SERVER"
        assert zipkin["timestamp"] == 1_000_000
        assert zipkin["duration"] == 2_000_000
        assert zipkin["localEndpoint"] == {"serviceName": ZIPKIN_SERVICE_NAME}
        assert zipkin["tags"]["foo1"] == "bar1"
        assert zipkin["tags"]["system.is_ci"] == "false"
        assert zipkin["tags"]["otel.status_code"] == "OK"

    def test_failed_child(self, failed_child):
        zipkin = span_to_zipkin(*readable(failed_child))

        assert zipkin["parentId"] == ROOT_ID
        assert "kind" not in zipkin
        assert zipkin["tags"]["error"] == "Assertion failed"
        assert zipkin["tags"]["otel.status_code"] == "ERROR"
        assert zipkin["annotations"] == [{"timestamp": 2_500_000, "value": "exception"}]

    def test_zero_duration_span_has_positive_duration(self, root):
        root.end_time_ns = root.start_time_ns
        assert span_to_zipkin(*readable(root))["duration"] == 1

    def test_encode_batch(self, root, failed_child):
        spans = encode_zipkin_spans(readable(failed_child, root))
        assert [s["name"] for s in spans] == [":test", "build"]
