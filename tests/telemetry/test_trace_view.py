"""Tests for trace id tracking and trace view URL resolution."""

import pytest

from buildtrace.constants import TraceViewType
from buildtrace.telemetry.trace_view import TraceIdentifierTracker, TraceViewUrlResolver


@pytest.mark.short
class TestTraceViewUrlResolver:
    def test_raw_template_substitutes_trace_id(self):
        resolver = TraceViewUrlResolver("http://localhost:16686/trace/{traceId}")
        assert resolver.resolve("abc123") == "http://localhost:16686/trace/abc123"

    def test_log_line_format(self, capture_logs):
        resolver = TraceViewUrlResolver("http://localhost:16686/trace/{traceId}")
        resolver.log_trace_url("abc123")
        assert (
            "OpenTelemetry build trace http://localhost:16686/trace/abc123"
            in capture_logs.getvalue().splitlines()
        )

    def test_jaeger_type_appends_trace_path(self):
        resolver = TraceViewUrlResolver("http://localhost:16686/", TraceViewType.JAEGER)
        assert resolver.resolve("abc123") == "http://localhost:16686/trace/abc123"

    def test_jaeger_type_without_trailing_slash(self):
        resolver = TraceViewUrlResolver("http://localhost:16686", TraceViewType.JAEGER)
        assert resolver.resolve("abc123") == "http://localhost:16686/trace/abc123"

    def test_zipkin_type(self):
        resolver = TraceViewUrlResolver("http://localhost:9411", TraceViewType.ZIPKIN)
        assert resolver.resolve("abc123") == "http://localhost:9411/zipkin/traces/abc123"

    def test_other_tokens_are_left_alone(self):
        resolver = TraceViewUrlResolver("http://viewer/{spanId}/{traceId}")
        assert resolver.resolve("abc123") == "http://viewer/{spanId}/abc123"

    def test_not_configured_is_noop(self, capture_logs):
        resolver = TraceViewUrlResolver()
        assert not resolver.enabled
        assert resolver.log_trace_url("abc123") is None
        assert "build trace" not in capture_logs.getvalue()

    def test_missing_trace_id_is_noop(self):
        resolver = TraceViewUrlResolver("http://localhost:16686/trace/{traceId}")
        assert resolver.resolve(None) is None


@pytest.mark.short
def test_tracker_records_trace_id():
    tracker = TraceIdentifierTracker()
    assert tracker.trace_id is None
    tracker("abc123")
    assert tracker.trace_id == "abc123"
