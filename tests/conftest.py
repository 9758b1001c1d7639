import io
import json
import logging
import threading
from concurrent import futures
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import grpc
import pytest
from opentelemetry.proto.collector.trace.v1 import (
    trace_service_pb2,
    trace_service_pb2_grpc,
)

from buildtrace.config import build_config


@pytest.fixture
def capture_logs():
    """Fixture to capture log output during tests."""
    log_stream = io.StringIO()
    handler = logging.StreamHandler(log_stream)
    logger = logging.getLogger("buildtrace")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream  # Yield the stream to the test function

    # Cleanup after the test
    logger.removeHandler(handler)
    log_stream.close()


# collector fixtures


class RecordedRequest:
    def __init__(self, path, headers, body):
        self.path = path
        self.headers = headers
        self.body = body

    def otlp(self) -> trace_service_pb2.ExportTraceServiceRequest:
        return trace_service_pb2.ExportTraceServiceRequest.FromString(self.body)

    def zipkin(self) -> list:
        return json.loads(self.body)


class HttpCollector:
    """A tiny HTTP collector recording every POST it receives."""

    def __init__(self):
        self.requests: list[RecordedRequest] = []
        self.status = 200
        self._lock = threading.Lock()

        collector = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                body = self.rfile.read(length)
                with collector._lock:
                    collector.requests.append(
                        RecordedRequest(self.path, dict(self.headers), body)
                    )
                self.send_response(collector.status)
                self.send_header("Content-Length", "0")
                self.end_headers()

            def log_message(self, format, *args):
                pass

        self.server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    @property
    def base_url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"

    def spans(self) -> list:
        """All OTLP spans received, in arrival order."""
        spans = []
        for request in self.requests:
            for resource_spans in request.otlp().resource_spans:
                for scope_spans in resource_spans.scope_spans:
                    spans.extend(scope_spans.spans)
        return spans


@pytest.fixture
def http_collector():
    collector = HttpCollector()
    collector.thread.start()
    yield collector
    collector.server.shutdown()
    collector.server.server_close()


class RecordingTraceService(trace_service_pb2_grpc.TraceServiceServicer):
    def __init__(self):
        self.requests = []
        self.metadata = []

    def Export(self, request, context):
        self.requests.append(request)
        self.metadata.append(dict(context.invocation_metadata()))
        return trace_service_pb2.ExportTraceServiceResponse()


@pytest.fixture
def grpc_collector():
    service = RecordingTraceService()
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=2))
    trace_service_pb2_grpc.add_TraceServiceServicer_to_server(service, server)
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    service.endpoint = f"http://127.0.0.1:{port}"
    yield service
    server.stop(None)


@pytest.fixture
def make_config():
    """Build a validated config with fast batching for tests."""

    def _make(endpoint="http://127.0.0.1:4318/v1/traces", **settings):
        settings.setdefault("batch_delay", 0.01)
        settings.setdefault("drain_timeout", 5)
        settings.setdefault("is_ci", False)
        return build_config(endpoint=endpoint, **settings)

    return _make
