"""
Exporter gateway and its protocol adapters.

Three adapters ship span batches:

- GRPC:   unary ``TraceService/Export`` call carrying an OTLP export request
- HTTP:   POST of the protobuf-serialized OTLP export request
- ZIPKIN: POST of a Zipkin v2 JSON span array

GRPC and HTTP identify themselves with ``User-Agent: buildtrace/<version>``
and forward the configured custom headers. The Zipkin adapter forwards
neither: its collector contract has no place for them.

Transport failures never leave the gateway. They are logged and the batch
is dropped, so telemetry can not change the outcome of the build.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence
from urllib.parse import urlparse

import grpc
import requests
from opentelemetry.proto.collector.trace.v1 import trace_service_pb2_grpc

from buildtrace.config import ExporterConfig
from buildtrace.constants import USER_AGENT_VALUE, ExporterMode
from buildtrace.exceptions import TransportError
from buildtrace.telemetry.encoding import encode_otlp_request, encode_zipkin_spans
from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)


class SpanExporter(ABC):
    """Translates spans into one wire format and transmits them."""

    def __init__(self, config: ExporterConfig):
        self.config = config
        self.endpoint = config.endpoint
        self.timeout = config.connect_timeout

    @abstractmethod
    def export(self, spans: Sequence[ReadableSpan]) -> None:
        """Send one batch.

        Raises:
            TransportError: if the collector could not be reached or rejected
                the batch.
        """

    def close(self) -> None:
        pass


class GrpcSpanExporter(SpanExporter):
    """OTLP over gRPC."""

    def __init__(self, config: ExporterConfig):
        super().__init__(config)
        parsed = urlparse(config.endpoint)
        self.target = parsed.netloc
        options = [("grpc.primary_user_agent", USER_AGENT_VALUE)]
        if parsed.scheme == "https":
            self.channel = grpc.secure_channel(
                self.target, grpc.ssl_channel_credentials(), options=options
            )
        else:
            self.channel = grpc.insecure_channel(self.target, options=options)
        self.stub = trace_service_pb2_grpc.TraceServiceStub(self.channel)
        # gRPC metadata keys must be lowercase
        self.metadata = tuple((k.lower(), v) for k, v in config.headers.items())

    def export(self, spans: Sequence[ReadableSpan]) -> None:
        request = encode_otlp_request(spans)
        try:
            self.stub.Export(request, timeout=self.timeout, metadata=self.metadata)
        except grpc.RpcError as e:
            code = e.code() if hasattr(e, "code") else "UNKNOWN"
            details = e.details() if hasattr(e, "details") else str(e)
            raise TransportError(self.endpoint, f"gRPC {code}: {details}") from e
        except ValueError as e:
            # calls on a closed channel raise ValueError
            raise TransportError(self.endpoint, str(e)) from e

    def close(self) -> None:
        self.channel.close()


class HttpSpanExporter(SpanExporter):
    """OTLP over HTTP with protobuf payloads."""

    def __init__(self, config: ExporterConfig):
        super().__init__(config)
        self.session = requests.Session()
        self.session.headers.update(config.headers)
        self.session.headers.update(
            {
                "User-Agent": USER_AGENT_VALUE,
                "Content-Type": "application/x-protobuf",
            }
        )

    def export(self, spans: Sequence[ReadableSpan]) -> None:
        request = encode_otlp_request(spans)
        try:
            response = self.session.post(
                self.endpoint,
                data=request.SerializeToString(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (requests.RequestException, ValueError) as e:
            # ValueError covers header values http.client can not encode
            raise TransportError(self.endpoint, str(e)) from e

    def close(self) -> None:
        self.session.close()


class ZipkinSpanExporter(SpanExporter):
    """Zipkin v2 JSON. Custom headers are not forwarded."""

    def __init__(self, config: ExporterConfig):
        super().__init__(config)
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def export(self, spans: Sequence[ReadableSpan]) -> None:
        payload = json.dumps(encode_zipkin_spans(spans), separators=(",", ":"))
        try:
            response = self.session.post(
                self.endpoint,
                data=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (requests.RequestException, ValueError) as e:
            raise TransportError(self.endpoint, str(e)) from e

    def close(self) -> None:
        self.session.close()


EXPORTERS = {
    ExporterMode.GRPC: GrpcSpanExporter,
    ExporterMode.HTTP: HttpSpanExporter,
    ExporterMode.ZIPKIN: ZipkinSpanExporter,
}


class ExporterGateway:
    """
    Owns the exporter (and its network resources) for one build run.

    Usage:
        with ExporterGateway(config) as gateway:
            gateway.send(spans)
    """

    def __init__(self, config: ExporterConfig):
        self.config = config
        self._exporter: Optional[SpanExporter] = None
        self._closed = False

    @property
    def exporter(self) -> Optional[SpanExporter]:
        return self._exporter

    def open(self) -> "ExporterGateway":
        if self._exporter is None and not self._closed:
            exporter_cls = EXPORTERS[self.config.mode]
            self._exporter = exporter_cls(self.config)
            logger.info(f"Registering OpenTelemetry with mode {self.config.mode.value}")
        return self

    def send(self, batch: Sequence[ReadableSpan]) -> bool:
        """Export one batch. Returns False if it was dropped."""
        if not batch:
            return True
        if self._closed:
            logger.warning(f"Exporter closed, dropping {len(batch)} span(s)")
            return False
        self.open()
        try:
            self._exporter.export(batch)
        except TransportError as e:
            logger.warning(f"{e}. Dropping {len(batch)} span(s)")
            return False
        logger.debug(f"Exported {len(batch)} span(s) to {self.config.endpoint}")
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._exporter is not None:
            self._exporter.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
