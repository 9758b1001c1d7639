"""
Batching of finished spans.

Producers hand spans to the OpenTelemetry SDK's ``BatchSpanProcessor``
without touching the network. Its worker thread wakes every
``batch_delay`` seconds and ships whatever accumulated, so a burst of short
tasks costs one request instead of one per task.
"""

import logging
import threading
from typing import Any, Callable, Mapping, Optional, Sequence

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)

from buildtrace.constants import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_MAX_QUEUE_SIZE,
)
from buildtrace.telemetry.events import Span, to_readable_span

logger = logging.getLogger(__name__)

BatchSender = Callable[[Sequence[ReadableSpan]], bool]


class _SenderExporter(SpanExporter):
    """Adapts a ``send(batch) -> bool`` callable to the SDK exporter API."""

    def __init__(self, send: BatchSender):
        self._send = send
        self.discarding = False
        self.sent_batches = 0
        self.dropped_batches = 0
        self.discarded_spans = 0

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        if self.discarding:
            self.discarded_spans += len(spans)
            return SpanExportResult.FAILURE
        if self._send(list(spans)):
            self.sent_batches += 1
            return SpanExportResult.SUCCESS
        self.dropped_batches += 1
        return SpanExportResult.FAILURE

    def shutdown(self) -> None:
        pass


class BatchQueue:
    """
    Span buffer with timed flushes and a bounded final drain.

    Usage:
        queue = BatchQueue(gateway.send, resource_attributes, batch_delay=0.1)
        queue.start()
        queue.add(span)
        ...
        queue.drain(timeout=10)
    """

    def __init__(
        self,
        send: BatchSender,
        resource_attributes: Optional[Mapping[str, Any]] = None,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    ):
        self.resource = Resource(dict(resource_attributes or {}))
        self.batch_delay = batch_delay
        self.max_batch_size = max_batch_size

        self._exporter = _SenderExporter(send)
        self._processor: Optional[BatchSpanProcessor] = None
        self._lock = threading.Lock()
        self._drained = False
        self._late_spans = 0

    @property
    def sent_batches(self) -> int:
        return self._exporter.sent_batches

    @property
    def dropped_batches(self) -> int:
        return self._exporter.dropped_batches

    @property
    def discarded_spans(self) -> int:
        return self._exporter.discarded_spans + self._late_spans

    def _start(self) -> None:
        if self._processor is None and not self._drained:
            self._processor = BatchSpanProcessor(
                self._exporter,
                max_queue_size=max(DEFAULT_MAX_QUEUE_SIZE, self.max_batch_size),
                schedule_delay_millis=self.batch_delay * 1000,
                max_export_batch_size=self.max_batch_size,
            )

    def start(self) -> None:
        with self._lock:
            self._start()

    def add(self, span: Span) -> None:
        """Queue a finished span. Never blocks on I/O."""
        with self._lock:
            if self._drained:
                logger.warning(f"Span queue drained, dropping span '{span.name}'")
                self._late_spans += 1
                return
            self._start()
            self._processor.on_end(to_readable_span(span, self.resource))

    def drain(self, timeout: float) -> bool:
        """Flush everything and stop the worker, waiting at most ``timeout``.

        Returns True if every queued span was handed to the exporter in time.
        Spans still queued afterwards are discarded.
        """
        with self._lock:
            self._drained = True
            processor, self._processor = self._processor, None

        if processor is None:
            return True

        # shutdown exports what is left; run it aside so the wait stays bounded
        closer = threading.Thread(
            target=processor.shutdown, name="buildtrace-drain", daemon=True
        )
        closer.start()
        closer.join(timeout)
        if closer.is_alive():
            self._exporter.discarding = True
            logger.warning(
                f"Span export did not finish within {timeout}s, "
                "discarding the remaining spans"
            )
            return False
        return True
