"""
One traced build run.

``BuildTraceSession`` owns every piece of telemetry state for a single run:
the span tree, the batch queue and the exporter's network resources. It is
opened when the build starts and torn down exactly once when the build
ends, after the queue has been drained.

    config = load_config(endpoint="http://localhost:4318/v1/traces", mode="HTTP")
    with BuildTraceSession(config) as session:
        session.build_started("build", task_names=["test"])
        session.task_started(":test", "pytest")
        session.task_finished(":test", TaskOutcome.SUCCESS)
        session.build_finished()
"""

import logging
from typing import Iterable, Optional

from buildtrace.config import BuildTraceConfig
from buildtrace.exceptions import ObservationError
from buildtrace.telemetry.attributes import AttributeEnricher
from buildtrace.telemetry.batch import BatchQueue
from buildtrace.telemetry.events import Span
from buildtrace.telemetry.exporters import ExporterGateway
from buildtrace.telemetry.lifecycle import BuildStarted, TaskOutcome
from buildtrace.telemetry.spans import BuildState, SpanTreeBuilder
from buildtrace.telemetry.trace_view import TraceIdentifierTracker, TraceViewUrlResolver

logger = logging.getLogger(__name__)


class BuildTraceSession:
    """Scoped telemetry context for one build run."""

    def __init__(self, config: BuildTraceConfig):
        self.config = config
        exporter_config = config.exporter

        self.enricher = AttributeEnricher(
            service_name=config.service_name,
            custom_tags=exporter_config.custom_tags,
            is_ci=config.is_ci,
        )
        self.gateway = ExporterGateway(exporter_config)
        self.queue = BatchQueue(
            self.gateway.send,
            self.enricher.resource_attributes(),
            batch_delay=exporter_config.batch_delay,
            max_batch_size=exporter_config.max_batch_size,
        )
        self.tracker = TraceIdentifierTracker()
        self.builder = SpanTreeBuilder(
            self.enricher, sink=self.queue.add, on_trace_started=self.tracker
        )
        self.resolver = TraceViewUrlResolver(
            config.trace_view_url, config.trace_view_type
        )

        self.trace_view_url: Optional[str] = None
        self.drained: Optional[bool] = None
        self._opened = False
        self._closed = False
        self._reported = False

    @property
    def trace_id(self) -> Optional[str]:
        return self.tracker.trace_id

    def open(self) -> "BuildTraceSession":
        if not self._opened:
            self.gateway.open()
            self.queue.start()
            self._opened = True
        return self

    def build_started(self, build_name: str, task_names: Iterable[str] = ()) -> Span:
        return self.builder.on_build_start(build_name, task_names)

    def task_started(self, task_path: str, task_type: str = "") -> Optional[Span]:
        return self.builder.on_task_start(task_path, task_type)

    def task_finished(
        self,
        task_path: str,
        outcome: TaskOutcome = TaskOutcome.SUCCESS,
        failure_message: Optional[str] = None,
    ) -> Optional[Span]:
        return self.builder.on_task_finish(task_path, outcome, failure_message)

    def build_finished(self, failure_message: Optional[str] = None) -> Optional[Span]:
        """Close the build. Returns None if no build is open."""
        try:
            root = self.builder.on_build_finish(failure_message)
        except ObservationError as e:
            logger.warning(f"Ignoring build finish: {e}")
            return None
        self._report_trace_view()
        return root

    def _report_trace_view(self) -> None:
        if self._reported:
            return
        self._reported = True
        self.trace_view_url = self.resolver.log_trace_url(self.trace_id)

    def handle(self, event) -> Optional[Span]:
        """Apply a lifecycle event.

        A second build start is a usage error and raises ObservationError;
        any other out-of-order event is logged and ignored.
        """
        try:
            span = self.builder.apply(event)
        except ObservationError:
            if isinstance(event, BuildStarted):
                raise
            logger.warning(f"Ignoring out-of-order event '{event.kind}'")
            return None
        if self.builder.state is BuildState.CLOSED:
            self._report_trace_view()
        return span

    def close(self, failure_message: Optional[str] = None) -> None:
        """Finish the build if still open, drain the queue, release the exporter."""
        if self._closed:
            return
        self._closed = True
        try:
            if self.builder.state is BuildState.OPEN:
                self.build_finished(failure_message)
            self.drained = self.queue.drain(self.config.exporter.drain_timeout)
        finally:
            self.gateway.close()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        failure_message = None
        if exc_val is not None:
            failure_message = str(exc_val) or exc_type.__name__
        self.close(failure_message)
