"""
Span tree builder for a build run.

Converts build lifecycle events into a two-level hierarchy of spans:

    build (root)
    ├── :compileJava
    ├── :processResources
    └── :test

Task events may arrive concurrently from several worker threads. All
mutation happens under a single lock and spans are looked up by task path,
so completion order across tasks does not matter.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from buildtrace.constants import ATTR_ERROR_MESSAGE, ATTR_TASK_NAMES
from buildtrace.exceptions import ObservationError
from buildtrace.telemetry.attributes import AttributeEnricher
from buildtrace.telemetry.events import (
    Span,
    SpanEvent,
    SpanKind,
    SpanStatus,
    generate_span_id,
    generate_trace_id,
    now_ns,
)
from buildtrace.telemetry.lifecycle import (
    BuildFinished,
    BuildStarted,
    TaskFinished,
    TaskOutcome,
    TaskStarted,
)

logger = logging.getLogger(__name__)

UNFINISHED_TASK_MESSAGE = "task did not finish before the build completed"


class BuildState(Enum):
    IDLE = "idle"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class BuildTrace:
    """The spans of one build run."""

    trace_id: str
    root_span: Span

    # Latest span per task path (open or finished)
    child_spans: dict[str, Span] = field(default_factory=dict)

    # Every finished task span, re-executions included, in completion order
    finished_spans: list[Span] = field(default_factory=list)

    def open_spans(self) -> list[Span]:
        return [s for s in self.child_spans.values() if not s.is_finished]


SpanSink = Callable[[Span], None]


class SpanTreeBuilder:
    """
    Builds the span tree of one build run: Idle -> BuildOpen -> BuildClosed.

    Finished spans are handed to ``sink`` as soon as they close. The root
    span is handed over last, from ``on_build_finish``.

    Usage:
        builder = SpanTreeBuilder(enricher, sink=queue.add)
        builder.on_build_start("build", task_names=["test"])
        builder.on_task_start(":test", "pytest")
        builder.on_task_finish(":test", TaskOutcome.SUCCESS)
        builder.on_build_finish()
    """

    def __init__(
        self,
        enricher: AttributeEnricher,
        sink: Optional[SpanSink] = None,
        on_trace_started: Optional[Callable[[str], None]] = None,
    ):
        self.enricher = enricher
        self._sink = sink
        self._on_trace_started = on_trace_started
        self._lock = threading.Lock()
        self._state = BuildState.IDLE
        self._trace: Optional[BuildTrace] = None

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def trace(self) -> Optional[BuildTrace]:
        return self._trace

    @property
    def trace_id(self) -> Optional[str]:
        return self._trace.trace_id if self._trace else None

    def _hand_off(self, span: Span) -> None:
        if self._sink is not None:
            self._sink(span)

    def on_build_start(
        self,
        build_name: str,
        task_names: Iterable[str] = (),
        timestamp_ns: Optional[int] = None,
    ) -> Span:
        """Open the root span.

        Raises:
            ObservationError: if a build was already started on this builder.
        """
        with self._lock:
            if self._state is not BuildState.IDLE:
                raise ObservationError(
                    f"Build already started (state: {self._state.value})"
                )

            base = {}
            task_names = list(task_names)
            if task_names:
                base[ATTR_TASK_NAMES] = " ".join(task_names)

            trace_id = generate_trace_id()
            root = Span(
                trace_id=trace_id,
                span_id=generate_span_id(),
                parent_span_id=None,
                name=build_name,
                kind=SpanKind.SERVER,
                start_time_ns=timestamp_ns if timestamp_ns is not None else now_ns(),
                attributes=self.enricher.root_attributes(base),
            )
            self._trace = BuildTrace(trace_id=trace_id, root_span=root)
            self._state = BuildState.OPEN

        logger.debug(f"Build '{build_name}' started with trace id {trace_id}")
        if self._on_trace_started is not None:
            self._on_trace_started(trace_id)
        return root

    def _check_open(self, event: str, task_path: str) -> bool:
        if self._state is BuildState.OPEN:
            return True
        logger.warning(
            f"Ignoring {event} for task '{task_path}': "
            f"build is {self._state.value}"
        )
        return False

    def _new_task_span(self, task_path: str, task_type: str, start: int) -> Span:
        return Span(
            trace_id=self._trace.trace_id,
            span_id=generate_span_id(),
            parent_span_id=self._trace.root_span.span_id,
            name=task_path,
            kind=SpanKind.INTERNAL,
            start_time_ns=max(start, self._trace.root_span.start_time_ns),
            attributes=self.enricher.task_attributes(task_path, task_type),
        )

    def on_task_start(
        self,
        task_path: str,
        task_type: str = "",
        timestamp_ns: Optional[int] = None,
    ) -> Optional[Span]:
        """Open a task span parented to the root.

        A start for a task whose span is still open is ignored; a start after
        the previous execution finished opens a new, distinct span.
        """
        start = timestamp_ns if timestamp_ns is not None else now_ns()
        with self._lock:
            if not self._check_open("task start", task_path):
                return None

            current = self._trace.child_spans.get(task_path)
            if current is not None and not current.is_finished:
                logger.warning(
                    f"Task '{task_path}' started again while still running; "
                    "keeping the original start"
                )
                return current

            span = self._new_task_span(task_path, task_type, start)
            self._trace.child_spans[task_path] = span
            return span

    def on_task_finish(
        self,
        task_path: str,
        outcome: TaskOutcome = TaskOutcome.SUCCESS,
        failure_message: Optional[str] = None,
        timestamp_ns: Optional[int] = None,
    ) -> Optional[Span]:
        """Close a task span and hand it off for export.

        A finish without a matching start yields a zero-duration span.
        """
        end = timestamp_ns if timestamp_ns is not None else now_ns()
        with self._lock:
            if not self._check_open("task finish", task_path):
                return None

            span = self._trace.child_spans.get(task_path)
            if span is None or span.is_finished:
                logger.debug(
                    f"Task '{task_path}' finished without a start; "
                    "recording a zero-duration span"
                )
                span = self._new_task_span(task_path, "", end)
                self._trace.child_spans[task_path] = span

            if outcome.is_failure:
                message = failure_message or f"Task {task_path} failed"
                span.attributes[ATTR_ERROR_MESSAGE] = message
                span.events.append(
                    SpanEvent(
                        name="exception",
                        timestamp_ns=max(end, span.start_time_ns),
                        attributes={"exception.message": message},
                    )
                )
                span.finish(end, SpanStatus.ERROR, message)
            else:
                span.finish(end, SpanStatus.OK)

            self._trace.finished_spans.append(span)
            self._hand_off(span)
            return span

    def on_build_finish(
        self,
        failure_message: Optional[str] = None,
        timestamp_ns: Optional[int] = None,
    ) -> Span:
        """Close the root span after every task span; hand it off last.

        Raises:
            ObservationError: if the build is not open.
        """
        end = timestamp_ns if timestamp_ns is not None else now_ns()
        with self._lock:
            if self._state is not BuildState.OPEN:
                raise ObservationError(
                    f"Cannot finish build (state: {self._state.value})"
                )

            trace = self._trace
            for span in trace.open_spans():
                logger.warning(f"Task '{span.name}' was still running at build end")
                span.attributes[ATTR_ERROR_MESSAGE] = UNFINISHED_TASK_MESSAGE
                span.finish(end, SpanStatus.ERROR, UNFINISHED_TASK_MESSAGE)
                trace.finished_spans.append(span)
                self._hand_off(span)

            latest_child_end = max(
                (s.end_time_ns for s in trace.finished_spans), default=end
            )
            failed = any(s.status == SpanStatus.ERROR for s in trace.finished_spans)

            root = trace.root_span
            if failure_message:
                root.attributes[ATTR_ERROR_MESSAGE] = failure_message
                root.finish(max(end, latest_child_end), SpanStatus.ERROR, failure_message)
            elif failed:
                root.finish(max(end, latest_child_end), SpanStatus.ERROR, "Build failed")
            else:
                root.finish(max(end, latest_child_end), SpanStatus.OK)

            self._state = BuildState.CLOSED
            self._hand_off(root)

        logger.debug(
            f"Build finished with {len(trace.finished_spans)} task span(s), "
            f"status {root.status.name}"
        )
        return root

    def apply(self, event) -> Optional[Span]:
        """Dispatch a lifecycle event to the matching handler."""
        if isinstance(event, BuildStarted):
            return self.on_build_start(
                event.build_name, event.task_names, event.timestamp_ns
            )
        if isinstance(event, TaskStarted):
            return self.on_task_start(
                event.task_path, event.task_type, event.timestamp_ns
            )
        if isinstance(event, TaskFinished):
            return self.on_task_finish(
                event.task_path,
                event.outcome,
                event.failure_message,
                event.timestamp_ns,
            )
        if isinstance(event, BuildFinished):
            return self.on_build_finish(event.failure_message, event.timestamp_ns)
        raise TypeError(f"Unknown lifecycle event: {event!r}")
