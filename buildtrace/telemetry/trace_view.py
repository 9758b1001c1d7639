"""Operator-facing link into a trace viewer (Jaeger, Zipkin, ...)."""

import logging
from typing import Optional

from buildtrace.constants import (
    TRACE_ID_TOKEN,
    TRACE_VIEW_PRODUCT,
    TRACE_VIEW_SUFFIXES,
    TraceViewType,
)

logger = logging.getLogger(__name__)


class TraceIdentifierTracker:
    """Remembers the trace id assigned to the root span."""

    def __init__(self):
        self.trace_id: Optional[str] = None

    def __call__(self, trace_id: str) -> None:
        self.trace_id = trace_id


class TraceViewUrlResolver:
    """
    Renders the trace view URL for a trace id.

    With a viewer type, ``url`` is the viewer's base URL and the type's path
    (``trace/{traceId}`` for Jaeger) is appended. Without one, ``url`` is a
    template used as-is. Only the ``{traceId}`` token is substituted.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        view_type: Optional[TraceViewType] = None,
    ):
        self.url = url
        self.view_type = view_type

    @property
    def enabled(self) -> bool:
        return bool(self.url) or self.view_type is not None

    def template(self) -> Optional[str]:
        if not self.url:
            return None
        if self.view_type is None:
            return self.url
        suffix = TRACE_VIEW_SUFFIXES[self.view_type]
        return f"{self.url.rstrip('/')}/{suffix}"

    def resolve(self, trace_id: Optional[str]) -> Optional[str]:
        template = self.template()
        if template is None or not trace_id:
            return None
        return template.replace(TRACE_ID_TOKEN, trace_id)

    def log_trace_url(self, trace_id: Optional[str]) -> Optional[str]:
        """Log ``<product> build trace <url>`` if a URL can be resolved."""
        url = self.resolve(trace_id)
        if url is not None:
            logger.info(f"{TRACE_VIEW_PRODUCT} build trace {url}")
        return url
