from enum import Enum

from buildtrace import __version__


class ExporterMode(str, Enum):
    """Wire protocol used to ship spans."""

    GRPC = "GRPC"
    HTTP = "HTTP"
    ZIPKIN = "ZIPKIN"


class TraceViewType(str, Enum):
    """Known trace viewers whose URL layout we can expand."""

    JAEGER = "JAEGER"
    ZIPKIN = "ZIPKIN"


# SDK identification
SDK_NAME = "buildtrace"
SDK_VERSION = __version__
USER_AGENT_VALUE = f"{SDK_NAME}/{SDK_VERSION}"

# Zipkin has no resource concept, every span carries this service name
ZIPKIN_SERVICE_NAME = "buildtrace-builds"

# Exporter defaults (seconds)
DEFAULT_CONNECT_TIMEOUT = 2.0
DEFAULT_BATCH_DELAY = 0.1
DEFAULT_DRAIN_TIMEOUT = 10.0
DEFAULT_MAX_BATCH_SIZE = 512
DEFAULT_MAX_QUEUE_SIZE = 2048

DEFAULT_SERVICE_NAME = "build"

GRPC_EXPORT_METHOD = "/opentelemetry.proto.collector.trace.v1.TraceService/Export"

# Trace view
TRACE_ID_TOKEN = "{traceId}"
TRACE_VIEW_SUFFIXES = {
    TraceViewType.JAEGER: "trace/{traceId}",
    TraceViewType.ZIPKIN: "zipkin/traces/{traceId}",
}
TRACE_VIEW_PRODUCT = "OpenTelemetry"

# Attribute keys
ATTR_SERVICE_NAME = "service.name"
ATTR_SDK_NAME = "telemetry.sdk.name"
ATTR_SDK_VERSION = "telemetry.sdk.version"
ATTR_IS_CI = "system.is_ci"
ATTR_TASK_NAMES = "build.task_names"
ATTR_TASK_PATH = "task.path"
ATTR_TASK_TYPE = "task.type"
ATTR_ERROR_MESSAGE = "error.message"
