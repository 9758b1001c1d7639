"""Configuration for the exporter and the trace view link.

Settings come from an INI file (``buildtrace.cfg``) and explicit overrides,
and are validated exactly once into immutable pydantic models before any
build lifecycle event is processed.
"""

import configparser
import os
import platform
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from buildtrace.constants import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_SERVICE_NAME,
    TRACE_ID_TOKEN,
    ExporterMode,
    TraceViewType,
)
from buildtrace.exceptions import ConfigurationError

APP_NAME = "buildtrace"

_home = os.path.expanduser("~")

xdg_config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home, ".config")

if platform.system() == "Darwin":
    # macOS
    config_dir = Path("~/Library/Application Support/buildtrace").expanduser()
else:
    # Linux or others
    config_dir = Path(os.path.join(xdg_config_home, APP_NAME))

Scalar = Union[bool, int, float, str]

_TRUTHY = {"1", "true", "yes", "on"}


def get_config_file() -> Path:
    return config_dir / f"{APP_NAME}.cfg"


def is_ci_environment(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Whether we run under CI, judged from the ``CI`` environment variable."""
    environ = os.environ if environ is None else environ
    return environ.get("CI", "").strip().lower() in _TRUTHY


class ConfigAccessor:
    """
    A dict-like accessor for configuration files.

    Missing files, sections and keys are handled gracefully.

    Usage:
        config = ConfigAccessor()
        endpoint = config.get('exporter', 'endpoint', default='http://localhost:4318')
    """

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            self.config_path = get_config_file()
        else:
            self.config_path = Path(config_path)

        # Keys in [headers] and [tags] are user data, keep their case
        self.config = configparser.ConfigParser(interpolation=None)
        self.config.optionxform = str
        if self.config_path.exists():
            self.config.read(self.config_path)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value from the specified section and key.

        Returns:
            The configuration value if it exists, otherwise the default value
        """
        try:
            return self.config[section][key]
        except (KeyError, configparser.NoSectionError, configparser.NoOptionError):
            return default

    def items(self, section: str) -> Dict[str, str]:
        """All key/value pairs of a section, or an empty dict if it is missing."""
        if not self.config.has_section(section):
            return {}
        return dict(self.config.items(section))


class ExporterConfig(BaseModel):
    """Where and how spans are shipped. Immutable for the whole run."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="Collector endpoint URL")
    mode: ExporterMode = Field(ExporterMode.GRPC, description="Wire protocol")
    headers: Dict[str, str] = Field(default_factory=dict)
    custom_tags: Dict[str, Scalar] = Field(default_factory=dict)
    connect_timeout: float = Field(DEFAULT_CONNECT_TIMEOUT, gt=0)
    batch_delay: float = Field(DEFAULT_BATCH_DELAY, gt=0)
    drain_timeout: float = Field(DEFAULT_DRAIN_TIMEOUT, gt=0)
    max_batch_size: int = Field(DEFAULT_MAX_BATCH_SIZE, gt=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"endpoint must be an http(s) URL with a host, got '{v}'"
            )
        return v

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class BuildTraceConfig(BaseModel):
    """Complete, validated configuration for one traced build run."""

    model_config = ConfigDict(frozen=True)

    service_name: str = Field(DEFAULT_SERVICE_NAME, min_length=1)
    exporter: ExporterConfig
    trace_view_url: Optional[str] = None
    trace_view_type: Optional[TraceViewType] = None
    is_ci: bool = Field(default_factory=is_ci_environment)

    @field_validator("trace_view_type", mode="before")
    @classmethod
    def normalize_trace_view_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @model_validator(mode="after")
    def validate_trace_view(self) -> "BuildTraceConfig":
        if self.trace_view_type is not None and not self.trace_view_url:
            raise ValueError("trace_view_type requires trace_view_url as base URL")
        if (
            self.trace_view_url
            and self.trace_view_type is None
            and TRACE_ID_TOKEN not in self.trace_view_url
        ):
            raise ValueError(
                f"trace_view_url must contain the {TRACE_ID_TOKEN} token "
                "unless trace_view_type is set"
            )
        return self


def _format_validation_error(error: PydanticValidationError) -> ConfigurationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return ConfigurationError(first.get("msg", str(error)), field=field)


def build_config(**settings: Any) -> BuildTraceConfig:
    """Validate settings into a BuildTraceConfig.

    Exporter settings may be given flat (``endpoint=...``, ``mode=...``) or as
    an ``exporter`` mapping.

    Raises:
        ConfigurationError: if any setting is invalid.
    """
    exporter_fields = set(ExporterConfig.model_fields)
    exporter_settings = dict(settings.pop("exporter", None) or {})
    for key in list(settings):
        if key in exporter_fields:
            exporter_settings[key] = settings.pop(key)

    try:
        exporter = ExporterConfig(**exporter_settings)
        return BuildTraceConfig(exporter=exporter, **settings)
    except PydanticValidationError as e:
        raise _format_validation_error(e) from e


def load_config(
    config_path: Optional[Path] = None, **overrides: Any
) -> BuildTraceConfig:
    """Read the config file, apply overrides and validate the result.

    Overrides set to ``None`` are ignored. ``headers`` and ``custom_tags``
    overrides are merged over the file's ``[headers]`` and ``[tags]`` sections.
    """
    accessor = ConfigAccessor(config_path)

    settings: Dict[str, Any] = {}
    for key in ("endpoint", "mode", "connect_timeout", "batch_delay", "drain_timeout"):
        value = accessor.get("exporter", key)
        if value is not None:
            settings[key] = value

    service_name = accessor.get("build", "service_name")
    if service_name is not None:
        settings["service_name"] = service_name

    trace_view_url = accessor.get("trace_view", "url")
    if trace_view_url is not None:
        settings["trace_view_url"] = trace_view_url
    trace_view_type = accessor.get("trace_view", "type")
    if trace_view_type is not None:
        settings["trace_view_type"] = trace_view_type

    headers = accessor.items("headers")
    headers.update(overrides.pop("headers", None) or {})
    custom_tags: Dict[str, Any] = dict(accessor.items("tags"))
    custom_tags.update(overrides.pop("custom_tags", None) or {})

    settings.update({k: v for k, v in overrides.items() if v is not None})
    settings["headers"] = headers
    settings["custom_tags"] = custom_tags

    if "endpoint" not in settings:
        raise ConfigurationError(
            f"no endpoint configured (set it in {accessor.config_path} "
            "or pass it explicitly)",
            field="endpoint",
        )

    return build_config(**settings)
