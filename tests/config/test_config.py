"""
Unit tests for configuration loading and validation in buildtrace.config.
"""

import pytest
from pydantic import ValidationError

from buildtrace.config import (
    ConfigAccessor,
    ExporterConfig,
    build_config,
    is_ci_environment,
    load_config,
)
from buildtrace.constants import ExporterMode, TraceViewType
from buildtrace.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "buildtrace.cfg"
    path.write_text(
        """
[exporter]
endpoint = http://collector:4318/v1/traces
mode = http
connect_timeout = 5

[headers]
X-Api-Key = secret

[tags]
Team = infra

[trace_view]
url = http://localhost:16686/
type = jaeger

[build]
service_name = my-build
"""
    )
    return path


@pytest.mark.short
class TestBuildConfig:
    def test_defaults(self):
        config = build_config(endpoint="http://localhost:4317", is_ci=False)

        assert config.service_name == "build"
        assert config.exporter.mode is ExporterMode.GRPC
        assert config.exporter.connect_timeout == 2.0
        assert config.exporter.batch_delay == 0.1
        assert config.exporter.headers == {}
        assert config.exporter.custom_tags == {}
        assert config.trace_view_url is None
        assert config.trace_view_type is None

    def test_mode_is_case_insensitive(self):
        config = build_config(endpoint="http://localhost:9411", mode="zipkin")
        assert config.exporter.mode is ExporterMode.ZIPKIN

    def test_invalid_mode(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_config(endpoint="http://localhost:4317", mode="carrier-pigeon")
        assert exc_info.value.field == "mode"

    @pytest.mark.parametrize("endpoint", ["localhost:4317", "ftp://host/x", "http://", ""])
    def test_invalid_endpoint(self, endpoint):
        with pytest.raises(ConfigurationError) as exc_info:
            build_config(endpoint=endpoint)
        assert exc_info.value.field == "endpoint"

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError):
            build_config(endpoint="http://localhost:4317", connect_timeout=0)

    def test_template_without_token_rejected(self):
        with pytest.raises(ConfigurationError):
            build_config(endpoint="http://localhost:4317", trace_view_url="http://jaeger/")

    def test_type_without_url_rejected(self):
        with pytest.raises(ConfigurationError):
            build_config(endpoint="http://localhost:4317", trace_view_type="JAEGER")

    def test_type_with_base_url_accepted(self):
        config = build_config(
            endpoint="http://localhost:4317",
            trace_view_url="http://localhost:16686/",
            trace_view_type="jaeger",
        )
        assert config.trace_view_type is TraceViewType.JAEGER

    def test_nested_exporter_settings(self):
        config = build_config(exporter={"endpoint": "http://localhost:4318", "mode": "HTTP"})
        assert config.exporter.mode is ExporterMode.HTTP

    def test_config_is_immutable(self):
        config = build_config(endpoint="http://localhost:4317")
        with pytest.raises(ValidationError):
            config.service_name = "other"
        assert isinstance(config.exporter, ExporterConfig)


@pytest.mark.short
class TestLoadConfig:
    def test_load_from_file(self, config_file):
        config = load_config(config_file, is_ci=False)

        assert config.exporter.endpoint == "http://collector:4318/v1/traces"
        assert config.exporter.mode is ExporterMode.HTTP
        assert config.exporter.connect_timeout == 5.0
        assert config.exporter.headers == {"X-Api-Key": "secret"}
        assert config.exporter.custom_tags == {"Team": "infra"}
        assert config.trace_view_type is TraceViewType.JAEGER
        assert config.service_name == "my-build"

    def test_overrides_win(self, config_file):
        config = load_config(
            config_file,
            endpoint="http://other:4317",
            mode="GRPC",
            headers={"X-Api-Key": "override", "foo": "bar"},
            custom_tags={"foo1": "bar1"},
            service_name=None,
        )

        assert config.exporter.endpoint == "http://other:4317"
        assert config.exporter.mode is ExporterMode.GRPC
        assert config.exporter.headers == {"X-Api-Key": "override", "foo": "bar"}
        assert config.exporter.custom_tags == {"Team": "infra", "foo1": "bar1"}
        assert config.service_name == "my-build"

    def test_missing_file_and_endpoint(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "missing.cfg")
        assert exc_info.value.field == "endpoint"

    def test_missing_file_with_endpoint(self, tmp_path):
        config = load_config(tmp_path / "missing.cfg", endpoint="http://localhost:4317")
        assert config.exporter.endpoint == "http://localhost:4317"


@pytest.mark.short
class TestConfigAccessor:
    def test_get_and_default(self, config_file):
        accessor = ConfigAccessor(config_file)
        assert accessor.get("exporter", "mode") == "http"
        assert accessor.get("exporter", "missing", default="x") == "x"
        assert accessor.get("missing", "key") is None

    def test_items_keep_key_case(self, config_file):
        accessor = ConfigAccessor(config_file)
        assert accessor.items("headers") == {"X-Api-Key": "secret"}
        assert accessor.items("missing") == {}


@pytest.mark.short
@pytest.mark.parametrize(
    "value, expected",
    [("true", True), ("1", True), ("YES", True), ("false", False), ("", False)],
)
def test_is_ci_environment(value, expected):
    assert is_ci_environment({"CI": value}) is expected


@pytest.mark.short
def test_is_ci_environment_unset():
    assert is_ci_environment({}) is False
