from pathlib import Path
from typing import Dict, Iterable, Optional

import click

from buildtrace.config import BuildTraceConfig, load_config
from buildtrace.constants import ExporterMode, TraceViewType


def parse_key_value_pairs(values: Iterable[str], option: str = "") -> Dict[str, str]:
    """
    Parse repeated ``KEY=VALUE`` option values into a dictionary.

    Example:
        buildtrace run --header x-api-key=secret --tag team=infra

        yields {"x-api-key": "secret"} for --header and {"team": "infra"}
        for --tag. Only the first '=' separates key from value.
    """
    parsed = {}
    for item in values:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise click.BadParameter(
                f"expected KEY=VALUE, got '{item}'", param_hint=option or None
            )
        parsed[key] = value
    return parsed


def exporter_options(cmd):
    """Attach the exporter and trace view options shared by all commands."""
    options = [
        click.option(
            "--config",
            "config_path",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            default=None,
            help="Path to a buildtrace.cfg file.",
            envvar="BUILDTRACE_CONFIG",
        ),
        click.option(
            "--endpoint",
            default=None,
            help="Collector endpoint URL.",
            envvar="BUILDTRACE_ENDPOINT",
        ),
        click.option(
            "--mode",
            type=click.Choice([m.value for m in ExporterMode], case_sensitive=False),
            default=None,
            help="Wire protocol used to ship spans.",
        ),
        click.option(
            "--header",
            "headers",
            multiple=True,
            help="Custom exporter header as KEY=VALUE (repeatable).",
        ),
        click.option(
            "--tag",
            "tags",
            multiple=True,
            help="Custom root span tag as KEY=VALUE (repeatable).",
        ),
        click.option(
            "--service-name",
            default=None,
            help="Build identifier reported as service.name.",
        ),
        click.option(
            "--trace-view-url",
            default=None,
            help="Trace view URL template, or base URL with --trace-view-type.",
        ),
        click.option(
            "--trace-view-type",
            type=click.Choice([t.value for t in TraceViewType], case_sensitive=False),
            default=None,
            help="Known trace viewer whose URL layout should be used.",
        ),
    ]
    for option in reversed(options):
        cmd = option(cmd)
    return cmd


def config_from_options(
    config_path: Optional[Path] = None,
    endpoint: Optional[str] = None,
    mode: Optional[str] = None,
    headers: Iterable[str] = (),
    tags: Iterable[str] = (),
    service_name: Optional[str] = None,
    trace_view_url: Optional[str] = None,
    trace_view_type: Optional[str] = None,
) -> BuildTraceConfig:
    """Build the run configuration from the shared CLI options.

    Raises:
        ConfigurationError: if the merged configuration is invalid.
    """
    return load_config(
        config_path,
        endpoint=endpoint,
        mode=mode,
        headers=parse_key_value_pairs(headers, "--header"),
        custom_tags=parse_key_value_pairs(tags, "--tag"),
        service_name=service_name,
        trace_view_url=trace_view_url,
        trace_view_type=trace_view_type,
    )
