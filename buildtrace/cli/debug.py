import click

from .utils.logging import configure_logging


def _set_debug(ctx: click.Context, param: click.Parameter, value: bool) -> bool:
    """Record the flag on the root context and reconfigure logging.

    Debug is sticky for the invocation: ``buildtrace --debug run`` and
    ``buildtrace run --debug`` both enable it, and no later flag turns it off.
    """
    root_ctx = ctx.find_root()
    root_ctx.ensure_object(dict)
    debug = bool(value) or root_ctx.obj.get("DEBUG", False)
    root_ctx.obj["DEBUG"] = debug
    configure_logging(debug)
    return debug


def add_debug_option(cmd: click.Command) -> click.Command:
    """Prepend an eager --debug/--no-debug flag to a command or group."""
    cmd.params.insert(
        0,
        click.Option(
            ["--debug/--no-debug"],
            is_eager=True,
            expose_value=False,
            callback=_set_debug,
            help="Log exporter and batching detail, prefixed by logger name.",
        ),
    )
    return cmd
