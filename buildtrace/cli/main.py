"""buildtrace CLI"""

import click

from buildtrace import __version__
from buildtrace.cli.replay import replay
from buildtrace.cli.run import run

from .debug import add_debug_option


@click.group()
@click.version_option(__version__, prog_name="buildtrace")
@click.pass_context
def cli(ctx):
    """
    Trace build runs and export them to OpenTelemetry or Zipkin.
    """
    ctx.ensure_object(dict)


cli.add_command(add_debug_option(replay))
cli.add_command(add_debug_option(run))

add_debug_option(cli)

if __name__ == "__main__":
    cli(obj={})
