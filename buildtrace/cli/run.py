"""CLI command running shell commands as a traced build."""

import subprocess
from concurrent.futures import ThreadPoolExecutor

import click

from buildtrace.cli.utils.args import (
    config_from_options,
    exporter_options,
    parse_key_value_pairs,
)
from buildtrace.cli.utils.logging import logger
from buildtrace.exceptions import ConfigurationError
from buildtrace.telemetry import BuildTraceSession, TaskOutcome

EXEC_TASK_TYPE = "exec"


def execute_task(session: BuildTraceSession, task_path: str, command: str) -> bool:
    """Run one shell command as a task. Returns True if it succeeded."""
    session.task_started(task_path, EXEC_TASK_TYPE)
    logger.info(f"> Task {task_path}")

    try:
        result = subprocess.run(command, shell=True, capture_output=True, text=True)
    except OSError as e:
        session.task_finished(task_path, TaskOutcome.FAILED, str(e))
        logger.error(f"Task {task_path} could not be started: {e}")
        return False

    if result.stdout:
        logger.debug(result.stdout.rstrip())

    if result.returncode == 0:
        session.task_finished(task_path, TaskOutcome.SUCCESS)
        return True

    stderr = result.stderr.strip()
    message = f"Command '{command}' exited with code {result.returncode}"
    if stderr:
        message = f"{message}: {stderr.splitlines()[-1]}"
    session.task_finished(task_path, TaskOutcome.FAILED, message)
    logger.error(f"Task {task_path} FAILED\n{stderr}" if stderr else f"Task {task_path} FAILED")
    return False


@click.command(name="run")
@click.option(
    "--task",
    "-t",
    "tasks",
    multiple=True,
    required=True,
    help="Task to run as PATH=COMMAND, e.g. ':test=pytest -q' (repeatable).",
)
@click.option(
    "--parallel",
    "-j",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Number of tasks executed concurrently.",
)
@click.option(
    "--build-name",
    default="build",
    show_default=True,
    help="Name of the root span.",
)
@exporter_options
@click.pass_context
def run(ctx, tasks, parallel, build_name, **options):
    """Run shell commands as build tasks and trace them.

    The exit code is the build's own result: 0 if every task succeeded,
    1 otherwise. Telemetry failures never change it.
    """
    task_commands = parse_key_value_pairs(tasks, "--task")

    try:
        config = config_from_options(**options)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        ctx.exit(2)

    with BuildTraceSession(config) as session:
        session.build_started(build_name, task_names=list(task_commands))

        with ThreadPoolExecutor(max_workers=parallel) as executor:
            futures = [
                executor.submit(execute_task, session, path, command)
                for path, command in task_commands.items()
            ]
            results = [f.result() for f in futures]

        success = all(results)
        session.build_finished(None if success else "Build failed")

    if success:
        logger.info("BUILD SUCCESSFUL")
    else:
        failed = len(results) - sum(results)
        logger.error(f"BUILD FAILED ({failed} of {len(results)} task(s) failed)")
        ctx.exit(1)
