"""CLI entrypoint for fuzz-driver."""

import logging
from pathlib import Path

import rich_click as click

from fuzz_driver.config import Settings, log_share_dir_from_env
from fuzz_driver.orchestrator.arguments import (
    USAGE,
    ArgumentError,
    VersionRequested,
    initial_driver_args,
    parse_args,
)
from fuzz_driver.orchestrator.runner import DriverRunner
from fuzz_driver.tracing import file_tracing

LOGS_DIR_NAME = "DriverLogs"

logger = logging.getLogger(__name__)


class SettingsError(click.ClickException):
    """Invalid environment configuration, reported apart from argument errors."""

    exit_code = 2


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
    add_help_option=False,
)
@click.argument("tokens", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def fuzz_driver(ctx: click.Context, tokens: tuple[str, ...]) -> None:
    """Compile, test, fuzz or replay against an API under test.

    The process exits with 0 once a task has run, whether or not it succeeded;
    task outcome is reported in the logs and telemetry. Invalid arguments exit
    with 1 before any tool runs, and an invalid environment exits with 2.
    """

    working_directory = Path.cwd()
    logs_dir = working_directory / LOGS_DIR_NAME
    with file_tracing(logs_dir):
        try:
            args = parse_args(
                list(tokens),
                initial_driver_args(
                    output_dir_path=logs_dir,
                    working_directory_path=working_directory,
                    logs_upload_root_dir_path=log_share_dir_from_env(),
                ),
            )
        except VersionRequested as requested:
            click.echo(f"fuzz-driver version: {requested.version}")
            return
        except ArgumentError as error:
            logger.error("%s", error)
            click.echo(USAGE, err=True)
            ctx.exit(1)

        try:
            settings = Settings.from_env()
        except ValueError as error:
            logger.error("%s", error)
            raise SettingsError(str(error)) from error

        DriverRunner(settings=settings).run(args)


if __name__ == "__main__":  # pragma: no cover
    fuzz_driver()
