"""CLI entry point for flowbridge.

This module defines the Click-based command-line interface for flowbridge.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from flowbridge.logging import configure_logging

# Load environment variables from .env file in current directory.
# This must happen before the configuration reads FLOWBRIDGE_* variables.
load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

from flowbridge import __version__  # noqa: E402
from flowbridge.cli.commands.evaluate import evaluate  # noqa: E402
from flowbridge.cli.commands.params import params  # noqa: E402
from flowbridge.cli.commands.review import review  # noqa: E402
from flowbridge.cli.commands.translate import translate  # noqa: E402
from flowbridge.cli.context import CLIContext, ExitCode  # noqa: E402
from flowbridge.cli.output import format_error  # noqa: E402
from flowbridge.config import load_config  # noqa: E402
from flowbridge.exceptions import ConfigError  # noqa: E402

_VERBOSITY_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def _log_level(quiet: bool, verbose: int, configured: str) -> int:
    """Pick the log level: -q beats -v, which beats the config file."""
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.INFO if verbose == 1 else logging.DEBUG
    return _VERBOSITY_LEVELS.get(configured, logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="flowbridge")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of ./flowbridge.yaml and the user config.",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Log more (-v for INFO, -vv for DEBUG).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Log errors only.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    verbose: int,
    quiet: bool,
) -> None:
    """flowbridge - translate, evaluate and review n8n and Make expressions."""
    ctx.ensure_object(dict)

    # Logging is not configured yet, so config errors go straight to stderr
    try:
        config = load_config(config_file)
    except ConfigError as e:
        details = []
        if e.field:
            details.append(f"Field: {e.field}")
        if e.value is not None:
            details.append(f"Value: {e.value}")
        click.echo(format_error(e.message, details=details), err=True)
        ctx.exit(ExitCode.FAILURE)

    ctx.obj["cli_ctx"] = CLIContext(
        config=config,
        config_path=config_file,
        verbosity=verbose,
        quiet=quiet,
    )
    configure_logging(level=_log_level(quiet, verbose, config.verbosity))


for command in (translate, evaluate, review, params):
    cli.add_command(command)


if __name__ == "__main__":
    cli()
