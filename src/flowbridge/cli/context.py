"""CLI context and exit codes for flowbridge."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

import click

from flowbridge.config import FlowbridgeConfig

__all__ = [
    "ExitCode",
    "CLIContext",
    "get_cli_context",
]


class ExitCode(IntEnum):
    """Standard exit codes for the flowbridge CLI.

    - 0 for success
    - 1 for failure
    - 2 when the command succeeded but flagged expressions for review
    - 130 for keyboard interrupt (128 + SIGINT=2)
    """

    SUCCESS = 0
    FAILURE = 1
    PARTIAL = 2
    INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Type-safe CLI context containing global options and configuration.

    Attributes:
        config: Loaded flowbridge configuration.
        config_path: Path to config file (if specified via --config).
        verbosity: Verbosity level (0=default, 1=INFO, 2+=DEBUG).
        quiet: Suppress non-essential output.
    """

    config: FlowbridgeConfig
    config_path: Path | None = None
    verbosity: int = 0
    quiet: bool = False


def get_cli_context(ctx: click.Context) -> CLIContext:
    """Return the CLIContext stored by the root command.

    Commands invoked without the root group (as in some tests) get a context
    built from the default configuration.
    """
    obj = ctx.find_root().obj
    if isinstance(obj, dict) and isinstance(obj.get("cli_ctx"), CLIContext):
        return obj["cli_ctx"]
    return CLIContext(config=FlowbridgeConfig())
