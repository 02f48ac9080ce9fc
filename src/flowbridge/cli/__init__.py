"""CLI utilities for flowbridge.

This module provides CLI-specific utilities including context management,
output formatting and data file loading.
"""

from __future__ import annotations

from flowbridge.cli.context import CLIContext, ExitCode
from flowbridge.cli.output import OutputFormat

__all__ = [
    "CLIContext",
    "ExitCode",
    "OutputFormat",
]
