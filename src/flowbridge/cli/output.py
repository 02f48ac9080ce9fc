"""Output formatting utilities for the flowbridge CLI."""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Any

from rich.table import Table
from rich.text import Text

from flowbridge.expressions.review import ReviewReason
from flowbridge.parameters import ReviewFlag

__all__ = [
    "OutputFormat",
    "format_error",
    "format_warning",
    "format_json",
    "review_flag_table",
    "review_reason_table",
    "review_flag_dict",
]


class OutputFormat(str, Enum):
    """Supported output formats for CLI commands.

    Values:
        TEXT: Human-readable output with Rich tables.
        JSON: Machine-readable JSON output.
    """

    TEXT = "text"
    JSON = "json"


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Example:
        >>> print(format_error("Bad input", details=["line 3"], suggestion="Fix it"))
        Error: Bad input
          line 3
        Suggestion: Fix it
    """
    lines = [f"Error: {message}"]
    if details:
        for detail in details:
            lines.append(f"  {detail}")
    if suggestion:
        lines.append(f"Suggestion: {suggestion}")
    return "\n".join(lines)


def format_warning(message: str) -> str:
    """Format a warning message.

    Example:
        >>> format_warning("2 expressions need review")
        'Warning: 2 expressions need review'
    """
    return f"Warning: {message}"


def format_json(data: Any) -> str:
    """Format data as indented JSON, keeping non-ASCII text readable."""
    return json.dumps(data, indent=2, ensure_ascii=False)


def review_flag_dict(flag: ReviewFlag) -> dict[str, Any]:
    return {
        "path": flag.path,
        "expression": flag.expression,
        "reason": flag.reason,
        "reasons": [reason.value for reason in flag.reasons],
    }


def review_reason_table(reasons: Sequence[ReviewReason]) -> Table:
    table = Table(title="Review Reasons", show_lines=False)
    table.add_column("Reason", style="yellow")
    table.add_column("Description")
    for reason in reasons:
        table.add_row(reason.value, reason.description)
    return table


def review_flag_table(flags: Sequence[ReviewFlag]) -> Table:
    """Build a Rich table with one row per flagged expression."""
    table = Table(title="Expressions Needing Review", show_lines=False)
    table.add_column("Path", style="cyan")
    table.add_column("Expression")
    table.add_column("Reasons", style="yellow")
    for flag in flags:
        table.add_row(
            Text(flag.path or "(root)"),
            Text(flag.expression),
            ", ".join(reason.value for reason in flag.reasons),
        )
    return table
