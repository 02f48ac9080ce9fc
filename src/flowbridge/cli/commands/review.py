from __future__ import annotations

import click

from flowbridge.cli.console import console
from flowbridge.cli.context import ExitCode
from flowbridge.cli.output import (
    OutputFormat,
    format_error,
    format_json,
    review_reason_table,
)
from flowbridge.expressions import detect_dialect, review_reasons


@click.command()
@click.argument("expression")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.TEXT.value,
    help="Output format.",
)
def review(expression: str, fmt: str) -> None:
    """Check whether an expression needs a human look after conversion.

    Exits with status 2 when any review reason applies.

    Examples:
        flowbridge review '={{ $json.items.map(i => i.id) }}'
        flowbridge review '{{formatDate(now; "YYYY-MM-DD")}}' --format json
    """
    dialect = detect_dialect(expression)
    if dialect is None:
        click.echo(format_error("Not an expression", details=[expression]), err=True)
        raise SystemExit(ExitCode.FAILURE)

    reasons = review_reasons(expression)
    if fmt == OutputFormat.JSON.value:
        click.echo(
            format_json(
                {
                    "expression": expression,
                    "dialect": dialect.value,
                    "needs_review": bool(reasons),
                    "reasons": [reason.value for reason in reasons],
                }
            )
        )
    elif reasons:
        console.print(review_reason_table(reasons))
    else:
        console.print("[green]No review needed[/green]")

    if reasons:
        raise SystemExit(ExitCode.PARTIAL)
