from __future__ import annotations

import click

from flowbridge.cli.common import parse_node_names, parse_upstream_ref
from flowbridge.cli.console import err_console
from flowbridge.cli.context import ExitCode, get_cli_context
from flowbridge.cli.output import format_error, format_warning
from flowbridge.expressions import (
    Dialect,
    Direction,
    TranslationContext,
    detect_dialect,
    review_reasons,
    translate_expression,
)
from flowbridge.logging import get_logger


@click.command()
@click.argument("expression")
@click.option(
    "--to",
    "target",
    type=click.Choice([d.value for d in Dialect]),
    default=None,
    help="Target dialect. Defaults to the dialect the expression is not in.",
)
@click.option(
    "--ref",
    "upstream_ref",
    default=None,
    help="Make module id of the upstream node (defaults to config).",
)
@click.option(
    "--node",
    "nodes",
    multiple=True,
    metavar="ID=NAME",
    help="Map a Make module id to an n8n node name. Repeatable.",
)
@click.pass_context
def translate(
    ctx: click.Context,
    expression: str,
    target: str | None,
    upstream_ref: str | None,
    nodes: tuple[str, ...],
) -> None:
    """Translate an expression between the n8n and Make dialects.

    The translated expression is printed to stdout. Review reasons, if any,
    go to stderr and the command exits with status 2.

    Examples:
        flowbridge translate '={{ $json.email }}'
        flowbridge translate '{{2.name}}' --to n8n --node 2="Fetch User"
    """
    logger = get_logger(__name__)
    settings = get_cli_context(ctx).config.expressions

    source = detect_dialect(expression)
    if source is None:
        click.echo(
            format_error(
                "Not an expression",
                details=[expression],
                suggestion="Wrap it as ={{ ... }} (n8n) or {{ ... }} (Make)",
            ),
            err=True,
        )
        raise SystemExit(ExitCode.FAILURE)

    target_dialect = Dialect(target) if target else None
    if target_dialect is None:
        target_dialect = Dialect.MAKE if source is Dialect.N8N else Dialect.N8N
    if target_dialect is source:
        click.echo(expression)
        return

    translation = TranslationContext(
        upstream_ref=parse_upstream_ref(upstream_ref, settings.upstream_ref),
        node_names=parse_node_names(nodes),
    )
    direction = Direction.between(source, target_dialect)
    result = translate_expression(expression, direction, translation)
    logger.debug("expression_translated", direction=direction.value, result=result)
    click.echo(result)

    reasons = review_reasons(expression)
    if reasons:
        for reason in reasons:
            err_console.print(format_warning(reason.description), markup=False)
        raise SystemExit(ExitCode.PARTIAL)
