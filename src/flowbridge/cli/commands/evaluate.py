from __future__ import annotations

from pathlib import Path

import click

from flowbridge.cli.common import load_context_file, parse_upstream_ref
from flowbridge.cli.context import ExitCode, get_cli_context
from flowbridge.cli.output import format_error, format_json
from flowbridge.expressions import (
    Dialect,
    ExpressionError,
    ExpressionErrorInfo,
    TranslationContext,
    detect_dialect,
    evaluate_strict,
    wrap_expression,
)
from flowbridge.logging import get_logger


@click.command()
@click.argument("expression")
@click.option(
    "--context",
    "context_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON or YAML file with item data or a full context.",
)
@click.option(
    "--ref",
    "upstream_ref",
    default=None,
    help="Make module id whose data is the item data (defaults to config).",
)
@click.pass_context
def evaluate(
    ctx: click.Context,
    expression: str,
    context_file: Path | None,
    upstream_ref: str | None,
) -> None:
    """Evaluate an expression and print its value as JSON.

    A bare body such as ``$json.a + 1`` is treated as an n8n expression.

    Examples:
        flowbridge evaluate '={{ $json.price * 2 }}' --context item.json
        flowbridge evaluate '$str.upper("hi")'
    """
    logger = get_logger(__name__)
    settings = get_cli_context(ctx).config.expressions

    if detect_dialect(expression) is None:
        expression = wrap_expression(expression, Dialect.N8N)
    context = load_context_file(context_file)
    translation = TranslationContext(
        upstream_ref=parse_upstream_ref(upstream_ref, settings.upstream_ref)
    )

    try:
        value = evaluate_strict(
            expression, context, settings=settings, translation=translation
        )
    except ExpressionError as e:
        info = ExpressionErrorInfo.from_error(e, expression)
        logger.debug(
            "cli_evaluation_failed",
            expression=info.expression,
            kind=info.kind,
            position=info.position,
        )
        click.echo(format_error(info.message), err=True)
        raise SystemExit(ExitCode.FAILURE) from e

    click.echo(format_json(value))
