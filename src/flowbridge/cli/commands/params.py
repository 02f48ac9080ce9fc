from __future__ import annotations

from pathlib import Path

import click

from flowbridge.cli.common import (
    load_context_file,
    load_data_file,
    parse_node_names,
    parse_upstream_ref,
)
from flowbridge.cli.console import err_console
from flowbridge.cli.context import ExitCode, get_cli_context
from flowbridge.cli.output import (
    OutputFormat,
    format_json,
    format_warning,
    review_flag_dict,
    review_flag_table,
)
from flowbridge.expressions import Direction, TranslationContext
from flowbridge.logging import bind_context, clear_context, get_logger
from flowbridge.parameters import ProcessingMode, process_parameters


@click.command()
@click.argument(
    "params_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-d",
    "--direction",
    type=click.Choice([d.value for d in Direction]),
    default=Direction.N8N_TO_MAKE.value,
    help="Conversion direction.",
)
@click.option(
    "-m",
    "--mode",
    type=click.Choice([m.value for m in ProcessingMode]),
    default=ProcessingMode.TRANSLATE.value,
    help="Translate expressions or replace them with their values.",
)
@click.option(
    "--context",
    "context_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Evaluation context for --mode evaluate.",
)
@click.option("--ref", "upstream_ref", default=None, help="Upstream module id.")
@click.option(
    "--node",
    "nodes",
    multiple=True,
    metavar="ID=NAME",
    help="Map a Make module id to an n8n node name. Repeatable.",
)
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.TEXT.value,
    help="Output format.",
)
@click.pass_context
def params(
    ctx: click.Context,
    params_file: Path,
    direction: str,
    mode: str,
    context_file: Path | None,
    upstream_ref: str | None,
    nodes: tuple[str, ...],
    fmt: str,
) -> None:
    """Process every expression in a parameter file (JSON or YAML).

    Prints the new parameter tree. Exits with status 2 when any expression
    was flagged for review.

    Examples:
        flowbridge params node.json --direction n8n_to_make --ref 3
        flowbridge params mapper.yaml -d make_to_n8n -m evaluate --context item.json
    """
    logger = get_logger(__name__)
    settings = get_cli_context(ctx).config.expressions

    tree = load_data_file(params_file)
    processing_mode = ProcessingMode(mode)
    context = (
        load_context_file(context_file)
        if processing_mode is ProcessingMode.EVALUATE
        else None
    )
    translation = TranslationContext(
        upstream_ref=parse_upstream_ref(upstream_ref, settings.upstream_ref),
        node_names=parse_node_names(nodes),
    )

    bind_context(params_file=params_file.name)
    try:
        result = process_parameters(
            tree,
            Direction(direction),
            processing_mode,
            context,
            translation=translation,
            settings=settings,
        )
    finally:
        clear_context()
    logger.debug(
        "parameters_processed",
        file=str(params_file),
        flagged=len(result.review_flags),
    )

    if fmt == OutputFormat.JSON.value:
        click.echo(
            format_json(
                {
                    "parameters": result.parameters,
                    "review_flags": [review_flag_dict(f) for f in result.review_flags],
                }
            )
        )
    else:
        click.echo(format_json(result.parameters))
        if result.needs_review:
            err_console.print(review_flag_table(result.review_flags))
            click.echo(
                format_warning(
                    f"{len(result.review_flags)} expression(s) need review"
                ),
                err=True,
            )

    if result.needs_review:
        raise SystemExit(ExitCode.PARTIAL)
