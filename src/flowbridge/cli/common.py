"""Shared helpers for flowbridge CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
import yaml

from flowbridge.expressions.context import ExpressionContextBuilder

__all__ = [
    "load_data_file",
    "load_context_file",
    "parse_upstream_ref",
    "parse_node_names",
]


def load_data_file(path: Path) -> Any:
    """Read a JSON or YAML document.

    JSON is a subset of YAML, so one loader serves both.

    Raises:
        click.BadParameter: If the file cannot be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise click.BadParameter(f"Cannot read {path}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise click.BadParameter(f"Cannot parse {path}: {e}") from e


def load_context_file(path: Path | None) -> dict[str, Any]:
    """Build an n8n evaluation context from a data file.

    A document with a ``$json`` key is used as a full context (its other
    roots such as ``$node`` or ``$workflow`` are kept); any other mapping is
    taken as the ``$json`` item data.
    """
    builder = ExpressionContextBuilder()
    if path is None:
        return builder.build_n8n_context()
    data = load_data_file(path)
    if data is None:
        return builder.build_n8n_context()
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a mapping")
    if "$json" in data:
        return builder.with_custom_variables(data).build_n8n_context()
    return builder.with_json_data(data).build_n8n_context()


def parse_upstream_ref(value: str | None, default: int) -> int:
    """Return the module id given with ``--ref``.

    Raises:
        click.BadParameter: If the value is not a non-negative integer. Make
            references modules by number only.
    """
    if value is None:
        return default
    text = value.strip()
    if not text.isascii() or not text.isdigit():
        raise click.BadParameter(
            f"Expected a numeric module id, got {value!r}", param_hint="'--ref'"
        )
    return int(text)


def parse_node_names(pairs: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated ``--node ID=NAME`` options into a module id -> name map.

    Raises:
        click.BadParameter: If a pair has no ``=``.
    """
    names: dict[str, str] = {}
    for pair in pairs:
        module_id, sep, name = pair.partition("=")
        if not sep or not module_id:
            raise click.BadParameter(f"Expected ID=NAME, got {pair!r}")
        names[module_id.strip()] = name.strip()
    return names
