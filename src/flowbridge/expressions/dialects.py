"""Expression dialects and the expression detector.

Two wrapper syntaxes are recognised:

- n8n:  ``={{ $json.name }}``  leading ``=``, then ``{{`` ... ``}}``
- Make: ``{{1.name}}``         bare ``{{`` ... ``}}``

A string is an expression if and only if it carries its dialect's wrapper.
Detection runs on every leaf of every parameter tree, so it is a pair of
``startswith``/``endswith`` checks and nothing more.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

__all__ = [
    "Dialect",
    "Direction",
    "is_expression",
    "detect_dialect",
    "extract_expression_content",
    "wrap_expression",
]

_N8N_PREFIX = "={{"
_MAKE_PREFIX = "{{"
_SUFFIX = "}}"


class Dialect(str, Enum):
    """Expression dialect of a workflow platform."""

    N8N = "n8n"
    MAKE = "make"


class Direction(str, Enum):
    """Conversion direction between dialects."""

    N8N_TO_MAKE = "n8n_to_make"
    MAKE_TO_N8N = "make_to_n8n"

    @property
    def source(self) -> Dialect:
        """Dialect expressions are converted from."""
        return Dialect.N8N if self is Direction.N8N_TO_MAKE else Dialect.MAKE

    @property
    def target(self) -> Dialect:
        """Dialect expressions are converted to."""
        return Dialect.MAKE if self is Direction.N8N_TO_MAKE else Dialect.N8N

    @classmethod
    def between(cls, source: Dialect, target: Dialect) -> Direction:
        """Return the direction converting ``source`` into ``target``.

        Raises:
            ValueError: If source and target are the same dialect.
        """
        if source is target:
            raise ValueError(f"No conversion direction from {source.value} to itself")
        return cls.N8N_TO_MAKE if source is Dialect.N8N else cls.MAKE_TO_N8N


def _is_n8n(value: str) -> bool:
    return (
        value.startswith(_N8N_PREFIX)
        and value.endswith(_SUFFIX)
        and len(value) >= len(_N8N_PREFIX) + len(_SUFFIX)
    )


def _is_make(value: str) -> bool:
    return (
        value.startswith(_MAKE_PREFIX)
        and value.endswith(_SUFFIX)
        and len(value) >= len(_MAKE_PREFIX) + len(_SUFFIX)
    )


def is_expression(value: Any, dialect: Dialect | None = None) -> bool:
    """Check whether a value is an expression.

    Args:
        value: Any JSON leaf value.
        dialect: Dialect whose wrapper must match. ``None`` accepts either.

    Returns:
        True only for strings carrying the dialect's wrapper.

    Examples:
        >>> is_expression("={{ $json.id }}", Dialect.N8N)
        True
        >>> is_expression("={{ $json.id }}", Dialect.MAKE)
        False
        >>> is_expression("{{1.id}}")
        True
        >>> is_expression(42)
        False
    """
    if not isinstance(value, str):
        return False
    if dialect is Dialect.N8N:
        return _is_n8n(value)
    if dialect is Dialect.MAKE:
        return _is_make(value)
    return _is_n8n(value) or _is_make(value)


def detect_dialect(value: Any) -> Dialect | None:
    """Return the dialect whose wrapper ``value`` carries, or None."""
    if not isinstance(value, str):
        return None
    if _is_n8n(value):
        return Dialect.N8N
    if _is_make(value):
        return Dialect.MAKE
    return None


def extract_expression_content(value: str) -> str:
    """Strip the wrapper from an expression and trim the body.

    Non-expression strings are returned unchanged.

    Examples:
        >>> extract_expression_content("={{ $json.data }}")
        '$json.data'
        >>> extract_expression_content("{{1.data}}")
        '1.data'
        >>> extract_expression_content("plain text")
        'plain text'
    """
    dialect = detect_dialect(value)
    if dialect is Dialect.N8N:
        return value[len(_N8N_PREFIX) : -len(_SUFFIX)].strip()
    if dialect is Dialect.MAKE:
        return value[len(_MAKE_PREFIX) : -len(_SUFFIX)].strip()
    return value


def wrap_expression(body: str, dialect: Dialect) -> str:
    """Wrap an expression body in the dialect's delimiters.

    n8n output carries single spaces inside the braces; Make output has none.

    Examples:
        >>> wrap_expression("$json.name", Dialect.N8N)
        '={{ $json.name }}'
        >>> wrap_expression("1.name", Dialect.MAKE)
        '{{1.name}}'
    """
    body = body.strip()
    if dialect is Dialect.N8N:
        return f"{_N8N_PREFIX} {body} {_SUFFIX}" if body else f"{_N8N_PREFIX}{_SUFFIX}"
    return f"{_MAKE_PREFIX}{body}{_SUFFIX}"
