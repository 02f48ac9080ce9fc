"""Lexical scanner shared by the translator and the review classifier.

Neither consumer needs a full parse: the translator only renames roots and
callees, and the classifier only looks for shapes. Both work on the same flat
token stream, which also accepts Make bodies (``1.name``, backtick module
names, ``;`` separators) that the evaluator's grammar rejects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from flowbridge.expressions.errors import ExpressionSyntaxError

__all__ = [
    "Token",
    "scan",
    "next_significant",
    "prev_significant",
    "is_root_position",
    "is_object_key",
    "is_call",
    "arrow_parameters",
    "dotted_chain",
    "closing_index",
]

_TOKEN_PATTERN: Final = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|`(?:[^`\\]|\\.)*`)
    |(?P<name>[A-Za-z_$][\w$]*)
    |(?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
    |(?P<punct>=>|\?\.(?!\d)|\?\?|===|!==|==|!=|<=|>=|&&|\|\||[^\s\w$"'`])
    """,
    re.VERBOSE | re.DOTALL,
)

_OPENERS: Final = {"(": ")", "[": "]", "{": "}"}
_CLOSERS: Final = {v: k for k, v in _OPENERS.items()}


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical token of an expression body.

    Attributes:
        kind: One of "space", "string", "name", "number", "punct".
        text: Exact source text of the token.
    """

    kind: str
    text: str


def scan(body: str) -> list[Token]:
    """Split an expression body into tokens.

    Args:
        body: Expression text without its wrapper.

    Returns:
        Tokens whose texts concatenate back to ``body``.

    Raises:
        ExpressionSyntaxError: For unterminated strings or unbalanced brackets.

    Examples:
        >>> [t.text for t in scan("1.name + 'x'")]
        ['1', '.', 'name', ' ', '+', ' ', "'x'"]
    """
    tokens: list[Token] = []
    stack: list[tuple[str, int]] = []
    pos = 0
    while pos < len(body):
        match = _TOKEN_PATTERN.match(body, pos)
        if match is None:
            # Only an unmatched quote character can fail every alternative
            raise ExpressionSyntaxError(
                "Unterminated string literal", expression=body, position=pos
            )
        kind = match.lastgroup or "punct"
        text = match.group()
        if kind == "punct":
            if text in _OPENERS:
                stack.append((text, pos))
            elif text in _CLOSERS:
                if not stack or stack[-1][0] != _CLOSERS[text]:
                    raise ExpressionSyntaxError(
                        f"Unmatched '{text}'", expression=body, position=pos
                    )
                stack.pop()
        tokens.append(Token(kind, text))
        pos = match.end()
    if stack:
        opener, opened_at = stack[-1]
        raise ExpressionSyntaxError(
            f"Unclosed '{opener}'", expression=body, position=opened_at
        )
    return tokens


def next_significant(tokens: list[Token], index: int) -> int | None:
    """Index of the first non-space token at or after ``index``."""
    for j in range(index, len(tokens)):
        if tokens[j].kind != "space":
            return j
    return None


def prev_significant(tokens: list[Token], index: int) -> int | None:
    """Index of the last non-space token at or before ``index``."""
    for j in range(index, -1, -1):
        if tokens[j].kind != "space":
            return j
    return None


def is_root_position(tokens: list[Token], index: int) -> bool:
    """True unless the token follows a ``.`` or ``?.`` member access."""
    prev = prev_significant(tokens, index - 1)
    return prev is None or tokens[prev].text not in (".", "?.")


def is_object_key(tokens: list[Token], index: int) -> bool:
    nxt = next_significant(tokens, index + 1)
    prev = prev_significant(tokens, index - 1)
    return (
        nxt is not None
        and tokens[nxt].text == ":"
        and prev is not None
        and tokens[prev].text in ("{", ",")
    )


def is_call(tokens: list[Token], index: int) -> bool:
    """True if the next significant token at or after ``index`` is ``(``."""
    nxt = next_significant(tokens, index)
    return nxt is not None and tokens[nxt].text == "("


def arrow_parameters(tokens: list[Token]) -> set[str]:
    """Collect names bound by arrow functions anywhere in the body."""
    names: set[str] = set()
    for i, token in enumerate(tokens):
        if token.text != "=>":
            continue
        prev = prev_significant(tokens, i - 1)
        if prev is None:
            continue
        if tokens[prev].kind == "name":
            names.add(tokens[prev].text)
        elif tokens[prev].text == ")":
            j = prev - 1
            while j >= 0 and tokens[j].text != "(":
                if tokens[j].kind == "name":
                    names.add(tokens[j].text)
                j -= 1
    return names


def dotted_chain(tokens: list[Token], index: int) -> tuple[str, int]:
    """Read ``name(.name)*`` starting at ``index``.

    Returns:
        The dotted text and the index just past the chain.
    """
    parts = [tokens[index].text]
    j = index + 1
    while (
        j + 1 < len(tokens)
        and tokens[j].text == "."
        and tokens[j + 1].kind == "name"
    ):
        parts.append(tokens[j + 1].text)
        j += 2
    return ".".join(parts), j


def closing_index(tokens: list[Token], open_index: int) -> int:
    """Index of the bracket closing the one at ``open_index``.

    Assumes ``tokens`` came from ``scan`` and is therefore balanced.
    """
    depth = 0
    for j in range(open_index, len(tokens)):
        text = tokens[j].text
        if tokens[j].kind != "punct":
            continue
        if text in _OPENERS:
            depth += 1
        elif text in _CLOSERS:
            depth -= 1
            if depth == 0:
                return j
    return len(tokens) - 1
