"""Structural translation of expressions between the n8n and Make dialects.

Translation rewrites names, it never evaluates. The expression body is split
into lexical tokens (strings, names, numbers, punctuation, whitespace), the
variable roots and function names found in ``tables`` are replaced, and the
tokens are joined back together. Operators, literals, punctuation and
whitespace inside the body pass through unchanged.

    ={{ $json.name }}                 <->  {{1.name}}
    ={{ $str.upper($env.REGION) }}    <->  {{upper(env.REGION)}}
    ={{ $node["Fetch"].json.id }}     <->  {{Fetch.id}}

The numeric module id Make uses for the upstream item is resolved by the
caller and passed in through ``TranslationContext``; this module never looks
at the workflow graph.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from flowbridge.constants import DEFAULT_UPSTREAM_REF
from flowbridge.expressions.dialects import (
    Dialect,
    Direction,
    detect_dialect,
    extract_expression_content,
    wrap_expression,
)
from flowbridge.expressions.errors import ExpressionSyntaxError
from flowbridge.expressions.tables import (
    JS_GLOBALS,
    MAKE_KEYWORD_ROOTS,
    MAKE_TO_N8N_FUNCTIONS,
    MAKE_TO_N8N_ROOTS,
    N8N_DATA_ROOT,
    N8N_NODE_ROOT,
    N8N_TO_MAKE_FUNCTIONS,
    N8N_TO_MAKE_ROOTS,
)
from flowbridge.expressions.tokens import (
    Token,
    arrow_parameters,
    dotted_chain,
    is_call,
    is_object_key,
    is_root_position,
    next_significant,
    scan,
)
from flowbridge.logging import get_logger

__all__ = [
    "TranslationContext",
    "translate_expression",
    "translate_body",
]

logger = get_logger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*\Z")

# Tokens that continue a module root into a member or index access
_ACCESSORS = frozenset({".", "?.", "["})


@dataclass(frozen=True, slots=True)
class TranslationContext:
    """Caller-resolved graph facts needed to translate references.

    Attributes:
        upstream_ref: Numeric Make module id of the immediate predecessor;
            ``$json`` translates to it and back.
        node_names: Make module id -> n8n node name, used when a Make
            expression references a module other than ``upstream_ref``.
    """

    upstream_ref: int = DEFAULT_UPSTREAM_REF
    node_names: Mapping[str, str] = field(default_factory=dict)


def _unquote(literal: str) -> str:
    return literal[1:-1]


def _module_name(name: str) -> str:
    return name if _IDENTIFIER.match(name) else f"`{name}`"


def _node_reference(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'{N8N_NODE_ROOT}["{escaped}"].json'


def _n8n_to_make(tokens: list[Token], context: TranslationContext) -> str:
    local_names = arrow_parameters(tokens)
    out: list[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if (
            token.kind != "name"
            or not is_root_position(tokens, i)
            or token.text in local_names
            or token.text in JS_GLOBALS
            or is_object_key(tokens, i)
        ):
            out.append(token.text)
            i += 1
            continue

        chain, end = dotted_chain(tokens, i)
        if is_call(tokens, end) and chain in N8N_TO_MAKE_FUNCTIONS:
            out.append(N8N_TO_MAKE_FUNCTIONS[chain])
            i = end
            continue

        if token.text == N8N_DATA_ROOT:
            out.append(str(context.upstream_ref))
            i += 1
            continue

        if token.text == N8N_NODE_ROOT:
            # $node["Name"].json -> Name
            if (
                i + 5 < len(tokens)
                and tokens[i + 1].text == "["
                and tokens[i + 2].kind == "string"
                and tokens[i + 3].text == "]"
                and tokens[i + 4].text == "."
                and tokens[i + 5].text == "json"
            ):
                out.append(_module_name(_unquote(tokens[i + 2].text)))
                i += 6
                continue
            out.append(token.text)
            i += 1
            continue

        out.append(N8N_TO_MAKE_ROOTS.get(token.text, token.text))
        i += 1
    return "".join(out)


def _make_module_root(module_id: str, context: TranslationContext) -> str:
    if module_id == str(context.upstream_ref):
        return N8N_DATA_ROOT
    if module_id in context.node_names:
        return _node_reference(context.node_names[module_id])
    return _node_reference(module_id)


def _make_to_n8n(tokens: list[Token], context: TranslationContext) -> str:
    local_names = arrow_parameters(tokens)
    out: list[str] = []
    for i, token in enumerate(tokens):
        if not is_root_position(tokens, i):
            out.append(token.text)
            continue

        nxt = next_significant(tokens, i + 1)
        followed_by_access = nxt == i + 1 and tokens[nxt].text in _ACCESSORS

        if token.kind == "number" and followed_by_access and token.text.isdigit():
            out.append(_make_module_root(token.text, context))
            continue

        if token.kind == "string" and token.text.startswith("`") and followed_by_access:
            out.append(_node_reference(_unquote(token.text)))
            continue

        if (
            token.kind != "name"
            or token.text.startswith("$")
            or token.text in local_names
            or token.text in JS_GLOBALS
            or is_object_key(tokens, i)
        ):
            out.append(token.text)
            continue

        if is_call(tokens, i + 1):
            out.append(MAKE_TO_N8N_FUNCTIONS.get(token.text, token.text))
        elif token.text in MAKE_TO_N8N_ROOTS:
            out.append(MAKE_TO_N8N_ROOTS[token.text])
        elif token.text in MAKE_KEYWORD_ROOTS:
            out.append(token.text)
        elif followed_by_access:
            out.append(_node_reference(token.text))
        else:
            out.append(token.text)
    return "".join(out)


def translate_body(
    body: str,
    direction: Direction,
    context: TranslationContext | None = None,
) -> str:
    """Translate an unwrapped expression body.

    Raises:
        ExpressionSyntaxError: If the body cannot be tokenized or holds a
            second expression wrapper.
    """
    if "{{" in body:
        raise ExpressionSyntaxError(
            "Nested expression wrapper", expression=body, position=body.index("{{")
        )
    ctx = context or TranslationContext()
    tokens = scan(body)
    if direction is Direction.N8N_TO_MAKE:
        return _n8n_to_make(tokens, ctx)
    return _make_to_n8n(tokens, ctx)


def translate_expression(
    expression: str,
    direction: Direction,
    context: TranslationContext | None = None,
) -> str:
    """Translate an expression from the direction's source dialect to its target.

    Never raises. Strings that are not expressions of the source dialect, and
    expressions whose body cannot be tokenized (unbalanced brackets, stray
    quotes, a second ``{{ }}`` inside the body), are returned unchanged so
    the review classifier can flag them.

    Args:
        expression: Wrapped expression string.
        direction: Conversion direction.
        context: Caller-resolved upstream module id and node names.

    Returns:
        The translated, re-wrapped expression, or ``expression`` itself.

    Examples:
        >>> translate_expression("={{ $json.name }}", Direction.N8N_TO_MAKE)
        '{{1.name}}'
        >>> translate_expression("{{1.name}}", Direction.MAKE_TO_N8N)
        '={{ $json.name }}'
    """
    if detect_dialect(expression) is not direction.source:
        return expression

    body = extract_expression_content(expression)
    try:
        translated = translate_body(body, direction, context)
    except ExpressionSyntaxError as e:
        logger.debug(
            "expression_not_translated",
            expression=expression,
            reason=e.message,
        )
        return expression

    target: Dialect = direction.target
    return wrap_expression(translated, target)
