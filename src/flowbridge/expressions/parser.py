"""Expression parser for the safe evaluator.

Parses an expression body (the text between ``={{`` / ``{{`` and ``}}``)
into an immutable AST. The grammar lives in ``grammar.lark`` and covers a
deliberately small JavaScript-like subset:

- Literals: ``42``, ``3.14``, ``"text"``, ``'text'``, ``true``, ``null``
- Property access: ``$json.user.name``, ``$json["first name"]``, ``a?.b``
- Calls: ``$str.upper($json.name)``, ``$json.items.map(i => i.id)``
- Operators: ``+ - * / %``, comparisons, ``&& || ??``, ``!``, ``c ? a : b``
- Literals built from references: ``{ id: $json.id }``, ``[1, $json.n]``

There are no statements, loops, assignments or ``new``, so a parsed
expression cannot iterate except through the bounded array helpers.

Implementation:
Lark LALR parser, built once per process from ``grammar.lark``; a
Transformer maps the parse tree onto the dataclasses below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeAlias

from lark import Lark, Token, Transformer, UnexpectedCharacters, UnexpectedInput
from lark.exceptions import VisitError

from flowbridge.expressions.dialects import extract_expression_content
from flowbridge.expressions.errors import ExpressionSyntaxError
from flowbridge.expressions.values import UNDEFINED

__all__ = [
    "Node",
    "Literal",
    "Variable",
    "Member",
    "Index",
    "Call",
    "Unary",
    "Binary",
    "Logical",
    "Conditional",
    "ArrayLiteral",
    "ObjectLiteral",
    "ArrowFunction",
    "ParsedExpression",
    "parse_expression",
    "parse_body",
]


@dataclass(frozen=True, slots=True)
class Literal:
    """Constant value (number, string, boolean, null or UNDEFINED)."""

    value: Any


@dataclass(frozen=True, slots=True)
class Variable:
    """Bare name, resolved against arrow locals, the context, then builtins."""

    name: str


@dataclass(frozen=True, slots=True)
class Member:
    """Property access ``target.name`` (``target?.name`` when optional)."""

    target: Node
    name: str
    optional: bool = False


@dataclass(frozen=True, slots=True)
class Index:
    """Computed property access ``target[key]``."""

    target: Node
    key: Node


@dataclass(frozen=True, slots=True)
class Call:
    """Function or method call."""

    callee: Node
    arguments: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class Unary:
    """Prefix operator: ``!``, ``-`` or ``+``."""

    operator: str
    operand: Node


@dataclass(frozen=True, slots=True)
class Binary:
    """Arithmetic or comparison operator."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    """Short-circuit operator: ``&&``, ``||`` or ``??``."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Conditional:
    """Ternary ``test ? consequent : alternate``."""

    test: Node
    consequent: Node
    alternate: Node


@dataclass(frozen=True, slots=True)
class ArrayLiteral:
    """Array literal ``[a, b]``."""

    elements: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class ObjectLiteral:
    """Object literal ``{ key: value }``; keys keep source order."""

    entries: tuple[tuple[str, Node], ...]


@dataclass(frozen=True, slots=True)
class ArrowFunction:
    """Arrow function ``(a, b) => body``, only meaningful as a call argument."""

    parameters: tuple[str, ...]
    body: Node


Node: TypeAlias = (
    Literal
    | Variable
    | Member
    | Index
    | Call
    | Unary
    | Binary
    | Logical
    | Conditional
    | ArrayLiteral
    | ObjectLiteral
    | ArrowFunction
)


@dataclass(frozen=True, slots=True)
class ParsedExpression:
    """A parsed expression together with its source text.

    Attributes:
        raw: Original string (wrapper included when one was present).
        body: Expression text the AST was parsed from.
        root: Root AST node.
    """

    raw: str
    body: str
    root: Node


_GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"
_GRAMMAR = _GRAMMAR_PATH.read_text()

# Immutable after construction; shared by every call
_parser = Lark(
    _GRAMMAR,
    parser="lalr",
    start="start",
    propagate_positions=False,
    maybe_placeholders=True,
)

_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}
_ARROW_PARAM_NAMES = re.compile(r"[A-Za-z_$][\w$]*")


def _unescape(match: re.Match[str]) -> str:
    sequence = match.group(1)
    if sequence[0] in "ux" and len(sequence) > 1:
        return chr(int(sequence[1:], 16))
    return _SIMPLE_ESCAPES.get(sequence, sequence)


def _string_value(token: Token) -> str:
    return _ESCAPE.sub(_unescape, str(token)[1:-1])


def _number_value(token: Token) -> int | float:
    text = str(token)
    if any(c in text for c in ".eE"):
        return float(text)
    return int(text)


def _binary_rule(operator: str) -> Any:
    """Build a transformer callback producing a Binary node for an operator."""

    def build(self: Transformer[Token, Node], items: list[Node]) -> Binary:
        return Binary(operator, items[0], items[1])

    return build


class _ExpressionTransformer(Transformer[Token, Node]):
    """Transform the Lark parse tree into AST nodes."""

    # Literals

    def number(self, items: list[Token]) -> Literal:
        return Literal(_number_value(items[0]))

    def string(self, items: list[Token]) -> Literal:
        return Literal(_string_value(items[0]))

    def true(self, items: list[Any]) -> Literal:
        return Literal(True)

    def false(self, items: list[Any]) -> Literal:
        return Literal(False)

    def null(self, items: list[Any]) -> Literal:
        return Literal(None)

    def undefined(self, items: list[Any]) -> Literal:
        return Literal(UNDEFINED)

    def variable(self, items: list[Token]) -> Variable:
        return Variable(str(items[0]))

    # Containers

    def elements(self, items: list[Node | None]) -> tuple[Node, ...]:
        return tuple(item for item in items if item is not None)

    def array(self, items: list[tuple[Node, ...] | None]) -> ArrayLiteral:
        return ArrayLiteral(items[0] or ())

    def pair(self, items: list[Any]) -> tuple[str, Node]:
        key_token: Token = items[0]
        if key_token.type == "STRING":
            key = _string_value(key_token)
        else:
            key = str(key_token)
        return key, items[1]

    def pairs(
        self, items: list[tuple[str, Node] | None]
    ) -> tuple[tuple[str, Node], ...]:
        return tuple(item for item in items if item is not None)

    def object(
        self, items: list[tuple[tuple[str, Node], ...] | None]
    ) -> ObjectLiteral:
        return ObjectLiteral(items[0] or ())

    def arguments(self, items: list[Node]) -> tuple[Node, ...]:
        return tuple(items)

    def arrow_fn(self, items: list[Any]) -> ArrowFunction:
        params_token: Token = items[0]
        if params_token.type == "ARROW_PARAMS":
            params = tuple(_ARROW_PARAM_NAMES.findall(str(params_token)))
        else:
            params = (str(params_token),)
        return ArrowFunction(parameters=params, body=items[1])

    # Postfix

    def member(self, items: list[Any]) -> Member:
        return Member(target=items[0], name=str(items[1]))

    def optional_member(self, items: list[Any]) -> Member:
        return Member(target=items[0], name=str(items[1]), optional=True)

    def index(self, items: list[Node]) -> Index:
        return Index(target=items[0], key=items[1])

    def call(self, items: list[Any]) -> Call:
        return Call(callee=items[0], arguments=items[1] or ())

    # Operators

    def not_op(self, items: list[Node]) -> Unary:
        return Unary("!", items[0])

    def negate(self, items: list[Node]) -> Unary:
        return Unary("-", items[0])

    def to_number(self, items: list[Node]) -> Unary:
        return Unary("+", items[0])

    add = _binary_rule("+")
    subtract = _binary_rule("-")
    multiply = _binary_rule("*")
    divide = _binary_rule("/")
    modulo = _binary_rule("%")
    lt = _binary_rule("<")
    gt = _binary_rule(">")
    le = _binary_rule("<=")
    ge = _binary_rule(">=")
    strict_eq = _binary_rule("===")
    strict_ne = _binary_rule("!==")
    loose_eq = _binary_rule("==")
    loose_ne = _binary_rule("!=")

    def logical_and(self, items: list[Node]) -> Logical:
        return Logical("&&", items[0], items[1])

    def logical_or(self, items: list[Node]) -> Logical:
        return Logical("||", items[0], items[1])

    def coalesce(self, items: list[Node]) -> Logical:
        return Logical("??", items[0], items[1])

    def conditional(self, items: list[Node]) -> Conditional:
        return Conditional(test=items[0], consequent=items[1], alternate=items[2])


def parse_body(body: str, raw: str | None = None) -> Node:
    """Parse an unwrapped expression body into an AST.

    Args:
        body: Expression text without its wrapper.
        raw: Original string, used in error messages.

    Returns:
        Root AST node.

    Raises:
        ExpressionSyntaxError: For empty, invalid or too deeply nested input.
    """
    original = raw if raw is not None else body
    if not body.strip():
        raise ExpressionSyntaxError("Empty expression", expression=original)

    try:
        tree = _parser.parse(body)
        result = _ExpressionTransformer().transform(tree)
    except UnexpectedCharacters as e:
        pos = e.column - 1 if e.column else 0
        raise ExpressionSyntaxError(
            f"Invalid character '{e.char}' in expression",
            expression=body,
            position=pos,
        ) from e
    except UnexpectedInput as e:
        pos = e.column - 1 if isinstance(e.column, int) and e.column > 0 else 0
        raise ExpressionSyntaxError(
            "Unexpected token in expression",
            expression=body,
            position=pos,
        ) from e
    except RecursionError as e:
        raise ExpressionSyntaxError(
            "Expression is nested too deeply", expression=original
        ) from e
    except VisitError as e:
        raise ExpressionSyntaxError(
            f"Failed to build expression: {e.orig_exc}", expression=original
        ) from e

    return result


def parse_expression(expression: str) -> ParsedExpression:
    """Parse a wrapped or unwrapped expression.

    Args:
        expression: ``={{ ... }}``, ``{{ ... }}`` or a bare body. Make-style
            numeric roots (``1.name``) are not valid here; translate Make
            expressions to n8n first.

    Returns:
        ParsedExpression holding the source text and the AST.

    Raises:
        ExpressionSyntaxError: For invalid expression syntax.

    Examples:
        >>> parse_expression("={{ $json.id }}").root
        Member(target=Variable(name='$json'), name='id', optional=False)
    """
    body = extract_expression_content(expression)
    root = parse_body(body, expression)
    return ParsedExpression(raw=expression, body=body, root=root)
