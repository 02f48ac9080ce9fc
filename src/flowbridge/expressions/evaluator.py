"""Safe evaluator for parsed expressions.

Walks the AST produced by ``flowbridge.expressions.parser`` against a
read-only context mapping:

- ``$json.user.name`` -> ``context["$json"]["user"]["name"]``
  (``context["json"]`` is used when there is no ``$json`` key)
- ``"https://example.com/api/" + $json.id`` -> string concatenation
- ``$json.items.map(i => i.price * 2)`` -> whitelisted method with a callback
- ``$str.upper($json.name)`` -> builtin from ``functions.BUILTINS``

Missing keys evaluate to ``UNDEFINED`` rather than raising. Each evaluation
is bounded by a step count and a wall-clock deadline.
"""

from __future__ import annotations

import functools
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flowbridge.config import EvaluationFallback, ExpressionConfig
from flowbridge.expressions.dialects import (
    Dialect,
    Direction,
    detect_dialect,
    extract_expression_content,
)
from flowbridge.expressions.errors import (
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ExpressionTimeoutError,
)
from flowbridge.expressions.functions import (
    BuiltinFunction,
    FunctionNamespace,
    lookup_method,
    resolve_builtin,
)
from flowbridge.expressions.parser import (
    ArrayLiteral,
    ArrowFunction,
    Binary,
    Call,
    Conditional,
    Index,
    Literal,
    Logical,
    Member,
    Node,
    ObjectLiteral,
    Unary,
    Variable,
    parse_body,
    parse_expression,
)
from flowbridge.expressions.translator import TranslationContext, translate_body
from flowbridge.expressions.values import (
    UNDEFINED,
    JsonValue,
    is_nullish,
    js_number,
    js_string,
    js_truthy,
    loose_equals,
    strict_equals,
    to_json_value,
)
from flowbridge.logging import get_logger

__all__ = [
    "ArrowClosure",
    "BoundMethod",
    "ExpressionEvaluator",
    "evaluate_expression",
    "evaluate_strict",
]

logger = get_logger(__name__)

# How many steps pass between wall-clock checks
_CLOCK_INTERVAL = 64

# Integral results within this range are returned as int
_MAX_SAFE_INTEGER = 2**53


@dataclass(frozen=True, slots=True)
class BoundMethod:
    """A whitelisted method bound to its receiver (``"abc".toUpperCase``)."""

    receiver: Any
    name: str
    function: Any = field(repr=False)

    def __call__(self, *args: Any) -> Any:
        return self.function(self.receiver, *args)


class ArrowClosure:
    """An arrow function captured with the local names visible where it appears.

    Calling it evaluates the body under the owning evaluator's budget, so a
    callback passed to ``map`` or ``filter`` cannot escape the step limit.
    """

    __slots__ = ("_evaluator", "_function", "_scope")

    def __init__(
        self,
        evaluator: ExpressionEvaluator,
        function: ArrowFunction,
        scope: Mapping[str, Any],
    ) -> None:
        self._evaluator = evaluator
        self._function = function
        self._scope = scope

    @property
    def parameters(self) -> tuple[str, ...]:
        return self._function.parameters

    def __call__(self, *args: Any) -> Any:
        scope = dict(self._scope)
        for i, name in enumerate(self._function.parameters):
            scope[name] = args[i] if i < len(args) else UNDEFINED
        return self._evaluator._eval(self._function.body, scope)

    def __repr__(self) -> str:
        return f"ArrowClosure(parameters={self._function.parameters!r})"


_CALLABLE_TYPES = (BuiltinFunction, BoundMethod, ArrowClosure)


def _normalize_number(value: int | float) -> int | float:
    if (
        isinstance(value, float)
        and math.isfinite(value)
        and value.is_integer()
        and abs(value) < _MAX_SAFE_INTEGER
    ):
        return int(value)
    return value


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _describe(node: Node) -> str:
    """Render a callee for error messages (``$str.upper``, ``items.map``)."""
    if isinstance(node, Variable):
        return node.name
    if isinstance(node, Member):
        return f"{_describe(node.target)}.{node.name}"
    return type(node).__name__.lower()


class ExpressionEvaluator:
    """Evaluates parsed expressions against a context.

    The context is never modified. Each call to ``evaluate`` starts a fresh
    budget of ``settings.max_steps`` node visits, ``settings.timeout_seconds``
    of wall-clock time and ``settings.max_built_size`` characters or items
    returned by calls and string concatenation.

    Attributes:
        context: Read-only mapping of root names (``$json``, ``$env``, ...).
        settings: Evaluation limits.

    Example:
        ```python
        evaluator = ExpressionEvaluator({"$json": {"name": "Ada"}})
        evaluator.evaluate_source("={{ $str.upper($json.name) }}")  # "ADA"
        ```
    """

    def __init__(
        self,
        context: Mapping[str, Any] | None = None,
        settings: ExpressionConfig | None = None,
    ) -> None:
        """Initialize the ExpressionEvaluator.

        Args:
            context: Root names visible to expressions.
            settings: Evaluation limits. Defaults to ``ExpressionConfig()``.
        """
        self.context: Mapping[str, Any] = context if context is not None else {}
        self.settings = settings or ExpressionConfig()
        self._expression = ""
        self._steps = 0
        self._built = 0
        self._deadline = 0.0

    def evaluate(self, node: Node, *, expression: str | None = None) -> Any:
        """Evaluate an AST node.

        Args:
            node: Root of a parsed expression.
            expression: Source text, used in error messages.

        Returns:
            The resulting value; missing references yield ``UNDEFINED``.

        Raises:
            ExpressionEvaluationError: If the expression cannot produce a value.
            ExpressionTimeoutError: If the step or time budget is exhausted.
        """
        self._expression = expression if expression is not None else repr(node)
        self._steps = 0
        self._built = 0
        self._deadline = time.monotonic() + self.settings.timeout_seconds
        result = self._eval(node, {})
        if isinstance(result, (*_CALLABLE_TYPES, FunctionNamespace)):
            raise self._error("Expression evaluates to a function, not a value")
        return result

    def evaluate_source(self, text: str) -> Any:
        """Parse and evaluate n8n expression text (wrapped or bare).

        Raises:
            ExpressionSyntaxError: If the text does not parse.
            ExpressionEvaluationError: If evaluation fails.
        """
        parsed = parse_expression(text)
        return self.evaluate(parsed.root, expression=text)

    # Budget

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self.settings.max_steps:
            raise ExpressionTimeoutError(
                self._expression, f"{self.settings.max_steps} steps"
            )
        if self._steps % _CLOCK_INTERVAL == 0 and time.monotonic() > self._deadline:
            raise ExpressionTimeoutError(
                self._expression, f"{self.settings.timeout_seconds}s"
            )

    def _charge(self, value: Any) -> Any:
        """Count the size of a freshly built value against max_built_size."""
        if isinstance(value, (str, list, tuple, dict)):
            self._built += len(value)
            if self._built > self.settings.max_built_size:
                raise ExpressionTimeoutError(
                    self._expression,
                    f"{self.settings.max_built_size} built characters or items",
                )
        return value

    def _error(self, message: str) -> ExpressionEvaluationError:
        return ExpressionEvaluationError(
            message,
            expression=self._expression,
            context_vars=tuple(str(k) for k in self.context),
        )

    # Dispatch

    def _eval(self, node: Node, scope: Mapping[str, Any]) -> Any:
        self._tick()
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Variable):
            return self._lookup(node.name, scope)
        if isinstance(node, Member):
            target = self._eval(node.target, scope)
            return self._member(target, node.name)
        if isinstance(node, Index):
            target = self._eval(node.target, scope)
            key = self._eval(node.key, scope)
            return self._index(target, key)
        if isinstance(node, Call):
            return self._call(node, scope)
        if isinstance(node, Unary):
            return self._unary(node.operator, self._eval(node.operand, scope))
        if isinstance(node, Binary):
            left = self._eval(node.left, scope)
            right = self._eval(node.right, scope)
            return self._binary(node.operator, left, right)
        if isinstance(node, Logical):
            return self._logical(node, scope)
        if isinstance(node, Conditional):
            if js_truthy(self._eval(node.test, scope)):
                return self._eval(node.consequent, scope)
            return self._eval(node.alternate, scope)
        if isinstance(node, ArrayLiteral):
            return [self._eval(element, scope) for element in node.elements]
        if isinstance(node, ObjectLiteral):
            return {key: self._eval(value, scope) for key, value in node.entries}
        if isinstance(node, ArrowFunction):
            return ArrowClosure(self, node, scope)
        raise self._error(f"Unsupported expression node: {type(node).__name__}")

    def _lookup(self, name: str, scope: Mapping[str, Any]) -> Any:
        if name in scope:
            return scope[name]
        if name in self.context:
            return self.context[name]
        if name.startswith("$") and name[1:] in self.context:
            return self.context[name[1:]]
        return resolve_builtin(name)

    def _member(self, target: Any, name: str) -> Any:
        # Access on null/undefined stays lenient: a?.b and a.b both give undefined
        if is_nullish(target):
            return UNDEFINED
        if isinstance(target, FunctionNamespace):
            function = target.get(name)
            return function if function is not None else UNDEFINED
        if isinstance(target, Mapping):
            return target.get(name, UNDEFINED)
        if name == "length" and isinstance(target, (str, list, tuple)):
            return len(target)
        method = lookup_method(target, name)
        if method is not None:
            return BoundMethod(target, name, method)
        return UNDEFINED

    def _index(self, target: Any, key: Any) -> Any:
        if is_nullish(target):
            return UNDEFINED
        if isinstance(target, (str, list, tuple)):
            position: Any = key
            if isinstance(key, str) and key.isdigit():
                position = int(key)
            if isinstance(position, float) and position.is_integer():
                position = int(position)
            if isinstance(position, int) and not isinstance(position, bool):
                if 0 <= position < len(target):
                    return target[position]
                return UNDEFINED
        return self._member(target, js_string(key))

    def _call(self, node: Call, scope: Mapping[str, Any]) -> Any:
        function = self._eval(node.callee, scope)
        if not isinstance(function, _CALLABLE_TYPES):
            raise self._error(f"'{_describe(node.callee)}' is not a function")
        args = [self._eval(argument, scope) for argument in node.arguments]
        try:
            return self._charge(function(*args))
        except ExpressionError:
            raise
        except (TypeError, ValueError, ArithmeticError) as e:
            raise self._error(f"{_describe(node.callee)}() failed: {e}") from e

    # Operators

    def _unary(self, operator: str, operand: Any) -> Any:
        if operator == "!":
            return not js_truthy(operand)
        number = js_number(operand)
        if _is_nan(number):
            raise self._error(f"Cannot convert {js_string(operand)!r} to a number")
        return -number if operator == "-" else number

    def _binary(self, operator: str, left: Any, right: Any) -> Any:
        if operator == "+":
            return self._add(left, right)
        if operator in ("-", "*", "/", "%"):
            return self._arithmetic(operator, left, right)
        if operator == "===":
            return strict_equals(left, right)
        if operator == "!==":
            return not strict_equals(left, right)
        if operator == "==":
            return loose_equals(left, right)
        if operator == "!=":
            return not loose_equals(left, right)
        return self._compare(operator, left, right)

    def _add(self, left: Any, right: Any) -> Any:
        concatenates = (str, list, tuple, dict)
        if isinstance(left, concatenates) or isinstance(right, concatenates):
            return self._charge(js_string(left) + js_string(right))
        return self._arithmetic("+", left, right)

    def _arithmetic(self, operator: str, left: Any, right: Any) -> int | float:
        a = js_number(left)
        b = js_number(right)
        if _is_nan(a) or _is_nan(b):
            raise self._error(
                f"Arithmetic on a non-number: {js_string(left)} {operator} "
                f"{js_string(right)}"
            )
        if operator in ("/", "%") and b == 0:
            raise self._error("Division by zero")
        try:
            if operator == "+":
                result = a + b
            elif operator == "-":
                result = a - b
            elif operator == "*":
                result = a * b
            elif operator == "/":
                result = a / b
            else:
                # JavaScript remainder takes the sign of the dividend
                result = math.fmod(a, b)
        except (OverflowError, ValueError) as e:
            raise self._error(f"Arithmetic failed ({operator}): {e}") from e
        if _is_nan(result):
            raise self._error(f"Arithmetic result is not a number ({operator})")
        return _normalize_number(result)

    def _compare(self, operator: str, left: Any, right: Any) -> bool:
        if isinstance(left, str) and isinstance(right, str):
            a: Any = left
            b: Any = right
        else:
            a = js_number(left)
            b = js_number(right)
            if _is_nan(a) or _is_nan(b):
                return False
        if operator == "<":
            return bool(a < b)
        if operator == ">":
            return bool(a > b)
        if operator == "<=":
            return bool(a <= b)
        return bool(a >= b)

    def _logical(self, node: Logical, scope: Mapping[str, Any]) -> Any:
        left = self._eval(node.left, scope)
        if node.operator == "&&":
            return self._eval(node.right, scope) if js_truthy(left) else left
        if node.operator == "||":
            return left if js_truthy(left) else self._eval(node.right, scope)
        return self._eval(node.right, scope) if is_nullish(left) else left


@functools.lru_cache(maxsize=1024)
def _compile(body: str) -> Node:
    return parse_body(body)


def evaluate_strict(
    expression: str,
    context: Mapping[str, Any] | None = None,
    *,
    settings: ExpressionConfig | None = None,
    translation: TranslationContext | None = None,
) -> JsonValue:
    """Evaluate an n8n or Make expression, raising on failure.

    Args:
        expression: ``={{ ... }}`` or ``{{ ... }}`` string.
        context: Root names visible to the expression. Not modified.
        settings: Evaluation limits.
        translation: Module-id resolution for Make input.

    Returns:
        The JSON value of the expression. An empty expression gives None.

    Raises:
        ExpressionSyntaxError: If the value is not an expression or its body
            does not parse.
        ExpressionEvaluationError: If evaluation fails or the body is too
            long or too deeply nested.
        ExpressionTimeoutError: If the step or time budget runs out.
    """
    config = settings or ExpressionConfig()
    dialect = detect_dialect(expression)
    if dialect is None:
        raise ExpressionSyntaxError("Not an expression", str(expression))

    body = extract_expression_content(expression)
    if not body:
        return None
    if len(body) > config.max_expression_length:
        raise ExpressionEvaluationError(
            f"Expression is longer than {config.max_expression_length} characters",
            expression,
        )

    if dialect is Dialect.MAKE:
        ctx = translation or TranslationContext(upstream_ref=config.upstream_ref)
        body = translate_body(body, Direction.MAKE_TO_N8N, ctx)
    try:
        root = _compile(body)
        value = ExpressionEvaluator(context, config).evaluate(
            root, expression=expression
        )
    except RecursionError as e:
        raise ExpressionEvaluationError(
            "Expression is nested too deeply", expression
        ) from e
    return to_json_value(value)


def evaluate_expression(
    expression: Any,
    context: Mapping[str, Any] | None = None,
    *,
    fallback: EvaluationFallback | None = None,
    settings: ExpressionConfig | None = None,
    translation: TranslationContext | None = None,
) -> Any:
    """Evaluate an n8n or Make expression against a context.

    Never raises. Values that are not expressions come back unchanged.
    Make expressions are translated to the n8n dialect first, using
    ``translation`` (or ``settings.upstream_ref``) to resolve module ids.

    Args:
        expression: ``={{ ... }}`` or ``{{ ... }}`` string.
        context: Root names visible to the expression. Not modified.
        fallback: Result when evaluation fails. Defaults to
            ``settings.fallback`` (None unless configured otherwise).
        settings: Evaluation limits.
        translation: Module-id resolution for Make input.

    Returns:
        The JSON value of the expression. Missing references give None; an
        empty expression gives None; a failed evaluation gives the fallback.

    Examples:
        >>> evaluate_expression("={{ $json.a + 1 }}", {"$json": {"a": 1}})
        2
        >>> evaluate_expression("={{ 'id-' + $json.id }}", {"json": {"id": 7}})
        'id-7'
        >>> evaluate_expression("={{ $json.missing }}", {"$json": {}}) is None
        True
    """
    if detect_dialect(expression) is None:
        return expression

    config = settings or ExpressionConfig()
    policy = fallback if fallback is not None else config.fallback
    try:
        return evaluate_strict(
            expression, context, settings=config, translation=translation
        )
    except ExpressionError as e:
        logger.warning(
            "expression_evaluation_failed",
            expression=expression,
            error=e.message,
        )
        return expression if policy is EvaluationFallback.ORIGINAL else None
