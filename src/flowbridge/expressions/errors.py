"""Errors raised inside the expression engine.

The public batch functions (``evaluate_expression``, ``translate_expression``,
``process_parameters``) catch these and apply their fallback policy. Callers
that drive the parser, ``evaluate_strict`` or ``ExpressionEvaluator``
directly see them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from flowbridge.exceptions import FlowbridgeError

# Characters shown on each side of a syntax error position
_POINTER_WINDOW = 40

ErrorKind = Literal["syntax", "evaluation", "timeout"]


def _pointer(expression: str, position: int) -> str:
    """Render ``expression`` with a caret under ``position``.

    Long expressions are cut to a window around the position so the caret
    line stays readable.
    """
    start = max(0, position - _POINTER_WINDOW)
    end = min(len(expression), position + _POINTER_WINDOW)
    head = "..." if start > 0 else ""
    tail = "..." if end < len(expression) else ""
    snippet = f"{head}{expression[start:end]}{tail}"
    return f"{snippet}\n{' ' * (len(head) + position - start)}^"


class ExpressionError(FlowbridgeError):
    """Base class of expression errors.

    Attributes:
        message: Full human-readable message.
        expression: Expression text the error refers to, if known.
    """

    kind: ErrorKind = "evaluation"

    def __init__(self, message: str, expression: str | None = None) -> None:
        self.expression = expression
        super().__init__(message)


class ExpressionSyntaxError(ExpressionError):
    """An expression body could not be tokenized or parsed.

    Attributes:
        position: Offset into ``expression`` where parsing failed, 0 when
            the error concerns the whole text.
    """

    kind: ErrorKind = "syntax"

    def __init__(self, message: str, expression: str, position: int = 0) -> None:
        self.position = position
        if position > 0 and expression:
            text = f"{message} at position {position}:\n"
            text += _pointer(expression, position)
        else:
            text = f"{message}: {expression}"
        super().__init__(text, expression=expression)


class ExpressionEvaluationError(ExpressionError):
    """An expression parsed but produced no value.

    Examples are calling a non-function, arithmetic giving NaN and division
    by zero. A missing context key is not an error; it evaluates to
    ``UNDEFINED``.

    Attributes:
        context_vars: Top-level context keys, listed in the message to help
            spot a misspelt root such as ``$jsno``.
    """

    def __init__(
        self,
        message: str,
        expression: str,
        context_vars: tuple[str, ...] = (),
    ) -> None:
        self.context_vars = context_vars
        text = f"{message} in expression: {expression}"
        if context_vars:
            text += f"\nAvailable variables: {', '.join(sorted(context_vars))}"
        super().__init__(text, expression=expression)


class ExpressionTimeoutError(ExpressionEvaluationError):
    """An evaluation ran out of steps or wall-clock time.

    Attributes:
        limit: The exhausted limit, e.g. ``"0.25s"`` or ``"100000 steps"``.
    """

    kind: ErrorKind = "timeout"

    def __init__(self, expression: str, limit: str) -> None:
        self.limit = limit
        super().__init__(f"Evaluation budget exceeded ({limit})", expression)


@dataclass(frozen=True, slots=True)
class ExpressionErrorInfo:
    """Plain record of an expression failure, for reports and JSON output."""

    expression: str
    message: str
    kind: ErrorKind = "evaluation"
    position: int = 0

    @classmethod
    def from_error(cls, error: ExpressionError, expression: str) -> ExpressionErrorInfo:
        position = error.position if isinstance(error, ExpressionSyntaxError) else 0
        return cls(
            expression=expression,
            message=error.message,
            kind=error.kind,
            position=position,
        )
