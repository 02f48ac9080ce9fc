"""Expression detection, translation, evaluation and review for flowbridge.

Workflow parameters embed expressions in one of two wrapper syntaxes:

- n8n:  ``={{ $json.customer.email }}``
- Make: ``{{1.customer.email}}``

This package converts between them, evaluates them against a context and
flags the ones a mechanical rewrite may get wrong.

Examples
--------
    >>> translate_expression("={{ $str.upper($json.name) }}", Direction.N8N_TO_MAKE)
    '{{upper(1.name)}}'
    >>> evaluate_expression("={{ 'Hi ' + $json.name }}", {"$json": {"name": "Ada"}})
    'Hi Ada'
    >>> review_reasons("={{ $json.items.filter(i => i.active) }}")
    (<ReviewReason.ARRAY_FUNCTION: 'array_function'>,)

Module Structure
----------------
- dialects.py: Dialect/Direction enums and the expression detector
- tables.py: Root and function name tables shared by translator and classifier
- tokens.py: Lexical scanner used by the translator and classifier
- translator.py: Structural n8n <-> Make rewrite
- grammar.lark, parser.py: Grammar and AST for the evaluator
- values.py: UNDEFINED and JavaScript coercion rules
- functions.py: Builtin functions and whitelisted methods
- evaluator.py: Bounded tree-walking interpreter
- review.py: Review classifier
- context.py: Context builder
- errors.py: Expression-specific error types

Everything here is synchronous and keeps no state between calls.
"""

from __future__ import annotations

from flowbridge.expressions.context import ExpressionContextBuilder
from flowbridge.expressions.dialects import (
    Dialect,
    Direction,
    detect_dialect,
    extract_expression_content,
    is_expression,
    wrap_expression,
)
from flowbridge.expressions.errors import (
    ExpressionError,
    ExpressionErrorInfo,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ExpressionTimeoutError,
)
from flowbridge.expressions.evaluator import (
    ExpressionEvaluator,
    evaluate_expression,
    evaluate_strict,
)
from flowbridge.expressions.parser import ParsedExpression, parse_expression
from flowbridge.expressions.review import ReviewReason, needs_review, review_reasons
from flowbridge.expressions.translator import TranslationContext, translate_expression
from flowbridge.expressions.values import UNDEFINED, JsonValue

__all__: list[str] = [
    # Dialects
    "Dialect",
    "Direction",
    "is_expression",
    "detect_dialect",
    "extract_expression_content",
    "wrap_expression",
    # Error types
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionEvaluationError",
    "ExpressionTimeoutError",
    "ExpressionErrorInfo",
    # Translation
    "TranslationContext",
    "translate_expression",
    # Evaluation
    "ParsedExpression",
    "parse_expression",
    "ExpressionEvaluator",
    "evaluate_expression",
    "evaluate_strict",
    "ExpressionContextBuilder",
    "UNDEFINED",
    "JsonValue",
    # Review
    "ReviewReason",
    "review_reasons",
    "needs_review",
]
