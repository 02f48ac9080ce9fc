"""Parameter tree processing for node and module conversion.

Node parameters are arbitrary JSON trees whose string leaves may be
expressions. This module walks such a tree and returns a new one in which
every expression of the source dialect has been translated (or evaluated),
together with review flags for the expressions that need a human look.

    >>> result = process_parameters(
    ...     {"url": "={{ 'https://example.com/' + $json.id }}", "method": "GET"},
    ...     Direction.N8N_TO_MAKE,
    ...     ProcessingMode.TRANSLATE,
    ... )
    >>> result.parameters
    {'url': "{{'https://example.com/' + 1.id}}", 'method': 'GET'}

The walk uses an explicit stack, so tree depth is limited by ``max_depth``
rather than by the interpreter's recursion limit. The input tree is never
modified; key order and list order are preserved.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from flowbridge.config import EvaluationFallback, ExpressionConfig
from flowbridge.expressions.dialects import Direction, is_expression
from flowbridge.expressions.evaluator import evaluate_expression
from flowbridge.expressions.review import ReviewReason, review_reasons
from flowbridge.expressions.translator import TranslationContext, translate_expression
from flowbridge.logging import get_logger

__all__ = [
    "ProcessingMode",
    "ReviewFlag",
    "ProcessedParameters",
    "process_parameters",
    "process_object_with_expressions",
    "identify_expressions_for_review",
    "NodeParameterProcessor",
]

logger = get_logger(__name__)


class ProcessingMode(str, Enum):
    """What happens to each expression leaf.

    Values:
        TRANSLATE: Rewrite into the target dialect.
        EVALUATE: Replace with its value; failures keep the original string.
    """

    TRANSLATE = "translate"
    EVALUATE = "evaluate"


@dataclass(frozen=True, slots=True)
class ReviewFlag:
    """An expression that should be checked by a human after conversion.

    Attributes:
        path: Location in the tree (``headers.Authorization``, ``items[0].name``).
        reason: Human-readable summary of ``reasons``.
        expression: The original expression text.
        reasons: Every applicable review reason.
    """

    path: str
    reason: str
    expression: str
    reasons: tuple[ReviewReason, ...] = ()

    @classmethod
    def from_reasons(
        cls, path: str, expression: str, reasons: tuple[ReviewReason, ...]
    ) -> ReviewFlag:
        summary = "; ".join(reason.description for reason in reasons)
        return cls(path=path, reason=summary, expression=expression, reasons=reasons)


@dataclass(frozen=True, slots=True)
class ProcessedParameters:
    """Result of processing one parameter tree.

    Attributes:
        parameters: The new tree.
        review_flags: Flags in traversal order.
    """

    parameters: Any
    review_flags: tuple[ReviewFlag, ...] = ()

    @property
    def needs_review(self) -> bool:
        return bool(self.review_flags)


def _child_path(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _walk(
    tree: Any,
    visit_leaf: Callable[[Any, str], Any],
    max_depth: int,
) -> Any:
    """Rebuild ``tree`` bottom-up, replacing each leaf with ``visit_leaf(leaf, path)``.

    Containers nested deeper than ``max_depth`` are returned as they are
    (shared, not copied) and their leaves are not visited.
    """
    holder: list[Any] = [None]
    # (value, path, depth, parent container, key in parent)
    stack: list[tuple[Any, str, int, Any, Any]] = [(tree, "", 0, holder, 0)]
    while stack:
        value, path, depth, parent, key = stack.pop()
        is_container = isinstance(value, (Mapping, list, tuple))
        if is_container and depth > max_depth:
            logger.debug("parameter_depth_exceeded", path=path, max_depth=max_depth)
            parent[key] = value
        elif isinstance(value, Mapping):
            items = list(value.items())
            # Placeholders fix the key order before children are filled in
            out_map: dict[Any, Any] = {k: None for k, _ in items}
            parent[key] = out_map
            for k, v in reversed(items):
                stack.append((v, _child_path(path, k), depth + 1, out_map, k))
        elif isinstance(value, (list, tuple)):
            out_list: list[Any] = [None] * len(value)
            parent[key] = out_list
            for i in range(len(value) - 1, -1, -1):
                stack.append((value[i], f"{path}[{i}]", depth + 1, out_list, i))
        else:
            parent[key] = visit_leaf(value, path)
    return holder[0]


def process_parameters(
    tree: Any,
    direction: Direction,
    mode: ProcessingMode = ProcessingMode.TRANSLATE,
    context: Mapping[str, Any] | None = None,
    *,
    translation: TranslationContext | None = None,
    settings: ExpressionConfig | None = None,
) -> ProcessedParameters:
    """Translate or evaluate every source-dialect expression in a tree.

    Args:
        tree: Parameter tree (any JSON value). Not modified.
        direction: Conversion direction; only expressions of
            ``direction.source`` are processed.
        mode: Translate or evaluate the expressions.
        context: Evaluation context (EVALUATE mode).
        translation: Upstream module id and node names. Defaults to
            ``settings.upstream_ref``.
        settings: Depth and evaluation limits.

    Returns:
        The new tree and the review flags raised while building it. Plain
        strings, embedded templates such as ``"Bearer {{ $json.token }}"`` and
        expressions of the other dialect come back unchanged.
    """
    config = settings or ExpressionConfig()
    ctx = translation or TranslationContext(upstream_ref=config.upstream_ref)
    source = direction.source
    flags: list[ReviewFlag] = []

    def visit(value: Any, path: str) -> Any:
        if not is_expression(value, source):
            return value
        reasons = review_reasons(value)
        if reasons:
            flags.append(ReviewFlag.from_reasons(path, value, reasons))
            logger.debug(
                "expression_needs_review",
                path=path,
                reasons=[r.value for r in reasons],
            )
        if mode is ProcessingMode.EVALUATE:
            return evaluate_expression(
                value,
                context,
                fallback=EvaluationFallback.ORIGINAL,
                settings=config,
                translation=ctx,
            )
        return translate_expression(value, direction, ctx)

    parameters = _walk(tree, visit, config.max_depth)
    if flags:
        logger.info(
            "parameters_need_review",
            direction=direction.value,
            flagged=len(flags),
        )
    return ProcessedParameters(parameters=parameters, review_flags=tuple(flags))


def process_object_with_expressions(
    tree: Any,
    context: Mapping[str, Any] | None,
    *,
    settings: ExpressionConfig | None = None,
) -> Any:
    """Evaluate every expression of either dialect in a tree.

    Expressions that fail to evaluate keep their original string.

    Examples:
        >>> process_object_with_expressions(
        ...     {"greeting": "={{ 'Hi ' + $json.name }}", "count": 3},
        ...     {"$json": {"name": "Ada"}},
        ... )
        {'greeting': 'Hi Ada', 'count': 3}
    """
    config = settings or ExpressionConfig()

    def visit(value: Any, path: str) -> Any:
        if not is_expression(value):
            return value
        return evaluate_expression(
            value, context, fallback=EvaluationFallback.ORIGINAL, settings=config
        )

    return _walk(tree, visit, config.max_depth)


def identify_expressions_for_review(
    tree: Any,
    *,
    settings: ExpressionConfig | None = None,
) -> list[ReviewFlag]:
    """List the expressions of either dialect in a tree that need review.

    Works on a bare parameter tree or on a whole workflow document; paths of
    the latter look like ``nodes[2].parameters.url``.
    """
    config = settings or ExpressionConfig()
    flags: list[ReviewFlag] = []

    def visit(value: Any, path: str) -> Any:
        if is_expression(value):
            reasons = review_reasons(value)
            if reasons:
                flags.append(ReviewFlag.from_reasons(path, value, reasons))
        return value

    _walk(tree, visit, config.max_depth)
    return flags


class NodeParameterProcessor:
    """Per-node entry points for the outer workflow converters.

    Holds the settings shared by every node of one conversion run; the
    upstream module id changes per node and is passed to each call.

    Example:
        ```python
        processor = NodeParameterProcessor()
        result = processor.convert_n8n_to_make_parameters(
            node["parameters"], translation=TranslationContext(upstream_ref=3)
        )
        module["mapper"] = result.parameters
        ```
    """

    def __init__(self, settings: ExpressionConfig | None = None) -> None:
        self.settings = settings or ExpressionConfig()

    @staticmethod
    def _normalize(params: Any) -> Mapping[str, Any]:
        if params is None:
            return {}
        if not isinstance(params, Mapping):
            return {"value": params}
        return params

    def convert_n8n_to_make_parameters(
        self,
        params: Any,
        translation: TranslationContext | None = None,
    ) -> ProcessedParameters:
        """Translate an n8n node's parameters for a Make module.

        None becomes ``{}``; a non-mapping value is wrapped as ``{"value": x}``.
        """
        return process_parameters(
            self._normalize(params),
            Direction.N8N_TO_MAKE,
            ProcessingMode.TRANSLATE,
            translation=translation,
            settings=self.settings,
        )

    def convert_make_to_n8n_parameters(
        self,
        params: Any,
        translation: TranslationContext | None = None,
    ) -> ProcessedParameters:
        """Translate a Make module's mapper for an n8n node.

        None becomes ``{}``; a non-mapping value is wrapped as ``{"value": x}``.
        """
        return process_parameters(
            self._normalize(params),
            Direction.MAKE_TO_N8N,
            ProcessingMode.TRANSLATE,
            translation=translation,
            settings=self.settings,
        )

    def evaluate_expressions(
        self, params: Any, context: Mapping[str, Any] | None
    ) -> Any:
        """Evaluate every expression in ``params`` against ``context``."""
        if params is None:
            return {}
        return process_object_with_expressions(
            params, context, settings=self.settings
        )
