"""Unit tests for the safe expression evaluator.

Covers the interpreter itself (ExpressionEvaluator) and the two public entry
points: evaluate_strict, which raises, and evaluate_expression, which never
raises and applies the configured fallback.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from flowbridge.config import EvaluationFallback, ExpressionConfig
from flowbridge.expressions.errors import (
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ExpressionTimeoutError,
)
from flowbridge.expressions.evaluator import (
    ExpressionEvaluator,
    evaluate_expression,
    evaluate_strict,
)
from flowbridge.expressions.parser import parse_expression
from flowbridge.expressions.translator import TranslationContext
from flowbridge.expressions.values import UNDEFINED


class TestReferences:
    """Test name resolution against the context."""

    def test_json_field(self, n8n_context: dict[str, Any]) -> None:
        result = evaluate_expression("={{ $json.email }}", n8n_context)
        assert result == "ada@example.com"

    def test_nested_field(self, n8n_context: dict[str, Any]) -> None:
        assert evaluate_expression("={{ $json.address.city }}", n8n_context) == "London"

    def test_index_access(self, n8n_context: dict[str, Any]) -> None:
        assert evaluate_expression("={{ $json.items[2].sku }}", n8n_context) == "C-3"
        result = evaluate_expression("={{ $json['name'] }}", n8n_context)
        assert result == "Ada Lovelace"

    def test_named_node(self, n8n_context: dict[str, Any]) -> None:
        result = evaluate_expression(
            '={{ $node["Fetch User"].json.name }}', n8n_context
        )
        assert result == "Grace"

    def test_env_and_workflow(self, n8n_context: dict[str, Any]) -> None:
        assert evaluate_expression("={{ $env.API_BASE }}", n8n_context) == (
            "https://api.example.com"
        )
        assert evaluate_expression("={{ $workflow.name }}", n8n_context) == "Order sync"

    def test_roots_without_dollar_prefix(self) -> None:
        assert evaluate_expression("={{ $json.id }}", {"json": {"id": 7}}) == 7

    def test_missing_key_is_none(self, n8n_context: dict[str, Any]) -> None:
        assert evaluate_expression("={{ $json.missing }}", n8n_context) is None

    def test_access_through_missing_key_is_lenient(
        self, n8n_context: dict[str, Any]
    ) -> None:
        assert evaluate_expression("={{ $json.missing.deeper }}", n8n_context) is None
        assert evaluate_expression("={{ $json.missing?.deeper }}", n8n_context) is None

    def test_out_of_range_index_is_none(self, n8n_context: dict[str, Any]) -> None:
        assert evaluate_expression("={{ $json.tags[5] }}", n8n_context) is None

    def test_no_context(self) -> None:
        assert evaluate_expression("={{ 1 + 1 }}") == 2
        assert evaluate_expression("={{ $json.a }}") is None


class TestArithmeticAndStrings:
    """Test JavaScript operator semantics."""

    def test_url_concatenation(self) -> None:
        """String + number concatenates instead of failing."""
        result = evaluate_expression(
            '={{ "https://example.com/api/" + $json.id }}', {"$json": {"id": 12345}}
        )
        assert result == "https://example.com/api/12345"

    def test_missing_value_in_concatenation(self) -> None:
        assert evaluate_expression("={{ 'x' + $json.missing }}", {"$json": {}}) == (
            "xundefined"
        )

    def test_array_concatenation_uses_string_form(self) -> None:
        context = {"$json": {"t": [1, 2]}}
        result = evaluate_expression("={{ 'tags: ' + $json.t }}", context)
        assert result == "tags: 1,2"

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("={{ $json.price * $json.quantity }}", 58.5),
            ("={{ 10 / 4 }}", 2.5),
            ("={{ 6 / 3 }}", 2),
            ("={{ 7 % 3 }}", 1),
            ("={{ -7 % 3 }}", -1),
            ("={{ 2 - 5 }}", -3),
            ("={{ 1 + true }}", 2),
            ("={{ 1 + null }}", 1),
            ("={{ '3' * '4' }}", 12),
            ("={{ -'3' }}", -3),
            ("={{ +'2.5' }}", 2.5),
        ],
    )
    def test_arithmetic(
        self, n8n_context: dict[str, Any], expression: str, expected: float
    ) -> None:
        assert evaluate_expression(expression, n8n_context) == expected

    def test_integral_results_are_ints(self) -> None:
        result = evaluate_expression("={{ 0.5 + 0.5 }}")
        assert result == 1
        assert isinstance(result, int)

    @pytest.mark.parametrize(
        "expression",
        ["={{ 1 / 0 }}", "={{ 5 % 0 }}", "={{ 'abc' * 2 }}", "={{ $json.x - 1 }}"],
    )
    def test_failures_give_none(self, expression: str) -> None:
        assert evaluate_expression(expression, {"$json": {}}) is None


class TestLogicAndComparison:
    """Test conditionals, logical operators and comparisons."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("={{ $json.active ? 'on' : 'off' }}", "on"),
            ("={{ $json.address.zip ?? 'none' }}", "none"),
            ("={{ 0 ?? 'none' }}", 0),
            ("={{ 0 || 'default' }}", "default"),
            ("={{ '' && 'x' }}", ""),
            ("={{ !$json.active }}", False),
            ("={{ $json.tags.length > 1 }}", True),
            ("={{ 'b' > 'a' }}", True),
            ("={{ '10' < 9 }}", False),
            ("={{ 1 == '1' }}", True),
            ("={{ 1 === '1' }}", False),
            ("={{ null == undefined }}", True),
            ("={{ $json.quantity !== 3 }}", False),
            ("={{ $if($json.quantity > 2, 'many', 'few') }}", "many"),
        ],
    )
    def test_expressions(
        self, n8n_context: dict[str, Any], expression: str, expected: Any
    ) -> None:
        assert evaluate_expression(expression, n8n_context) == expected

    def test_short_circuit_skips_failing_branch(self) -> None:
        assert evaluate_expression("={{ true || 1 / 0 }}") is True
        assert evaluate_expression("={{ false ? 1 / 0 : 'safe' }}") == "safe"


class TestLiteralsAndCallbacks:
    """Test literal construction and arrow callbacks."""

    def test_object_and_array_literals(self, n8n_context: dict[str, Any]) -> None:
        result = evaluate_expression(
            "={{ {id: $json.id, list: [1, 'a']} }}", n8n_context
        )
        assert result == {"id": 12345, "list": [1, "a"]}

    def test_arrow_callbacks(self, n8n_context: dict[str, Any]) -> None:
        result = evaluate_expression(
            "={{ $json.items.filter(i => i.active).map(i => i.sku) }}", n8n_context
        )
        assert result == ["A-1", "C-3"]

    def test_callback_sees_outer_parameters(self) -> None:
        result = evaluate_expression(
            "={{ $json.a.map(x => $json.b.map(y => x * y)) }}",
            {"$json": {"a": [1, 2], "b": [10, 20]}},
        )
        assert result == [[10, 20], [20, 40]]

    def test_missing_callback_arguments_are_undefined(self) -> None:
        evaluator = ExpressionEvaluator({})
        result = evaluator.evaluate_source("[1].map((a, b, c, d) => d)")
        assert result == [UNDEFINED]

    def test_function_result_is_an_error(self) -> None:
        assert evaluate_expression("={{ $str.upper }}") is None
        assert evaluate_expression("={{ x => x }}") is None


class TestSafety:
    """The evaluator never reaches Python internals or mutates the context."""

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ __import__('os') }}",
            "={{ eval('1') }}",
            "={{ $json.constructor.constructor('return 1')() }}",
            "={{ 'x'.__class__ }}",
            "={{ $str.__dict__ }}",
            "={{ Math.random.__globals__ }}",
        ],
    )
    def test_no_escape(self, expression: str) -> None:
        assert evaluate_expression(expression, {"$json": {}}) is None

    def test_context_is_not_mutated(self, n8n_context: dict[str, Any]) -> None:
        before = copy.deepcopy(n8n_context)
        evaluate_expression(
            "={{ $json.items.sort((a, b) => b.qty - a.qty) }}", n8n_context
        )
        evaluate_expression("={{ $json.tags.reverse() }}", n8n_context)
        assert n8n_context == before

    def test_step_budget(self) -> None:
        settings = ExpressionConfig(max_steps=100)
        context = {"$json": {"a": list(range(50))}}
        with pytest.raises(ExpressionTimeoutError, match="100 steps"):
            evaluate_strict(
                "={{ $json.a.map(x => $json.a.map(y => x + y)) }}",
                context,
                settings=settings,
            )

    def test_wall_clock_budget(self) -> None:
        settings = ExpressionConfig(timeout_seconds=0.001, max_steps=10_000_000)
        context = {"$json": {"a": list(range(1000))}}
        with pytest.raises(ExpressionTimeoutError):
            evaluate_strict(
                "={{ $json.a.map(x => $json.a.map(y => x + y)) }}",
                context,
                settings=settings,
            )

    def test_built_size_budget_counts_every_call(self) -> None:
        # Each repeat stays small; together they pass the budget
        settings = ExpressionConfig(max_built_size=1_000)
        with pytest.raises(ExpressionTimeoutError, match="1000 built"):
            evaluate_strict(
                "={{ 'x'.repeat(600) + 'y'.repeat(600) }}",
                {"$json": {}},
                settings=settings,
            )

    def test_built_size_budget_counts_concatenation(self) -> None:
        settings = ExpressionConfig(max_built_size=1_000)
        context = {"$json": {"a": list(range(100))}}
        result = evaluate_expression(
            "={{ $json.a.map(x => $json.a.join(',') + x) }}",
            context,
            settings=settings,
        )
        assert result is None

    def test_built_size_within_budget(self) -> None:
        settings = ExpressionConfig(max_built_size=1_000)
        result = evaluate_strict(
            "={{ 'x'.repeat(200) + 'y'.repeat(200) }}",
            {"$json": {}},
            settings=settings,
        )
        assert result == "x" * 200 + "y" * 200

    def test_budget_failure_gives_fallback(self) -> None:
        settings = ExpressionConfig(max_steps=100)
        context = {"$json": {"a": list(range(50))}}
        expression = "={{ $json.a.map(x => $json.a.map(y => x + y)) }}"
        result = evaluate_expression(
            expression,
            context,
            fallback=EvaluationFallback.ORIGINAL,
            settings=settings,
        )
        assert result == expression


class TestEvaluateExpression:
    """Test the non-raising entry point."""

    @pytest.mark.parametrize("value", ["plain text", 42, None, ["={{ 1 }}"]])
    def test_non_expressions_pass_through(self, value: Any) -> None:
        assert evaluate_expression(value) == value

    def test_empty_expression_is_none(self) -> None:
        assert evaluate_expression("={{ }}") is None
        assert evaluate_expression("{{}}") is None

    def test_syntax_error_gives_none(self) -> None:
        assert evaluate_expression("={{ $json.a( }}") is None

    def test_original_fallback(self) -> None:
        result = evaluate_expression(
            "={{ $json.a( }}", fallback=EvaluationFallback.ORIGINAL
        )
        assert result == "={{ $json.a( }}"

    def test_fallback_from_settings(self) -> None:
        settings = ExpressionConfig(fallback=EvaluationFallback.ORIGINAL)
        assert evaluate_expression("={{ 1 / 0 }}", settings=settings) == "={{ 1 / 0 }}"

    def test_too_long_expression(self) -> None:
        settings = ExpressionConfig(max_expression_length=16)
        result = evaluate_expression("={{ 'aaaaaaaaaaaaaaaaaaaa' }}", settings=settings)
        assert result is None

    def test_make_expression(self) -> None:
        assert evaluate_expression("{{1.price * 2}}", {"$json": {"price": 4}}) == 8

    def test_make_expression_with_upstream_ref(self) -> None:
        result = evaluate_expression(
            "{{upper(3.name)}}",
            {"$json": {"name": "ada"}},
            translation=TranslationContext(upstream_ref=3),
        )
        assert result == "ADA"

    def test_make_upstream_ref_from_settings(self) -> None:
        settings = ExpressionConfig(upstream_ref=2)
        result = evaluate_expression(
            "{{2.id}}", {"$json": {"id": 9}}, settings=settings
        )
        assert result == 9

    def test_nested_wrapper_fails(self) -> None:
        assert evaluate_expression("={{ {{ $json.a }} }}", {"$json": {"a": 1}}) is None


class TestEvaluateStrict:
    """Test the raising entry point."""

    def test_value(self) -> None:
        assert evaluate_strict("={{ [1, 2].length }}") == 2

    def test_undefined_becomes_none(self) -> None:
        assert evaluate_strict("={{ undefined }}") is None

    def test_not_an_expression(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Not an expression"):
            evaluate_strict("plain")

    def test_syntax_error(self) -> None:
        with pytest.raises(ExpressionSyntaxError):
            evaluate_strict("={{ 1 + }}")

    def test_too_long(self) -> None:
        settings = ExpressionConfig(max_expression_length=16)
        with pytest.raises(ExpressionEvaluationError, match="longer than 16"):
            evaluate_strict("={{ 'aaaaaaaaaaaaaaaaaaaa' }}", settings=settings)


class TestExpressionEvaluator:
    """Test the evaluator class directly."""

    def test_evaluate_parsed_expression(self) -> None:
        evaluator = ExpressionEvaluator({"$json": {"a": 2}})
        parsed = parse_expression("={{ $json.a * 3 }}")
        assert evaluator.evaluate(parsed.root) == 6

    def test_returns_undefined_for_missing(self) -> None:
        evaluator = ExpressionEvaluator({"$json": {}})
        assert evaluator.evaluate_source("$json.nope") is UNDEFINED

    def test_budget_resets_between_calls(self) -> None:
        evaluator = ExpressionEvaluator(
            {"$json": {"a": list(range(20))}}, ExpressionConfig(max_steps=200)
        )
        for _ in range(5):
            assert evaluator.evaluate_source("$json.a.map(x => x).length") == 20

    def test_error_lists_context_names(self) -> None:
        evaluator = ExpressionEvaluator({"$json": {}, "$env": {}})
        with pytest.raises(ExpressionEvaluationError) as exc_info:
            evaluator.evaluate_source("nope()")
        assert exc_info.value.context_vars == ("$json", "$env")
        assert "nope" in exc_info.value.message
