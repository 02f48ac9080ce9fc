"""Unit tests for n8n <-> Make expression translation."""

from __future__ import annotations

import pytest

from flowbridge.expressions.dialects import Direction
from flowbridge.expressions.errors import ExpressionSyntaxError
from flowbridge.expressions.review import ReviewReason, review_reasons
from flowbridge.expressions.translator import (
    TranslationContext,
    translate_body,
    translate_expression,
)


def to_make(expression: str, context: TranslationContext | None = None) -> str:
    return translate_expression(expression, Direction.N8N_TO_MAKE, context)


def to_n8n(expression: str, context: TranslationContext | None = None) -> str:
    return translate_expression(expression, Direction.MAKE_TO_N8N, context)


class TestN8nToMake:
    """Test translation from the n8n dialect."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("={{ $json.email }}", "{{1.email}}"),
            ("={{ $json.customer.email }}", "{{1.customer.email}}"),
            ("={{ $env.API_KEY }}", "{{env.API_KEY}}"),
            ("={{ $workflow.name }}", "{{scenario.name}}"),
            ("={{ $parameter.resource }}", "{{parameters.resource}}"),
            ("={{ $binary.data }}", "{{binary.data}}"),
            ("={{ $now }}", "{{now}}"),
        ],
    )
    def test_roots(self, expression: str, expected: str) -> None:
        assert to_make(expression) == expected

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("={{ $str.upper($json.name) }}", "{{upper(1.name)}}"),
            ("={{ $str.lower($json.name) }}", "{{lower(1.name)}}"),
            ("={{ $str.substr($json.name, 0, 3) }}", "{{substring(1.name, 0, 3)}}"),
            ("={{ $array.first($json.tags) }}", "{{first(1.tags)}}"),
            ("={{ $array.join($json.tags, ', ') }}", "{{join(1.tags, ', ')}}"),
            ("={{ $math.round($json.price) }}", "{{round(1.price)}}"),
            ("={{ $date.now() }}", "{{now()}}"),
            (
                "={{ $date.format($json.created, 'YYYY-MM-DD') }}",
                "{{formatDate(1.created, 'YYYY-MM-DD')}}",
            ),
        ],
    )
    def test_functions(self, expression: str, expected: str) -> None:
        assert to_make(expression) == expected

    def test_conditional_helper(self) -> None:
        result = to_make("={{ $if($json.total > 100, 'big', 'small') }}")
        assert result == "{{ifThenElse(1.total > 100, 'big', 'small')}}"

    def test_upstream_ref_from_context(self) -> None:
        context = TranslationContext(upstream_ref=3)
        assert to_make("={{ $json.id }}", context) == "{{3.id}}"

    def test_named_node_reference(self) -> None:
        assert to_make('={{ $node["Fetch"].json.name }}') == "{{Fetch.name}}"

    def test_named_node_with_spaces_is_backticked(self) -> None:
        result = to_make('={{ $node["Fetch User"].json.name }}')
        assert result == "{{`Fetch User`.name}}"

    def test_string_contents_untouched(self) -> None:
        result = to_make("={{ '$json.x and $str.upper(' + $json.x }}")
        assert result == "{{'$json.x and $str.upper(' + 1.x}}"

    def test_member_names_untouched(self) -> None:
        assert to_make("={{ $json.$json }}") == "{{1.$json}}"

    def test_arrow_parameters_untouched(self) -> None:
        result = to_make("={{ $json.items.map(item => item.sku) }}")
        assert result == "{{1.items.map(item => item.sku)}}"

    def test_unknown_helper_passes_through(self) -> None:
        assert to_make("={{ $foo.bar(1) }}") == "{{$foo.bar(1)}}"

    def test_javascript_globals_untouched(self) -> None:
        result = to_make("={{ Math.max($json.a, 1) + JSON.stringify($json) }}")
        assert result == "{{Math.max(1.a, 1) + JSON.stringify(1)}}"

    def test_concatenation_is_preserved(self) -> None:
        result = to_make('={{ "https://example.com/api/" + $json.id }}')
        assert result == '{{"https://example.com/api/" + 1.id}}'


class TestMakeToN8n:
    """Test translation from the Make dialect."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("{{1.email}}", "={{ $json.email }}"),
            ("{{1.customer.email}}", "={{ $json.customer.email }}"),
            ("{{env.API_KEY}}", "={{ $env.API_KEY }}"),
            ("{{scenario.name}}", "={{ $workflow.name }}"),
            ("{{now}}", "={{ $now }}"),
            ("{{now()}}", "={{ $date.now() }}"),
            ("{{upper(1.name)}}", "={{ $str.upper($json.name) }}"),
            ("{{1.price * 1.qty}}", "={{ $json.price * $json.qty }}"),
        ],
    )
    def test_translations(self, expression: str, expected: str) -> None:
        assert to_n8n(expression) == expected

    def test_other_module_without_name(self) -> None:
        assert to_n8n("{{2.name}}") == '={{ $node["2"].json.name }}'

    def test_other_module_with_resolved_name(self) -> None:
        context = TranslationContext(node_names={"2": "Fetch User"})
        assert to_n8n("{{2.name}}", context) == '={{ $node["Fetch User"].json.name }}'

    def test_upstream_ref_maps_back_to_json(self) -> None:
        context = TranslationContext(upstream_ref=5)
        assert to_n8n("{{5.id}}", context) == "={{ $json.id }}"
        assert to_n8n("{{1.id}}", context) == '={{ $node["1"].json.id }}'

    def test_backticked_module_name(self) -> None:
        result = to_n8n("{{`Fetch User`.name}}")
        assert result == '={{ $node["Fetch User"].json.name }}'

    def test_named_module(self) -> None:
        assert to_n8n("{{Webhook.body}}") == '={{ $node["Webhook"].json.body }}'

    def test_numbers_are_not_modules(self) -> None:
        assert to_n8n("{{1 + 2}}") == "={{ 1 + 2 }}"
        assert to_n8n("{{1.5 * 2}}") == "={{ 1.5 * 2 }}"

    def test_semicolon_separators_pass_through(self) -> None:
        result = to_n8n('{{ifThenElse(1.total > 100; "big"; "small")}}')
        assert result == '={{ $if($json.total > 100; "big"; "small") }}'

    def test_module_keyword_passes_through(self) -> None:
        assert to_n8n("{{module.id}}") == "={{ module.id }}"


class TestRoundTrip:
    """Expressions built only from table entries survive both directions."""

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ $json.email }}",
            "={{ $str.upper($json.name) }}",
            "={{ $json.a + $env.B }}",
            "={{ $if($json.ok, $workflow.name, 'none') }}",
            '={{ $node["Fetch User"].json.name }}',
            "={{ $json?.customer?.email }}",
            '={{ $json["first name"] }}',
        ],
    )
    def test_n8n_round_trip(self, expression: str) -> None:
        context = TranslationContext(node_names={"Fetch User": "Fetch User"})
        assert to_n8n(to_make(expression, context), context) == expression

    def test_whole_item_is_flagged_instead_of_round_tripped(self) -> None:
        made = to_make("={{ $json }}")
        assert made == "{{1}}"
        # {{1}} is the number one on the way back
        assert to_n8n(made) == "={{ 1 }}"
        assert ReviewReason.UNSUPPORTED_REFERENCE in review_reasons("={{ $json }}")


class TestUnchangedInput:
    """Inputs the translator must return as they are."""

    @pytest.mark.parametrize(
        "value",
        [
            "plain text",
            "Bearer {{ $json.token }}",
            "={{ $json.a( }}",
            "={{ 'unterminated }}",
            "={{ {{ $json.a }} }}",
        ],
    )
    def test_n8n_direction(self, value: str) -> None:
        assert to_make(value) == value

    def test_other_dialect_is_not_translated(self) -> None:
        assert to_make("{{1.email}}") == "{{1.email}}"
        assert to_n8n("={{ $json.email }}") == "={{ $json.email }}"


class TestTranslateBody:
    """Test the raising body-level translator."""

    def test_translates_body(self) -> None:
        assert translate_body("$json.a", Direction.N8N_TO_MAKE) == "1.a"

    def test_nested_wrapper_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Nested"):
            translate_body("{{1.a}}", Direction.MAKE_TO_N8N)

    def test_unbalanced_raises(self) -> None:
        with pytest.raises(ExpressionSyntaxError):
            translate_body("upper(1.a", Direction.MAKE_TO_N8N)

    def test_nested_object_literal_is_not_a_wrapper(self) -> None:
        result = translate_body("{a: {b: $json.c}}", Direction.N8N_TO_MAKE)
        assert result == "{a: {b: 1.c}}"
