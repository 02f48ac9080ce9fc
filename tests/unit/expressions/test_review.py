"""Unit tests for the review classifier."""

from __future__ import annotations

import pytest

from flowbridge.expressions.review import ReviewReason, needs_review, review_reasons

R = ReviewReason


class TestSimpleExpressions:
    """Expressions a mechanical rewrite handles on its own."""

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ $json.name }}",
            "={{ $json.customer.email }}",
            "={{ $str.upper($json.name) }}",
            "={{ $json.active ? 'yes' : 'no' }}",
            "={{ $json.price / 2 }}",
            "={{ $json.items[0] }}",
            "={{ $env.API_KEY + $workflow.name }}",
            '={{ $node["Fetch User"].json.id }}',
            "={{ $date.format($json.created, 'ISO') }}",
            "{{1.name}}",
            "{{upper(1.name)}}",
            "{{env.KEY}}",
        ],
    )
    def test_no_reasons(self, expression: str) -> None:
        assert review_reasons(expression) == ()
        assert not needs_review(expression)

    @pytest.mark.parametrize(
        "value", ["plain", "Bearer {{ $json.token }}", "", "{{1.a}} tail"]
    )
    def test_non_expressions(self, value: str) -> None:
        assert review_reasons(value) == ()

    def test_string_contents_are_opaque(self) -> None:
        assert review_reasons("={{ 'a ? b : c ? d map(x) /re/' + $json.x }}") == ()


class TestReasons:
    """One test per review reason."""

    def test_multiple_functions(self) -> None:
        assert review_reasons("={{ $str.upper($str.trim($json.name)) }}") == (
            R.MULTIPLE_FUNCTIONS,
        )

    def test_same_function_twice_is_not_multiple(self) -> None:
        assert R.MULTIPLE_FUNCTIONS not in review_reasons(
            "={{ $str.upper($json.a) + $str.upper($json.b) }}"
        )

    def test_array_method(self) -> None:
        assert review_reasons("={{ $json.items.map(i => i.id) }}") == (
            R.ARRAY_FUNCTION,
        )

    def test_array_helper_without_make_counterpart(self) -> None:
        assert review_reasons("={{ $array.filter($json.items, i => i.ok) }}") == (
            R.ARRAY_FUNCTION,
            R.UNSUPPORTED_REFERENCE,
        )

    def test_make_array_function(self) -> None:
        assert review_reasons('{{map(1.items; "id")}}') == (
            R.ARRAY_FUNCTION,
            R.UNSUPPORTED_REFERENCE,
        )

    def test_nested_helper_conditionals(self) -> None:
        assert review_reasons("={{ $if($json.a, $if($json.b, 1, 2), 3) }}") == (
            R.NESTED_CONDITIONAL,
        )

    def test_nested_ternaries(self) -> None:
        assert review_reasons("={{ $json.a ? ($json.b ? 1 : 2) : 3 }}") == (
            R.NESTED_CONDITIONAL,
        )

    def test_regex_literal(self) -> None:
        assert review_reasons("={{ $json.text.replace(/a+/g, 'b') }}") == (R.REGEX,)

    def test_regexp_constructor(self) -> None:
        assert review_reasons("={{ new RegExp('a+') }}") == (R.REGEX,)

    @pytest.mark.parametrize(
        "expression",
        ["={{ {a: 1} }}", "={{ [1, 2] }}", "={{ {a: {b: 1}} }}"],
    )
    def test_literal_construction(self, expression: str) -> None:
        assert review_reasons(expression) == (R.LITERAL_CONSTRUCTION,)

    def test_json_parse_is_literal_construction(self) -> None:
        assert review_reasons("={{ JSON.parse($json.raw) }}") == (
            R.LITERAL_CONSTRUCTION,
        )

    def test_date_format_helper(self) -> None:
        assert review_reasons("={{ $date.format($json.created, 'YYYY-MM-DD') }}") == (
            R.DATE_FORMAT,
        )

    def test_date_format_method(self) -> None:
        assert review_reasons("={{ $json.d.format('DD/MM/YYYY') }}") == (
            R.DATE_FORMAT,
        )

    def test_make_date_format(self) -> None:
        assert review_reasons('{{formatDate(1.created; "YYYY-MM-DD")}}') == (
            R.DATE_FORMAT,
        )

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ }}",
            "={{ $json.a( }}",
            "={{ {{ $json.a }} }}",
            "{{'open}}",
            "{{ }}",
        ],
    )
    def test_malformed(self, expression: str) -> None:
        assert review_reasons(expression) == (R.MALFORMED,)

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ $items('Node') }}",
            "={{ $runIndex }}",
            "{{module.id}}",
            "{{$json.a}}",
            "{{foo(1.a)}}",
            "={{ $json }}",
            "={{ $str.upper($json) }}",
            "={{ `id-${$json.id}` }}",
        ],
    )
    def test_unsupported_reference(self, expression: str) -> None:
        assert review_reasons(expression) == (R.UNSUPPORTED_REFERENCE,)

    @pytest.mark.parametrize(
        "expression",
        [
            "={{ $json.id }}",
            "={{ $json?.id }}",
            '={{ $json["first name"] }}',
            "={{ `plain` + $json.id }}",
        ],
    )
    def test_data_root_with_access_is_simple(self, expression: str) -> None:
        assert review_reasons(expression) == ()


class TestCombinedReasons:
    """Several reasons come back in declaration order."""

    def test_order(self) -> None:
        expression = (
            "={{ $json.items.map(i => i.id).join(', ') + "
            "$date.format($json.d, 'YYYY-MM-DD') }}"
        )
        assert review_reasons(expression) == (
            R.MULTIPLE_FUNCTIONS,
            R.ARRAY_FUNCTION,
            R.DATE_FORMAT,
        )

    def test_every_reason_has_a_description(self) -> None:
        for reason in ReviewReason:
            assert reason.description
            assert reason.description[0].isupper()
