"""Review classifier: flags expressions too complex to trust a mechanical rewrite.

The classifier never parses or evaluates. It scans the expression body (string
literal contents are opaque tokens, so a ``?`` or ``map(`` inside quotes never
counts) and reports every shape that the translation tables cannot carry over
faithfully. A flagged expression is still translated; the flag tells a human
to check the result.
"""

from __future__ import annotations

from enum import Enum

from flowbridge.expressions.dialects import (
    Dialect,
    detect_dialect,
    extract_expression_content,
)
from flowbridge.expressions.errors import ExpressionSyntaxError
from flowbridge.expressions.tables import (
    ARRAY_FUNCTIONS,
    CONDITIONAL_FUNCTIONS,
    DATE_FORMAT_FUNCTIONS,
    JS_GLOBALS,
    MAKE_ARRAY_FUNCTIONS,
    MAKE_TO_N8N_FUNCTIONS,
    N8N_DATA_ROOT,
    N8N_NODE_ROOT,
    N8N_TO_MAKE_FUNCTIONS,
    N8N_TO_MAKE_ROOTS,
)
from flowbridge.expressions.tokens import (
    Token,
    arrow_parameters,
    closing_index,
    dotted_chain,
    is_call,
    is_object_key,
    is_root_position,
    next_significant,
    prev_significant,
    scan,
)

__all__ = [
    "ReviewReason",
    "review_reasons",
    "needs_review",
]


class ReviewReason(str, Enum):
    """Why an expression needs a human look after conversion."""

    MULTIPLE_FUNCTIONS = "multiple_functions"
    ARRAY_FUNCTION = "array_function"
    NESTED_CONDITIONAL = "nested_conditional"
    REGEX = "regex"
    LITERAL_CONSTRUCTION = "literal_construction"
    DATE_FORMAT = "date_format"
    MALFORMED = "malformed"
    UNSUPPORTED_REFERENCE = "unsupported_reference"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS: dict[ReviewReason, str] = {
    ReviewReason.MULTIPLE_FUNCTIONS: "Calls more than one function",
    ReviewReason.ARRAY_FUNCTION: "Uses a higher-order array function",
    ReviewReason.NESTED_CONDITIONAL: "Contains nested conditionals",
    ReviewReason.REGEX: "Uses a regular expression",
    ReviewReason.LITERAL_CONSTRUCTION: "Builds an object or array literal",
    ReviewReason.DATE_FORMAT: "Formats a date with a pattern string",
    ReviewReason.MALFORMED: "Expression is empty or unbalanced",
    ReviewReason.UNSUPPORTED_REFERENCE: "References a name with no counterpart",
}

# Tokens after which a "/" starts a regex literal rather than dividing
_REGEX_PRECEDERS = frozenset(
    {"(", ",", "=", ":", "[", "!", "&&", "||", "??", "?", "{", "}", ";", "=>"}
)

# Tokens that continue a root into a member or index access
_ACCESSORS = frozenset({".", "?.", "["})

# Tokens after which "[" or "{" starts a literal rather than an index access
_VALUE_ENDERS = frozenset({")", "]", "}"})

# Pattern letters (moment/luxon style) and the run lengths that form a token
_DATE_PATTERN_RUNS: dict[str, range] = {
    "Y": range(2, 5),
    "M": range(1, 5),
    "D": range(1, 3),
    "d": range(3, 5),
    "H": range(1, 3),
    "h": range(1, 3),
    "m": range(1, 3),
    "s": range(1, 3),
    "S": range(3, 4),
    "A": range(1, 2),
    "Z": range(1, 3),
    "X": range(1, 2),
}


def _is_template(literal: str) -> bool:
    return literal.startswith("`") and "${" in literal


def _date_token_count(pattern: str) -> int:
    count = 0
    i = 0
    while i < len(pattern):
        char = pattern[i]
        j = i
        while j < len(pattern) and pattern[j] == char:
            j += 1
        if char in _DATE_PATTERN_RUNS and j - i in _DATE_PATTERN_RUNS[char]:
            count += 1
        i = j
    return count


class _Scan:
    """Facts gathered in one pass over the token stream."""

    def __init__(self, tokens: list[Token], dialect: Dialect) -> None:
        self.tokens = tokens
        self.dialect = dialect
        self.locals = arrow_parameters(tokens)
        self.callees: list[str] = []
        self.conditionals = 0
        self.reasons: set[ReviewReason] = set()
        # Final name tokens of root call chains, already counted as callees
        self._consumed: set[int] = set()
        self._walk()

    def _walk(self) -> None:
        tokens = self.tokens
        for i, token in enumerate(tokens):
            if token.kind == "punct":
                self._punct(i, token.text)
            elif token.kind == "name":
                self._name(i, token.text)
            elif token.kind == "string" and _is_template(token.text):
                # Substitutions inside template literals are never rewritten
                self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)

    def _punct(self, i: int, text: str) -> None:
        prev = prev_significant(self.tokens, i - 1)
        prev_text = self.tokens[prev].text if prev is not None else None
        if text == "?":
            self.conditionals += 1
        elif text == "/" and (prev_text is None or prev_text in _REGEX_PRECEDERS):
            self.reasons.add(ReviewReason.REGEX)
        elif text in ("[", "{"):
            ends_value = prev is not None and (
                self.tokens[prev].kind in ("name", "number", "string")
                or prev_text in _VALUE_ENDERS
            )
            if text == "{" or not ends_value:
                self.reasons.add(ReviewReason.LITERAL_CONSTRUCTION)

    def _name(self, i: int, text: str) -> None:
        tokens = self.tokens
        if not is_root_position(tokens, i):
            # Method call: items.map(...), date.format(...)
            if i not in self._consumed and is_call(tokens, i + 1):
                self.callees.append(f".{text}")
                if text in ARRAY_FUNCTIONS:
                    self.reasons.add(ReviewReason.ARRAY_FUNCTION)
                if text in DATE_FORMAT_FUNCTIONS:
                    self._check_date_call(i + 1)
            return
        if text in self.locals or is_object_key(tokens, i):
            return

        chain, end = dotted_chain(tokens, i)
        if is_call(tokens, end):
            self._consumed.add(end - 1)
            self._root_call(chain, end)
            return
        if text == "RegExp":
            self.reasons.add(ReviewReason.REGEX)
        if self.dialect is Dialect.N8N and text == N8N_DATA_ROOT:
            # Make has no form for the whole upstream item; {{1}} reads back
            # as the number 1
            accessed = i + 1 < len(tokens) and tokens[i + 1].text in _ACCESSORS
            if not accessed:
                self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)
        if text not in JS_GLOBALS:
            self._root_reference(text)

    def _root_call(self, chain: str, end: int) -> None:
        self.callees.append(chain)
        # A dotted chain ending in a call is a method call on its last segment
        method = chain.rsplit(".", 1)[-1] if "." in chain else None
        if chain in CONDITIONAL_FUNCTIONS:
            self.conditionals += 1
        if chain in MAKE_ARRAY_FUNCTIONS or method in ARRAY_FUNCTIONS:
            self.reasons.add(ReviewReason.ARRAY_FUNCTION)
        if chain in DATE_FORMAT_FUNCTIONS or method in DATE_FORMAT_FUNCTIONS:
            self._check_date_call(end)
        if chain in ("JSON.parse", "JSON.stringify"):
            self.reasons.add(ReviewReason.LITERAL_CONSTRUCTION)
        if chain == "RegExp":
            self.reasons.add(ReviewReason.REGEX)

        root = chain.split(".", 1)[0]
        if root in JS_GLOBALS:
            return
        if self.dialect is Dialect.N8N:
            known = chain in N8N_TO_MAKE_FUNCTIONS or root in (
                N8N_DATA_ROOT,
                N8N_NODE_ROOT,
                *N8N_TO_MAKE_ROOTS,
            )
            if root.startswith("$") and not known:
                self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)
        elif chain not in MAKE_TO_N8N_FUNCTIONS:
            self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)

    def _root_reference(self, name: str) -> None:
        if self.dialect is Dialect.N8N:
            known = name in (N8N_DATA_ROOT, N8N_NODE_ROOT) or name in N8N_TO_MAKE_ROOTS
            if name.startswith("$") and not known:
                self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)
            return
        if name.startswith("$") or name == "module":
            self.reasons.add(ReviewReason.UNSUPPORTED_REFERENCE)

    def _check_date_call(self, call_start: int) -> None:
        opener = next_significant(self.tokens, call_start)
        if opener is None:
            return
        closer = closing_index(self.tokens, opener)
        for token in self.tokens[opener:closer]:
            if token.kind == "string" and _date_token_count(token.text[1:-1]) >= 2:
                self.reasons.add(ReviewReason.DATE_FORMAT)
                return


def review_reasons(expression: str) -> tuple[ReviewReason, ...]:
    """Classify an expression.

    Args:
        expression: Wrapped n8n or Make expression.

    Returns:
        Every applicable reason, in ``ReviewReason`` declaration order. Empty
        for simple expressions and for values that are not expressions.

    Examples:
        >>> review_reasons("={{ $json.name }}")
        ()
        >>> review_reasons("={{ $json.items.map(i => i.id) }}")
        (<ReviewReason.ARRAY_FUNCTION: 'array_function'>,)
    """
    dialect = detect_dialect(expression)
    if dialect is None:
        return ()

    body = extract_expression_content(expression)
    if not body or "{{" in body:
        return (ReviewReason.MALFORMED,)
    try:
        tokens = scan(body)
    except ExpressionSyntaxError:
        return (ReviewReason.MALFORMED,)

    result = _Scan(tokens, dialect)
    reasons = set(result.reasons)
    if len(set(result.callees)) > 1:
        reasons.add(ReviewReason.MULTIPLE_FUNCTIONS)
    if result.conditionals >= 2:
        reasons.add(ReviewReason.NESTED_CONDITIONAL)
    return tuple(reason for reason in ReviewReason if reason in reasons)


def needs_review(expression: str) -> bool:
    """Return True if ``expression`` should be checked by a human after conversion.

    Examples:
        >>> needs_review("={{ $json.email }}")
        False
        >>> needs_review("={{ $if($json.a, $if($json.b, 1, 2), 3) }}")
        True
    """
    return bool(review_reasons(expression))
