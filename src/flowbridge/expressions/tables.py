"""Variable-root and function-name tables for expression translation.

Each table maps an n8n name to exactly one Make name; the reverse tables are
derived so the two directions can never drift apart. Function arguments are
never reinterpreted, only the callee name changes.
"""

from __future__ import annotations

from typing import Final

__all__ = [
    "N8N_DATA_ROOT",
    "N8N_NODE_ROOT",
    "N8N_TO_MAKE_ROOTS",
    "MAKE_TO_N8N_ROOTS",
    "N8N_TO_MAKE_FUNCTIONS",
    "MAKE_TO_N8N_FUNCTIONS",
    "MAKE_KEYWORD_ROOTS",
    "JS_GLOBALS",
    "ARRAY_FUNCTIONS",
    "MAKE_ARRAY_FUNCTIONS",
    "DATE_FORMAT_FUNCTIONS",
    "CONDITIONAL_FUNCTIONS",
]

# Incoming item data; becomes the upstream module id in Make
N8N_DATA_ROOT: Final[str] = "$json"

# Named node reference: $node["Name"].json
N8N_NODE_ROOT: Final[str] = "$node"

N8N_TO_MAKE_ROOTS: Final[dict[str, str]] = {
    "$binary": "binary",
    "$parameter": "parameters",
    "$env": "env",
    "$workflow": "scenario",
    "$now": "now",
}

MAKE_TO_N8N_ROOTS: Final[dict[str, str]] = {v: k for k, v in N8N_TO_MAKE_ROOTS.items()}

# Make roots with no n8n counterpart; passed through and flagged for review
MAKE_KEYWORD_ROOTS: Final[frozenset[str]] = frozenset(
    set(MAKE_TO_N8N_ROOTS) | {"module"}
)

N8N_TO_MAKE_FUNCTIONS: Final[dict[str, str]] = {
    "$if": "ifThenElse",
    "$str.upper": "upper",
    "$str.lower": "lower",
    "$str.trim": "trim",
    "$str.replace": "replace",
    "$str.substr": "substring",
    "$array.first": "first",
    "$array.last": "last",
    "$array.join": "join",
    "$date.now": "now",
    "$date.format": "formatDate",
    "$math.round": "round",
    "$math.random": "random",
}

MAKE_TO_N8N_FUNCTIONS: Final[dict[str, str]] = {
    v: k for k, v in N8N_TO_MAKE_FUNCTIONS.items()
}

# Identifiers that are never workflow roots in either dialect
JS_GLOBALS: Final[frozenset[str]] = frozenset(
    {
        "true",
        "false",
        "null",
        "undefined",
        "NaN",
        "Infinity",
        "typeof",
        "instanceof",
        "new",
        "in",
        "Math",
        "JSON",
        "Date",
        "Object",
        "Array",
        "String",
        "Number",
        "Boolean",
        "RegExp",
        "parseInt",
        "parseFloat",
        "encodeURIComponent",
        "decodeURIComponent",
    }
)

# Higher-order array methods, called as ``.name(`` in n8n
ARRAY_FUNCTIONS: Final[frozenset[str]] = frozenset(
    {"map", "filter", "reduce", "forEach", "sort", "find", "some", "every", "flatMap"}
)

# Make's bare array functions and the n8n helper-library equivalents
MAKE_ARRAY_FUNCTIONS: Final[frozenset[str]] = frozenset(
    {
        "map",
        "sort",
        "deduplicate",
        "flatten",
        "reverse",
        "$array.filter",
        "$array.map",
        "$array.find",
        "$array.sort",
    }
)

DATE_FORMAT_FUNCTIONS: Final[frozenset[str]] = frozenset(
    {"$date.format", "formatDate", "format", "toFormat", "parseDate"}
)

CONDITIONAL_FUNCTIONS: Final[frozenset[str]] = frozenset({"$if", "ifThenElse", "if"})
