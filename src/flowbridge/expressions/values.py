"""Runtime values of the expression language.

Expressions operate on JSON-like data. This module holds the JSON value
type, the ``UNDEFINED`` marker for missing references, and the JavaScript
coercion rules the evaluator needs: stringification for ``+``, numeric
conversion, truthiness and equality.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any, TypeAlias

__all__ = [
    "JsonValue",
    "UNDEFINED",
    "is_nullish",
    "js_string",
    "js_number",
    "js_truthy",
    "strict_equals",
    "loose_equals",
    "to_json_value",
    "json_stringify",
]

JsonValue: TypeAlias = (
    str | int | float | bool | None | list["JsonValue"] | dict[str, "JsonValue"]
)


class _Undefined:
    """JavaScript ``undefined``: the value of a missing reference."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self


UNDEFINED: Any = _Undefined()


def is_nullish(value: Any) -> bool:
    """True for ``null`` and ``undefined``."""
    return value is None or value is UNDEFINED


def _number_string(value: int | float) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def js_string(value: Any) -> str:
    """Stringify a value the way JavaScript's ``String(value)`` does.

    Examples:
        >>> js_string(None), js_string(True), js_string(3.0), js_string([1, "a"])
        ('null', 'true', '3', '1,a')
    """
    if isinstance(value, str):
        return value
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _number_string(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if is_nullish(item) else js_string(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def js_number(value: Any) -> float | int:
    """Convert a value to a number the way JavaScript's ``Number(value)`` does.

    Returns NaN (as a float) where JavaScript would.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if text in ("Infinity", "+Infinity", "-Infinity"):
            return -math.inf if text[0] == "-" else math.inf
        if "_" in text or text.lstrip("+-")[:1].isalpha():
            return math.nan
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return math.nan
    if isinstance(value, (list, tuple)):
        if not value:
            return 0
        if len(value) == 1:
            return js_number(js_string(value[0]))
        return math.nan
    return math.nan


def js_truthy(value: Any) -> bool:
    """JavaScript truthiness: empty containers are truthy, ``NaN`` is not."""
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def strict_equals(left: Any, right: Any) -> bool:
    """``===``: same type and value; containers compare by identity."""
    if left is UNDEFINED or right is UNDEFINED:
        return left is right
    if left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    """``==``: null equals undefined; primitives compare after numeric coercion."""
    if is_nullish(left) or is_nullish(right):
        return is_nullish(left) and is_nullish(right)
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    primitive = (str, int, float, bool)
    if isinstance(left, primitive) and isinstance(right, primitive):
        return js_number(left) == js_number(right)
    if isinstance(left, primitive) or isinstance(right, primitive):
        container, primitive_value = (
            (right, left) if isinstance(left, primitive) else (left, right)
        )
        return loose_equals(js_string(container), primitive_value)
    return left is right


def to_json_value(value: Any) -> JsonValue:
    """Convert an evaluation result into plain JSON data.

    ``UNDEFINED`` becomes None, tuples become lists, non-finite floats become
    None (as ``JSON.stringify`` does) and anything else that is not JSON data
    is stringified.
    """
    if value is UNDEFINED or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, Mapping):
        return {
            str(k): to_json_value(v) for k, v in value.items() if v is not UNDEFINED
        }
    return js_string(value)


def json_stringify(value: Any) -> str:
    """``JSON.stringify`` equivalent with compact separators."""
    return json.dumps(
        to_json_value(value), separators=(",", ":"), ensure_ascii=False
    )
