"""Builtin function library and whitelisted methods.

Everything an expression can call lives in this module:

- Helper namespaces used by n8n: ``$if``, ``$str``, ``$array``, ``$obj``,
  ``$date``, ``$math``
- Make's bare functions: ``ifThenElse``, ``upper``, ``formatDate``, ...
- A small set of JavaScript globals: ``Math``, ``JSON``, ``Object``,
  ``Array.isArray``, ``String``, ``Number``, ``parseInt``, ...
- Methods on strings, arrays and numbers (``"a".toUpperCase()``,
  ``items.map(i => i.id)``, ``price.toFixed(2)``)

Functions receive already-evaluated arguments. Callbacks (arrow functions
from the expression) arrive as plain Python callables whose cost is charged
to the evaluator's step budget. Functions signal bad input by raising
``TypeError`` or ``ValueError``; the evaluator reports those as evaluation
errors.

Dates are ISO 8601 strings in UTC (``2024-05-01T12:00:00.000Z``) rather than
date objects, so every value an expression produces stays JSON data.
"""

from __future__ import annotations

import calendar
import functools
import json
import math
import random
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote, unquote

from flowbridge.expressions.values import (
    UNDEFINED,
    is_nullish,
    js_number,
    js_string,
    js_truthy,
    json_stringify,
    strict_equals,
    to_json_value,
)

__all__ = [
    "BuiltinFunction",
    "FunctionNamespace",
    "BUILTINS",
    "resolve_builtin",
    "lookup_method",
]

# Upper bound for strings produced by repeat/padStart/padEnd
_MAX_BUILT_STRING = 1_000_000

# Decimal places beyond which rounding cannot change a float
_MAX_ROUND_PLACES = 308


@dataclass(frozen=True, slots=True)
class BuiltinFunction:
    """A callable exposed to expressions.

    Attributes:
        name: Name shown in error messages (``$str.upper``).
        function: Python implementation.
    """

    name: str
    function: Callable[..., Any] = field(repr=False)

    def __call__(self, *args: Any) -> Any:
        return self.function(*args)


@dataclass(frozen=True, slots=True)
class FunctionNamespace:
    """A group of builtins reached by member access (``$str.upper``)."""

    name: str
    functions: Mapping[str, BuiltinFunction] = field(repr=False)

    def get(self, member: str) -> BuiltinFunction | None:
        return self.functions.get(member)


def _namespace(
    name: str, functions: Mapping[str, Callable[..., Any]]
) -> FunctionNamespace:
    return FunctionNamespace(
        name,
        {
            member: BuiltinFunction(f"{name}.{member}", fn)
            for member, fn in functions.items()
        },
    )


# Argument helpers


def _require_callable(value: Any, function_name: str) -> Callable[..., Any]:
    if not callable(value):
        raise TypeError(f"{function_name} expects a function argument")
    return value


def _to_int(value: Any, default: int = 0) -> int:
    if value is UNDEFINED:
        return default
    number = js_number(value)
    if isinstance(number, float):
        if math.isnan(number):
            return 0
        if math.isinf(number):
            return 2**53 if number > 0 else -(2**53)
    return int(number)


def _check_length(length: int, function_name: str) -> None:
    if length > _MAX_BUILT_STRING:
        raise ValueError(f"{function_name} would build a string of {length} characters")


def _join(items: Any, separator: Any = ",") -> Any:
    if not isinstance(items, list):
        return items
    sep = "," if separator is UNDEFINED else js_string(separator)
    return sep.join("" if is_nullish(item) else js_string(item) for item in items)


def _default_sort_key(value: Any) -> tuple[int, str]:
    # JavaScript's default sort compares string forms; undefined sorts last
    if value is UNDEFINED:
        return (1, "")
    return (0, js_string(value))


def _sorted(items: list[Any], comparator: Any = UNDEFINED) -> list[Any]:
    if comparator is UNDEFINED:
        return sorted(items, key=_default_sort_key)
    compare = _require_callable(comparator, "sort")

    def cmp(a: Any, b: Any) -> int:
        result = js_number(compare(a, b))
        if isinstance(result, float) and math.isnan(result):
            return 0
        return (result > 0) - (result < 0)

    return sorted(items, key=functools.cmp_to_key(cmp))


def _js_round(value: Any, decimals: Any = 0) -> int | float:
    number = js_number(value)
    if isinstance(number, float) and not math.isfinite(number):
        return number
    places = _to_int(decimals)
    # 10**places beyond the float range only costs time
    if places < -_MAX_ROUND_PLACES:
        return 0
    if places > _MAX_ROUND_PLACES:
        return number
    if places <= 0:
        factor = 10 ** (-places)
        return int(math.floor(number / factor + 0.5) * factor)
    factor = 10**places
    scaled = number * factor
    if isinstance(scaled, float) and not math.isfinite(scaled):
        return number
    return math.floor(scaled + 0.5) / factor


# Dates


def _format_iso(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now() -> str:
    return _format_iso(datetime.now(timezone.utc))


_DATE_TOKENS = re.compile(r"YYYY|MM|DD|HH|mm|ss")


def _format_date(value: Any, pattern: Any = "ISO") -> str:
    moment = _parse_date(value)
    if moment is None:
        return ""
    moment = moment.astimezone(timezone.utc)
    fmt = "ISO" if pattern is UNDEFINED else js_string(pattern)
    if fmt == "ISO":
        return _format_iso(moment)
    if fmt == "locale":
        return moment.strftime("%Y-%m-%d %H:%M:%S")
    if fmt == "date":
        return moment.strftime("%Y-%m-%d")
    if fmt == "time":
        return moment.strftime("%H:%M:%S")
    parts = {
        "YYYY": f"{moment.year:04d}",
        "MM": f"{moment.month:02d}",
        "DD": f"{moment.day:02d}",
        "HH": f"{moment.hour:02d}",
        "mm": f"{moment.minute:02d}",
        "ss": f"{moment.second:02d}",
    }
    return _DATE_TOKENS.sub(lambda m: parts[m.group()], fmt)


def _add_months(moment: datetime, months: int) -> datetime:
    total = moment.month - 1 + months
    year = moment.year + total // 12
    month = total % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


_TIME_UNITS = frozenset({"days", "hours", "minutes", "seconds"})


def _add_date(value: Any, amount: Any, unit: Any = "days") -> Any:
    moment = _parse_date(value)
    if moment is None:
        return value
    count = _to_int(amount)
    unit_name = js_string(unit)
    try:
        if unit_name == "years":
            moment = _add_months(moment, count * 12)
        elif unit_name == "months":
            moment = _add_months(moment, count)
        elif unit_name in _TIME_UNITS:
            moment = moment + timedelta(**{unit_name: count})
        else:
            raise ValueError(f"Unknown date unit '{unit_name}'")
    except OverflowError as e:
        raise ValueError(f"Date out of range: {e}") from e
    return _format_iso(moment)


# $str / Make string functions


def _upper(text: Any) -> Any:
    return text.upper() if isinstance(text, str) else text


def _lower(text: Any) -> Any:
    return text.lower() if isinstance(text, str) else text


def _trim(text: Any) -> Any:
    return text.strip() if isinstance(text, str) else text


def _replace_all(text: Any, find: Any, replacement: Any = "") -> Any:
    if not isinstance(text, str):
        return text
    return text.replace(js_string(find), js_string(replacement))


def _substr(text: Any, start: Any = 0, length: Any = UNDEFINED) -> Any:
    if not isinstance(text, str):
        return text
    begin = _to_int(start)
    if begin < 0:
        begin = max(len(text) + begin, 0)
    if length is UNDEFINED:
        return text[begin:]
    return text[begin : begin + max(_to_int(length), 0)]


def _substring(text: Any, start: Any = 0, end: Any = UNDEFINED) -> Any:
    if not isinstance(text, str):
        return text
    size = len(text)
    begin = min(max(_to_int(start), 0), size)
    finish = size if end is UNDEFINED else min(max(_to_int(end), 0), size)
    if begin > finish:
        begin, finish = finish, begin
    return text[begin:finish]


_FORMAT_SLOT = re.compile(r"\{(\d+)\}")


def _format(template: Any, *args: Any) -> Any:
    if not isinstance(template, str):
        return template

    def fill(match: re.Match[str]) -> str:
        index = int(match.group(1))
        if index < len(args) and args[index] is not UNDEFINED:
            return js_string(args[index])
        return match.group()

    return _FORMAT_SLOT.sub(fill, template)


# $array / Make array functions


def _first(items: Any) -> Any:
    return items[0] if isinstance(items, list) and items else UNDEFINED


def _last(items: Any) -> Any:
    return items[-1] if isinstance(items, list) and items else UNDEFINED


def _filter(items: Any, predicate: Any) -> Any:
    if not isinstance(items, list):
        return items
    test = _require_callable(predicate, "filter")
    return [item for i, item in enumerate(items) if js_truthy(test(item, i, items))]


def _map(items: Any, mapper: Any) -> Any:
    if not isinstance(items, list):
        return items
    transform = _require_callable(mapper, "map")
    return [transform(item, i, items) for i, item in enumerate(items)]


def _find(items: Any, predicate: Any) -> Any:
    if not isinstance(items, list):
        return UNDEFINED
    test = _require_callable(predicate, "find")
    for i, item in enumerate(items):
        if js_truthy(test(item, i, items)):
            return item
    return UNDEFINED


def _sort(items: Any, comparator: Any = UNDEFINED) -> Any:
    if not isinstance(items, list):
        return items
    return _sorted(items, comparator)


# $obj


def _keys(obj: Any) -> list[Any]:
    return list(obj.keys()) if isinstance(obj, dict) else []


def _values(obj: Any) -> list[Any]:
    return list(obj.values()) if isinstance(obj, dict) else []


def _pick(obj: Any, *props: Any) -> dict[str, Any]:
    if not isinstance(obj, dict):
        return {}
    names = [js_string(p) for p in props]
    return {name: obj[name] for name in names if name in obj}


def _omit(obj: Any, *props: Any) -> dict[str, Any]:
    if not isinstance(obj, dict):
        return {}
    names = {js_string(p) for p in props}
    return {k: v for k, v in obj.items() if k not in names}


def _entries(obj: Any) -> list[list[Any]]:
    return [[k, v] for k, v in obj.items()] if isinstance(obj, dict) else []


def _merge(*objects: Any) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for obj in objects:
        if isinstance(obj, dict):
            merged.update(obj)
    return merged


# $math


def _random(minimum: Any = 0, maximum: Any = 1) -> float:
    low = js_number(0 if minimum is UNDEFINED else minimum)
    high = js_number(1 if maximum is UNDEFINED else maximum)
    return random.random() * (high - low) + low


def _random_int(minimum: Any, maximum: Any) -> int:
    low = math.ceil(js_number(minimum))
    high = math.floor(js_number(maximum))
    if low > high:
        raise ValueError(f"randomInt range is empty: {low} > {high}")
    return random.randint(low, high)


def _if(condition: Any, when_true: Any, when_false: Any = UNDEFINED) -> Any:
    return when_true if js_truthy(condition) else when_false


# JavaScript globals


_INT_PREFIX = re.compile(r"\s*([+-]?)(0[xX])?([0-9A-Za-z]*)")
_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)"
)


def _parse_int(value: Any, radix: Any = UNDEFINED) -> int | float:
    text = js_string(value)
    match = _INT_PREFIX.match(text)
    if match is None:
        return math.nan
    sign, hex_prefix, digits = match.groups()
    if radix is UNDEFINED or _to_int(radix) == 0:
        base = 16 if hex_prefix else 10
    else:
        base = _to_int(radix)
    if hex_prefix and base != 16:
        digits = hex_prefix + digits
    if not 2 <= base <= 36:
        return math.nan
    result = 0
    consumed = 0
    for char in digits:
        digit = int(char, 36)
        if digit >= base:
            break
        result = result * base + digit
        consumed += 1
    if consumed == 0:
        return math.nan
    return -result if sign == "-" else result


def _parse_float(value: Any) -> int | float:
    match = _FLOAT_PREFIX.match(js_string(value))
    if match is None:
        return math.nan
    return js_number(match.group().strip())


def _json_parse(text: Any) -> Any:
    return json.loads(js_string(text))


def _json_stringify(
    value: Any, replacer: Any = UNDEFINED, indent: Any = UNDEFINED
) -> Any:
    if value is UNDEFINED:
        return UNDEFINED
    if indent is UNDEFINED or is_nullish(indent):
        return json_stringify(value)
    spaces = min(max(_to_int(indent), 0), 10)
    return json.dumps(to_json_value(value), indent=spaces, ensure_ascii=False)


def _math_extreme(pick: Callable[..., Any], empty: float) -> Callable[..., Any]:
    def extreme(*values: Any) -> Any:
        numbers = [js_number(v) for v in values]
        if not numbers:
            return empty
        if any(isinstance(n, float) and math.isnan(n) for n in numbers):
            return math.nan
        return pick(numbers)

    return extreme


def _math_unary(operation: Callable[[float], Any]) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        number = js_number(value)
        if isinstance(number, float) and not math.isfinite(number):
            return number
        return operation(number)

    return apply


def _sqrt(value: Any) -> float:
    number = js_number(value)
    return math.sqrt(number) if number >= 0 else math.nan


def _pow(base: Any, exponent: Any) -> int | float:
    try:
        result = math.pow(js_number(base), js_number(exponent))
    except OverflowError:
        return math.inf
    except (ValueError, ZeroDivisionError):
        return math.nan
    if result.is_integer() and abs(result) < 2**53:
        return int(result)
    return result


def _sign(value: Any) -> int | float:
    number = js_number(value)
    if isinstance(number, float) and math.isnan(number):
        return number
    return (number > 0) - (number < 0)


BUILTINS: dict[str, BuiltinFunction | FunctionNamespace] = {
    "$if": BuiltinFunction("$if", _if),
    "$str": _namespace(
        "$str",
        {
            "upper": _upper,
            "lower": _lower,
            "trim": _trim,
            "replace": _replace_all,
            "substr": _substr,
            "format": _format,
        },
    ),
    "$array": _namespace(
        "$array",
        {
            "first": _first,
            "last": _last,
            "join": _join,
            "filter": _filter,
            "map": _map,
            "find": _find,
            "sort": _sort,
        },
    ),
    "$obj": _namespace(
        "$obj",
        {
            "keys": _keys,
            "values": _values,
            "pick": _pick,
            "omit": _omit,
            "merge": _merge,
        },
    ),
    "$date": _namespace(
        "$date",
        {"now": _now, "format": _format_date, "add": _add_date},
    ),
    "$math": _namespace(
        "$math",
        {"round": _js_round, "random": _random, "randomInt": _random_int},
    ),
    # Make
    "ifThenElse": BuiltinFunction("ifThenElse", _if),
    "upper": BuiltinFunction("upper", _upper),
    "lower": BuiltinFunction("lower", _lower),
    "trim": BuiltinFunction("trim", _trim),
    "replace": BuiltinFunction("replace", _replace_all),
    "substring": BuiltinFunction("substring", _substring),
    "first": BuiltinFunction("first", _first),
    "last": BuiltinFunction("last", _last),
    "join": BuiltinFunction("join", _join),
    "now": BuiltinFunction("now", _now),
    "formatDate": BuiltinFunction("formatDate", _format_date),
    "round": BuiltinFunction("round", _js_round),
    "random": BuiltinFunction("random", _random),
    # JavaScript globals
    "Math": _namespace(
        "Math",
        {
            "abs": _math_unary(abs),
            "ceil": _math_unary(math.ceil),
            "floor": _math_unary(math.floor),
            "trunc": _math_unary(math.trunc),
            "round": _js_round,
            "sqrt": _sqrt,
            "pow": _pow,
            "sign": _sign,
            "min": _math_extreme(min, math.inf),
            "max": _math_extreme(max, -math.inf),
            "random": random.random,
        },
    ),
    "JSON": _namespace("JSON", {"parse": _json_parse, "stringify": _json_stringify}),
    "Object": _namespace(
        "Object",
        {
            "keys": _keys,
            "values": _values,
            "entries": _entries,
        },
    ),
    "Array": _namespace("Array", {"isArray": lambda value: isinstance(value, list)}),
    "String": BuiltinFunction("String", lambda value="": js_string(value)),
    "Number": BuiltinFunction("Number", lambda value=0: js_number(value)),
    "Boolean": BuiltinFunction("Boolean", lambda value=False: js_truthy(value)),
    "parseInt": BuiltinFunction("parseInt", _parse_int),
    "parseFloat": BuiltinFunction("parseFloat", _parse_float),
    "encodeURIComponent": BuiltinFunction(
        "encodeURIComponent", lambda value: quote(js_string(value), safe="-_.!~*'()")
    ),
    "decodeURIComponent": BuiltinFunction(
        "decodeURIComponent", lambda value: unquote(js_string(value))
    ),
}

# Values rather than functions; computed on lookup
_DYNAMIC_VALUES: dict[str, Callable[[], Any]] = {
    "$now": _now,
    "NaN": lambda: math.nan,
    "Infinity": lambda: math.inf,
}


def resolve_builtin(name: str) -> Any:
    """Look up a builtin by name.

    Returns:
        The function, namespace or value, or ``UNDEFINED`` when unknown.
    """
    if name in BUILTINS:
        return BUILTINS[name]
    if name in _DYNAMIC_VALUES:
        return _DYNAMIC_VALUES[name]()
    return UNDEFINED


# Methods, keyed by name; the receiver is passed as the first argument


def _index_of(receiver: Any, search: Any, start: Any = 0) -> int:
    begin = _to_int(start)
    if isinstance(receiver, str):
        return receiver.find(js_string(search), max(begin, 0))
    for i in range(max(begin, 0), len(receiver)):
        if strict_equals(receiver[i], search):
            return i
    return -1


def _includes(receiver: Any, search: Any) -> bool:
    if isinstance(receiver, str):
        return js_string(search) in receiver
    return any(strict_equals(item, search) for item in receiver)


def _slice(receiver: Any, start: Any = 0, end: Any = UNDEFINED) -> Any:
    begin = _to_int(start)
    if end is UNDEFINED:
        return receiver[begin:]
    return receiver[begin : _to_int(end)]


def _split(text: str, separator: Any = UNDEFINED, limit: Any = UNDEFINED) -> list[str]:
    if separator is UNDEFINED:
        parts = [text]
    elif js_string(separator) == "":
        parts = list(text)
    else:
        parts = text.split(js_string(separator))
    if limit is not UNDEFINED:
        parts = parts[: max(_to_int(limit), 0)]
    return parts


def _pad(text: str, length: Any, fill: Any, at_start: bool) -> str:
    target = _to_int(length)
    _check_length(target, "padStart" if at_start else "padEnd")
    filler = " " if fill is UNDEFINED else js_string(fill)
    missing = target - len(text)
    if missing <= 0 or not filler:
        return text
    padding = (filler * (missing // len(filler) + 1))[:missing]
    return padding + text if at_start else text + padding


def _repeat(text: str, count: Any) -> str:
    times = _to_int(count)
    if times < 0:
        raise ValueError("repeat count must be non-negative")
    _check_length(len(text) * times, "repeat")
    return text * times


def _char_at(text: str, index: Any = 0) -> str:
    position = _to_int(index)
    return text[position] if 0 <= position < len(text) else ""


def _to_fixed(number: Any, digits: Any = 0) -> str:
    places = _to_int(digits)
    if not 0 <= places <= 100:
        raise ValueError("toFixed() digits argument must be between 0 and 100")
    value = js_number(number)
    if isinstance(value, float) and not math.isfinite(value):
        return js_string(value)
    return f"{value:.{places}f}"


def _reduce(items: list[Any], reducer: Any, *initial: Any) -> Any:
    combine = _require_callable(reducer, "reduce")
    values = iter(enumerate(items))
    if initial:
        accumulator = initial[0]
    else:
        try:
            _, accumulator = next(values)
        except StopIteration:
            raise TypeError("reduce of empty array with no initial value") from None
    for i, item in values:
        accumulator = combine(accumulator, item, i, items)
    return accumulator


def _find_index(items: list[Any], predicate: Any) -> int:
    test = _require_callable(predicate, "findIndex")
    for i, item in enumerate(items):
        if js_truthy(test(item, i, items)):
            return i
    return -1


def _some(items: list[Any], predicate: Any) -> bool:
    test = _require_callable(predicate, "some")
    return any(js_truthy(test(item, i, items)) for i, item in enumerate(items))


def _every(items: list[Any], predicate: Any) -> bool:
    test = _require_callable(predicate, "every")
    return all(js_truthy(test(item, i, items)) for i, item in enumerate(items))


def _flat(items: list[Any], depth: Any = 1) -> list[Any]:
    levels = _to_int(depth, default=1)
    result: list[Any] = []
    for item in items:
        if isinstance(item, list) and levels > 0:
            result.extend(_flat(item, levels - 1))
        else:
            result.append(item)
    return result


def _concat(receiver: Any, *others: Any) -> Any:
    if isinstance(receiver, str):
        return receiver + "".join(js_string(o) for o in others)
    result = list(receiver)
    for other in others:
        if isinstance(other, list):
            result.extend(other)
        else:
            result.append(other)
    return result


STRING_METHODS: dict[str, Callable[..., Any]] = {
    "toUpperCase": str.upper,
    "toLowerCase": str.lower,
    "trim": str.strip,
    "trimStart": str.lstrip,
    "trimEnd": str.rstrip,
    "includes": _includes,
    "startsWith": lambda s, prefix: s.startswith(js_string(prefix)),
    "endsWith": lambda s, suffix: s.endswith(js_string(suffix)),
    "indexOf": _index_of,
    "slice": _slice,
    "substring": _substring,
    "substr": _substr,
    "split": _split,
    "replace": lambda s, find, new="undefined": s.replace(
        js_string(find), js_string(new), 1
    ),
    "replaceAll": lambda s, find, new="undefined": s.replace(
        js_string(find), js_string(new)
    ),
    "padStart": lambda s, length, fill=UNDEFINED: _pad(s, length, fill, True),
    "padEnd": lambda s, length, fill=UNDEFINED: _pad(s, length, fill, False),
    "repeat": _repeat,
    "charAt": _char_at,
    "concat": _concat,
    "toString": js_string,
}

ARRAY_METHODS: dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "indexOf": _index_of,
    "join": _join,
    "slice": _slice,
    "concat": _concat,
    "map": _map,
    "filter": _filter,
    "find": _find,
    "findIndex": _find_index,
    "some": _some,
    "every": _every,
    "reduce": _reduce,
    "sort": _sort,
    "reverse": lambda items: list(reversed(items)),
    "flat": _flat,
    "toString": js_string,
}

NUMBER_METHODS: dict[str, Callable[..., Any]] = {
    "toFixed": _to_fixed,
    "toString": js_string,
}


def lookup_method(receiver: Any, name: str) -> Callable[..., Any] | None:
    """Return the whitelisted method ``name`` for ``receiver``'s type, or None."""
    if isinstance(receiver, str):
        return STRING_METHODS.get(name)
    if isinstance(receiver, list):
        return ARRAY_METHODS.get(name)
    if isinstance(receiver, (int, float)) and not isinstance(receiver, bool):
        return NUMBER_METHODS.get(name)
    if isinstance(receiver, bool) and name == "toString":
        return js_string
    return None
