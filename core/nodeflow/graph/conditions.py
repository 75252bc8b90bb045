"""
Condition evaluation for if_else and filter nodes.

Values come from user-typed config and arbitrary upstream outputs, so the
comparisons are loose: equality and substring checks compare string forms,
ordering compares numeric forms (anything non-numeric compares false).
"""

import json
import math
from collections.abc import Callable
from typing import Any


def to_js_string(value: Any) -> str:
    """String form used for loose comparison ("true", "5", '{"a":1}')."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def to_js_number(value: Any) -> float:
    """Numeric form used for ordering; NaN when the value is not numeric."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _greater(a: Any, b: Any) -> bool:
    return to_js_number(a) > to_js_number(b)


def _less(a: Any, b: Any) -> bool:
    return to_js_number(a) < to_js_number(b)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda a, b: to_js_string(a) == to_js_string(b),
    "not_equals": lambda a, b: to_js_string(a) != to_js_string(b),
    "greater_than": _greater,
    "less_than": _less,
    "contains": lambda a, b: to_js_string(b) in to_js_string(a),
    "is_empty": lambda a, _: not a,
    "is_not_empty": lambda a, _: bool(a) and a != "",
}


def evaluate_condition(value: Any, operator: str, compare_to: Any = None) -> bool:
    """Apply ``operator`` to ``value`` and ``compare_to``; unknown operators test truthiness."""
    op = OPERATORS.get(operator)
    if op is None:
        return bool(value)
    return op(value, compare_to)
