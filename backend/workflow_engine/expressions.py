"""
Expression Resolver - dotted-path lookups and single-comparison conditions

Node configuration refers to runtime data with plain dotted paths such as
``data.customer.email``. Conditions are limited to one binary comparison
(``data.total >= 100``) or a bare path checked for truthiness. Nothing here
raises on malformed input; unresolvable expressions degrade to ``UNDEFINED``
or ``False``.
"""

import json
import logging
import math
import re
from typing import Any, Mapping, Tuple

logger = logging.getLogger(__name__)


class _Undefined:
    """Marker for a path that does not resolve, distinct from a present ``None``"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED = _Undefined()

# Two-character operators first so ">=" is never read as ">"
OPERATORS: Tuple[str, ...] = ("===", "!==", ">=", "<=", ">", "<")

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_TOP_LEVEL_TOKEN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_DOTTED_TOKEN = re.compile(r"\{\{\s*(\w+(?:\.\w+)*)\s*\}\}")


def evaluate_expression(path: str, context: Any) -> Any:
    """
    Resolve a dotted property path against a nested mapping.

    Args:
        path: Dotted path, e.g. ``data.user.name``
        context: Root mapping to walk

    Returns:
        The resolved value, ``None`` for a present null, or ``UNDEFINED``
        when any segment is missing.
    """
    if not isinstance(path, str) or not path.strip():
        return UNDEFINED

    current = context
    for part in path.strip().split("."):
        if not isinstance(current, Mapping):
            return UNDEFINED
        if part not in current:
            return UNDEFINED
        current = current[part]
    return current


def is_truthy(value: Any) -> bool:
    """Truthiness the way node authors expect it from the canvas editor"""
    if value is UNDEFINED or value is None or value is False:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    # Containers are truthy even when empty
    return True


def to_number(value: Any) -> float:
    """Numeric coercion used by ordered comparisons and aggregates"""
    if value is UNDEFINED:
        return math.nan
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (``True`` is not ``1``)"""
    if left is UNDEFINED or right is UNDEFINED:
        return left is right
    if left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def parse_literal(token: str, context: Any) -> Any:
    """
    Parse the right-hand side of a comparison.

    Booleans, ``null``, quoted strings and numbers are literals; any other
    token is looked up as a path so two fields can be compared.
    """
    if token == "true":
        return True
    if token == "false":
        return False
    if token == "null":
        return None
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ('"', "'"):
        return token[1:-1]
    if _NUMBER_RE.match(token):
        if any(c in token for c in ".eE"):
            return float(token)
        return int(token)
    return evaluate_expression(token, context)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "===":
        return strict_equals(left, right)
    if op == "!==":
        return not strict_equals(left, right)

    left_num = to_number(left)
    right_num = to_number(right)
    if math.isnan(left_num) or math.isnan(right_num):
        return False
    if op == ">=":
        return left_num >= right_num
    if op == "<=":
        return left_num <= right_num
    if op == ">":
        return left_num > right_num
    return left_num < right_num


def evaluate_condition(expr: str, context: Any) -> bool:
    """
    Evaluate a single binary comparison or a truthiness check.

    Examples:
        ``data.status === "active"``, ``age >= 18``, ``data.enabled``
    """
    if not isinstance(expr, str) or not expr.strip():
        return False

    try:
        for op in OPERATORS:
            if op not in expr:
                continue
            left_expr, _, right_expr = expr.partition(op)
            left_expr = left_expr.strip()
            right_expr = right_expr.strip()
            if not left_expr or not right_expr:
                continue
            left = evaluate_expression(left_expr, context)
            right = parse_literal(right_expr, context)
            return _compare(op, left, right)

        return is_truthy(evaluate_expression(expr, context))
    except Exception as e:
        logger.warning(f"Condition '{expr}' could not be evaluated: {e}")
        return False


def stringify(value: Any) -> str:
    """Render a value for interpolation into text"""
    if value is UNDEFINED or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def string_form(value: Any) -> str:
    """String conversion for value matching; null and missing keep their names"""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    return stringify(value)


def render_template(template: str, data: Any, dotted: bool = False) -> str:
    """
    Replace ``{{name}}`` tokens with values from ``data``.

    Only top-level keys are substituted unless ``dotted`` is set, in which
    case tokens may be dotted paths. Missing values render as empty text.
    """
    if not template:
        return ""

    pattern = _DOTTED_TOKEN if dotted else _TOP_LEVEL_TOKEN

    def _replace(match: "re.Match") -> str:
        key = match.group(1)
        if dotted:
            value = evaluate_expression(key, data)
        elif isinstance(data, Mapping):
            value = data.get(key, UNDEFINED)
        else:
            value = UNDEFINED
        return stringify(value)

    return pattern.sub(_replace, template)
