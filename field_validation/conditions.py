"""
Comparison operators used by conditional rules.

Conditional number and date rules compare the field value against one or two
rule parameters using the operators below. An unknown operator never raises;
it simply compares as False.
"""

import math
import operator
import re
from typing import Any

# Leading numeric prefix, the same way a browser's parseFloat() reads it
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
}


def compare(condition: str, value1: Any, value2: Any) -> bool:
    """
    Test value1 against value2 with the named operator.

    Args:
        condition: One of <, <=, >, >=, =, ==, !=, <>
        value1: Left operand (number or datetime)
        value2: Right operand (same type as value1)

    Returns:
        Result of the comparison, or False for an unknown operator
    """
    op = OPERATORS.get(condition)
    if op is None:
        return False
    try:
        return bool(op(value1, value2))
    except TypeError:
        return False


def parse_float(value: Any) -> float:
    """Parse the leading number of value, returning NaN when there is none."""
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return math.nan
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return math.nan
    return float(match.group(0))
