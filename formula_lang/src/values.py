"""
Value model and broadcasting helpers for the formula interpreter.

Values flowing through evaluation are plain Python / numpy objects. Each one
is classified into a ValueKind, and the coercion and broadcasting rules
below dispatch on that kind:

- NIL             None
- BOOL            bool, numpy bool
- SCALAR          int, float, numpy number
- STRING          str
- NUMERIC_SERIES  1-d float ndarray, pandas Series, list of numbers
- BOOL_SERIES     bool ndarray, bool Series, list of bools
- CALLABLE        registered functions
- OPAQUE          anything else a host injects (e.g. a list of date strings)

Series produced here are float64 ndarrays. Boolean results of array
operations use 1.0 / 0.0.
"""

from __future__ import annotations

import math
import numbers
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np
import pandas as pd

__all__ = [
    "ValueKind",
    "kind_of",
    "is_series",
    "as_array",
    "as_bool_array",
    "to_bool",
    "to_float",
    "float_equal",
    "float_equal_array",
    "arithmetic",
    "compare",
    "logical",
    "logical_not",
    "negate",
]


class ValueKind(Enum):
    NIL = "nil"
    BOOL = "bool"
    SCALAR = "scalar"
    STRING = "string"
    NUMERIC_SERIES = "numeric_series"
    BOOL_SERIES = "bool_series"
    CALLABLE = "callable"
    OPAQUE = "opaque"


SERIES_KINDS = (ValueKind.NUMERIC_SERIES, ValueKind.BOOL_SERIES)

# Tolerances used by float_equal
NEAR_ZERO = 1e-6
ABS_EPSILON = 1e-10
REL_TOLERANCE = 0.01


def _is_number(x: Any) -> bool:
    return isinstance(x, numbers.Number) and not isinstance(x, (bool, np.bool_))


def kind_of(value: Any) -> ValueKind:
    """Classify a runtime value."""
    if value is None:
        return ValueKind.NIL
    if isinstance(value, (bool, np.bool_)):
        return ValueKind.BOOL
    if isinstance(value, numbers.Number):
        return ValueKind.SCALAR
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (np.ndarray, pd.Series)):
        if value.ndim != 1:
            return ValueKind.OPAQUE
        if pd.api.types.is_bool_dtype(value.dtype):
            return ValueKind.BOOL_SERIES
        if pd.api.types.is_numeric_dtype(value.dtype):
            return ValueKind.NUMERIC_SERIES
        return ValueKind.OPAQUE
    if isinstance(value, (list, tuple)):
        if value and all(isinstance(x, (bool, np.bool_)) for x in value):
            return ValueKind.BOOL_SERIES
        if all(_is_number(x) for x in value):
            return ValueKind.NUMERIC_SERIES
        return ValueKind.OPAQUE
    if callable(value):
        return ValueKind.CALLABLE
    return ValueKind.OPAQUE


def is_series(value: Any) -> bool:
    return kind_of(value) in SERIES_KINDS


def as_array(value: Any) -> Optional[np.ndarray]:
    """Return a float64 copy of a series value, or None if it is not a series."""
    if kind_of(value) not in SERIES_KINDS:
        return None
    if isinstance(value, pd.Series):
        return value.to_numpy(dtype=float, na_value=np.nan)
    return np.array(value, dtype=float)


def as_bool_array(value: Any) -> Optional[np.ndarray]:
    arr = as_array(value)
    if arr is None:
        return None
    return arr != 0


def to_bool(value: Any) -> bool:
    kind = kind_of(value)
    if kind is ValueKind.NIL:
        return False
    if kind is ValueKind.BOOL:
        return bool(value)
    if kind is ValueKind.SCALAR:
        return value != 0
    if kind is ValueKind.STRING:
        return value != ""
    if kind in SERIES_KINDS:
        return bool(np.any(as_array(value) != 0))
    return True


def to_float(value: Any) -> float:
    """Scalar view of a value; series yield their first element."""
    kind = kind_of(value)
    if kind is ValueKind.SCALAR:
        return float(value)
    if kind is ValueKind.BOOL:
        return 1.0 if value else 0.0
    if kind in SERIES_KINDS:
        arr = as_array(value)
        return float(arr[0]) if len(arr) else 0.0
    return 0.0


def float_equal(a: float, b: float) -> bool:
    """
    Tolerant float equality.

    NaN equals NaN. Values with different truncated integer parts are never
    equal. Otherwise values are equal when they are both near zero and
    close in absolute terms, or when their difference is tiny, or when they
    differ by less than 1% relative to the larger magnitude.
    """
    a_nan, b_nan = math.isnan(a), math.isnan(b)
    if a_nan and b_nan:
        return True
    if a_nan or b_nan:
        return False
    # infinities never compare equal, matching float_equal_array
    if math.isinf(a) or math.isinf(b):
        return False
    if math.trunc(a) != math.trunc(b):
        return False
    diff = abs(a - b)
    if abs(a) < NEAR_ZERO and abs(b) < NEAR_ZERO:
        return diff < NEAR_ZERO
    if diff < ABS_EPSILON:
        return True
    max_val = max(abs(a), abs(b))
    if max_val < ABS_EPSILON:
        return True
    return diff / max_val < REL_TOLERANCE


def float_equal_array(a: np.ndarray, b: Any) -> np.ndarray:
    """Vectorised float_equal; `b` may be an array of the same length or a scalar."""
    a = np.asarray(a, dtype=float)
    b = np.broadcast_to(np.asarray(b, dtype=float), a.shape)
    a_nan, b_nan = np.isnan(a), np.isnan(b)
    with np.errstate(invalid="ignore", divide="ignore"):
        same_int = np.trunc(a) == np.trunc(b)
        diff = np.abs(a - b)
        max_val = np.maximum(np.abs(a), np.abs(b))
        near_zero = (np.abs(a) < NEAR_ZERO) & (np.abs(b) < NEAR_ZERO)
        close = (diff < ABS_EPSILON) | (max_val < ABS_EPSILON) | (diff / max_val < REL_TOLERANCE)
        equal = same_int & np.where(near_zero, diff < NEAR_ZERO, close)
    return (a_nan & b_nan) | (~a_nan & ~b_nan & equal)


# ==============
# Broadcasting
# ==============

def _pair(left: Any, right: Any):
    """
    Line up two operands for an element-wise operation.

    Returns (left, right, is_array). Two series are truncated to the shorter
    length; a series and a scalar-like value broadcast the scalar. When
    neither side is a series, the original values come back unchanged.
    """
    left_arr, right_arr = as_array(left), as_array(right)
    if left_arr is not None and right_arr is not None:
        n = min(len(left_arr), len(right_arr))
        return left_arr[:n], right_arr[:n], True
    if left_arr is not None:
        return left_arr, right, True
    if right_arr is not None:
        return left, right_arr, True
    return left, right, False


_ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": lambda a, b: a / b,
}


def arithmetic(left: Any, right: Any, op: str) -> Any:
    """
    Apply + - * / with broadcasting.

    Any zero divisor, scalar or element, turns the whole result into None.
    Operands that are neither numbers nor series also give None.
    """
    fn = _ARITHMETIC[op]
    left_kind, right_kind = kind_of(left), kind_of(right)

    if left_kind is ValueKind.SCALAR and right_kind is ValueKind.SCALAR:
        if op == "/" and right == 0:
            return None
        return float(fn(float(left), float(right)))

    lhs, rhs, is_array = _pair(left, right)
    if not is_array:
        return None
    # the non-series side of a broadcast must be a plain number
    if not isinstance(lhs, np.ndarray) and left_kind is not ValueKind.SCALAR:
        return None
    if not isinstance(rhs, np.ndarray) and right_kind is not ValueKind.SCALAR:
        return None
    if op == "/" and np.any(np.asarray(rhs, dtype=float) == 0):
        return None
    with np.errstate(invalid="ignore", over="ignore"):
        return np.asarray(fn(np.asarray(lhs, dtype=float), np.asarray(rhs, dtype=float)), dtype=float)


_COMPARE: dict[str, Callable[[Any, Any], Any]] = {
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
}


def compare(left: Any, right: Any, op: str) -> Any:
    """
    Apply a comparison with broadcasting.

    Series results are 1.0/0.0 float arrays, scalar results are bools.
    `==`/`=` and `!=` use the tolerant float_equal rule.
    """
    lhs, rhs, is_array = _pair(left, right)
    if is_array:
        a = lhs if isinstance(lhs, np.ndarray) else to_float(lhs)
        b = rhs if isinstance(rhs, np.ndarray) else to_float(rhs)
        if op in ("==", "=", "!="):
            if isinstance(a, np.ndarray):
                mask = float_equal_array(a, b)
            else:
                mask = float_equal_array(b, a)
            if op == "!=":
                mask = ~mask
        elif op in _COMPARE:
            with np.errstate(invalid="ignore"):
                mask = _COMPARE[op](np.asarray(a), np.asarray(b))
        else:
            return None
        return np.where(mask, 1.0, 0.0)

    a, b = to_float(left), to_float(right)
    if op in ("==", "="):
        return float_equal(a, b)
    if op == "!=":
        return not float_equal(a, b)
    if op in _COMPARE:
        return bool(_COMPARE[op](a, b))
    return False


def logical(left: Any, right: Any, op: str) -> Any:
    """AND / OR with broadcasting; arrays yield 1.0/0.0, scalars yield bools."""
    combine = np.logical_and if op == "AND" else np.logical_or
    lhs, rhs, is_array = _pair(left, right)
    if is_array:
        a = lhs != 0 if isinstance(lhs, np.ndarray) else to_bool(lhs)
        b = rhs != 0 if isinstance(rhs, np.ndarray) else to_bool(rhs)
        return np.where(combine(a, b), 1.0, 0.0)
    return bool(combine(to_bool(left), to_bool(right)))


def logical_not(value: Any) -> Any:
    arr = as_array(value)
    if arr is not None:
        return np.where(arr != 0, 0.0, 1.0)
    return not to_bool(value)


def negate(value: Any) -> Any:
    arr = as_array(value)
    if arr is not None:
        return -arr
    if kind_of(value) is ValueKind.SCALAR:
        return -float(value)
    return None
