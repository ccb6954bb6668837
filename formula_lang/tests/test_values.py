import math

import numpy as np
import pandas as pd

from formula_lang.src.values import (
    ValueKind,
    arithmetic,
    as_array,
    compare,
    float_equal,
    kind_of,
    logical,
    logical_not,
    negate,
    to_bool,
    to_float,
)


def test_kind_of():
    assert kind_of(None) is ValueKind.NIL
    assert kind_of(True) is ValueKind.BOOL
    assert kind_of(np.bool_(False)) is ValueKind.BOOL
    assert kind_of(3) is ValueKind.SCALAR
    assert kind_of(np.float64(1.5)) is ValueKind.SCALAR
    assert kind_of("x") is ValueKind.STRING
    assert kind_of(np.array([1.0, 2.0])) is ValueKind.NUMERIC_SERIES
    assert kind_of(pd.Series([1, 2])) is ValueKind.NUMERIC_SERIES
    assert kind_of([1, 2.5]) is ValueKind.NUMERIC_SERIES
    assert kind_of(np.array([True, False])) is ValueKind.BOOL_SERIES
    assert kind_of([True, False]) is ValueKind.BOOL_SERIES
    assert kind_of(abs) is ValueKind.CALLABLE
    assert kind_of(["2024-01-01", "2024-01-02"]) is ValueKind.OPAQUE


def test_as_array():
    assert as_array(3.0) is None
    arr = as_array(pd.Series([1, 2, 3]))
    assert arr.dtype == float
    assert arr.tolist() == [1.0, 2.0, 3.0]
    assert as_array([True, False]).tolist() == [1.0, 0.0]


def test_truthiness():
    assert to_bool(None) is False
    assert to_bool(0.0) is False
    assert to_bool(2.0) is True
    assert to_bool("") is False
    assert to_bool("a") is True
    assert to_bool(np.array([0.0, 0.0])) is False
    assert to_bool(np.array([0.0, 1.0])) is True
    assert to_bool(object()) is True


def test_to_float():
    assert to_float(True) == 1.0
    assert to_float(np.array([4.0, 5.0])) == 4.0
    assert to_float(np.array([])) == 0.0
    assert to_float("x") == 0.0


def test_float_equal():
    assert float_equal(100.004, 100.0)
    assert not float_equal(100.999, 101.0)
    assert float_equal(math.nan, math.nan)
    assert not float_equal(math.nan, 1.0)
    assert float_equal(1e-8, 2e-8)
    assert float_equal(0.5, 0.5 + 1e-12)
    assert not float_equal(math.inf, math.inf)


def test_compare_broadcasts():
    assert compare([1, 2, 3], 2, ">").tolist() == [0.0, 0.0, 1.0]
    # scalar on the left keeps operand order
    assert compare(2, np.array([1.0, 2.0, 3.0]), ">").tolist() == [1.0, 0.0, 0.0]
    assert compare(np.array([1.0, 2.0]), np.array([1.0, 3.0, 5.0]), "==").tolist() == [1.0, 0.0]
    assert compare(np.array([100.0, 50.0]), 100.004, "!=").tolist() == [0.0, 1.0]


def test_compare_scalars():
    assert compare(3.0, 2.0, ">") is True
    assert compare(100.0, 100.004, "=") is True
    assert compare(1.0, 2.0, "!=") is True


def test_arithmetic():
    assert arithmetic(1.0, 2.0, "+") == 3.0
    assert arithmetic(1.0, 0.0, "/") is None
    out = arithmetic(np.array([1.0, 2.0]), np.array([1.0, 2.0, 3.0]), "+")
    assert out.tolist() == [2.0, 4.0]
    assert arithmetic(10.0, np.array([1.0, 2.0]), "-").tolist() == [9.0, 8.0]
    assert arithmetic(np.array([1.0, 2.0]), np.array([1.0, 0.0]), "/") is None
    assert arithmetic(np.array([1.0, 2.0]), 0, "/") is None
    assert arithmetic("a", 1.0, "+") is None
    assert arithmetic(np.array([1.0]), "a", "*") is None


def test_logical():
    assert logical(True, 0.0, "AND") is False
    assert logical(0.0, "x", "OR") is True
    out = logical(np.array([1.0, 0.0, 1.0]), np.array([1.0, 1.0]), "AND")
    assert out.tolist() == [1.0, 0.0]
    assert logical(np.array([0.0, 1.0]), True, "OR").tolist() == [1.0, 1.0]


def test_unary():
    assert logical_not(np.array([1.0, 0.0])).tolist() == [0.0, 1.0]
    assert logical_not(0.0) is True
    assert negate(np.array([1.0, -2.0])).tolist() == [-1.0, 2.0]
    assert negate(2) == -2.0
    assert negate("a") is None
