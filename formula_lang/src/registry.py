"""
Function registry: the indicator library as seen from formula programs.

Each entry is a FunctionSpec (name, allowed arities, argument kinds, func).
The registry converts interpreter values into the pandas Series the
indicator functions expect and turns the results back into float arrays.
Names are case-sensitive, like every other identifier in the language.

Argument kinds:
- "series": numeric series (a number broadcasts when another argument is a series)
- "bools":  boolean series; numeric series are accepted, non-zero = True
- "int":    integer parameter (window length, shift)
- "float":  float parameter

A call where every series argument is a plain number runs on one bar and
returns a float, so IF(1>2, 1, 0) is 0.0.

Multi-line indicators register one name per line: KDJ is the K line,
KDJ_D and KDJ_J the others.

- validate_indicator(name, argc): ensures the function exists and arity is valid
- build_default_registry(): every built-in indicator
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

# Import with fallback for script execution
try:
    from . import indicators as ind
    from .errors import FunctionCallError, FunctionNotFoundError
    from .values import SERIES_KINDS, ValueKind, as_array, kind_of, to_float
except ImportError:  # script mode
    import indicators as ind  # type: ignore
    from errors import FunctionCallError, FunctionNotFoundError  # type: ignore
    from values import SERIES_KINDS, ValueKind, as_array, kind_of, to_float  # type: ignore

logger = logging.getLogger(__name__)

ARG_KINDS = ("series", "bools", "int", "float")


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    arity: Tuple[int, ...]
    arg_kinds: Tuple[str, ...]
    func: Callable[..., Any]

    def __post_init__(self):
        if isinstance(self.arity, int):
            object.__setattr__(self, "arity", (self.arity,))
        unknown = [k for k in self.arg_kinds if k not in ARG_KINDS]
        if unknown:
            raise ValueError(f"Unknown argument kinds for {self.name}: {unknown}")
        if max(self.arity) > len(self.arg_kinds):
            raise ValueError(f"{self.name}: arity {self.arity} exceeds declared argument kinds")


class FunctionRegistry:
    def __init__(self):
        self._specs: Dict[str, FunctionSpec] = {}

    def register(
        self,
        name: str,
        arity,
        arg_kinds: Sequence[str],
        func: Callable[..., Any],
    ) -> FunctionSpec:
        spec = FunctionSpec(name=name, arity=arity, arg_kinds=tuple(arg_kinds), func=func)
        self._specs[name] = spec
        return spec

    def get(self, name: str) -> Optional[FunctionSpec]:
        return self._specs.get(name)

    def names(self) -> List[str]:
        return sorted(self._specs)

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def call(self, name: str, args: Sequence[Any]) -> Any:
        """Convert `args`, run the indicator and return a float array (or float)."""
        spec = validate_indicator(name, len(args), registry=self)
        length = _series_length(spec, args)
        converted = _convert_args(spec, args, 1 if length is None else length)
        logger.debug("Calling %s with %d args", spec.name, len(converted))
        result = _to_output(spec.func(*converted))
        if length is None and isinstance(result, np.ndarray) and len(result) == 1:
            return float(result[0])
        return result

    def as_callable(self, name: str) -> Callable[[List[Any]], Any]:
        """Adapter with the interpreter's calling convention: fn(args)."""
        if name not in self:
            raise FunctionNotFoundError(name)

        def call(args: List[Any]) -> Any:
            return self.call(name, args)

        call.__name__ = name
        return call

    def install(self, target) -> None:
        """
        Register every function on `target`.

        `target` is anything with register_function(name, fn) (a
        FormulaInterpreter) or set_function(name, fn) (an Environment).
        """
        register = getattr(target, "register_function", None) or target.set_function
        for name in self.names():
            register(name, self.as_callable(name))
        logger.debug("Installed %d functions", len(self))


def validate_indicator(name: str, argc: int, registry: Optional[FunctionRegistry] = None) -> FunctionSpec:
    """
    Validate a function name and argument count against `registry`
    (the default registry when omitted).

    Raises FunctionNotFoundError for unknown names and FunctionCallError
    when the argument count is not one of the allowed arities.
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Indicator name must be a non-empty string.")
    if not isinstance(argc, int) or argc < 0:
        raise ValueError("Indicator argc must be a non-negative integer.")

    registry = registry if registry is not None else default_registry()
    spec = registry.get(name)
    if spec is None:
        raise FunctionNotFoundError(name)
    if argc not in spec.arity:
        raise FunctionCallError(
            spec.name, f"received {argc} args; allowed arities: {spec.arity}"
        )
    return spec


# ==============
# Conversion
# ==============

def _series_length(spec: FunctionSpec, args: Sequence[Any]) -> Optional[int]:
    for kind, arg in zip(spec.arg_kinds, args):
        if kind in ("series", "bools"):
            arr = as_array(arg)
            if arr is not None:
                return len(arr)
    return None


def _convert_args(spec: FunctionSpec, args: Sequence[Any], length: int) -> List[Any]:
    """Numbers in series positions broadcast to `length` bars."""
    converted: List[Any] = []
    for pos, (kind, arg) in enumerate(zip(spec.arg_kinds, args), start=1):
        arg_kind = kind_of(arg)
        if kind in ("series", "bools"):
            arr = as_array(arg)
            if arr is None and arg_kind in (ValueKind.SCALAR, ValueKind.BOOL):
                arr = np.full(length, to_float(arg))
            if arr is None:
                raise FunctionCallError(
                    spec.name, f"argument {pos} must be a series, got {arg_kind.value}"
                )
            if kind == "bools":
                converted.append(pd.Series(np.nan_to_num(arr) != 0))
            else:
                converted.append(pd.Series(arr))
        else:
            if arg_kind not in (ValueKind.SCALAR, ValueKind.BOOL):
                raise FunctionCallError(
                    spec.name, f"argument {pos} must be a number, got {arg_kind.value}"
                )
            value = to_float(arg)
            converted.append(int(value) if kind == "int" else value)
    return converted


def _to_output(result: Any) -> Any:
    if isinstance(result, (pd.Series, np.ndarray)):
        if pd.api.types.is_bool_dtype(result.dtype):
            return np.where(np.asarray(result, dtype=bool), 1.0, 0.0)
        if isinstance(result, pd.Series):
            return result.to_numpy(dtype=float, na_value=np.nan)
        return np.asarray(result, dtype=float)
    if kind_of(result) in SERIES_KINDS:
        return as_array(result)
    if kind_of(result) in (ValueKind.SCALAR, ValueKind.BOOL):
        return to_float(result)
    return result


# ==============
# Built-in library
# ==============

def _pick(func: Callable[..., Any], index: int) -> Callable[..., Any]:
    """One line of a multi-line indicator such as MACD or KDJ."""
    def picked(*args):
        return func(*args)[index]

    picked.__name__ = f"{func.__name__}_{index}"
    return picked


S, B, N, F = "series", "bools", "int", "float"

# name, arities, argument kinds, function
BUILTIN_FUNCTIONS: Tuple[Tuple[str, Tuple[int, ...], Tuple[str, ...], Callable[..., Any]], ...] = (
    # series tools
    ("ABS", (1,), (S,), ind.abs_),
    ("MAX", (2,), (S, S), ind.max_),
    ("MIN", (2,), (S, S), ind.min_),
    ("REF", (2,), (S, N), ind.ref),
    ("DIFF", (1, 2), (S, N), ind.diff),
    ("IF", (3,), (B, S, S), ind.if_),
    ("CROSS", (2,), (S, S), ind.cross),
    ("RET", (1, 2), (S, N), ind.ret),
    ("RD", (1, 2), (S, N), ind.rd),
    # math
    ("LN", (1,), (S,), ind.ln),
    ("POW", (2,), (S, F), ind.pow_),
    ("SQRT", (1,), (S,), ind.sqrt),
    ("SIN", (1,), (S,), ind.sin),
    ("COS", (1,), (S,), ind.cos),
    ("TAN", (1,), (S,), ind.tan),
    # window statistics
    ("STD", (2,), (S, N), ind.std),
    ("SUM", (2,), (S, N), ind.sum_),
    ("AVEDEV", (2,), (S, N), ind.avedev),
    ("HHV", (2,), (S, N), ind.hhv),
    ("LLV", (2,), (S, N), ind.llv),
    ("HHVBARS", (2,), (S, N), ind.hhvbars),
    ("LLVBARS", (2,), (S, N), ind.llvbars),
    ("COUNT", (2,), (B, N), ind.count),
    ("EVERY", (2,), (B, N), ind.every),
    ("EXIST", (2,), (B, N), ind.exist),
    ("SLOPE", (2,), (S, N), ind.slope),
    ("FORCAST", (2,), (S, N), ind.forcast),
    # moving averages
    ("MA", (2,), (S, N), ind.ma),
    ("EMA", (2,), (S, N), ind.ema),
    ("SMA", (2, 3), (S, N, F), ind.sma),
    ("WMA", (2,), (S, N), ind.wma),
    ("DMA", (2,), (S, F), ind.dma),
    # conditions
    ("BARSLAST", (1,), (B,), ind.barslast),
    ("BARSSINCEN", (2,), (B, N), ind.barssincen),
    ("VALUEWHEN", (2,), (B, S), ind.valuewhen),
    ("BETWEEN", (3,), (S, S, S), ind.between),
    ("LAST", (2, 3), (B, N, N), ind.last),
    ("LONGCROSS", (3,), (S, S, N), ind.longcross),
    ("FILTER", (2,), (B, N), ind.filter_),
    ("TOPRANGE", (1,), (S,), ind.toprange),
    ("LOWRANGE", (1,), (S,), ind.lowrange),
    # indicators
    ("RSI", (1, 2), (S, N), ind.rsi),
    ("MACD", (1, 2, 3, 4), (S, N, N, N), _pick(ind.macd, 0)),
    ("MACD_SIGNAL", (1, 2, 3, 4), (S, N, N, N), ind.macd_signal),
    ("MACD_HIST", (1, 2, 3, 4), (S, N, N, N), ind.macd_hist),
    ("BOLL", (1, 2, 3), (S, N, F), _pick(ind.boll, 1)),
    ("BOLLUPPER", (1, 2, 3), (S, N, F), ind.bollupper),
    ("BOLLLOWER", (1, 2, 3), (S, N, F), ind.bolllower),
    ("ATR", (3, 4), (S, S, S, N), ind.atr),
    ("KDJ", (3, 4, 5, 6), (S, S, S, N, N, N), _pick(ind.kdj, 0)),
    ("KDJ_D", (3, 4, 5, 6), (S, S, S, N, N, N), _pick(ind.kdj, 1)),
    ("KDJ_J", (3, 4, 5, 6), (S, S, S, N, N, N), _pick(ind.kdj, 2)),
    ("WR", (3, 4, 5), (S, S, S, N, N), _pick(ind.wr, 0)),
    ("WR1", (3, 4, 5), (S, S, S, N, N), _pick(ind.wr, 1)),
    ("BIAS", (1, 2, 3, 4), (S, N, N, N), _pick(ind.bias, 0)),
    ("BIAS2", (1, 2, 3, 4), (S, N, N, N), _pick(ind.bias, 1)),
    ("BIAS3", (1, 2, 3, 4), (S, N, N, N), _pick(ind.bias, 2)),
    ("PSY", (1, 2, 3), (S, N, N), _pick(ind.psy, 0)),
    ("PSYMA", (1, 2, 3), (S, N, N), _pick(ind.psy, 1)),
    ("CCI", (3, 4), (S, S, S, N), ind.cci),
    ("BBI", (1, 2, 3, 4, 5), (S, N, N, N, N), ind.bbi),
    ("DMI", (3, 4, 5), (S, S, S, N, N), _pick(ind.dmi, 0)),
    ("DMI_MDI", (3, 4, 5), (S, S, S, N, N), _pick(ind.dmi, 1)),
    ("DMI_ADX", (3, 4, 5), (S, S, S, N, N), _pick(ind.dmi, 2)),
    ("DMI_ADXR", (3, 4, 5), (S, S, S, N, N), _pick(ind.dmi, 3)),
    ("TAQ", (2, 3), (S, S, N), _pick(ind.taq, 0)),
    ("TAQ_MID", (2, 3), (S, S, N), _pick(ind.taq, 1)),
    ("TAQ_DOWN", (2, 3), (S, S, N), _pick(ind.taq, 2)),
    ("KTN", (3, 4, 5), (S, S, S, N, N), _pick(ind.ktn, 0)),
    ("KTN_MID", (3, 4, 5), (S, S, S, N, N), _pick(ind.ktn, 1)),
    ("KTN_LOWER", (3, 4, 5), (S, S, S, N, N), _pick(ind.ktn, 2)),
    ("TRIX", (1, 2, 3), (S, N, N), _pick(ind.trix, 0)),
    ("TRMA", (1, 2, 3), (S, N, N), _pick(ind.trix, 1)),
    ("VR", (2, 3), (S, S, N), ind.vr),
    ("CR", (3, 4), (S, S, S, N), ind.cr),
    ("EMV", (3, 4, 5), (S, S, S, N, N), _pick(ind.emv, 0)),
    ("MAEMV", (3, 4, 5), (S, S, S, N, N), _pick(ind.emv, 1)),
    ("DPO", (1, 2, 3, 4), (S, N, N, N), _pick(ind.dpo, 0)),
    ("MADPO", (1, 2, 3, 4), (S, N, N, N), _pick(ind.dpo, 1)),
    ("BRAR", (4, 5), (S, S, S, S, N), _pick(ind.brar, 0)),
    ("BRAR_BR", (4, 5), (S, S, S, S, N), _pick(ind.brar, 1)),
    ("DFMA", (1, 2, 3, 4), (S, N, N, N), _pick(ind.dfma, 0)),
    ("DFMA_MA", (1, 2, 3, 4), (S, N, N, N), _pick(ind.dfma, 1)),
    ("MTM", (1, 2, 3), (S, N, N), _pick(ind.mtm, 0)),
    ("MTMMA", (1, 2, 3), (S, N, N), _pick(ind.mtm, 1)),
    ("MASS", (2, 3, 4, 5), (S, S, N, N, N), _pick(ind.mass, 0)),
    ("MASS_MA", (2, 3, 4, 5), (S, S, N, N, N), _pick(ind.mass, 1)),
    ("ROC", (1, 2, 3), (S, N, N), _pick(ind.roc, 0)),
    ("MAROC", (1, 2, 3), (S, N, N), _pick(ind.roc, 1)),
    ("EXPMA", (1, 2, 3), (S, N, N), _pick(ind.expma, 0)),
    ("EXPMA2", (1, 2, 3), (S, N, N), _pick(ind.expma, 1)),
    ("OBV", (2,), (S, S), ind.obv),
    ("MFI", (4, 5), (S, S, S, S, N), ind.mfi),
    ("ASI", (4, 5, 6), (S, S, S, S, N, N), _pick(ind.asi, 0)),
    ("ASIT", (4, 5, 6), (S, S, S, S, N, N), _pick(ind.asi, 1)),
    ("LON", (4,), (S, S, S, S), _pick(ind.lon, 0)),
    ("LONMA", (4,), (S, S, S, S), _pick(ind.lon, 1)),
    ("QRR", (1,), (S,), ind.qrr),
    # price limits
    ("ZTPRICE", (1, 2), (S, F), ind.ztprice),
    ("DTPRICE", (1, 2), (S, F), ind.dtprice),
)


def build_default_registry() -> FunctionRegistry:
    registry = FunctionRegistry()
    for name, arity, kinds, func in BUILTIN_FUNCTIONS:
        registry.register(name, arity, kinds, func)
    return registry


_DEFAULT: Optional[FunctionRegistry] = None


def default_registry() -> FunctionRegistry:
    """Shared registry of the built-in functions, built on first use."""
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = build_default_registry()
    return _DEFAULT
