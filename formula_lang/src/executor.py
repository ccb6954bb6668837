"""
FormulaExecutor: a FormulaInterpreter with the indicator library installed.

Typical use:

    ex = FormulaExecutor()
    ex.load_ohlcv(df)               # OPEN/HIGH/LOW/CLOSE/VOLUME + dateTime
    ex.set_var_name_alias()         # O/H/L/C/V
    ex.run_code("M5:MA(C,5); UP:CROSS(C,M5),COLORRED;")
    ex.get_float_array("M5")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

# Import with fallback for script execution
try:
    from .api import FormulaInterpreter
    from .ast_nodes import Program
    from .dsl_lexer_parser import format_program_tree
    from .errors import FormulaCompileError, FormulaError
    from .registry import FunctionRegistry, default_registry
    from .values import ValueKind, as_array, kind_of, to_float
except ImportError:  # script mode
    from api import FormulaInterpreter  # type: ignore
    from ast_nodes import Program  # type: ignore
    from dsl_lexer_parser import format_program_tree  # type: ignore
    from errors import FormulaCompileError, FormulaError  # type: ignore
    from registry import FunctionRegistry, default_registry  # type: ignore
    from values import ValueKind, as_array, kind_of, to_float  # type: ignore

logger = logging.getLogger(__name__)


class FormulaExecutor(FormulaInterpreter):
    def __init__(self, registry: Optional[FunctionRegistry] = None, **kwargs):
        super().__init__(**kwargs)
        self.registry = registry if registry is not None else default_registry()
        self.registry.install(self)
        self.program: Optional[Program] = None
        self.datetime_key: Optional[str] = None

    # ----- compile / execute -----

    def compile_code(self, source: str) -> Program:
        """Compile and keep the program for execute_program(); raises on syntax errors."""
        self.program = self._compile(source)
        if self.program.errors:
            raise FormulaCompileError(self.program.errors)
        return self.program

    def execute_program(self, program: Optional[Program] = None) -> Any:
        program = program if program is not None else self.program
        if program is None:
            raise FormulaError("no compiled program")
        if program.errors:
            raise FormulaCompileError(program.errors)
        return super().execute_program(program)

    def run_code(self, source: str) -> Any:
        """Compile and execute in one go; not allowed once compile_code() was used."""
        if self.program is not None:
            raise FormulaError("program already compiled, use execute_program() to run it")
        program = self._compile(source)
        if program.errors:
            raise FormulaCompileError(program.errors)
        return super().execute_program(program)

    # ----- data loading -----

    def load_ohlcv(self, frame: pd.DataFrame, date_key: Optional[str] = None) -> List[str]:
        """
        Register the OHLCV columns of `frame` as formula variables.

        Column names are matched case-insensitively against
        settings.ohlcv_columns. A column named like one of the date-time
        keys supplies the timestamps, otherwise the frame index does.

        Returns
        -------
        list of str
            The variable names that were registered.
        """
        date_key = date_key or self.settings.default_datetime_key
        registered: List[str] = []
        date_values = None
        date_columns = {k.lower() for k in self.settings.datetime_keys} | {date_key.lower()}

        for col in frame.columns:
            key = str(col).lower()
            name = self.settings.ohlcv_columns.get(key)
            if name is not None:
                self.register_variable(name, frame[col].to_numpy(dtype=float, na_value=np.nan))
                registered.append(name)
            elif key in date_columns and date_values is None:
                date_values = list(frame[col])

        if date_values is None:
            date_values = list(frame.index)
        self.register_variable(date_key, date_values)
        self.datetime_key = date_key
        registered.append(date_key)

        logger.debug("Loaded %d bars: %s", len(frame), registered)
        return registered

    def set_var_name_alias(self, alias: Optional[Dict[str, str]] = None) -> None:
        """Copy variables under short names (OPEN -> O by default)."""
        if alias is None:
            alias = self.settings.default_aliases
        for name, short in alias.items():
            value, found = self.env.get_variable(name)
            if found:
                self.set_var(short, value)

    # ----- accessors -----

    def get_float_array(self, name: str) -> Optional[np.ndarray]:
        value, found = self.get_variable(name)
        if not found:
            return None
        arr = as_array(value)
        if arr is None and kind_of(value) in (ValueKind.SCALAR, ValueKind.BOOL):
            arr = np.array([to_float(value)])
        return arr

    def get_variable_slice(self, name: str) -> Optional[List[Any]]:
        value, found = self.get_variable(name)
        if not found or value is None:
            return None
        if isinstance(value, (np.ndarray, pd.Series)):
            return value.tolist()
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    def _find_datetime_key(self) -> str:
        for key in self.settings.datetime_keys:
            _value, found = self.env.get_variable(key)
            if found:
                return key
        return self.settings.default_datetime_key

    def get_datetime_array(self) -> Optional[List[Any]]:
        if not self.datetime_key:
            self.datetime_key = self._find_datetime_key()
        return self.get_variable_slice(self.datetime_key)

    # ----- diagnostics -----

    def format_program_tree(self) -> str:
        if self.program is None:
            return "no compiled program"
        return format_program_tree(self.program)

    def print_program_tree(self) -> None:
        print(self.format_program_tree())
