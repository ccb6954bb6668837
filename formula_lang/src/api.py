"""
Host-facing session object.

FormulaInterpreter owns one Environment and one Interpreter and exposes
the operations a host needs: registering data and functions, compiling
and executing source, and reading back output variables and modifiers.

Example
-------
>>> fi = FormulaInterpreter()
>>> fi.register_variable("HIGH", [10.0, 11.0, 12.0])
>>> fi.register_variable("CLOSE", [9.0, 10.0, 11.0])
>>> fi.execute("t:HIGH>CLOSE,COLORRED;")
array([1., 1., 1.])
>>> fi.get_output_variable_map()
{'t': 1}
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

# Import with fallback for script execution
try:
    from .ast_nodes import Program
    from .dsl_lexer_parser import parse_program
    from .environment import Environment
    from .interpreter import CustomVariableGetter, Interpreter
    from .settings import Settings, get_settings
except ImportError:  # script mode
    from ast_nodes import Program  # type: ignore
    from dsl_lexer_parser import parse_program  # type: ignore
    from environment import Environment  # type: ignore
    from interpreter import CustomVariableGetter, Interpreter  # type: ignore
    from settings import Settings, get_settings  # type: ignore

logger = logging.getLogger(__name__)


class FormulaInterpreter:
    def __init__(
        self,
        skip_nil_pointer_check: Optional[bool] = None,
        custom_variable_getter: Optional[CustomVariableGetter] = None,
        logger: Optional[logging.Logger] = None,
        settings: Optional[Settings] = None,
    ):
        # per-session copy; edits must not reach the shared defaults
        self.settings = (settings or get_settings()).copy()
        if skip_nil_pointer_check is None:
            skip_nil_pointer_check = self.settings.skip_nil_pointer_check
        self.env = Environment()
        self.interpreter = Interpreter(
            self.env,
            custom_variable_getter=custom_variable_getter,
            skip_nil_pointer_check=skip_nil_pointer_check,
            logger=logger,
        )
        self.syntax_errors: List[str] = []

    # ----- configuration -----

    @property
    def skip_nil_pointer_check(self) -> bool:
        return self.interpreter.skip_nil_pointer_check

    @skip_nil_pointer_check.setter
    def skip_nil_pointer_check(self, value: bool) -> None:
        self.interpreter.skip_nil_pointer_check = bool(value)

    def set_custom_variable_getter(self, getter: Optional[CustomVariableGetter]) -> None:
        self.interpreter.custom_variable_getter = getter

    # ----- bindings -----

    def register_variable(self, name: str, value: Any) -> None:
        self.env.set(name, value)

    def set_var(self, name: str, value: Any) -> None:
        self.env.set(name, value)

    def register_function(self, name: str, fn: Callable[[List[Any]], Any]) -> None:
        """Register `fn(args)`; functions survive reset()."""
        self.env.set_function(name, fn)

    def get_variable(self, name: str) -> Tuple[Any, bool]:
        return self.env.get(name)

    # ----- compile / execute -----

    def _compile(self, source: str) -> Program:
        program = parse_program(source)
        self.syntax_errors = list(program.errors)
        if program.errors:
            logger.debug("Compiled with %d syntax errors", len(program.errors))
        return program

    def compile_code(self, source: str) -> Program:
        """Strip comments, lex and parse `source`; errors are recorded, not raised."""
        return self._compile(source)

    def execute_program(self, program: Program) -> Any:
        """Evaluate a compiled program. Programs with syntax errors are not run."""
        if program.errors:
            logger.warning("Refusing to execute program with syntax errors: %s", "; ".join(program.errors))
            return None
        return self.interpreter.eval(program)

    def execute(self, source: str) -> Any:
        return self.execute_program(self._compile(source))

    def has_syntax_errors(self) -> bool:
        return bool(self.syntax_errors)

    def get_syntax_errors(self) -> List[str]:
        return list(self.syntax_errors)

    # ----- outputs -----

    def get_output_variable_map(self) -> Dict[str, int]:
        return dict(self.interpreter.output_var_map)

    def is_output_variable(self, name: str) -> bool:
        return name in self.interpreter.output_var_map

    def get_output_variable(self, index: int) -> Tuple[Any, bool]:
        for name, idx in self.interpreter.output_var_map.items():
            if idx == index:
                return self.env.get(name)
        return None, False

    def get_last_output(self) -> Tuple[Any, bool]:
        """Value of the output variable with the highest index."""
        if not self.interpreter.output_var_map:
            return None, False
        return self.get_output_variable(max(self.interpreter.output_var_map.values()))

    def get_suffix_params(self, name: str) -> Tuple[Optional[List[str]], bool]:
        return self.interpreter.get_suffix_params(name)

    def get_all_suffix_params(self) -> Dict[str, List[str]]:
        return self.interpreter.get_all_suffix_params()

    def reset(self) -> None:
        """Clear variables, outputs, modifiers and syntax errors; functions are kept."""
        self.env.del_all_vars()
        self.interpreter.reset()
        self.syntax_errors = []
