"""
Tree-walking evaluator for formula programs.

The Interpreter evaluates a parsed Program against an Environment. Besides
binding variables it keeps two side registries used by charting hosts:

- output_var_map: name -> output index, for variables assigned with `:`
- suffix params:  name -> modifiers declared after the value (COLORRED, ...)

Main entry point:
- Interpreter(env).eval(program) -> value of the last statement
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

# Import with fallback for script execution
try:
    from .ast_nodes import (
        ASTNode,
        AssignmentStatement,
        BinaryExpression,
        ExpressionStatement,
        FunctionCall,
        Identifier,
        NumberLiteral,
        Program,
        StringLiteral,
        UnaryExpression,
    )
    from .environment import Environment
    from .errors import FormulaError, FunctionCallError, FunctionNotFoundError, VariableMissingError
    from .values import arithmetic, compare, logical, logical_not, negate
except ImportError:  # script mode
    from ast_nodes import (  # type: ignore
        ASTNode,
        AssignmentStatement,
        BinaryExpression,
        ExpressionStatement,
        FunctionCall,
        Identifier,
        NumberLiteral,
        Program,
        StringLiteral,
        UnaryExpression,
    )
    from environment import Environment  # type: ignore
    from errors import FormulaError, FunctionCallError, FunctionNotFoundError, VariableMissingError  # type: ignore
    from values import arithmetic, compare, logical, logical_not, negate  # type: ignore


CustomVariableGetter = Callable[[str], Any]

LOGICAL_OPS = ("AND", "OR", "or")
COMPARISON_OPS = (">", "<", ">=", "<=", "==", "=", "!=")
ARITHMETIC_OPS = ("+", "-", "*", "/")

_MISSING = object()


class Interpreter:
    """
    Evaluates AST nodes.

    Parameters
    ----------
    env : Environment
        Symbol table holding variables and registered functions.
    custom_variable_getter : callable, optional
        Consulted before the environment on every identifier lookup; a
        non-None result wins.
    skip_nil_pointer_check : bool, default False
        Lenient mode. Missing variables and uncallable call targets evaluate
        to None instead of raising.
    logger : logging.Logger, optional
        Sink for evaluation tracing (DEBUG level).
    """

    def __init__(
        self,
        env: Environment,
        custom_variable_getter: Optional[CustomVariableGetter] = None,
        skip_nil_pointer_check: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.env = env
        self.custom_variable_getter = custom_variable_getter
        self.skip_nil_pointer_check = skip_nil_pointer_check
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.output_var_map: Dict[str, int] = {}
        self._suffix_params: Dict[str, List[str]] = {}
        self._idx = 0

    # ----- registries -----

    def _next_output_index(self) -> int:
        self._idx += 1
        return self._idx

    def get_suffix_params(self, name: str) -> Tuple[Optional[List[str]], bool]:
        params = self._suffix_params.get(name)
        if params is None:
            return None, False
        return list(params), True

    def get_all_suffix_params(self) -> Dict[str, List[str]]:
        return {name: list(params) for name, params in self._suffix_params.items()}

    def reset(self) -> None:
        """Forget output variables, modifiers and the output index counter."""
        self.output_var_map = {}
        self._suffix_params = {}
        self._idx = 0

    # ----- evaluation -----

    def eval(self, node: Optional[ASTNode]) -> Any:
        if node is None:
            return None

        if isinstance(node, Program):
            return self._eval_program(node)
        if isinstance(node, AssignmentStatement):
            return self._eval_assignment(node)
        if isinstance(node, ExpressionStatement):
            return self.eval(node.expression)
        if isinstance(node, NumberLiteral):
            return node.value
        if isinstance(node, StringLiteral):
            return node.value
        if isinstance(node, Identifier):
            return self._eval_identifier(node)
        if isinstance(node, FunctionCall):
            return self._eval_function_call(node)
        if isinstance(node, UnaryExpression):
            return self._eval_unary(node)
        if isinstance(node, BinaryExpression):
            return self._eval_binary(node)

        raise FormulaError(f"Unknown AST node type: {type(node)}")

    def _eval_program(self, program: Program) -> Any:
        result = None
        self.logger.debug("Evaluating program with %d statements", len(program.statements))
        for idx, statement in enumerate(program.statements):
            result = self.eval(statement)
            self.logger.debug("Statement %d -> %r", idx, result)
        return result

    def _eval_assignment(self, stmt: AssignmentStatement) -> Any:
        name = stmt.name.value
        value = self.eval(stmt.value)

        if stmt.is_output_var:
            # a fresh index on every evaluation: re-running renumbers
            self.output_var_map[name] = self._next_output_index()
            self.logger.debug("Output variable %s -> index %d", name, self.output_var_map[name])

        if stmt.suffix_params:
            self._suffix_params[name] = list(stmt.suffix_params)

        return self.env.set(name, value)

    def _resolve(self, name: str) -> Any:
        if self.custom_variable_getter is not None:
            value = self.custom_variable_getter(name)
            if value is not None:
                return value
        value, found = self.env.get(name)
        return value if found else _MISSING

    def _eval_identifier(self, node: Identifier) -> Any:
        value = self._resolve(node.value)
        if value is not _MISSING:
            return value
        self.logger.debug("Identifier %s not found", node.value)
        if not self.skip_nil_pointer_check:
            raise VariableMissingError(node.value)
        return None

    def _eval_function_call(self, node: FunctionCall) -> Any:
        name = str(node.function)
        if isinstance(node.function, Identifier):
            function = self._resolve(node.function.value)
            if function is _MISSING:
                function = None
        else:
            function = self.eval(node.function)

        args = [self.eval(arg) for arg in node.arguments]

        if not callable(function):
            self.logger.debug("Call target %s is not callable: %r", name, function)
            if not self.skip_nil_pointer_check:
                raise FunctionNotFoundError(name)
            return None

        try:
            result = function(args)
        except FormulaError:
            raise
        except Exception as e:
            raise FunctionCallError(name, str(e)) from e
        self.logger.debug("Call %s -> %r", name, result)
        return result

    def _eval_unary(self, node: UnaryExpression) -> Any:
        operand = self.eval(node.right)
        op = node.operator.upper()
        if op == "NOT":
            return logical_not(operand)
        if op == "-":
            return negate(operand)
        raise FormulaError(f"Unknown unary op: {node.operator}")

    def _eval_binary(self, node: BinaryExpression) -> Any:
        left = self.eval(node.left)
        right = self.eval(node.right)
        op = node.operator

        if op in LOGICAL_OPS:
            return logical(left, right, op.upper())
        if op in COMPARISON_OPS:
            return compare(left, right, op)
        if op in ARITHMETIC_OPS:
            return arithmetic(left, right, op)

        raise FormulaError(f"Unknown binary op: {op}")
