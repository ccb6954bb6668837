"""
AST node definitions for the formula language.

Nodes are frozen dataclasses: the parser builds them once and nothing
mutates them afterwards, so a compiled Program can be evaluated many times.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


class ASTNode:
    """Base class for all AST nodes."""
    pass


class Expression(ASTNode):
    pass


class Statement(ASTNode):
    pass


def _show(node: Optional[ASTNode]) -> str:
    return "<nil>" if node is None else str(node)


@dataclass(frozen=True)
class Identifier(Expression):
    """
    Variable or function name.

    Examples:
        CLOSE
        MA
        涨停
        $abc_1
    """
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NumberLiteral(Expression):
    """
    Numeric literal, e.g. 5, 0.1, 144.

    `literal` keeps the source spelling for rendering.
    """
    value: float
    literal: str = ""

    def __str__(self) -> str:
        return self.literal or repr(self.value)


@dataclass(frozen=True)
class StringLiteral(Expression):
    """Single-quoted string literal, e.g. '20240101'."""
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """
    Binary operation node.

    Examples:
        HIGH > CLOSE
        C >= REF(C, 1) * 1.1
        A AND B
        A OR B
    """
    left: Optional[Expression]
    operator: str
    right: Optional[Expression]

    def __str__(self) -> str:
        return f"({_show(self.left)} {self.operator} {_show(self.right)})"


@dataclass(frozen=True)
class UnaryExpression(Expression):
    """
    Unary operation node.

    Used for logical NOT and arithmetic negation.
    """
    operator: str
    right: Optional[Expression]

    def __str__(self) -> str:
        return f"({self.operator} {_show(self.right)})"


@dataclass(frozen=True)
class FunctionCall(Expression):
    """
    Function call node.

    Examples:
        MA(CLOSE, 5)
        CROSS(MA(C, 5), MA(C, 10))
    """
    function: Optional[Expression]
    arguments: Tuple[Expression, ...] = ()

    def __str__(self) -> str:
        args = ", ".join(_show(a) for a in self.arguments)
        return f"{_show(self.function)}({args})"


@dataclass(frozen=True)
class AssignmentStatement(Statement):
    """
    Assignment statement.

    Two forms:
        MA5 : MA(CLOSE, 5), COLORRED;   -> output variable (plotted)
        X := HIGH - LOW;                -> ordinary variable

    `suffix_params` holds the trailing modifiers in declaration order.
    """
    name: Identifier
    value: Optional[Expression]
    is_output_var: bool = False
    suffix_params: Tuple[str, ...] = ()

    def __str__(self) -> str:
        op = " : " if self.is_output_var else " := "
        out = f"{self.name}{op}{_show(self.value)}"
        if self.suffix_params:
            out += "," + ",".join(self.suffix_params)
        return out + ";"


@dataclass(frozen=True)
class ExpressionStatement(Statement):
    expression: Optional[Expression]

    def __str__(self) -> str:
        return "" if self.expression is None else str(self.expression)


@dataclass(frozen=True)
class Program(ASTNode):
    """
    Top-level node.

    Holds the parsed statements and the syntax errors collected while
    parsing. Hosts inspect `errors` before choosing to evaluate.
    """
    statements: Tuple[Statement, ...] = ()
    errors: Tuple[str, ...] = field(default=())

    def __str__(self) -> str:
        return "".join(str(s) for s in self.statements)


ASTChild = Union[
    Program,
    Identifier,
    NumberLiteral,
    StringLiteral,
    BinaryExpression,
    UnaryExpression,
    FunctionCall,
    AssignmentStatement,
    ExpressionStatement,
]
