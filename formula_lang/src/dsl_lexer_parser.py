"""
Lexer and parser for the formula language.

Source text is stripped of `{ ... }` comments, turned into tokens by the
Lexer and parsed by a precedence-climbing Parser into a Program AST.

This module supports both package and script import contexts by attempting
relative imports first and falling back to absolute imports when needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

# Import AST nodes with fallback for script execution
try:  # package import
    from .ast_nodes import (
        AssignmentStatement,
        BinaryExpression,
        Expression,
        ExpressionStatement,
        FunctionCall,
        Identifier,
        NumberLiteral,
        Program,
        Statement,
        StringLiteral,
        UnaryExpression,
    )
except ImportError:  # script import fallback
    from ast_nodes import (  # type: ignore
        AssignmentStatement,
        BinaryExpression,
        Expression,
        ExpressionStatement,
        FunctionCall,
        Identifier,
        NumberLiteral,
        Program,
        Statement,
        StringLiteral,
        UnaryExpression,
    )

logger = logging.getLogger(__name__)


# ==============
# Tokens
# ==============

class TokenType(str, Enum):
    EOF = "EOF"
    ERROR = "ERROR"
    NUMBER = "NUMBER"
    IDENT = "IDENT"
    STRING = "STRING"
    PLUS = "PLUS"
    MINUS = "MINUS"
    ASTERISK = "ASTERISK"
    SLASH = "SLASH"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    SEMICOLON = "SEMICOLON"
    COLON = "COLON"
    COLON_EQUAL = "COLON_EQUAL"
    COMMA = "COMMA"
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    GT = "GT"
    LT = "LT"
    GE = "GE"
    LE = "LE"
    AND = "AND"
    OR = "OR"


SINGLE_CHAR_TOKENS: Dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.ASTERISK,
    "/": TokenType.SLASH,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
}

KEYWORDS: Dict[str, TokenType] = {
    "AND": TokenType.AND,
    "OR": TokenType.OR,
    "or": TokenType.OR,
}

NOT_KEYWORDS = ("NOT", "not")


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    line: int = 1
    col: int = 1


def trim_comment(code: str) -> str:
    """
    Remove `{ ... }` comment regions, honouring nesting.

    Only characters at depth 0 are kept. An unbalanced `{` swallows the rest
    of the input.
    """
    out: List[str] = []
    depth = 0
    for ch in code:
        if ch == "{":
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
        elif depth == 0:
            out.append(ch)
    return "".join(out)


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_" or ch == "$"


def _is_ident_part(ch: str) -> bool:
    return ch.isalpha() or ch.isdigit() or ch == "_" or ch == "$"


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


# ==============
# Lexer
# ==============

class Lexer:
    """Turns source text into tokens, one `next_token()` call at a time."""

    def __init__(self, code: str):
        self.code = code
        self.pos = 0
        self.line = 1
        self.col = 1

    def _peek_char(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx < len(self.code):
            return self.code[idx]
        return ""

    def _advance(self) -> str:
        ch = self.code[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _skip_whitespace(self) -> None:
        while self._peek_char() in (" ", "\t", "\r", "\n"):
            self._advance()

    def next_token(self) -> Token:
        self._skip_whitespace()
        line, col = self.line, self.col
        ch = self._peek_char()

        if not ch:
            return Token(TokenType.EOF, "", line, col)

        if ch in SINGLE_CHAR_TOKENS:
            self._advance()
            return Token(SINGLE_CHAR_TOKENS[ch], ch, line, col)

        nxt = self._peek_char(1)
        if ch == ":":
            if nxt == "=":
                self._advance()
                self._advance()
                return Token(TokenType.COLON_EQUAL, ":=", line, col)
            self._advance()
            return Token(TokenType.COLON, ":", line, col)
        if ch == "=":
            if nxt == "=":
                self._advance()
                self._advance()
                return Token(TokenType.EQUAL, "==", line, col)
            self._advance()
            return Token(TokenType.EQUAL, "=", line, col)
        if ch == ">":
            if nxt == "=":
                self._advance()
                self._advance()
                return Token(TokenType.GE, ">=", line, col)
            self._advance()
            return Token(TokenType.GT, ">", line, col)
        if ch == "<":
            if nxt == "=":
                self._advance()
                self._advance()
                return Token(TokenType.LE, "<=", line, col)
            if nxt == ">":
                self._advance()
                self._advance()
                return Token(TokenType.NOT_EQUAL, "!=", line, col)
            self._advance()
            return Token(TokenType.LT, "<", line, col)
        if ch == "!":
            if nxt == "=":
                self._advance()
                self._advance()
                return Token(TokenType.NOT_EQUAL, "!=", line, col)
            self._advance()
            return Token(TokenType.ERROR, "!", line, col)

        if ch == "'":
            return Token(TokenType.STRING, self._read_string(), line, col)
        if _is_ident_start(ch):
            ident = self._read_while(_is_ident_part)
            return Token(KEYWORDS.get(ident, TokenType.IDENT), ident, line, col)
        if _is_digit(ch):
            number = self._read_while(lambda c: _is_digit(c) or c == ".")
            return Token(TokenType.NUMBER, number, line, col)

        self._advance()
        return Token(TokenType.ERROR, ch, line, col)

    def _read_while(self, pred: Callable[[str], bool]) -> str:
        start = self.pos
        while self._peek_char() and pred(self._peek_char()):
            self._advance()
        return self.code[start:self.pos]

    def _read_string(self) -> str:
        self._advance()  # opening quote
        value = self._read_while(lambda c: c != "'")
        if self._peek_char() == "'":
            self._advance()
        return value


def tokenize(code: str) -> List[Token]:
    """Lex the whole input; the last token is always EOF."""
    lexer = Lexer(code)
    tokens: List[Token] = []
    while True:
        tok = lexer.next_token()
        tokens.append(tok)
        if tok.type is TokenType.EOF:
            return tokens


# ==============
# Parser
# ==============

LOWEST = 1
OR = 2
AND = 3
COMPARISON = 4
SUM = 5
PRODUCT = 6
PREFIX = 7

PRECEDENCES: Dict[TokenType, int] = {
    TokenType.OR: OR,
    TokenType.AND: AND,
    TokenType.GT: COMPARISON,
    TokenType.LT: COMPARISON,
    TokenType.GE: COMPARISON,
    TokenType.LE: COMPARISON,
    TokenType.EQUAL: COMPARISON,
    TokenType.NOT_EQUAL: COMPARISON,
    TokenType.PLUS: SUM,
    TokenType.MINUS: SUM,
    TokenType.ASTERISK: PRODUCT,
    TokenType.SLASH: PRODUCT,
}

EXPRESSION_START = (
    TokenType.IDENT,
    TokenType.NUMBER,
    TokenType.STRING,
    TokenType.LPAREN,
    TokenType.MINUS,
)


class Parser:
    """Recursive descent parser with precedence climbing for expressions."""

    def __init__(self, lexer: Lexer):
        self.lexer = lexer
        self.errors: List[str] = []
        self.cur_tok: Token = lexer.next_token()
        self.peek_tok: Token = lexer.next_token()

    def next_token(self) -> None:
        self.cur_tok = self.peek_tok
        self.peek_tok = self.lexer.next_token()

    def _error(self, tok: Token, message: str) -> None:
        msg = f"line {tok.line} col {tok.col}: {message}"
        logger.debug(msg)
        self.errors.append(msg)

    # --- entry point ---

    def parse_program(self) -> Program:
        statements: List[Statement] = []

        while self.cur_tok.type is not TokenType.EOF:
            stmt = self.parse_statement()
            if stmt is not None:
                statements.append(stmt)

            # every statement must end with a semicolon; stop at the first miss
            if self.cur_tok.type not in (TokenType.SEMICOLON, TokenType.EOF):
                self._error(
                    self.cur_tok,
                    f"statement must end with semicolon, got token: {self.cur_tok.value}",
                )
                break

            self.next_token()

        logger.debug("Parsed program with %d statements", len(statements))
        return Program(statements=tuple(statements), errors=tuple(self.errors))

    # --- statements ---

    def parse_statement(self) -> Optional[Statement]:
        if self.cur_tok.type is TokenType.IDENT and self.peek_tok.type in (
            TokenType.COLON,
            TokenType.COLON_EQUAL,
        ):
            return self.parse_assignment_statement()

        expr = self.parse_expression(LOWEST)
        self._skip_peek_semicolon()
        if expr is None:
            return None
        return ExpressionStatement(expression=expr)

    def parse_assignment_statement(self) -> AssignmentStatement:
        name = Identifier(value=self.cur_tok.value)
        is_output_var = self.peek_tok.type is TokenType.COLON
        self.next_token()  # ':' or ':='
        self.next_token()
        value = self.parse_expression(LOWEST)

        suffix_params: List[str] = []
        if self.peek_tok.type is TokenType.COMMA:
            self.next_token()
            while self.peek_tok.type is TokenType.IDENT:
                self.next_token()
                suffix_params.append(self.cur_tok.value)
                if self.peek_tok.type is TokenType.COMMA:
                    self.next_token()
                else:
                    break

        self._skip_peek_semicolon()
        return AssignmentStatement(
            name=name,
            value=value,
            is_output_var=is_output_var,
            suffix_params=tuple(suffix_params),
        )

    def _skip_peek_semicolon(self) -> None:
        if self.peek_tok.type is TokenType.SEMICOLON:
            self.next_token()

    # --- expressions ---

    def parse_expression(self, precedence: int) -> Optional[Expression]:
        left = self.parse_prefix()
        if left is None:
            return None

        # F(...) binds directly to whatever prefix expression precedes it
        if self.peek_tok.type is TokenType.LPAREN:
            self.next_token()
            left = self.parse_function_call(left)

        while (
            self.peek_tok.type not in (TokenType.SEMICOLON, TokenType.RPAREN, TokenType.EOF)
            and precedence < self.peek_precedence()
        ):
            self.next_token()
            left = self.parse_binary_expression(left)

        return left

    def parse_prefix(self) -> Optional[Expression]:
        tok = self.cur_tok
        if tok.type is TokenType.IDENT:
            if tok.value in NOT_KEYWORDS and self.peek_tok.type in EXPRESSION_START:
                self.next_token()
                return UnaryExpression(operator="NOT", right=self.parse_expression(AND))
            return Identifier(value=tok.value)
        if tok.type is TokenType.NUMBER:
            return self.parse_number_literal()
        if tok.type is TokenType.STRING:
            return StringLiteral(value=tok.value)
        if tok.type is TokenType.LPAREN:
            return self.parse_grouped_expression()
        if tok.type is TokenType.MINUS:
            self.next_token()
            return UnaryExpression(operator="-", right=self.parse_expression(PREFIX))

        self._error(tok, f"unexpected token: {tok.value!r}")
        return None

    def parse_number_literal(self) -> Optional[Expression]:
        tok = self.cur_tok
        try:
            return NumberLiteral(value=float(tok.value), literal=tok.value)
        except ValueError:
            self._error(tok, f"invalid number literal: {tok.value}")
            return None

    def parse_grouped_expression(self) -> Optional[Expression]:
        self.next_token()
        expr = self.parse_expression(LOWEST)
        if expr is None:
            return None
        if not self.expect_peek(TokenType.RPAREN):
            self._error(self.peek_tok, f"expected ')' but got {self.peek_tok.value!r}")
            return None
        return expr

    def parse_binary_expression(self, left: Expression) -> BinaryExpression:
        operator = self.cur_tok.value
        precedence = self.cur_precedence()
        self.next_token()
        right = self.parse_expression(precedence)
        return BinaryExpression(left=left, operator=operator, right=right)

    def parse_function_call(self, function: Expression) -> FunctionCall:
        args = self.parse_expression_list(TokenType.RPAREN)
        return FunctionCall(function=function, arguments=tuple(args))

    def parse_expression_list(self, end: TokenType) -> List[Expression]:
        args: List[Expression] = []

        if self.peek_tok.type is end:
            self.next_token()
            return args

        self.next_token()
        expr = self.parse_expression(LOWEST)
        if expr is not None:
            args.append(expr)

        while self.peek_tok.type is TokenType.COMMA:
            self.next_token()
            self.next_token()
            expr = self.parse_expression(LOWEST)
            if expr is not None:
                args.append(expr)

        if not self.expect_peek(end):
            self._error(self.peek_tok, f"expected ')' to close argument list, got {self.peek_tok.value!r}")
        return args

    def expect_peek(self, type_: TokenType) -> bool:
        if self.peek_tok.type is type_:
            self.next_token()
            return True
        return False

    def peek_precedence(self) -> int:
        return PRECEDENCES.get(self.peek_tok.type, LOWEST)

    def cur_precedence(self) -> int:
        return PRECEDENCES.get(self.cur_tok.type, LOWEST)


# ==============
# Public API
# ==============

def parse_program(code: str, strip_comments: bool = True) -> Program:
    """Parse formula source into a Program; syntax errors land in Program.errors."""
    if strip_comments:
        code = trim_comment(code)
    return Parser(Lexer(code)).parse_program()


def format_program_tree(program: Program) -> str:
    """Render the AST as an indented tree, one node per line."""
    lines = ["=== Program AST ===", f"Total statements: {len(program.statements)}"]

    def expr(node: Optional[Expression], depth: int) -> None:
        pad = "  " * depth
        if node is None:
            lines.append(f"{pad}<nil>")
        elif isinstance(node, Identifier):
            lines.append(f"{pad}Identifier: {node.value}")
        elif isinstance(node, NumberLiteral):
            lines.append(f"{pad}NumberLiteral: {node.value:f}")
        elif isinstance(node, StringLiteral):
            lines.append(f"{pad}StringLiteral: {node.value}")
        elif isinstance(node, UnaryExpression):
            lines.append(f"{pad}UnaryExpression:")
            lines.append(f"{pad}  Operator: {node.operator}")
            expr(node.right, depth + 1)
        elif isinstance(node, BinaryExpression):
            lines.append(f"{pad}BinaryExpression:")
            lines.append(f"{pad}  Operator: {node.operator}")
            lines.append(f"{pad}  Left:")
            expr(node.left, depth + 2)
            lines.append(f"{pad}  Right:")
            expr(node.right, depth + 2)
        elif isinstance(node, FunctionCall):
            lines.append(f"{pad}FunctionCall:")
            lines.append(f"{pad}  Function:")
            expr(node.function, depth + 2)
            lines.append(f"{pad}  Arguments ({len(node.arguments)}):")
            for i, arg in enumerate(node.arguments):
                lines.append(f"{pad}    [{i}]:")
                expr(arg, depth + 3)
        else:
            lines.append(f"{pad}{type(node).__name__}: {node}")

    for i, stmt in enumerate(program.statements):
        lines.append(f"Statement {i}:")
        if isinstance(stmt, AssignmentStatement):
            lines.append("  AssignmentStatement:")
            lines.append(f"    Name: {stmt.name}")
            lines.append(f"    IsOutputVar: {stmt.is_output_var}")
            if stmt.suffix_params:
                lines.append(f"    SuffixParams: {','.join(stmt.suffix_params)}")
            lines.append("    Value:")
            expr(stmt.value, 3)
        elif isinstance(stmt, ExpressionStatement):
            lines.append("  ExpressionStatement:")
            expr(stmt.expression, 2)
    if program.errors:
        lines.append("Errors:")
        lines.extend(f"  {e}" for e in program.errors)
    lines.append("=== End of AST ===")
    return "\n".join(lines)
