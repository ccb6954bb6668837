"""
Exception types for compiling and running formula programs.

The parser never raises: it collects messages in Program.errors. These
exceptions are raised by the host-facing layers and by the interpreter.
"""

from __future__ import annotations

from typing import Iterable


class FormulaError(Exception):
    """Base class for formula language errors."""


class FormulaCompileError(FormulaError):
    """Raised when a program has syntax errors and is refused for execution."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(f"compile error: {'; '.join(self.errors)}")


class FormulaRuntimeError(FormulaError):
    """Raised while evaluating a program."""


class VariableMissingError(FormulaRuntimeError):
    """An identifier resolved to nothing in strict mode."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"variable missing: {name}")


class FunctionNotFoundError(FormulaRuntimeError):
    """A call target is unknown or not callable in strict mode."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"function not found: {name}")


class FunctionCallError(FormulaRuntimeError):
    """A registered function rejected its arguments or failed."""

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(f"{name}: {message}")
