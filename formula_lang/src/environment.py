"""
Symbol table for formula evaluation.

Names live in two tiers, variables and functions, with an optional outer
environment consulted for lookups only.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple


class Environment:
    def __init__(self, outer: Optional["Environment"] = None):
        self.variables: Dict[str, Any] = {}
        self.functions: Dict[str, Any] = {}
        self.outer = outer

    def get(self, name: str) -> Tuple[Any, bool]:
        """Look up `name` in variables, then functions, then the outer chain."""
        if name in self.variables:
            return self.variables[name], True
        if name in self.functions:
            return self.functions[name], True
        if self.outer is not None:
            return self.outer.get(name)
        return None, False

    def set(self, name: str, value: Any) -> Any:
        """Bind a local variable; an outer binding of the same name is shadowed."""
        self.variables[name] = value
        return value

    set_variable = set

    def set_function(self, name: str, fn: Any) -> Any:
        self.functions[name] = fn
        return fn

    def get_variable(self, name: str) -> Tuple[Any, bool]:
        if name in self.variables:
            return self.variables[name], True
        if self.outer is not None:
            return self.outer.get_variable(name)
        return None, False

    def get_function(self, name: str) -> Tuple[Any, bool]:
        if name in self.functions:
            return self.functions[name], True
        if self.outer is not None:
            return self.outer.get_function(name)
        return None, False

    def del_all_vars(self) -> None:
        """Drop every variable along the outer chain; functions survive."""
        env: Optional[Environment] = self
        while env is not None:
            env.variables = {}
            env = env.outer
