import numpy as np

from formula_lang.src.api import FormulaInterpreter
from formula_lang.src.dsl_lexer_parser import parse_program


def test_boolean_precedence_basic():
    # NOT > AND > OR; parentheses override
    fi = FormulaInterpreter()
    assert fi.execute("x:=NOT (1 = 2) AND (1 = 1) OR (1 = 2);") is True
    assert str(parse_program("x:=a OR b AND c;").statements[0].value) == "(a OR (b AND c))"


def test_boolean_parentheses_grouping():
    fi = FormulaInterpreter()
    assert fi.execute("x:=NOT ((1 = 2) AND (1 = 1)) OR (1 = 2);") is True
    assert fi.execute("x:=(1 > 2 OR 2 > 1) AND 0;") is False


def test_comparison_binds_tighter_than_logic():
    fi = FormulaInterpreter()
    fi.register_variable("A", np.array([1.0, 5.0, 3.0]))
    fi.register_variable("B", np.array([2.0, 2.0, 2.0]))
    result = fi.execute("x:=A>B AND A<4 OR A=1;")
    assert result.tolist() == [1.0, 0.0, 1.0]
    # scalar on the left compares against each element
    assert fi.execute("y:=2>A;").tolist() == [1.0, 0.0, 0.0]
