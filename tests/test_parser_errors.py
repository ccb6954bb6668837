import pytest

from formula_lang.src.errors import FormulaCompileError
from formula_lang.src.executor import FormulaExecutor
from formula_lang.src.dsl_lexer_parser import parse_program


def test_parser_error_message_shape():
    program = parse_program("X:=MA(C,5)\nY:=1;")
    msg = program.errors[0]
    # position prefix followed by a readable description
    assert msg.startswith("line 1 col ")
    assert "statement must end with semicolon" in msg


def test_parser_never_raises_on_garbage():
    program = parse_program("))) ;; @@ :=")
    assert program.errors


def test_only_missing_semicolon_aborts():
    # both malformed parts are reported before the missing ';' stops parsing
    program = parse_program("a:=(1+2;b:=@;c:=3\nd:=4;")
    assert len(program.errors) == 3
    assert "expected ')'" in program.errors[0]
    assert "unexpected token" in program.errors[1]
    assert "statement must end with semicolon" in program.errors[2]


def test_compile_error_joins_messages():
    with pytest.raises(FormulaCompileError) as ei:
        FormulaExecutor().compile_code("a:=(1+2;b:=1.2.3;")
    assert len(ei.value.errors) == 2
    assert "; line 1" in str(ei.value)
