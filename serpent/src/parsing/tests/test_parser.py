"""
Tests for parsing/parser.py - Source text to source AST.
"""

import pytest

from serpent.src.ast.expressions import BinaryOp, Call, Literal, Name, Subscript
from serpent.src.ast.statements import (
    Assign,
    AugAssign,
    For,
    FunctionDef,
    If,
    ImportFrom,
    Return,
)
from serpent.src.common.exceptions import SourceSyntaxError
from serpent.src.parsing.parser import SourceParser, describe_expected


class TestParserBasics:
    """Tests for well-formed input."""

    def setup_method(self):
        self.parser = SourceParser()

    def test_function_definition(self):
        """Test a typed function becomes a FunctionDef with params."""
        module = self.parser.parse("def add(a: float, b: float) -> float:\n    return a + b\n")

        assert [fn.name for fn in module.functions] == ["add"]
        fn = module.functions[0]
        assert [p.name for p in fn.params] == ["a", "b"]
        assert isinstance(fn.params[0].annotation, Name)
        assert isinstance(fn.body[0], Return)
        assert isinstance(fn.body[0].value, BinaryOp)
        assert fn.body[0].value.op == "+"
        assert module.unsupported == []

    def test_positions_and_file(self):
        """Test nodes carry line numbers and the file name."""
        module = self.parser.parse("x = 1\n\ny = x * 2\n", "prog.py")
        second = module.body[1]

        assert isinstance(second, Assign)
        assert second.line == 3
        assert second.source_file == "prog.py"
        assert second.contains_line(3)
        assert not second.contains_line(1)

    def test_literals(self):
        """Test numeric and boolean literal kinds."""
        module = self.parser.parse("a = 1\nb = 2.5\nc = True\n")
        kinds = [stmt.value.kind for stmt in module.body]
        assert kinds == ["int", "float", "bool"]
        assert module.body[1].value.value == 2.5

    def test_missing_trailing_newline(self):
        """Test input without a final newline parses."""
        module = self.parser.parse("x = 1")
        assert isinstance(module.body[0], Assign)

    def test_control_flow(self):
        """Test loops, conditionals and augmented assignment."""
        source = (
            "def total(a):\n"
            "    s = 0.0\n"
            "    for i in range(3):\n"
            "        if i > 0:\n"
            "            s += a[i]\n"
            "    return s\n"
        )
        fn = self.parser.parse(source).functions[0]
        loop = fn.body[1]

        assert isinstance(loop, For)
        assert isinstance(loop.iter, Call)
        branch = loop.body[0]
        assert isinstance(branch, If)
        aug = branch.body[0]
        assert isinstance(aug, AugAssign)
        assert aug.op == "+"
        assert isinstance(aug.value, Subscript)
        assert loop.contains_line(5)

    def test_imports(self):
        """Test from-imports keep module, names and level."""
        module = self.parser.parse("from math import log, sqrt\nfrom . import util\n")
        absolute, relative = module.body

        assert isinstance(absolute, ImportFrom)
        assert absolute.module == "math"
        assert [name for name, _ in absolute.names] == ["log", "sqrt"]
        assert relative.level == 1

    def test_module_docstring_allowed(self):
        """Test a leading docstring is not reported."""
        module = self.parser.parse('"""Pricing helpers."""\nx = 1.0\n')
        assert module.unsupported == []
        assert isinstance(module.body[0].value, Literal)


class TestParserErrors:
    """Tests for malformed input."""

    def test_syntax_error_has_position(self):
        """Test malformed text raises SourceSyntaxError with its line."""
        with pytest.raises(SourceSyntaxError) as excinfo:
            SourceParser().parse("x = 1\ndef f(:\n    pass\n", "bad.py")

        error = excinfo.value
        assert error.line == 2
        assert "unexpected token ':'" in error.message
        assert str(error).startswith("bad.py:2:")

    def test_parse_file(self, tmp_path):
        """Test parse_file reads and parses a file."""
        path = tmp_path / "prog.py"
        path.write_text("def f(x):\n    return x\n", encoding="utf-8")
        module = SourceParser().parse_file(path)
        assert isinstance(module.body[0], FunctionDef)
        assert module.body[0].source_file == str(path)

    def test_parse_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            SourceParser().parse_file(tmp_path / "missing.py")


def test_describe_expected_collapses_expression_starts():
    """Test expression-starting terminals collapse into one entry."""
    assert describe_expected(["NAME", "DEC_NUMBER", "LPAR"]) == ["expression"]
    assert describe_expected(["RARROW", "NAME"]) == ["'->'", "expression"]


def test_describe_expected_anonymous_terminals():
    """Test anonymous terminals are spelled out or left out, never shown raw."""
    spelled = {"__ANON_1": "'**'"}
    assert describe_expected(["__ANON_0", "RPAR"]) == ["')'"]
    assert describe_expected(["__ANON_1", "RPAR"], spelled.get) == ["')'", "'**'"]


def test_syntax_error_hides_internal_terminal_names():
    """Test expected-token lists only hold readable names."""
    with pytest.raises(SourceSyntaxError) as excinfo:
        SourceParser().parse("def f(:\n    pass\n", "bad.py")

    error = excinfo.value
    assert error.expected
    assert not any(name.startswith("__") for name in error.expected)
    assert "__ANON" not in str(error)
