"""
Tests for parsing/subset.py - Constructs outside the supported subset.
"""

import pytest

from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.parsing.parser import SourceParser
from serpent.src.parsing.subset import MODULE_SCOPE


def unsupported(source):
    module = SourceParser().parse(source, "prog.py")
    return module, [error.construct for error in module.unsupported]


class TestUnsupportedConstructs:
    """Each construct is reported once, at its outermost occurrence."""

    @pytest.mark.parametrize(
        "body, construct",
        [
            ("    g = lambda v: v\n", "lambda expression"),
            ("    b = [v * 2 for v in a]\n", "list comprehension"),
            ("    b = {1: 2}\n", "dict display"),
            ("    b = f(a, axis=0)\n", "keyword argument"),
            ("    b = 'text'\n", "string literal"),
            ("    b = None\n", "None literal"),
            ("    b = [1, 2]\n", "list display"),
            ("    b = a[::2]\n", "slice step"),
            ("    b = c = a\n", "chained assignment"),
            ("    b = 1 in a\n", "'in' comparison"),
            ("    b = 1 | 2\n", "bitwise operator '|'"),
            ("    for i, v in a:\n        pass\n", "tuple loop target"),
            ("    break\n", "'break' outside loop"),
            ("    try:\n        pass\n    except E:\n        pass\n", "try statement"),
            ("    with a as b:\n        pass\n", "with statement"),
        ],
    )
    def test_construct_in_function(self, body, construct):
        """Test the construct is named and its function is blocked."""
        module, constructs = unsupported(f"def f(a):\n{body}    return a\n")

        assert constructs == [construct]
        assert module.is_blocked("f")
        assert not module.is_blocked(MODULE_SCOPE)

    def test_class_definition(self):
        """Test a class blocks module scope."""
        module, constructs = unsupported("class Point:\n    pass\n")
        assert constructs == ["class definition"]
        assert module.is_blocked(MODULE_SCOPE)

    def test_decorator(self):
        """Test a decorated function is reported as a decorator."""
        _, constructs = unsupported("@cache\ndef f(x):\n    return x\n")
        assert constructs == ["decorator"]

    def test_default_parameter(self):
        """Test default parameter values are reported."""
        module, constructs = unsupported("def f(x=1.0):\n    return x\n")
        assert constructs == ["default parameter value"]
        assert module.is_blocked("f")

    def test_for_else(self):
        """Test loops with an else clause are reported."""
        _, constructs = unsupported(
            "def f(a):\n    for v in a:\n        pass\n    else:\n        pass\n    return a\n"
        )
        assert constructs == ["for-else"]

    def test_one_error_per_construct(self):
        """Test separate constructs give separate errors in source order."""
        source = (
            "def f(a):\n"
            "    g = lambda v: v\n"
            "    return a\n"
            "\n"
            "def h(a):\n"
            "    b = {1: 2}\n"
            "    return a\n"
        )
        module, constructs = unsupported(source)

        assert constructs == ["lambda expression", "dict display"]
        assert [error.line for error in module.unsupported] == [2, 6]
        assert all(isinstance(e, UnsupportedSyntaxError) for e in module.unsupported)
        assert module.is_blocked("f") and module.is_blocked("h")

    def test_nested_construct_reported_once(self):
        """Test a lambda inside a comprehension is not reported twice."""
        _, constructs = unsupported("def f(a):\n    b = [lambda: v for v in a]\n    return a\n")
        assert constructs == ["list comprehension"]

    def test_every_keyword_argument(self):
        """Test each keyword argument of a call is its own occurrence."""
        module, constructs = unsupported("def h(x):\n    return g(x, a=x, b=x)\n")

        assert constructs == ["keyword argument", "keyword argument"]
        assert [error.column for error in module.unsupported] == [17, 22]

    def test_keyword_next_to_other_construct(self):
        """Test a keyword does not hide a sibling argument's construct."""
        _, constructs = unsupported("def h(x):\n    return g({1: 2}, a=x)\n")
        assert sorted(constructs) == ["dict display", "keyword argument"]


class TestSupportedConstructs:
    """Constructs that must not be reported."""

    def test_print_may_take_strings(self):
        """Test string literals are fine as print arguments."""
        _, constructs = unsupported("def f(x):\n    print('x is', x)\n")
        assert constructs == []

    def test_array_literal_arguments(self):
        """Test list displays are fine as call arguments."""
        _, constructs = unsupported(
            "import numpy as np\n\ndef f():\n    return np.array([[1.0, 2.0], [3.0, 4.0]])\n"
        )
        assert constructs == []

    def test_string_annotations(self):
        """Test string type hints are accepted."""
        _, constructs = unsupported('def f(a: "f64[:]") -> "f64":\n    return a[0]\n')
        assert constructs == []

    def test_main_guard(self):
        """Test the main guard's string comparison is allowed."""
        _, constructs = unsupported(
            'def main():\n    print(1)\n\nif __name__ == "__main__":\n    main()\n'
        )
        assert constructs == []

    def test_docstrings(self):
        """Test function docstrings are allowed."""
        _, constructs = unsupported('def f(x):\n    """Identity."""\n    return x\n')
        assert constructs == []
