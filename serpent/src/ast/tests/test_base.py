"""Tests for ast/base.py - Traversal and debug rendering of the source AST."""

from serpent.src.ast.base import format_ast, iter_child_nodes, node_fields, walk
from serpent.src.ast.expressions import BinaryOp, Call, Literal, Name
from serpent.src.ast.statements import Assign


def sample():
    value = BinaryOp("+", Name("x", 1, 5), Literal(1.0, "float", 1, 9), 1, 5)
    return Assign(Name("y", 1, 1), value, 1, 1)


class TestTraversal:
    """Tests for iter_child_nodes and walk."""

    def test_children_in_field_order(self):
        """Test direct children come out in declaration order."""
        children = list(iter_child_nodes(sample()))
        assert [type(child).__name__ for child in children] == ["Name", "BinaryOp"]

    def test_walk_is_preorder(self):
        """Test walk visits a node before its children."""
        names = [type(node).__name__ for node in walk(sample())]
        assert names == ["Assign", "Name", "BinaryOp", "Name", "Literal"]

    def test_node_fields_skip_positions(self):
        """Test only structural fields are listed, in declaration order."""
        node = sample()
        node.source_file = "prog.py"
        assert [name for name, _ in node_fields(node)] == ["target", "value"]

    def test_walk_reaches_nested_lists(self):
        """Test children held in lists are visited."""
        call = Call(Name("f", 1, 1), [Name("a", 1, 3), Literal(2, "int", 1, 6)], [], 1, 1)
        assert [type(node).__name__ for node in walk(call)] == ["Call", "Name", "Name", "Literal"]


class TestFormatAst:
    """Tests for format_ast()."""

    def test_positions_and_fields(self):
        """Test headers carry positions and position fields are hidden."""
        lines = format_ast(sample()).splitlines()

        assert lines[0] == "Assign [1:1]"
        assert lines[1] == "  target:"
        assert lines[2] == "    Name [1:1]"
        assert lines[3] == "      id: 'y'"
        assert not any("source_file" in line for line in lines)

    def test_contains_line(self):
        """Test a node without an end line covers only its first line."""
        node = Name("x", 3, 1)
        assert node.contains_line(3)
        assert not node.contains_line(4)
