"""Tests for ir/nodes.py - Target AST nodes, traversal and debug rendering."""

import pytest

from serpent.src.ir.nodes import (
    BORROWED,
    RS_Binary,
    RS_Function,
    RS_Ident,
    RS_Let,
    RS_Literal,
    RS_Param,
    RS_Ref,
    RS_Return,
    format_rust_ast,
    iter_rs_children,
    walk_rs,
)
from serpent.src.semantic.type_system import F64


def sample_function():
    body = [
        RS_Let("y", "f64", RS_Binary("*", RS_Ident("x", F64), RS_Literal("2.0", F64), F64)),
        RS_Return(RS_Ident("y", F64)),
    ]
    return RS_Function("twice", [RS_Param("x", "f64", F64)], "f64", body)


class TestNodes:
    """Tests for node construction."""

    def test_default_ownership(self):
        """Test nodes are owned unless stated otherwise."""
        assert RS_Ident("x").ownership == "owned"
        assert RS_Ref(RS_Ident("a")).ownership == BORROWED

    def test_unknown_ownership(self):
        """Test ownership markers are validated."""
        with pytest.raises(ValueError):
            RS_Ident("x", ownership="leased")

    def test_debug_metadata_is_per_node(self):
        """Test every node gets its own metadata dict."""
        a, b = RS_Ident("a"), RS_Ident("b")
        a.debug_metadata["origin"] = "test"
        assert b.debug_metadata == {}


class TestTraversal:
    """Tests for walk_rs and iter_rs_children."""

    def test_children_skip_metadata(self):
        """Test type and source fields are not children."""
        binary = RS_Binary("+", RS_Ident("a"), RS_Literal("1"), F64)
        children = list(iter_rs_children(binary))
        assert [type(c).__name__ for c in children] == ["RS_Ident", "RS_Literal"]

    def test_walk_is_preorder(self):
        """Test walk_rs visits parents before children, in field order."""
        names = [type(node).__name__ for node in walk_rs(sample_function())]
        assert names == [
            "RS_Function",
            "RS_Param",
            "RS_Let",
            "RS_Binary",
            "RS_Ident",
            "RS_Literal",
            "RS_Return",
            "RS_Ident",
        ]


class TestFormatRustAst:
    """Tests for format_rust_ast()."""

    def test_deterministic(self):
        """Test the same tree renders identically."""
        assert format_rust_ast(sample_function()) == format_rust_ast(sample_function())

    def test_shape(self):
        """Test headers carry types and fields are indented."""
        text = format_rust_ast(RS_Return(RS_Ident("y", F64)))
        assert text.splitlines() == [
            "RS_Return",
            "  value:",
            "    RS_Ident : f64",
            "      name: 'y'",
        ]

    def test_ownership_shown(self):
        """Test non-owned nodes show their marker."""
        text = format_rust_ast(RS_Ref(RS_Ident("a")))
        assert text.splitlines()[0] == "RS_Ref [borrowed]"
