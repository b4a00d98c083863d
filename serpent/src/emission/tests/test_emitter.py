"""Tests for emitter.py - Rust source rendering."""

import pytest

from serpent.src.common.exceptions import EmissionError
from serpent.src.emission.emitter import RustEmitter, emit_module
from serpent.src.ir.nodes import (
    RS_Assign,
    RS_Binary,
    RS_Break,
    RS_Cast,
    RS_Const,
    RS_ForIter,
    RS_ForRange,
    RS_Function,
    RS_Ident,
    RS_If,
    RS_Index,
    RS_Let,
    RS_Literal,
    RS_Macro,
    RS_MethodCall,
    RS_Module,
    RS_Param,
    RS_Return,
    RS_SliceMacro,
    RS_Range,
    RS_Tuple,
    RS_Unary,
    RS_Use,
    RS_While,
    RSExpr,
)


def ident(name):
    return RS_Ident(name)


def add_function():
    body = [RS_Return(RS_Binary("+", ident("a"), ident("b")))]
    params = [RS_Param("a", "f64"), RS_Param("b", "f64")]
    return RS_Function("add", params, "f64", body)


class TestEmitModule:
    """Tests for RustEmitter.emit()."""

    def test_single_function(self):
        """Test a function renders with four-space indentation."""
        text = RustEmitter().emit(RS_Module([add_function()]))
        assert text == "pub fn add(a: f64, b: f64) -> f64 {\n    return a + b;\n}\n"

    def test_sections_are_separated(self):
        """Test attributes, uses and items are separated by blank lines."""
        module = RS_Module(
            [RS_Const("RATE", "f64", RS_Literal("0.05")), add_function()],
            uses=[RS_Use("ndarray::prelude::*")],
            attributes=["allow(non_snake_case)"],
        )
        text = RustEmitter().emit(module)
        assert text.startswith(
            "#![allow(non_snake_case)]\n\nuse ndarray::prelude::*;\n\npub const RATE: f64 = 0.05;\n\npub fn add("
        )
        assert text.endswith("}\n")
        assert not text.endswith("\n\n")

    def test_doc_comments(self):
        """Test module and function docs become doc comments."""
        function = add_function()
        function.doc = "Add two numbers."
        text = RustEmitter().emit(RS_Module([function], doc="Arithmetic."))
        assert text.startswith("//! Arithmetic.\n\n/// Add two numbers.\npub fn add")

    def test_emission_is_deterministic(self):
        """Test emitting the same tree twice gives identical text."""
        module = RS_Module([add_function()])
        assert emit_module(module) == emit_module(module)

    def test_unit_function(self):
        """Test a function without a return type omits the arrow."""
        function = RS_Function("main", [], None, [RS_Let("x", "f64", RS_Literal("1.0"))])
        text = RustEmitter().emit_function(function)
        assert text == "pub fn main() {\n    let x: f64 = 1.0;\n}\n"

    def test_unknown_node_raises(self):
        """Test nodes without a rendering rule raise EmissionError."""

        class RS_Mystery(RSExpr):
            pass

        function = RS_Function("f", [], None, [RS_Return(RS_Mystery())])
        with pytest.raises(EmissionError, match="no rendering rule for RS_Mystery"):
            RustEmitter().emit(RS_Module([function]))


class TestStatements:
    """Tests for statement rendering."""

    def setup_method(self):
        self.emitter = RustEmitter()

    def test_mutable_let(self):
        """Test mutable bindings."""
        stmt = RS_Let("s", "f64", RS_Literal("0.0"), mutable=True)
        assert self.emitter.emit_statement(stmt) == "let mut s: f64 = 0.0;"

    def test_compound_assignment(self):
        """Test augmented assignment operators."""
        stmt = RS_Assign(ident("s"), ident("v"), op="+=")
        assert self.emitter.emit_statement(stmt) == "s += v;"

    def test_else_if_chain(self):
        """Test a nested if in the else branch renders as else if."""
        inner = RS_If(ident("b"), [RS_Break()], [RS_Return()])
        stmt = RS_If(ident("a"), [RS_Return(ident("x"))], [inner])
        assert self.emitter.emit_statement(stmt).splitlines() == [
            "if a {",
            "    return x;",
            "} else if b {",
            "    break;",
            "} else {",
            "    return;",
            "}",
        ]

    def test_for_range(self):
        """Test range loops with and without a step."""
        plain = RS_ForRange("i", RS_Literal("0_i64"), ident("n"), None, [])
        stepped = RS_ForRange("i", RS_Literal("0_i64"), ident("n"), RS_Literal("2"), [])
        assert self.emitter.emit_statement(plain) == "for i in 0_i64..n {\n}"
        assert self.emitter.emit_statement(stepped).startswith("for i in (0_i64..n).step_by(2) {")

    def test_for_iter(self):
        """Test element loops bind by pattern."""
        stmt = RS_ForIter("v", RS_MethodCall(ident("a"), "iter", []), [])
        assert self.emitter.emit_statement(stmt).splitlines()[0] == "for &v in a.iter() {"

    def test_while(self):
        """Test while loops."""
        stmt = RS_While(RS_Binary("<", ident("i"), ident("n")), [RS_Break()])
        assert self.emitter.emit_statement(stmt, 1).splitlines() == [
            "    while i < n {",
            "        break;",
            "    }",
        ]


class TestExpressions:
    """Tests for expression rendering and precedence."""

    def setup_method(self):
        self.emitter = RustEmitter()

    def test_parenthesise_looser_operand(self):
        """Test a looser left operand gets parentheses."""
        expr = RS_Binary("*", RS_Binary("+", ident("a"), ident("b")), ident("c"))
        assert self.emitter.emit_expression(expr) == "(a + b) * c"

    def test_right_associativity_kept(self):
        """Test a same-level right operand gets parentheses."""
        expr = RS_Binary("-", ident("a"), RS_Binary("-", ident("b"), ident("c")))
        assert self.emitter.emit_expression(expr) == "a - (b - c)"

    def test_left_chain_has_no_parentheses(self):
        """Test a same-level left operand is left bare."""
        expr = RS_Binary("-", RS_Binary("-", ident("a"), ident("b")), ident("c"))
        assert self.emitter.emit_expression(expr) == "a - b - c"

    def test_method_receiver(self):
        """Test a binary receiver is parenthesised before a method call."""
        expr = RS_MethodCall(RS_Binary("/", ident("S"), ident("K")), "ln", [])
        assert self.emitter.emit_expression(expr) == "(S / K).ln()"

    def test_cast(self):
        """Test casts bind tighter than arithmetic."""
        expr = RS_Binary("*", RS_Cast(ident("n"), "f64"), ident("x"))
        assert self.emitter.emit_expression(expr) == "n as f64 * x"

    def test_negative_literal_receiver(self):
        """Test negative literals are wrapped before a method call."""
        expr = RS_MethodCall(RS_Literal("-1.0"), "exp", [])
        assert self.emitter.emit_expression(expr) == "(-1.0).exp()"

    def test_unary(self):
        """Test unary operators wrap binary operands."""
        expr = RS_Unary("-", RS_Binary("+", ident("a"), ident("b")))
        assert self.emitter.emit_expression(expr) == "-(a + b)"

    def test_indexing(self):
        """Test single and multi-dimensional indexing."""
        assert self.emitter.emit_expression(RS_Index(ident("a"), [ident("i")])) == "a[i]"
        assert self.emitter.emit_expression(RS_Index(ident("m"), [ident("i"), ident("j")])) == "m[[i, j]]"

    def test_slice(self):
        """Test slices render through the s! macro."""
        expr = RS_SliceMacro(ident("a"), [RS_Range(RS_Literal("1"), None)])
        assert self.emitter.emit_expression(expr) == "a.slice(ndarray::s![1..])"

    def test_macros_and_tuples(self):
        """Test macro calls and one-element tuples."""
        assert self.emitter.emit_expression(
            RS_Macro("println", [RS_Literal('"{:?}"'), ident("y")])
        ) == 'println!("{:?}", y)'
        assert self.emitter.emit_expression(RS_Tuple([ident("a")])) == "(a,)"

    def test_fragment(self):
        """Test loose statements render one per line."""
        nodes = [RS_Let("x", "f64", RS_Literal("1.0")), RS_Return(ident("x"))]
        assert self.emitter.emit_fragment(nodes) == "let x: f64 = 1.0;\nreturn x;\n"
        assert self.emitter.emit_fragment([]) == ""
