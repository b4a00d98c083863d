"""Expression lowering: typed source expressions to Rust expression nodes."""

from __future__ import annotations

from typing import Any, Callable, List, Optional

from serpent.src.ast.expressions import (
    Attribute,
    BinaryOp,
    BoolOp,
    Call,
    Compare,
    Expr,
    IfExp,
    ListExpr,
    Literal,
    Name,
    Slice,
    Subscript,
    TupleExpr,
    UnaryOp,
)
from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.ir.nodes import (
    BORROWED,
    OWNED,
    RS_Binary,
    RS_Block,
    RS_Call,
    RS_Cast,
    RS_FieldAccess,
    RS_Ident,
    RS_IfExpr,
    RS_Index,
    RS_Lambda,
    RS_Let,
    RS_List,
    RS_Literal,
    RS_Macro,
    RS_MethodCall,
    RS_Range,
    RS_Ref,
    RS_SliceMacro,
    RS_Tuple,
    RS_Unary,
    RSExpr,
    RSStmt,
)
from serpent.src.semantic.intrinsics import BUILTINS, literal_int
from serpent.src.semantic.symbol_table import BindingKind
from serpent.src.semantic.type_system import (
    BOOL,
    I64,
    STR,
    ArrayType,
    ScalarKind,
    ScalarType,
    TupleType,
    Type,
    element_kind,
    widen,
)

from .intrinsics import IntrinsicCall, constant_path, lookup_lowering, rust_string
from .scope import rust_ident

# Kinds an unsuffixed Rust literal falls back to
FALLBACK_KINDS = (ScalarKind.F64, ScalarKind.I32)
LITERAL_SUFFIXES = tuple(f"_{kind.rust_name}" for kind in ScalarKind if not kind.is_bool)

OPERATOR_IMPLS = {"+", "-", "*", "/"}
COMPARISON_OPS = {"<", ">", "<=", ">=", "==", "!="}


def format_float(value: float) -> str:
    text = repr(float(value))
    if text in ("inf", "-inf", "nan"):
        raise ValueError(f"no literal spelling for {text}")
    return text


def float_text(text: str) -> str:
    """Spell an integer literal text as a float literal."""
    if any(c in text for c in ".eE"):
        return text
    return f"{text}.0"


def suffixed(text: str, kind: ScalarKind) -> str:
    if kind.is_bool:
        return text
    return f"{text}_{kind.rust_name}"


def scalar_kind_of(node: RSExpr) -> ScalarKind:
    return element_kind(node.ty)


def is_array(node: RSExpr) -> bool:
    return isinstance(node.ty, ArrayType)


class ExpressionLowerer:
    """Handles lowering of expressions to target AST nodes."""

    def __init__(self, parent: Any) -> None:
        self.parent = parent

    @property
    def inference(self):
        return self.parent.inference

    @property
    def scope(self):
        return self.parent.scope

    @property
    def diagnostics(self):
        return self.parent.diagnostics

    def unsupported(self, node, construct: str):
        return self.parent.unsupported(node, construct)

    def lower_expr(self, expr: Expr) -> RSExpr:
        handlers = {
            Literal: self.lower_literal,
            Name: self.lower_name,
            BinaryOp: self.lower_binary_op,
            UnaryOp: self.lower_unary_op,
            BoolOp: self.lower_bool_op,
            Compare: self.lower_compare,
            IfExp: self.lower_if_exp,
            Call: self.lower_call,
            Subscript: self.lower_subscript,
            Attribute: self.lower_attribute,
            ListExpr: self.lower_list,
            TupleExpr: self.lower_tuple,
        }
        handler = handlers.get(type(expr))
        if handler is None:
            raise self.unsupported(expr, getattr(expr, "construct", type(expr).__name__))
        node = handler(expr)
        if node.source_ast is None:
            node.source_ast = expr
        return node

    def lower_each(self, exprs: List[Expr]) -> List[RSExpr]:
        """Lower sibling expressions, reporting every gap before giving up."""
        lowered: List[RSExpr] = []
        failed: Optional[UnsupportedSyntaxError] = None
        for expr in exprs:
            try:
                lowered.append(self.lower_expr(expr))
            except UnsupportedSyntaxError as error:
                self.parent.report(error)
                failed = failed or error
        if failed is not None:
            raise failed
        return lowered

    def type_of(self, expr: Expr) -> Type:
        result = self.inference.type_of(expr)
        if result is None:
            raise self.unsupported(expr, f"untyped {type(expr).__name__} expression")
        return result

    # ------------------------------------------------------------------
    # Building blocks shared with the statement lowerer and intrinsic rules
    def literal(self, text: str, ty: Type) -> RS_Literal:
        return RS_Literal(text, ty)

    def method(
        self, receiver: RSExpr, name: str, args: Optional[List[RSExpr]] = None, ty: Any = None
    ) -> RS_MethodCall:
        return RS_MethodCall(self.receiver(receiver), name, list(args or []), ty)

    def receiver(self, node: RSExpr) -> RSExpr:
        """Literal receivers need a type suffix: ``2.0_f64.sqrt()``."""
        if isinstance(node, RS_Literal) and isinstance(node.ty, ScalarType):
            if not node.ty.kind.is_bool and not node.text.endswith(LITERAL_SUFFIXES):
                return RS_Literal(suffixed(node.text, node.ty.kind), node.ty, node.source_ast)
        return node

    def typed(self, node: RSExpr) -> RSExpr:
        """Suffix a literal whose kind Rust would not infer on its own."""
        if isinstance(node, RS_Literal) and isinstance(node.ty, ScalarType):
            kind = node.ty.kind
            if not kind.is_bool and kind not in FALLBACK_KINDS:
                return RS_Literal(suffixed(node.text, kind), node.ty, node.source_ast)
        return node

    def cast_scalar(self, node: RSExpr, kind: ScalarKind) -> RSExpr:
        source = scalar_kind_of(node)
        if source is kind:
            return node
        target = ScalarType(kind)
        if isinstance(node, RS_Literal):
            text = node.text
            if source.is_bool:
                text = "1" if text == "true" else "0"
                source = ScalarKind.I64
            if source.is_int and kind.is_float:
                return RS_Literal(float_text(text), target, node.source_ast)
            if source.is_int and kind.is_int:
                return RS_Literal(text, target, node.source_ast)
        if kind.is_bool:
            zero = "0.0" if source.is_float else "0"
            return RS_Binary("!=", node, RS_Literal(zero, ScalarType(source)), BOOL)
        if source.is_bool and kind.is_float:
            node = RS_Cast(node, "i64", I64)
        return RS_Cast(node, kind.rust_name, target)

    def cast_array(self, node: RSExpr, kind: ScalarKind) -> RSExpr:
        array = node.ty
        if array.element is kind:
            return node
        result = ArrayType(kind, array.rank, array.dims)
        return self.elementwise(node, lambda v: self.cast_scalar(v, kind), result)

    def coerce(self, node: RSExpr, target: Type) -> RSExpr:
        """Convert ``node`` to ``target`` where the types allow it."""
        source = node.ty
        if isinstance(target, ScalarType) and isinstance(source, ScalarType):
            return self.cast_scalar(node, target.kind)
        if isinstance(target, ArrayType) and isinstance(source, ArrayType):
            return self.cast_array(node, target.element)
        if isinstance(target, TupleType) and isinstance(source, TupleType):
            if source == target:
                return node
            if isinstance(node, RS_Tuple):
                elts = [self.coerce(e, t) for e, t in zip(node.elts, target.elements)]
                return RS_Tuple(elts, target, node.source_ast)
            name = self.scope.fresh("t")
            fields = [
                self.coerce(RS_FieldAccess(RS_Ident(name, source), str(i), t), expected)
                for i, (t, expected) in enumerate(zip(source.elements, target.elements))
            ]
            return RS_Block(
                [RS_Let(name, None, node, ty=source)], RS_Tuple(fields, target), target
            )
        return node

    def as_ref(self, node: RSExpr) -> RSExpr:
        """``&a`` for arrays used as operands; borrowed names already are references."""
        if isinstance(node, RS_Ref):
            return node
        if isinstance(node, RS_Ident) and node.ownership == BORROWED:
            return node
        return RS_Ref(node, ty=node.ty)

    def as_owned(self, node: RSExpr) -> RSExpr:
        """A value that can be stored: clones names, copies views."""
        if isinstance(node.ty, ScalarType) or node.ty is None:
            return node
        if isinstance(node, RS_Ident):
            if node.ownership == BORROWED:
                return RS_MethodCall(node, "to_owned", [], node.ty)
            return RS_MethodCall(node, "clone", [], node.ty)
        if isinstance(node, RS_SliceMacro):
            return RS_MethodCall(node, "to_owned", [], node.ty)
        if isinstance(node, RS_FieldAccess):
            return RS_MethodCall(node, "clone", [], node.ty)
        if isinstance(node, RS_Tuple):
            return RS_Tuple([self.as_owned(e) for e in node.elts], node.ty, node.source_ast)
        return node

    def as_moved(self, node: RSExpr) -> RSExpr:
        """Like as_owned, but an owned name is moved instead of cloned."""
        if isinstance(node, RS_Ident) and node.ownership == OWNED:
            return node
        if isinstance(node, RS_Tuple):
            seen = set()
            elts = []
            for element in node.elts:
                if isinstance(element, RS_Ident) and element.name in seen:
                    elts.append(self.as_owned(element))
                else:
                    elts.append(self.as_moved(element))
                if isinstance(element, RS_Ident):
                    seen.add(element.name)
            return RS_Tuple(elts, node.ty, node.source_ast)
        return self.as_owned(node)

    def pass_borrowed(self, node: RSExpr) -> RSExpr:
        """Argument for a ``&ArrayN<T>`` parameter."""
        if isinstance(node, RS_Ident) and node.ownership == BORROWED:
            return node
        if isinstance(node, RS_SliceMacro):
            return RS_Ref(RS_MethodCall(node, "to_owned", [], node.ty), ty=node.ty)
        return RS_Ref(node, ty=node.ty)

    def argument(self, node: RSExpr, expected: Type, marker: str) -> RSExpr:
        node = self.coerce(node, expected)
        if isinstance(expected, ArrayType):
            if marker == BORROWED:
                return self.pass_borrowed(node)
            return self.as_owned(node)
        return self.as_owned(node)

    def elementwise(
        self, node: RSExpr, fn: Callable[[RSExpr], RSExpr], result: Type
    ) -> RSExpr:
        """``a.mapv(|v| fn(v))``"""
        name = self.scope.fresh("v")
        element = RS_Ident(name, ScalarType(node.ty.element))
        return RS_MethodCall(
            self.receiver(node), "mapv", [RS_Lambda([name], fn(element))], result
        )

    def zip_with(
        self,
        left: RSExpr,
        right: RSExpr,
        fn: Callable[[RSExpr, RSExpr], RSExpr],
        result: Type,
        node: Optional[Expr] = None,
    ) -> RSExpr:
        """``ndarray::Zip::from(&a).and(&b).map_collect(|&x, &y| fn(x, y))``"""
        if left.ty.rank != right.ty.rank:
            raise self.unsupported(node, "elementwise operation between arrays of different rank")
        x, y = self.scope.fresh("x"), self.scope.fresh("y")
        body = fn(RS_Ident(x, ScalarType(left.ty.element)), RS_Ident(y, ScalarType(right.ty.element)))
        zipped = RS_Call("ndarray::Zip::from", [self.as_ref(left)])
        zipped = RS_MethodCall(zipped, "and", [self.as_ref(right)])
        return RS_MethodCall(zipped, "map_collect", [RS_Lambda([f"&{x}", f"&{y}"], body)], result)

    def broadcast(
        self,
        left: RSExpr,
        right: RSExpr,
        fn: Callable[[RSExpr, RSExpr], RSExpr],
        result: Type,
        node: Optional[Expr] = None,
    ) -> RSExpr:
        """Apply a scalar rule to scalars, array/scalar pairs or two arrays."""
        if is_array(left) and is_array(right):
            return self.zip_with(left, right, fn, result, node)
        if is_array(left):
            return self.elementwise(left, lambda v: fn(v, right), result)
        if is_array(right):
            return self.elementwise(right, lambda v: fn(left, v), result)
        return fn(left, right)

    # ------------------------------------------------------------------
    # Operators
    def binary(self, op: str, left: RSExpr, right: RSExpr, result: Type, node=None) -> RSExpr:
        if op == "@":
            return self.dot(left, right, result)
        if is_array(left) or is_array(right):
            return self.array_binary(op, left, right, result, node)
        return self.scalar_binary(op, left, right, element_kind(result))

    def scalar_binary(self, op: str, left: RSExpr, right: RSExpr, kind: ScalarKind) -> RSExpr:
        if op in COMPARISON_OPS:
            common = widen(scalar_kind_of(left), scalar_kind_of(right))
            return RS_Binary(op, self.cast_scalar(left, common), self.cast_scalar(right, common), BOOL)
        if op == "**":
            return self.power(left, right, kind)
        result = ScalarType(kind)
        lhs, rhs = self.cast_scalar(left, kind), self.cast_scalar(right, kind)
        if op == "//":
            if kind.is_int:
                return self.floor_div(lhs, rhs, result)
            return RS_MethodCall(RS_Binary("/", lhs, rhs, result), "floor", [], result)
        if op == "%":
            return self.floor_mod(lhs, rhs, result)
        return RS_Binary(op, lhs, rhs, result)

    def bind(self, node: RSExpr, base: str, stmts: List[RSStmt]) -> RSExpr:
        """Name ``node`` once so it can be used several times."""
        if isinstance(node, (RS_Ident, RS_Literal)):
            return node
        name = self.scope.fresh(base)
        stmts.append(RS_Let(name, None, node, ty=node.ty))
        return RS_Ident(name, node.ty)

    def _signs_differ(self, value: RSExpr, divisor: RSExpr, zero: RS_Literal) -> RSExpr:
        """``value != 0 && ((value < 0) != (divisor < 0))``"""
        nonzero = RS_Binary("!=", value, zero, BOOL)
        differ = RS_Binary(
            "!=", RS_Binary("<", value, zero, BOOL), RS_Binary("<", divisor, zero, BOOL), BOOL
        )
        return RS_Binary("&&", nonzero, differ, BOOL)

    def floor_div(self, lhs: RSExpr, rhs: RSExpr, result: ScalarType) -> RSExpr:
        """Integer ``//`` rounding toward negative infinity."""
        stmts: List[RSStmt] = []
        n = self.typed(self.bind(lhs, "n", stmts))
        d = self.typed(self.bind(rhs, "d", stmts))
        quotient = RS_Binary("/", n, d, result)
        test = self._signs_differ(RS_Binary("%", n, d, result), d, RS_Literal("0", result))
        adjusted = RS_Binary("-", quotient, RS_Literal("1", result), result)
        floored = RS_IfExpr(test, adjusted, quotient, result)
        return RS_Block(stmts, floored, result) if stmts else floored

    def floor_mod(self, lhs: RSExpr, rhs: RSExpr, result: ScalarType) -> RSExpr:
        """``%`` whose result takes the sign of the divisor."""
        stmts: List[RSStmt] = []
        n = self.typed(self.bind(lhs, "n", stmts))
        d = self.typed(self.bind(rhs, "d", stmts))
        r = self.scope.fresh("r")
        stmts.append(RS_Let(r, None, RS_Binary("%", n, d, result), ty=result))
        remainder = RS_Ident(r, result)
        zero = RS_Literal("0.0" if result.kind.is_float else "0", result)
        test = self._signs_differ(remainder, d, zero)
        adjusted = RS_Binary("+", remainder, d, result)
        return RS_Block(stmts, RS_IfExpr(test, adjusted, remainder, result), result)

    def power(self, base: RSExpr, exponent: RSExpr, kind: ScalarKind) -> RSExpr:
        result = ScalarType(kind)
        literal = self.literal_value(exponent)
        base = self.cast_scalar(base, kind)
        if kind.is_float:
            if literal is not None:
                return self.method(base, "powi", [RS_Literal(str(literal), ScalarType(ScalarKind.I32))], result)
            return self.method(base, "powf", [self.cast_scalar(exponent, kind)], result)
        if literal is not None and literal >= 0:
            return self.method(base, "pow", [RS_Literal(str(literal), I64)], result)
        return self.method(base, "pow", [RS_Cast(exponent, "u32", I64)], result)

    @staticmethod
    def literal_value(node: RSExpr) -> Optional[int]:
        """Value of an integer literal operand, else None."""
        if isinstance(node, RS_Literal) and isinstance(node.ty, ScalarType) and node.ty.kind.is_int:
            try:
                return int(node.text)
            except ValueError:
                return None
        return None

    def array_binary(
        self, op: str, left: RSExpr, right: RSExpr, result: ArrayType, node=None
    ) -> RSExpr:
        kind = result.element
        if op in OPERATOR_IMPLS:
            left, right = self._to_kind(left, kind), self._to_kind(right, kind)
            lhs = self.as_ref(left) if is_array(left) else self.typed(left)
            rhs = self.as_ref(right) if is_array(right) else self.typed(right)
            return RS_Binary(op, lhs, rhs, result)
        return self.broadcast(
            left, right, lambda l, r: self.scalar_binary(op, l, r, kind), result, node
        )

    def _to_kind(self, node: RSExpr, kind: ScalarKind) -> RSExpr:
        if is_array(node):
            return self.cast_array(node, kind)
        return self.cast_scalar(node, kind)

    def dot(self, left: RSExpr, right: RSExpr, result: Type) -> RSExpr:
        kind = element_kind(result)
        left, right = self.cast_array(left, kind), self.cast_array(right, kind)
        return self.method(left, "dot", [self.as_ref(right)], result)

    def negate(self, operand: RSExpr, result: Type) -> RSExpr:
        if is_array(operand):
            operand = self.cast_array(operand, result.element)
            return self.elementwise(operand, lambda v: RS_Unary("-", v, v.ty), result)
        operand = self.cast_scalar(operand, element_kind(result))
        if isinstance(operand, RS_Literal):
            text = operand.text[1:] if operand.text.startswith("-") else f"-{operand.text}"
            return RS_Literal(text, result, operand.source_ast)
        return RS_Unary("-", operand, result)

    # ------------------------------------------------------------------
    # Handlers
    def lower_literal(self, expr: Literal) -> RSExpr:
        if expr.kind == "bool":
            return RS_Literal("true" if expr.value else "false", BOOL)
        if expr.kind == "str":
            return RS_Literal(rust_string(expr.value), STR)
        if expr.kind == "int":
            return RS_Literal(str(expr.value), self.type_of(expr))
        if expr.kind == "float":
            return RS_Literal(format_float(expr.value), self.type_of(expr))
        raise self.unsupported(expr, f"{expr.kind} literal")

    def lower_name(self, expr: Name) -> RSExpr:
        binding = self.scope.binding(expr.id)
        if binding is not None and binding.kind is BindingKind.IMPORT:
            module, _, attr = binding.target.rpartition(".")
            return self._constant(expr, module, attr)
        if binding is not None and binding.kind is BindingKind.CONSTANT:
            return RS_Ident(expr.id, self.type_of(expr))
        return RS_Ident(rust_ident(expr.id), self.type_of(expr), self.scope.marker(expr.id))

    def _constant(self, expr: Expr, module: str, attr: str) -> RSExpr:
        path = constant_path(module, attr)
        if path is None:
            raise self.unsupported(expr, f"constant '{module}.{attr}' (no lowering rule)")
        return RS_Ident(path, self.type_of(expr))

    def lower_binary_op(self, expr: BinaryOp) -> RSExpr:
        left, right = self.lower_each([expr.left, expr.right])
        return self.binary(expr.op, left, right, self.type_of(expr), expr)

    def lower_unary_op(self, expr: UnaryOp) -> RSExpr:
        operand = self.lower_expr(expr.operand)
        result = self.type_of(expr)
        if expr.op == "not":
            return RS_Unary("!", operand, BOOL)
        if expr.op == "-":
            return self.negate(operand, result)
        return self.coerce(operand, result)

    def lower_bool_op(self, expr: BoolOp) -> RSExpr:
        op = "&&" if expr.op == "and" else "||"
        values = self.lower_each(expr.values)
        node = values[0]
        for value in values[1:]:
            node = RS_Binary(op, node, value, BOOL)
        return node

    def lower_compare(self, expr: Compare) -> RSExpr:
        result = self.type_of(expr)
        left, *comparators = self.lower_each([expr.left] + list(expr.comparators))
        stmts: List[RSStmt] = []
        parts: List[RSExpr] = []
        last = len(expr.ops) - 1
        for index, (op, right) in enumerate(zip(expr.ops, comparators)):
            if index < last and not is_array(right):
                # shared by two comparisons, evaluated once
                right = self.bind(right, f"m{index}", stmts)
            if is_array(left) or is_array(right):
                parts.append(self.array_binary(op, left, right, result, expr))
            else:
                parts.append(self.scalar_binary(op, left, right, ScalarKind.BOOL))
            left = right
        node = parts[0]
        for part in parts[1:]:
            node = RS_Binary("&&", node, part, BOOL)
        if stmts:
            return RS_Block(stmts, node, result)
        return node

    def lower_if_exp(self, expr: IfExp) -> RSExpr:
        result = self.type_of(expr)
        test, body, orelse = self.lower_each([expr.test, expr.body, expr.orelse])
        body = self.as_owned(self.coerce(body, result))
        orelse = self.as_owned(self.coerce(orelse, result))
        return RS_IfExpr(test, body, orelse, result)

    # Calls
    def lower_call(self, expr: Call) -> RSExpr:
        target = self.inference.call_targets.get(id(expr))
        if target is None:
            raise self.unsupported(expr, "call without a resolved target")
        if target.kind == "intrinsic":
            return self._call_intrinsic(expr, target)
        if target.kind == "closure":
            info = self.scope.closure(target.name)
            if info is None:
                raise self.unsupported(expr, f"call of nested function '{target.name}' before its definition")
            params, markers = info.signature.params, info.ownership.param_markers()
        else:
            signature = self.inference.function_types.get(target.name)
            if signature is None:
                raise self.unsupported(expr, f"call of failed function '{target.name}'")
            params = signature.params
            markers = self.parent.ownership_for(target.name).param_markers()
        lowered = self.lower_each(expr.args[: len(params)])
        args = [
            self.argument(arg, param, marker)
            for arg, param, marker in zip(lowered, params, markers)
        ]
        return RS_Call(rust_ident(target.name), args, self.type_of(expr))

    def _call_intrinsic(self, expr: Call, target) -> RSExpr:
        module = target.module
        qualified = target.name if module == BUILTINS else f"{module}.{target.name}"
        rule = lookup_lowering(module, target.name)
        if rule is None:
            raise self.unsupported(expr, f"{qualified}() (no lowering rule)")
        nodes = target.arguments(expr)
        args = self.lower_each(nodes)
        call = IntrinsicCall(module, target.name, args, nodes, self.type_of(expr), expr)
        return rule(self, call)

    # Indexing and attributes
    def lower_subscript(self, expr: Subscript) -> RSExpr:
        value_type = self.type_of(expr.value)
        result = self.type_of(expr)
        if isinstance(value_type, TupleType):
            index = literal_int(expr.indices[0])
            if index < 0:
                index += len(value_type.elements)
            shape = self._shape_source(expr.value)
            if shape is not None:
                return self.shape_dim(self.lower_expr(shape), index)
            return RS_FieldAccess(self.lower_expr(expr.value), str(index), result)
        base = self.lower_expr(expr.value)
        if len(expr.indices) == value_type.rank and not any(
            isinstance(index, Slice) for index in expr.indices
        ):
            indices = [
                self.element_index(base, axis, index) for axis, index in enumerate(expr.indices)
            ]
            return RS_Index(base, indices, result)
        return RS_SliceMacro(base, self.slice_ranges(expr, value_type.rank), ty=result)

    def _shape_source(self, expr: Expr) -> Optional[Expr]:
        if isinstance(expr, Attribute) and expr.attr == "shape":
            if isinstance(self.inference.type_of(expr.value), ArrayType):
                return expr.value
        return None

    def shape_dim(self, base: RSExpr, axis: int) -> RSExpr:
        """``a.shape()[axis] as i64``"""
        shape = self.method(base, "shape", [])
        return RS_Cast(RS_Index(shape, [RS_Literal(str(axis))]), "i64", I64)

    def axis_length(self, base: RSExpr, axis: int) -> RSExpr:
        if base.ty.rank == 1:
            return self.method(base, "len", [])
        return RS_Index(self.method(base, "shape", []), [RS_Literal(str(axis))])

    def element_index(self, base: RSExpr, axis: int, index: Expr) -> RSExpr:
        literal = literal_int(index)
        if literal is None:
            return RS_Cast(self.lower_expr(index), "usize")
        if literal >= 0:
            return RS_Literal(str(literal))
        dim = base.ty.dim(axis)
        if dim is not None:
            return RS_Literal(str(dim + literal))
        return RS_Binary("-", self.axis_length(base, axis), RS_Literal(str(-literal)))

    def slice_bound(self, index: Expr) -> RSExpr:
        literal = literal_int(index)
        if literal is not None:
            return RS_Literal(str(literal))
        return RS_Cast(self.lower_expr(index), "isize")

    def slice_ranges(self, expr: Subscript, rank: int) -> List[RSExpr]:
        ranges: List[RSExpr] = []
        for index in expr.indices:
            if isinstance(index, Slice):
                lower = self.slice_bound(index.lower) if index.lower is not None else None
                upper = self.slice_bound(index.upper) if index.upper is not None else None
                ranges.append(RS_Range(lower, upper))
            else:
                ranges.append(self.slice_bound(index))
        while len(ranges) < rank:
            ranges.append(RS_Range(None, None))
        return ranges

    def lower_attribute(self, expr: Attribute) -> RSExpr:
        module = self.import_target(expr.value)
        if module is not None:
            return self._constant(expr, module, expr.attr)
        base = self.lower_expr(expr.value)
        result = self.type_of(expr)
        if expr.attr == "T":
            return RS_MethodCall(self.method(base, "t", []), "to_owned", [], result)
        if expr.attr == "shape":
            return RS_Tuple([self.shape_dim(base, axis) for axis in range(base.ty.rank)], result)
        if expr.attr == "size":
            return RS_Cast(self.method(base, "len", []), "i64", I64)
        if expr.attr == "ndim":
            return RS_Cast(self.method(base, "ndim", []), "i64", I64)
        raise self.unsupported(expr, f"attribute '.{expr.attr}'")

    def import_target(self, expr: Expr) -> Optional[str]:
        """Qualified module for ``np`` or ``np.linalg``, else None."""
        if isinstance(expr, Name):
            binding = self.scope.binding(expr.id)
            if binding is not None and binding.kind is BindingKind.IMPORT:
                return binding.target
            return None
        if isinstance(expr, Attribute):
            parent = self.import_target(expr.value)
            if parent is not None:
                return f"{parent}.{expr.attr}"
        return None

    # Displays
    def lower_list(self, expr: ListExpr) -> RSExpr:
        result = self.type_of(expr)
        first = [True]

        def rows(node: ListExpr) -> List[RSExpr]:
            elements: List[RSExpr] = []
            for element in node.elts:
                if isinstance(element, ListExpr):
                    elements.append(RS_List(rows(element)))
                    continue
                value = self.cast_scalar(self.lower_expr(element), result.element)
                if first[0]:
                    value = self.typed(value)
                    first[0] = False
                elements.append(value)
            return elements
        return RS_Macro("ndarray::array", rows(expr), bracket=True, ty=result)

    def lower_tuple(self, expr: TupleExpr) -> RSExpr:
        elements = [self.as_owned(e) for e in self.lower_each(expr.elts)]
        return RS_Tuple(elements, self.type_of(expr))

