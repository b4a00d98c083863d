from __future__ import annotations

from typing import Any, List, Optional

from serpent.src.ast.base import walk
from serpent.src.ast.expressions import Call, Literal, Name, Slice, Subscript, TupleExpr
from serpent.src.ast.statements import (
    AnnAssign,
    Assign,
    AugAssign,
    Break,
    Continue,
    ExprStmt,
    For,
    FunctionDef,
    If,
    Import,
    ImportFrom,
    Pass,
    Return,
    Statement,
    While,
)
from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.ir.nodes import (
    BORROWED,
    RS_Assign,
    RS_Binary,
    RS_Break,
    RS_Closure,
    RS_Continue,
    RS_Deref,
    RS_ExprStmt,
    RS_ForIter,
    RS_ForRange,
    RS_Ident,
    RS_If,
    RS_Index,
    RS_Lambda,
    RS_Let,
    RS_LetTuple,
    RS_Literal,
    RS_MethodCall,
    RS_Return,
    RS_SliceMacro,
    RS_Tuple,
    RS_While,
    RSExpr,
    RSStmt,
)
from serpent.src.semantic.analyzer import is_docstring
from serpent.src.semantic.intrinsics import BUILTINS, literal_int
from serpent.src.semantic.type_system import (
    ArrayType,
    ScalarType,
    UnitType,
    rust_type,
)

from .ownership import analyze_function
from .scope import ClosureInfo, rust_ident

"""Statement lowering: one rule per statement kind, each returning the
Rust statements it produced."""

COMPOUND_OPS = {"+", "-", "*", "/"}


class StatementLowerer:
    """Handles lowering of statements to target AST nodes."""

    def __init__(self, parent: Any) -> None:
        self.parent = parent

    @property
    def expr(self):
        return self.parent.expr_lowerer

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

    def lower_block(self, body: List[Statement]) -> List[RSStmt]:
        statements: List[RSStmt] = []
        for stmt in body:
            statements.extend(self.lower_statement(stmt))
        return statements

    def lower_statement(self, stmt: Statement) -> List[RSStmt]:
        """Lower one statement; a gap is reported and yields no output."""
        handlers = {
            Assign: self.lower_assign,
            AnnAssign: self.lower_assign,
            AugAssign: self.lower_aug_assign,
            Return: self.lower_return,
            ExprStmt: self.lower_expr_stmt,
            If: self.lower_if,
            For: self.lower_for,
            While: self.lower_while,
            FunctionDef: self.lower_nested_function,
            Pass: self.lower_nothing,
            Import: self.lower_nothing,
            ImportFrom: self.lower_nothing,
            Break: self.lower_jump,
            Continue: self.lower_jump,
        }
        handler = handlers.get(type(stmt))
        try:
            if handler is None:
                raise self.unsupported(
                    stmt, getattr(stmt, "construct", type(stmt).__name__)
                )
            result = handler(stmt)
        except UnsupportedSyntaxError as error:
            self.parent.report(error)
            result = []
        self.parent.record(stmt, result)
        return result

    def lower_nothing(self, stmt: Statement) -> List[RSStmt]:
        return []

    def lower_jump(self, stmt: Statement) -> List[RSStmt]:
        if isinstance(stmt, Break):
            return [RS_Break(source_ast=stmt)]
        return [RS_Continue(source_ast=stmt)]

    # ------------------------------------------------------------------
    # Assignment

    def lower_assign(self, stmt) -> List[RSStmt]:
        target = stmt.target
        if isinstance(target, Name):
            return self._bind_name(stmt, target)
        if isinstance(target, TupleExpr):
            return self._bind_tuple(stmt, target)
        if isinstance(target, Subscript):
            return self._store_subscript(stmt, target)
        raise self.unsupported(target, f"assignment to {type(target).__name__}")

    def _bind_name(self, stmt, target: Name) -> List[RSStmt]:
        name = target.id
        scope = self.scope
        bound = self.expr.type_of(target)
        value = self.expr.lower_expr(stmt.value)
        ident = rust_ident(name)

        if name in scope.ownership.aliases:
            scope.declared.add(name)
            return [
                RS_Let(
                    ident,
                    f"&{rust_type(bound)}",
                    self.expr.pass_borrowed(value),
                    ty=bound,
                    ownership=BORROWED,
                    source_ast=stmt,
                )
            ]

        value = self.expr.as_owned(self.expr.coerce(value, bound))
        if name in scope.declared:
            return [RS_Assign(RS_Ident(ident, bound), value, source_ast=stmt)]
        scope.declared.add(name)
        mutable = name in scope.ownership.mutable
        return [RS_Let(ident, rust_type(bound), value, mutable, ty=bound, source_ast=stmt)]

    def _bind_tuple(self, stmt, target: TupleExpr) -> List[RSStmt]:
        scope = self.scope
        names = [element.id for element in target.elts]
        bound = self.expr.type_of(target)
        value = self.expr.as_owned(self.expr.coerce(self.expr.lower_expr(stmt.value), bound))
        declared = [name in scope.declared for name in names]
        if not any(declared):
            scope.declared.update(names)
            pattern = [(rust_ident(name), name in scope.ownership.mutable) for name in names]
            return [RS_LetTuple(pattern, value, rust_type(bound), ty=bound, source_ast=stmt)]
        if all(declared):
            idents = [
                RS_Ident(rust_ident(name), element_type)
                for name, element_type in zip(names, bound.elements)
            ]
            return [RS_Assign(RS_Tuple(idents, bound), value, source_ast=stmt)]
        raise self.unsupported(stmt, "tuple assignment mixing new and existing names")

    def _subscript_base(self, target: Subscript) -> RSExpr:
        if not isinstance(target.value, Name):
            raise self.unsupported(target, "assignment through a chained subscript")
        return self.expr.lower_expr(target.value)

    @staticmethod
    def _is_element(target: Subscript, base: RSExpr) -> bool:
        return len(target.indices) == base.ty.rank and not any(
            isinstance(index, Slice) for index in target.indices
        )

    def _element(self, target: Subscript, base: RSExpr) -> RS_Index:
        indices = [
            self.expr.element_index(base, axis, index)
            for axis, index in enumerate(target.indices)
        ]
        return RS_Index(base, indices, ScalarType(base.ty.element))

    def _view(self, target: Subscript, base: RSExpr) -> RS_SliceMacro:
        return RS_SliceMacro(
            base,
            self.expr.slice_ranges(target, base.ty.rank),
            mutable=True,
            ty=self.expr.type_of(target),
        )

    def _reads_base(self, stmt, target: Subscript) -> bool:
        name = target.value.id
        return any(isinstance(node, Name) and node.id == name for node in walk(stmt.value))

    def _materialise(self, stmt, value: RSExpr, prelude: List[RSStmt]) -> RSExpr:
        """Evaluate ``value`` into a fresh binding before the base is borrowed mutably."""
        name = self.scope.fresh("rhs")
        prelude.append(
            RS_Let(name, rust_type(value.ty), self.expr.as_owned(value), ty=value.ty, source_ast=stmt)
        )
        return RS_Ident(name, value.ty)

    def _store_subscript(self, stmt, target: Subscript) -> List[RSStmt]:
        base = self._subscript_base(target)
        value = self.expr.lower_expr(stmt.value)
        kind = base.ty.element
        if self._is_element(target, base):
            slot = self._element(target, base)
            return [RS_Assign(slot, self.expr.cast_scalar(value, kind), source_ast=stmt)]

        statements: List[RSStmt] = []
        if isinstance(value.ty, ArrayType):
            value = self.expr.cast_array(value, kind)
            if self._reads_base(stmt, target):
                value = self._materialise(stmt, value, statements)
            call = RS_MethodCall(self._view(target, base), "assign", [self.expr.as_ref(value)])
        else:
            fill = self.expr.typed(self.expr.cast_scalar(value, kind))
            call = RS_MethodCall(self._view(target, base), "fill", [fill])
        statements.append(RS_ExprStmt(call, source_ast=stmt))
        return statements

    # ------------------------------------------------------------------
    # Augmented assignment

    def lower_aug_assign(self, stmt: AugAssign) -> List[RSStmt]:
        target = stmt.target
        if isinstance(target, Name):
            return self._augment_name(stmt, target)
        if isinstance(target, Subscript):
            return self._augment_subscript(stmt, target)
        raise self.unsupported(target, f"augmented assignment to {type(target).__name__}")

    def _augment_name(self, stmt: AugAssign, target: Name) -> List[RSStmt]:
        current = self.expr.lower_expr(target)
        value = self.expr.lower_expr(stmt.value)
        op = stmt.op
        if isinstance(current.ty, ScalarType):
            if op in COMPOUND_OPS:
                rhs = self.expr.cast_scalar(value, current.ty.kind)
                return [RS_Assign(current, rhs, op=f"{op}=", source_ast=stmt)]
            combined = self.expr.binary(op, current, value, current.ty, stmt)
            return [RS_Assign(current, combined, source_ast=stmt)]

        kind = current.ty.element
        if op in COMPOUND_OPS:
            if isinstance(value.ty, ArrayType):
                rhs = self.expr.as_ref(self.expr.cast_array(value, kind))
            else:
                rhs = self.expr.typed(self.expr.cast_scalar(value, kind))
            return [RS_Assign(current, rhs, op=f"{op}=", source_ast=stmt)]
        return [RS_ExprStmt(self._update_in_place(current, op, value, stmt), source_ast=stmt)]

    def _update_in_place(self, array: RSExpr, op: str, value: RSExpr, node) -> RSExpr:
        """``a.mapv_inplace(|v| ...)`` or ``a.zip_mut_with(&b, |x, &y| ...)``."""
        kind = array.ty.element
        element = ScalarType(kind)
        if isinstance(value.ty, ArrayType):
            x, y = self.scope.fresh("x"), self.scope.fresh("y")
            slot = RS_Deref(RS_Ident(x), element)
            other = RS_Ident(y, ScalarType(value.ty.element))
            if op in COMPOUND_OPS:
                body = RS_Binary(f"{op}=", slot, self.expr.cast_scalar(other, kind))
            else:
                body = RS_Binary("=", slot, self.expr.scalar_binary(op, slot, other, kind))
            return RS_MethodCall(
                array, "zip_mut_with", [self.expr.as_ref(value), RS_Lambda([x, f"&{y}"], body)]
            )
        v = self.scope.fresh("v")
        body = self.expr.scalar_binary(op, RS_Ident(v, element), value, kind)
        return RS_MethodCall(array, "mapv_inplace", [RS_Lambda([v], body)])

    def _augment_subscript(self, stmt: AugAssign, target: Subscript) -> List[RSStmt]:
        base = self._subscript_base(target)
        value = self.expr.lower_expr(stmt.value)
        kind = base.ty.element
        if self._is_element(target, base):
            slot = self._element(target, base)
            if stmt.op in COMPOUND_OPS:
                rhs = self.expr.cast_scalar(value, kind)
                return [RS_Assign(slot, rhs, op=f"{stmt.op}=", source_ast=stmt)]
            combined = self.expr.scalar_binary(stmt.op, self._element(target, base), value, kind)
            return [RS_Assign(slot, combined, source_ast=stmt)]

        statements: List[RSStmt] = []
        if isinstance(value.ty, ArrayType) and self._reads_base(stmt, target):
            value = self._materialise(stmt, value, statements)
        update = self._update_in_place(self._view(target, base), stmt.op, value, stmt)
        statements.append(RS_ExprStmt(update, source_ast=stmt))
        return statements

    # ------------------------------------------------------------------
    # Control flow

    def lower_return(self, stmt: Return) -> List[RSStmt]:
        value = stmt.value
        if value is None or (isinstance(value, Literal) and value.kind == "none"):
            return [RS_Return(None, source_ast=stmt)]
        returns = self.scope.returns
        if isinstance(value, TupleExpr):
            elements = self.expr.lower_each(value.elts)
            lowered: RSExpr = RS_Tuple(elements, self.expr.type_of(value), value)
        else:
            lowered = self.expr.lower_expr(value)
        if returns is not None and not isinstance(returns, UnitType):
            lowered = self.expr.coerce(lowered, returns)
        return [RS_Return(self.expr.as_moved(lowered), source_ast=stmt)]

    def lower_expr_stmt(self, stmt: ExprStmt) -> List[RSStmt]:
        if is_docstring(stmt):
            return []
        value = self.expr.lower_expr(stmt.value)
        if isinstance(stmt.value, Call):
            return [RS_ExprStmt(value, source_ast=stmt)]
        if isinstance(value.ty, ScalarType):
            return [RS_Let("_", None, value, source_ast=stmt)]
        return [RS_Let("_", None, self.expr.as_ref(value), source_ast=stmt)]

    def lower_if(self, stmt: If) -> List[RSStmt]:
        test = self.expr.lower_expr(stmt.test)
        body = self.lower_block(stmt.body)
        orelse = self.lower_block(stmt.orelse)
        return [RS_If(test, body, orelse, source_ast=stmt)]

    def lower_while(self, stmt: While) -> List[RSStmt]:
        test = self.expr.lower_expr(stmt.test)
        return [RS_While(test, self.lower_block(stmt.body), source_ast=stmt)]

    def lower_for(self, stmt: For) -> List[RSStmt]:
        name = stmt.target.id
        var_type = self.expr.type_of(stmt.target)
        iterable = stmt.iter
        target = self.inference.call_targets.get(id(iterable))
        if target is not None and target.module == BUILTINS and target.name == "range":
            return self._range_loop(stmt, name, var_type)

        sequence = self.expr.lower_expr(iterable)
        if var_type != ScalarType(sequence.ty.element):
            raise self.unsupported(
                stmt.target, f"loop variable '{name}' is also bound as {var_type}"
            )
        items = self.expr.method(sequence, "iter", [])
        return [RS_ForIter(rust_ident(name), items, self.lower_block(stmt.body), source_ast=stmt)]

    def _range_loop(self, stmt: For, name: str, var_type) -> List[RSStmt]:
        call = stmt.iter
        kind = self.expr.type_of(call).element
        if var_type != ScalarType(kind):
            raise self.unsupported(
                stmt.target, f"loop variable '{name}' is also bound as {var_type}"
            )
        args = [self.expr.cast_scalar(self.expr.lower_expr(a), kind) for a in call.args]
        if len(args) == 1:
            start: RSExpr = RS_Literal("0", ScalarType(kind))
            stop = args[0]
        else:
            start, stop = args[0], args[1]
        step: Optional[RSExpr] = None
        if len(args) == 3:
            value = literal_int(call.args[2])
            if value is None or value <= 0:
                raise self.unsupported(call, "range() with a non-literal or non-positive step")
            if value != 1:
                step = RS_Literal(str(value))
        body = self.lower_block(stmt.body)
        return [
            RS_ForRange(rust_ident(name), self.expr.typed(start), stop, step, body, source_ast=stmt)
        ]

    # ------------------------------------------------------------------
    # Nested functions

    def lower_nested_function(self, fn: FunctionDef) -> List[RSStmt]:
        signature = self.inference.nested_types.get(id(fn))
        inner = self.inference.nested_scopes.get(id(fn))
        if signature is None or inner is None:
            raise self.unsupported(fn, f"nested function '{fn.name}' without a signature")
        outer = self.scope
        owner = f"{outer.owner}.{fn.name}"
        ownership = analyze_function(self.inference, inner, owner, fn.params, fn.body)
        self.parent.report_problems(ownership)

        child = outer.child(owner, inner, ownership, signature.returns)
        params = [
            self.parent.param(param.name, param_type, ownership)
            for param, param_type in zip(fn.params, signature.params)
        ]
        body, _ = self.parent.lower_body(fn.body, child, [param.name for param in fn.params])
        outer.closures[fn.name] = ClosureInfo(fn.name, signature, ownership)

        returns = None
        if not isinstance(signature.returns, UnitType):
            returns = rust_type(signature.returns)
        return [
            RS_Closure(rust_ident(fn.name), params, returns, body, ty=signature, source_ast=fn)
        ]
