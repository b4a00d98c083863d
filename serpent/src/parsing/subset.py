"""Detection of well-formed constructs that fall outside the supported subset."""

from __future__ import annotations

from typing import List, Optional

from serpent.src.ast.base import ASTNode, iter_child_nodes
from serpent.src.ast.expressions import (
    Attribute,
    Call,
    Keyword,
    ListExpr,
    Literal,
    Name,
    Slice,
    Subscript,
    TupleExpr,
    UnsupportedExpr,
)
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
    ImportFrom,
    Module,
    Param,
    Return,
    Statement,
    Unsupported,
    While,
    is_main_guard,
)
from serpent.src.common.constants import STAGE_PARSING
from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.common.source_location import SourceLocation

MODULE_SCOPE = "<module>"


class SubsetChecker:
    """Walks a parsed module and records one error per unsupported construct.

    Only the outermost occurrence is reported: once a node is flagged its
    subtree is not visited. Each error is attributed to the top-level
    function that contains it (or to module scope), and that owner is marked
    as blocked on the module.
    """

    def __init__(self, module: Module) -> None:
        self.module = module
        self.errors: List[UnsupportedSyntaxError] = []
        self._owner = MODULE_SCOPE
        self._loop_depth = 0
        self._function_depth = 0

    def check(self) -> List[UnsupportedSyntaxError]:
        self._check_body(self.module.body, docstring_allowed=True)
        self.module._unsupported = self.errors
        return self.errors

    def _flag(self, node: ASTNode, construct: str) -> None:
        error = UnsupportedSyntaxError(
            construct, SourceLocation.from_node(node), stage=STAGE_PARSING
        )
        self.errors.append(error)
        self.module._blocked.add(self._owner)

    # ------------------------------------------------------------------
    # Statements

    def _check_body(self, body: List[Statement], docstring_allowed: bool = False) -> None:
        for index, stmt in enumerate(body):
            if (
                docstring_allowed
                and index == 0
                and isinstance(stmt, ExprStmt)
                and isinstance(stmt.value, Literal)
                and stmt.value.kind == "str"
            ):
                continue
            self._check_stmt(stmt)

    def _check_stmt(self, stmt: Statement) -> None:
        if isinstance(stmt, Unsupported):
            self._flag(stmt, stmt.construct)
        elif isinstance(stmt, FunctionDef):
            self._check_function(stmt)
        elif isinstance(stmt, Assign):
            if not self._valid_target(stmt.target, allow_tuple=True):
                self._flag(stmt.target, self._target_construct(stmt.target))
                return
            self._check_expr(stmt.target)
            self._check_expr(stmt.value)
        elif isinstance(stmt, AnnAssign):
            if not isinstance(stmt.target, Name):
                self._flag(stmt.target, self._target_construct(stmt.target))
                return
            if stmt.value is None:
                self._flag(stmt, "annotation without value")
                return
            self._check_annotation(stmt.annotation)
            self._check_expr(stmt.value)
        elif isinstance(stmt, AugAssign):
            if not self._valid_target(stmt.target, allow_tuple=False):
                self._flag(stmt.target, self._target_construct(stmt.target))
                return
            if stmt.op in {"&", "|", "^", "<<", ">>"}:
                self._flag(stmt, f"augmented bitwise assignment '{stmt.op}='")
                return
            self._check_expr(stmt.target)
            self._check_expr(stmt.value)
        elif isinstance(stmt, Return):
            if self._function_depth == 0:
                self._flag(stmt, "return outside function")
            elif stmt.value is not None and not self._is_none(stmt.value):
                self._check_expr(stmt.value)
        elif isinstance(stmt, ExprStmt):
            self._check_expr(stmt.value)
        elif isinstance(stmt, If):
            if self._function_depth == 0 and is_main_guard(stmt):
                self._check_block(stmt.body)
                return
            self._check_expr(stmt.test)
            self._check_block(stmt.body)
            self._check_block(stmt.orelse)
        elif isinstance(stmt, For):
            if not isinstance(stmt.target, Name):
                self._flag(stmt.target, "tuple loop target")
                return
            self._check_expr(stmt.iter)
            self._check_loop(stmt.body)
        elif isinstance(stmt, While):
            self._check_expr(stmt.test)
            self._check_loop(stmt.body)
        elif isinstance(stmt, (Break, Continue)):
            if self._loop_depth == 0:
                self._flag(stmt, f"'{type(stmt).__name__.lower()}' outside loop")
        elif isinstance(stmt, ImportFrom):
            if stmt.names is None:
                self._flag(stmt, "star import")

    def _check_block(self, body: List[Statement]) -> None:
        for stmt in body:
            if isinstance(stmt, FunctionDef):
                self._flag(stmt, "function definition inside a block")
                continue
            self._check_stmt(stmt)

    def _check_loop(self, body: List[Statement]) -> None:
        self._loop_depth += 1
        try:
            self._check_block(body)
        finally:
            self._loop_depth -= 1

    def _check_function(self, fn: FunctionDef) -> None:
        outer_owner, outer_loops = self._owner, self._loop_depth
        if self._function_depth == 0:
            self._owner = fn.name
        self._function_depth += 1
        self._loop_depth = 0
        try:
            for param in fn.params:
                if isinstance(param, UnsupportedExpr):
                    self._flag(param, param.construct)
                elif isinstance(param, Param) and param.annotation is not None:
                    self._check_annotation(param.annotation)
            if fn.returns is not None:
                self._check_annotation(fn.returns)
            self._check_body(fn.body, docstring_allowed=True)
        finally:
            self._function_depth -= 1
            self._owner, self._loop_depth = outer_owner, outer_loops

    def _check_annotation(self, annotation: ASTNode) -> None:
        # String hints like "f64[:]" are validated during inference
        if isinstance(annotation, Literal) and annotation.kind in ("str", "none"):
            return
        self._check_expr(annotation)

    @staticmethod
    def _valid_target(target: ASTNode, allow_tuple: bool) -> bool:
        if isinstance(target, (Name, Subscript)):
            return True
        if allow_tuple and isinstance(target, TupleExpr):
            return bool(target.elts) and all(isinstance(e, Name) for e in target.elts)
        return False

    @staticmethod
    def _target_construct(target: ASTNode) -> str:
        if isinstance(target, UnsupportedExpr):
            return target.construct
        if isinstance(target, Attribute):
            return "attribute assignment"
        if isinstance(target, TupleExpr):
            return "nested or starred unpacking"
        return f"assignment to {type(target).__name__}"

    @staticmethod
    def _is_none(expr: ASTNode) -> bool:
        return isinstance(expr, Literal) and expr.kind == "none"

    # ------------------------------------------------------------------
    # Expressions

    def _check_expr(self, expr: Optional[ASTNode], parent: Optional[ASTNode] = None) -> None:
        if expr is None:
            return
        if isinstance(expr, UnsupportedExpr):
            self._flag(expr, expr.construct)
            return
        if isinstance(expr, Literal):
            if expr.kind == "str" and not self._is_print_arg(parent):
                self._flag(expr, "string literal")
            elif expr.kind == "none":
                self._flag(expr, "None literal")
            return
        if isinstance(expr, Call):
            for keyword in expr.keywords:
                self._flag(keyword, "keyword argument")
            self._check_expr(expr.func, expr)
            for arg in expr.args:
                self._check_expr(arg, expr)
            return
        if isinstance(expr, ListExpr):
            if not isinstance(parent, (Call, ListExpr)):
                self._flag(expr, "list display")
                return
        if isinstance(expr, Slice) and expr.step is not None:
            self._flag(expr, "slice step")
            return
        if isinstance(expr, Keyword):
            return
        for child in iter_child_nodes(expr):
            self._check_expr(child, expr)

    @staticmethod
    def _is_print_arg(parent: Optional[ASTNode]) -> bool:
        return (
            isinstance(parent, Call)
            and isinstance(parent.func, Name)
            and parent.func.id == "print"
        )
