"""
Typed source AST to Rust target AST lowering.

This module holds the facade that coordinates the statement and expression
lowerers for one module. The facade owns everything the helpers share: the
inference result, the diagnostics collector, the current LoweringScope and
the statement map read by the Step Inspector.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from serpent.src.ast.statements import FunctionDef, Module, Statement
from serpent.src.common.constants import DEFAULT_CONFIG, STAGE_LOWERING, CompilerConfig
from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.common.source_location import SourceLocation
from serpent.src.ir.nodes import (
    BORROWED,
    RS_Closure,
    RS_Const,
    RS_ForIter,
    RS_ForRange,
    RS_Function,
    RS_Let,
    RS_LetTuple,
    RS_Module,
    RS_Param,
    RS_Use,
    RSItem,
    RSStmt,
    walk_rs,
)
from serpent.src.semantic.analyzer import MAIN_SCOPE, InferenceResult, is_docstring
from serpent.src.semantic.type_system import ArrayType, Type, UnitType, rust_type

from .expression_lowerer import ExpressionLowerer
from .ownership import OwnershipInfo, analyze_function
from .scope import LoweringScope, is_snake_case, is_upper_case, rust_ident
from .statement_lowerer import StatementLowerer

logger = logging.getLogger(__name__)

PRELUDE = "ndarray::prelude::*"
ALLOW_NON_SNAKE_CASE = "allow(non_snake_case)"
ALLOW_NON_UPPER_CASE_GLOBALS = "allow(non_upper_case_globals)"


@dataclass
class StatementLowering:
    """The Rust statements one source statement lowered to."""

    source: Statement
    owner: str
    nodes: List[RSStmt] = field(default_factory=list)


@dataclass
class LoweringResult:
    rs_module: RS_Module
    unsupported: List[UnsupportedSyntaxError] = field(default_factory=list)
    statement_map: Dict[int, StatementLowering] = field(default_factory=dict)
    functions: Dict[str, RS_Function] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.unsupported


class RustLowerer:
    """Facade that coordinates the specialised lowering helpers."""

    def __init__(
        self,
        inference: InferenceResult,
        diagnostics: ProgramDiagnostics,
        config: CompilerConfig = DEFAULT_CONFIG,
    ):
        self.inference = inference
        self.diagnostics = diagnostics
        self.diagnostics.default_stage = STAGE_LOWERING
        self.config = config

        self.scope: Optional[LoweringScope] = None
        self.errors: List[UnsupportedSyntaxError] = []
        self.statement_map: Dict[int, StatementLowering] = {}
        self._reported: set = set()
        self._ownership: Dict[str, OwnershipInfo] = {}

        self.expr_lowerer = ExpressionLowerer(self)
        self.stmt_lowerer = StatementLowerer(self)

    # ------------------------------------------------------------------
    # Error handling shared by the helpers

    def unsupported(self, node, construct: str) -> UnsupportedSyntaxError:
        return UnsupportedSyntaxError(
            construct, SourceLocation.from_node(node), stage=STAGE_LOWERING
        )

    def report(self, error: UnsupportedSyntaxError) -> None:
        """Record a gap once, however many rules run into it."""
        key = (error.source_file, error.line, error.column, error.construct)
        if key in self._reported:
            return
        self._reported.add(key)
        self.errors.append(error)
        self.diagnostics.report(error)

    def report_problems(self, ownership: OwnershipInfo) -> None:
        for node, construct in ownership.problems:
            self.report(self.unsupported(node, construct))

    def record(self, stmt: Statement, nodes: List[RSStmt]) -> None:
        owner = self.scope.owner if self.scope is not None else MAIN_SCOPE
        entry = self.statement_map.get(id(stmt))
        if entry is None:
            self.statement_map[id(stmt)] = StatementLowering(stmt, owner, list(nodes))
        else:
            entry.nodes.extend(nodes)

    # ------------------------------------------------------------------
    # Functions

    def ownership_for(self, name: str) -> OwnershipInfo:
        """Ownership analysis of a top-level function, computed once."""
        if name not in self._ownership:
            binding = self.inference.module_scope.lookup_local(name)
            fn = binding.defined_at if binding is not None else None
            scope = self.inference.function_scopes.get(name)
            if not isinstance(fn, FunctionDef) or scope is None:
                raise UnsupportedSyntaxError(f"call of unknown function '{name}'", stage=STAGE_LOWERING)
            self._ownership[name] = analyze_function(
                self.inference, scope, name, fn.params, fn.body
            )
        return self._ownership[name]

    def param(self, name: str, ty: Type, ownership: OwnershipInfo) -> RS_Param:
        marker = ownership.marker(name)
        type_text = rust_type(ty)
        if marker == BORROWED and isinstance(ty, ArrayType):
            type_text = f"&{type_text}"
        return RS_Param(
            rust_ident(name), type_text, ty, marker, mutable=name in ownership.mutable
        )

    def lower_body(
        self, body: List[Statement], scope: LoweringScope, params: List[str]
    ) -> Tuple[List[RSStmt], Optional[str]]:
        """Lower a function body inside ``scope``.

        Returns the statements, led by the declarations of hoisted names,
        and the docstring.
        """
        previous = self.scope
        self.scope = scope
        scope.declared.update(params)
        doc = None
        if body and is_docstring(body[0]):
            doc = body[0].value.value
            body = body[1:]
        try:
            declarations: List[RSStmt] = []
            for name, first in scope.ownership.hoisted.items():
                binding = scope.scope.lookup_local(name)
                declaration = RS_Let(
                    rust_ident(name),
                    rust_type(binding.type),
                    None,
                    mutable=name in scope.ownership.mutable,
                    ty=binding.type,
                    source_ast=first,
                )
                scope.declared.add(name)
                declarations.append(declaration)
            statements = self.stmt_lowerer.lower_block(body)
            for declaration in declarations:
                entry = self.statement_map.get(id(declaration.source_ast))
                if entry is not None:
                    entry.nodes.insert(0, declaration)
        finally:
            self.scope = previous
        return declarations + statements, doc

    def lower_function(self, fn: FunctionDef) -> RS_Function:
        name = fn.name
        signature = self.inference.function_types.get(name)
        scope = self.inference.function_scopes.get(name)
        if signature is None or scope is None:
            raise self.unsupported(fn, f"function '{name}' has no inferred signature")
        ownership = self.ownership_for(name)
        self.report_problems(ownership)

        lowering_scope = LoweringScope(name, scope, ownership, signature.returns)
        params = [
            self.param(param.name, param_type, ownership)
            for param, param_type in zip(fn.params, signature.params)
        ]
        body, doc = self.lower_body(
            fn.body, lowering_scope, [param.name for param in fn.params]
        )
        returns = None
        if not isinstance(signature.returns, UnitType):
            returns = rust_type(signature.returns)
        logger.debug("Lowered %s (%d statements)", name, len(body))
        return RS_Function(rust_ident(name), params, returns, body, doc=doc, source_ast=fn)

    def lower_main(self) -> RS_Function:
        """The module-level statements as ``pub fn main()``."""
        scope = self.inference.function_scopes[MAIN_SCOPE]
        body = self.inference.main_body
        ownership = analyze_function(self.inference, scope, MAIN_SCOPE, [], body)
        self.report_problems(ownership)
        lowering_scope = LoweringScope(MAIN_SCOPE, scope, ownership)
        statements, _ = self.lower_body(body, lowering_scope, [])
        return RS_Function("main", [], None, statements)

    # ------------------------------------------------------------------
    # Module

    def lower_constant(self, stmt: Statement) -> RS_Const:
        name = stmt.target.id
        ty = self.inference.constants[name]
        value = self.expr_lowerer.lower_expr(stmt.value)
        value = self.expr_lowerer.cast_scalar(value, ty.kind)
        constant = RS_Const(name, rust_type(ty), value, ty, source_ast=stmt)
        self.record(stmt, [constant])
        return constant

    def lower_module(self, module: Module) -> LoweringResult:
        items: List[RSItem] = []
        functions: Dict[str, RS_Function] = {}
        doc = None
        if module.body and is_docstring(module.body[0]):
            doc = module.body[0].value.value

        for stmt in module.body:
            if id(stmt) in self.inference.constant_statements:
                try:
                    items.append(self.lower_constant(stmt))
                except UnsupportedSyntaxError as error:
                    self.report(error)

        for fn in module.functions:
            if module.is_blocked(fn.name) or self.inference.is_failed(fn.name):
                continue
            try:
                function = self.lower_function(fn)
            except UnsupportedSyntaxError as error:
                self.report(error)
                continue
            functions[fn.name] = function
            items.append(function)

        if self.inference.has_entry_point and not self.inference.is_failed(MAIN_SCOPE):
            main = self.lower_main()
            functions[MAIN_SCOPE] = main
            items.append(main)

        rs_module = RS_Module(items, doc=doc)
        if self._uses_arrays(items):
            rs_module.uses.append(RS_Use(PRELUDE))
        rs_module.attributes.extend(self._lint_attributes(items))
        return LoweringResult(rs_module, list(self.errors), self.statement_map, functions)

    @staticmethod
    def _uses_arrays(items: List[RSItem]) -> bool:
        for item in items:
            for node in walk_rs(item):
                if isinstance(node.ty, ArrayType):
                    return True
                if "Array" in (getattr(node, "type_text", None) or ""):
                    return True
        return False

    @staticmethod
    def _lint_attributes(items: List[RSItem]) -> List[str]:
        local_names: List[str] = []
        global_names: List[str] = []
        for item in items:
            for node in walk_rs(item):
                if isinstance(node, RS_Const):
                    global_names.append(node.name)
                elif isinstance(node, (RS_Function, RS_Closure, RS_Let, RS_Param)):
                    local_names.append(node.name)
                elif isinstance(node, RS_LetTuple):
                    local_names.extend(name for name, _ in node.names)
                elif isinstance(node, (RS_ForRange, RS_ForIter)):
                    local_names.append(node.var)
        attributes = []
        if not all(is_snake_case(_plain(name)) for name in local_names):
            attributes.append(ALLOW_NON_SNAKE_CASE)
        if not all(is_upper_case(_plain(name)) for name in global_names):
            attributes.append(ALLOW_NON_UPPER_CASE_GLOBALS)
        return attributes


def _plain(name: str) -> str:
    """Identifier without its raw prefix."""
    return name[2:] if name.startswith("r#") else name
