"""Type and shape inference for the numeric Python subset."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from serpent.src.ast.base import ASTNode, walk
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
    Module,
    Param,
    Pass,
    Return,
    Statement,
    While,
    is_main_guard,
)
from serpent.src.common.constants import DEFAULT_CONFIG, STAGE_INFERENCE, CompilerConfig
from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.common.exceptions import (
    CONFLICTING_SHAPE,
    CONFLICTING_TYPE,
    UNRESOLVABLE_TYPE,
    UNSUPPORTED_INTRINSIC,
    InferenceError,
)
from serpent.src.common.remap import RemapConfig
from serpent.src.common.source_location import SourceLocation
from .call_graph import build_call_graph, is_recursive, strongly_connected_components
from .intrinsics import (
    ARRAY_METHODS,
    BUILTIN_NAMES,
    BUILTINS,
    DTYPE_NAMES,
    NUMPY,
    TYPED_MODULES,
    literal_int,
    lookup_constant,
    lookup_intrinsic,
)
from .symbol_table import Binding, BindingKind, Scope, conflict_reason
from .type_system import (
    BOOL,
    I64,
    STR,
    UNIT,
    ArrayType,
    FunctionType,
    SCALAR_ALIASES,
    ScalarKind,
    ScalarType,
    TupleType,
    Type,
    UnitType,
    assignable,
    combine,
    element_kind,
    parse_type_hint,
    widen,
)

logger = logging.getLogger(__name__)

MAIN_SCOPE = "<module>"
ENTRY_POINT = "main"


@dataclass
class CallTarget:
    """What a call resolved to.

    ``kind`` is "intrinsic", "function" (top-level user function) or
    "closure" (nested function). Array method calls resolve to the numpy
    intrinsic of the same name, with ``receiver`` holding the array.
    """

    kind: str
    name: str
    module: Optional[str] = None
    receiver: Optional[Expr] = None

    def arguments(self, call: Call) -> List[Expr]:
        if self.receiver is not None:
            return [self.receiver] + list(call.args)
        return list(call.args)


@dataclass
class InferenceResult:
    """Everything later stages need from inference, keyed by node identity."""

    expr_types: Dict[int, Type] = field(default_factory=dict)
    function_types: Dict[str, FunctionType] = field(default_factory=dict)
    function_scopes: Dict[str, Scope] = field(default_factory=dict)
    errors: List[InferenceError] = field(default_factory=list)
    failed_functions: Set[str] = field(default_factory=set)
    module_scope: Scope = field(default_factory=lambda: Scope(MAIN_SCOPE))
    call_targets: Dict[int, CallTarget] = field(default_factory=dict)
    constants: Dict[str, Type] = field(default_factory=dict)
    constant_statements: Set[int] = field(default_factory=set)
    main_body: List[Statement] = field(default_factory=list)
    nested_types: Dict[int, FunctionType] = field(default_factory=dict)
    nested_scopes: Dict[int, Scope] = field(default_factory=dict)
    captures: Dict[int, Set[str]] = field(default_factory=dict)
    has_entry_point: bool = False

    def type_of(self, node: ASTNode) -> Optional[Type]:
        return self.expr_types.get(id(node))

    def is_failed(self, name: str) -> bool:
        return name in self.failed_functions

    @property
    def ok(self) -> bool:
        return not self.errors and not self.failed_functions


@dataclass
class _FunctionContext:
    owner: str
    scope: Scope
    node: Optional[FunctionDef]
    declared_return: Optional[Type] = None
    returns: List[Tuple[Type, Return]] = field(default_factory=list)


def is_docstring(stmt: Statement) -> bool:
    return (
        isinstance(stmt, ExprStmt)
        and isinstance(stmt.value, Literal)
        and stmt.value.kind == "str"
    )


def _is_constant_value(expr: Expr) -> bool:
    if isinstance(expr, Literal):
        return expr.kind in ("int", "float", "bool")
    if isinstance(expr, UnaryOp) and expr.op in ("-", "+"):
        return isinstance(expr.operand, Literal) and expr.operand.kind in ("int", "float")
    return False


def _assigned_names(stmt: Statement) -> List[str]:
    names: List[str] = []
    for node in walk(stmt):
        if isinstance(node, FunctionDef):
            continue
        target = None
        if isinstance(node, (Assign, AnnAssign, AugAssign)):
            target = node.target
        elif isinstance(node, For):
            target = node.target
        if isinstance(target, Name):
            names.append(target.id)
        elif isinstance(target, TupleExpr):
            names.extend(e.id for e in target.elts if isinstance(e, Name))
    return names


def find_module_constants(module: Module) -> Dict[str, Statement]:
    """Module-level names bound exactly once to a numeric literal."""
    counts: Counter = Counter()
    for stmt in module.body:
        if not isinstance(stmt, FunctionDef):
            counts.update(_assigned_names(stmt))
    constants: Dict[str, Statement] = {}
    for stmt in module.body:
        if isinstance(stmt, (Assign, AnnAssign)) and isinstance(stmt.target, Name):
            if stmt.value is not None and _is_constant_value(stmt.value):
                if counts[stmt.target.id] == 1:
                    constants[stmt.target.id] = stmt
    return constants


def module_main_body(module: Module, constant_ids: Set[int]) -> List[Statement]:
    """Module-level statements that run in the generated entry point."""
    body: List[Statement] = []
    for index, stmt in enumerate(module.body):
        if index == 0 and is_docstring(stmt):
            continue
        if isinstance(stmt, (FunctionDef, Import, ImportFrom)) or id(stmt) in constant_ids:
            continue
        if is_main_guard(stmt):
            body.extend(stmt.body)
            continue
        body.append(stmt)
    return body


def always_returns(body: List[Statement]) -> bool:
    """True when every path through ``body`` ends in a return."""
    for stmt in body:
        if isinstance(stmt, Return):
            return True
        if isinstance(stmt, If) and stmt.orelse:
            if always_returns(stmt.body) and always_returns(stmt.orelse):
                return True
    return False


class TypeInferencer:
    """Assigns a Type Descriptor to every expression of a module.

    Functions are processed callees-first. A failure inside a function is
    recorded once (the first error) and fails only that function and its
    callers; sibling functions continue.
    """

    def __init__(
        self,
        diagnostics: ProgramDiagnostics,
        hints: Optional[RemapConfig] = None,
        config: CompilerConfig = DEFAULT_CONFIG,
        module_name: Optional[str] = None,
    ):
        self.diagnostics = diagnostics
        self.diagnostics.default_stage = STAGE_INFERENCE
        self.hints = hints
        self.config = config
        self.module_name = module_name
        self.result = InferenceResult()
        self._signatures: Dict[str, Tuple[Tuple[Type, ...], Optional[Type]]] = {}
        self._functions: Dict[str, FunctionDef] = {}
        self._context: Optional[_FunctionContext] = None
        self._float_kind = SCALAR_ALIASES[config.default_float]
        self._int_kind = SCALAR_ALIASES[config.default_int]

        self._expr_handlers: Dict[type, Callable[[Expr], Type]] = {
            Literal: self._infer_literal,
            Name: self._infer_name,
            BinaryOp: self._infer_binary,
            UnaryOp: self._infer_unary,
            BoolOp: self._infer_bool_op,
            Compare: self._infer_compare,
            IfExp: self._infer_if_exp,
            Call: self._infer_call,
            Subscript: self._infer_subscript,
            Attribute: self._infer_attribute,
            ListExpr: self._infer_list,
            TupleExpr: self._infer_tuple,
        }
        self._stmt_handlers: Dict[type, Callable[[Statement], None]] = {
            Assign: self._infer_assign,
            AnnAssign: self._infer_ann_assign,
            AugAssign: self._infer_aug_assign,
            Return: self._infer_return,
            ExprStmt: self._infer_expr_stmt,
            If: self._infer_if,
            For: self._infer_for,
            While: self._infer_while,
            FunctionDef: self._infer_nested_function,
            Import: self._infer_import,
            ImportFrom: self._infer_import,
            Pass: self._skip,
            Break: self._skip,
            Continue: self._skip,
        }

    # ------------------------------------------------------------------
    # Module

    def infer_module(self, module: Module) -> InferenceResult:
        result = self.result
        module_scope = result.module_scope

        for stmt in module.body:
            if isinstance(stmt, (Import, ImportFrom)):
                self._define_imports(module_scope, stmt)

        constants = find_module_constants(module)
        for name, stmt in constants.items():
            self._infer_constant(module_scope, name, stmt)

        for fn in module.functions:
            self._declare_function(module, fn)

        graph = build_call_graph(module)
        for component in strongly_connected_components(graph):
            if is_recursive(component, graph):
                missing = [n for n in component if self._signatures.get(n, ((), None))[1] is None]
                if missing:
                    cycle = ", ".join(component)
                    for name in component:
                        if name in missing:
                            self._fail(
                                name,
                                InferenceError(
                                    UNRESOLVABLE_TYPE,
                                    binding=name,
                                    detail=f"recursive call cycle ({cycle}) needs return annotations",
                                    location=SourceLocation.from_node(self._functions.get(name)),
                                ),
                            )
            for name in component:
                if name in self._functions and not result.is_failed(name):
                    self._infer_function(self._functions[name])

        result.main_body = module_main_body(module, result.constant_statements)
        self._infer_main(module)
        return result

    def _define_imports(self, scope: Scope, stmt: Statement) -> None:
        if isinstance(stmt, Import):
            for name, alias in stmt.names:
                if alias is not None:
                    scope.define(alias, None, BindingKind.IMPORT, stmt).target = name
                else:
                    # ``import numpy.linalg`` binds ``numpy``
                    root = name.split(".")[0]
                    scope.define(root, None, BindingKind.IMPORT, stmt).target = root
        elif isinstance(stmt, ImportFrom) and stmt.names is not None:
            prefix = "." * stmt.level + (stmt.module or "")
            for name, alias in stmt.names:
                qualified = f"{prefix}.{name}" if stmt.module else f"{prefix}{name}"
                scope.define(alias or name, None, BindingKind.IMPORT, stmt).target = qualified

    def _infer_constant(self, scope: Scope, name: str, stmt: Statement) -> None:
        self._context = _FunctionContext(MAIN_SCOPE, scope, None)
        try:
            value_type = self.infer(stmt.value)
            if isinstance(stmt, AnnAssign):
                declared = self._annotation_type(stmt.annotation)
                self._check_assignable(declared, value_type, stmt, name)
                value_type = declared
            scope.define(name, value_type, BindingKind.CONSTANT, stmt)
            self.result.expr_types[id(stmt.target)] = value_type
            self.result.constants[name] = value_type
            self.result.constant_statements.add(id(stmt))
        except InferenceError as error:
            self._fail(MAIN_SCOPE, self._locate(error, stmt, name))
        finally:
            self._context = None

    def _declare_function(self, module: Module, fn: FunctionDef) -> None:
        if fn.name in self._functions:
            self._fail(
                fn.name,
                InferenceError(
                    UNRESOLVABLE_TYPE,
                    binding=fn.name,
                    detail="function is defined more than once",
                    location=SourceLocation.from_node(fn),
                ),
            )
            return
        self._functions[fn.name] = fn
        binding = self.result.module_scope.define(fn.name, None, BindingKind.FUNCTION, fn)
        if module.is_blocked(fn.name):
            # Already reported as unsupported syntax
            self.result.failed_functions.add(fn.name)
            return
        try:
            params, returns = self._signature(fn, self._hints_for(fn.name))
        except InferenceError as error:
            self._fail(fn.name, self._locate(error, fn, fn.name))
            return
        self._signatures[fn.name] = (params, returns)
        if returns is not None:
            binding.type = FunctionType(params, returns)

    def _hints_for(self, function_name: str) -> Dict[str, str]:
        if self.hints is None:
            return {}
        return self.hints.hints_for(self.module_name, function_name)

    def _signature(
        self, fn: FunctionDef, hints: Dict[str, str]
    ) -> Tuple[Tuple[Type, ...], Optional[Type]]:
        params: List[Type] = []
        for param in fn.params:
            if not isinstance(param, Param):
                raise InferenceError(UNRESOLVABLE_TYPE, detail="unsupported parameter form")
            if param.annotation is not None:
                params.append(self._annotation_type(param.annotation))
            elif param.name in hints:
                params.append(self._hint_type(hints[param.name], param.name))
            else:
                params.append(ScalarType(self._float_kind))
        returns: Optional[Type] = None
        if fn.returns is not None:
            returns = self._annotation_type(fn.returns)
        elif "return" in hints:
            returns = self._hint_type(hints["return"], "return")
        return tuple(params), returns

    def _hint_type(self, text: str, name: str) -> Type:
        try:
            return parse_type_hint(text)
        except ValueError as exc:
            raise InferenceError(UNRESOLVABLE_TYPE, binding=name, detail=str(exc)) from None

    def _annotation_type(self, node: Expr) -> Type:
        if isinstance(node, Name):
            if node.id in ("float", "int", "bool"):
                return ScalarType(SCALAR_ALIASES[node.id])
        elif isinstance(node, Literal):
            if node.kind == "none":
                return UNIT
            if node.kind == "str":
                return self._hint_type(node.value, "annotation")
        elif isinstance(node, Attribute):
            module = self._import_target(node.value)
            if module == NUMPY:
                if node.attr in DTYPE_NAMES:
                    return ScalarType(DTYPE_NAMES[node.attr])
                if node.attr == "ndarray":
                    return ArrayType(ScalarKind.F64, self.config.default_array_rank)
        elif isinstance(node, Subscript) and isinstance(node.value, Name):
            if node.value.id in ("tuple", "Tuple"):
                return TupleType(tuple(self._annotation_type(i) for i in node.indices))
        raise InferenceError(
            UNRESOLVABLE_TYPE,
            detail=f"unsupported annotation '{node.raw_text or type(node).__name__}'",
            location=SourceLocation.from_node(node),
        )

    # ------------------------------------------------------------------
    # Functions

    def _infer_function(self, fn: FunctionDef) -> None:
        params, declared = self._signatures[fn.name]
        scope = self.result.module_scope.create_child_scope(fn.name)
        self.result.function_scopes[fn.name] = scope
        for param, param_type in zip(fn.params, params):
            scope.define(param.name, param_type, BindingKind.PARAMETER, param)

        self._context = _FunctionContext(fn.name, scope, fn, declared)
        try:
            self._infer_block(fn.body)
            returns = self._finish_returns(self._context, fn)
        except InferenceError as error:
            self._fail(fn.name, self._locate(error, fn))
            return
        finally:
            self._context = None

        signature = FunctionType(params, returns)
        self.result.function_types[fn.name] = signature
        self.result.module_scope.lookup_local(fn.name).type = signature
        logger.debug("Inferred %s: %s", fn.name, signature)

    def _finish_returns(self, context: _FunctionContext, fn: FunctionDef) -> Type:
        values = [(t, stmt) for t, stmt in context.returns if not isinstance(t, UnitType)]
        if context.declared_return is not None:
            returns = context.declared_return
        elif not values:
            returns = UNIT
        else:
            returns = values[0][0]
            for value_type, stmt in values[1:]:
                if assignable(returns, value_type):
                    continue
                if assignable(value_type, returns):
                    returns = value_type
                    continue
                raise InferenceError(
                    conflict_reason(returns, value_type),
                    binding=fn.name,
                    detail=f"returns both {returns} and {value_type}",
                    location=SourceLocation.from_node(stmt),
                )
            if len(values) != len(context.returns):
                bare = next(stmt for t, stmt in context.returns if isinstance(t, UnitType))
                raise InferenceError(
                    CONFLICTING_TYPE,
                    binding=fn.name,
                    detail="some paths return a value and some do not",
                    location=SourceLocation.from_node(bare),
                )
        if not isinstance(returns, UnitType) and not always_returns(fn.body):
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                binding=fn.name,
                detail="not every path returns a value",
                location=SourceLocation.from_node(fn),
            )
        return returns

    def _infer_main(self, module: Module) -> None:
        body = self.result.main_body
        if not body:
            return
        if module.is_blocked(MAIN_SCOPE):
            self.result.failed_functions.add(MAIN_SCOPE)
            return
        self.result.has_entry_point = True
        if ENTRY_POINT in self._functions:
            fn = self._functions[ENTRY_POINT]
            if len(body) == 1 and self._is_entry_call(body[0]) and not fn.params:
                # ``if __name__ == "__main__": main()`` keeps the user's main
                self.result.has_entry_point = False
                return
            self._fail(
                MAIN_SCOPE,
                InferenceError(
                    UNRESOLVABLE_TYPE,
                    binding=ENTRY_POINT,
                    detail="module-level code clashes with the function 'main'",
                    location=SourceLocation.from_node(body[0]),
                ),
            )
            return
        scope = self.result.module_scope.create_child_scope(MAIN_SCOPE)
        self.result.function_scopes[MAIN_SCOPE] = scope
        self._context = _FunctionContext(MAIN_SCOPE, scope, None)
        try:
            self._infer_block(body)
        except InferenceError as error:
            self._fail(MAIN_SCOPE, error)
        finally:
            self._context = None

    @staticmethod
    def _is_entry_call(stmt: Statement) -> bool:
        return (
            isinstance(stmt, ExprStmt)
            and isinstance(stmt.value, Call)
            and isinstance(stmt.value.func, Name)
            and stmt.value.func.id == ENTRY_POINT
            and not stmt.value.args
        )

    def _fail(self, name: str, error: InferenceError) -> None:
        if name in self.result.failed_functions:
            return
        self.result.failed_functions.add(name)
        self.result.errors.append(error)
        logger.debug("Inference failed for %s: %s", name, error)
        self.diagnostics.report(error)

    def _locate(
        self, error: InferenceError, node: Optional[ASTNode], binding: Optional[str] = None
    ) -> InferenceError:
        """Attach a position to an error raised without one."""
        if error.location is not None and error.line > 0:
            return error
        return InferenceError(
            error.reason,
            binding=error.binding or binding,
            detail=error.detail,
            location=SourceLocation.from_node(node),
        )

    # ------------------------------------------------------------------
    # Statements

    def _infer_block(self, body: List[Statement]) -> None:
        for index, stmt in enumerate(body):
            handler = self._stmt_handlers.get(type(stmt))
            if handler is None:
                raise InferenceError(
                    UNRESOLVABLE_TYPE,
                    detail=f"no typing rule for {type(stmt).__name__}",
                    location=SourceLocation.from_node(stmt),
                )
            handler(stmt)

    def _skip(self, stmt: Statement) -> None:
        pass

    def _bind(
        self,
        name: str,
        value_type: Type,
        stmt: ASTNode,
        kind: BindingKind = BindingKind.VARIABLE,
    ) -> Type:
        scope = self._context.scope
        if isinstance(value_type, (UnitType, FunctionType)) or value_type == STR:
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                binding=name,
                detail=f"cannot bind a value of type {value_type}",
                location=SourceLocation.from_node(stmt),
            )
        existing = scope.lookup_local(name)
        if existing is not None and existing.kind in (BindingKind.FUNCTION, BindingKind.IMPORT):
            raise InferenceError(
                CONFLICTING_TYPE,
                binding=name,
                detail=f"rebinds a {existing.kind.value}",
                location=SourceLocation.from_node(stmt),
            )
        if existing is not None and existing.type is not None:
            if assignable(existing.type, value_type):
                existing.assignments.append(stmt)
                return existing.type
        binding = scope.define(name, value_type, kind, stmt)
        return binding.type

    def _check_assignable(
        self, expected: Type, actual: Type, node: ASTNode, binding: Optional[str]
    ) -> None:
        if not assignable(expected, actual):
            raise InferenceError(
                conflict_reason(expected, actual),
                binding=binding,
                detail=f"expected {expected}, got {actual}",
                location=SourceLocation.from_node(node),
            )

    def _infer_assign(self, stmt: Assign) -> None:
        value_type = self.infer(stmt.value)
        target = stmt.target
        if isinstance(target, Name):
            bound = self._bind(target.id, value_type, stmt)
            self.result.expr_types[id(target)] = bound
        elif isinstance(target, TupleExpr):
            if not isinstance(value_type, TupleType) or len(value_type.elements) != len(target.elts):
                raise InferenceError(
                    CONFLICTING_SHAPE,
                    detail=f"cannot unpack {value_type} into {len(target.elts)} names",
                    location=SourceLocation.from_node(stmt),
                )
            bound_types = []
            for element, element_type in zip(target.elts, value_type.elements):
                bound = self._bind(element.id, element_type, stmt)
                self.result.expr_types[id(element)] = bound
                bound_types.append(bound)
            self.result.expr_types[id(target)] = TupleType(tuple(bound_types))
        elif isinstance(target, Subscript):
            slot = self.infer(target)
            self._require_local_base(target)
            if isinstance(slot, ArrayType) and isinstance(value_type, ScalarType):
                # Filling a slice with a scalar
                self._check_assignable(ScalarType(slot.element), value_type, stmt, None)
            else:
                self._check_assignable(slot, value_type, stmt, None)
        else:
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                detail="unsupported assignment target",
                location=SourceLocation.from_node(target),
            )

    def _require_local_base(self, target: Subscript) -> None:
        base = target.value
        if isinstance(base, Name) and self._context.scope.lookup_local(base.id) is None:
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                binding=base.id,
                detail="element assignment to a binding of an enclosing scope",
                location=SourceLocation.from_node(target),
            )

    def _infer_ann_assign(self, stmt: AnnAssign) -> None:
        declared = self._annotation_type(stmt.annotation)
        value_type = self.infer(stmt.value)
        self._check_assignable(declared, value_type, stmt, stmt.target.id)
        scope = self._context.scope
        existing = scope.lookup_local(stmt.target.id)
        if existing is not None and existing.type is not None and not assignable(existing.type, declared):
            raise InferenceError(
                conflict_reason(existing.type, declared),
                binding=stmt.target.id,
                detail=f"bound to {existing.type}, annotated as {declared}",
                location=SourceLocation.from_node(stmt),
            )
        bound = self._bind(stmt.target.id, declared, stmt)
        self.result.expr_types[id(stmt.target)] = bound

    def _infer_aug_assign(self, stmt: AugAssign) -> None:
        target = stmt.target
        if isinstance(target, Name) and self._context.scope.lookup_local(target.id) is None:
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                binding=target.id,
                detail="augmented assignment before the name is bound in this scope",
                location=SourceLocation.from_node(stmt),
            )
        if isinstance(target, Subscript):
            self._require_local_base(target)
        target_type = self.infer(target)
        value_type = self.infer(stmt.value)
        result = self._combine(stmt.op, target_type, value_type, stmt)
        name = target.id if isinstance(target, Name) else None
        if not assignable(target_type, result):
            raise InferenceError(
                conflict_reason(target_type, result),
                binding=name,
                detail=f"'{stmt.op}=' turns {target_type} into {result}",
                location=SourceLocation.from_node(stmt),
            )
        if name is not None:
            self._context.scope.lookup_local(name).assignments.append(stmt)

    def _infer_return(self, stmt: Return) -> None:
        context = self._context
        if stmt.value is None or (isinstance(stmt.value, Literal) and stmt.value.kind == "none"):
            if stmt.value is not None:
                self.result.expr_types[id(stmt.value)] = UNIT
            value_type: Type = UNIT
        else:
            value_type = self.infer(stmt.value)
        if context.declared_return is not None:
            name = context.node.name if context.node else None
            self._check_assignable(context.declared_return, value_type, stmt, name)
        context.returns.append((value_type, stmt))

    def _infer_expr_stmt(self, stmt: ExprStmt) -> None:
        self.infer(stmt.value)

    def _infer_if(self, stmt: If) -> None:
        self._require_bool(stmt.test)
        self._infer_block(stmt.body)
        self._infer_block(stmt.orelse)

    def _infer_while(self, stmt: While) -> None:
        self._require_bool(stmt.test)
        self._infer_block(stmt.body)

    def _infer_for(self, stmt: For) -> None:
        iterable = stmt.iter
        target = stmt.target
        if isinstance(iterable, Call) and self._is_builtin(iterable.func, "range"):
            if not 1 <= len(iterable.args) <= 3:
                raise InferenceError(
                    UNSUPPORTED_INTRINSIC,
                    binding="range",
                    detail=f"range() takes 1 to 3 arguments, got {len(iterable.args)}",
                    location=SourceLocation.from_node(iterable),
                )
            kinds = []
            for arg in iterable.args:
                arg_type = self.infer(arg)
                if not (isinstance(arg_type, ScalarType) and arg_type.kind.is_int):
                    raise InferenceError(
                        CONFLICTING_TYPE,
                        detail=f"range() needs integer arguments, got {arg_type}",
                        location=SourceLocation.from_node(arg),
                    )
                kinds.append(arg_type.kind)
            kind = kinds[0]
            for other in kinds[1:]:
                kind = widen(kind, other)
            values = [literal_int(arg) for arg in iterable.args]
            length = None
            if all(v is not None for v in values) and not (len(values) == 3 and values[2] == 0):
                length = len(range(*values))
            self.result.expr_types[id(iterable)] = ArrayType(kind, 1, (length,))
            self.result.call_targets[id(iterable)] = CallTarget("intrinsic", "range", BUILTINS)
            element: Type = ScalarType(kind)
        else:
            iter_type = self.infer(iterable)
            if not isinstance(iter_type, ArrayType):
                raise InferenceError(
                    CONFLICTING_TYPE,
                    detail=f"cannot iterate over {iter_type}",
                    location=SourceLocation.from_node(iterable),
                )
            if iter_type.rank != 1:
                raise InferenceError(
                    CONFLICTING_SHAPE,
                    detail=f"only rank-1 arrays can be iterated, got {iter_type}",
                    location=SourceLocation.from_node(iterable),
                )
            element = ScalarType(iter_type.element)
        bound = self._bind(target.id, element, stmt, BindingKind.LOOP_VARIABLE)
        self.result.expr_types[id(target)] = bound
        self._infer_block(stmt.body)

    def _infer_import(self, stmt: Statement) -> None:
        self._define_imports(self._context.scope, stmt)

    def _infer_nested_function(self, fn: FunctionDef) -> None:
        outer = self._context
        params, declared = self._signature(fn, {})
        scope = outer.scope.create_child_scope(f"{outer.scope.name}.{fn.name}")
        for param, param_type in zip(fn.params, params):
            scope.define(param.name, param_type, BindingKind.PARAMETER, param)
        inner = _FunctionContext(outer.owner, scope, fn, declared)
        self._context = inner
        try:
            self._infer_block(fn.body)
            returns = self._finish_returns(inner, fn)
        finally:
            self._context = outer
        signature = FunctionType(params, returns)
        self.result.nested_types[id(fn)] = signature
        self.result.nested_scopes[id(fn)] = scope
        self.result.captures.setdefault(id(fn), set())
        binding = outer.scope.define(fn.name, None, BindingKind.FUNCTION, fn)
        binding.type = signature

    def _require_bool(self, expr: Expr) -> None:
        test_type = self.infer(expr)
        if test_type != BOOL:
            raise InferenceError(
                CONFLICTING_TYPE,
                detail=f"condition must be a bool, got {test_type}",
                location=SourceLocation.from_node(expr),
            )

    # ------------------------------------------------------------------
    # Expressions

    def infer(self, expr: Expr) -> Type:
        """Infer and record the descriptor of ``expr``."""
        handler = self._expr_handlers.get(type(expr))
        if handler is None:
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                detail=f"no typing rule for {getattr(expr, 'construct', type(expr).__name__)}",
                location=SourceLocation.from_node(expr),
            )
        try:
            result = handler(expr)
        except InferenceError as error:
            raise self._locate(error, expr) from None
        self.result.expr_types[id(expr)] = result
        return result

    def _combine(self, op: str, left: Type, right: Type, node: ASTNode) -> Type:
        try:
            return combine(op, left, right)
        except InferenceError as error:
            raise self._locate(error, node) from None

    def _infer_literal(self, expr: Literal) -> Type:
        if expr.kind == "int":
            return ScalarType(self._int_kind)
        if expr.kind == "float":
            return ScalarType(self._float_kind)
        if expr.kind == "bool":
            return BOOL
        if expr.kind == "str":
            return STR
        return UNIT

    def _infer_name(self, expr: Name) -> Type:
        binding = self._context.scope.lookup(expr.id)
        if binding is None:
            detail = "name is not defined"
            if expr.id in BUILTIN_NAMES:
                detail = "builtin used as a value"
            raise InferenceError(UNRESOLVABLE_TYPE, binding=expr.id, detail=detail)
        if binding.kind is BindingKind.IMPORT:
            raise InferenceError(
                UNRESOLVABLE_TYPE, binding=expr.id, detail="module used as a value"
            )
        if binding.kind is BindingKind.FUNCTION:
            raise InferenceError(
                UNRESOLVABLE_TYPE, binding=expr.id, detail="functions cannot be used as values"
            )
        self._note_capture(expr.id)
        return binding.type

    def _note_capture(self, name: str) -> None:
        context = self._context
        if context.node is None or context.scope.parent is self.result.module_scope:
            return
        owner = context.scope.owner_of(name)
        if owner is not None and owner is not context.scope and owner is not self.result.module_scope:
            self.result.captures.setdefault(id(context.node), set()).add(name)

    def _infer_binary(self, expr: BinaryOp) -> Type:
        left = self.infer(expr.left)
        right = self.infer(expr.right)
        result = combine(expr.op, left, right)
        exponent = literal_int(expr.right)
        if expr.op == "**" and isinstance(result, ScalarType) and result.kind.is_int:
            if exponent is not None and exponent < 0:
                # 2 ** -1 is 0.5 in Python
                return ScalarType(ScalarKind.F64)
        return result

    def _infer_unary(self, expr: UnaryOp) -> Type:
        operand = self.infer(expr.operand)
        if expr.op == "not":
            if operand != BOOL:
                raise InferenceError(
                    CONFLICTING_TYPE, detail=f"'not' needs a bool operand, got {operand}"
                )
            return BOOL
        if not isinstance(operand, (ScalarType, ArrayType)):
            raise InferenceError(
                CONFLICTING_TYPE, detail=f"unary '{expr.op}' is not defined for {operand}"
            )
        if element_kind(operand).is_bool:
            if isinstance(operand, ArrayType):
                return ArrayType(ScalarKind.I64, operand.rank, operand.dims)
            return I64
        return operand

    def _infer_bool_op(self, expr: BoolOp) -> Type:
        for value in expr.values:
            value_type = self.infer(value)
            if value_type != BOOL:
                raise InferenceError(
                    CONFLICTING_TYPE,
                    detail=f"'{expr.op}' needs bool operands, got {value_type}",
                )
        return BOOL

    def _infer_compare(self, expr: Compare) -> Type:
        left = self.infer(expr.left)
        result: Type = BOOL
        for op, comparator in zip(expr.ops, expr.comparators):
            right = self.infer(comparator)
            result = combine(op, left, right)
            if len(expr.ops) > 1 and isinstance(result, ArrayType):
                raise InferenceError(
                    CONFLICTING_SHAPE, detail="chained comparisons need scalar operands"
                )
            left = right
        return result

    def _infer_if_exp(self, expr: IfExp) -> Type:
        self._require_bool(expr.test)
        body = self.infer(expr.body)
        orelse = self.infer(expr.orelse)
        if assignable(body, orelse):
            return body
        if assignable(orelse, body):
            return orelse
        raise InferenceError(
            conflict_reason(body, orelse),
            detail=f"branches have types {body} and {orelse}",
        )

    # Calls

    def _is_builtin(self, func: Expr, name: str) -> bool:
        return (
            isinstance(func, Name)
            and func.id == name
            and self._context.scope.lookup(name) is None
        )

    def _import_target(self, expr: Expr) -> Optional[str]:
        """Qualified module path for ``np`` or ``np.linalg``, else None."""
        if isinstance(expr, Name):
            scope = self._context.scope if self._context else self.result.module_scope
            binding = scope.lookup(expr.id)
            if binding is not None and binding.kind is BindingKind.IMPORT:
                return binding.target
            return None
        if isinstance(expr, Attribute):
            parent = self._import_target(expr.value)
            if parent is not None:
                return f"{parent}.{expr.attr}"
        return None

    def _infer_call(self, expr: Call) -> Type:
        func = expr.func
        if isinstance(func, Name):
            binding = self._context.scope.lookup(func.id)
            if binding is None:
                if func.id in BUILTIN_NAMES:
                    return self._call_intrinsic(expr, BUILTINS, func.id)
                raise InferenceError(UNRESOLVABLE_TYPE, binding=func.id, detail="name is not defined")
            if binding.kind is BindingKind.IMPORT:
                module, _, name = binding.target.rpartition(".")
                return self._call_imported(expr, module, name)
            if binding.kind is BindingKind.FUNCTION:
                return self._call_user(expr, binding)
            raise InferenceError(UNRESOLVABLE_TYPE, binding=func.id, detail="is not callable")

        if isinstance(func, Attribute):
            module = self._import_target(func.value)
            if module is not None:
                return self._call_imported(expr, module, func.attr)
            receiver = self.infer(func.value)
            if isinstance(receiver, ArrayType):
                if func.attr not in ARRAY_METHODS:
                    raise InferenceError(
                        UNSUPPORTED_INTRINSIC,
                        binding=f"ndarray.{func.attr}",
                        detail="array method has no typing rule",
                    )
                return self._call_intrinsic(expr, NUMPY, func.attr, receiver=func.value)
            raise InferenceError(
                UNRESOLVABLE_TYPE, detail=f"'{func.attr}' is not a method of {receiver}"
            )
        raise InferenceError(UNRESOLVABLE_TYPE, detail="unsupported call target")

    def _call_imported(self, expr: Call, module: str, name: str) -> Type:
        if module in TYPED_MODULES or module.split(".")[0] in TYPED_MODULES:
            return self._call_intrinsic(expr, module, name)
        raise InferenceError(
            UNRESOLVABLE_TYPE,
            binding=name,
            detail=f"calls into module '{module or name}' are not typed",
        )

    def _call_intrinsic(
        self, expr: Call, module: str, name: str, receiver: Optional[Expr] = None
    ) -> Type:
        target = CallTarget("intrinsic", name, module, receiver)
        arguments = target.arguments(expr)
        entry = lookup_intrinsic(module, name, len(arguments))
        arg_types = [
            self.result.expr_types[id(receiver)] if arg is receiver else self.infer(arg)
            for arg in arguments
        ]
        result = entry.rule(arg_types, arguments, name)
        self.result.call_targets[id(expr)] = target
        return result

    def _call_user(self, expr: Call, binding: Binding) -> Type:
        name = binding.name
        fn = binding.defined_at
        nested = id(fn) in self.result.nested_types
        if not nested:
            if self.result.is_failed(name):
                raise InferenceError(
                    UNRESOLVABLE_TYPE, detail=f"depends on failed function '{name}'"
                )
            params, declared = self._signatures[name]
            signature = self.result.function_types.get(name)
            returns = signature.returns if signature is not None else declared
            if returns is None:
                raise InferenceError(
                    UNRESOLVABLE_TYPE,
                    binding=name,
                    detail="return type is not known at this call",
                )
        else:
            signature = self.result.nested_types[id(fn)]
            params, returns = signature.params, signature.returns
        if len(expr.args) != len(params):
            raise InferenceError(
                UNRESOLVABLE_TYPE,
                binding=name,
                detail=f"takes {len(params)} argument(s), got {len(expr.args)}",
            )
        for arg, param_type in zip(expr.args, params):
            arg_type = self.infer(arg)
            self._check_assignable(param_type, arg_type, arg, name)
        self.result.call_targets[id(expr)] = CallTarget("closure" if nested else "function", name)
        return returns

    # Indexing and attributes

    def _infer_subscript(self, expr: Subscript) -> Type:
        value = self.infer(expr.value)
        if isinstance(value, TupleType):
            index = literal_int(expr.indices[0]) if len(expr.indices) == 1 else None
            if index is None or not -len(value.elements) <= index < len(value.elements):
                raise InferenceError(
                    UNRESOLVABLE_TYPE, detail="tuple index must be an in-range integer literal"
                )
            self.infer(expr.indices[0])
            return value.elements[index]
        if not isinstance(value, ArrayType):
            raise InferenceError(CONFLICTING_TYPE, detail=f"{value} is not indexable")
        if value.rank is None:
            raise InferenceError(
                UNRESOLVABLE_TYPE, detail="indexing needs an array of known rank"
            )
        if len(expr.indices) > value.rank:
            raise InferenceError(
                CONFLICTING_SHAPE,
                detail=f"{len(expr.indices)} indices for an array of rank {value.rank}",
            )
        dims: List[Optional[int]] = []
        for axis, index in enumerate(expr.indices):
            if isinstance(index, Slice):
                dims.append(self._slice_length(index, value.dim(axis)))
                continue
            index_type = self.infer(index)
            if not (isinstance(index_type, ScalarType) and index_type.kind.is_int):
                raise InferenceError(
                    CONFLICTING_TYPE, detail=f"array index must be an integer, got {index_type}"
                )
            bound = value.dim(axis)
            literal = literal_int(index)
            if literal is not None and bound is not None and not -bound <= literal < bound:
                raise InferenceError(
                    CONFLICTING_SHAPE, detail=f"index {literal} is out of bounds for axis of length {bound}"
                )
        dims.extend(value.dim(axis) for axis in range(len(expr.indices), value.rank))
        if not dims:
            return ScalarType(value.element)
        return ArrayType(value.element, len(dims), tuple(dims))

    def _slice_length(self, index: Slice, dim: Optional[int]) -> Optional[int]:
        for bound in (index.lower, index.upper):
            if bound is None:
                continue
            bound_type = self.infer(bound)
            if not (isinstance(bound_type, ScalarType) and bound_type.kind.is_int):
                raise InferenceError(
                    CONFLICTING_TYPE, detail=f"slice bounds must be integers, got {bound_type}"
                )
        if index.lower is None and index.upper is None:
            return dim
        lower = 0 if index.lower is None else literal_int(index.lower)
        upper = dim if index.upper is None else literal_int(index.upper)
        if lower is None or upper is None:
            return None
        if dim is None and (lower < 0 or upper < 0):
            return None
        return len(range(dim if dim is not None else max(lower, upper))[lower:upper])

    def _infer_attribute(self, expr: Attribute) -> Type:
        module = self._import_target(expr.value)
        if module is not None:
            return lookup_constant(module, expr.attr)
        value = self.infer(expr.value)
        if isinstance(value, ArrayType):
            if expr.attr == "shape":
                if value.rank is None:
                    raise InferenceError(
                        UNRESOLVABLE_TYPE, detail="shape of an array of unknown rank"
                    )
                return TupleType(tuple(I64 for _ in range(value.rank)))
            if expr.attr == "T":
                dims = tuple(reversed(value.dims)) if value.dims is not None else None
                return ArrayType(value.element, value.rank, dims)
            if expr.attr in ("size", "ndim"):
                return I64
        raise InferenceError(
            UNSUPPORTED_INTRINSIC,
            binding=f"{value}.{expr.attr}" if not isinstance(value, ArrayType) else f"ndarray.{expr.attr}",
            detail="attribute has no typing rule",
        )

    def _infer_list(self, expr: ListExpr) -> Type:
        if not expr.elts:
            raise InferenceError(
                UNRESOLVABLE_TYPE, detail="cannot infer the element type of an empty list"
            )
        element_types = [self.infer(e) for e in expr.elts]
        if all(isinstance(t, ScalarType) for t in element_types):
            kind = element_types[0].kind
            for t in element_types[1:]:
                kind = widen(kind, t.kind)
            return ArrayType(kind, 1, (len(expr.elts),))
        if all(isinstance(e, ListExpr) for e in expr.elts):
            first = element_types[0]
            kind = first.element
            dims = first.dims
            for t in element_types[1:]:
                if t.rank != first.rank or t.dims != first.dims:
                    raise InferenceError(CONFLICTING_SHAPE, detail="ragged nested list")
                kind = widen(kind, t.element)
            return ArrayType(kind, first.rank + 1, (len(expr.elts),) + tuple(dims))
        raise InferenceError(
            CONFLICTING_SHAPE,
            detail="list elements must all be numbers or all be nested lists",
        )

    def _infer_tuple(self, expr: TupleExpr) -> Type:
        return TupleType(tuple(self.infer(e) for e in expr.elts))
