"""Ownership, mutability and declaration analysis for one function body.

Runs before a function is lowered. Every binding owned by the function's
scope gets a marker:

* array parameters that are never reassigned and never returned are
  *borrowed* (passed as ``&ArrayN<T>``); scalars are passed by value;
* ``b = a`` on arrays, where ``b`` is only read, makes ``b`` a *borrowed*
  alias (``let b = &a;``);
* bindings captured by a nested function are *shared*;
* everything else is *owned*.

The same pass decides which bindings need ``mut`` and which must be
declared at the top of the function because they are used outside the
block that first assigns them. Patterns whose Rust rendering would change
the program's meaning are collected in ``problems``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from serpent.src.ast.base import ASTNode, walk
from serpent.src.ast.expressions import (
    Attribute,
    Call,
    Expr,
    Name,
    Slice,
    Subscript,
    TupleExpr,
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
    Param,
    Return,
    Statement,
    While,
)
from serpent.src.ir.nodes import BORROWED, OWNED, SHARED
from serpent.src.semantic.analyzer import InferenceResult
from serpent.src.semantic.symbol_table import Scope
from serpent.src.semantic.type_system import ArrayType

# Event kinds
SITE = "site"
AUGMENTED = "augmented"
ELEMENT = "element"
READ = "read"
RETURNED = "returned"
CAPTURED = "captured"

IN_PLACE = (AUGMENTED, ELEMENT)


@dataclass
class _Event:
    order: int
    name: str
    kind: str
    stmt: Statement
    node: ASTNode
    path: Tuple[int, ...]
    in_loop: bool
    loop: Optional[For] = None  # enclosing loop that binds ``name`` as its target


@dataclass
class OwnershipInfo:
    """Result of analysing one function body."""

    owner: str
    params: List[str] = field(default_factory=list)
    markers: Dict[str, str] = field(default_factory=dict)
    mutable: Set[str] = field(default_factory=set)
    hoisted: Dict[str, Statement] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    problems: List[Tuple[ASTNode, str]] = field(default_factory=list)

    def marker(self, name: str) -> str:
        return self.markers.get(name, OWNED)

    def param_markers(self) -> List[str]:
        return [self.marker(name) for name in self.params]


def root_name(expr: Expr) -> Optional[str]:
    """Name at the base of ``a``, ``a[i]``, ``a[i][j]`` or ``a.T``."""
    while isinstance(expr, (Subscript, Attribute)):
        expr = expr.value
    return expr.id if isinstance(expr, Name) else None


def _prefix(path: Tuple[int, ...], other: Tuple[int, ...]) -> bool:
    return other[: len(path)] == path


class OwnershipAnalyzer:
    """Collects binding events for a function and derives its OwnershipInfo."""

    def __init__(self, inference: InferenceResult, scope: Scope) -> None:
        self.inference = inference
        self.scope = scope
        self._events: List[_Event] = []
        self._order = 0
        self._loop_spans: List[Tuple[For, int, int]] = []
        self._views: Dict[int, Tuple[str, str, bool]] = {}
        self._info: Optional[OwnershipInfo] = None

    def analyze(
        self, owner: str, params: Iterable[ASTNode], body: List[Statement]
    ) -> OwnershipInfo:
        info = OwnershipInfo(owner, [p.name for p in params if isinstance(p, Param)])
        self._info = info
        self._scan_block(body, (id(body),), (), 0)

        for name in info.params:
            self._classify_param(name)
        for name in self._local_names():
            self._classify_local(name, body)
        self._check_loop_targets()
        for name, first in list(info.hoisted.items()):
            self._check_definite(name, first, body)
        return info

    # ------------------------------------------------------------------
    # Event collection

    def _tracked(self, name: str) -> bool:
        return self.scope.lookup_local(name) is not None

    def _record(
        self,
        name: str,
        kind: str,
        stmt: Statement,
        node: ASTNode,
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
    ) -> None:
        if not self._tracked(name):
            return
        binding_loop = next(
            (loop for loop in reversed(loops) if loop.target.id == name), None
        )
        self._events.append(
            _Event(self._order, name, kind, stmt, node, path, bool(loops), binding_loop)
        )

    def _reads(
        self,
        expr: Optional[ASTNode],
        stmt: Statement,
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
    ) -> None:
        if expr is None:
            return
        for node in walk(expr):
            if isinstance(node, Name):
                self._record(node.id, READ, stmt, node, path, loops)

    def _scan_block(
        self,
        body: List[Statement],
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
        depth: int,
    ) -> None:
        for stmt in body:
            self._order += 1
            self._scan_stmt(stmt, path, loops, depth)

    def _scan_stmt(
        self,
        stmt: Statement,
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
        depth: int,
    ) -> None:
        if isinstance(stmt, (Assign, AnnAssign)):
            self._reads(stmt.value, stmt, path, loops)
            self._scan_target(stmt.target, stmt, path, loops)
            if isinstance(stmt.target, Name):
                self._note_view(stmt)
        elif isinstance(stmt, AugAssign):
            self._reads(stmt.value, stmt, path, loops)
            target = stmt.target
            if isinstance(target, Name):
                self._record(target.id, AUGMENTED, stmt, target, path, loops)
            else:
                self._scan_element_target(target, AUGMENTED, stmt, path, loops)
        elif isinstance(stmt, Return):
            self._reads(stmt.value, stmt, path, loops)
            values = stmt.value.elts if isinstance(stmt.value, TupleExpr) else [stmt.value]
            for value in values:
                if isinstance(value, Name):
                    self._record(value.id, RETURNED, stmt, value, path, loops)
        elif isinstance(stmt, ExprStmt):
            self._reads(stmt.value, stmt, path, loops)
        elif isinstance(stmt, If):
            self._reads(stmt.test, stmt, path, loops)
            self._scan_block(stmt.body, path + (id(stmt.body),), loops, depth)
            self._scan_block(stmt.orelse, path + (id(stmt.orelse),), loops, depth)
        elif isinstance(stmt, For):
            self._reads(stmt.iter, stmt, path, loops)
            start = self._order
            self._scan_block(stmt.body, path + (id(stmt.body),), loops + (stmt,), depth + 1)
            self._loop_spans.append((stmt, start, self._order))
        elif isinstance(stmt, While):
            self._reads(stmt.test, stmt, path, loops)
            # A while loop binds nothing, but still counts as a loop
            marker = For(Name("<while>"), stmt.test, [])
            self._scan_block(stmt.body, path + (id(stmt.body),), loops + (marker,), depth + 1)
        elif isinstance(stmt, FunctionDef):
            for name in sorted(self._captured_by(stmt)):
                self._record(name, CAPTURED, stmt, stmt, path, loops)

    def _scan_target(
        self,
        target: Expr,
        stmt: Statement,
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
    ) -> None:
        if isinstance(target, Name):
            self._record(target.id, SITE, stmt, target, path, loops)
        elif isinstance(target, TupleExpr):
            for element in target.elts:
                self._scan_target(element, stmt, path, loops)
        else:
            self._scan_element_target(target, ELEMENT, stmt, path, loops)

    def _scan_element_target(
        self,
        target: Expr,
        kind: str,
        stmt: Statement,
        path: Tuple[int, ...],
        loops: Tuple[For, ...],
    ) -> None:
        base = root_name(target)
        if base is not None:
            self._record(base, kind, stmt, target, path, loops)
        node = target
        while isinstance(node, Subscript):
            for index in node.indices:
                self._reads(index, stmt, path, loops)
            node = node.value

    def _captured_by(self, fn: FunctionDef) -> Set[str]:
        """Names of this scope read by ``fn`` or by functions nested in it."""
        names: Set[str] = set()
        for node in walk(fn):
            if isinstance(node, FunctionDef):
                for name in self.inference.captures.get(id(node), ()):
                    if self.scope.lookup_local(name) is not None:
                        names.add(name)
        return names

    def _note_view(self, stmt: Statement) -> None:
        """Remember ``b = a``, ``b = a[1:3]`` and ``b = a.T`` on arrays."""
        value = stmt.value
        source = None
        alias = False
        if isinstance(value, Name):
            source, alias = value.id, True
        elif isinstance(value, Attribute) and value.attr == "T":
            source = root_name(value.value)
        elif isinstance(value, Subscript):
            value_type = self.inference.type_of(value)
            if isinstance(value_type, ArrayType):
                source = root_name(value.value)
        if source is None or not isinstance(self.inference.type_of(value), ArrayType):
            return
        self._views[id(stmt)] = (stmt.target.id, source, alias)

    # ------------------------------------------------------------------
    # Classification

    def _events_for(self, name: str, *kinds: str) -> List[_Event]:
        return [
            e
            for e in self._events
            if e.name == name and e.loop is None and (not kinds or e.kind in kinds)
        ]

    def _local_names(self) -> List[str]:
        names: List[str] = []
        for event in self._events:
            if event.name not in names and event.name not in self._info.params:
                names.append(event.name)
        return names

    def _problem(self, node: ASTNode, construct: str) -> None:
        if all(existing is not node for existing, _ in self._info.problems):
            self._info.problems.append((node, construct))

    def _is_array(self, name: str) -> bool:
        binding = self.scope.lookup_local(name)
        return binding is not None and isinstance(binding.type, ArrayType)

    def _classify_param(self, name: str) -> None:
        info = self._info
        sites = self._events_for(name, SITE)
        in_place = self._events_for(name, *IN_PLACE)
        returned = self._events_for(name, RETURNED)
        if sites or in_place:
            info.mutable.add(name)
        self._check_captures(name)
        if not self._is_array(name):
            info.markers[name] = OWNED
            return
        rebound_at = sites[0].order if sites else None
        for event in in_place:
            if rebound_at is None or event.order <= rebound_at:
                self._problem(
                    event.node, f"in-place update of array parameter '{name}'"
                )
        info.markers[name] = OWNED if sites or returned else BORROWED

    def _classify_local(self, name: str, body: List[Statement]) -> None:
        info = self._info
        events = self._events_for(name)
        sites = [e for e in events if e.kind == SITE]
        if not sites:
            # Only bound as a loop target
            return
        first = sites[0]
        augmented = any(e.kind == AUGMENTED for e in events)
        element = any(e.kind == ELEMENT for e in events)

        hoisted = any(e.order < first.order for e in events) or (
            len(first.path) > 1 and any(not _prefix(first.path, e.path) for e in events)
        )
        if hoisted:
            info.hoisted[name] = first.stmt
        if (
            len(sites) > 1
            or augmented
            or element
            or (hoisted and any(e.in_loop for e in sites))
        ):
            info.mutable.add(name)

        captured = any(e.kind == CAPTURED for e in events)
        info.markers[name] = SHARED if captured else OWNED
        if captured:
            self._check_captures(name)

        view = self._views.get(id(first.stmt))
        for event in sites:
            entry = self._views.get(id(event.stmt))
            if entry is None or entry[0] != name:
                continue
            self._check_view(name, entry[1], event)
        if view is not None and view[2] and view[0] == name:
            self._maybe_alias(name, view[1], sites, events)

    def _in_place(self, name: str) -> bool:
        return bool(self._events_for(name, *IN_PLACE))

    def _check_view(self, name: str, source: str, event: _Event) -> None:
        if self._in_place(name) or self._in_place(source):
            self._problem(
                event.stmt,
                f"array '{name}' shares data with '{source}', which is updated in place",
            )

    def _maybe_alias(
        self, name: str, source: str, sites: List[_Event], events: List[_Event]
    ) -> None:
        info = self._info
        if len(sites) != 1 or name in info.hoisted:
            return
        if any(e.kind in (RETURNED, CAPTURED) + IN_PLACE for e in events):
            return
        if self.scope.lookup_local(source) is None or self._in_place(source):
            return
        if source in info.params:
            if self._events_for(source, SITE):
                return
        elif len(self._events_for(source, SITE)) > 1 or source in info.hoisted:
            return
        info.markers[name] = BORROWED
        info.aliases[name] = source

    def _check_captures(self, name: str) -> None:
        captures = self._events_for(name, CAPTURED)
        if not captures:
            return
        first = captures[0]
        for event in self._events_for(name, SITE, *IN_PLACE):
            if event.order > first.order:
                self._problem(
                    event.node,
                    f"'{name}' is captured by '{first.stmt.name}' and reassigned afterwards",
                )

    def _check_loop_targets(self) -> None:
        for loop, start, end in self._loop_spans:
            name = loop.target.id
            for event in self._events:
                if event.name != name or event.loop is not loop:
                    continue
                if event.kind in (SITE,) + IN_PLACE:
                    self._problem(
                        event.node, f"loop variable '{name}' is reassigned inside the loop"
                    )
            later = [
                e for e in self._events if e.name == name and e.order > end and e.loop is None
            ]
            if later and later[0].kind != SITE:
                self._problem(
                    later[0].node, f"loop variable '{name}' is used after the loop"
                )

    # ------------------------------------------------------------------
    # Definite assignment of hoisted declarations

    def _check_definite(self, name: str, first: Statement, body: List[Statement]) -> None:
        self._flow(name, body, False)

    def _flow(self, name: str, body: List[Statement], assigned: bool) -> Tuple[bool, bool]:
        """Walk ``body`` tracking whether ``name`` is assigned on every path.

        Returns (assigned afterwards, control never falls through).
        """
        for stmt in body:
            if isinstance(stmt, (Break, Continue)):
                return assigned, True
            if isinstance(stmt, Return):
                self._check_read(name, stmt.value, assigned)
                return assigned, True
            if isinstance(stmt, If):
                self._check_read(name, stmt.test, assigned)
                then_assigned, then_ends = self._flow(name, stmt.body, assigned)
                else_assigned, else_ends = self._flow(name, stmt.orelse, assigned)
                if then_ends and else_ends:
                    return assigned, True
                if then_ends:
                    assigned = else_assigned
                elif else_ends:
                    assigned = then_assigned
                else:
                    assigned = then_assigned and else_assigned
            elif isinstance(stmt, For):
                self._check_read(name, stmt.iter, assigned)
                if stmt.target.id != name:
                    self._flow(name, stmt.body, assigned)
            elif isinstance(stmt, While):
                self._check_read(name, stmt.test, assigned)
                self._flow(name, stmt.body, assigned)
            elif isinstance(stmt, FunctionDef):
                if not assigned and name in self._captured_by(stmt):
                    self._problem(stmt, f"'{name}' may be unbound when '{stmt.name}' is defined")
            elif isinstance(stmt, (Assign, AnnAssign, AugAssign, ExprStmt)):
                self._check_read(name, stmt.value, assigned)
                target = getattr(stmt, "target", None)
                if isinstance(stmt, AugAssign) or isinstance(target, Subscript):
                    if root_name(target) == name:
                        self._check_read(name, Name(name, target.line, target.column), assigned)
                if isinstance(target, Subscript):
                    self._check_read(name, target, assigned)
                if isinstance(stmt, (Assign, AnnAssign)) and name in _bound_names(target):
                    assigned = True
        return assigned, False

    def _check_read(self, name: str, expr: Optional[ASTNode], assigned: bool) -> None:
        if assigned or expr is None:
            return
        for node in walk(expr):
            if isinstance(node, Name) and node.id == name:
                self._problem(node, f"'{name}' may be unbound at this point")
                return


def _bound_names(target: Optional[Expr]) -> Set[str]:
    if isinstance(target, Name):
        return {target.id}
    if isinstance(target, TupleExpr):
        return {e.id for e in target.elts if isinstance(e, Name)}
    return set()


def analyze_function(
    inference: InferenceResult,
    scope: Scope,
    owner: str,
    params: Iterable[ASTNode],
    body: List[Statement],
) -> OwnershipInfo:
    return OwnershipAnalyzer(inference, scope).analyze(owner, params, body)
