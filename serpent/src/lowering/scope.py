"""Per-function lowering state and Rust identifier helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from serpent.src.common.constants import RUST_KEYWORDS, RUST_NON_RAW_KEYWORDS
from serpent.src.ir.nodes import OWNED
from serpent.src.semantic.symbol_table import Binding, Scope
from serpent.src.semantic.type_system import FunctionType, Type
from .ownership import OwnershipInfo

_SNAKE_CASE = re.compile(r"^_*[a-z0-9]+(_+[a-z0-9]+)*_*$")
_UPPER_CASE = re.compile(r"^_*[A-Z0-9]+(_+[A-Z0-9]+)*_*$")


def rust_ident(name: str) -> str:
    """Spell a source name as a Rust identifier."""
    if name in RUST_NON_RAW_KEYWORDS:
        return f"{name}_"
    if name in RUST_KEYWORDS:
        return f"r#{name}"
    return name


def is_snake_case(name: str) -> bool:
    return bool(_SNAKE_CASE.match(name)) or name == "_"


def is_upper_case(name: str) -> bool:
    return bool(_UPPER_CASE.match(name))


@dataclass
class ClosureInfo:
    """What callers of a nested function need to know."""

    name: str
    signature: FunctionType
    ownership: OwnershipInfo


class LoweringScope:
    """State of the function being lowered.

    Wraps the inference scope of the function together with its ownership
    analysis. Lowering rules read it, and add to ``declared`` as ``let``
    statements are produced.
    """

    def __init__(
        self,
        owner: str,
        scope: Scope,
        ownership: OwnershipInfo,
        returns: Optional[Type] = None,
        parent: Optional["LoweringScope"] = None,
    ) -> None:
        self.owner = owner
        self.scope = scope
        self.ownership = ownership
        self.returns = returns
        self.parent = parent
        self.declared: Set[str] = set()
        self.closures: Dict[str, ClosureInfo] = {}
        self._source_names = self._collect_names(scope)

    @staticmethod
    def _collect_names(scope: Scope) -> Set[str]:
        names: Set[str] = set()
        pending: List[Scope] = [scope]
        current: Optional[Scope] = scope.parent
        while current is not None:
            names.update(current.bindings)
            current = current.parent
        while pending:
            item = pending.pop()
            names.update(item.bindings)
            pending.extend(item.children)
        return names

    def child(
        self, owner: str, scope: Scope, ownership: OwnershipInfo, returns: Optional[Type]
    ) -> "LoweringScope":
        return LoweringScope(owner, scope, ownership, returns, parent=self)

    def binding(self, name: str) -> Optional[Binding]:
        return self.scope.lookup(name)

    def _scope_for(self, name: str) -> Optional["LoweringScope"]:
        owner = self.scope.owner_of(name)
        current: Optional[LoweringScope] = self
        while current is not None:
            if current.scope is owner:
                return current
            current = current.parent
        return None

    def marker(self, name: str) -> str:
        """Ownership marker of the binding ``name`` resolves to."""
        holder = self._scope_for(name)
        if holder is None:
            return OWNED
        return holder.ownership.markers.get(name, OWNED)

    def closure(self, name: str) -> Optional[ClosureInfo]:
        current: Optional[LoweringScope] = self
        while current is not None:
            if name in current.closures:
                return current.closures[name]
            current = current.parent
        return None

    def fresh(self, base: str) -> str:
        """Closure parameter name that shadows no source binding."""
        name = base
        while name in self._source_names:
            name += "_"
        return name

    def __repr__(self) -> str:
        return f"LoweringScope({self.owner!r})"
