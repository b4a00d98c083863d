from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from serpent.src.ast.base import ASTNode
from serpent.src.common.exceptions import (
    CONFLICTING_SHAPE,
    CONFLICTING_TYPE,
    InferenceError,
)
from serpent.src.common.source_location import SourceLocation
from .type_system import ArrayType, Type, is_compatible, same_rust_type

"""Scoped inference environment."""


class BindingKind(Enum):
    """What a name refers to."""

    VARIABLE = "variable"
    PARAMETER = "parameter"
    LOOP_VARIABLE = "loop_variable"
    CONSTANT = "constant"
    FUNCTION = "function"
    IMPORT = "import"


@dataclass
class Binding:
    """Inference environment entry.

    ``target`` is only set for imports and holds the qualified name the
    binding stands for, e.g. ``numpy`` or ``numpy.sqrt``.
    """

    name: str
    type: Optional[Type]
    kind: BindingKind
    defined_at: Optional[ASTNode] = None
    assignments: List[ASTNode] = field(default_factory=list)
    target: Optional[str] = None


def conflict_reason(existing: Type, new: Type) -> str:
    """Pick the reason for two descriptors that cannot share one binding."""
    if isinstance(existing, ArrayType) != isinstance(new, ArrayType):
        return CONFLICTING_SHAPE
    if isinstance(existing, ArrayType) and isinstance(new, ArrayType):
        if existing.element is not new.element:
            return CONFLICTING_TYPE
        return CONFLICTING_SHAPE
    return CONFLICTING_TYPE


class Scope:
    """Lexical scope: module, function, or nested function."""

    def __init__(self, name: str, parent: Optional["Scope"] = None) -> None:
        self.name = name
        self.parent = parent
        self.bindings: Dict[str, Binding] = {}
        self.children: List["Scope"] = []

    def define(
        self,
        name: str,
        type_: Optional[Type],
        kind: BindingKind,
        node: Optional[ASTNode] = None,
    ) -> Binding:
        """Create a binding, or record another assignment to an existing one.

        Raises InferenceError when the name already exists in this scope with
        a descriptor the new one does not match.
        """
        existing = self.bindings.get(name)
        if existing is None:
            binding = Binding(name, type_, kind, node)
            if node is not None:
                binding.assignments.append(node)
            self.bindings[name] = binding
            return binding

        if existing.type is not None and type_ is not None:
            if not (is_compatible(existing.type, type_) and same_rust_type(existing.type, type_)):
                raise InferenceError(
                    conflict_reason(existing.type, type_),
                    binding=name,
                    detail=f"bound to {existing.type}, reassigned with {type_}",
                    location=SourceLocation.from_node(node),
                )
        if node is not None:
            existing.assignments.append(node)
        return existing

    def lookup(self, name: str) -> Optional[Binding]:
        """Look up a binding by name, searching parent scopes as needed."""
        if name in self.bindings:
            return self.bindings[name]
        if self.parent:
            return self.parent.lookup(name)
        return None

    def lookup_local(self, name: str) -> Optional[Binding]:
        return self.bindings.get(name)

    def owner_of(self, name: str) -> Optional["Scope"]:
        """Scope that holds the binding ``name`` resolves to."""
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def create_child_scope(self, name: str) -> "Scope":
        child = Scope(name, parent=self)
        self.children.append(child)
        return child

    def __repr__(self) -> str:
        return f"Scope({self.name!r}, {sorted(self.bindings)})"
