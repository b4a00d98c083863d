"""Type and shape inference."""

from .analyzer import (
    ENTRY_POINT,
    MAIN_SCOPE,
    CallTarget,
    InferenceResult,
    TypeInferencer,
    find_module_constants,
    module_main_body,
)
from .call_graph import build_call_graph, strongly_connected_components
from .symbol_table import Binding, BindingKind, Scope
from .type_system import (
    ArrayType,
    FunctionType,
    ScalarKind,
    ScalarType,
    StrType,
    TupleType,
    Type,
    UnitType,
    assignable,
    combine,
    is_compatible,
    parse_type_hint,
    rust_type,
    widen,
)

__all__ = [
    "TypeInferencer",
    "InferenceResult",
    "CallTarget",
    "MAIN_SCOPE",
    "ENTRY_POINT",
    "find_module_constants",
    "module_main_body",
    "build_call_graph",
    "strongly_connected_components",
    "Binding",
    "BindingKind",
    "Scope",
    "ArrayType",
    "FunctionType",
    "ScalarKind",
    "ScalarType",
    "StrType",
    "TupleType",
    "Type",
    "UnitType",
    "assignable",
    "combine",
    "is_compatible",
    "parse_type_hint",
    "rust_type",
    "widen",
]
