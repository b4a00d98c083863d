from .expression_lowerer import ExpressionLowerer
from .intrinsics import LOWERING_RULES, IntrinsicCall, lookup_lowering
from .lowerer import LoweringResult, RustLowerer, StatementLowering
from .ownership import OwnershipInfo, analyze_function
from .scope import ClosureInfo, LoweringScope, rust_ident
from .statement_lowerer import StatementLowerer

"""Lowering subpackage exports."""


__all__ = [
    "ExpressionLowerer",
    "LOWERING_RULES",
    "IntrinsicCall",
    "lookup_lowering",
    "LoweringResult",
    "RustLowerer",
    "StatementLowering",
    "OwnershipInfo",
    "analyze_function",
    "ClosureInfo",
    "LoweringScope",
    "rust_ident",
    "StatementLowerer",
]
