"""Target (Rust) AST package."""

from .nodes import (
    BORROWED,
    OWNED,
    SHARED,
    RSNode,
    RSExpr,
    RSStmt,
    RSItem,
    RS_Module,
    RS_Use,
    RS_Const,
    RS_Param,
    RS_Function,
    RS_Let,
    RS_LetTuple,
    RS_Assign,
    RS_ExprStmt,
    RS_Return,
    RS_If,
    RS_ForRange,
    RS_ForIter,
    RS_While,
    RS_Break,
    RS_Continue,
    RS_Closure,
    RS_Ident,
    RS_Literal,
    RS_Binary,
    RS_Unary,
    RS_Cast,
    RS_Call,
    RS_MethodCall,
    RS_Index,
    RS_SliceMacro,
    RS_Range,
    RS_Macro,
    RS_Ref,
    RS_Deref,
    RS_Tuple,
    RS_List,
    RS_IfExpr,
    RS_Block,
    RS_FieldAccess,
    RS_Lambda,
    format_rust_ast,
    walk_rs,
)

__all__ = [
    "BORROWED",
    "OWNED",
    "SHARED",
    "RSNode",
    "RSExpr",
    "RSStmt",
    "RSItem",
    "RS_Module",
    "RS_Use",
    "RS_Const",
    "RS_Param",
    "RS_Function",
    "RS_Let",
    "RS_LetTuple",
    "RS_Assign",
    "RS_ExprStmt",
    "RS_Return",
    "RS_If",
    "RS_ForRange",
    "RS_ForIter",
    "RS_While",
    "RS_Break",
    "RS_Continue",
    "RS_Closure",
    "RS_Ident",
    "RS_Literal",
    "RS_Binary",
    "RS_Unary",
    "RS_Cast",
    "RS_Call",
    "RS_MethodCall",
    "RS_Index",
    "RS_SliceMacro",
    "RS_Range",
    "RS_Macro",
    "RS_Ref",
    "RS_Deref",
    "RS_Tuple",
    "RS_List",
    "RS_IfExpr",
    "RS_Block",
    "RS_FieldAccess",
    "RS_Lambda",
    "format_rust_ast",
    "walk_rs",
]
