"""Source AST node definitions for the numeric Python subset."""

from .base import (
    ASTNode,
    format_ast,
    iter_child_nodes,
    walk,
)
from .expressions import (
    Expr,
    BinaryOp,
    UnaryOp,
    BoolOp,
    Compare,
    IfExp,
    Keyword,
    Call,
    Name,
    Literal,
    Slice,
    Subscript,
    Attribute,
    ListExpr,
    TupleExpr,
    UnsupportedExpr,
)
from .statements import (
    Statement,
    Param,
    FunctionDef,
    Assign,
    AnnAssign,
    AugAssign,
    Return,
    ExprStmt,
    If,
    For,
    While,
    Pass,
    Break,
    Continue,
    Import,
    ImportFrom,
    Unsupported,
    Module,
)

__all__ = [
    # Base classes
    "ASTNode",
    "format_ast",
    "iter_child_nodes",
    "walk",
    # Expressions
    "Expr",
    "BinaryOp",
    "UnaryOp",
    "BoolOp",
    "Compare",
    "IfExp",
    "Keyword",
    "Call",
    "Name",
    "Literal",
    "Slice",
    "Subscript",
    "Attribute",
    "ListExpr",
    "TupleExpr",
    "UnsupportedExpr",
    # Statements
    "Statement",
    "Param",
    "FunctionDef",
    "Assign",
    "AnnAssign",
    "AugAssign",
    "Return",
    "ExprStmt",
    "If",
    "For",
    "While",
    "Pass",
    "Break",
    "Continue",
    "Import",
    "ImportFrom",
    "Unsupported",
    "Module",
]
