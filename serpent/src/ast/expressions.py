from __future__ import annotations
from typing import Any, List, Optional
from .base import ASTNode

"""Expression node definitions for the numeric Python subset."""


class Expr(ASTNode):
    """Base class for all expressions."""

    def __init__(
        self, line: int = 0, column: int = 0, raw_text: Optional[str] = None
    ) -> None:
        super().__init__(line, column, raw_text=raw_text)


class BinaryOp(Expr):
    """Binary operation: left op right"""

    def __init__(
        self, op: str, left: "Expr", right: "Expr", line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.op = op  # +, -, *, /, //, %, **, @
        self.left = left
        self.right = right


class UnaryOp(Expr):
    """Unary operation: op operand"""

    def __init__(
        self, op: str, operand: "Expr", line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.op = op  # -, +, not
        self.operand = operand


class BoolOp(Expr):
    """Short-circuit boolean operation over two or more values."""

    def __init__(
        self, op: str, values: List["Expr"], line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.op = op  # and, or
        self.values = values


class Compare(Expr):
    """Comparison chain: left op0 comparators[0] op1 comparators[1] ..."""

    def __init__(
        self,
        left: "Expr",
        ops: List[str],
        comparators: List["Expr"],
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.left = left
        self.ops = ops
        self.comparators = comparators


class IfExp(Expr):
    """Conditional expression: body if test else orelse"""

    def __init__(
        self,
        test: "Expr",
        body: "Expr",
        orelse: "Expr",
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.test = test
        self.body = body
        self.orelse = orelse


class Keyword(ASTNode):
    """Keyword argument in a call: arg=value"""

    def __init__(self, arg: str, value: "Expr", line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.arg = arg
        self.value = value


class Call(Expr):
    """Function call: func(args..., keywords...)"""

    def __init__(
        self,
        func: "Expr",
        args: List["Expr"],
        keywords: Optional[List[Keyword]] = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.func = func
        self.args = args
        self.keywords = keywords or []


class Name(Expr):
    """Reference to a binding."""

    def __init__(self, id: str, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.id = id


class Literal(Expr):
    """Constant value. ``kind`` is one of int, float, bool, str, none."""

    def __init__(
        self,
        value: Any,
        kind: str,
        line: int = 0,
        column: int = 0,
        raw_text: Optional[str] = None,
    ) -> None:
        super().__init__(line, column, raw_text=raw_text)
        self.value = value
        self.kind = kind


class Slice(ASTNode):
    """Slice inside a subscript: lower:upper:step

    Not an expression on its own; it only describes part of a Subscript.
    """

    def __init__(
        self,
        lower: Optional["Expr"] = None,
        upper: Optional["Expr"] = None,
        step: Optional["Expr"] = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.lower = lower
        self.upper = upper
        self.step = step


class Subscript(Expr):
    """Indexing: value[indices]; one entry per comma-separated index."""

    def __init__(
        self, value: "Expr", indices: List["Expr"], line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.value = value
        self.indices = indices


class Attribute(Expr):
    """Attribute access: value.attr"""

    def __init__(self, value: "Expr", attr: str, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.value = value
        self.attr = attr


class ListExpr(Expr):
    """List display: [elts]"""

    def __init__(self, elts: List["Expr"], line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.elts = elts


class TupleExpr(Expr):
    """Tuple display: (elts)"""

    def __init__(self, elts: List["Expr"], line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.elts = elts


class UnsupportedExpr(Expr):
    """Well-formed expression outside the supported subset.

    Children are not kept, so nothing inside the construct is analysed or
    reported again.
    """

    def __init__(self, construct: str, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.construct = construct
