from __future__ import annotations
from typing import List, Optional, Set, Tuple, TYPE_CHECKING
from .base import ASTNode
from .expressions import Compare, Expr

if TYPE_CHECKING:
    from serpent.src.common.exceptions import UnsupportedSyntaxError

"""Statement node definitions for the numeric Python subset."""


class Statement(ASTNode):
    """Base class for all statements."""

    pass


class Param(ASTNode):
    """Positional function parameter with an optional annotation."""

    def __init__(
        self,
        name: str,
        annotation: Optional[Expr] = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.name = name
        self.annotation = annotation


class FunctionDef(Statement):
    """def name(params) -> returns: body"""

    def __init__(
        self,
        name: str,
        params: List[ASTNode],
        body: List[Statement],
        returns: Optional[Expr] = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.name = name
        self.params = params  # Param, or UnsupportedExpr for *args and friends
        self.body = body
        self.returns = returns


class Assign(Statement):
    """target = value"""

    def __init__(self, target: Expr, value: Expr, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.target = target
        self.value = value


class AnnAssign(Statement):
    """target: annotation = value"""

    def __init__(
        self,
        target: Expr,
        annotation: Expr,
        value: Optional[Expr] = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.target = target
        self.annotation = annotation
        self.value = value


class AugAssign(Statement):
    """target op= value"""

    def __init__(
        self, target: Expr, op: str, value: Expr, line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.target = target
        self.op = op  # binary operator without the trailing '='
        self.value = value


class Return(Statement):
    """return [value]"""

    def __init__(self, value: Optional[Expr] = None, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.value = value


class ExprStmt(Statement):
    """Expression evaluated for its side effects."""

    def __init__(self, value: Expr, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.value = value


class If(Statement):
    """if test: body else: orelse (elif chains nest in orelse)"""

    def __init__(
        self,
        test: Expr,
        body: List[Statement],
        orelse: List[Statement],
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.test = test
        self.body = body
        self.orelse = orelse


class For(Statement):
    """for target in iter: body"""

    def __init__(
        self,
        target: Expr,
        iter: Expr,
        body: List[Statement],
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.target = target
        self.iter = iter
        self.body = body


class While(Statement):
    """while test: body"""

    def __init__(
        self, test: Expr, body: List[Statement], line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.test = test
        self.body = body


class Pass(Statement):
    pass


class Break(Statement):
    pass


class Continue(Statement):
    pass


class Import(Statement):
    """import module [as alias], ..."""

    def __init__(
        self, names: List[Tuple[str, Optional[str]]], line: int = 0, column: int = 0
    ) -> None:
        super().__init__(line, column)
        self.names = names


class ImportFrom(Statement):
    """from [.]module import name [as alias], ...

    ``names`` is None for a star import.
    """

    def __init__(
        self,
        module: Optional[str],
        names: Optional[List[Tuple[str, Optional[str]]]],
        level: int = 0,
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.module = module
        self.names = names
        self.level = level


class Unsupported(Statement):
    """Well-formed statement outside the supported subset."""

    def __init__(self, construct: str, line: int = 0, column: int = 0) -> None:
        super().__init__(line, column)
        self.construct = construct


class Module(ASTNode):
    """Root of a parsed source file."""

    def __init__(
        self,
        body: List[Statement],
        line: int = 0,
        column: int = 0,
    ) -> None:
        super().__init__(line, column)
        self.body = body
        self._unsupported: List["UnsupportedSyntaxError"] = []
        self._blocked: Set[str] = set()

    @property
    def unsupported(self) -> List["UnsupportedSyntaxError"]:
        """One error per outermost unsupported construct, in source order."""
        return self._unsupported

    def is_blocked(self, owner: str) -> bool:
        """True when a top-level function (or "<module>") holds unsupported syntax."""
        return owner in self._blocked

    @property
    def functions(self) -> List[FunctionDef]:
        return [stmt for stmt in self.body if isinstance(stmt, FunctionDef)]


def is_main_guard(stmt: Statement) -> bool:
    """True for ``if __name__ == "__main__":`` without an else branch."""
    if not isinstance(stmt, If) or stmt.orelse:
        return False
    test = stmt.test
    if not isinstance(test, Compare) or test.ops != ["=="] or len(test.comparators) != 1:
        return False
    left, right = test.left, test.comparators[0]
    return (
        getattr(left, "id", None) == "__name__"
        and getattr(right, "kind", None) == "str"
        and right.value == "__main__"
    )
