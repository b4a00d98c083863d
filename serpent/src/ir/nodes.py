from __future__ import annotations
from abc import ABC
from typing import Any, Dict, Iterator, List, Optional, Tuple
from serpent.src.ast.base import ASTNode

"""Target (Rust) AST nodes produced by lowering and rendered by the emitter."""

OWNED = "owned"
BORROWED = "borrowed"
SHARED = "shared"
OWNERSHIP_MARKERS = (OWNED, BORROWED, SHARED)

# Attributes every node carries that are not part of its structure
META_FIELDS = ("ty", "ownership", "source_ast", "debug_metadata")


class RSNode(ABC):
    """Base class for all target AST nodes.

    ``ty`` is the Type Descriptor of the value the node produces (None for
    items and statements), ``ownership`` is one of owned/borrowed/shared.
    """

    def __init__(
        self,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
        ownership: str = OWNED,
    ) -> None:
        if ownership not in OWNERSHIP_MARKERS:
            raise ValueError(f"Unknown ownership marker: {ownership!r}")
        self.ty = ty
        self.source_ast = source_ast
        self.ownership = ownership
        self.debug_metadata: Dict[str, Any] = {}

    def __str__(self) -> str:  # pragma: no cover - debug helper
        return f"{self.__class__.__name__}({self.ty})"


class RSExpr(RSNode):
    """Base class for nodes that produce values."""

    pass


class RSStmt(RSNode):
    """Base class for statements."""

    pass


class RSItem(RSNode):
    """Base class for module items."""

    pass


# ---------------------------------------------------------------------------
# Items


class RS_Module(RSNode):
    def __init__(
        self,
        items: List[RSItem],
        uses: Optional[List["RS_Use"]] = None,
        attributes: Optional[List[str]] = None,
        doc: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.attributes = attributes or []  # inner attributes, e.g. allow(non_snake_case)
        self.doc = doc
        self.uses = uses or []
        self.items = items


class RS_Use(RSItem):
    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    def __str__(self) -> str:  # pragma: no cover - debug helper
        return f"RS_Use({self.path})"


class RS_Const(RSItem):
    def __init__(
        self,
        name: str,
        type_text: str,
        value: RSExpr,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.name = name
        self.type_text = type_text
        self.value = value


class RS_Param(RSNode):
    def __init__(
        self,
        name: str,
        type_text: str,
        ty: Any = None,
        ownership: str = OWNED,
        mutable: bool = False,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, ownership)
        self.name = name
        self.type_text = type_text
        self.mutable = mutable


class RS_Function(RSItem):
    def __init__(
        self,
        name: str,
        params: List[RS_Param],
        returns: Optional[str],
        body: List[RSStmt],
        is_pub: bool = True,
        doc: Optional[str] = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(None, source_ast)
        self.name = name
        self.params = params
        self.returns = returns  # rendered return type, None for ()
        self.body = body
        self.is_pub = is_pub
        self.doc = doc

    def __str__(self) -> str:  # pragma: no cover - debug helper
        params = ", ".join(f"{p.name}: {p.type_text}" for p in self.params)
        return f"RS_Function({self.name}({params}) -> {self.returns or '()'})"


# ---------------------------------------------------------------------------
# Statements


class RS_Let(RSStmt):
    """let [mut] name[: type] [= value];"""

    def __init__(
        self,
        name: str,
        type_text: Optional[str],
        value: Optional[RSExpr],
        mutable: bool = False,
        ty: Any = None,
        ownership: str = OWNED,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, ownership)
        self.name = name
        self.type_text = type_text
        self.value = value
        self.mutable = mutable


class RS_LetTuple(RSStmt):
    """let (a, mut b) = value;"""

    def __init__(
        self,
        names: List[Tuple[str, bool]],
        value: RSExpr,
        type_text: Optional[str] = None,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.names = names  # (name, mutable)
        self.type_text = type_text
        self.value = value


class RS_Assign(RSStmt):
    """target op value; where op is = or a compound operator."""

    def __init__(
        self,
        target: RSExpr,
        value: RSExpr,
        op: str = "=",
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(None, source_ast)
        self.target = target
        self.op = op
        self.value = value


class RS_ExprStmt(RSStmt):
    def __init__(self, expr: RSExpr, source_ast: Optional[ASTNode] = None) -> None:
        super().__init__(None, source_ast)
        self.expr = expr


class RS_Return(RSStmt):
    def __init__(
        self, value: Optional[RSExpr] = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(None, source_ast)
        self.value = value


class RS_If(RSStmt):
    def __init__(
        self,
        test: RSExpr,
        body: List[RSStmt],
        orelse: List[RSStmt],
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(None, source_ast)
        self.test = test
        self.body = body
        self.orelse = orelse  # a single RS_If renders as `else if`


class RS_ForRange(RSStmt):
    """for var in start..stop, or (start..stop).step_by(step)"""

    def __init__(
        self,
        var: str,
        start: RSExpr,
        stop: RSExpr,
        step: Optional[RSExpr],
        body: List[RSStmt],
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(None, source_ast)
        self.var = var
        self.start = start
        self.stop = stop
        self.step = step
        self.body = body


class RS_ForIter(RSStmt):
    """for &var in iter"""

    def __init__(
        self,
        var: str,
        iter: RSExpr,
        body: List[RSStmt],
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(None, source_ast)
        self.var = var
        self.iter = iter
        self.body = body


class RS_While(RSStmt):
    def __init__(
        self, test: RSExpr, body: List[RSStmt], source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(None, source_ast)
        self.test = test
        self.body = body


class RS_Break(RSStmt):
    pass


class RS_Continue(RSStmt):
    pass


class RS_Closure(RSStmt):
    """Nested function bound as a closure: let name = |params| -> T { body };"""

    def __init__(
        self,
        name: str,
        params: List[RS_Param],
        returns: Optional[str],
        body: List[RSStmt],
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, SHARED)
        self.name = name
        self.params = params
        self.returns = returns
        self.body = body


# ---------------------------------------------------------------------------
# Expressions


class RS_Ident(RSExpr):
    def __init__(
        self,
        name: str,
        ty: Any = None,
        ownership: str = OWNED,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, ownership)
        self.name = name

    def __str__(self) -> str:  # pragma: no cover - debug helper
        return f"RS_Ident({self.name})"


class RS_Literal(RSExpr):
    def __init__(
        self, text: str, ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.text = text

    def __str__(self) -> str:  # pragma: no cover - debug helper
        return f"RS_Literal({self.text})"


class RS_Binary(RSExpr):
    def __init__(
        self,
        op: str,
        left: RSExpr,
        right: RSExpr,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.op = op
        self.left = left
        self.right = right


class RS_Unary(RSExpr):
    def __init__(
        self, op: str, operand: RSExpr, ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.op = op  # -, !
        self.operand = operand


class RS_Cast(RSExpr):
    def __init__(
        self, expr: RSExpr, type_text: str, ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.expr = expr
        self.type_text = type_text


class RS_Call(RSExpr):
    """Call of a path: f(args), Array1::<f64>::zeros(n)"""

    def __init__(
        self, path: str, args: List[RSExpr], ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.path = path
        self.args = args


class RS_MethodCall(RSExpr):
    def __init__(
        self,
        receiver: RSExpr,
        method: str,
        args: List[RSExpr],
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.receiver = receiver
        self.method = method
        self.args = args


class RS_Index(RSExpr):
    """value[i] for one index, value[[i, j]] for several."""

    def __init__(
        self,
        value: RSExpr,
        indices: List[RSExpr],
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.value = value
        self.indices = indices


class RS_SliceMacro(RSExpr):
    """value.slice(ndarray::s![ranges]) or slice_mut when ``mutable``."""

    def __init__(
        self,
        value: RSExpr,
        ranges: List[RSExpr],
        mutable: bool = False,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, BORROWED)
        self.value = value
        self.ranges = ranges
        self.mutable = mutable


class RS_Range(RSExpr):
    """start..stop with either bound optional."""

    def __init__(
        self,
        start: Optional[RSExpr],
        stop: Optional[RSExpr],
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.start = start
        self.stop = stop


class RS_Macro(RSExpr):
    """name!(args) or name![args] when ``bracket``."""

    def __init__(
        self,
        name: str,
        args: List[RSExpr],
        bracket: bool = False,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.name = name
        self.args = args
        self.bracket = bracket


class RS_Ref(RSExpr):
    def __init__(
        self,
        expr: RSExpr,
        mutable: bool = False,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast, BORROWED)
        self.expr = expr
        self.mutable = mutable


class RS_Deref(RSExpr):
    def __init__(self, expr: RSExpr, ty: Any = None, source_ast: Optional[ASTNode] = None) -> None:
        super().__init__(ty, source_ast)
        self.expr = expr


class RS_Tuple(RSExpr):
    def __init__(
        self, elts: List[RSExpr], ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.elts = elts


class RS_List(RSExpr):
    """Bracketed element list, used inside array! and s! macros."""

    def __init__(
        self, elts: List[RSExpr], ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.elts = elts


class RS_IfExpr(RSExpr):
    def __init__(
        self,
        test: RSExpr,
        body: RSExpr,
        orelse: RSExpr,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.test = test
        self.body = body
        self.orelse = orelse


class RS_Block(RSExpr):
    """{ stmts; tail }"""

    def __init__(
        self,
        stmts: List[RSStmt],
        tail: Optional[RSExpr],
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.stmts = stmts
        self.tail = tail


class RS_FieldAccess(RSExpr):
    """value.field, including tuple fields such as t.0"""

    def __init__(
        self, value: RSExpr, field: str, ty: Any = None, source_ast: Optional[ASTNode] = None
    ) -> None:
        super().__init__(ty, source_ast)
        self.value = value
        self.field = field


class RS_Lambda(RSExpr):
    """Inline closure such as |v| v.powf(2.0) or |&x, &y| x > y."""

    def __init__(
        self,
        params: List[str],
        body: RSExpr,
        ty: Any = None,
        source_ast: Optional[ASTNode] = None,
    ) -> None:
        super().__init__(ty, source_ast)
        self.params = params
        self.body = body


# ---------------------------------------------------------------------------
# Traversal and debug rendering


def rs_fields(node: RSNode) -> Iterator[Tuple[str, Any]]:
    for field_name, value in vars(node).items():
        if field_name in META_FIELDS:
            continue
        yield field_name, value


def iter_rs_children(node: RSNode) -> Iterator[RSNode]:
    for _, value in rs_fields(node):
        if isinstance(value, RSNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, RSNode):
                    yield item


def walk_rs(node: RSNode) -> Iterator[RSNode]:
    """Pre-order traversal of a target subtree."""
    stack: List[RSNode] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_rs_children(current))))


def format_rust_ast(node: RSNode, indent: int = 0) -> str:
    """Render a target subtree as deterministic indented text."""
    lines: List[str] = []
    _format_into(node, indent, lines)
    return "\n".join(lines)


def _format_into(node: RSNode, indent: int, lines: List[str]) -> None:
    spaces = "  " * indent
    header = type(node).__name__
    if node.ty is not None:
        header += f" : {node.ty}"
    if node.ownership != OWNED:
        header += f" [{node.ownership}]"
    lines.append(f"{spaces}{header}")

    for field_name, field_value in rs_fields(node):
        if isinstance(field_value, RSNode):
            lines.append(f"{spaces}  {field_name}:")
            _format_into(field_value, indent + 2, lines)
        elif isinstance(field_value, list):
            if not field_value:
                lines.append(f"{spaces}  {field_name}: []")
                continue
            if not any(isinstance(item, RSNode) for item in field_value):
                lines.append(f"{spaces}  {field_name}: {field_value!r}")
                continue
            lines.append(f"{spaces}  {field_name}:")
            for item in field_value:
                if isinstance(item, RSNode):
                    _format_into(item, indent + 2, lines)
                else:
                    lines.append(f"{spaces}    {item!r}")
        elif field_value is not None:
            lines.append(f"{spaces}  {field_name}: {field_value!r}")
