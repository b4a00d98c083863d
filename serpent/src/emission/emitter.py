"""
Rust source emission.

Renders a target AST as formatted Rust text. Emission depends only on the
tree it is given: rendering the same tree twice gives identical text.
"""

from __future__ import annotations

import inspect
from typing import Callable, Dict, List, Optional, Sequence

from serpent.src.common.constants import DEFAULT_CONFIG, STAGE_EMISSION, CompilerConfig
from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.common.exceptions import EmissionError
from serpent.src.common.source_location import SourceLocation
from serpent.src.ir.nodes import (
    RS_Assign,
    RS_Binary,
    RS_Block,
    RS_Break,
    RS_Call,
    RS_Cast,
    RS_Closure,
    RS_Const,
    RS_Continue,
    RS_Deref,
    RS_ExprStmt,
    RS_FieldAccess,
    RS_ForIter,
    RS_ForRange,
    RS_Function,
    RS_Ident,
    RS_If,
    RS_IfExpr,
    RS_Index,
    RS_Lambda,
    RS_Let,
    RS_LetTuple,
    RS_List,
    RS_Literal,
    RS_Macro,
    RS_MethodCall,
    RS_Module,
    RS_Param,
    RS_Range,
    RS_Ref,
    RS_Return,
    RS_SliceMacro,
    RS_Tuple,
    RS_Unary,
    RS_While,
    RSExpr,
    RSItem,
    RSNode,
    RSStmt,
)

# Binding strength of Rust operators, loosest first
PRECEDENCE: Dict[str, int] = {
    "=": 0,
    "+=": 0,
    "-=": 0,
    "*=": 0,
    "/=": 0,
    "%=": 0,
    "||": 1,
    "&&": 2,
    "==": 3,
    "!=": 3,
    "<": 3,
    ">": 3,
    "<=": 3,
    ">=": 3,
    "|": 4,
    "^": 5,
    "&": 6,
    "<<": 7,
    ">>": 7,
    "+": 8,
    "-": 8,
    "*": 9,
    "/": 9,
    "%": 9,
}
COMPARISONS = {"==", "!=", "<", ">", "<=", ">="}

LOOSE = -1
RANGE = 0
CAST = 11
UNARY = 12
POSTFIX = 13
ATOM = 14


def _doc_lines(doc: Optional[str], marker: str) -> List[str]:
    if not doc:
        return []
    return [f"{marker} {line}".rstrip() for line in inspect.cleandoc(doc).splitlines()]


class RustEmitter:
    """Render target AST nodes as Rust source text."""

    def __init__(
        self,
        config: CompilerConfig = DEFAULT_CONFIG,
        diagnostics: Optional[ProgramDiagnostics] = None,
    ) -> None:
        self.indent = config.indent
        if diagnostics is not None:
            diagnostics.default_stage = STAGE_EMISSION

        self._stmt_handlers: Dict[type, Callable[[RSNode, int], List[str]]] = {
            RS_Let: self._emit_let,
            RS_LetTuple: self._emit_let_tuple,
            RS_Assign: self._emit_assign,
            RS_ExprStmt: self._emit_expr_stmt,
            RS_Return: self._emit_return,
            RS_If: self._emit_if,
            RS_ForRange: self._emit_for_range,
            RS_ForIter: self._emit_for_iter,
            RS_While: self._emit_while,
            RS_Break: self._emit_jump,
            RS_Continue: self._emit_jump,
            RS_Closure: self._emit_closure,
        }
        self._expr_handlers: Dict[type, Callable[[RSNode], str]] = {
            RS_Ident: lambda n: n.name,
            RS_Literal: lambda n: n.text,
            RS_Binary: self._binary,
            RS_Unary: self._unary,
            RS_Cast: self._cast,
            RS_Call: self._call,
            RS_MethodCall: self._method_call,
            RS_Index: self._index,
            RS_SliceMacro: self._slice,
            RS_Range: self._range,
            RS_Macro: self._macro,
            RS_Ref: self._ref,
            RS_Deref: lambda n: f"*{self._operand(n.expr, UNARY)}",
            RS_Tuple: self._tuple,
            RS_List: lambda n: f"[{self._join(n.elts)}]",
            RS_IfExpr: self._if_expr,
            RS_Block: self._block,
            RS_FieldAccess: lambda n: f"{self._operand(n.value, POSTFIX)}.{n.field}",
            RS_Lambda: self._lambda,
        }

    # ------------------------------------------------------------------
    # Public API

    def emit(self, module: RS_Module) -> str:
        """Render a whole module; the text ends with exactly one newline."""
        sections: List[List[str]] = []
        header = _doc_lines(module.doc, "//!")
        header.extend(f"#![{attribute}]" for attribute in module.attributes)
        if header:
            sections.append(header)
        if module.uses:
            sections.append([f"use {use.path};" for use in module.uses])
        for item in module.items:
            sections.append(self._item_lines(item))
        text = "\n\n".join("\n".join(lines) for lines in sections)
        return text.rstrip("\n") + "\n"

    def emit_function(self, function: RS_Function) -> str:
        return "\n".join(self._item_lines(function)) + "\n"

    def emit_statement(self, stmt: RSStmt, level: int = 0) -> str:
        return "\n".join(self._stmt_lines(stmt, level))

    def emit_expression(self, expr: RSExpr) -> str:
        return self._expr(expr)

    def emit_fragment(self, nodes: Sequence[RSNode]) -> str:
        """Render loose nodes, one after the other, for step snapshots."""
        parts: List[str] = []
        for node in nodes:
            if isinstance(node, (RS_Function, RS_Const)):
                parts.append("\n".join(self._item_lines(node)))
            elif isinstance(node, RSExpr):
                parts.append(self._expr(node))
            else:
                parts.append(self.emit_statement(node))
        return "\n".join(parts) + "\n" if parts else ""

    # ------------------------------------------------------------------
    # Items

    def _item_lines(self, item: RSItem) -> List[str]:
        if isinstance(item, RS_Const):
            value = self._expr(item.value)
            return [f"pub const {item.name}: {item.type_text} = {value};"]
        if isinstance(item, RS_Function):
            lines = _doc_lines(item.doc, "///")
            visibility = "pub " if item.is_pub else ""
            returns = f" -> {item.returns}" if item.returns else ""
            params = ", ".join(self._param(p) for p in item.params)
            lines.append(f"{visibility}fn {item.name}({params}){returns} {{")
            lines.extend(self._body(item.body, 1))
            lines.append("}")
            return lines
        raise self._error(item)

    @staticmethod
    def _param(param: RS_Param) -> str:
        prefix = "mut " if param.mutable else ""
        return f"{prefix}{param.name}: {param.type_text}"

    def _body(self, body: List[RSStmt], level: int) -> List[str]:
        lines: List[str] = []
        for stmt in body:
            lines.extend(self._stmt_lines(stmt, level))
        return lines

    # ------------------------------------------------------------------
    # Statements

    def _stmt_lines(self, stmt: RSStmt, level: int) -> List[str]:
        handler = self._stmt_handlers.get(type(stmt))
        if handler is None:
            raise self._error(stmt)
        return handler(stmt, level)

    def _pad(self, level: int) -> str:
        return self.indent * level

    def _emit_let(self, stmt: RS_Let, level: int) -> List[str]:
        text = "let "
        if stmt.mutable:
            text += "mut "
        text += stmt.name
        if stmt.type_text:
            text += f": {stmt.type_text}"
        if stmt.value is not None:
            text += f" = {self._expr(stmt.value)}"
        return [f"{self._pad(level)}{text};"]

    def _emit_let_tuple(self, stmt: RS_LetTuple, level: int) -> List[str]:
        names = ", ".join(f"mut {name}" if mutable else name for name, mutable in stmt.names)
        pattern = f"({names},)" if len(stmt.names) == 1 else f"({names})"
        annotation = f": {stmt.type_text}" if stmt.type_text else ""
        return [f"{self._pad(level)}let {pattern}{annotation} = {self._expr(stmt.value)};"]

    def _emit_assign(self, stmt: RS_Assign, level: int) -> List[str]:
        target = self._expr(stmt.target)
        return [f"{self._pad(level)}{target} {stmt.op} {self._expr(stmt.value)};"]

    def _emit_expr_stmt(self, stmt: RS_ExprStmt, level: int) -> List[str]:
        return [f"{self._pad(level)}{self._expr(stmt.expr)};"]

    def _emit_return(self, stmt: RS_Return, level: int) -> List[str]:
        if stmt.value is None:
            return [f"{self._pad(level)}return;"]
        return [f"{self._pad(level)}return {self._expr(stmt.value)};"]

    def _emit_jump(self, stmt: RSStmt, level: int) -> List[str]:
        keyword = "break" if isinstance(stmt, RS_Break) else "continue"
        return [f"{self._pad(level)}{keyword};"]

    def _block_lines(self, opener: str, body: List[RSStmt], level: int) -> List[str]:
        pad = self._pad(level)
        lines = [f"{pad}{opener} {{"]
        lines.extend(self._body(body, level + 1))
        lines.append(f"{pad}}}")
        return lines

    def _emit_if(self, stmt: RS_If, level: int) -> List[str]:
        pad = self._pad(level)
        lines = self._block_lines(f"if {self._expr(stmt.test)}", stmt.body, level)
        orelse = stmt.orelse
        while orelse:
            lines.pop()
            if len(orelse) == 1 and isinstance(orelse[0], RS_If):
                nested = orelse[0]
                lines.append(f"{pad}}} else if {self._expr(nested.test)} {{")
                lines.extend(self._body(nested.body, level + 1))
                lines.append(f"{pad}}}")
                orelse = nested.orelse
            else:
                lines.append(f"{pad}}} else {{")
                lines.extend(self._body(orelse, level + 1))
                lines.append(f"{pad}}}")
                orelse = []
        return lines

    def _emit_for_range(self, stmt: RS_ForRange, level: int) -> List[str]:
        span = f"{self._expr(stmt.start)}..{self._operand(stmt.stop, RANGE + 1)}"
        if stmt.step is not None:
            span = f"({span}).step_by({self._expr(stmt.step)})"
        return self._block_lines(f"for {stmt.var} in {span}", stmt.body, level)

    def _emit_for_iter(self, stmt: RS_ForIter, level: int) -> List[str]:
        return self._block_lines(f"for &{stmt.var} in {self._expr(stmt.iter)}", stmt.body, level)

    def _emit_while(self, stmt: RS_While, level: int) -> List[str]:
        return self._block_lines(f"while {self._expr(stmt.test)}", stmt.body, level)

    def _emit_closure(self, stmt: RS_Closure, level: int) -> List[str]:
        params = ", ".join(self._param(p) for p in stmt.params)
        returns = f" -> {stmt.returns}" if stmt.returns else ""
        lines = self._block_lines(f"let {stmt.name} = |{params}|{returns}", stmt.body, level)
        lines[-1] += ";"
        return lines

    # ------------------------------------------------------------------
    # Expressions

    def _expr(self, node: RSExpr) -> str:
        handler = self._expr_handlers.get(type(node))
        if handler is None:
            raise self._error(node)
        return handler(node)

    def _join(self, nodes: Sequence[RSExpr]) -> str:
        return ", ".join(self._expr(n) for n in nodes)

    @staticmethod
    def precedence(node: RSExpr) -> int:
        if isinstance(node, RS_Binary):
            return PRECEDENCE.get(node.op, 0)
        if isinstance(node, RS_Cast):
            return CAST
        if isinstance(node, (RS_Unary, RS_Ref, RS_Deref)):
            return UNARY
        if isinstance(node, RS_Literal):
            return UNARY if node.text.startswith("-") else ATOM
        if isinstance(node, (RS_MethodCall, RS_Index, RS_FieldAccess, RS_SliceMacro)):
            return POSTFIX
        if isinstance(node, RS_Range):
            return RANGE
        if isinstance(node, (RS_IfExpr, RS_Lambda)):
            return LOOSE
        return ATOM

    def _operand(self, node: RSExpr, minimum: int) -> str:
        """Render ``node``, parenthesised when it binds looser than ``minimum``."""
        text = self._expr(node)
        if self.precedence(node) < minimum:
            return f"({text})"
        return text

    def _binary(self, node: RS_Binary) -> str:
        level = PRECEDENCE.get(node.op)
        if level is None:
            raise self._error(node)
        left_min = level + 1 if node.op in COMPARISONS else level
        if node.op in ("<", "<<") and isinstance(node.left, RS_Cast):
            left_min = CAST + 1
        left = self._operand(node.left, left_min)
        right = self._operand(node.right, level + 1)
        return f"{left} {node.op} {right}"

    def _unary(self, node: RS_Unary) -> str:
        return f"{node.op}{self._operand(node.operand, UNARY)}"

    def _cast(self, node: RS_Cast) -> str:
        return f"{self._operand(node.expr, CAST)} as {node.type_text}"

    def _ref(self, node: RS_Ref) -> str:
        prefix = "&mut " if node.mutable else "&"
        return f"{prefix}{self._operand(node.expr, UNARY)}"

    def _call(self, node: RS_Call) -> str:
        return f"{node.path}({self._join(node.args)})"

    def _method_call(self, node: RS_MethodCall) -> str:
        receiver = self._operand(node.receiver, POSTFIX)
        return f"{receiver}.{node.method}({self._join(node.args)})"

    def _index(self, node: RS_Index) -> str:
        base = self._operand(node.value, POSTFIX)
        if len(node.indices) == 1:
            return f"{base}[{self._expr(node.indices[0])}]"
        return f"{base}[[{self._join(node.indices)}]]"

    def _slice(self, node: RS_SliceMacro) -> str:
        base = self._operand(node.value, POSTFIX)
        method = "slice_mut" if node.mutable else "slice"
        return f"{base}.{method}(ndarray::s![{self._join(node.ranges)}])"

    def _range(self, node: RS_Range) -> str:
        start = self._operand(node.start, RANGE + 1) if node.start is not None else ""
        stop = self._operand(node.stop, RANGE + 1) if node.stop is not None else ""
        return f"{start}..{stop}"

    def _macro(self, node: RS_Macro) -> str:
        if node.bracket:
            return f"{node.name}![{self._join(node.args)}]"
        return f"{node.name}!({self._join(node.args)})"

    def _tuple(self, node: RS_Tuple) -> str:
        if len(node.elts) == 1:
            return f"({self._expr(node.elts[0])},)"
        return f"({self._join(node.elts)})"

    def _if_expr(self, node: RS_IfExpr) -> str:
        return (
            f"if {self._expr(node.test)} {{ {self._expr(node.body)} }} "
            f"else {{ {self._expr(node.orelse)} }}"
        )

    def _block(self, node: RS_Block) -> str:
        parts = [self.emit_statement(stmt).strip() for stmt in node.stmts]
        if node.tail is not None:
            parts.append(self._expr(node.tail))
        return "{ " + " ".join(parts) + " }"

    def _lambda(self, node: RS_Lambda) -> str:
        return f"|{', '.join(node.params)}| {self._expr(node.body)}"

    # ------------------------------------------------------------------

    def _error(self, node: RSNode) -> EmissionError:
        location = SourceLocation.from_node(getattr(node, "source_ast", None))
        return EmissionError(f"no rendering rule for {type(node).__name__}", location)


def emit_module(module: RS_Module, config: CompilerConfig = DEFAULT_CONFIG) -> str:
    return RustEmitter(config).emit(module)
