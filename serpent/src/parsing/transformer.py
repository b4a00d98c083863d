"""Parse tree transformer producing AST nodes."""

from __future__ import annotations

import ast as py_ast
from typing import Any, List, Optional, Tuple

from lark import Token, Transformer, Tree, v_args

from serpent.src.ast.base import ASTNode
from serpent.src.ast.expressions import (
    Attribute,
    BinaryOp,
    BoolOp,
    Call,
    Compare,
    Expr,
    IfExp,
    Keyword,
    ListExpr,
    Literal,
    Name,
    Slice,
    Subscript,
    TupleExpr,
    UnaryOp,
    UnsupportedExpr,
)
from serpent.src.ast.statements import (
    AnnAssign,
    Assign,
    AugAssign,
    Break,
    Continue,
    ExprStmt,
    For,
    FunctionDef,
    If,
    Import,
    ImportFrom,
    Module,
    Param,
    Pass,
    Return,
    Statement,
    Unsupported,
    While,
)

# Grammar rules that parse but fall outside the supported subset
UNSUPPORTED_STATEMENTS = {
    "decorated": "decorator",
    "async_stmt": "async statement",
    "async_funcdef": "async function",
    "classdef": "class definition",
    "del_stmt": "del statement",
    "raise_stmt": "raise statement",
    "yield_stmt": "yield statement",
    "global_stmt": "global statement",
    "nonlocal_stmt": "nonlocal statement",
    "assert_stmt": "assert statement",
    "try_stmt": "try statement",
    "try_finally": "try statement",
    "with_stmt": "with statement",
    "match_stmt": "match statement",
}

UNSUPPORTED_EXPRESSIONS = {
    "lambdef": "lambda expression",
    "lambdef_nocond": "lambda expression",
    "assign_expr": "assignment expression",
    "star_expr": "starred expression",
    "or_expr": "bitwise operator '|'",
    "xor_expr": "bitwise operator '^'",
    "and_expr": "bitwise operator '&'",
    "shift_expr": "bitwise shift",
    "await_expr": "await expression",
    "tuple_comprehension": "generator expression",
    "list_comprehension": "list comprehension",
    "dict": "dict display",
    "dict_comprehension": "dict comprehension",
    "set": "set display",
    "set_comprehension": "set comprehension",
    "comprehension": "comprehension",
    "ellipsis": "ellipsis",
    "yield_expr": "yield expression",
    "yield_from": "yield expression",
    "starparams": "variadic parameter",
    "kwparams": "variadic keyword parameter",
    "starargs": "argument unpacking",
    "kwargs": "keyword argument unpacking",
}

UNSUPPORTED_COMPARISONS = {"in", "not in", "is", "is not", "<>"}


@v_args(meta=True)
class SourceTransformer(Transformer):
    """Transforms a Lark parse tree into typed AST nodes."""

    def __init__(self, source_text: str = "") -> None:
        super().__init__()
        self.source_text = source_text

    def _set_position(self, node: ASTNode, meta_or_token: Any) -> ASTNode:
        """Copy line/column span from a Lark meta or token onto an AST node."""
        node.line = getattr(meta_or_token, "line", 0) or 0
        node.column = getattr(meta_or_token, "column", 0) or 0
        node.end_line = getattr(meta_or_token, "end_line", 0) or 0
        node.end_column = getattr(meta_or_token, "end_column", 0) or 0
        return node

    def _span_from(self, node: ASTNode, first: ASTNode, last: ASTNode) -> ASTNode:
        node.line, node.column = first.line, first.column
        node.end_line, node.end_column = last.end_line, last.end_column
        return node

    def _source_slice(self, meta: Any) -> Optional[str]:
        start = getattr(meta, "start_pos", None)
        end = getattr(meta, "end_pos", None)
        if start is None or end is None or not self.source_text:
            return None
        return self.source_text[start:end]

    def _unsupported_stmt(self, meta: Any, construct: str) -> Unsupported:
        node = self._set_position(Unsupported(construct), meta)
        node.raw_text = self._source_slice(meta)
        return node

    def _unsupported_expr(self, meta: Any, construct: str) -> UnsupportedExpr:
        node = self._set_position(UnsupportedExpr(construct), meta)
        node.raw_text = self._source_slice(meta)
        return node

    @staticmethod
    def _flatten(items: List[Any]) -> List[Statement]:
        statements: List[Statement] = []
        for item in items:
            if item is None:
                continue
            if isinstance(item, list):
                statements.extend(item)
            elif isinstance(item, Token):
                continue
            else:
                statements.append(item)
        return statements

    def __default__(self, data, children, meta):
        if data in UNSUPPORTED_STATEMENTS:
            return self._unsupported_stmt(meta, UNSUPPORTED_STATEMENTS[data])
        if data in UNSUPPORTED_EXPRESSIONS:
            return self._unsupported_expr(meta, UNSUPPORTED_EXPRESSIONS[data])
        return Tree(data, children, meta)

    # ------------------------------------------------------------------
    # Module structure

    def file_input(self, meta, children) -> Module:
        """file_input: (_NEWLINE | stmt)*"""
        module = Module(self._flatten(children))
        module.line, module.column = 1, 0
        return module

    def simple_stmt(self, meta, children) -> List[Statement]:
        """simple_stmt: small_stmt (";" small_stmt)*"""
        return self._flatten(children)

    def suite(self, meta, children) -> List[Statement]:
        return self._flatten(children)

    def funcdef(self, meta, children) -> FunctionDef:
        """funcdef: "def" name "(" [parameters] ")" ["->" test] ":" suite"""
        name, params, returns, body = children
        node = FunctionDef(str(name), params or [], body, returns)
        return self._set_position(node, meta)

    def parameters(self, meta, children) -> List[ASTNode]:
        params: List[ASTNode] = []
        for item in children:
            if item is None:
                continue
            if isinstance(item, Token) and item.type == "SLASH":
                params.append(self._set_position(
                    UnsupportedExpr("positional-only parameter marker"), item
                ))
            elif isinstance(item, Token):
                params.append(self._set_position(Param(str(item)), item))
            else:
                params.append(item)
        return params

    def typedparam(self, meta, children) -> Param:
        """typedparam: name ":" test"""
        name, annotation = children
        return self._set_position(Param(str(name), annotation), meta)

    def paramvalue(self, meta, children) -> UnsupportedExpr:
        """paramvalue: typedparam "=" test"""
        return self._unsupported_expr(meta, "default parameter value")

    # ------------------------------------------------------------------
    # Simple statements

    def expr_stmt(self, meta, children) -> ExprStmt:
        return self._set_position(ExprStmt(children[0]), meta)

    def assign_stmt(self, meta, children) -> Statement:
        return children[0]

    def assign(self, meta, children) -> Statement:
        """assign: target ("=" value)+"""
        if len(children) > 2:
            return self._unsupported_stmt(meta, "chained assignment")
        target, value = children
        return self._set_position(Assign(target, value), meta)

    def annassign(self, meta, children) -> AnnAssign:
        target, annotation, value = children
        return self._set_position(AnnAssign(target, annotation, value), meta)

    def augassign(self, meta, children) -> AugAssign:
        target, op, value = children
        return self._set_position(AugAssign(target, op, value), meta)

    def augassign_op(self, meta, children) -> str:
        return str(children[0])[:-1]

    def pass_stmt(self, meta, children) -> Pass:
        return self._set_position(Pass(), meta)

    def break_stmt(self, meta, children) -> Break:
        return self._set_position(Break(), meta)

    def continue_stmt(self, meta, children) -> Continue:
        return self._set_position(Continue(), meta)

    def return_stmt(self, meta, children) -> Return:
        return self._set_position(Return(children[0]), meta)

    def import_stmt(self, meta, children) -> Statement:
        return children[0]

    def import_name(self, meta, children) -> Import:
        return self._set_position(Import(children[0]), meta)

    def import_from(self, meta, children) -> ImportFrom:
        """import_from: "from" (dots? dotted_name | dots) "import" names"""
        level = 0
        module: Optional[str] = None
        names: Optional[List[Tuple[str, Optional[str]]]] = None
        for item in children:
            if isinstance(item, int):
                level = item
            elif isinstance(item, str):
                module = item
            elif isinstance(item, list):
                names = item
        return self._set_position(ImportFrom(module, names, level), meta)

    def dots(self, meta, children) -> int:
        return len(children)

    def import_as_name(self, meta, children) -> Tuple[str, Optional[str]]:
        name, alias = children
        return str(name), str(alias) if alias is not None else None

    def dotted_as_name(self, meta, children) -> Tuple[str, Optional[str]]:
        name, alias = children
        return name, str(alias) if alias is not None else None

    def import_as_names(self, meta, children) -> List[Tuple[str, Optional[str]]]:
        return [child for child in children if child is not None]

    def dotted_as_names(self, meta, children) -> List[Tuple[str, Optional[str]]]:
        return list(children)

    def dotted_name(self, meta, children) -> str:
        return ".".join(str(child) for child in children)

    # ------------------------------------------------------------------
    # Compound statements

    def if_stmt(self, meta, children) -> If:
        """if_stmt: "if" test ":" suite elifs ["else" ":" suite]"""
        test, body, elifs, orelse = children
        tail: List[Statement] = orelse or []
        for elif_meta, elif_test, elif_body in reversed(elifs):
            nested = If(elif_test, elif_body, tail)
            self._set_position(nested, elif_meta)
            if tail:
                nested.end_line = tail[-1].end_line
                nested.end_column = tail[-1].end_column
            tail = [nested]
        return self._set_position(If(test, body, tail), meta)

    def elifs(self, meta, children) -> list:
        return list(children)

    def elif_(self, meta, children) -> tuple:
        test, body = children
        return meta, test, body

    def while_stmt(self, meta, children) -> Statement:
        test, body, orelse = children
        if orelse is not None:
            return self._unsupported_stmt(meta, "while-else")
        return self._set_position(While(test, body), meta)

    def for_stmt(self, meta, children) -> Statement:
        target, iterable, body, orelse = children
        if orelse is not None:
            return self._unsupported_stmt(meta, "for-else")
        return self._set_position(For(target, iterable, body), meta)

    # ------------------------------------------------------------------
    # Expressions

    def test(self, meta, children) -> IfExp:
        """test: or_test "if" or_test "else" test"""
        body, test, orelse = children
        return self._set_position(IfExp(test, body, orelse), meta)

    def or_test(self, meta, children) -> BoolOp:
        return self._set_position(BoolOp("or", list(children)), meta)

    def and_test(self, meta, children) -> BoolOp:
        return self._set_position(BoolOp("and", list(children)), meta)

    def not_test(self, meta, children) -> UnaryOp:
        return self._set_position(UnaryOp("not", children[0]), meta)

    def comparison(self, meta, children) -> Expr:
        """comparison: expr (comp_op expr)*"""
        left = children[0]
        ops = children[1::2]
        comparators = children[2::2]
        for op in ops:
            if op in UNSUPPORTED_COMPARISONS:
                return self._unsupported_expr(meta, f"'{op}' comparison")
        return self._set_position(Compare(left, list(ops), list(comparators)), meta)

    def comp_op(self, meta, children) -> str:
        return " ".join(str(child) for child in children)

    def _fold_binary(self, children: List[Any]) -> Expr:
        result = children[0]
        for index in range(1, len(children), 2):
            op = str(children[index])
            right = children[index + 1]
            result = self._span_from(BinaryOp(op, result, right), result, right)
        return result

    def arith_expr(self, meta, children) -> Expr:
        """arith_expr: term (_add_op term)*"""
        return self._fold_binary(children)

    def term(self, meta, children) -> Expr:
        """term: factor (_mul_op factor)*"""
        return self._fold_binary(children)

    def factor(self, meta, children) -> Expr:
        """factor: _unary_op factor"""
        op, operand = children
        if str(op) == "~":
            return self._unsupported_expr(meta, "bitwise inversion")
        return self._set_position(UnaryOp(str(op), operand), meta)

    def power(self, meta, children) -> BinaryOp:
        """power: await_expr "**" factor"""
        base, exponent = children
        return self._set_position(BinaryOp("**", base, exponent), meta)

    def funccall(self, meta, children) -> Call:
        """funccall: atom_expr "(" [arguments] ")" """
        func, arguments = children
        args: List[Expr] = []
        keywords: List[Keyword] = []
        for item in arguments or []:
            if isinstance(item, Keyword):
                keywords.append(item)
            else:
                args.append(item)
        return self._set_position(Call(func, args, keywords), meta)

    def arguments(self, meta, children) -> List[Any]:
        return [child for child in children if child is not None]

    def argvalue(self, meta, children) -> ASTNode:
        """argvalue: test "=" test"""
        key, value = children
        if not isinstance(key, Name):
            return self._unsupported_expr(meta, "keyword argument target")
        return self._set_position(Keyword(key.id, value), meta)

    def getitem(self, meta, children) -> Subscript:
        value, index = children
        indices = index if isinstance(index, list) else [index]
        return self._set_position(Subscript(value, indices), meta)

    def subscript_tuple(self, meta, children) -> List[Expr]:
        return [child for child in children if child is not None]

    def slice(self, meta, children) -> Slice:
        """slice: [test] ":" [test] [sliceop]"""
        lower, upper, step = children
        return self._set_position(Slice(lower, upper, step), meta)

    def sliceop(self, meta, children) -> Optional[Expr]:
        return children[0]

    def getattr(self, meta, children) -> Attribute:
        value, name = children
        return self._set_position(Attribute(value, str(name)), meta)

    def tuple(self, meta, children) -> TupleExpr:
        return self._set_position(TupleExpr([c for c in children if c is not None]), meta)

    def testlist_tuple(self, meta, children) -> TupleExpr:
        return self._set_position(TupleExpr([c for c in children if c is not None]), meta)

    def exprlist(self, meta, children) -> TupleExpr:
        return self._set_position(TupleExpr([c for c in children if c is not None]), meta)

    def list(self, meta, children) -> ListExpr:
        return self._set_position(ListExpr([c for c in children if c is not None]), meta)

    def var(self, meta, children) -> Name:
        return self._set_position(Name(str(children[0])), meta)

    def name(self, meta, children) -> Token:
        return children[0]

    def number(self, meta, children) -> Expr:
        token = children[0]
        text = str(token)
        if token.type == "IMAG_NUMBER":
            return self._unsupported_expr(meta, "complex literal")
        if token.type == "FLOAT_NUMBER":
            node = Literal(float(text.replace("_", "")), "float", raw_text=text)
        elif token.type == "DEC_NUMBER":
            node = Literal(int(text.replace("_", ""), 10), "int", raw_text=text)
        else:
            node = Literal(int(text, 0), "int", raw_text=text)
        return self._set_position(node, meta)

    def string(self, meta, children) -> Expr:
        text = str(children[0])
        prefix = text[: min(i for i in (text.find('"'), text.find("'")) if i >= 0)].lower()
        if "f" in prefix:
            return self._unsupported_expr(meta, "f-string")
        if "b" in prefix:
            return self._unsupported_expr(meta, "bytes literal")
        return self._set_position(Literal(py_ast.literal_eval(text), "str", raw_text=text), meta)

    def string_concat(self, meta, children) -> Expr:
        if not all(isinstance(c, Literal) and c.kind == "str" for c in children):
            return self._unsupported_expr(meta, "implicit string concatenation")
        value = "".join(c.value for c in children)
        return self._set_position(Literal(value, "str"), meta)

    def const_none(self, meta, children) -> Literal:
        return self._set_position(Literal(None, "none", raw_text="None"), meta)

    def const_true(self, meta, children) -> Literal:
        return self._set_position(Literal(True, "bool", raw_text="True"), meta)

    def const_false(self, meta, children) -> Literal:
        return self._set_position(Literal(False, "bool", raw_text="False"), meta)
