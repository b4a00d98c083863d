"""Base classes and utilities for AST traversal."""

from __future__ import annotations

from abc import ABC
from typing import Iterator, List, Optional

POSITION_FIELDS = ("line", "column", "end_line", "end_column", "source_file", "raw_text")


class ASTNode(ABC):
    """Base class for all source AST nodes.

    Nodes are built once by the parser and never mutated afterwards. Later
    stages keep their own side tables keyed by ``id(node)``.
    """

    def __init__(
        self,
        line: int = 0,
        column: int = 0,
        source_file: Optional[str] = None,
        raw_text: Optional[str] = None,
        end_line: int = 0,
        end_column: int = 0,
    ) -> None:
        self.line = line
        self.column = column
        self.source_file = source_file
        self.raw_text = raw_text
        self.end_line = end_line
        self.end_column = end_column

    def contains_line(self, line: int) -> bool:
        """True when the node's source span covers ``line``."""
        last = self.end_line or self.line
        return self.line <= line <= last

    def __repr__(self) -> str:
        return f"{type(self).__name__}@{self.line}:{self.column}"


def node_fields(node: ASTNode) -> Iterator[tuple]:
    """Yield (name, value) for the structural fields of a node."""
    for field_name, value in vars(node).items():
        if field_name in POSITION_FIELDS or field_name.startswith("_"):
            continue
        yield field_name, value


def iter_child_nodes(node: ASTNode) -> Iterator[ASTNode]:
    """Yield direct child nodes in field declaration order."""
    for _, value in node_fields(node):
        if isinstance(value, ASTNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, ASTNode):
                    yield item


def walk(node: ASTNode) -> Iterator[ASTNode]:
    """Yield ``node`` and all of its descendants, pre-order."""
    stack: List[ASTNode] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_child_nodes(current))))


def format_ast(node: ASTNode, indent: int = 0) -> str:
    """Render an AST subtree as deterministic indented text."""
    lines: List[str] = []
    _format_into(node, indent, lines)
    return "\n".join(lines)


def _format_into(node: ASTNode, indent: int, lines: List[str]) -> None:
    spaces = "  " * indent
    lines.append(f"{spaces}{type(node).__name__} [{node.line}:{node.column}]")

    for field_name, field_value in node_fields(node):
        if isinstance(field_value, ASTNode):
            lines.append(f"{spaces}  {field_name}:")
            _format_into(field_value, indent + 2, lines)
        elif isinstance(field_value, list):
            if not field_value:
                lines.append(f"{spaces}  {field_name}: []")
                continue
            lines.append(f"{spaces}  {field_name}:")
            for item in field_value:
                if isinstance(item, ASTNode):
                    _format_into(item, indent + 2, lines)
                else:
                    lines.append(f"{spaces}    {item!r}")
        else:
            lines.append(f"{spaces}  {field_name}: {field_value!r}")
