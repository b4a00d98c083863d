"""Positions of source constructs, as carried by every diagnostic."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class SourceLocation:
    """A 1-based line and column inside a source file.

    ``file`` is kept as given: a path relative to the module root for module
    trees, the path from the command line for single files.
    """

    file: Optional[str] = None
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        """Render as ``path:line:col``; unknown parts are dropped."""
        position = ""
        if self.line > 0:
            position = f"{self.line}:{self.column}" if self.column > 0 else str(self.line)
        name = self.file or ""
        if name and position:
            return f"{name}:{position}"
        return name or position or "unknown"

    @classmethod
    def from_node(
        cls, node: Optional[Any], default_file: Optional[str] = None
    ) -> Optional["SourceLocation"]:
        """Location of anything with ``line``/``column`` attributes."""
        if node is None:
            return None
        return cls(
            file=getattr(node, "source_file", None) or default_file,
            line=getattr(node, "line", 0) or 0,
            column=getattr(node, "column", 0) or 0,
        )
