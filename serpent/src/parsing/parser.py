"""Parser entry point for the numeric Python subset."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from lark import Lark
from lark.exceptions import (
    LarkError,
    UnexpectedCharacters,
    UnexpectedEOF,
    UnexpectedInput,
    UnexpectedToken,
    VisitError,
)
from lark.indenter import PythonIndenter
from lark.lexer import PatternStr

from serpent.src.ast import ASTNode, Module
from serpent.src.common.exceptions import SourceSyntaxError, TranspileError
from serpent.src.common.source_location import SourceLocation
from .subset import SubsetChecker
from .transformer import SourceTransformer

logger = logging.getLogger(__name__)

DEFAULT_GRAMMAR_PATH = (
    Path(__file__).resolve().parent.parent.parent / "grammar" / "serpent.lark"
)

# Human readable names for the terminals that show up in "expected" sets
TERMINAL_DESCRIPTIONS = {
    "NAME": "name",
    "DEC_NUMBER": "number",
    "HEX_NUMBER": "number",
    "OCT_NUMBER": "number",
    "BIN_NUMBER": "number",
    "FLOAT_NUMBER": "number",
    "IMAG_NUMBER": "number",
    "STRING": "string",
    "LONG_STRING": "string",
    "_NEWLINE": "newline",
    "_INDENT": "indented block",
    "_DEDENT": "end of block",
    "$END": "end of input",
    "LPAR": "'('",
    "RPAR": "')'",
    "LSQB": "'['",
    "RSQB": "']'",
    "LBRACE": "'{'",
    "RBRACE": "'}'",
    "COLON": "':'",
    "COMMA": "','",
    "SEMICOLON": "';'",
    "DOT": "'.'",
    "EQUAL": "'='",
    "PLUS": "'+'",
    "MINUS": "'-'",
    "STAR": "'*'",
    "SLASH": "'/'",
    "RARROW": "'->'",
}

# Lark names terminals for unnamed grammar literals __ANON_<n>
ANONYMOUS_PREFIX = "__ANON"

# Tokens that can start an expression collapse into one entry
EXPRESSION_STARTS = {
    "NAME", "DEC_NUMBER", "HEX_NUMBER", "OCT_NUMBER", "BIN_NUMBER",
    "FLOAT_NUMBER", "IMAG_NUMBER", "STRING", "LONG_STRING", "LPAR", "LSQB",
    "LBRACE", "MINUS", "PLUS", "TILDE", "NOT", "LAMBDA", "AWAIT", "NONE",
    "TRUE", "FALSE", "ELLIPSIS",
}


@lru_cache(maxsize=None)
def _load_lark(grammar_path: str) -> Lark:
    """Compile the grammar once per path and process."""
    with open(grammar_path, "r", encoding="utf-8") as handle:
        grammar_text = handle.read()
    logger.debug("Compiling grammar %s", grammar_path)
    return Lark(
        grammar_text,
        parser="lalr",
        postlex=PythonIndenter(),
        start="file_input",
        propagate_positions=True,
        maybe_placeholders=True,
    )


def describe_expected(
    terminals: Iterable[str], literal_of: Optional[Callable[[str], Optional[str]]] = None
) -> List[str]:
    """Turn a set of lark terminal names into a sorted, readable list.

    Anonymous terminals are spelled through ``literal_of`` and dropped when
    they have no literal spelling.
    """
    names = set()
    for terminal in terminals:
        if terminal in EXPRESSION_STARTS:
            names.add("expression")
            continue
        described = TERMINAL_DESCRIPTIONS.get(terminal)
        if described is None and terminal.startswith(ANONYMOUS_PREFIX):
            described = literal_of(terminal) if literal_of is not None else None
            if described is None:
                continue
        if described is None:
            if terminal.isupper() and terminal.isalpha():
                # Keyword terminals are named after the keyword itself
                described = f"'{terminal.lower()}'"
            else:
                described = terminal
        names.add(described)
    return sorted(names)


class SourceParser:
    """Parses Python source text into a checked source AST."""

    def __init__(self, grammar_path: Optional[Path] = None):
        self.grammar_path = Path(grammar_path or DEFAULT_GRAMMAR_PATH)
        try:
            self.parser = _load_lark(str(self.grammar_path))
        except FileNotFoundError as exc:
            raise FileNotFoundError(
                f"Grammar file not found: {self.grammar_path}"
            ) from exc

    def parse(self, source_code: str, filename: str = "<string>") -> Module:
        """Parse source code into a Module.

        Args:
            source_code: The source code text to parse
            filename: Source file path for error reporting

        Returns:
            Module AST node. Constructs outside the supported subset are
            recorded on ``Module.unsupported`` instead of raising.

        Raises:
            SourceSyntaxError: If the text is not valid Python
        """
        if not source_code.endswith("\n"):
            source_code += "\n"

        try:
            tree = self.parser.parse(source_code)
        except UnexpectedInput as exc:
            raise self._syntax_error(exc, source_code, filename) from exc
        except LarkError as exc:
            # Inconsistent dedents surface as a plain LarkError
            raise SourceSyntaxError(
                f"invalid indentation: {exc}", SourceLocation(filename, 0, 0)
            ) from exc

        try:
            module = SourceTransformer(source_code).transform(tree)
        except VisitError as exc:
            if isinstance(exc.orig_exc, TranspileError):
                raise exc.orig_exc from exc
            if isinstance(exc.orig_exc, (ValueError, SyntaxError)):
                # literal_eval rejects malformed escapes and the like
                meta = getattr(exc.obj, "meta", None)
                location = SourceLocation(
                    filename,
                    getattr(meta, "line", 0) or 0,
                    getattr(meta, "column", 0) or 0,
                )
                raise SourceSyntaxError(str(exc.orig_exc), location) from exc
            raise

        if not isinstance(module, Module):
            raise RuntimeError(f"Expected Module AST node, got {type(module)}")

        self._attach_source_file(module, filename)
        errors = SubsetChecker(module).check()
        for error in errors:
            logger.debug("%s", error)
        return module

    def parse_file(self, file_path: Path) -> Module:
        """Parse a source file into a Module."""
        try:
            with open(file_path, "r", encoding="utf-8") as handle:
                source_code = handle.read()
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Source file not found: {file_path}") from exc
        return self.parse(source_code, str(file_path))

    def _literal_of(self, terminal: str) -> Optional[str]:
        """Quoted text of a terminal defined by a plain string, else None."""
        try:
            pattern = self.parser.get_terminal(terminal).pattern
        except KeyError:
            return None
        if isinstance(pattern, PatternStr):
            return f"'{pattern.value}'"
        return None

    def _syntax_error(
        self, exc: UnexpectedInput, source_code: str, filename: str
    ) -> SourceSyntaxError:
        line = getattr(exc, "line", 0) or 0
        column = getattr(exc, "column", 0) or 0
        if isinstance(exc, UnexpectedEOF) or line < 0:
            lines = source_code.splitlines() or [""]
            line, column = len(lines), len(lines[-1]) + 1
            expected = describe_expected(exc.expected, self._literal_of)
            message = "unexpected end of input"
        elif isinstance(exc, UnexpectedToken):
            expected = describe_expected(exc.expected, self._literal_of)
            token = exc.token
            if token.type == "$END":
                message = "unexpected end of input"
            elif token.type in ("_NEWLINE", "_INDENT", "_DEDENT"):
                message = f"unexpected {TERMINAL_DESCRIPTIONS[token.type]}"
            else:
                message = f"unexpected token {str(token)!r}"
        elif isinstance(exc, UnexpectedCharacters):
            expected = describe_expected(exc.allowed or (), self._literal_of)
            message = f"unexpected character {exc.char!r}"
        else:  # pragma: no cover - lark only raises the three above
            expected = []
            message = "invalid syntax"
        location = SourceLocation(filename, line, column)
        return SourceSyntaxError(message, location, expected)

    def _attach_source_file(self, node: ASTNode, filename: str) -> None:
        """Recursively annotate AST nodes with their originating filename."""
        if not isinstance(node, ASTNode):
            return

        if filename:
            node.source_file = filename

        for attr in vars(node).values():
            if isinstance(attr, ASTNode):
                self._attach_source_file(attr, filename)
            elif isinstance(attr, list):
                for item in attr:
                    if isinstance(item, ASTNode):
                        self._attach_source_file(item, filename)
