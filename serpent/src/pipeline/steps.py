"""
Step Inspector: how one source line travels through the pipeline.

The inspector runs the same parser, inferencer and lowerer as a full
transpilation, so the Rust it shows for a line is exactly what the module
would contain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from serpent.src.ast.base import ASTNode, format_ast, walk
from serpent.src.ast.expressions import UnsupportedExpr
from serpent.src.ast.statements import (
    For,
    FunctionDef,
    If,
    Module,
    Statement,
    Unsupported,
    While,
)
from serpent.src.common.constants import (
    DEFAULT_CONFIG,
    STEP_NAMES,
    STEP_PYTHON_AST,
    STEP_PYTHON_SOURCE,
    STEP_RUST_AST,
    STEP_RUST_SOURCE,
    CompilerConfig,
)
from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.common.exceptions import SourceSyntaxError, TranspileError
from serpent.src.common.remap import RemapConfig, detect_remap_file, load_remap
from serpent.src.emission.emitter import RustEmitter
from serpent.src.ir.nodes import format_rust_ast
from serpent.src.lowering.lowerer import RustLowerer
from serpent.src.manifest.builder import module_id
from serpent.src.parsing.parser import SourceParser
from serpent.src.semantic.analyzer import MAIN_SCOPE, InferenceResult, TypeInferencer

from .driver import read_source

logger = logging.getLogger(__name__)


@dataclass
class StepSnapshot:
    """Renderings of one line at each pipeline stage, possibly truncated."""

    file: str
    line: int
    stages: List[Tuple[str, str]] = field(default_factory=list)
    failure: Optional[Tuple[str, str]] = None

    @property
    def complete(self) -> bool:
        return self.failure is None

    def add(self, stage: str, text: str) -> "StepSnapshot":
        self.stages.append((stage, text))
        return self

    def stop(self, stage: str, reason: str) -> "StepSnapshot":
        logger.debug("Steps for %s:%d stopped at %s: %s", self.file, self.line, stage, reason)
        self.failure = (stage, reason)
        return self

    def stage(self, name: str) -> Optional[str]:
        for stage, text in self.stages:
            if stage == name:
                return text
        return None

    def render(self) -> str:
        blocks = [f"{stage}:\n{text}\n" for stage, text in self.stages]
        if self.failure is not None:
            stage, reason = self.failure
            blocks.append(f"Stopped at {stage}: {reason}\n")
        return "\n".join(blocks)


def _span(node: ASTNode) -> Tuple[int, int]:
    return node.line, max(node.end_line, node.line)


def _nested_bodies(stmt: Statement) -> List[List[Statement]]:
    if isinstance(stmt, If):
        return [stmt.body, stmt.orelse]
    if isinstance(stmt, (For, While, FunctionDef)):
        return [stmt.body]
    return []


def find_statement(module: Module, line: int) -> Tuple[Optional[Statement], str]:
    """Innermost statement covering ``line`` and the top-level function owning it."""
    owner = MAIN_SCOPE
    found: Optional[Statement] = None
    body: List[Statement] = module.body
    while True:
        match = next((stmt for stmt in body if stmt.contains_line(line)), None)
        if match is None:
            return found, owner
        if found is None and isinstance(match, FunctionDef):
            owner = match.name
        found = match
        body = [
            stmt
            for nested in _nested_bodies(match)
            for stmt in nested
            if stmt.contains_line(line)
        ]


def _unsupported_at(stmt: Statement, line: int) -> Optional[str]:
    for node in walk(stmt):
        if isinstance(node, (Unsupported, UnsupportedExpr)) and node.contains_line(line):
            return f"unsupported syntax: {node.construct}"
    return None


def _error_within(errors: List[TranspileError], node: ASTNode) -> Optional[TranspileError]:
    first, last = _span(node)
    for error in errors:
        if first <= error.line <= last:
            return error
    return None


class StepInspector:
    """Shows the intermediate forms of a single source line."""

    def __init__(
        self, config: CompilerConfig = DEFAULT_CONFIG, hints: Optional[RemapConfig] = None
    ):
        self.config = config
        self.hints = hints

    def inspect(
        self, path: Path, line: int, module_root: Optional[Path] = None
    ) -> StepSnapshot:
        path = Path(path)
        module_name = None
        hints = self.hints
        if module_root is not None:
            module_root = Path(module_root)
            if not path.exists():
                path = module_root / path
            try:
                relative = path.resolve().relative_to(module_root.resolve())
                module_name = module_id(relative)
            except ValueError:
                logger.debug("%s is outside module root %s", path, module_root)
            if hints is None:
                remap = detect_remap_file(module_root, self.config.remap_filename)
                if remap is not None:
                    hints = load_remap(remap)

        try:
            source = read_source(path)
        except OSError as exc:
            snapshot = StepSnapshot(str(path), line)
            return snapshot.stop(STEP_PYTHON_SOURCE, f"cannot read {path}: {exc}")
        except SourceSyntaxError as error:
            return StepSnapshot(str(path), line).stop(STEP_PYTHON_SOURCE, error.one_line())
        return self.inspect_source(source, line, str(path), module_name, hints)

    def inspect_source(
        self,
        source: str,
        line: int,
        filename: str = "<string>",
        module_name: Optional[str] = None,
        hints: Optional[RemapConfig] = None,
    ) -> StepSnapshot:
        snapshot = StepSnapshot(filename, line)
        try:
            return self._trace(snapshot, source, module_name, hints or self.hints)
        except TranspileError as error:
            # The failing stage is the first one without a rendering
            stage = next(name for name in STEP_NAMES if snapshot.stage(name) is None)
            return snapshot.stop(stage, error.one_line())

    def _trace(
        self,
        snapshot: StepSnapshot,
        source: str,
        module_name: Optional[str],
        hints: Optional[RemapConfig],
    ) -> StepSnapshot:
        line = snapshot.line
        lines = source.splitlines()
        if not 1 <= line <= len(lines):
            return snapshot.stop(
                STEP_PYTHON_SOURCE, f"line {line} is out of range (1-{len(lines)})"
            )
        snapshot.add(STEP_PYTHON_SOURCE, lines[line - 1])

        module = SourceParser().parse(source, snapshot.file)
        stmt, owner = find_statement(module, line)
        if stmt is None:
            return snapshot.stop(STEP_PYTHON_AST, f"no statement on line {line}")
        snapshot.add(STEP_PYTHON_AST, format_ast(stmt))

        reason = _unsupported_at(stmt, line)
        if reason is not None:
            return snapshot.stop(STEP_RUST_AST, reason)

        diagnostics = ProgramDiagnostics()
        module_name = module_name or Path(snapshot.file).stem
        inference = TypeInferencer(diagnostics, hints, self.config, module_name).infer_module(module)
        constant = id(stmt) in inference.constant_statements
        if not constant and inference.is_failed(owner):
            return snapshot.stop(STEP_RUST_AST, self._failure_reason(module, inference, owner))

        lowerer = RustLowerer(inference, diagnostics, self.config)
        if constant:
            lowerer.lower_constant(stmt)
        elif owner == MAIN_SCOPE:
            if not inference.has_entry_point:
                return snapshot.stop(STEP_RUST_AST, f"line {line} produces no Rust code")
            lowerer.lower_main()
        else:
            function = lowerer.lower_function(self._function(module, owner))
            if isinstance(stmt, FunctionDef) and stmt.name == owner:
                lowerer.record(stmt, [function])

        error = _error_within(lowerer.errors, stmt)
        if error is not None:
            return snapshot.stop(STEP_RUST_AST, error.one_line())
        lowering = lowerer.statement_map.get(id(stmt))
        if lowering is None or not lowering.nodes:
            return snapshot.stop(STEP_RUST_AST, f"line {line} produces no Rust code")
        nodes = lowering.nodes
        snapshot.add(STEP_RUST_AST, "\n".join(format_rust_ast(node) for node in nodes))
        snapshot.add(STEP_RUST_SOURCE, RustEmitter(self.config).emit_fragment(nodes).rstrip("\n"))
        return snapshot

    @staticmethod
    def _function(module: Module, name: str) -> FunctionDef:
        return next(fn for fn in module.functions if fn.name == name)

    @staticmethod
    def _failure_reason(module: Module, inference: InferenceResult, owner: str) -> str:
        """First error located inside the failed function or main body."""
        if owner == MAIN_SCOPE:
            scope_nodes: List[ASTNode] = list(inference.main_body)
        else:
            scope_nodes = [fn for fn in module.functions if fn.name == owner]
        errors: List[TranspileError] = list(module.unsupported) + list(inference.errors)
        for node in scope_nodes:
            error = _error_within(errors, node)
            if error is not None:
                return error.one_line()
        return f"type inference failed for '{owner}'"
