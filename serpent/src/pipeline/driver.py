"""
Transpilation driver.

Runs the stages parse → infer → lower → emit for one file, and fans a module
tree out over a worker pool. Every stage reports into one ProgramDiagnostics
per file; a file is emitted only when that collector holds no errors.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from serpent.src.ast.statements import Module
from serpent.src.common.constants import (
    DEFAULT_CONFIG,
    LIB_MODULE,
    LIB_RS,
    MAIN_MODULE,
    MAIN_RS,
    STAGE_PARSING,
    CompilerConfig,
)
from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.common.exceptions import (
    EmissionError,
    SourceSyntaxError,
    TranspileError,
    UnsupportedSyntaxError,
)
from serpent.src.common.remap import RemapConfig
from serpent.src.common.source_location import SourceLocation
from serpent.src.emission.emitter import RustEmitter
from serpent.src.emission.formatting import add_line_numbers
from serpent.src.ir.nodes import RS_Module
from serpent.src.lowering.lowerer import LoweringResult, RustLowerer
from serpent.src.manifest.builder import (
    STATUS_FAILED,
    STATUS_OK,
    ManifestBuilder,
    ManifestEntry,
    module_dependencies,
    module_id,
)
from serpent.src.manifest.cargo import write_cargo_manifest
from serpent.src.parsing.parser import SourceParser
from serpent.src.semantic.analyzer import InferenceResult, TypeInferencer

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"
SOURCE_DIR = "src"

KIND_LIB = "lib"
KIND_MAIN = "main"
KIND_MODULE = "module"


@dataclass
class TranspileResult:
    """Everything one file produced, stage by stage."""

    module: str
    rust_source: Optional[str]
    entry: ManifestEntry
    ast: Optional[Module] = None
    rs_module: Optional[RS_Module] = None
    diagnostics: ProgramDiagnostics = field(default_factory=ProgramDiagnostics)
    inference: Optional[InferenceResult] = None
    lowering: Optional[LoweringResult] = None

    @property
    def ok(self) -> bool:
        return self.rust_source is not None

    @property
    def errors(self) -> List[TranspileError]:
        return self.diagnostics.errors()


@dataclass
class TranspiledFile:
    """Picklable outcome of one file of a module tree."""

    source_path: PurePosixPath
    module: str
    kind: str
    target_path: PurePosixPath
    rust_source: Optional[str]
    entry: ManifestEntry
    errors: List[TranspileError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.rust_source is not None


@dataclass
class ModuleTranspilation:
    root: Path
    files: List[TranspiledFile]
    manifest: ManifestBuilder
    cancelled: List[PurePosixPath] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(f.ok for f in self.files)

    def errors(self) -> List[TranspileError]:
        return [error for f in self.files for error in f.errors]


# ---------------------------------------------------------------------------
# Single files


def _manifest_entry(
    module: str,
    source_path: str,
    diagnostics: ProgramDiagnostics,
    dependencies: Tuple[str, ...] = (),
) -> ManifestEntry:
    errors = diagnostics.errors()
    unsupported = tuple(
        (str(error.location) if error.location else "unknown", error.construct)
        for error in errors
        if isinstance(error, UnsupportedSyntaxError)
    )
    return ManifestEntry(
        module=module,
        source_path=source_path,
        dependencies=dependencies,
        unsupported=unsupported,
        status=STATUS_FAILED if diagnostics.has_errors() else STATUS_OK,
        errors=tuple(error.one_line() for error in errors),
    )


def _failed_result(
    error: TranspileError, filename: str, module_name: str
) -> TranspileResult:
    diagnostics = ProgramDiagnostics()
    diagnostics.default_stage = STAGE_PARSING
    diagnostics.report(error)
    entry = _manifest_entry(module_name, filename, diagnostics)
    return TranspileResult(module_name, None, entry, diagnostics=diagnostics)


def transpile_source(
    source: str,
    filename: str = "<string>",
    module_name: Optional[str] = None,
    config: CompilerConfig = DEFAULT_CONFIG,
    hints: Optional[RemapConfig] = None,
) -> TranspileResult:
    """Transpile one source text; failures are collected, not raised."""
    module_name = module_name or Path(filename).stem
    try:
        ast = SourceParser().parse(source, filename)
    except SourceSyntaxError as error:
        return _failed_result(error, filename, module_name)

    diagnostics = ProgramDiagnostics()
    diagnostics.default_stage = STAGE_PARSING

    for error in ast.unsupported:
        diagnostics.report(error)

    inference = TypeInferencer(diagnostics, hints, config, module_name).infer_module(ast)
    logger.debug("Inferred %s: %d function(s)", module_name, len(inference.function_types))
    lowering = RustLowerer(inference, diagnostics, config).lower_module(ast)

    rust_source = None
    if not diagnostics.has_errors():
        try:
            rust_source = RustEmitter(config, diagnostics).emit(lowering.rs_module)
        except EmissionError as error:
            diagnostics.report(error)

    entry = _manifest_entry(module_name, filename, diagnostics)
    return TranspileResult(
        module_name,
        rust_source,
        entry,
        ast=ast,
        rs_module=lowering.rs_module,
        diagnostics=diagnostics,
        inference=inference,
        lowering=lowering,
    )


def read_source(path: Path, filename: Optional[str] = None) -> str:
    """Read a source file as UTF-8 with universal newlines.

    Undecodable bytes raise SourceSyntaxError pointing at the first bad byte.
    """
    with open(path, "rb") as handle:
        raw = handle.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        line = raw.count(b"\n", 0, exc.start) + 1
        column = exc.start - raw.rfind(b"\n", 0, exc.start)
        location = SourceLocation(filename or str(path), line, column)
        raise SourceSyntaxError(
            f"source is not valid UTF-8: cannot decode byte 0x{raw[exc.start]:02x}", location
        ) from exc
    return text.replace("\r\n", "\n").replace("\r", "\n")


def transpile_file(
    path: Path,
    module_name: Optional[str] = None,
    config: CompilerConfig = DEFAULT_CONFIG,
    hints: Optional[RemapConfig] = None,
    filename: Optional[str] = None,
) -> TranspileResult:
    """Transpile one file; ``filename`` is the name used in locations."""
    path = Path(path)
    filename = filename or str(path)
    try:
        source = read_source(path, filename)
    except SourceSyntaxError as error:
        return _failed_result(error, filename, module_name or path.stem)
    return transpile_source(source, filename, module_name, config, hints)


# ---------------------------------------------------------------------------
# Module trees


def file_kind(relative_path: PurePosixPath) -> str:
    stem = relative_path.stem
    if stem == LIB_MODULE:
        return KIND_LIB
    if stem == MAIN_MODULE:
        return KIND_MAIN
    return KIND_MODULE


def target_path(relative_path: PurePosixPath) -> PurePosixPath:
    """Where a source file lands inside the output directory."""
    kind = file_kind(relative_path)
    target = PurePosixPath(SOURCE_DIR) / relative_path
    if kind == KIND_LIB:
        return target.with_name(LIB_RS)
    if kind == KIND_MAIN:
        return target.with_name(MAIN_RS)
    return target.with_suffix(".rs")


def discover_sources(root: Path) -> List[PurePosixPath]:
    """Source files below ``root``, in sorted relative-path order."""
    root = Path(root)
    found = [
        PurePosixPath(path.relative_to(root).as_posix())
        for path in root.rglob(f"*{SOURCE_SUFFIX}")
        if path.is_file()
    ]
    return sorted(found)


def _transpile_task(
    root: str,
    relative: PurePosixPath,
    known_modules: Tuple[str, ...],
    config: CompilerConfig,
    hints: Optional[RemapConfig],
) -> TranspiledFile:
    """Worker entry point; runs in a pool process."""
    path = Path(root) / relative
    name = module_id(relative)
    kind = file_kind(relative)
    target = target_path(relative)
    try:
        result = transpile_file(path, name, config, hints, filename=relative.as_posix())
    except OSError as exc:
        error = TranspileError(f"cannot read {relative}: {exc}")
        diagnostics = ProgramDiagnostics()
        diagnostics.report(error)
        entry = _manifest_entry(name, relative.as_posix(), diagnostics)
        return TranspiledFile(relative, name, kind, target, None, entry, [error])

    dependencies: Tuple[str, ...] = ()
    if result.ast is not None:
        is_package = kind == KIND_LIB and len(relative.parts) > 1
        dependencies = module_dependencies(result.ast, name, known_modules, is_package)
    entry = replace(
        result.entry,
        source_path=relative.as_posix(),
        dependencies=dependencies,
        emitted_paths=(target.as_posix(),) if result.ok else (),
    )
    return TranspiledFile(
        relative, name, kind, target, result.rust_source, entry, result.errors
    )


def _failed_file(
    relative: PurePosixPath, error: TranspileError
) -> TranspiledFile:
    diagnostics = ProgramDiagnostics()
    diagnostics.report(error)
    name = module_id(relative)
    entry = _manifest_entry(name, relative.as_posix(), diagnostics)
    return TranspiledFile(
        relative, name, file_kind(relative), target_path(relative), None, entry, [error]
    )


def transpile_module(
    root: Path,
    jobs: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False,
    config: CompilerConfig = DEFAULT_CONFIG,
    hints: Optional[RemapConfig] = None,
) -> ModuleTranspilation:
    """Transpile every source file below ``root``.

    One failing file never stops the others. When ``cancel_event`` is set,
    files that have not started yet are skipped and listed as cancelled;
    finished files are kept.
    """
    root = Path(root)
    sources = discover_sources(root)
    known = tuple(module_id(relative) for relative in sources)
    manifest = ManifestBuilder(root)
    jobs = jobs or config.jobs or os.cpu_count() or 1
    finished: Dict[PurePosixPath, TranspiledFile] = {}
    cancelled: List[PurePosixPath] = []

    def collect(transpiled: TranspiledFile) -> None:
        finished[transpiled.source_path] = transpiled
        manifest.submit(transpiled.entry)

    logger.debug("Transpiling %d file(s) below %s with %d job(s)", len(sources), root, jobs)
    if jobs == 1 or len(sources) <= 1:
        for relative in tqdm(sources, desc="Transpiling", disable=not progress):
            if cancel_event is not None and cancel_event.is_set():
                cancelled.append(relative)
                continue
            try:
                collect(_transpile_task(str(root), relative, known, config, hints))
            except TranspileError as error:
                collect(_failed_file(relative, error))
    else:
        with ProcessPoolExecutor(max_workers=jobs) as executor:
            futures = {
                executor.submit(_transpile_task, str(root), relative, known, config, hints): relative
                for relative in sources
            }
            for future in tqdm(
                as_completed(futures), total=len(futures), desc="Transpiling", disable=not progress
            ):
                relative = futures[future]
                if future.cancelled():
                    cancelled.append(relative)
                    continue
                try:
                    collect(future.result())
                except TranspileError as error:
                    collect(_failed_file(relative, error))
                if cancel_event is not None and cancel_event.is_set():
                    for pending in futures:
                        pending.cancel()

    for relative in sorted(cancelled):
        logger.warning("Transpilation of %s cancelled", relative)
    files = [finished[relative] for relative in sources if relative in finished]
    return ModuleTranspilation(root, files, manifest, sorted(cancelled))


# ---------------------------------------------------------------------------
# Output


def write_text(path: Path, text: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing %s", path)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(text)
    return path


def write_module_output(
    transpilation: ModuleTranspilation,
    out_dir: Path,
    line_numbers: bool = False,
    emit_manifest: bool = False,
    overwrite_manifest: bool = True,
    dependencies: Optional[Dict[str, str]] = None,
    config: CompilerConfig = DEFAULT_CONFIG,
) -> List[Path]:
    """Write every emitted file below ``out_dir`` and optionally a Cargo.toml."""
    out_dir = Path(out_dir)
    written: List[Path] = []
    bin_target = lib_target = None
    for transpiled in transpilation.files:
        if not transpiled.ok:
            continue
        text = transpiled.rust_source
        if line_numbers:
            text = add_line_numbers(text)
        written.append(write_text(out_dir / transpiled.target_path, text))
        if len(transpiled.source_path.parts) == 1:
            if transpiled.kind == KIND_LIB:
                lib_target = transpiled.target_path
            elif transpiled.kind == KIND_MAIN:
                bin_target = transpiled.target_path

    if emit_manifest:
        manifest_path = write_cargo_manifest(
            out_dir, dependencies, bin_target, lib_target, overwrite_manifest, config
        )
        if manifest_path is not None:
            written.append(manifest_path)
    return written
