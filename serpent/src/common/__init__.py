"""Common utilities shared across transpiler stages."""

from .diagnostics import ProgramDiagnostics, DiagnosticSeverity
from .source_location import SourceLocation
from .exceptions import (
    TranspileError,
    SourceSyntaxError,
    UnsupportedSyntaxError,
    InferenceError,
    EmissionError,
    RemapError,
)
from .constants import CompilerConfig, DEFAULT_CONFIG
from .remap import RemapConfig, load_remap, detect_remap_file

__all__ = [
    "ProgramDiagnostics",
    "DiagnosticSeverity",
    "SourceLocation",
    "TranspileError",
    "SourceSyntaxError",
    "UnsupportedSyntaxError",
    "InferenceError",
    "EmissionError",
    "RemapError",
    "CompilerConfig",
    "DEFAULT_CONFIG",
    "RemapConfig",
    "load_remap",
    "detect_remap_file",
]
