"""Shared constants and transpiler configuration."""

from dataclasses import dataclass
from typing import Optional

# Pipeline stage names, used in diagnostics and step snapshots
STAGE_PARSING = "parsing"
STAGE_INFERENCE = "inference"
STAGE_LOWERING = "lowering"
STAGE_EMISSION = "emission"

STEP_PYTHON_SOURCE = "Python source"
STEP_PYTHON_AST = "Python AST"
STEP_RUST_AST = "Rust AST"
STEP_RUST_SOURCE = "Rust source"
STEP_NAMES = (STEP_PYTHON_SOURCE, STEP_PYTHON_AST, STEP_RUST_AST, STEP_RUST_SOURCE)

# Special module file names and the Rust files they become
LIB_MODULE = "__init__"
MAIN_MODULE = "__main__"
LIB_RS = "lib.rs"
MAIN_RS = "main.rs"

MANIFEST_AUTHOR = "automatically transpiled by serpent"

RUST_KEYWORDS = frozenset(
    {
        "as", "async", "await", "break", "const", "continue", "crate", "dyn",
        "else", "enum", "extern", "false", "fn", "for", "if", "impl", "in",
        "let", "loop", "match", "mod", "move", "mut", "pub", "ref", "return",
        "static", "struct", "super", "trait", "true", "type", "union",
        "unsafe", "use", "where", "while", "abstract", "become", "box", "do",
        "final", "macro", "override", "priv", "try", "typeof", "unsized",
        "virtual", "yield",
    }
)

# These cannot be raw identifiers in Rust
RUST_NON_RAW_KEYWORDS = frozenset({"crate", "self", "Self", "super"})


@dataclass(frozen=True)
class CompilerConfig:
    """Settings threaded through every stage of the pipeline."""

    default_float: str = "f64"
    default_int: str = "i64"
    default_array_rank: int = 1
    indent: str = "    "
    edition: str = "2018"
    package_version: str = "0.1.0"
    ndarray_version: str = "0.15"
    remap_filename: str = "Remap.toml"
    jobs: Optional[int] = None


DEFAULT_CONFIG = CompilerConfig()
