from .driver import (
    ModuleTranspilation,
    TranspiledFile,
    TranspileResult,
    discover_sources,
    file_kind,
    target_path,
    transpile_file,
    transpile_module,
    transpile_source,
    write_module_output,
    write_text,
)
from .steps import StepInspector, StepSnapshot, find_statement

"""Pipeline subpackage exports."""

__all__ = [
    # Transpilation
    "TranspileResult",
    "TranspiledFile",
    "ModuleTranspilation",
    "transpile_source",
    "transpile_file",
    "transpile_module",
    "discover_sources",
    "file_kind",
    "target_path",
    "write_module_output",
    "write_text",
    # Step Inspector
    "StepInspector",
    "StepSnapshot",
    "find_statement",
]
