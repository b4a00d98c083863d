from .emitter import RustEmitter, emit_module
from .formatting import add_line_numbers, line_number_width

"""Emission subpackage exports."""

__all__ = [
    # Main API
    "RustEmitter",
    "emit_module",
    # Presentation helpers
    "add_line_numbers",
    "line_number_width",
]
