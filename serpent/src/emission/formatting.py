"""Text helpers for presenting emitted and source text."""

from __future__ import annotations

import math


def line_number_width(count: int) -> int:
    if count <= 0:
        return 1
    return int(math.floor(math.log10(count))) + 1


def add_line_numbers(text: str) -> str:
    """Prefix every line with its 1-based number, right-aligned, and a space."""

    lines = text.splitlines()
    if not lines:
        return ""
    width = line_number_width(len(lines))
    numbered = "\n".join(f"{number:>{width}} {line}" for number, line in enumerate(lines, 1))
    return numbered + ("\n" if text.endswith("\n") else "")
