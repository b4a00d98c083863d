"""Remap.toml loading: Cargo dependencies and parameter type hints."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import RemapError
from .source_location import SourceLocation

logger = logging.getLogger(__name__)


@dataclass
class RemapConfig:
    """Parsed contents of a Remap.toml file.

    ``hints`` maps a function key (``"func"`` or ``"module.func"``) to a table
    of parameter name to type hint string; the ``return`` key hints the
    function's return type.
    """

    dependencies: Dict[str, str] = field(default_factory=dict)
    hints: Dict[str, Dict[str, str]] = field(default_factory=dict)
    remaps: Dict[str, Any] = field(default_factory=dict)
    path: Optional[Path] = None

    def hints_for(self, module_name: Optional[str], function_name: str) -> Dict[str, str]:
        """Return hints for a function, module-qualified keys winning."""
        if module_name:
            qualified = self.hints.get(f"{module_name}.{function_name}")
            if qualified is not None:
                return qualified
        return self.hints.get(function_name, {})


def _expect_table(value: Any, what: str, path: Path) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise RemapError(
            f"TOML contents are not of expected format: {what} should be a table, "
            f"got {type(value).__name__}",
            SourceLocation(str(path)),
        )
    return value


def _flatten_hints(
    table: Dict[str, Any], path: Path, prefix: str = ""
) -> Dict[str, Dict[str, str]]:
    hints: Dict[str, Dict[str, str]] = {}
    for key, value in table.items():
        name = f"{prefix}{key}"
        value = _expect_table(value, f"hints.{name}", path)
        leaves = {k: v for k, v in value.items() if not isinstance(v, dict)}
        for param, hint in leaves.items():
            if not isinstance(hint, str):
                raise RemapError(
                    f"hint for '{name}.{param}' should be a string, got {hint!r}",
                    SourceLocation(str(path)),
                )
        if leaves:
            hints[name] = leaves
        nested = {k: v for k, v in value.items() if isinstance(v, dict)}
        hints.update(_flatten_hints(nested, path, prefix=f"{name}."))
    return hints


def load_remap(path: Path) -> RemapConfig:
    """Read and validate a Remap.toml file."""
    path = Path(path)
    try:
        with open(path, "rb") as handle:
            data = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RemapError(f"remap file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise RemapError(
            f"TOML deserialization error: {exc}", SourceLocation(str(path))
        ) from exc

    dependencies = _expect_table(data.pop("dependencies", {}), "dependencies", path)
    for name, version in dependencies.items():
        if not isinstance(version, str):
            raise RemapError(
                f"TOML contents are not of expected format: dependency '{name}' "
                f"should be a version string, got {version!r}",
                SourceLocation(str(path)),
            )

    hints = _flatten_hints(_expect_table(data.pop("hints", {}), "hints", path), path)
    if data:
        logger.debug("Keeping remap tables from %s: %s", path, ", ".join(sorted(data)))
    return RemapConfig(
        dependencies=dict(dependencies), hints=hints, remaps=data, path=path
    )


def detect_remap_file(
    target: Path, filename: str = "Remap.toml"
) -> Optional[Path]:
    """Find a remap file for a file or module target.

    A file looks in its own directory. A module looks in its directory, then
    in the parent directory.
    """
    target = Path(target)
    candidates = [target.parent] if target.is_file() else [target, target.parent]
    for directory in candidates:
        candidate = directory / filename
        if candidate.is_file():
            logger.debug("Detected remap file %s", candidate)
            return candidate
    return None
