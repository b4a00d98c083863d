"""
Transpilation report for a module tree.

Workers hand their finished entries to a single ManifestBuilder, which is the
only writer of the report. Entries are frozen so a worker cannot change one
after submitting it.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from serpent.src.ast.statements import Import, ImportFrom, Module
from serpent.src.common.constants import LIB_MODULE, MAIN_MODULE

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class ManifestEntry:
    """Outcome of transpiling one source file."""

    module: str
    source_path: str
    emitted_paths: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    # (location, reason) pairs, one per construct
    unsupported: Tuple[Tuple[str, str], ...] = ()
    status: str = STATUS_OK
    errors: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.status not in (STATUS_OK, STATUS_FAILED):
            raise ValueError(f"Unknown manifest status: {self.status!r}")
        if self.status == STATUS_FAILED and self.emitted_paths:
            raise ValueError(f"Failed module '{self.module}' cannot have emitted files")

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "source_path": self.source_path,
            "emitted_paths": list(self.emitted_paths),
            "dependencies": list(self.dependencies),
            "unsupported": [
                {"location": location, "reason": reason}
                for location, reason in self.unsupported
            ],
            "status": self.status,
            "errors": list(self.errors),
        }


class ManifestBuilder:
    """Collects one ManifestEntry per module of a tree."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._entries: Dict[str, ManifestEntry] = {}
        self._lock = threading.Lock()

    def submit(self, entry: ManifestEntry) -> None:
        with self._lock:
            if entry.module in self._entries:
                raise ValueError(f"Module '{entry.module}' was already reported")
            self._entries[entry.module] = entry
        logger.debug("Manifest entry for %s: %s", entry.module, entry.status)

    def entries(self) -> List[ManifestEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.module)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def edges(self) -> List[Tuple[str, str]]:
        return sorted(
            (entry.module, dependency)
            for entry in self.entries()
            for dependency in entry.dependencies
        )

    def to_report(self) -> Dict[str, Any]:
        entries = self.entries()
        ok = sum(1 for entry in entries if entry.ok)
        return {
            "root": self.root.as_posix(),
            "modules": [entry.to_dict() for entry in entries],
            "edges": [list(edge) for edge in self.edges()],
            "summary": {"total": len(entries), "ok": ok, "failed": len(entries) - ok},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_report(), sort_keys=True, indent=2) + "\n"

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(self.to_json())
        logger.info("Wrote transpilation report to %s", path)
        return path


# ---------------------------------------------------------------------------
# Module identifiers and dependency edges


def module_id(relative_path: PurePath) -> str:
    """Dotted module name of a file relative to the tree root.

    ``pkg/__init__.py`` is ``pkg``; the root's own ``__init__.py`` and
    ``__main__.py`` keep their file stems.
    """
    parts = list(PurePath(relative_path).with_suffix("").parts)
    if len(parts) > 1 and parts[-1] == LIB_MODULE:
        parts.pop()
    return ".".join(parts)


def _package_of(module: str, is_package: bool) -> str:
    if module in (LIB_MODULE, MAIN_MODULE):
        return ""
    if is_package:
        return module
    return module.rpartition(".")[0]


def _resolve_relative(package: str, level: int, name: Optional[str]) -> Optional[str]:
    parts = package.split(".") if package else []
    up = level - 1
    if up > len(parts):
        return None
    base = parts[: len(parts) - up] if up else parts
    if name:
        base = base + name.split(".")
    return ".".join(base)


def module_dependencies(
    module: Module, module_name: str, known: Iterable[str], is_package: bool = False
) -> Tuple[str, ...]:
    """Tree-local modules imported by ``module``, sorted and de-duplicated.

    Imports of modules outside the tree, such as numpy or math, are not
    dependencies.
    """
    known_modules: Set[str] = set(known)
    found: Set[str] = set()

    def add(candidate: Optional[str]) -> bool:
        if candidate and candidate in known_modules and candidate != module_name:
            found.add(candidate)
            return True
        return False

    for stmt in module.body:
        if isinstance(stmt, Import):
            for name, _ in stmt.names:
                add(name)
        elif isinstance(stmt, ImportFrom):
            if stmt.level:
                package = _package_of(module_name, is_package)
                base = _resolve_relative(package, stmt.level, stmt.module)
            else:
                base = stmt.module
            if base is None:
                continue
            submodules = False
            for name, _ in stmt.names or []:
                target = f"{base}.{name}" if base else name
                submodules = add(target) or submodules
            if not submodules:
                add(base)
    return tuple(sorted(found))
