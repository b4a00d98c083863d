"""Cargo.toml rendering for transpiled module trees."""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

from serpent.src.common.constants import DEFAULT_CONFIG, MANIFEST_AUTHOR, CompilerConfig
from serpent.src.common.exceptions import RemapError

logger = logging.getLogger(__name__)

CARGO_TOML = "Cargo.toml"

PathLike = Union[str, PurePosixPath, Path]


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def package_name_for(directory: Path) -> str:
    name = re.sub(r"[^A-Za-z0-9_-]", "_", Path(directory).resolve().name)
    return name or "transpiled"


def _target(header: str, path: PathLike) -> List[str]:
    path = PurePosixPath(Path(path).as_posix())
    return [header, f"name = {_quote(path.stem)}", f"path = {_quote(str(path))}"]


def render_cargo_toml(
    package_name: str,
    dependencies: Optional[Dict[str, Any]] = None,
    bin_target: Optional[PathLike] = None,
    lib_target: Optional[PathLike] = None,
    config: CompilerConfig = DEFAULT_CONFIG,
) -> str:
    """Render a Cargo manifest.

    ``ndarray`` is always a dependency. Extra dependencies come from a
    Remap.toml and must map a crate name to a version string; a Remap entry
    for ``ndarray`` overrides the default version.
    """
    crates: Dict[str, str] = {"ndarray": config.ndarray_version}
    for name, version in (dependencies or {}).items():
        if not isinstance(version, str):
            raise RemapError(
                f"TOML contents are not of expected format: dependency '{name}' "
                f"should be a version string, got {version!r}"
            )
        crates[name] = version

    lines = [
        "[package]",
        f"name = {_quote(package_name)}",
        f"version = {_quote(config.package_version)}",
        f"authors = [{_quote(MANIFEST_AUTHOR)}]",
        f"edition = {_quote(config.edition)}",
        "",
        "[dependencies]",
    ]
    lines.extend(f"{name} = {_quote(version)}" for name, version in crates.items())
    if lib_target is not None:
        lines.append("")
        lines.extend(_target("[lib]", lib_target))
    if bin_target is not None:
        lines.append("")
        lines.extend(_target("[[bin]]", bin_target))
    return "\n".join(lines) + "\n"


def write_cargo_manifest(
    out_dir: Path,
    dependencies: Optional[Dict[str, Any]] = None,
    bin_target: Optional[PathLike] = None,
    lib_target: Optional[PathLike] = None,
    overwrite: bool = True,
    config: CompilerConfig = DEFAULT_CONFIG,
) -> Optional[Path]:
    """Write ``<out_dir>/Cargo.toml``; returns None when an existing file is kept."""
    out_dir = Path(out_dir)
    manifest_path = out_dir / CARGO_TOML
    if manifest_path.exists():
        if not overwrite:
            logger.info("%s already exists, keeping it", manifest_path)
            return None
        logger.info("%s already exists, replacing it", manifest_path)

    content = render_cargo_toml(
        package_name_for(out_dir), dependencies, bin_target, lib_target, config
    )
    out_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Writing manifest into %s", manifest_path)
    with open(manifest_path, "w", encoding="utf-8") as handle:
        handle.write(content)
    return manifest_path
