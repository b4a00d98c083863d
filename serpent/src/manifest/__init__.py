from .builder import (
    STATUS_FAILED,
    STATUS_OK,
    ManifestBuilder,
    ManifestEntry,
    module_dependencies,
    module_id,
)
from .cargo import render_cargo_toml, write_cargo_manifest

"""Manifest subpackage exports."""

__all__ = [
    "ManifestBuilder",
    "ManifestEntry",
    "STATUS_OK",
    "STATUS_FAILED",
    "module_dependencies",
    "module_id",
    "render_cargo_toml",
    "write_cargo_manifest",
]
