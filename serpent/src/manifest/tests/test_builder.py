"""Tests for manifest/builder.py - Transpilation reports and module edges."""

import json
from pathlib import PurePath

import pytest

from serpent.src.manifest.builder import (
    STATUS_FAILED,
    ManifestBuilder,
    ManifestEntry,
    module_dependencies,
    module_id,
)
from serpent.src.parsing.parser import SourceParser


class TestManifestEntry:
    """Tests for ManifestEntry validation."""

    def test_unknown_status(self):
        """Test only ok and failed are accepted."""
        with pytest.raises(ValueError, match="Unknown manifest status"):
            ManifestEntry("a", "a.py", status="skipped")

    def test_failed_entry_has_no_outputs(self):
        """Test failed modules cannot list emitted files."""
        with pytest.raises(ValueError, match="cannot have emitted files"):
            ManifestEntry("a", "a.py", emitted_paths=("a.rs",), status=STATUS_FAILED)

    def test_to_dict(self):
        """Test unsupported constructs are reported as location and reason."""
        entry = ManifestEntry(
            "a",
            "a.py",
            unsupported=(("a.py:2:5", "unsupported syntax: lambda"),),
            status=STATUS_FAILED,
        )
        data = entry.to_dict()

        assert not entry.ok
        assert data["unsupported"] == [
            {"location": "a.py:2:5", "reason": "unsupported syntax: lambda"}
        ]
        assert data["emitted_paths"] == []


class TestManifestBuilder:
    """Tests for ManifestBuilder."""

    def build(self, tmp_path):
        builder = ManifestBuilder(tmp_path)
        builder.submit(ManifestEntry("pkg.main", "pkg/main.py", ("pkg/main.rs",), ("pkg.util",)))
        builder.submit(ManifestEntry("pkg.util", "pkg/util.py", ("pkg/util.rs",)))
        builder.submit(ManifestEntry("bad", "bad.py", status=STATUS_FAILED, errors=("boom",)))
        return builder

    def test_entries_sorted(self, tmp_path):
        """Test entries come back ordered by module name."""
        builder = self.build(tmp_path)
        assert [entry.module for entry in builder.entries()] == ["bad", "pkg.main", "pkg.util"]
        assert len(builder) == 3

    def test_duplicate_module(self, tmp_path):
        """Test a module can be reported only once."""
        builder = self.build(tmp_path)
        with pytest.raises(ValueError, match="already reported"):
            builder.submit(ManifestEntry("bad", "bad.py"))

    def test_report(self, tmp_path):
        """Test the report carries edges and a summary."""
        report = self.build(tmp_path).to_report()

        assert report["edges"] == [["pkg.main", "pkg.util"]]
        assert report["summary"] == {"total": 3, "ok": 2, "failed": 1}

    def test_write(self, tmp_path):
        """Test the report is written as JSON, creating parent directories."""
        path = self.build(tmp_path).write(tmp_path / "out" / "report.json")
        data = json.loads(path.read_text(encoding="utf-8"))

        assert len(data["modules"]) == 3
        assert path.read_text(encoding="utf-8").endswith("\n")


class TestModuleIds:
    """Tests for module_id()."""

    def test_plain_file(self):
        """Test path separators become dots."""
        assert module_id(PurePath("pkg/util.py")) == "pkg.util"

    def test_package_init(self):
        """Test a package's __init__ names the package."""
        assert module_id(PurePath("pkg/__init__.py")) == "pkg"

    def test_root_special_files(self):
        """Test root __init__ and __main__ keep their stems."""
        assert module_id(PurePath("__init__.py")) == "__init__"
        assert module_id(PurePath("__main__.py")) == "__main__"


class TestModuleDependencies:
    """Tests for module_dependencies()."""

    known = {"pkg", "pkg.main", "pkg.util", "pkg.core"}

    def deps(self, source, name="pkg.main", is_package=False):
        module = SourceParser().parse(source)
        return module_dependencies(module, name, self.known, is_package)

    def test_external_imports_ignored(self):
        """Test imports from outside the tree are not edges."""
        assert self.deps("import numpy as np\nfrom math import sqrt\n") == ()

    def test_absolute_imports(self):
        """Test absolute imports of tree modules."""
        assert self.deps("import pkg.util\nfrom pkg.core import helper\n") == (
            "pkg.core",
            "pkg.util",
        )

    def test_relative_submodule(self):
        """Test from . import x resolves to the sibling module."""
        assert self.deps("from . import util\n") == ("pkg.util",)

    def test_relative_from_package(self):
        """Test relative imports inside a package __init__."""
        assert self.deps("from .core import helper\n", name="pkg", is_package=True) == ("pkg.core",)

    def test_self_import_ignored(self):
        """Test a module never depends on itself."""
        assert self.deps("import pkg.main\n") == ()
