"""Tests for pipeline/driver.py - Single files and module trees."""

import threading
from pathlib import PurePosixPath

import pytest

from serpent.src.common.exceptions import SourceSyntaxError, UnsupportedSyntaxError
from serpent.src.manifest.builder import STATUS_FAILED
from serpent.src.pipeline.driver import (
    discover_sources,
    file_kind,
    read_source,
    target_path,
    transpile_file,
    transpile_module,
    transpile_source,
    write_module_output,
)

ADD = "def add(a: float, b: float) -> float:\n    return a + b\n"
SCRIPT = "import util\n\nx = 2.0\ny = x * 3\nprint(y)\n"
BLOCKED = "def f(a):\n    g = lambda v: v\n    return a\n"


def make_tree(root):
    root.mkdir(exist_ok=True)
    (root / "__main__.py").write_text(SCRIPT, encoding="utf-8")
    (root / "util.py").write_text(ADD, encoding="utf-8")
    (root / "bad.py").write_text(BLOCKED, encoding="utf-8")
    return root


class TestTranspileSource:
    """Tests for transpile_source()."""

    def test_success(self):
        """Test a clean file produces Rust and an ok entry."""
        result = transpile_source(ADD, "add.py")

        assert result.ok
        assert result.module == "add"
        assert result.rust_source.startswith("pub fn add(a: f64, b: f64) -> f64 {")
        assert result.entry.ok
        assert result.errors == []

    def test_syntax_error(self):
        """Test a parse failure stops before inference."""
        result = transpile_source("def f(:\n    pass\n", "broken.py")

        assert not result.ok
        assert result.inference is None
        assert isinstance(result.errors[0], SourceSyntaxError)
        assert result.entry.status == STATUS_FAILED

    def test_unsupported_construct(self):
        """Test one unsupported construct gives one error and no output."""
        result = transpile_source(BLOCKED, "blocked.py")

        assert result.rust_source is None
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], UnsupportedSyntaxError)
        assert len(result.entry.unsupported) == 1
        assert result.entry.unsupported[0][0].startswith("blocked.py:2:")

    def test_inference_failure_blocks_file(self):
        """Test a type error anywhere suppresses the whole file."""
        source = ADD + "\ndef bad(x):\n    y = 1.0\n    y = True\n    return y\n"
        result = transpile_source(source, "mixed.py")

        assert not result.ok
        assert "add" in result.lowering.functions
        assert result.errors[0].stage == "inference"


class TestPaths:
    """Tests for file kinds and target paths."""

    def test_kinds(self):
        """Test special file names."""
        assert file_kind(PurePosixPath("__init__.py")) == "lib"
        assert file_kind(PurePosixPath("__main__.py")) == "main"
        assert file_kind(PurePosixPath("pkg/util.py")) == "module"

    def test_targets(self):
        """Test where each file lands in the crate."""
        assert target_path(PurePosixPath("__init__.py")) == PurePosixPath("src/lib.rs")
        assert target_path(PurePosixPath("__main__.py")) == PurePosixPath("src/main.rs")
        assert target_path(PurePosixPath("pkg/util.py")) == PurePosixPath("src/pkg/util.rs")

    def test_discover_sources(self, tmp_path):
        """Test sources are found recursively in sorted order."""
        (tmp_path / "pkg").mkdir()
        for name in ("b.py", "a.py", "pkg/c.py", "notes.txt"):
            (tmp_path / name).write_text("", encoding="utf-8")

        assert discover_sources(tmp_path) == [
            PurePosixPath("a.py"),
            PurePosixPath("b.py"),
            PurePosixPath("pkg/c.py"),
        ]


class TestTranspileModule:
    """Tests for transpile_module() and write_module_output()."""

    def test_failures_are_isolated(self, tmp_path):
        """Test one bad file does not stop the others."""
        transpilation = transpile_module(make_tree(tmp_path), jobs=1)
        by_module = {f.module: f for f in transpilation.files}

        assert set(by_module) == {"__main__", "bad", "util"}
        assert by_module["util"].ok
        assert by_module["__main__"].ok
        assert not by_module["bad"].ok
        assert not transpilation.ok
        assert len(transpilation.errors()) == 1

    def test_manifest_is_complete(self, tmp_path):
        """Test every file gets exactly one manifest entry."""
        transpilation = transpile_module(make_tree(tmp_path), jobs=1)
        entries = {entry.module: entry for entry in transpilation.manifest.entries()}

        assert len(entries) == 3
        assert entries["__main__"].dependencies == ("util",)
        assert entries["__main__"].emitted_paths == ("src/main.rs",)
        assert entries["bad"].emitted_paths == ()
        assert transpilation.manifest.edges() == [("__main__", "util")]

    def test_cancelled_before_start(self, tmp_path):
        """Test a set cancel event skips every file."""
        cancel = threading.Event()
        cancel.set()
        transpilation = transpile_module(make_tree(tmp_path), jobs=1, cancel_event=cancel)

        assert transpilation.files == []
        assert len(transpilation.cancelled) == 3
        assert len(transpilation.manifest) == 0
        assert not transpilation.ok

    def test_write_output(self, tmp_path):
        """Test emitted files and the Cargo manifest are written."""
        source = make_tree(tmp_path / "in_tree")
        out = tmp_path / "crate"
        transpilation = transpile_module(source, jobs=1)
        written = write_module_output(transpilation, out, emit_manifest=True)

        assert sorted(p.relative_to(out).as_posix() for p in written) == [
            "Cargo.toml",
            "src/main.rs",
            "src/util.rs",
        ]
        cargo = (out / "Cargo.toml").read_text(encoding="utf-8")
        assert '[[bin]]\nname = "main"\npath = "src/main.rs"' in cargo
        assert "[lib]" not in cargo

    def test_line_numbers(self, tmp_path):
        """Test written files can carry line numbers."""
        source = make_tree(tmp_path / "in_tree")
        out = tmp_path / "crate"
        write_module_output(transpile_module(source, jobs=1), out, line_numbers=True)

        first = (out / "src" / "util.rs").read_text(encoding="utf-8").splitlines()[0]
        assert first == "1 pub fn add(a: f64, b: f64) -> f64 {"

    @pytest.mark.parametrize("jobs", [1, 2])
    def test_undecodable_file_is_isolated(self, tmp_path, jobs):
        """Test a file that is not UTF-8 fails alone with a located error."""
        root = make_tree(tmp_path)
        (root / "latin.py").write_bytes(b"x = 1\ny = '\xe9'\n")
        transpilation = transpile_module(root, jobs=jobs)
        by_module = {f.module: f for f in transpilation.files}

        assert by_module["util"].ok
        assert not by_module["latin"].ok
        error = by_module["latin"].errors[0]
        assert isinstance(error, SourceSyntaxError)
        assert error.one_line() == "latin.py:2:6: source is not valid UTF-8: cannot decode byte 0xe9"
        assert len(transpilation.manifest) == 4

    def test_syntax_error_through_pool(self, tmp_path):
        """Test syntax errors keep their message after crossing worker processes."""
        (tmp_path / "util.py").write_text(ADD, encoding="utf-8")
        (tmp_path / "broken.py").write_text("def f(:\n    pass\n", encoding="utf-8")
        transpilation = transpile_module(tmp_path, jobs=2)

        errors = transpilation.errors()
        assert len(errors) == 1
        assert isinstance(errors[0], SourceSyntaxError)
        assert errors[0].one_line().startswith("broken.py:1:")
        assert "unexpected token" in str(errors[0])

    def test_locations_relative_to_root(self, tmp_path):
        """Test errors name the file by its path inside the module tree."""
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "deep.py").write_text(BLOCKED, encoding="utf-8")
        (tmp_path / "deep.py").write_text(BLOCKED, encoding="utf-8")
        transpilation = transpile_module(tmp_path, jobs=1)

        lines = sorted(error.one_line() for error in transpilation.errors())
        assert lines[0].startswith("deep.py:2:")
        assert lines[1].startswith("pkg/deep.py:2:")
        entries = {entry.module: entry for entry in transpilation.manifest.entries()}
        assert entries["pkg.deep"].unsupported[0][0].startswith("pkg/deep.py:2:")


class TestTranspileFile:
    """Tests for transpile_file() and read_source()."""

    def test_undecodable_file(self, tmp_path):
        """Test undecodable bytes are collected as a parsing error."""
        path = tmp_path / "latin.py"
        path.write_bytes(b"\xff = 1\n")
        result = transpile_file(path, filename="latin.py")

        assert not result.ok
        assert result.module == "latin"
        assert result.errors[0].stage == "parsing"
        assert result.errors[0].one_line().startswith("latin.py:1:1: source is not valid UTF-8")
        assert result.entry.status == STATUS_FAILED

    def test_universal_newlines(self, tmp_path):
        """Test Windows line endings read the same as Unix ones."""
        path = tmp_path / "crlf.py"
        path.write_bytes(ADD.replace("\n", "\r\n").encode("utf-8"))

        assert read_source(path) == ADD
        assert transpile_file(path).ok
