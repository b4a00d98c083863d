"""
Tests for the CLI module (serpent/cli.py).

These tests cover the transpile and steps commands and their error reporting.
"""

import json

import pytest
from click.testing import CliRunner

from serpent.cli import CliError, log_level_for, main

ADD = "def add(a: float, b: float) -> float:\n    return a + b\n"
BLOCKED = "def f(a):\n    g = lambda v: v\n    return a\n"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "add.py"
    path.write_text(ADD, encoding="utf-8")
    return path


@pytest.fixture
def module_dir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    (root / "__main__.py").write_text("x = 2.0\nprint(x)\n", encoding="utf-8")
    (root / "util.py").write_text(ADD, encoding="utf-8")
    return root


class TestTranspileFile:
    """Tests for transpiling a single file."""

    def test_prints_fenced_result(self, runner, source_file):
        """Test the Rust source is printed inside a fence."""
        result = runner.invoke(main, ["transpile", str(source_file)])

        assert result.exit_code == 0
        assert result.output == (
            f"Transpile result for '{source_file}':\n"
            "```\n"
            "pub fn add(a: f64, b: f64) -> f64 {\n"
            "    return a + b;\n"
            "}\n"
            "```\n"
        )

    def test_alias_and_line_numbers(self, runner, source_file):
        """Test tp is an alias and -l numbers the lines."""
        result = runner.invoke(main, ["tp", str(source_file), "-l"])

        assert result.exit_code == 0
        assert "1 pub fn add(a: f64, b: f64) -> f64 {\n2     return a + b;\n3 }\n" in result.output

    def test_output_file(self, runner, source_file, tmp_path):
        """Test -o writes the Rust source to a file."""
        out = tmp_path / "add.rs"
        result = runner.invoke(main, ["transpile", str(source_file), "-o", str(out)])

        assert result.exit_code == 0
        assert out.read_text(encoding="utf-8").startswith("pub fn add(")

    def test_errors_exit_nonzero(self, runner, tmp_path):
        """Test transpilation errors are printed and exit with status 1."""
        path = tmp_path / "blocked.py"
        path.write_text(BLOCKED, encoding="utf-8")
        result = runner.invoke(main, ["transpile", str(path)])

        assert result.exit_code == 1
        assert "error: " in result.output
        assert "unsupported syntax: lambda expression" in result.output

    def test_each_error_printed_once(self, runner, tmp_path):
        """Test an error is printed once even with verbose logging."""
        path = tmp_path / "blocked.py"
        path.write_text(BLOCKED, encoding="utf-8")
        result = runner.invoke(main, ["-v", "transpile", str(path)])

        assert result.exit_code == 1
        assert result.output.count("unsupported syntax: lambda expression") == 1
        assert "ERROR [" not in result.output

    def test_report(self, runner, source_file, tmp_path):
        """Test --report writes a JSON transpilation report."""
        report = tmp_path / "report.json"
        result = runner.invoke(main, ["transpile", str(source_file), "--report", str(report)])

        assert result.exit_code == 0
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"] == {"total": 1, "ok": 1, "failed": 0}


class TestTranspileModule:
    """Tests for transpiling a directory."""

    def test_writes_crate(self, runner, module_dir, tmp_path):
        """Test a directory becomes a crate with a Cargo.toml."""
        out = tmp_path / "crate"
        result = runner.invoke(
            main, ["transpile", str(module_dir), "-o", str(out), "--emit-manifest"]
        )

        assert result.exit_code == 0, result.output
        assert (out / "src" / "main.rs").exists()
        assert (out / "src" / "util.rs").exists()
        assert "[[bin]]" in (out / "Cargo.toml").read_text(encoding="utf-8")

    def test_prints_every_file(self, runner, module_dir):
        """Test without -o each file is printed in its own fence."""
        result = runner.invoke(main, ["transpile", str(module_dir), "-j", "1"])

        assert result.exit_code == 0
        assert result.output.count("Transpile result for") == 2

    def test_undecodable_file_in_tree(self, runner, module_dir):
        """Test one undecodable file fails alone and the others are still printed."""
        (module_dir / "latin.py").write_bytes(b"\xff = 1\n")
        result = runner.invoke(main, ["transpile", str(module_dir), "-j", "1"])

        assert result.exit_code == 1
        assert result.output.count("Transpile result for") == 2
        assert "error: latin.py:1:1: source is not valid UTF-8" in result.output

    def test_remap_dependencies(self, runner, module_dir, tmp_path):
        """Test Remap.toml dependencies reach the Cargo manifest."""
        (module_dir / "Remap.toml").write_text('[dependencies]\nrand = "0.8"\n', encoding="utf-8")
        out = tmp_path / "crate"
        result = runner.invoke(
            main, ["transpile", str(module_dir), "-o", str(out), "--emit-manifest"]
        )

        assert result.exit_code == 0, result.output
        assert 'rand = "0.8"' in (out / "Cargo.toml").read_text(encoding="utf-8")


class TestArgumentErrors:
    """Tests for command line problems."""

    def test_missing_input(self, runner, tmp_path):
        """Test a missing path is reported."""
        missing = tmp_path / "nope.py"
        result = runner.invoke(main, ["transpile", str(missing)])

        assert result.exit_code == 1
        assert f"error: file or directory not found for '{missing}'" in result.output

    def test_manifest_needs_module(self, runner, source_file):
        """Test --emit-manifest is rejected for a single file."""
        result = runner.invoke(main, ["transpile", str(source_file), "--emit-manifest"])

        assert result.exit_code == 1
        assert "redundant parameter" in result.output

    def test_directory_output_for_file(self, runner, source_file, tmp_path):
        """Test a file cannot be written to a directory."""
        result = runner.invoke(main, ["transpile", str(source_file), "-o", str(tmp_path)])

        assert result.exit_code == 1
        assert "is not a file" in result.output

    def test_remap_options_conflict(self, runner, source_file, tmp_path):
        """Test --remap-file and --no-remap cannot be combined."""
        remap = tmp_path / "Remap.toml"
        remap.write_text("", encoding="utf-8")
        result = runner.invoke(
            main, ["transpile", str(source_file), "-m", str(remap), "--no-remap"]
        )

        assert result.exit_code == 1
        assert "redundant parameter" in result.output

    def test_bad_remap_file(self, runner, source_file, tmp_path):
        """Test a malformed Remap.toml stops before transpiling."""
        remap = tmp_path / "Remap.toml"
        remap.write_text("[dependencies\n", encoding="utf-8")
        result = runner.invoke(main, ["transpile", str(source_file)])

        assert result.exit_code == 1
        assert "TOML deserialization error" in result.output

    def test_unknown_error_kind(self):
        """Test CliError only accepts known kinds."""
        with pytest.raises(ValueError):
            CliError("Mystery", "x")


class TestSteps:
    """Tests for the steps command."""

    def test_steps_for_line(self, runner, source_file):
        """Test every stage is printed for a lowered line."""
        result = runner.invoke(main, ["steps", str(source_file), "-l", "2"])

        assert result.exit_code == 0
        assert "Python source:\n    return a + b\n" in result.output
        assert result.output.rstrip().endswith("Rust source:\nreturn a + b;")

    def test_steps_stop(self, runner, source_file):
        """Test a line outside the file exits with an error."""
        result = runner.invoke(main, ["steps", str(source_file), "-l", "9"])

        assert result.exit_code == 1
        assert "error: line 9 is out of range (1-2)" in result.output

    def test_undecodable_file(self, runner, tmp_path):
        """Test a file that is not UTF-8 is reported without a traceback."""
        path = tmp_path / "latin.py"
        path.write_bytes(b"x = 1\ny = \xff\n")
        result = runner.invoke(main, ["steps", str(path), "-l", "2"])

        assert result.exit_code == 1
        assert "latin.py:2:5: source is not valid UTF-8" in result.output
        assert not isinstance(result.exception, UnicodeDecodeError)

    def test_line_is_required(self, runner, source_file):
        """Test -l must be given."""
        result = runner.invoke(main, ["steps", str(source_file)])
        assert result.exit_code == 2

    def test_module_root(self, runner, module_dir):
        """Test INPUT may be relative to the module root."""
        result = runner.invoke(main, ["steps", "util.py", "-l", "2", "-m", str(module_dir)])
        assert result.exit_code == 0, result.output


class TestLogLevel:
    """Tests for -v and -q counting."""

    def test_levels(self):
        """Test verbosity flags map to logging levels."""
        assert log_level_for(0, 0) == "warning"
        assert log_level_for(1, 0) == "info"
        assert log_level_for(2, 0) == "debug"
        assert log_level_for(0, 1) == "error"
        assert log_level_for(0, 2) == "critical"
