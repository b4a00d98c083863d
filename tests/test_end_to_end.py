"""
End-to-end tests for the serpent transpiler.
Runs the complete pipeline on sample programs: Python source -> AST -> types -> Rust AST -> Rust source
"""

from pathlib import Path

import pytest

from serpent.src.ast.base import walk
from serpent.src.ast.expressions import BinaryOp, Compare
from serpent.src.common.exceptions import UnsupportedSyntaxError
from serpent.src.ir.nodes import RS_Let, RS_Param, walk_rs
from serpent.src.pipeline.driver import transpile_file, transpile_module, transpile_source
from serpent.src.pipeline.steps import StepInspector
from serpent.src.semantic.intrinsics import literal_int
from serpent.src.semantic.type_system import (
    F64,
    ScalarType,
    combine,
    is_compatible,
    rust_type,
)

SAMPLE_DIR = Path(__file__).parent / "sample_programs"
sample_files = sorted(SAMPLE_DIR.glob("*.py"))


class TestSamplePrograms:
    """Transpile every sample program."""

    @pytest.mark.parametrize("sample_path", sample_files, ids=lambda p: p.name)
    def test_sample_transpiles(self, sample_path):
        """Test the sample produces Rust without errors."""
        result = transpile_file(sample_path)
        assert result.ok, [error.one_line() for error in result.errors]
        assert result.rust_source.endswith("}\n")

    @pytest.mark.parametrize("sample_path", sample_files, ids=lambda p: p.name)
    def test_output_is_stable(self, sample_path):
        """Test transpiling the same file twice gives identical output."""
        assert transpile_file(sample_path).rust_source == transpile_file(sample_path).rust_source

    @pytest.mark.parametrize("sample_path", sample_files, ids=lambda p: p.name)
    def test_declared_types_match_inference(self, sample_path):
        """Test every typed binding is declared with its inferred Rust type."""
        result = transpile_file(sample_path)
        for node in walk_rs(result.rs_module):
            if isinstance(node, (RS_Let, RS_Param)) and node.ty is not None and node.type_text:
                assert node.type_text.lstrip("&") == rust_type(node.ty)

    def test_operator_types_are_sound(self):
        """Test each inferred operator type matches the operator typing rules."""
        checked = 0
        for sample_path in sample_files:
            result = transpile_file(sample_path)
            types = result.inference.expr_types
            for node in walk(result.ast):
                if isinstance(node, BinaryOp):
                    pairs = [(node.op, node.left, node.right)]
                elif isinstance(node, Compare):
                    lefts = [node.left] + node.comparators[:-1]
                    pairs = list(zip(node.ops, lefts, node.comparators))
                else:
                    continue
                found = types.get(id(node))
                if found is None:
                    continue
                expected = None
                for op, left, right in pairs:
                    expected = combine(op, types[id(left)], types[id(right)])
                if isinstance(node, BinaryOp) and node.op == "**":
                    exponent = literal_int(node.right)
                    negative = exponent is not None and exponent < 0
                    if negative and isinstance(expected, ScalarType) and expected.kind.is_int:
                        expected = F64
                assert is_compatible(found, expected), f"{sample_path.name}:{node.line}"
                checked += 1
        assert checked > 0

    @pytest.mark.parametrize("sample_path", sample_files, ids=lambda p: p.name)
    def test_every_statement_line_has_steps(self, sample_path):
        """Test each line the Step Inspector completes matches the module output."""
        result = transpile_file(sample_path)
        inspector = StepInspector()
        source = sample_path.read_text(encoding="utf-8")
        for line in range(1, len(source.splitlines()) + 1):
            snapshot = inspector.inspect_source(source, line, str(sample_path))
            if not snapshot.complete:
                assert snapshot.failure[0] != "Rust source"
                continue
            for rust_line in snapshot.stage("Rust source").splitlines():
                assert rust_line.strip() in result.rust_source


class TestKnownOutputs:
    """Exact output for well-known programs."""

    def test_black_scholes(self):
        """Test the d1 term of Black-Scholes."""
        result = transpile_file(SAMPLE_DIR / "black_scholes.py")
        text = result.rust_source

        assert text.startswith("//! Black-Scholes building blocks.\n#![allow(non_snake_case)]\n\npub fn")
        assert (
            "    let d1: f64 = ((S / K).ln() + (r - q + 0.5 * sigma.powi(2)) * T) / (sigma * T.sqrt());\n"
            in text
        )
        assert "pub fn discount(r: f64, T: f64) -> f64 {" in text
        assert "mapv" not in text

    def test_floor_operators(self):
        """Test floor division, modulo and comparison chains keep Python semantics."""
        text = transpile_file(SAMPLE_DIR / "floor_ops.py").rust_source

        assert (
            "    return if index % width != 0 && (index % width < 0) != (width < 0) "
            "{ index / width - 1 } else { index / width };\n" in text
        )
        assert (
            "    return { let r = angle % period; "
            "if r != 0.0 && (r < 0.0) != (period < 0.0) { r + period } else { r } };\n" in text
        )
        assert "    return { let m0 = x * 2.0; lo <= m0 && m0 < hi };\n" in text
        assert "euclid" not in text

    def test_conflicting_shape_fails_file(self):
        """Test a name bound to an array and a scalar fails with its location."""
        source = (
            "import numpy as np\n"
            "\n"
            "def pick(flag: bool):\n"
            "    if flag:\n"
            "        x = np.zeros(3)\n"
            "    else:\n"
            "        x = 1.0\n"
            "    return x\n"
        )
        result = transpile_source(source, "pick.py")

        assert result.rust_source is None
        assert [error.reason for error in result.errors] == ["conflicting shape"]
        assert result.errors[0].one_line().startswith("pick.py:7:")

    def test_one_error_per_construct(self):
        """Test each unsupported construct is reported exactly once."""
        source = (
            "def f(a):\n"
            "    g = lambda v: v\n"
            "    with open(a) as h:\n"
            "        pass\n"
            "    return [v for v in a]\n"
        )
        result = transpile_source(source, "many.py")
        errors = [e for e in result.errors if isinstance(e, UnsupportedSyntaxError)]

        assert sorted(error.line for error in errors) == [2, 3, 5]
        assert len(result.errors) == 3


class TestModuleTree:
    """Transpile a whole directory."""

    def test_tree_manifest_lists_every_file(self, tmp_path):
        """Test each file of the tree has one manifest entry, ok or failed."""
        for sample in sample_files:
            (tmp_path / sample.name).write_text(sample.read_text(encoding="utf-8"), encoding="utf-8")
        (tmp_path / "broken.py").write_text("def f(:\n", encoding="utf-8")

        transpilation = transpile_module(tmp_path, jobs=1)
        entries = {entry.module: entry for entry in transpilation.manifest.entries()}

        assert set(entries) == {path.stem for path in sample_files} | {"broken"}
        assert not entries["broken"].ok
        assert all(entries[path.stem].ok for path in sample_files)
