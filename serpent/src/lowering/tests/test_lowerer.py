"""Tests for lowering - Typed source to target AST."""

from serpent.src.common.diagnostics import ProgramDiagnostics
from serpent.src.emission.emitter import RustEmitter
from serpent.src.ir.nodes import RS_Return
from serpent.src.lowering.lowerer import RustLowerer
from serpent.src.parsing.parser import SourceParser
from serpent.src.semantic.analyzer import TypeInferencer


def lower(source):
    module = SourceParser().parse(source, "prog.py")
    diagnostics = ProgramDiagnostics()
    inference = TypeInferencer(diagnostics, module_name="prog").infer_module(module)
    lowering = RustLowerer(inference, diagnostics).lower_module(module)
    return module, lowering


def emit(source):
    _, lowering = lower(source)
    assert lowering.ok, [error.message for error in lowering.unsupported]
    return RustEmitter().emit(lowering.rs_module)


BLACK_SCHOLES = """from math import log, sqrt

def d1_value(S, K, r, q, T, sigma):
    d1 = (log(S / K) + (r - q + 0.5 * sigma ** 2) * T) / (sigma * sqrt(T))
    return d1
"""


class TestScalarFunctions:
    """Tests for scalar arithmetic lowering."""

    def test_add(self):
        """Test the smallest annotated function."""
        text = emit("def add(a: float, b: float) -> float:\n    return a + b\n")
        assert text == "pub fn add(a: f64, b: f64) -> f64 {\n    return a + b;\n}\n"

    def test_black_scholes_d1(self):
        """Test math calls become float methods and powers use powi."""
        text = emit(BLACK_SCHOLES)
        assert text == (
            "#![allow(non_snake_case)]\n"
            "\n"
            "pub fn d1_value(S: f64, K: f64, r: f64, q: f64, T: f64, sigma: f64) -> f64 {\n"
            "    let d1: f64 = ((S / K).ln() + (r - q + 0.5 * sigma.powi(2)) * T) / (sigma * T.sqrt());\n"
            "    return d1;\n"
            "}\n"
        )
        assert "mapv" not in text
        assert "ndarray" not in text

    def test_round_uses_ties_even(self):
        """Test round() keeps banker's rounding."""
        text = emit("def r(x: float) -> int:\n    return round(x)\n")
        assert "x.round_ties_even() as i64" in text

    def test_range_loop(self):
        """Test range() loops become Rust ranges."""
        source = (
            "def count(n: int) -> int:\n"
            "    total = 0\n"
            "    for i in range(n):\n"
            "        total += i\n"
            "    return total\n"
        )
        text = emit(source)
        assert "let mut total: i64 = 0;" in text
        assert "for i in 0_i64..n {" in text
        assert "total += i;" in text


class TestFloorSemantics:
    """Tests for // and % rounding toward negative infinity."""

    def test_int_floor_division(self):
        """Test -7 // 2 == -4 and -7 // -2 == 3 are kept by a sign correction."""
        text = emit("def fd(a: int, b: int) -> int:\n    return a // b\n")
        assert (
            "return if a % b != 0 && (a % b < 0) != (b < 0) { a / b - 1 } else { a / b };"
            in text
        )
        assert "div_euclid" not in text

    def test_int_modulo_takes_divisor_sign(self):
        """Test -7 % -2 == -1 and 7 % -2 == -1 by adding the divisor back."""
        text = emit("def fm(a: int, b: int) -> int:\n    return a % b\n")
        assert (
            "return { let r = a % b; if r != 0 && (r < 0) != (b < 0) { r + b } else { r } };"
            in text
        )
        assert "rem_euclid" not in text

    def test_float_modulo(self):
        """Test 5.5 % -2.0 == -0.5 uses float zero literals."""
        text = emit("def fm(a: float, b: float) -> float:\n    return a % b\n")
        assert "let r = a % b; if r != 0.0 && (r < 0.0) != (b < 0.0) { r + b } else { r }" in text

    def test_float_floor_division(self):
        """Test float // floors the true quotient."""
        text = emit("def fd(a: float, b: float) -> float:\n    return a // b\n")
        assert "return (a / b).floor();" in text

    def test_operands_evaluated_once(self):
        """Test compound operands are bound before the sign checks."""
        text = emit("def fd(a: int, b: int) -> int:\n    return (a + 1) // (b - 1)\n")
        assert "{ let n = a + 1; let d = b - 1; if n % d != 0" in text
        assert "{ n / d - 1 } else { n / d } }" in text

    def test_negative_literal_operands(self):
        """Test literal operands are suffixed so the arithmetic stays i64."""
        text = emit("def fd() -> int:\n    return -7 // -2\n")
        assert "-7_i64 / -2_i64 - 1" in text

    def test_temporaries_avoid_source_names(self):
        """Test a source variable named r is not shadowed."""
        text = emit("def fm(r: int, b: int) -> int:\n    return (r + 1) % b\n")
        assert "let n = r + 1; let r_ = n % b;" in text


class TestChainedComparison:
    """Tests for comparison chains."""

    def test_simple_chain(self):
        """Test a chain of names becomes a conjunction."""
        text = emit("def between(x: float, lo: float, hi: float) -> bool:\n    return lo < x < hi\n")
        assert "return lo < x && x < hi;" in text

    def test_shared_operand_evaluated_once(self):
        """Test a computed middle operand is bound once."""
        text = emit(
            "def between(x: float, lo: float, hi: float) -> bool:\n    return lo < x * 2.0 < hi\n"
        )
        assert "return { let m0 = x * 2.0; lo < m0 && m0 < hi };" in text

    def test_longer_chain_binds_each_operand(self):
        """Test every shared operand gets its own temporary."""
        text = emit(
            "def ordered(a: float, b: float, c: float, d: float) -> bool:\n"
            "    return a < b + 1.0 < c + 1.0 < d\n"
        )
        assert "let m0 = b + 1.0; let m1 = c + 1.0; a < m0 && m0 < m1 && m1 < d" in text


class TestArrays:
    """Tests for array lowering."""

    def test_borrowed_sum_loop(self):
        """Test read-only array parameters are borrowed."""
        source = (
            "import numpy as np\n"
            "\n"
            'def total(a: "f64[:]") -> float:\n'
            "    s = 0.0\n"
            "    for v in a:\n"
            "        s += v\n"
            "    return s\n"
        )
        assert emit(source) == (
            "use ndarray::prelude::*;\n"
            "\n"
            "pub fn total(a: &Array1<f64>) -> f64 {\n"
            "    let mut s: f64 = 0.0;\n"
            "    for &v in a.iter() {\n"
            "        s += v;\n"
            "    }\n"
            "    return s;\n"
            "}\n"
        )

    def test_zeros(self):
        """Test np.zeros becomes an ndarray constructor."""
        text = emit("import numpy as np\n\ndef make():\n    x = np.zeros(3)\n    return x\n")
        assert "Array1::<f64>::zeros(3)" in text
        assert "-> Array1<f64> {" in text
        assert text.startswith("use ndarray::prelude::*;\n")

    def test_elementwise_sqrt_and_sum(self):
        """Test elementwise math maps over the array and reductions call sum()."""
        source = (
            "import numpy as np\n"
            "\n"
            'def norm(a: "f64[:]") -> float:\n'
            "    return np.sum(np.sqrt(a))\n"
        )
        text = emit(source)
        assert "a.mapv(f64::sqrt)" in text
        assert ".sum()" in text

    def test_missing_lowering_rule(self):
        """Test a typed call without a lowering rule is reported."""
        source = (
            "import numpy as np\n"
            "\n"
            'def pos(a: "f64[:]"):\n'
            "    return np.where(a > 0.0, a, 0.0)\n"
        )
        _, lowering = lower(source)

        assert not lowering.ok
        assert "where" in lowering.unsupported[0].message
        assert lowering.unsupported[0].line == 4

    def test_every_gap_in_a_statement(self):
        """Test two calls without a lowering rule in one statement give two errors."""
        source = (
            "import numpy as np\n"
            "\n"
            'def pos(a: "f64[:]", b: "f64[:]"):\n'
            "    return np.where(a > 0.0, a, 0.0) + np.where(b > 0.0, b, 0.0)\n"
        )
        _, lowering = lower(source)

        assert len(lowering.unsupported) == 2
        assert [error.line for error in lowering.unsupported] == [4, 4]
        assert [error.column for error in lowering.unsupported] == [12, 40]

    def test_gaps_in_call_arguments(self):
        """Test each failing argument of a call is reported."""
        source = (
            "import numpy as np\n"
            "\n"
            'def show(a: "f64[:]"):\n'
            "    print(np.where(a > 0.0, a, 0.0), np.where(a < 0.0, a, 0.0))\n"
        )
        _, lowering = lower(source)
        assert len(lowering.unsupported) == 2


class TestModule:
    """Tests for module level lowering."""

    def test_script(self):
        """Test constants stay global and the rest becomes main()."""
        assert emit("x = 2.0\ny = x * 3\nprint(y)\n") == (
            "#![allow(non_upper_case_globals)]\n"
            "\n"
            "pub const x: f64 = 2.0;\n"
            "\n"
            "pub fn main() {\n"
            "    let y: f64 = x * 3.0;\n"
            '    println!("{:?}", y);\n'
            "}\n"
        )

    def test_print_inlines_strings(self):
        """Test string literals become part of the format template."""
        text = emit('def show(n: int):\n    print("n =", n)\n')
        assert 'println!("n = {}", n);' in text

    def test_blocked_function_is_skipped(self):
        """Test a function with unsupported syntax produces no item."""
        source = "def f(a):\n    g = lambda v: v\n    return a\n\ndef h(x):\n    return x\n"
        _, lowering = lower(source)

        assert set(lowering.functions) == {"h"}
        assert lowering.ok

    def test_statement_map(self):
        """Test every lowered statement maps back to its source statement."""
        module, lowering = lower("def add(a: float, b: float) -> float:\n    return a + b\n")
        stmt = module.functions[0].body[0]
        entry = lowering.statement_map[id(stmt)]

        assert entry.owner == "add"
        assert [type(node) for node in entry.nodes] == [RS_Return]
