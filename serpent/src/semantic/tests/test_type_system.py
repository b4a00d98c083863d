"""Tests for type_system.py - Type descriptors, operator rules and hints."""

import pytest

from serpent.src.common.exceptions import InferenceError
from serpent.src.semantic.type_system import (
    BOOL,
    F32,
    F64,
    I32,
    I64,
    UNIT,
    ArrayType,
    ScalarKind,
    TupleType,
    assignable,
    combine,
    is_compatible,
    matmul,
    parse_type_hint,
    rust_type,
    widen,
)

F64_VEC = ArrayType(ScalarKind.F64, 1)


class TestDescriptors:
    """Tests for descriptor construction and rendering."""

    def test_array_defaults_unknown_dims(self):
        """Test a known rank without dims fills in unknown entries."""
        array = ArrayType(ScalarKind.F64, 2)
        assert array.dims == (None, None)
        assert str(array) == "f64[:, :]"

    def test_array_with_dims(self):
        """Test fixed dims render as numbers."""
        assert str(ArrayType(ScalarKind.I64, 1, (3,))) == "i64[3]"

    def test_unknown_rank(self):
        """Test unknown rank renders with an ellipsis."""
        array = ArrayType(ScalarKind.F32)
        assert array.dims is None
        assert str(array) == "f32[...]"

    def test_dims_must_match_rank(self):
        """Test mismatched dims are rejected."""
        with pytest.raises(ValueError):
            ArrayType(ScalarKind.F64, 2, (3,))

    def test_rust_types(self):
        """Test descriptors render as Rust types."""
        assert rust_type(F64) == "f64"
        assert rust_type(F64_VEC) == "Array1<f64>"
        assert rust_type(ArrayType(ScalarKind.I32, 2)) == "Array2<i32>"
        assert rust_type(ArrayType(ScalarKind.F64)) == "ArrayD<f64>"
        assert rust_type(TupleType((F64, I64))) == "(f64, i64)"
        assert rust_type(TupleType((F64,))) == "(f64,)"
        assert rust_type(UNIT) == "()"


class TestWidening:
    """Tests for scalar kind widening."""

    def test_same_kind(self):
        """Test a kind widens to itself."""
        assert widen(ScalarKind.I32, ScalarKind.I32) is ScalarKind.I32

    def test_int_and_float(self):
        """Test mixing ints and floats gives a float."""
        assert widen(ScalarKind.I64, ScalarKind.F64) is ScalarKind.F64
        assert widen(ScalarKind.I32, ScalarKind.F32) is ScalarKind.F32
        assert widen(ScalarKind.I64, ScalarKind.F32) is ScalarKind.F64

    def test_bits(self):
        """Test the wider integer wins."""
        assert widen(ScalarKind.I32, ScalarKind.I64) is ScalarKind.I64

    def test_bool_yields(self):
        """Test bool gives way to any numeric kind."""
        assert widen(ScalarKind.BOOL, ScalarKind.I32) is ScalarKind.I32


class TestCombine:
    """Tests for binary operator result types."""

    def test_scalar_arithmetic(self):
        """Test scalar operators follow widening."""
        assert combine("+", I64, F64) == F64
        assert combine("*", I64, I64) == I64

    def test_true_division_is_float(self):
        """Test '/' on integers gives f64."""
        assert combine("/", I64, I64) == F64
        assert combine("/", F32, F32) == F32

    def test_comparison_is_bool(self):
        """Test comparisons give bool."""
        assert combine("<", F64, I64) == BOOL

    def test_broadcast_scalar(self):
        """Test array-scalar operators keep the array shape."""
        array = ArrayType(ScalarKind.F64, 1, (3,))
        assert combine("*", array, F64) == array
        assert combine("*", I64, array) == array

    def test_array_shapes_merge(self):
        """Test known dims survive an elementwise operation."""
        known = ArrayType(ScalarKind.F64, 1, (4,))
        assert combine("+", F64_VEC, known) == known

    def test_conflicting_shapes(self):
        """Test disagreeing dims raise a conflicting shape error."""
        with pytest.raises(InferenceError) as excinfo:
            combine("+", ArrayType(ScalarKind.F64, 1, (3,)), ArrayType(ScalarKind.F64, 1, (4,)))
        assert excinfo.value.reason == "conflicting shape"

    def test_non_numeric_operand(self):
        """Test tuples are not valid operands."""
        with pytest.raises(InferenceError) as excinfo:
            combine("+", TupleType((F64,)), F64)
        assert excinfo.value.reason == "conflicting type"


class TestMatmul:
    """Tests for matrix products."""

    def test_vector_dot(self):
        """Test rank-1 by rank-1 gives a scalar."""
        assert matmul(F64_VEC, F64_VEC) == F64

    def test_matrix_vector(self):
        """Test rank-2 by rank-1 gives a vector of the row count."""
        matrix = ArrayType(ScalarKind.F64, 2, (2, 3))
        vector = ArrayType(ScalarKind.F64, 1, (3,))
        assert matmul(matrix, vector) == ArrayType(ScalarKind.F64, 1, (2,))

    def test_inner_dims_must_agree(self):
        """Test mismatched inner dims are rejected."""
        matrix = ArrayType(ScalarKind.F64, 2, (2, 3))
        vector = ArrayType(ScalarKind.F64, 1, (2,))
        with pytest.raises(InferenceError):
            matmul(matrix, vector)

    def test_scalar_operand(self):
        """Test a scalar operand is rejected."""
        with pytest.raises(InferenceError):
            matmul(F64, F64_VEC)


class TestCompatibility:
    """Tests for is_compatible and assignable."""

    def test_unknown_dims_agree(self):
        """Test unknown dims are compatible with known ones."""
        assert is_compatible(F64_VEC, ArrayType(ScalarKind.F64, 1, (3,)))

    def test_rank_mismatch(self):
        """Test arrays of different rank are incompatible."""
        assert not is_compatible(F64_VEC, ArrayType(ScalarKind.F64, 2))

    def test_scalar_kinds(self):
        """Test scalars need the same kind."""
        assert is_compatible(F64, F64)
        assert not is_compatible(F64, I64)

    def test_int_flows_into_float(self):
        """Test numeric widening is assignable, narrowing is not."""
        assert assignable(F64, I64)
        assert assignable(I64, I32)
        assert not assignable(I64, F64)
        assert not assignable(F64, BOOL)


class TestTypeHints:
    """Tests for parse_type_hint()."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("f64", F64),
            ("int", I64),
            ("float32", F32),
            ("f64[:]", ArrayType(ScalarKind.F64, 1)),
            ("i32[3]", ArrayType(ScalarKind.I32, 1, (3,))),
            ("f64[:, :]", ArrayType(ScalarKind.F64, 2)),
            ("f64[...]", ArrayType(ScalarKind.F64)),
        ],
    )
    def test_valid_hints(self, text, expected):
        """Test valid hints parse to the expected descriptor."""
        assert parse_type_hint(text) == expected

    @pytest.mark.parametrize("text", ["", "complex", "f64[x]", "f64[:"])
    def test_invalid_hints(self, text):
        """Test malformed hints raise ValueError."""
        with pytest.raises(ValueError):
            parse_type_hint(text)
