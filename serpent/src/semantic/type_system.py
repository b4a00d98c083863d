from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import re
from typing import Optional, Tuple, Union

from serpent.src.common.exceptions import (
    CONFLICTING_SHAPE,
    CONFLICTING_TYPE,
    UNRESOLVABLE_TYPE,
    InferenceError,
)

"""Type descriptors produced by inference and consumed by lowering."""


class ScalarKind(Enum):
    """Scalar element kinds, named after their Rust spelling."""

    BOOL = "bool"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"

    @property
    def rust_name(self) -> str:
        return self.value

    @property
    def is_int(self) -> bool:
        return self in (ScalarKind.I32, ScalarKind.I64)

    @property
    def is_float(self) -> bool:
        return self in (ScalarKind.F32, ScalarKind.F64)

    @property
    def is_bool(self) -> bool:
        return self is ScalarKind.BOOL

    @property
    def bits(self) -> int:
        return {"bool": 1, "i32": 32, "i64": 64, "f32": 32, "f64": 64}[self.value]


@dataclass(frozen=True)
class ScalarType:
    kind: ScalarKind

    def __str__(self) -> str:
        return self.kind.rust_name


@dataclass(frozen=True)
class ArrayType:
    """n-dimensional array. ``rank`` None means unknown rank.

    ``dims`` holds one entry per axis when the rank is known; an entry is
    None when that dimension is not known statically.
    """

    element: ScalarKind
    rank: Optional[int] = None
    dims: Optional[Tuple[Optional[int], ...]] = None

    def __post_init__(self) -> None:
        if self.rank is None:
            object.__setattr__(self, "dims", None)
        elif self.dims is None:
            object.__setattr__(self, "dims", (None,) * self.rank)
        elif len(self.dims) != self.rank:
            raise ValueError(f"dims {self.dims} do not match rank {self.rank}")
        else:
            object.__setattr__(self, "dims", tuple(self.dims))

    def __str__(self) -> str:
        if self.rank is None:
            return f"{self.element.rust_name}[...]"
        axes = []
        for index in range(self.rank):
            dim = self.dims[index] if self.dims else None
            axes.append(":" if dim is None else str(dim))
        return f"{self.element.rust_name}[{', '.join(axes)}]"

    def dim(self, axis: int) -> Optional[int]:
        if self.dims is None or axis >= len(self.dims):
            return None
        return self.dims[axis]


@dataclass(frozen=True)
class TupleType:
    elements: Tuple["Type", ...]

    def __str__(self) -> str:
        return f"({', '.join(str(e) for e in self.elements)})"


@dataclass(frozen=True)
class FunctionType:
    params: Tuple["Type", ...]
    returns: "Type"

    def __str__(self) -> str:
        return f"fn({', '.join(str(p) for p in self.params)}) -> {self.returns}"


@dataclass(frozen=True)
class UnitType:
    def __str__(self) -> str:
        return "()"


@dataclass(frozen=True)
class StrType:
    """String literal; only valid as a print argument."""

    def __str__(self) -> str:
        return "str"


Type = Union[ScalarType, ArrayType, TupleType, FunctionType, UnitType, StrType]

F64 = ScalarType(ScalarKind.F64)
F32 = ScalarType(ScalarKind.F32)
I64 = ScalarType(ScalarKind.I64)
I32 = ScalarType(ScalarKind.I32)
BOOL = ScalarType(ScalarKind.BOOL)
UNIT = UnitType()
STR = StrType()

ARITHMETIC_OPS = {"+", "-", "*", "/", "//", "%", "**"}
COMPARISON_OPS = {"<", ">", "<=", ">=", "==", "!="}


def element_kind(t: Type) -> ScalarKind:
    if isinstance(t, ScalarType):
        return t.kind
    if isinstance(t, ArrayType):
        return t.element
    raise InferenceError(UNRESOLVABLE_TYPE, detail=f"'{t}' has no numeric element kind")


def is_compatible(a: Type, b: Type) -> bool:
    """Same scalar kind; arrays also need agreeing rank and known dims."""
    if isinstance(a, ScalarType) and isinstance(b, ScalarType):
        return a.kind is b.kind
    if isinstance(a, ArrayType) and isinstance(b, ArrayType):
        if a.element is not b.element:
            return False
        return shapes_agree(a, b)
    if isinstance(a, TupleType) and isinstance(b, TupleType):
        return len(a.elements) == len(b.elements) and all(
            is_compatible(x, y) for x, y in zip(a.elements, b.elements)
        )
    return type(a) is type(b) and a == b


def shapes_agree(a: ArrayType, b: ArrayType) -> bool:
    if a.rank is None or b.rank is None:
        return True
    if a.rank != b.rank:
        return False
    if a.dims is None or b.dims is None:
        return True
    return all(x is None or y is None or x == y for x, y in zip(a.dims, b.dims))


def merge_dims(a: ArrayType, b: ArrayType) -> Optional[Tuple[Optional[int], ...]]:
    """Combine the dims of two shape-agreeing arrays, keeping known entries."""
    if a.rank is None or b.rank is None:
        return None
    if a.dims is None:
        return b.dims
    if b.dims is None:
        return a.dims
    return tuple(x if x is not None else y for x, y in zip(a.dims, b.dims))


def widen(a: ScalarKind, b: ScalarKind) -> ScalarKind:
    """Wider of two scalar kinds."""
    if a is b:
        return a
    if a.is_bool:
        return b
    if b.is_bool:
        return a
    if a.is_int == b.is_int:
        return a if a.bits >= b.bits else b
    float_kind, int_kind = (a, b) if a.is_float else (b, a)
    if float_kind is ScalarKind.F64 or int_kind.bits <= 32:
        return float_kind
    return ScalarKind.F64


def float_kind(kind: ScalarKind) -> ScalarKind:
    """Kind produced by a float-valued operation on ``kind``."""
    return kind if kind.is_float else ScalarKind.F64


def true_divide_kind(a: ScalarKind, b: ScalarKind) -> ScalarKind:
    if a is ScalarKind.F32 and b is ScalarKind.F32:
        return ScalarKind.F32
    return float_kind(widen(a, b))


def with_element(t: Type, kind: ScalarKind) -> Type:
    if isinstance(t, ArrayType):
        return ArrayType(kind, t.rank, t.dims)
    return ScalarType(kind)


def _arithmetic_kind(op: str, a: ScalarKind, b: ScalarKind) -> ScalarKind:
    if op == "/":
        return true_divide_kind(a, b)
    kind = widen(a, b)
    if kind.is_bool:
        # True + True is 2 in Python
        return ScalarKind.I64
    return kind


def combine(op: str, a: Type, b: Type) -> Type:
    """Result descriptor of ``a op b`` for arithmetic and comparison operators."""
    if op == "@":
        return matmul(a, b)
    if isinstance(a, (ScalarType, ArrayType)) and isinstance(b, (ScalarType, ArrayType)):
        pass
    else:
        raise InferenceError(
            CONFLICTING_TYPE, detail=f"operator '{op}' is not defined for {a} and {b}"
        )

    if op in COMPARISON_OPS:
        kind = ScalarKind.BOOL
    elif op in ARITHMETIC_OPS:
        kind = _arithmetic_kind(op, element_kind(a), element_kind(b))
    else:
        raise InferenceError(CONFLICTING_TYPE, detail=f"unknown operator '{op}'")

    if isinstance(a, ScalarType) and isinstance(b, ScalarType):
        return ScalarType(kind)
    if isinstance(a, ArrayType) and isinstance(b, ScalarType):
        return ArrayType(kind, a.rank, a.dims)
    if isinstance(a, ScalarType) and isinstance(b, ArrayType):
        return ArrayType(kind, b.rank, b.dims)
    if not shapes_agree(a, b):
        raise InferenceError(
            CONFLICTING_SHAPE, detail=f"operands of '{op}' have shapes {a} and {b}"
        )
    rank = a.rank if a.rank is not None and b.rank is not None else None
    return ArrayType(kind, rank, merge_dims(a, b))


def matmul(a: Type, b: Type) -> Type:
    """numpy.dot / ``@`` on rank-1 and rank-2 arrays."""
    if not (isinstance(a, ArrayType) and isinstance(b, ArrayType)):
        raise InferenceError(
            CONFLICTING_SHAPE, detail=f"matrix product needs two arrays, got {a} and {b}"
        )
    if a.rank is None or b.rank is None:
        raise InferenceError(
            UNRESOLVABLE_TYPE, detail="matrix product needs arrays of known rank"
        )
    kind = widen(a.element, b.element)
    if kind.is_bool:
        kind = ScalarKind.I64

    def check(x: Optional[int], y: Optional[int]) -> None:
        if x is not None and y is not None and x != y:
            raise InferenceError(
                CONFLICTING_SHAPE, detail=f"matrix product of {a} and {b}"
            )

    if a.rank == 1 and b.rank == 1:
        check(a.dim(0), b.dim(0))
        return ScalarType(kind)
    if a.rank == 2 and b.rank == 1:
        check(a.dim(1), b.dim(0))
        return ArrayType(kind, 1, (a.dim(0),))
    if a.rank == 1 and b.rank == 2:
        check(a.dim(0), b.dim(0))
        return ArrayType(kind, 1, (b.dim(1),))
    if a.rank == 2 and b.rank == 2:
        check(a.dim(1), b.dim(0))
        return ArrayType(kind, 2, (a.dim(0), b.dim(1)))
    raise InferenceError(
        CONFLICTING_SHAPE, detail=f"matrix product is limited to rank 1 and 2, got {a} and {b}"
    )


def rust_type(t: Type) -> str:
    """Render a descriptor as a Rust type."""
    if isinstance(t, ScalarType):
        return t.kind.rust_name
    if isinstance(t, ArrayType):
        if t.rank is not None and 1 <= t.rank <= 6:
            return f"Array{t.rank}<{t.element.rust_name}>"
        return f"ArrayD<{t.element.rust_name}>"
    if isinstance(t, TupleType):
        inner = ", ".join(rust_type(e) for e in t.elements)
        return f"({inner},)" if len(t.elements) == 1 else f"({inner})"
    if isinstance(t, UnitType):
        return "()"
    if isinstance(t, StrType):
        return "&str"
    if isinstance(t, FunctionType):
        params = ", ".join(rust_type(p) for p in t.params)
        return f"impl Fn({params}) -> {rust_type(t.returns)}"
    raise TypeError(f"Unknown type descriptor: {t!r}")


def same_rust_type(a: Type, b: Type) -> bool:
    return rust_type(a) == rust_type(b)


def assignable(expected: Type, actual: Type) -> bool:
    """Whether a value of ``actual`` may flow into a slot of ``expected``.

    Beyond exact matches, numeric scalars may widen (an int into a float
    slot, i32 into i64); lowering inserts the cast.
    """
    if is_compatible(expected, actual) and same_rust_type(expected, actual):
        return True
    if isinstance(expected, ScalarType) and isinstance(actual, ScalarType):
        if actual.kind.is_bool or expected.kind.is_bool:
            return False
        return widen(expected.kind, actual.kind) is expected.kind
    if isinstance(expected, TupleType) and isinstance(actual, TupleType):
        return len(expected.elements) == len(actual.elements) and all(
            assignable(e, a) for e, a in zip(expected.elements, actual.elements)
        )
    return False


# ---------------------------------------------------------------------------
# Textual type hints: "f64", "i64[:]", "f64[3]", "f64[:, :]", "f64[...]"

SCALAR_ALIASES = {
    "float": ScalarKind.F64,
    "int": ScalarKind.I64,
    "bool": ScalarKind.BOOL,
    "f64": ScalarKind.F64,
    "f32": ScalarKind.F32,
    "i64": ScalarKind.I64,
    "i32": ScalarKind.I32,
    "float64": ScalarKind.F64,
    "float32": ScalarKind.F32,
    "int64": ScalarKind.I64,
    "int32": ScalarKind.I32,
    "bool_": ScalarKind.BOOL,
}

_HINT_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\[(.*)\])?\s*$")


def parse_type_hint(text: str) -> Type:
    """Parse a textual hint. Raises ValueError when it is malformed."""
    match = _HINT_RE.match(text)
    if not match:
        raise ValueError(f"malformed type hint {text!r}")
    base, axes = match.group(1), match.group(2)
    if base not in SCALAR_ALIASES:
        raise ValueError(f"unknown element type {base!r} in hint {text!r}")
    kind = SCALAR_ALIASES[base]
    if axes is None:
        return ScalarType(kind)
    axes = axes.strip()
    if axes == "...":
        return ArrayType(kind)
    dims = []
    for axis in axes.split(","):
        axis = axis.strip()
        if axis == ":":
            dims.append(None)
        elif axis.isdigit():
            dims.append(int(axis))
        else:
            raise ValueError(f"bad axis {axis!r} in hint {text!r}")
    return ArrayType(kind, len(dims), tuple(dims))
