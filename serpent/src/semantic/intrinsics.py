"""Typing rules for recognised numeric library calls.

Calls are resolved through a fixed table keyed by ``(module, name, arity)``.
``module`` is the fully qualified library name (``numpy``, ``math``) or
``builtins`` for bare builtin calls. Each entry carries a rule that maps the
argument descriptors (and, for constructors, the argument nodes themselves)
to the result descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from serpent.src.ast.expressions import Expr, Literal, TupleExpr, UnaryOp
from serpent.src.common.exceptions import (
    CONFLICTING_SHAPE,
    CONFLICTING_TYPE,
    UNRESOLVABLE_TYPE,
    UNSUPPORTED_INTRINSIC,
    InferenceError,
)
from .type_system import (
    BOOL,
    F64,
    I64,
    UNIT,
    ArrayType,
    ScalarKind,
    ScalarType,
    StrType,
    TupleType,
    Type,
    combine,
    element_kind,
    float_kind,
    matmul,
    widen,
    with_element,
)

NUMPY = "numpy"
MATH = "math"
BUILTINS = "builtins"

Rule = Callable[[List[Type], Sequence[Expr], str], Type]


@dataclass(frozen=True)
class Intrinsic:
    module: str
    name: str
    arity: Optional[int]  # None accepts any number of arguments
    rule: Rule

    @property
    def qualified_name(self) -> str:
        return self.name if self.module == BUILTINS else f"{self.module}.{self.name}"


def literal_int(node: Optional[Expr]) -> Optional[int]:
    """Integer value of a literal (optionally negated), else None."""
    if isinstance(node, Literal) and node.kind == "int":
        return node.value
    if (
        isinstance(node, UnaryOp)
        and node.op in ("-", "+")
        and isinstance(node.operand, Literal)
        and node.operand.kind == "int"
    ):
        return -node.operand.value if node.op == "-" else node.operand.value
    return None


def _numeric(t: Type, name: str) -> Type:
    if isinstance(t, (ScalarType, ArrayType)):
        return t
    raise InferenceError(CONFLICTING_TYPE, detail=f"{name}() needs a numeric argument, got {t}")


def _scalar(t: Type, name: str) -> ScalarType:
    if isinstance(t, ScalarType):
        return t
    if isinstance(t, ArrayType):
        raise InferenceError(CONFLICTING_SHAPE, detail=f"{name}() needs a scalar, got {t}")
    raise InferenceError(CONFLICTING_TYPE, detail=f"{name}() needs a number, got {t}")


def _array(t: Type, name: str) -> ArrayType:
    if isinstance(t, ArrayType):
        return t
    raise InferenceError(CONFLICTING_SHAPE, detail=f"{name}() needs an array, got {t}")


# ---------------------------------------------------------------------------
# Rules


def _unary_float(types, nodes, name):
    value = _numeric(types[0], name)
    return with_element(value, float_kind(element_kind(value)))


def _unary_same(types, nodes, name):
    return _numeric(types[0], name)


def _unary_bool(types, nodes, name):
    return with_element(_numeric(types[0], name), ScalarKind.BOOL)


def _scalar_float(types, nodes, name):
    return ScalarType(float_kind(_scalar(types[0], name).kind))


def _scalar_to_int(types, nodes, name):
    _scalar(types[0], name)
    return I64


def _scalar_to_bool(types, nodes, name):
    _scalar(types[0], name)
    return BOOL


def _scalar_float_binary(types, nodes, name):
    kinds = [_scalar(t, name).kind for t in types]
    kind = kinds[0]
    for other in kinds[1:]:
        kind = widen(kind, other)
    return ScalarType(float_kind(kind))


def _broadcast_float(types, nodes, name):
    result = combine("+", _numeric(types[0], name), _numeric(types[1], name))
    return with_element(result, float_kind(element_kind(result)))


def _broadcast_same(types, nodes, name):
    return combine("+", _numeric(types[0], name), _numeric(types[1], name))


def _power(types, nodes, name):
    return combine("**", _numeric(types[0], name), _numeric(types[1], name))


def _reduce(types, nodes, name):
    kind = element_kind(_numeric(types[0], name))
    if kind.is_bool and name in ("sum", "prod"):
        kind = ScalarKind.I64
    return ScalarType(kind)


def _reduce_mean(types, nodes, name):
    return ScalarType(float_kind(element_kind(_numeric(types[0], name))))


def _cumsum(types, nodes, name):
    array = _array(types[0], name)
    kind = ScalarKind.I64 if array.element.is_bool else array.element
    dims = array.dims if array.rank == 1 else None
    return ArrayType(kind, 1, dims)


def _dot(types, nodes, name):
    return matmul(types[0], types[1])


def _shape_from(shape_type: Type, shape_node: Expr, name: str) -> Tuple[int, Tuple]:
    if isinstance(shape_type, ScalarType) and shape_type.kind.is_int:
        return 1, (literal_int(shape_node),)
    if isinstance(shape_type, TupleType) and all(
        isinstance(e, ScalarType) and e.kind.is_int for e in shape_type.elements
    ):
        if isinstance(shape_node, TupleExpr):
            dims = tuple(literal_int(e) for e in shape_node.elts)
        else:
            dims = tuple(None for _ in shape_type.elements)
        return len(dims), dims
    raise InferenceError(
        UNRESOLVABLE_TYPE,
        detail=f"{name}() needs an integer size or a tuple of sizes, got {shape_type}",
    )


def _constructor(types, nodes, name):
    rank, dims = _shape_from(types[0], nodes[0], name)
    return ArrayType(ScalarKind.F64, rank, dims)


def _full(types, nodes, name):
    rank, dims = _shape_from(types[0], nodes[0], name)
    return ArrayType(_scalar(types[1], name).kind, rank, dims)


def _like(types, nodes, name):
    array = _array(types[0], name)
    return ArrayType(array.element, array.rank, array.dims)


def _array_literal(types, nodes, name):
    # List displays are typed as arrays directly
    return _array(types[0], name)


def _arange(types, nodes, name):
    kinds = [_scalar(t, name).kind for t in types]
    kind = kinds[0]
    for other in kinds[1:]:
        kind = widen(kind, other)
    if kind.is_bool:
        kind = ScalarKind.I64
    values = [literal_int(node) for node in nodes]
    length = None
    if all(v is not None for v in values):
        try:
            length = len(range(*values))
        except ValueError:
            raise InferenceError(CONFLICTING_SHAPE, detail="arange() step must not be zero")
    return ArrayType(kind, 1, (length,))


def _linspace(types, nodes, name):
    for t in types[:2]:
        _scalar(t, name)
    count = _scalar(types[2], name)
    if not count.kind.is_int:
        raise InferenceError(CONFLICTING_TYPE, detail="linspace() needs an integer count")
    return ArrayType(ScalarKind.F64, 1, (literal_int(nodes[2]),))


def _where(types, nodes, name):
    condition = _numeric(types[0], name)
    if not element_kind(condition).is_bool:
        raise InferenceError(CONFLICTING_TYPE, detail="where() needs a boolean condition")
    result = combine("+", _numeric(types[1], name), _numeric(types[2], name))
    if isinstance(condition, ArrayType):
        result = combine("+", with_element(condition, element_kind(result)), result)
    return result


def _clip(types, nodes, name):
    value = _numeric(types[0], name)
    kind = element_kind(value)
    for bound in types[1:]:
        kind = widen(kind, _scalar(bound, name).kind)
    return with_element(value, kind)


def _builtin_abs(types, nodes, name):
    return _numeric(types[0], name)


def _builtin_minmax(types, nodes, name):
    kinds = [_scalar(t, name).kind for t in types]
    return ScalarType(widen(kinds[0], kinds[1]))


def _builtin_float(types, nodes, name):
    _scalar(types[0], name)
    return F64


def _builtin_len(types, nodes, name):
    if isinstance(types[0], (ArrayType, TupleType)):
        return I64
    raise InferenceError(CONFLICTING_SHAPE, detail=f"len() needs an array, got {types[0]}")


def _builtin_range(types, nodes, name):
    raise InferenceError(
        UNSUPPORTED_INTRINSIC, detail="range() is only supported as a for-loop iterable"
    )


def _builtin_print(types, nodes, name):
    for t in types:
        if not isinstance(t, (ScalarType, ArrayType, StrType)):
            raise InferenceError(CONFLICTING_TYPE, detail=f"print() cannot format {t}")
    return UNIT


# ---------------------------------------------------------------------------
# Table


def _entries() -> List[Intrinsic]:
    entries: List[Intrinsic] = []

    def add(module: str, names, arities, rule: Rule) -> None:
        for name in names.split():
            for arity in arities:
                entries.append(Intrinsic(module, name, arity, rule))

    add(
        NUMPY,
        "sqrt log log10 log2 exp exp2 sin cos tan arcsin arccos arctan sinh cosh tanh floor ceil",
        (1,),
        _unary_float,
    )
    add(NUMPY, "abs absolute sign", (1,), _unary_same)
    add(NUMPY, "isnan", (1,), _unary_bool)
    add(NUMPY, "power", (2,), _power)
    add(NUMPY, "arctan2 hypot", (2,), _broadcast_float)
    add(NUMPY, "maximum minimum", (2,), _broadcast_same)
    add(NUMPY, "sum prod max min", (1,), _reduce)
    add(NUMPY, "mean", (1,), _reduce_mean)
    add(NUMPY, "cumsum", (1,), _cumsum)
    add(NUMPY, "dot matmul", (2,), _dot)
    add(NUMPY, "zeros ones", (1,), _constructor)
    add(NUMPY, "zeros_like ones_like copy", (1,), _like)
    add(NUMPY, "full", (2,), _full)
    add(NUMPY, "array", (1,), _array_literal)
    add(NUMPY, "arange", (1, 2, 3), _arange)
    add(NUMPY, "linspace", (3,), _linspace)
    add(NUMPY, "where", (3,), _where)
    add(NUMPY, "clip", (3,), _clip)

    add(
        MATH,
        "sqrt log log10 log2 exp sin cos tan asin acos atan sinh cosh tanh fabs erf gamma",
        (1,),
        _scalar_float,
    )
    add(MATH, "log", (2,), _scalar_float_binary)
    add(MATH, "atan2 pow hypot", (2,), _scalar_float_binary)
    add(MATH, "floor ceil", (1,), _scalar_to_int)
    add(MATH, "isnan", (1,), _scalar_to_bool)

    add(BUILTINS, "abs", (1,), _builtin_abs)
    add(BUILTINS, "min max", (2,), _builtin_minmax)
    add(BUILTINS, "float", (1,), _builtin_float)
    add(BUILTINS, "int round", (1,), _scalar_to_int)
    add(BUILTINS, "bool", (1,), _scalar_to_bool)
    add(BUILTINS, "len", (1,), _builtin_len)
    add(BUILTINS, "sum", (1,), _reduce)
    add(BUILTINS, "range", (1, 2, 3), _builtin_range)
    add(BUILTINS, "print", (None,), _builtin_print)
    return entries


INTRINSICS: Dict[Tuple[str, str, Optional[int]], Intrinsic] = {
    (entry.module, entry.name, entry.arity): entry for entry in _entries()
}

KNOWN_NAMES = {(module, name) for module, name, _ in INTRINSICS}

BUILTIN_NAMES = frozenset(name for module, name in KNOWN_NAMES if module == BUILTINS)

CONSTANTS: Dict[Tuple[str, str], Type] = {
    (NUMPY, "pi"): F64,
    (NUMPY, "e"): F64,
    (NUMPY, "inf"): F64,
    (NUMPY, "nan"): F64,
    (MATH, "pi"): F64,
    (MATH, "e"): F64,
    (MATH, "inf"): F64,
    (MATH, "nan"): F64,
    (MATH, "tau"): F64,
}

# Scalar dtype names usable in annotations, e.g. ``np.float32``
DTYPE_NAMES: Dict[str, ScalarKind] = {
    "float64": ScalarKind.F64,
    "float32": ScalarKind.F32,
    "int64": ScalarKind.I64,
    "int32": ScalarKind.I32,
    "bool_": ScalarKind.BOOL,
}

# ndarray methods that are typed (and lowered) as the numpy function with
# the receiver as first argument
ARRAY_METHODS = {"sum", "mean", "max", "min", "prod", "cumsum", "dot", "copy"}

TYPED_MODULES = frozenset({NUMPY, MATH})


def lookup_intrinsic(module: str, name: str, arity: int) -> Intrinsic:
    """Find the table entry for a call, or raise "unsupported intrinsic"."""
    entry = INTRINSICS.get((module, name, arity)) or INTRINSICS.get((module, name, None))
    if entry is not None:
        return entry
    qualified = name if module == BUILTINS else f"{module}.{name}"
    if (module, name) in KNOWN_NAMES:
        arities = sorted(
            a for m, n, a in INTRINSICS if m == module and n == name and a is not None
        )
        detail = f"{qualified}() takes {' or '.join(map(str, arities))} argument(s), got {arity}"
    else:
        detail = f"{qualified}() has no typing rule"
    raise InferenceError(UNSUPPORTED_INTRINSIC, binding=qualified, detail=detail)


def lookup_constant(module: str, name: str) -> Type:
    try:
        return CONSTANTS[(module, name)]
    except KeyError:
        raise InferenceError(
            UNSUPPORTED_INTRINSIC,
            binding=f"{module}.{name}",
            detail="no typing rule for this attribute",
        ) from None
