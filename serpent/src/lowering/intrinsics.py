"""Lowering rules for recognised numeric library calls.

Each rule receives the expression lowerer and an :class:`IntrinsicCall`
holding the already lowered arguments, and returns the Rust expression.
Rules are keyed by ``(module, name)``; a call whose typing rule exists but
which has no entry here is reported as unsupported during lowering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from serpent.src.ast.expressions import Expr, ListExpr, Literal, TupleExpr
from serpent.src.ir.nodes import (
    RS_Binary,
    RS_Block,
    RS_Call,
    RS_Cast,
    RS_Deref,
    RS_ExprStmt,
    RS_Ident,
    RS_Lambda,
    RS_Let,
    RS_Literal,
    RS_Macro,
    RS_MethodCall,
    RS_Range,
    RS_Tuple,
    RSExpr,
)
from serpent.src.semantic.intrinsics import BUILTINS, MATH, NUMPY, literal_int
from serpent.src.semantic.type_system import (
    I64,
    ArrayType,
    ScalarKind,
    ScalarType,
    TupleType,
    Type,
    element_kind,
    float_kind,
)


@dataclass
class IntrinsicCall:
    module: str
    name: str
    args: List[RSExpr]
    nodes: Sequence[Expr]
    result: Type
    node: Expr

    @property
    def qualified_name(self) -> str:
        return self.name if self.module == BUILTINS else f"{self.module}.{self.name}"


LoweringRule = Callable[[Any, IntrinsicCall], RSExpr]

# Rust spelling of float methods whose Python name differs
METHOD_NAMES = {
    "log": "ln",
    "arcsin": "asin",
    "arccos": "acos",
    "arctan": "atan",
    "arctan2": "atan2",
    "fabs": "abs",
    "absolute": "abs",
    "sign": "signum",
    "maximum": "max",
    "minimum": "min",
}

CONSTANT_PATHS = {
    "pi": "std::f64::consts::PI",
    "e": "std::f64::consts::E",
    "tau": "std::f64::consts::TAU",
    "inf": "f64::INFINITY",
    "nan": "f64::NAN",
}


def constant_path(module: str, attr: str) -> Optional[str]:
    if module not in (NUMPY, MATH):
        return None
    return CONSTANT_PATHS.get(attr)


def rust_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def rust_method(name: str) -> str:
    return METHOD_NAMES.get(name, name)


def is_array(node: RSExpr) -> bool:
    return isinstance(node.ty, ArrayType)


def array_path(result: ArrayType) -> str:
    """``Array2::<f64>`` for constructor calls."""
    return f"Array{result.rank}::<{result.element.rust_name}>"


def scalar_literal(value: int, kind: ScalarKind) -> RS_Literal:
    if kind.is_bool:
        return RS_Literal("true" if value else "false", ScalarType(kind))
    text = f"{value}.0" if kind.is_float else str(value)
    return RS_Literal(text, ScalarType(kind))


def _require_rank(lw, call: IntrinsicCall, node: RSExpr, rank: int) -> None:
    if is_array(node) and node.ty.rank != rank:
        raise lw.unsupported(
            call.node, f"{call.qualified_name}() on an array of rank {node.ty.rank}"
        )


# ---------------------------------------------------------------------------
# Elementwise math


def _apply_method(lw, node: RSExpr, method: str, kind: ScalarKind, result: Type) -> RSExpr:
    """``x.method()`` on scalars, ``a.mapv(f64::method)`` on arrays."""
    if is_array(node):
        if node.ty.element is kind:
            path = RS_Ident(f"{kind.rust_name}::{method}")
            return RS_MethodCall(lw.receiver(node), "mapv", [path], result)
        return lw.elementwise(
            node,
            lambda v: lw.method(lw.cast_scalar(v, kind), method, [], ScalarType(kind)),
            result,
        )
    return lw.method(lw.cast_scalar(node, kind), method, [], result)


def _unary_float(lw, call: IntrinsicCall) -> RSExpr:
    kind = element_kind(call.result)
    return _apply_method(lw, call.args[0], rust_method(call.name), kind, call.result)


def _unary_same(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    kind = element_kind(call.result)
    if kind.is_bool:
        raise lw.unsupported(call.node, f"{call.qualified_name}() of a bool")
    return _apply_method(lw, arg, rust_method(call.name), kind, call.result)


def _isnan(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    kind = float_kind(element_kind(arg.ty))
    if is_array(arg):
        return lw.elementwise(
            arg, lambda v: lw.method(lw.cast_scalar(v, kind), "is_nan", [], ScalarType(ScalarKind.BOOL)),
            call.result,
        )
    return lw.method(lw.cast_scalar(arg, kind), "is_nan", [], call.result)


def _power(lw, call: IntrinsicCall) -> RSExpr:
    base, exponent = call.args
    return lw.binary("**", base, exponent, call.result, call.node)


def _binary_method(lw, call: IntrinsicCall) -> RSExpr:
    """atan2, hypot, maximum and friends, broadcast over arrays."""
    left, right = call.args
    kind = element_kind(call.result)
    method = rust_method(call.name)
    if method in ("max", "min") and kind.is_bool:
        raise lw.unsupported(call.node, f"{call.qualified_name}() of bools")

    def apply(l: RSExpr, r: RSExpr) -> RSExpr:
        return lw.method(
            lw.cast_scalar(l, kind), method, [lw.cast_scalar(r, kind)], ScalarType(kind)
        )

    return lw.broadcast(left, right, apply, call.result, call.node)


def _math_pow(lw, call: IntrinsicCall) -> RSExpr:
    base, exponent = call.args
    kind = element_kind(call.result)
    return lw.method(lw.cast_scalar(base, kind), "powf", [lw.cast_scalar(exponent, kind)], call.result)


def _math_log(lw, call: IntrinsicCall) -> RSExpr:
    kind = element_kind(call.result)
    if len(call.args) == 1:
        return lw.method(lw.cast_scalar(call.args[0], kind), "ln", [], call.result)
    value, base = call.args
    return lw.method(lw.cast_scalar(value, kind), "log", [lw.cast_scalar(base, kind)], call.result)


def _math_rounding(lw, call: IntrinsicCall) -> RSExpr:
    """math.floor and math.ceil return ints."""
    arg = call.args[0]
    if element_kind(arg.ty).is_int:
        return lw.cast_scalar(arg, element_kind(call.result))
    rounded = lw.method(arg, call.name, [], arg.ty)
    return RS_Cast(rounded, call.result.kind.rust_name, call.result)


def _clip(lw, call: IntrinsicCall) -> RSExpr:
    value, low, high = call.args
    kind = element_kind(call.result)
    low, high = lw.typed(lw.cast_scalar(low, kind)), lw.typed(lw.cast_scalar(high, kind))

    def clamp(v: RSExpr) -> RSExpr:
        return lw.method(lw.cast_scalar(v, kind), "clamp", [low, high], ScalarType(kind))

    if is_array(value):
        return lw.elementwise(value, clamp, call.result)
    return clamp(value)


# ---------------------------------------------------------------------------
# Reductions


def _sum(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    if not is_array(arg):
        return lw.cast_scalar(arg, element_kind(call.result))
    if call.module == BUILTINS:
        _require_rank(lw, call, arg, 1)
    kind = element_kind(call.result)
    method = "product" if call.name == "prod" else "sum"
    return lw.method(lw.cast_array(arg, kind), method, [], call.result)


def _mean(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    kind = element_kind(call.result)
    if not is_array(arg):
        return lw.cast_scalar(arg, kind)
    mean = lw.method(lw.cast_array(arg, kind), "mean", [])
    return RS_MethodCall(mean, "unwrap", [], call.result)


def _extremum(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    kind = element_kind(call.result)
    if not is_array(arg):
        return arg
    if kind.is_bool:
        raise lw.unsupported(call.node, f"{call.qualified_name}() of a bool array")
    if kind.is_float:
        start = "NEG_INFINITY" if call.name == "max" else "INFINITY"
    else:
        start = "MIN" if call.name == "max" else "MAX"
    acc, item = lw.scope.fresh("m"), lw.scope.fresh("v")
    body = lw.method(RS_Ident(acc, ScalarType(kind)), call.name, [RS_Ident(item, ScalarType(kind))])
    fold = RS_Lambda([acc, f"&{item}"], body)
    return lw.method(arg, "fold", [RS_Ident(f"{kind.rust_name}::{start}"), fold], call.result)


def _cumsum(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    _require_rank(lw, call, arg, 1)
    result = call.result
    name = lw.scope.fresh("c")
    acc = RS_Ident(name, result)
    prev, cur = lw.scope.fresh("prev"), lw.scope.fresh("cur")
    update = RS_Binary("+=", RS_Deref(RS_Ident(cur)), RS_Ident(prev))
    accumulate = RS_MethodCall(
        acc,
        "accumulate_axis_inplace",
        [RS_Call("Axis", [RS_Literal("0")]), RS_Lambda([f"&{prev}", cur], update)],
    )
    owned = lw.as_owned(lw.cast_array(arg, result.element))
    return RS_Block(
        [RS_Let(name, None, owned, mutable=True, ty=result), RS_ExprStmt(accumulate)],
        acc,
        result,
    )


def _dot(lw, call: IntrinsicCall) -> RSExpr:
    left, right = call.args
    return lw.dot(left, right, call.result)


# ---------------------------------------------------------------------------
# Constructors


def _shape_argument(lw, call: IntrinsicCall) -> RSExpr:
    node, arg = call.nodes[0], call.args[0]
    source = lw._shape_source(node)
    if source is not None:
        return lw.method(lw.lower_expr(source), "raw_dim", [])

    def size(element: Expr, lowered: RSExpr) -> RSExpr:
        value = literal_int(element)
        if value is not None:
            if value < 0:
                raise lw.unsupported(call.node, f"negative size in {call.qualified_name}()")
            return RS_Literal(str(value))
        return RS_Cast(lowered, "usize")

    if isinstance(arg.ty, ScalarType):
        return size(node, arg)
    if isinstance(node, TupleExpr) and isinstance(arg, RS_Tuple):
        sizes = [size(e, lowered) for e, lowered in zip(node.elts, arg.elts)]
        return sizes[0] if len(sizes) == 1 else RS_Tuple(sizes)
    raise lw.unsupported(call.node, f"shape argument of {call.qualified_name}()")


def _constructor_path(lw, call: IntrinsicCall) -> str:
    result = call.result
    if result.rank is None or not 1 <= result.rank <= 6:
        raise lw.unsupported(call.node, f"{call.qualified_name}() of rank {result.rank}")
    return array_path(result)


def _zeros(lw, call: IntrinsicCall) -> RSExpr:
    path = _constructor_path(lw, call)
    return RS_Call(f"{path}::{call.name}", [_shape_argument(lw, call)], call.result)


def _full(lw, call: IntrinsicCall) -> RSExpr:
    path = _constructor_path(lw, call)
    value = lw.typed(lw.cast_scalar(call.args[1], call.result.element))
    return RS_Call(f"{path}::from_elem", [_shape_argument(lw, call), value], call.result)


def _like(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    fill = scalar_literal(1 if call.name == "ones_like" else 0, call.result.element)
    return RS_MethodCall(
        lw.receiver(arg), "mapv", [RS_Lambda(["_"], lw.typed(fill))], call.result
    )


def _copy(lw, call: IntrinsicCall) -> RSExpr:
    return lw.method(call.args[0], "to_owned", [], call.result)


def _array(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    if isinstance(call.nodes[0], ListExpr):
        return arg
    return lw.as_owned(lw.cast_array(arg, call.result.element))


def _arange(lw, call: IntrinsicCall) -> RSExpr:
    result = call.result
    kind = result.element
    args = [lw.cast_scalar(arg, kind) for arg in call.args]
    if len(args) == 1:
        args.insert(0, scalar_literal(0, kind))
    if kind.is_float:
        if len(args) == 2:
            args.append(scalar_literal(1, kind))
        return RS_Call(f"{array_path(result)}::range", [lw.typed(a) for a in args], result)

    start, stop = lw.typed(args[0]), lw.typed(args[1])
    span: RSExpr = RS_Range(start, stop)
    if len(args) == 3:
        step = literal_int(call.nodes[2])
        if step is None or step <= 0:
            raise lw.unsupported(call.node, "arange() with a non-literal or non-positive integer step")
        if step != 1:
            span = RS_MethodCall(span, "step_by", [RS_Literal(str(step))])
    return RS_Call("Array1::from_iter", [span], result)


def _linspace(lw, call: IntrinsicCall) -> RSExpr:
    start, stop, _ = call.args
    count = literal_int(call.nodes[2])
    if count is not None:
        if count < 0:
            raise lw.unsupported(call.node, "linspace() with a negative count")
        size: RSExpr = RS_Literal(str(count))
    else:
        size = RS_Cast(call.args[2], "usize")
    kind = call.result.element
    bounds = [lw.cast_scalar(start, kind), lw.cast_scalar(stop, kind)]
    return RS_Call(f"{array_path(call.result)}::linspace", bounds + [size], call.result)


# ---------------------------------------------------------------------------
# Builtins


def _float(lw, call: IntrinsicCall) -> RSExpr:
    return lw.cast_scalar(call.args[0], element_kind(call.result))


def _round(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    if not element_kind(arg.ty).is_float:
        return lw.cast_scalar(arg, element_kind(call.result))
    rounded = lw.method(arg, "round_ties_even", [], arg.ty)
    return RS_Cast(rounded, call.result.kind.rust_name, call.result)


def _len(lw, call: IntrinsicCall) -> RSExpr:
    arg = call.args[0]
    if isinstance(arg.ty, TupleType):
        return RS_Literal(str(len(arg.ty.elements)), I64)
    if arg.ty.rank == 1:
        return RS_Cast(lw.method(arg, "len", []), "i64", I64)
    return lw.shape_dim(arg, 0)


def _print(lw, call: IntrinsicCall) -> RSExpr:
    pieces: List[str] = []
    values: List[RSExpr] = []
    for node, arg in zip(call.nodes, call.args):
        if isinstance(node, Literal) and node.kind == "str":
            pieces.append(node.value.replace("{", "{{").replace("}", "}}"))
            continue
        if isinstance(arg.ty, ScalarType) and arg.ty.kind.is_float:
            pieces.append("{:?}")
        else:
            pieces.append("{}")
        values.append(arg)
    if not pieces:
        return RS_Macro("println", [])
    template = RS_Literal(rust_string(" ".join(pieces)))
    return RS_Macro("println", [template] + values)


LOWERING_RULES: Dict[Tuple[str, str], LoweringRule] = {}


def _register(module: str, names: str, rule: LoweringRule) -> None:
    for name in names.split():
        LOWERING_RULES[(module, name)] = rule


_register(
    NUMPY,
    "sqrt log log10 log2 exp exp2 sin cos tan arcsin arccos arctan sinh cosh tanh floor ceil",
    _unary_float,
)
_register(NUMPY, "abs absolute sign", _unary_same)
_register(NUMPY, "isnan", _isnan)
_register(NUMPY, "power", _power)
_register(NUMPY, "arctan2 hypot maximum minimum", _binary_method)
_register(NUMPY, "sum prod", _sum)
_register(NUMPY, "mean", _mean)
_register(NUMPY, "max min", _extremum)
_register(NUMPY, "cumsum", _cumsum)
_register(NUMPY, "dot matmul", _dot)
_register(NUMPY, "zeros ones", _zeros)
_register(NUMPY, "full", _full)
_register(NUMPY, "zeros_like ones_like", _like)
_register(NUMPY, "copy", _copy)
_register(NUMPY, "array", _array)
_register(NUMPY, "arange", _arange)
_register(NUMPY, "linspace", _linspace)
_register(NUMPY, "clip", _clip)

_register(MATH, "sqrt log10 log2 exp sin cos tan asin acos atan sinh cosh tanh", _unary_float)
_register(MATH, "fabs", _unary_same)
_register(MATH, "log", _math_log)
_register(MATH, "atan2 hypot", _binary_method)
_register(MATH, "pow", _math_pow)
_register(MATH, "floor ceil", _math_rounding)
_register(MATH, "isnan", _isnan)

_register(BUILTINS, "abs", _unary_same)
_register(BUILTINS, "min max", _binary_method)
_register(BUILTINS, "float int bool", _float)
_register(BUILTINS, "round", _round)
_register(BUILTINS, "len", _len)
_register(BUILTINS, "sum", _sum)
_register(BUILTINS, "print", _print)


def lookup_lowering(module: str, name: str) -> Optional[LoweringRule]:
    return LOWERING_RULES.get((module, name))
