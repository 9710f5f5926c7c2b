"""Built-in functions: operators used by expression lowering plus the standard library."""
from __future__ import annotations

import math
from typing import Callable, Dict, Tuple

from yarnloom.core.types import Value, format_value, value_kind
from yarnloom.services.errors import FunctionError
from yarnloom.services.functions import CallContext, FunctionDef, ParamKind

BUILTIN_FUNCTIONS: Dict[str, FunctionDef] = {}


def _builtin(name: str, *params: ParamKind, takes_context: bool = False) -> Callable:
    def decorator(func: Callable[..., Value]) -> Callable[..., Value]:
        BUILTIN_FUNCTIONS[name] = FunctionDef(
            name=name, func=func, params=tuple(params), takes_context=takes_context
        )
        return func

    return decorator


def _register_all(names: Tuple[str, ...], params: Tuple[ParamKind, ...], func: Callable[..., Value]) -> None:
    for name in names:
        BUILTIN_FUNCTIONS[name] = FunctionDef(name=name, func=func, params=params)


def _add(a: Value, b: Value) -> Value:
    """Numeric addition, or concatenation when either side is a string."""
    kind_a, kind_b = value_kind(a), value_kind(b)
    if "bool" in (kind_a, kind_b):
        raise FunctionError("Booleans cannot be added.")
    if kind_a == "number" and kind_b == "number":
        return float(a) + float(b)
    return format_value(a) + format_value(b)


_register_all(("Number.Add", "String.Add"), ("any", "any"), _add)


@_builtin("Number.Minus", "number", "number")
def _minus(a: float, b: float) -> float:
    return a - b


@_builtin("Number.Multiply", "number", "number")
def _multiply(a: float, b: float) -> float:
    return a * b


@_builtin("Number.Divide", "number", "number")
def _divide(a: float, b: float) -> float:
    if b == 0:
        raise FunctionError("Division by zero.")
    return a / b


@_builtin("Number.Modulo", "number", "number")
def _modulo(a: float, b: float) -> float:
    if b == 0:
        raise FunctionError("Modulo by zero.")
    return math.fmod(a, b)


@_builtin("Number.UnaryMinus", "number")
def _unary_minus(a: float) -> float:
    return -a


_register_all(("Number.EqualTo",), ("number", "number"), lambda a, b: a == b)
_register_all(("Number.NotEqualTo",), ("number", "number"), lambda a, b: a != b)
_register_all(("Number.GreaterThan",), ("number", "number"), lambda a, b: a > b)
_register_all(("Number.GreaterThanOrEqualTo",), ("number", "number"), lambda a, b: a >= b)
_register_all(("Number.LessThan",), ("number", "number"), lambda a, b: a < b)
_register_all(("Number.LessThanOrEqualTo",), ("number", "number"), lambda a, b: a <= b)

_register_all(("Bool.EqualTo",), ("bool", "bool"), lambda a, b: a == b)
_register_all(("Bool.NotEqualTo",), ("bool", "bool"), lambda a, b: a != b)
_register_all(("Bool.And",), ("bool", "bool"), lambda a, b: a and b)
_register_all(("Bool.Or",), ("bool", "bool"), lambda a, b: a or b)
_register_all(("Bool.Xor",), ("bool", "bool"), lambda a, b: a != b)
_register_all(("Bool.Not",), ("bool",), lambda a: not a)

_register_all(("String.EqualTo",), ("string", "string"), lambda a, b: a == b)
_register_all(("String.NotEqualTo",), ("string", "string"), lambda a, b: a != b)


@_builtin("visited_count", "string", takes_context=True)
def visited_count(context: CallContext, node: str) -> float:
    """Number of times the named node has been entered."""
    return float(context.visit_count(node))


@_builtin("visited", "string", takes_context=True)
def visited(context: CallContext, node: str) -> bool:
    """Whether the named node has been entered at least once."""
    return context.visit_count(node) > 0


@_builtin("floor", "number")
def _floor(a: float) -> float:
    return float(math.floor(a))


@_builtin("ceil", "number")
def _ceil(a: float) -> float:
    return float(math.ceil(a))


@_builtin("round", "number")
def _round(a: float) -> float:
    return float(round(a))


@_builtin("round_places", "number", "number")
def _round_places(a: float, places: float) -> float:
    return round(a, int(places))


@_builtin("inc", "number")
def _inc(a: float) -> float:
    if a.is_integer():
        return a + 1
    return float(math.ceil(a))


@_builtin("dec", "number")
def _dec(a: float) -> float:
    if a.is_integer():
        return a - 1
    return float(math.floor(a))


@_builtin("decimal", "number")
def _decimal(a: float) -> float:
    return a - math.trunc(a)


@_builtin("int", "number")
def _int(a: float) -> float:
    return float(math.trunc(a))


@_builtin("string", "any")
def _string(a: Value) -> str:
    return format_value(a)


@_builtin("number", "any")
def _number(a: Value) -> float:
    kind = value_kind(a)
    if kind == "number":
        return float(a)
    if kind == "string":
        try:
            return float(str(a).strip())
        except ValueError as exc:
            raise FunctionError(f"Cannot convert {a!r} to a number.") from exc
    raise FunctionError(f"Cannot convert {a!r} to a number.")


@_builtin("bool", "any")
def _bool(a: Value) -> bool:
    kind = value_kind(a)
    if kind == "bool":
        return bool(a)
    if kind == "number":
        return a != 0
    if kind == "string":
        lowered = str(a).strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
    raise FunctionError(f"Cannot convert {a!r} to a bool.")


__all__ = ["BUILTIN_FUNCTIONS", "visited", "visited_count"]
