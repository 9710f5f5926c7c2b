"""Shared value types for the program and runtime layers."""
from __future__ import annotations

import math
from typing import Literal, Union

Value = Union[str, float, bool]
ValueKind = Literal["string", "number", "bool"]


def value_kind(value: object) -> ValueKind | None:
    """Return the kind of a runtime value, or None when it is not one."""
    # bool is a subclass of int, so it has to be checked first.
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


def is_count(value: object) -> bool:
    """True for a number usable as a count: finite, integral and not negative."""
    if value_kind(value) != "number":
        return False
    number = float(value)  # type: ignore[arg-type]
    return math.isfinite(number) and number.is_integer() and number >= 0


def normalize_value(value: object) -> Value:
    """Return the canonical form of a value (numbers become floats)."""
    kind = value_kind(value)
    if kind is None:
        raise TypeError(f"Unsupported value type: {type(value).__name__}")
    if kind == "number":
        return float(value)  # type: ignore[arg-type]
    return value  # type: ignore[return-value]


def format_value(value: Value | None) -> str:
    """Render a value the way it appears inside substituted text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (int, float)):
        number = float(value)
        if math.isfinite(number) and number.is_integer():
            return str(int(number))
        return repr(number)
    return value


__all__ = [
    "Value",
    "ValueKind",
    "format_value",
    "is_count",
    "normalize_value",
    "value_kind",
]
