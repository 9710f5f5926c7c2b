"""Function registry queried by call-function instructions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Literal, Mapping, Sequence, Tuple

from yarnloom.core.types import Value, normalize_value, value_kind
from yarnloom.domain.program import Program
from yarnloom.services.errors import FunctionError, UnknownFunctionError
from yarnloom.services.variables import VariableStore

ParamKind = Literal["string", "number", "bool", "any"]
StoryFunction = Callable[..., Value]


@dataclass(frozen=True, slots=True)
class CallContext:
    """What a function may observe about the run that calls it."""

    program: Program
    node: str
    visits: Mapping[str, int]
    variables: VariableStore

    def visit_count(self, node: str) -> int:
        return self.visits.get(node, 0)


@dataclass(frozen=True, slots=True)
class FunctionDef:
    """A callable plus its declared parameter kinds.

    ``params`` of ``None`` accepts any number of arguments of any kind.
    """

    name: str
    func: StoryFunction
    params: Tuple[ParamKind, ...] | None = None
    takes_context: bool = False

    def check_args(self, args: Sequence[Value | None]) -> None:
        if self.params is None:
            return
        if len(args) != len(self.params):
            raise FunctionError(
                f"Function '{self.name}' expects {len(self.params)} argument(s), got {len(args)}."
            )
        for index, (expected, arg) in enumerate(zip(self.params, args)):
            if expected == "any":
                continue
            kind = value_kind(arg)
            if kind != expected:
                raise FunctionError(
                    f"Function '{self.name}' argument {index} must be a {expected}, "
                    f"got {kind or 'null'} ({arg!r})."
                )


class FunctionRegistry:
    """Name to callable mapping. Host registrations shadow built-ins."""

    def __init__(self, *, include_builtins: bool = True) -> None:
        self._host: Dict[str, FunctionDef] = {}
        if include_builtins:
            from yarnloom.services.builtins import BUILTIN_FUNCTIONS

            self._builtins: Mapping[str, FunctionDef] = BUILTIN_FUNCTIONS
        else:
            self._builtins = {}

    def register(
        self,
        name: str,
        func: StoryFunction,
        params: Sequence[ParamKind] | None = None,
        *,
        takes_context: bool = False,
    ) -> None:
        """Register a host function, replacing any earlier host function of that name."""
        self._host[name] = FunctionDef(
            name=name,
            func=func,
            params=tuple(params) if params is not None else None,
            takes_context=takes_context,
        )

    def unregister(self, name: str) -> None:
        self._host.pop(name, None)

    def resolve(self, name: str) -> FunctionDef:
        definition = self._host.get(name) or self._builtins.get(name)
        if definition is None:
            raise UnknownFunctionError(f"No function named '{name}'.")
        return definition

    def __contains__(self, name: object) -> bool:
        return name in self._host or name in self._builtins

    def names(self) -> list[str]:
        return sorted(set(self._host) | set(self._builtins))

    def call(self, name: str, context: CallContext, args: Sequence[Value | None]) -> Value:
        """Invoke the named function and return its result as a value."""
        definition = self.resolve(name)
        definition.check_args(args)
        call_args = (context, *args) if definition.takes_context else tuple(args)
        try:
            result = definition.func(*call_args)
        except FunctionError:
            raise
        except Exception as exc:
            raise FunctionError(f"Function '{name}' failed: {exc}") from exc
        if value_kind(result) is None:
            raise FunctionError(
                f"Function '{name}' returned {type(result).__name__}, expected a string, number or bool."
            )
        return normalize_value(result)


__all__ = ["CallContext", "FunctionDef", "FunctionRegistry", "ParamKind", "StoryFunction"]
