from types import MappingProxyType

import pytest

from tests.helpers.programs import make_node, make_program
from yarnloom.services.builtins import BUILTIN_FUNCTIONS
from yarnloom.services.errors import FunctionError, UnknownFunctionError
from yarnloom.services.functions import CallContext, FunctionRegistry
from yarnloom.services.variables import MemoryVariableStore


def _context(visits=None) -> CallContext:
    return CallContext(
        program=make_program(make_node("Start")),
        node="Start",
        visits=MappingProxyType(dict(visits or {})),
        variables=MemoryVariableStore(),
    )


def test_registry_resolves_builtins_and_host_functions() -> None:
    registry = FunctionRegistry()
    assert "Number.Add" in registry
    assert "shout" not in registry

    registry.register("shout", lambda text: text.upper(), ("string",))
    assert "shout" in registry
    assert registry.call("shout", _context(), ["hey"]) == "HEY"

    registry.unregister("shout")
    with pytest.raises(UnknownFunctionError):
        registry.call("shout", _context(), ["hey"])


def test_registry_without_builtins_is_empty() -> None:
    registry = FunctionRegistry(include_builtins=False)

    assert registry.names() == []
    with pytest.raises(UnknownFunctionError):
        registry.resolve("Number.Add")


def test_names_are_sorted_and_merged() -> None:
    registry = FunctionRegistry()
    registry.register("aaa", lambda: 1)

    names = registry.names()
    assert names == sorted(names)
    assert set(BUILTIN_FUNCTIONS) <= set(names)


def test_results_are_normalized_to_values() -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("seven", lambda: 7)

    result = registry.call("seven", _context(), [])
    assert result == 7.0
    assert isinstance(result, float)


def test_non_value_result_is_a_function_error() -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("broken", lambda: [1, 2])

    with pytest.raises(FunctionError):
        registry.call("broken", _context(), [])


def test_arity_and_kind_are_checked() -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("half", lambda value: value / 2, ("number",))

    with pytest.raises(FunctionError, match="expects 1 argument"):
        registry.call("half", _context(), [1.0, 2.0])
    with pytest.raises(FunctionError, match="must be a number"):
        registry.call("half", _context(), ["ten"])
    with pytest.raises(FunctionError):
        registry.call("half", _context(), [None])


def test_host_exceptions_become_function_errors() -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("explode", lambda: int("x"))

    with pytest.raises(FunctionError) as excinfo:
        registry.call("explode", _context(), [])
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_context_functions_receive_call_context() -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("where", lambda context: context.node, takes_context=True)

    assert registry.call("where", _context(), []) == "Start"


@pytest.mark.parametrize(
    ("name", "args", "expected"),
    [
        ("Number.Add", [2.0, 3.0], 5.0),
        ("Number.Add", ["gold: ", 3.0], "gold: 3"),
        ("String.Add", ["a", "b"], "ab"),
        ("Number.Minus", [2.0, 3.0], -1.0),
        ("Number.Multiply", [2.0, 3.0], 6.0),
        ("Number.Divide", [3.0, 2.0], 1.5),
        ("Number.Modulo", [7.0, 3.0], 1.0),
        ("Number.UnaryMinus", [4.0], -4.0),
        ("Number.EqualTo", [1.0, 1.0], True),
        ("Number.NotEqualTo", [1.0, 1.0], False),
        ("Number.GreaterThan", [2.0, 1.0], True),
        ("Number.GreaterThanOrEqualTo", [1.0, 1.0], True),
        ("Number.LessThan", [2.0, 1.0], False),
        ("Number.LessThanOrEqualTo", [2.0, 1.0], False),
        ("Bool.And", [True, False], False),
        ("Bool.Or", [True, False], True),
        ("Bool.Xor", [True, True], False),
        ("Bool.Not", [False], True),
        ("Bool.EqualTo", [False, False], True),
        ("String.EqualTo", ["a", "a"], True),
        ("String.NotEqualTo", ["a", "b"], True),
        ("floor", [1.7], 1.0),
        ("ceil", [1.2], 2.0),
        ("round", [2.4], 2.0),
        ("round_places", [1.236, 2.0], 1.24),
        ("inc", [1.0], 2.0),
        ("inc", [1.2], 2.0),
        ("dec", [1.0], 0.0),
        ("dec", [1.8], 1.0),
        ("decimal", [3.25], 0.25),
        ("int", [-3.7], -3.0),
        ("string", [4.0], "4"),
        ("string", [True], "True"),
        ("number", [" 2.5 "], 2.5),
        ("bool", ["TRUE"], True),
        ("bool", [0.0], False),
    ],
)
def test_builtin_functions(name: str, args: list, expected) -> None:
    result = FunctionRegistry().call(name, _context(), args)

    assert type(result) is type(expected)
    if isinstance(expected, float):
        assert result == pytest.approx(expected)
    else:
        assert result == expected


@pytest.mark.parametrize(
    ("name", "args"),
    [
        ("Number.Divide", [1.0, 0.0]),
        ("Number.Modulo", [1.0, 0.0]),
        ("Number.Add", [True, 1.0]),
        ("number", ["many"]),
        ("bool", ["maybe"]),
        ("Bool.Not", [1.0]),
    ],
)
def test_builtin_failures(name: str, args: list) -> None:
    with pytest.raises(FunctionError):
        FunctionRegistry().call(name, _context(), args)


def test_visit_builtins_read_visit_counts() -> None:
    context = _context({"Start": 1, "Shop": 3})
    registry = FunctionRegistry()

    assert registry.call("visited_count", context, ["Shop"]) == 3.0
    assert registry.call("visited_count", context, ["Cellar"]) == 0.0
    assert registry.call("visited", context, ["Start"]) is True
    assert registry.call("visited", context, ["Cellar"]) is False


@pytest.mark.parametrize("failure", [lambda: {}["missing"], lambda: [][0], lambda: None.value])
def test_any_host_exception_becomes_function_error(failure) -> None:
    registry = FunctionRegistry(include_builtins=False)
    registry.register("broken", failure)

    with pytest.raises(FunctionError, match="broken") as excinfo:
        registry.call("broken", _context(), [])
    assert excinfo.value.__cause__ is not None
