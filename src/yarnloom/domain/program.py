"""Compiled program structures shared by the loader and the runner."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Sequence, Tuple

from yarnloom.core.types import Value, ValueKind, is_count, normalize_value, value_kind
from yarnloom.data.errors import DuplicateNodeError, MalformedProgramError, UnresolvedLabelError


class OpCode(IntEnum):
    """Instruction set. The integer values are the wire encoding."""

    JUMP_TO = 0
    JUMP = 1
    RUN_LINE = 2
    RUN_COMMAND = 3
    ADD_OPTION = 4
    SHOW_OPTIONS = 5
    PUSH_STRING = 6
    PUSH_NUMBER = 7
    PUSH_BOOL = 8
    PUSH_NULL = 9
    JUMP_IF_FALSE = 10
    POP = 11
    CALL_FUNC = 12
    PUSH_VARIABLE = 13
    STORE_VARIABLE = 14
    STOP = 15
    RUN_NODE = 16
    RETURN = 17


@dataclass(frozen=True, slots=True)
class OperandSchema:
    """Operand kinds an opcode accepts: required ones first, then optional ones."""

    required: Tuple[ValueKind, ...] = ()
    optional: Tuple[ValueKind, ...] = ()


OPERAND_SCHEMAS: Dict[OpCode, OperandSchema] = {
    OpCode.JUMP_TO: OperandSchema(required=("string",)),
    OpCode.JUMP: OperandSchema(),
    OpCode.RUN_LINE: OperandSchema(required=("string",), optional=("number",)),
    OpCode.RUN_COMMAND: OperandSchema(required=("string",), optional=("number",)),
    OpCode.ADD_OPTION: OperandSchema(required=("string", "string"), optional=("number", "bool")),
    OpCode.SHOW_OPTIONS: OperandSchema(),
    OpCode.PUSH_STRING: OperandSchema(required=("string",)),
    OpCode.PUSH_NUMBER: OperandSchema(required=("number",)),
    OpCode.PUSH_BOOL: OperandSchema(required=("bool",)),
    OpCode.PUSH_NULL: OperandSchema(),
    OpCode.JUMP_IF_FALSE: OperandSchema(required=("string",)),
    OpCode.POP: OperandSchema(),
    OpCode.CALL_FUNC: OperandSchema(required=("string",), optional=("number",)),
    OpCode.PUSH_VARIABLE: OperandSchema(required=("string",)),
    OpCode.STORE_VARIABLE: OperandSchema(required=("string",)),
    OpCode.STOP: OperandSchema(),
    OpCode.RUN_NODE: OperandSchema(optional=("string",)),
    OpCode.RETURN: OperandSchema(),
}

LABEL_OPCODES = frozenset({OpCode.JUMP_TO, OpCode.JUMP_IF_FALSE})

# Operand index holding a substitution or argument count.
COUNT_OPERANDS: Dict[OpCode, int] = {
    OpCode.RUN_LINE: 1,
    OpCode.RUN_COMMAND: 1,
    OpCode.ADD_OPTION: 2,
    OpCode.CALL_FUNC: 1,
}


@dataclass(frozen=True, slots=True)
class Instruction:
    """Single decoded instruction.

    ``target`` holds the resolved label index for label jumps; it is ``None``
    for every other opcode.
    """

    opcode: OpCode
    operands: Tuple[Value, ...] = ()
    target: int | None = None

    def operand(self, index: int) -> Value | None:
        if index < len(self.operands):
            return self.operands[index]
        return None

    def count_operand(self, index: int) -> int:
        """Return an optional count operand as an int (0 when absent)."""
        value = self.operand(index)
        if value is None:
            return 0
        return int(value)


@dataclass(frozen=True, slots=True)
class Node:
    """Named, closed sequence of instructions."""

    name: str
    instructions: Tuple[Instruction, ...] = ()
    labels: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class StringEntry:
    """String table entry: a ``{n}`` template plus its metadata tags."""

    text: str
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Program:
    """Immutable, merged representation of one or more compiled files."""

    name: str = ""
    nodes: Mapping[str, Node] = field(default_factory=lambda: MappingProxyType({}))
    strings: Mapping[str, StringEntry] = field(default_factory=lambda: MappingProxyType({}))
    initial_values: Mapping[str, Value] = field(default_factory=lambda: MappingProxyType({}))

    def node(self, name: str) -> Node | None:
        return self.nodes.get(name)

    def string(self, key: str) -> StringEntry | None:
        return self.strings.get(key)

    def initial_value(self, name: str) -> Value | None:
        return self.initial_values.get(name)


def make_instruction(opcode: OpCode | int, *operands: object) -> Instruction:
    """Create an unresolved instruction, checking operands against the opcode schema."""
    try:
        code = OpCode(opcode)
    except ValueError as exc:
        raise MalformedProgramError(f"Unknown opcode {opcode!r}.") from exc
    schema = OPERAND_SCHEMAS[code]
    max_count = len(schema.required) + len(schema.optional)
    if not len(schema.required) <= len(operands) <= max_count:
        raise MalformedProgramError(
            f"{code.name} expects between {len(schema.required)} and {max_count} operands, "
            f"got {len(operands)}."
        )
    kinds = schema.required + schema.optional
    normalized: list[Value] = []
    for index, operand in enumerate(operands):
        kind = value_kind(operand)
        if kind != kinds[index]:
            raise MalformedProgramError(
                f"{code.name} operand {index} must be a {kinds[index]}, got {kind or type(operand).__name__}."
            )
        normalized.append(normalize_value(operand))
    count_index = COUNT_OPERANDS.get(code)
    if count_index is not None and count_index < len(normalized) and not is_count(normalized[count_index]):
        raise MalformedProgramError(
            f"{code.name} count operand must be a non-negative integer, got {normalized[count_index]!r}."
        )
    return Instruction(opcode=code, operands=tuple(normalized))


def build_node(
    name: str,
    instructions: Sequence[Instruction],
    labels: Mapping[str, int] | None = None,
    tags: Iterable[str] = (),
) -> Node:
    """Create a node, resolving label jumps into instruction indices."""
    label_map = dict(labels or {})
    for label, index in label_map.items():
        if not 0 <= index <= len(instructions):
            raise MalformedProgramError(
                f"Label '{label}' in node '{name}' points outside the node (index {index})."
            )
    resolved: list[Instruction] = []
    for position, instruction in enumerate(instructions):
        if instruction.opcode in LABEL_OPCODES:
            label = instruction.operands[0]
            if label not in label_map:
                raise UnresolvedLabelError(
                    f"Instruction {position} in node '{name}' jumps to unknown label '{label}'."
                )
            instruction = Instruction(
                opcode=instruction.opcode,
                operands=instruction.operands,
                target=label_map[label],  # type: ignore[index]
            )
        resolved.append(instruction)
    return Node(
        name=name,
        instructions=tuple(resolved),
        labels=MappingProxyType(label_map),
        tags=tuple(tags),
    )


def build_program(
    name: str = "",
    nodes: Iterable[Node] = (),
    strings: Mapping[str, StringEntry] | None = None,
    initial_values: Mapping[str, object] | None = None,
) -> Program:
    """Assemble a program from already-built nodes; node names must be unique."""
    node_map: Dict[str, Node] = {}
    for node in nodes:
        if node.name in node_map:
            raise DuplicateNodeError(f"Duplicate node name '{node.name}'.", name=node.name)
        node_map[node.name] = node
    values = {key: normalize_value(value) for key, value in (initial_values or {}).items()}
    return Program(
        name=name,
        nodes=MappingProxyType(node_map),
        strings=MappingProxyType(dict(strings or {})),
        initial_values=MappingProxyType(values),
    )


__all__ = [
    "Instruction",
    "COUNT_OPERANDS",
    "LABEL_OPCODES",
    "Node",
    "OPERAND_SCHEMAS",
    "OpCode",
    "OperandSchema",
    "Program",
    "StringEntry",
    "build_node",
    "build_program",
    "make_instruction",
]
