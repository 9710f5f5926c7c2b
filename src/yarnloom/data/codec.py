"""Binary program format: decoding, encoding and merging."""
from __future__ import annotations

import logging
import struct
from types import MappingProxyType
from typing import Dict, Iterable, List, Tuple

from yarnloom.core.types import Value, normalize_value, value_kind
from yarnloom.data.errors import (
    DuplicateNodeError,
    DuplicateStringKeyError,
    DuplicateVariableError,
    MalformedProgramError,
    UnsupportedInstructionError,
    VersionMismatchError,
)
from yarnloom.domain.program import (
    Instruction,
    Node,
    OpCode,
    Program,
    StringEntry,
    build_node,
    make_instruction,
)

logger = logging.getLogger(__name__)

MAGIC = b"YLNC"
FORMAT_VERSION = 1

_HEADER = struct.Struct(">4sHH")
_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_F64 = struct.Struct(">d")

# Value kind tags on the wire.
_KIND_STRING = 0
_KIND_NUMBER = 1
_KIND_BOOL = 2

_KNOWN_OPCODES = {code.value for code in OpCode}


class _Reader:
    """Cursor over program bytes; every read failure is a MalformedProgramError."""

    def __init__(self, data: bytes, source: str) -> None:
        self._data = memoryview(data)
        self._offset = 0
        self._source = source

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _unpack(self, fmt: struct.Struct, what: str) -> tuple:
        try:
            values = fmt.unpack_from(self._data, self._offset)
        except struct.error as exc:
            raise MalformedProgramError(
                f"{self._source}: truncated data while reading {what} at offset {self._offset}."
            ) from exc
        self._offset += fmt.size
        return values

    def header(self) -> Tuple[bytes, int, int]:
        return self._unpack(_HEADER, "header")

    def u8(self, what: str) -> int:
        return self._unpack(_U8, what)[0]

    def u16(self, what: str) -> int:
        return self._unpack(_U16, what)[0]

    def u32(self, what: str) -> int:
        return self._unpack(_U32, what)[0]

    def f64(self, what: str) -> float:
        return self._unpack(_F64, what)[0]

    def text(self, what: str) -> str:
        length = self.u32(f"{what} length")
        if length > self.remaining:
            raise MalformedProgramError(
                f"{self._source}: {what} claims {length} bytes but only {self.remaining} remain."
            )
        raw = bytes(self._data[self._offset : self._offset + length])
        self._offset += length
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedProgramError(f"{self._source}: {what} is not valid UTF-8.") from exc

    def value(self, what: str) -> Value:
        kind = self.u8(f"{what} kind")
        if kind == _KIND_STRING:
            return self.text(what)
        if kind == _KIND_NUMBER:
            return self.f64(what)
        if kind == _KIND_BOOL:
            flag = self.u8(what)
            if flag not in (0, 1):
                raise MalformedProgramError(f"{self._source}: {what} has invalid boolean byte {flag}.")
            return flag == 1
        raise MalformedProgramError(f"{self._source}: {what} has unknown value kind {kind}.")


def load_program(data: bytes, *, source: str = "<bytes>") -> Program:
    """Decode one compiled program and validate its structure."""
    reader = _Reader(data, source)
    if reader.remaining < _HEADER.size:
        raise MalformedProgramError(f"{source}: data too short for a program header.")
    magic, version, _flags = reader.header()
    if magic != MAGIC:
        raise MalformedProgramError(f"{source}: not a compiled program (bad magic {magic!r}).")
    if version != FORMAT_VERSION:
        raise VersionMismatchError(version, FORMAT_VERSION)

    name = reader.text("program name")
    nodes: Dict[str, Node] = {}
    for _ in range(reader.u32("node count")):
        node = _read_node(reader, source)
        if node.name in nodes:
            raise DuplicateNodeError(f"{source}: duplicate node name '{node.name}'.", name=node.name)
        nodes[node.name] = node

    strings: Dict[str, StringEntry] = {}
    for _ in range(reader.u32("string count")):
        key = reader.text("string key")
        text = reader.text(f"string '{key}' text")
        tags = tuple(reader.text(f"string '{key}' tag") for _ in range(reader.u16("tag count")))
        if key in strings:
            raise DuplicateStringKeyError(f"{source}: duplicate string key '{key}'.", name=key)
        strings[key] = StringEntry(text=text, tags=tags)

    initial_values: Dict[str, Value] = {}
    for _ in range(reader.u32("initial value count")):
        var_name = reader.text("variable name")
        value = reader.value(f"initial value of '{var_name}'")
        if var_name in initial_values:
            raise DuplicateVariableError(
                f"{source}: duplicate initial value for '{var_name}'.", name=var_name
            )
        initial_values[var_name] = value

    if reader.remaining:
        raise MalformedProgramError(f"{source}: {reader.remaining} trailing bytes after program data.")

    logger.debug(
        "Loaded program '%s' from %s: %d nodes, %d strings, %d initial values",
        name,
        source,
        len(nodes),
        len(strings),
        len(initial_values),
    )
    return Program(
        name=name,
        nodes=MappingProxyType(nodes),
        strings=MappingProxyType(strings),
        initial_values=MappingProxyType(initial_values),
    )


def _read_node(reader: _Reader, source: str) -> Node:
    name = reader.text("node name")
    context = f"node '{name}'"
    tags = tuple(reader.text(f"{context} tag") for _ in range(reader.u16(f"{context} tag count")))
    labels: Dict[str, int] = {}
    for _ in range(reader.u32(f"{context} label count")):
        label = reader.text(f"{context} label")
        index = reader.u32(f"{context} label '{label}' index")
        if label in labels:
            raise MalformedProgramError(f"{source}: {context} declares label '{label}' twice.")
        labels[label] = index

    instructions: List[Instruction] = []
    for position in range(reader.u32(f"{context} instruction count")):
        opcode = reader.u8(f"{context} opcode")
        if opcode not in _KNOWN_OPCODES:
            raise UnsupportedInstructionError(opcode, name)
        operand_count = reader.u8(f"{context} operand count")
        operands = [
            reader.value(f"{context} instruction {position} operand {index}")
            for index in range(operand_count)
        ]
        try:
            instructions.append(make_instruction(opcode, *operands))
        except MalformedProgramError as exc:
            raise MalformedProgramError(f"{source}: {context} instruction {position}: {exc}") from exc
    return build_node(name, instructions, labels, tags)


class _Writer:
    def __init__(self) -> None:
        self._buffer = bytearray()

    def pack(self, fmt: struct.Struct, *values: object) -> None:
        self._buffer.extend(fmt.pack(*values))

    def text(self, value: str) -> None:
        encoded = value.encode("utf-8")
        self.pack(_U32, len(encoded))
        self._buffer.extend(encoded)

    def value(self, value: Value) -> None:
        kind = value_kind(value)
        if kind == "string":
            self.pack(_U8, _KIND_STRING)
            self.text(value)  # type: ignore[arg-type]
        elif kind == "number":
            self.pack(_U8, _KIND_NUMBER)
            self.pack(_F64, float(value))
        elif kind == "bool":
            self.pack(_U8, _KIND_BOOL)
            self.pack(_U8, 1 if value else 0)
        else:
            raise TypeError(f"Cannot encode value of type {type(value).__name__}")

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


def encode_program(program: Program) -> bytes:
    """Encode a program into the binary format read by load_program."""
    writer = _Writer()
    writer.pack(_HEADER, MAGIC, FORMAT_VERSION, 0)
    writer.text(program.name)

    writer.pack(_U32, len(program.nodes))
    for node in program.nodes.values():
        writer.text(node.name)
        writer.pack(_U16, len(node.tags))
        for tag in node.tags:
            writer.text(tag)
        writer.pack(_U32, len(node.labels))
        for label, index in node.labels.items():
            writer.text(label)
            writer.pack(_U32, index)
        writer.pack(_U32, len(node.instructions))
        for instruction in node.instructions:
            writer.pack(_U8, int(instruction.opcode))
            writer.pack(_U8, len(instruction.operands))
            for operand in instruction.operands:
                writer.value(operand)

    writer.pack(_U32, len(program.strings))
    for key, entry in program.strings.items():
        writer.text(key)
        writer.text(entry.text)
        writer.pack(_U16, len(entry.tags))
        for tag in entry.tags:
            writer.text(tag)

    writer.pack(_U32, len(program.initial_values))
    for var_name, value in program.initial_values.items():
        writer.text(var_name)
        writer.value(value)
    return writer.getvalue()


def merge_programs(programs: Iterable[Program], *, name: str | None = None) -> Program:
    """Combine programs into one; every node, string key and variable must be unique."""
    nodes: Dict[str, Node] = {}
    strings: Dict[str, StringEntry] = {}
    initial_values: Dict[str, Value] = {}
    names: List[str] = []
    for program in programs:
        if program.name:
            names.append(program.name)
        for node_name, node in program.nodes.items():
            if node_name in nodes:
                raise DuplicateNodeError(
                    f"Node '{node_name}' is declared by more than one program.", name=node_name
                )
            nodes[node_name] = node
        for key, entry in program.strings.items():
            if key in strings:
                raise DuplicateStringKeyError(
                    f"String key '{key}' is declared by more than one program.", name=key
                )
            strings[key] = entry
        for var_name, value in program.initial_values.items():
            if var_name in initial_values:
                raise DuplicateVariableError(
                    f"Variable '{var_name}' has an initial value in more than one program.",
                    name=var_name,
                )
            initial_values[var_name] = normalize_value(value)
    return Program(
        name=name if name is not None else "+".join(names),
        nodes=MappingProxyType(nodes),
        strings=MappingProxyType(strings),
        initial_values=MappingProxyType(initial_values),
    )


__all__ = [
    "FORMAT_VERSION",
    "MAGIC",
    "encode_program",
    "load_program",
    "merge_programs",
]
