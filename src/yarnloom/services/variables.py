"""Variable storage owned by the host."""
from __future__ import annotations

from typing import Dict, Iterator, Mapping, Protocol, runtime_checkable

from yarnloom.core.types import Value, normalize_value
from yarnloom.domain.program import Program


@runtime_checkable
class VariableStore(Protocol):
    """Capability the runner reads and writes variables through."""

    def get(self, name: str) -> Value | None:
        ...

    def set(self, name: str, value: Value) -> None:
        ...


class MemoryVariableStore:
    """Dict-backed variable store."""

    def __init__(self, initial: Mapping[str, Value] | None = None) -> None:
        self._values: Dict[str, Value] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    @classmethod
    def from_program(cls, program: Program) -> "MemoryVariableStore":
        """Create a store seeded with the program's declared defaults."""
        return cls(program.initial_values)

    def get(self, name: str) -> Value | None:
        return self._values.get(name)

    def set(self, name: str, value: Value) -> None:
        self._values[name] = normalize_value(value)

    def snapshot(self) -> Dict[str, Value]:
        return dict(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._values))

    def __repr__(self) -> str:
        return f"MemoryVariableStore({self._values!r})"


class StagedVariables:
    """Overlay that buffers writes until a step succeeds.

    Reads see staged writes first. ``commit`` flushes the writes to the
    underlying store in the order they were made.
    """

    def __init__(self, store: VariableStore) -> None:
        self._store = store
        self._staged: Dict[str, Value] = {}

    def get(self, name: str) -> Value | None:
        if name in self._staged:
            return self._staged[name]
        return self._store.get(name)

    def set(self, name: str, value: Value) -> None:
        self._staged.pop(name, None)
        self._staged[name] = normalize_value(value)

    @property
    def pending(self) -> Dict[str, Value]:
        return dict(self._staged)

    def commit(self) -> None:
        for name, value in self._staged.items():
            self._store.set(name, value)
        self._staged.clear()


__all__ = ["MemoryVariableStore", "StagedVariables", "VariableStore"]
