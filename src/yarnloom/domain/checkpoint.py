"""Execution state captured between runner steps."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

from yarnloom.core.types import Value


@dataclass(frozen=True, slots=True)
class ReturnFrame:
    """Where execution continues after a called node returns."""

    node: str
    pointer: int


@dataclass(frozen=True, slots=True)
class Option:
    """An option accumulated by add-option and offered by show-options."""

    key: str
    destination: str
    substitutions: Tuple[str, ...] = ()
    enabled: bool = True


VisitCounts = Tuple[Tuple[str, int], ...]


def freeze_visits(visits: Mapping[str, int]) -> VisitCounts:
    return tuple(sorted((name, count) for name, count in visits.items() if count > 0))


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Immutable snapshot of a run.

    ``pointer`` is the index of the next instruction in ``node``; it equals the
    instruction count when the node has been exhausted. ``offered_options`` is
    only populated while ``awaiting_selection`` is set.
    """

    node: str
    pointer: int = 0
    stack: Tuple[Value | None, ...] = ()
    call_stack: Tuple[ReturnFrame, ...] = ()
    pending_options: Tuple[Option, ...] = ()
    offered_options: Tuple[Option, ...] = ()
    awaiting_selection: bool = False
    visits: VisitCounts = ()
    complete: bool = False

    def visit_count(self, node: str) -> int:
        for name, count in self.visits:
            if name == node:
                return count
        return 0

    @property
    def visited_nodes(self) -> Dict[str, int]:
        return dict(self.visits)

    @property
    def is_balanced(self) -> bool:
        """True when no values or return frames are left over."""
        return not self.stack and not self.call_stack


__all__ = ["Checkpoint", "Option", "ReturnFrame", "VisitCounts", "freeze_visits"]
