"""Turns line, option and command events into display text."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

from yarnloom.core.templates import format_template, placeholder_indices
from yarnloom.core.types import format_value
from yarnloom.domain.checkpoint import Option
from yarnloom.domain.program import Program
from yarnloom.services.events import RunCommand, ShowLine


@dataclass(frozen=True, slots=True)
class FormattedText:
    """Text ready for presentation, with the string table's metadata tags."""

    key: str
    text: str
    tags: Tuple[str, ...] = ()


class LineFormatter:
    """Resolves string keys against a program's string table."""

    def __init__(self, program: Program) -> None:
        self._program = program

    def format_key(self, key: str, substitutions: Sequence[str] = ()) -> FormattedText:
        entry = self._program.string(key)
        if entry is None:
            raise KeyError(key)
        return FormattedText(key=key, text=format_template(entry.text, substitutions), tags=entry.tags)

    def format_line(self, event: ShowLine) -> FormattedText:
        return self.format_key(event.key, event.substitutions)

    def format_option(self, option: Option) -> FormattedText:
        return self.format_key(option.key, option.substitutions)

    def format_command(self, event: RunCommand) -> FormattedText:
        # Commands usually carry their text inline rather than in the string table.
        entry = self._program.string(event.key)
        tags = entry.tags if entry is not None else ()
        return FormattedText(key=event.key, text=event.text, tags=tags)


__all__ = [
    "FormattedText",
    "LineFormatter",
    "format_template",
    "format_value",
    "placeholder_indices",
]
