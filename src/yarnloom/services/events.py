"""Events returned to the host by each runner step."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from yarnloom.domain.checkpoint import Option


@dataclass(frozen=True, slots=True)
class StoryEvent:
    """Base class for story events."""


@dataclass(frozen=True, slots=True)
class ShowLine(StoryEvent):
    key: str
    substitutions: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ShowOptions(StoryEvent):
    options: Tuple[Option, ...] = ()


@dataclass(frozen=True, slots=True)
class RunCommand(StoryEvent):
    """Host command; ``text`` is the command template with substitutions applied."""

    key: str
    substitutions: Tuple[str, ...] = ()
    text: str = ""


@dataclass(frozen=True, slots=True)
class DialogueComplete(StoryEvent):
    pass


__all__ = ["DialogueComplete", "RunCommand", "ShowLine", "ShowOptions", "StoryEvent"]
