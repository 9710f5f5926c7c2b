"""Positional ``{n}`` substitution templates."""
from __future__ import annotations

import re
from typing import Sequence, Set

_PLACEHOLDER = re.compile(r"\{(\d+)\}")


def placeholder_indices(template: str) -> Set[int]:
    """Return the substitution indices a template refers to."""
    return {int(match.group(1)) for match in _PLACEHOLDER.finditer(template)}


def format_template(template: str, substitutions: Sequence[str]) -> str:
    """Replace ``{n}`` markers with substitutions; unknown indices stay literal."""

    def _replace(match: re.Match[str]) -> str:
        index = int(match.group(1))
        if index < len(substitutions):
            return substitutions[index]
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


__all__ = ["format_template", "placeholder_indices"]
