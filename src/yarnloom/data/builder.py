"""Accumulates compiled program sources and builds one merged Program."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from yarnloom.data.codec import load_program, merge_programs
from yarnloom.data.errors import ProgramFileError, ProgramValidationError
from yarnloom.data.validator import errors_only, format_issue, validate_program
from yarnloom.domain.program import Program

logger = logging.getLogger(__name__)


def read_program_file(path: Path) -> bytes:
    """Read a compiled program from disk and raise ProgramFileError on failure."""
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise ProgramFileError(f"Program file not found: {path}") from exc
    except OSError as exc:
        raise ProgramFileError(f"Unable to read program file: {path}") from exc


@dataclass(frozen=True, slots=True)
class _Source:
    label: str
    path: Path | None = None
    data: bytes = b""
    program: Program | None = None

    def load(self) -> Program:
        if self.program is not None:
            return self.program
        data = self.data if self.path is None else read_program_file(self.path)
        return load_program(data, source=self.label)


class ProgramBuilder:
    """Collects zero or more compiled files before one merge and validate pass."""

    def __init__(self) -> None:
        self._sources: List[_Source] = []

    def add_file(self, path: Path | str) -> "ProgramBuilder":
        file_path = Path(path)
        self._sources.append(_Source(label=str(file_path), path=file_path))
        return self

    def add_bytes(self, data: bytes, source: str = "<bytes>") -> "ProgramBuilder":
        self._sources.append(_Source(label=source, data=bytes(data)))
        return self

    def add_program(self, program: Program) -> "ProgramBuilder":
        self._sources.append(_Source(label=program.name or "<program>", program=program))
        return self

    def build(self, *, entry_nodes: Sequence[str] = ()) -> Program:
        """Load every source, merge them and validate the result."""
        programs = [source.load() for source in self._sources]
        merged = merge_programs(programs)
        issues = validate_program(merged, entry_nodes)
        errors = errors_only(issues)
        for issue in issues:
            if issue.severity != "ERROR":
                logger.warning("%s", format_issue(issue))
        if errors:
            lines = "\n".join(format_issue(issue) for issue in errors)
            raise ProgramValidationError(f"Program failed validation:\n{lines}", errors)
        logger.info(
            "Built program from %d source(s): %d nodes, %d strings",
            len(programs),
            len(merged.nodes),
            len(merged.strings),
        )
        return merged


def load_program_files(paths: Sequence[Path | str], *, entry_nodes: Sequence[str] = ()) -> Program:
    """Build a program from the given files in one call."""
    builder = ProgramBuilder()
    for path in paths:
        builder.add_file(path)
    return builder.build(entry_nodes=entry_nodes)


__all__ = ["ProgramBuilder", "load_program_files", "read_program_file"]
