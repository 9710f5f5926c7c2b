"""Data layer utilities for loading compiled programs."""

from .errors import (
    DuplicateNodeError,
    DuplicateStringKeyError,
    DuplicateVariableError,
    LoadError,
    MalformedProgramError,
    ProgramFileError,
    ProgramValidationError,
    UnresolvedLabelError,
    UnsupportedInstructionError,
    VersionMismatchError,
)

__all__ = [
    "DuplicateNodeError",
    "DuplicateStringKeyError",
    "DuplicateVariableError",
    "LoadError",
    "MalformedProgramError",
    "ProgramFileError",
    "ProgramValidationError",
    "UnresolvedLabelError",
    "UnsupportedInstructionError",
    "VersionMismatchError",
]
