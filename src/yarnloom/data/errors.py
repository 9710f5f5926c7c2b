"""Custom exceptions for loading, merging and validating programs."""
from __future__ import annotations


class LoadError(Exception):
    """Base exception for the data layer. Always fatal to the build."""


class ProgramFileError(LoadError):
    """Raised when a compiled program file is missing or unreadable."""


class MalformedProgramError(LoadError):
    """Raised when program bytes do not follow the binary format."""


class VersionMismatchError(LoadError):
    """Raised when the format version is not the one this loader reads."""

    def __init__(self, found: int, expected: int) -> None:
        super().__init__(f"Unsupported program format version {found} (expected {expected}).")
        self.found = found
        self.expected = expected


class UnsupportedInstructionError(LoadError):
    """Raised when an instruction uses an opcode this runtime does not know."""

    def __init__(self, opcode: int, node: str) -> None:
        super().__init__(f"Unsupported opcode {opcode} in node '{node}'.")
        self.opcode = opcode
        self.node = node


class UnresolvedLabelError(LoadError):
    """Raised when a jump names a label its node does not declare."""


class DuplicateNameError(LoadError):
    """Raised when merged programs declare the same name twice."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


class DuplicateNodeError(DuplicateNameError):
    """Raised when two programs (or one file) declare the same node name."""


class DuplicateStringKeyError(DuplicateNameError):
    """Raised when two string table entries share a key."""


class DuplicateVariableError(DuplicateNameError):
    """Raised when two programs declare an initial value for the same variable."""


class ProgramValidationError(LoadError):
    """Raised when static validation of a merged program reports errors."""

    def __init__(self, message: str, issues: list) -> None:
        super().__init__(message)
        self.issues = list(issues)
