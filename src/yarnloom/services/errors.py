"""Service-layer exceptions."""
from __future__ import annotations


class StoryRuntimeError(Exception):
    """Base exception for a failed step. The input checkpoint stays valid.

    ``node`` and ``pointer`` locate the failing instruction when known.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.node: str | None = None
        self.pointer: int | None = None

    def locate(self, node: str, pointer: int) -> None:
        if self.node is None:
            self.node = node
            self.pointer = pointer

    def __str__(self) -> str:
        if self.node is None:
            return self.message
        return f"{self.message} (node '{self.node}', instruction {self.pointer})"


class StackUnderflowError(StoryRuntimeError):
    """Raised when an instruction pops from an empty evaluation stack."""


class CallStackUnderflowError(StoryRuntimeError):
    """Raised when return executes with no return frame."""


class UnknownLabelError(StoryRuntimeError):
    """Raised when an indirect jump names a label missing from the node."""


class UnknownNodeError(StoryRuntimeError):
    """Raised when control is transferred to a node the program lacks."""


class UnknownFunctionError(StoryRuntimeError):
    """Raised when no registered or built-in function has the called name."""


class FunctionError(StoryRuntimeError):
    """Raised when a function rejects its arguments or fails."""


class UndefinedVariableError(StoryRuntimeError):
    """Raised when a variable is neither stored nor declared with a default."""


class ValueTypeError(StoryRuntimeError):
    """Raised when an instruction finds a value of the wrong kind on the stack."""


class InvalidResumeInputError(StoryRuntimeError):
    """Raised when a selection is missing, unexpected, out of range or disabled."""


class AlreadyCompleteError(StoryRuntimeError):
    """Raised when stepping a checkpoint that already completed."""


class InvalidCheckpointError(StoryRuntimeError):
    """Raised when a checkpoint does not fit the program it is run against."""


class InstructionBudgetExceededError(StoryRuntimeError):
    """Raised when a step executes more instructions than the configured budget."""


class CheckpointFormatError(Exception):
    """Raised when serialized checkpoint data is invalid."""


class TestPlanError(Exception):
    """Base exception for the test-plan harness."""

    __test__ = False


class TestPlanParseError(TestPlanError):
    """Raised when a test plan line cannot be parsed."""


class TestPlanMismatchError(TestPlanError):
    """Raised when a run diverges from its test plan."""
