"""Service layer exports."""

from .checkpoint_codec import CheckpointCodec
from .errors import (
    AlreadyCompleteError,
    CallStackUnderflowError,
    CheckpointFormatError,
    FunctionError,
    InstructionBudgetExceededError,
    InvalidCheckpointError,
    InvalidResumeInputError,
    StackUnderflowError,
    StoryRuntimeError,
    UndefinedVariableError,
    UnknownFunctionError,
    UnknownLabelError,
    UnknownNodeError,
    ValueTypeError,
)
from .events import DialogueComplete, RunCommand, ShowLine, ShowOptions, StoryEvent
from .functions import CallContext, FunctionRegistry
from .story_runner import StoryRunner, step
from .text_service import FormattedText, LineFormatter
from .variables import MemoryVariableStore, VariableStore

__all__ = [
    "AlreadyCompleteError",
    "CallContext",
    "CallStackUnderflowError",
    "CheckpointCodec",
    "CheckpointFormatError",
    "DialogueComplete",
    "FormattedText",
    "FunctionError",
    "FunctionRegistry",
    "InstructionBudgetExceededError",
    "InvalidCheckpointError",
    "InvalidResumeInputError",
    "LineFormatter",
    "MemoryVariableStore",
    "RunCommand",
    "ShowLine",
    "ShowOptions",
    "StackUnderflowError",
    "StoryEvent",
    "StoryRunner",
    "StoryRuntimeError",
    "UndefinedVariableError",
    "UnknownFunctionError",
    "UnknownLabelError",
    "UnknownNodeError",
    "ValueTypeError",
    "VariableStore",
    "step",
]
