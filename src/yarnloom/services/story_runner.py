"""Stack machine that advances a compiled program between suspend points."""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, List, Tuple

from yarnloom.core.config import RunnerConfig
from yarnloom.core.templates import format_template
from yarnloom.core.types import Value, format_value, is_count, value_kind
from yarnloom.domain.checkpoint import Checkpoint, Option, ReturnFrame, freeze_visits
from yarnloom.domain.program import Instruction, Node, OpCode, Program
from yarnloom.services.errors import (
    AlreadyCompleteError,
    CallStackUnderflowError,
    InstructionBudgetExceededError,
    InvalidCheckpointError,
    InvalidResumeInputError,
    StackUnderflowError,
    StoryRuntimeError,
    UndefinedVariableError,
    UnknownLabelError,
    UnknownNodeError,
    ValueTypeError,
)
from yarnloom.services.events import DialogueComplete, RunCommand, ShowLine, ShowOptions, StoryEvent
from yarnloom.services.functions import CallContext, FunctionRegistry
from yarnloom.services.variables import StagedVariables, VariableStore

logger = logging.getLogger(__name__)

DEFAULT_START_NODE = "Start"


class _Frame:
    """Mutable working copy of a checkpoint, private to one step call."""

    def __init__(self, checkpoint: Checkpoint) -> None:
        self.node = checkpoint.node
        self.pointer = checkpoint.pointer
        self.stack: List[Value | None] = list(checkpoint.stack)
        self.call_stack: List[ReturnFrame] = list(checkpoint.call_stack)
        self.pending_options: List[Option] = list(checkpoint.pending_options)
        self.offered_options: Tuple[Option, ...] = checkpoint.offered_options
        self.awaiting_selection = checkpoint.awaiting_selection
        self.visits: Dict[str, int] = dict(checkpoint.visits)
        self.complete = checkpoint.complete

    def push(self, value: Value | None) -> None:
        self.stack.append(value)

    def pop(self) -> Value | None:
        if not self.stack:
            raise StackUnderflowError("Pop from an empty evaluation stack.")
        return self.stack.pop()

    def peek(self) -> Value | None:
        if not self.stack:
            raise StackUnderflowError("Peek at an empty evaluation stack.")
        return self.stack[-1]

    def pop_many(self, count: int) -> List[Value | None]:
        """Pop ``count`` values and return them in push order."""
        if count > len(self.stack):
            raise StackUnderflowError(
                f"Need {count} value(s) but the evaluation stack holds {len(self.stack)}."
            )
        values = [self.stack.pop() for _ in range(count)]
        values.reverse()
        return values

    def pop_string(self, purpose: str) -> str:
        value = self.pop()
        if value_kind(value) != "string":
            raise ValueTypeError(f"Expected a string {purpose} on the stack, got {value!r}.")
        return value  # type: ignore[return-value]

    def enter(self, program: Program, node_name: str) -> None:
        if node_name not in program.nodes:
            raise UnknownNodeError(f"No node named '{node_name}'.")
        self.node = node_name
        self.pointer = 0
        self.visits[node_name] = self.visits.get(node_name, 0) + 1
        logger.debug("Entering node '%s' (visit %d)", node_name, self.visits[node_name])

    def to_checkpoint(self) -> Checkpoint:
        return Checkpoint(
            node=self.node,
            pointer=self.pointer,
            stack=tuple(self.stack),
            call_stack=tuple(self.call_stack),
            pending_options=tuple(self.pending_options),
            offered_options=self.offered_options,
            awaiting_selection=self.awaiting_selection,
            visits=freeze_visits(self.visits),
            complete=self.complete,
        )


class StoryRunner:
    """Executes programs one step at a time.

    The runner holds no per-run state: every step takes a checkpoint and
    returns a new one, so one runner can drive any number of runs.
    """

    def __init__(
        self,
        functions: FunctionRegistry | None = None,
        config: RunnerConfig | None = None,
    ) -> None:
        self._functions = functions if functions is not None else FunctionRegistry()
        self._config = config or RunnerConfig()

    @property
    def functions(self) -> FunctionRegistry:
        return self._functions

    @property
    def config(self) -> RunnerConfig:
        return self._config

    def begin(self, program: Program, start_node: str = DEFAULT_START_NODE) -> Checkpoint:
        """Return the initial checkpoint positioned at ``start_node``."""
        if start_node not in program.nodes:
            raise UnknownNodeError(f"No start node named '{start_node}'.")
        return Checkpoint(node=start_node, visits=((start_node, 1),))

    def step(
        self,
        program: Program,
        checkpoint: Checkpoint,
        variables: VariableStore,
        selection: int | None = None,
    ) -> Tuple[Checkpoint, StoryEvent]:
        """Run until the next line, options, command or completion.

        ``selection`` must be given exactly when the checkpoint is waiting on
        an options event. On error nothing changes: the checkpoint is
        immutable and variable writes are only committed on success.
        """
        if checkpoint.complete:
            raise AlreadyCompleteError("The dialogue has already completed.")
        frame = _Frame(checkpoint)
        staged = StagedVariables(variables)

        try:
            if frame.awaiting_selection:
                self._apply_selection(program, frame, selection)
            elif selection is not None:
                raise InvalidResumeInputError(
                    "A selection was supplied but the dialogue is not waiting on options."
                )
        except StoryRuntimeError as exc:
            exc.locate(frame.node, frame.pointer)
            raise

        event = self._run(program, frame, staged)
        staged.commit()
        return frame.to_checkpoint(), event

    def _apply_selection(self, program: Program, frame: _Frame, selection: int | None) -> None:
        options = frame.offered_options
        if selection is None:
            raise InvalidResumeInputError("The dialogue is waiting on an option selection.")
        if isinstance(selection, bool) or not isinstance(selection, int):
            raise InvalidResumeInputError(f"Selection must be an option index, got {selection!r}.")
        if not 0 <= selection < len(options):
            raise InvalidResumeInputError(
                f"Selection {selection} is out of range for {len(options)} option(s)."
            )
        chosen = options[selection]
        if not chosen.enabled:
            raise InvalidResumeInputError(f"Option {selection} ('{chosen.key}') is disabled.")
        frame.awaiting_selection = False
        frame.offered_options = ()
        frame.enter(program, chosen.destination)

    def _run(self, program: Program, frame: _Frame, variables: StagedVariables) -> StoryEvent:
        budget = self._config.max_instructions_per_step
        executed = 0
        while True:
            node = program.nodes.get(frame.node)
            if node is None:
                raise InvalidCheckpointError(f"Checkpoint refers to unknown node '{frame.node}'.")
            pointer = frame.pointer
            if pointer > len(node.instructions) or pointer < 0:
                raise InvalidCheckpointError(
                    f"Instruction pointer {pointer} is outside node '{node.name}'."
                )
            if pointer == len(node.instructions):
                if frame.call_stack:
                    self._return(frame)
                    continue
                return self._complete(frame)

            if budget is not None and executed >= budget:
                error = InstructionBudgetExceededError(
                    f"Step exceeded the budget of {budget} instruction(s)."
                )
                error.locate(node.name, pointer)
                raise error
            executed += 1

            instruction = node.instructions[pointer]
            frame.pointer = pointer + 1
            try:
                event = self._execute(program, node, instruction, frame, variables)
            except StoryRuntimeError as exc:
                exc.locate(node.name, pointer)
                raise
            if event is not None:
                return event

    def _execute(
        self,
        program: Program,
        node: Node,
        instruction: Instruction,
        frame: _Frame,
        variables: StagedVariables,
    ) -> StoryEvent | None:
        opcode = instruction.opcode
        operands = instruction.operands

        if opcode == OpCode.PUSH_STRING or opcode == OpCode.PUSH_NUMBER or opcode == OpCode.PUSH_BOOL:
            frame.push(operands[0])
        elif opcode == OpCode.PUSH_NULL:
            frame.push(None)
        elif opcode == OpCode.POP:
            frame.pop()
        elif opcode == OpCode.JUMP_TO:
            frame.pointer = instruction.target  # type: ignore[assignment]
        elif opcode == OpCode.JUMP:
            label = frame.pop_string("label name")
            if label not in node.labels:
                raise UnknownLabelError(f"Node '{node.name}' has no label '{label}'.")
            frame.pointer = node.labels[label]
        elif opcode == OpCode.JUMP_IF_FALSE:
            condition = frame.peek()
            if value_kind(condition) != "bool":
                raise ValueTypeError(f"Conditional jump expects a bool, got {condition!r}.")
            if not condition:
                frame.pointer = instruction.target  # type: ignore[assignment]
        elif opcode == OpCode.RUN_LINE:
            key = str(operands[0])
            substitutions = self._pop_substitutions(frame, instruction.count_operand(1))
            return ShowLine(key=key, substitutions=substitutions)
        elif opcode == OpCode.RUN_COMMAND:
            key = str(operands[0])
            substitutions = self._pop_substitutions(frame, instruction.count_operand(1))
            entry = program.string(key)
            template = entry.text if entry is not None else key
            return RunCommand(key=key, substitutions=substitutions, text=format_template(template, substitutions))
        elif opcode == OpCode.ADD_OPTION:
            self._add_option(instruction, frame)
        elif opcode == OpCode.SHOW_OPTIONS:
            return self._show_options(frame)
        elif opcode == OpCode.PUSH_VARIABLE:
            frame.push(self._read_variable(program, variables, str(operands[0])))
        elif opcode == OpCode.STORE_VARIABLE:
            name = str(operands[0])
            value = frame.peek()
            if value is None:
                raise ValueTypeError(f"Cannot store null in variable '{name}'.")
            variables.set(name, value)
        elif opcode == OpCode.CALL_FUNC:
            frame.push(self._call_function(program, node, instruction, frame, variables))
        elif opcode == OpCode.RUN_NODE:
            target = str(operands[0]) if operands else frame.pop_string("node name")
            frame.call_stack.append(ReturnFrame(node=node.name, pointer=frame.pointer))
            frame.enter(program, target)
        elif opcode == OpCode.RETURN:
            self._return(frame)
        elif opcode == OpCode.STOP:
            return self._complete(frame)
        return None

    @staticmethod
    def _pop_substitutions(frame: _Frame, count: int) -> Tuple[str, ...]:
        return tuple(format_value(value) for value in frame.pop_many(count))

    def _add_option(self, instruction: Instruction, frame: _Frame) -> None:
        key = str(instruction.operands[0])
        destination = str(instruction.operands[1])
        substitutions = self._pop_substitutions(frame, instruction.count_operand(2))
        enabled = True
        if instruction.operand(3) is True:
            condition = frame.pop()
            if value_kind(condition) != "bool":
                raise ValueTypeError(f"Option condition must be a bool, got {condition!r}.")
            enabled = bool(condition)
        if not enabled and not self._config.show_disabled_options:
            logger.debug("Discarding option '%s': condition is false", key)
            return
        frame.pending_options.append(
            Option(key=key, destination=destination, substitutions=substitutions, enabled=enabled)
        )

    def _show_options(self, frame: _Frame) -> StoryEvent:
        options = tuple(frame.pending_options)
        frame.pending_options = []
        if not any(option.enabled for option in options):
            logger.info("No available options in node '%s'; ending dialogue", frame.node)
            return self._complete(frame)
        frame.offered_options = options
        frame.awaiting_selection = True
        return ShowOptions(options=options)

    @staticmethod
    def _read_variable(program: Program, variables: StagedVariables, name: str) -> Value:
        value = variables.get(name)
        if value is None:
            value = program.initial_value(name)
        if value is None:
            raise UndefinedVariableError(f"Variable '{name}' is not defined.")
        return value

    def _call_function(
        self,
        program: Program,
        node: Node,
        instruction: Instruction,
        frame: _Frame,
        variables: StagedVariables,
    ) -> Value:
        name = str(instruction.operands[0])
        if instruction.operand(1) is not None:
            count = instruction.count_operand(1)
        else:
            raw_count = frame.pop()
            if not is_count(raw_count):
                raise ValueTypeError(
                    f"Expected a non-negative integer argument count on the stack, got {raw_count!r}."
                )
            count = int(raw_count)  # type: ignore[arg-type]
        args = frame.pop_many(count)
        context = CallContext(
            program=program,
            node=node.name,
            visits=MappingProxyType(dict(frame.visits)),
            variables=variables,
        )
        return self._functions.call(name, context, args)

    @staticmethod
    def _return(frame: _Frame) -> None:
        if not frame.call_stack:
            raise CallStackUnderflowError("Return with an empty call stack.")
        return_frame = frame.call_stack.pop()
        frame.node = return_frame.node
        frame.pointer = return_frame.pointer

    def _complete(self, frame: _Frame) -> StoryEvent:
        frame.complete = True
        if self._config.warn_on_unbalanced_stack and (frame.stack or frame.call_stack):
            logger.warning(
                "Dialogue completed with %d value(s) on the evaluation stack and %d return frame(s)",
                len(frame.stack),
                len(frame.call_stack),
            )
        return DialogueComplete()


_DEFAULT_RUNNER = StoryRunner()


def step(
    program: Program,
    checkpoint: Checkpoint,
    variables: VariableStore,
    selection: int | None = None,
) -> Tuple[Checkpoint, StoryEvent]:
    """Advance ``checkpoint`` using a runner with the built-in functions only."""
    return _DEFAULT_RUNNER.step(program, checkpoint, variables, selection)


__all__ = ["DEFAULT_START_NODE", "StoryRunner", "step"]
