"""Plain-text test plans that script an expected run of a program.

A plan has one step per line::

    # comment
    line: Hello, world!
    option: Go left
    option: Go right
    select: 2
    command: wait 1
    stop

``select`` is 1-based, as authors write it. Blank lines and ``#`` comments are
ignored. A step without text after the colon matches any text.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Tuple

from yarnloom.data.builder import ProgramBuilder
from yarnloom.domain.program import Program
from yarnloom.services.errors import TestPlanMismatchError, TestPlanParseError
from yarnloom.services.events import DialogueComplete, RunCommand, ShowLine, ShowOptions, StoryEvent
from yarnloom.services.story_runner import DEFAULT_START_NODE, StoryRunner
from yarnloom.services.text_service import LineFormatter
from yarnloom.services.variables import MemoryVariableStore

StepKind = Literal["line", "option", "select", "command", "stop"]
PROGRAM_SUFFIX = ".yarnc"
_KINDS: Tuple[StepKind, ...] = ("line", "option", "select", "command", "stop")


@dataclass(frozen=True, slots=True)
class PlanStep:
    kind: StepKind
    value: str | None = None
    line_number: int = 0


@dataclass(slots=True)
class TestPlan:
    __test__ = False

    name: str
    steps: List[PlanStep] = field(default_factory=list)
    program_path: Path | None = None

    @classmethod
    def parse(cls, text: str, name: str = "<plan>") -> "TestPlan":
        steps: List[PlanStep] = []
        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            kind, separator, value_text = line.partition(":")
            kind = kind.strip()
            if kind not in _KINDS:
                raise TestPlanParseError(f"{name}:{line_number}: unknown step '{kind}'.")
            if not separator and kind != "stop":
                raise TestPlanParseError(f"{name}:{line_number}: expected '<step>: <value>'.")
            value = value_text.strip() or None
            if kind == "select":
                if value is None or not value.isdigit() or int(value) < 1:
                    raise TestPlanParseError(
                        f"{name}:{line_number}: select needs a 1-based option number."
                    )
            steps.append(PlanStep(kind=kind, value=value, line_number=line_number))  # type: ignore[arg-type]
        return cls(name=name, steps=steps)

    @classmethod
    def load(cls, path: Path | str) -> "TestPlan":
        plan_path = Path(path)
        try:
            text = plan_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TestPlanParseError(f"Unable to read test plan: {plan_path}") from exc
        plan = cls.parse(text, name=plan_path.stem)
        plan.program_path = plan_path.with_suffix(PROGRAM_SUFFIX)
        return plan

    def load_program(self) -> Program:
        if self.program_path is None:
            raise TestPlanParseError(f"Test plan '{self.name}' has no program file.")
        return ProgramBuilder().add_file(self.program_path).build()


@dataclass(slots=True)
class TestPlanResult:
    __test__ = False

    name: str
    events: List[StoryEvent] = field(default_factory=list)
    steps_checked: int = 0


class _PlanCursor:
    def __init__(self, plan: TestPlan) -> None:
        self._plan = plan
        self._index = 0

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self._plan.steps)

    def peek(self) -> PlanStep | None:
        if self.exhausted:
            return None
        return self._plan.steps[self._index]

    def expect(self, kind: StepKind, observed: str) -> PlanStep:
        step = self.peek()
        if step is None:
            raise TestPlanMismatchError(f"{self._plan.name}: plan ended but the story produced {observed}.")
        if step.kind != kind:
            raise TestPlanMismatchError(
                f"{self._plan.name}:{step.line_number}: expected {step.kind}, story produced {observed}."
            )
        self._index += 1
        return step


def _check_text(plan: TestPlan, step: PlanStep, actual: str) -> None:
    if step.value is not None and step.value != actual:
        raise TestPlanMismatchError(
            f"{plan.name}:{step.line_number}: expected {step.kind} {step.value!r}, got {actual!r}."
        )


def run_test_plan(
    plan: TestPlan,
    program: Program,
    *,
    runner: StoryRunner | None = None,
    start_node: str = DEFAULT_START_NODE,
) -> TestPlanResult:
    """Drive ``program`` through the plan; raise TestPlanMismatchError on divergence."""
    story_runner = runner or StoryRunner()
    formatter = LineFormatter(program)
    variables = MemoryVariableStore()
    cursor = _PlanCursor(plan)
    result = TestPlanResult(name=plan.name)
    checkpoint = story_runner.begin(program, start_node)
    selection: int | None = None

    while True:
        checkpoint, event = story_runner.step(program, checkpoint, variables, selection)
        selection = None
        result.events.append(event)
        if isinstance(event, ShowLine):
            text = formatter.format_line(event).text
            _check_text(plan, cursor.expect("line", f"line {text!r}"), text)
        elif isinstance(event, RunCommand):
            _check_text(plan, cursor.expect("command", f"command {event.text!r}"), event.text)
        elif isinstance(event, ShowOptions):
            for option in event.options:
                text = formatter.format_option(option).text
                if not option.enabled:
                    text = f"{text} [disabled]"
                _check_text(plan, cursor.expect("option", f"option {text!r}"), text)
                result.steps_checked += 1
            select_step = cursor.expect("select", "an options prompt")
            selection = int(select_step.value or "0") - 1
        elif isinstance(event, DialogueComplete):
            step = cursor.peek()
            if step is not None and step.kind == "stop":
                cursor.expect("stop", "completion")
                result.steps_checked += 1
            if not cursor.exhausted:
                remaining = cursor.peek()
                raise TestPlanMismatchError(
                    f"{plan.name}:{remaining.line_number}: story completed before this step."  # type: ignore[union-attr]
                )
            return result
        result.steps_checked += 1


__all__ = ["PlanStep", "TestPlan", "TestPlanResult", "run_test_plan"]
