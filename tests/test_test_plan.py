from pathlib import Path

import pytest

from tests.helpers.programs import OpCode, make_node, make_program, sample_story
from yarnloom.core.config import RunnerConfig
from yarnloom.data.codec import encode_program
from yarnloom.services.errors import TestPlanMismatchError, TestPlanParseError
from yarnloom.services.events import DialogueComplete
from yarnloom.services.story_runner import StoryRunner
from yarnloom.services.test_plan import PlanStep, TestPlan, run_test_plan

LEFT_PLAN = """\
# Take the left branch.
line: Hello, world!
option: Go left
option: Go right
select: 1

command: wait 1
line: You went left.
stop
"""


def test_parse_plan_steps() -> None:
    plan = TestPlan.parse(LEFT_PLAN, name="left")

    assert [step.kind for step in plan.steps] == [
        "line",
        "option",
        "option",
        "select",
        "command",
        "line",
        "stop",
    ]
    assert plan.steps[0] == PlanStep(kind="line", value="Hello, world!", line_number=2)
    assert plan.steps[-1].value is None


@pytest.mark.parametrize("text", ["dance: now", "line Hello", "select: 0", "select: two", "select:"])
def test_parse_errors(text: str) -> None:
    with pytest.raises(TestPlanParseError):
        TestPlan.parse(text)


def test_plan_passes_against_story() -> None:
    result = run_test_plan(TestPlan.parse(LEFT_PLAN, name="left"), sample_story())

    assert result.steps_checked == 7
    assert isinstance(result.events[-1], DialogueComplete)


def test_step_without_text_matches_anything() -> None:
    plan = TestPlan.parse("line:\noption:\noption:\nselect: 2\nline: You went right.\n")

    assert run_test_plan(plan, sample_story()).steps_checked == 5


def test_text_mismatch_names_plan_line() -> None:
    plan = TestPlan.parse("line: Goodbye\n", name="bad")

    with pytest.raises(TestPlanMismatchError, match="bad:1"):
        run_test_plan(plan, sample_story())


def test_plan_ending_early_is_a_mismatch() -> None:
    with pytest.raises(TestPlanMismatchError, match="plan ended"):
        run_test_plan(TestPlan.parse("line: Hello, world!\n"), sample_story())


def test_story_ending_early_is_a_mismatch() -> None:
    plan = TestPlan.parse(LEFT_PLAN + "line: Epilogue\n")

    with pytest.raises(TestPlanMismatchError, match="completed before"):
        run_test_plan(plan, sample_story())


def test_disabled_options_are_marked() -> None:
    program = make_program(
        make_node(
            "Start",
            (OpCode.PUSH_BOOL, False),
            (OpCode.ADD_OPTION, "locked", "Start", 0, True),
            (OpCode.ADD_OPTION, "open", "End"),
            (OpCode.SHOW_OPTIONS,),
        ),
        make_node("End"),
        strings={"locked": "Open the vault", "open": "Walk away"},
    )
    plan = TestPlan.parse("option: Open the vault [disabled]\noption: Walk away\nselect: 2\nstop\n")
    runner = StoryRunner(config=RunnerConfig(show_disabled_options=True))

    assert run_test_plan(plan, program, runner=runner).steps_checked == 4


def test_load_pairs_plan_with_program_file(tmp_path: Path) -> None:
    (tmp_path / "left.yarnc").write_bytes(encode_program(sample_story()))
    plan_path = tmp_path / "left.testplan"
    plan_path.write_text(LEFT_PLAN, encoding="utf-8")

    plan = TestPlan.load(plan_path)

    assert plan.name == "left"
    assert plan.program_path == tmp_path / "left.yarnc"
    assert run_test_plan(plan, plan.load_program()).steps_checked == 7


def test_load_missing_plan(tmp_path: Path) -> None:
    with pytest.raises(TestPlanParseError):
        TestPlan.load(tmp_path / "absent.testplan")


def test_parsed_plan_has_no_program() -> None:
    with pytest.raises(TestPlanParseError):
        TestPlan.parse("stop").load_program()
