"""Console host for playing stories and checking test plans."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable, List, Sequence

from yarnloom.core.config import load_runner_config
from yarnloom.core.logging_config import setup_logging
from yarnloom.data.builder import load_program_files
from yarnloom.data.errors import LoadError
from yarnloom.domain.program import Program
from yarnloom.services.errors import StoryRuntimeError, TestPlanError
from yarnloom.services.events import DialogueComplete, RunCommand, ShowLine, ShowOptions
from yarnloom.services.functions import FunctionRegistry
from yarnloom.services.story_runner import DEFAULT_START_NODE, StoryRunner
from yarnloom.services.test_plan import TestPlan, run_test_plan
from yarnloom.services.text_service import LineFormatter
from yarnloom.services.variables import MemoryVariableStore

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="yarnloom", description="Run compiled dialogue programs.")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: WARNING).",
    )
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    play = subparsers.add_parser("play", help="Play a story interactively.")
    play.add_argument("programs", nargs="+", type=Path, help="Compiled program files to merge.")
    play.add_argument("--start", default=DEFAULT_START_NODE, help="Start node name.")
    play.add_argument("--config", type=Path, default=None, help="Runner config JSON file.")

    check = subparsers.add_parser("check", help="Run test plans against their compiled programs.")
    check.add_argument("plans", nargs="+", type=Path, help="Test plan files (.testplan).")
    check.add_argument("--start", default=DEFAULT_START_NODE, help="Start node name.")
    check.add_argument("--config", type=Path, default=None, help="Runner config JSON file.")
    return parser


def play_story(
    program: Program,
    runner: StoryRunner,
    *,
    start_node: str = DEFAULT_START_NODE,
    input_fn: InputFn | None = None,
    output_fn: OutputFn = print,
) -> MemoryVariableStore:
    """Run a story to completion, reading selections through ``input_fn``."""
    read = input_fn or input
    formatter = LineFormatter(program)
    variables = MemoryVariableStore()
    checkpoint = runner.begin(program, start_node)
    selection: int | None = None
    while True:
        checkpoint, event = runner.step(program, checkpoint, variables, selection)
        selection = None
        if isinstance(event, ShowLine):
            output_fn(_safe_text(formatter, event.key, event.substitutions))
        elif isinstance(event, RunCommand):
            output_fn(f"<<{event.text}>>")
        elif isinstance(event, ShowOptions):
            for index, option in enumerate(event.options, start=1):
                text = _safe_text(formatter, option.key, option.substitutions)
                suffix = "" if option.enabled else " (unavailable)"
                output_fn(f"{index}. {text}{suffix}")
            selection = _prompt_selection(event, read, output_fn)
        elif isinstance(event, DialogueComplete):
            output_fn("-- The End --")
            return variables


def _safe_text(formatter: LineFormatter, key: str, substitutions: Sequence[str]) -> str:
    try:
        return formatter.format_key(key, substitutions).text
    except KeyError:
        logger.warning("String key '%s' missing from the string table", key)
        return key


def _prompt_selection(event: ShowOptions, input_fn: InputFn, output_fn: OutputFn) -> int:
    count = len(event.options)
    while True:
        choice = input_fn("Select an option: ").strip()
        if choice.isdigit() and 1 <= int(choice) <= count:
            index = int(choice) - 1
            if event.options[index].enabled:
                return index
        output_fn(f"Invalid selection. Please enter a number between 1 and {count}.")


def _run_play(args: argparse.Namespace) -> int:
    runner = StoryRunner(FunctionRegistry(), load_runner_config(args.config))
    program = load_program_files(args.programs, entry_nodes=[args.start])
    play_story(program, runner, start_node=args.start)
    return 0


def _run_check(args: argparse.Namespace, output_fn: OutputFn = print) -> int:
    runner = StoryRunner(FunctionRegistry(), load_runner_config(args.config))
    failures = 0
    for plan_path in args.plans:
        try:
            plan = TestPlan.load(plan_path)
            result = run_test_plan(plan, plan.load_program(), runner=runner, start_node=args.start)
        except (TestPlanError, LoadError, StoryRuntimeError) as exc:
            failures += 1
            output_fn(f"FAIL {plan_path}: {exc}")
            continue
        output_fn(f"ok   {plan_path} ({result.steps_checked} steps)")
    output_fn(f"{len(args.plans) - failures} passed, {failures} failed")
    return 1 if failures else 0


def main(argv: List[str] | None = None) -> int:
    """Parse arguments and dispatch to the requested command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    try:
        if args.command == "play":
            return _run_play(args)
        return _run_check(args)
    except (LoadError, StoryRuntimeError) as exc:
        logger.error("%s", exc)
        return 1
    except (KeyboardInterrupt, EOFError):
        print()
        return 130
