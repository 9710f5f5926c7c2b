from pathlib import Path

import pytest

from tests.helpers.programs import sample_story
from yarnloom.data.codec import encode_program
from yarnloom.presentation.cli import app
from yarnloom.presentation.cli.app import build_parser, play_story
from yarnloom.services.story_runner import StoryRunner


def _scripted(answers):
    pending = list(answers)
    return lambda prompt: pending.pop(0)


def test_play_story_prints_events_and_reprompts() -> None:
    output = []

    play_story(sample_story(), StoryRunner(), input_fn=_scripted(["9", "x", "1"]), output_fn=output.append)

    assert output == [
        "Hello, world!",
        "1. Go left",
        "2. Go right",
        "Invalid selection. Please enter a number between 1 and 2.",
        "Invalid selection. Please enter a number between 1 and 2.",
        "<<wait 1>>",
        "You went left.",
        "-- The End --",
    ]


def test_parser_requires_a_command() -> None:
    args = build_parser().parse_args(["play", "a.yarnc", "b.yarnc", "--start", "Intro"])

    assert args.command == "play"
    assert args.programs == [Path("a.yarnc"), Path("b.yarnc")]
    assert args.start == "Intro"
    assert args.log_level == "WARNING"


def test_main_check_reports_results(monkeypatch, tmp_path: Path, capsys) -> None:
    monkeypatch.setattr(app, "setup_logging", lambda *args, **kwargs: None)
    (tmp_path / "good.yarnc").write_bytes(encode_program(sample_story()))
    (tmp_path / "good.testplan").write_text("line: Hello, world!\noption:\noption:\nselect: 2\nline:\n", encoding="utf-8")
    (tmp_path / "bad.yarnc").write_bytes(encode_program(sample_story()))
    (tmp_path / "bad.testplan").write_text("line: Goodbye\n", encoding="utf-8")

    assert app.main(["check", str(tmp_path / "good.testplan")]) == 0
    assert app.main(["check", str(tmp_path / "good.testplan"), str(tmp_path / "bad.testplan")]) == 1

    out = capsys.readouterr().out
    assert "ok   " in out
    assert "FAIL " in out
    assert "1 passed, 1 failed" in out


def test_main_check_reports_missing_program(monkeypatch, tmp_path: Path, capsys) -> None:
    monkeypatch.setattr(app, "setup_logging", lambda *args, **kwargs: None)
    (tmp_path / "orphan.testplan").write_text("stop\n", encoding="utf-8")

    assert app.main(["check", str(tmp_path / "orphan.testplan")]) == 1
    assert "0 passed, 1 failed" in capsys.readouterr().out


def test_main_play_with_missing_file_fails(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(app, "setup_logging", lambda *args, **kwargs: None)

    assert app.main(["play", str(tmp_path / "missing.yarnc")]) == 1


def test_main_play_runs_story(monkeypatch, tmp_path: Path, capsys) -> None:
    monkeypatch.setattr(app, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("builtins.input", _scripted(["2"]))
    path = tmp_path / "story.yarnc"
    path.write_bytes(encode_program(sample_story()))

    assert app.main(["play", str(path), "--config", str(tmp_path / "none.json")]) == 0
    assert "You went right." in capsys.readouterr().out


def test_parser_accepts_log_level_in_any_case() -> None:
    args = build_parser().parse_args(["--log-level", "debug", "check", "plan.testplan"])

    assert args.log_level == "DEBUG"


def test_parser_rejects_unknown_log_level(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(["--log-level", "LOUD", "check", "plan.testplan"])

    assert excinfo.value.code == 2
    assert "invalid choice" in capsys.readouterr().err
