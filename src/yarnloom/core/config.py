"""Runner configuration and its JSON persistence."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

CONFIG_ENV_VAR = "YARNLOOM_CONFIG"


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """Tunable behavior of the story runner.

    ``max_instructions_per_step`` bounds a single ``step`` call; ``None`` means
    unbounded. ``show_disabled_options`` keeps options whose condition failed
    (marked disabled) instead of discarding them.
    """

    max_instructions_per_step: int | None = None
    show_disabled_options: bool = False
    warn_on_unbalanced_stack: bool = True


def get_user_config_dir() -> Path:
    """Return the per-user configuration directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "yarnloom"
        return Path.home() / "yarnloom"
    return Path.home() / ".config" / "yarnloom"


def get_default_config_path() -> Path:
    """Return the config path, honoring the YARNLOOM_CONFIG override."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return get_user_config_dir() / "config.json"


def _normalize_budget(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def _normalize_flag(value: object, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def config_from_mapping(raw: Dict[str, Any]) -> RunnerConfig:
    """Build a config from loosely-typed data, falling back to defaults per key."""
    defaults = RunnerConfig()
    return RunnerConfig(
        max_instructions_per_step=_normalize_budget(raw.get("max_instructions_per_step")),
        show_disabled_options=_normalize_flag(
            raw.get("show_disabled_options"), defaults.show_disabled_options
        ),
        warn_on_unbalanced_stack=_normalize_flag(
            raw.get("warn_on_unbalanced_stack"), defaults.warn_on_unbalanced_stack
        ),
    )


def load_runner_config(path: Path | str | None = None) -> RunnerConfig:
    """Load config from disk or return defaults."""
    config_path = Path(path) if path is not None else get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return RunnerConfig()
    except (OSError, json.JSONDecodeError):
        return RunnerConfig()
    if not isinstance(raw, dict):
        return RunnerConfig()
    return config_from_mapping(raw)


def save_runner_config(config: RunnerConfig, path: Path | str | None = None) -> None:
    """Persist config to disk."""
    config_path = Path(path) if path is not None else get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(config)
    config_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


__all__ = [
    "CONFIG_ENV_VAR",
    "RunnerConfig",
    "config_from_mapping",
    "get_default_config_path",
    "get_user_config_dir",
    "load_runner_config",
    "save_runner_config",
]
