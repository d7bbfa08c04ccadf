"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from fpl_buddy.config import Settings, load_settings, read_env_file
from fpl_buddy.fpl.endpoints import ByteBudgets
from fpl_buddy.scoring import DEFAULT_RULES


def test_defaults(tmp_path: Path) -> None:
    settings = load_settings({}, env_file=tmp_path / "missing.env")

    assert settings.entry_id is None
    assert settings.poll_interval == 60.0
    assert settings.pre_deadline_window == 6 * 3600
    assert settings.final_hour_window == 3600
    assert settings.byte_budgets == ByteBudgets()
    assert settings.load_rules() is DEFAULT_RULES


def test_environment_values_are_coerced(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "FPL_ENTRY_ID": "42",
            "FPL_POLL_INTERVAL": "30",
            "FPL_USE_SERVER_BREAKDOWN": "false",
            "FPL_LIVE_BUDGET": "ignored",
            "FPL_API_BASE": "",
        },
        env_file=tmp_path / "missing.env",
    )

    assert settings.entry_id == 42
    assert settings.poll_interval == 30.0
    assert settings.use_server_breakdown is False


def test_env_file_then_environment_then_overrides(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "# scoreboard",
                "FPL_ENTRY_ID=7",
                'export FPL_PRE_DEADLINE_HOURS="2"',
                "FPL_POPUP_SECONDS=5 # seconds on screen",
                "FPL_POLL_INTERVAL=90",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(
        {"FPL_POLL_INTERVAL": "45"},
        env_file=env_file,
        entry_id=None,
        long_press=1.5,
    )

    assert settings.entry_id == 7
    assert settings.pre_deadline_window == 7200
    assert settings.popup_duration == 5
    assert settings.poll_interval == 45
    assert settings.long_press == 1.5


def test_read_env_file_missing(tmp_path: Path) -> None:
    assert read_env_file(tmp_path / "nope.env") == {}


@pytest.mark.parametrize(
    "env",
    [
        {"FPL_HISTORY_CAPACITY": "0"},
        {"FPL_ENTRY_ID": "abc"},
        {"FPL_LOCK_TIMEOUT": "-1"},
        {"FPL_HISTORY_CAPACITY": "8", "FPL_POPUP_CAPACITY": "8"},
    ],
)
def test_invalid_values_fail_fast(tmp_path: Path, env: dict[str, str]) -> None:
    with pytest.raises(ValidationError):
        load_settings(env, env_file=tmp_path / "missing.env")


def test_unknown_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_settings({}, env_file=tmp_path / "missing.env", bogus=1)


def test_settings_are_frozen() -> None:
    settings = Settings(entry_id=1)
    with pytest.raises(ValidationError):
        settings.entry_id = 2  # type: ignore[misc]
