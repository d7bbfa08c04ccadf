"""Runtime settings loaded from the environment and an optional ``.env`` file."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    model_validator,
)

from .fpl.endpoints import ByteBudgets
from .fpl.fetch import DEFAULT_API_BASE
from .scoring.rules import ScoringRules, load_rules

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FIELDS: dict[str, str] = {
    "FPL_ENTRY_ID": "entry_id",
    "FPL_POLL_INTERVAL": "poll_interval",
    "FPL_RENDER_INTERVAL": "render_interval",
    "FPL_STALE_AFTER": "stale_after",
    "FPL_USE_SERVER_BREAKDOWN": "use_server_breakdown",
    "FPL_PRE_DEADLINE_HOURS": "pre_deadline_hours",
    "FPL_FINAL_HOUR_SECONDS": "final_hour_window",
    "FPL_POPUP_SECONDS": "popup_duration",
    "FPL_LONG_PRESS_SECONDS": "long_press",
    "FPL_HISTORY_CAPACITY": "history_capacity",
    "FPL_POPUP_CAPACITY": "popup_capacity",
    "FPL_LOCK_TIMEOUT": "lock_timeout",
    "FPL_CONNECT_TIMEOUT": "connect_timeout",
    "FPL_READ_TIMEOUT": "read_timeout",
    "FPL_SCORING_RULES": "scoring_rules_path",
    "FPL_API_BASE": "api_base",
}


class Settings(BaseModel):
    """Validated runtime configuration. Invalid values fail at start-up."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    entry_id: PositiveInt | None = None
    poll_interval: PositiveFloat = 60.0
    render_interval: PositiveFloat = 0.25
    stale_after: PositiveFloat = 300.0
    use_server_breakdown: bool = True
    pre_deadline_hours: PositiveFloat = 6.0
    final_hour_window: PositiveFloat = 3600.0
    popup_duration: PositiveFloat = 4.0
    long_press: PositiveFloat = 3.0
    history_capacity: PositiveInt = 24
    popup_capacity: PositiveInt = 8
    lock_timeout: PositiveFloat = 0.1
    connect_timeout: PositiveFloat = 15.0
    read_timeout: PositiveFloat = 30.0
    scoring_rules_path: Path | None = None
    api_base: str = DEFAULT_API_BASE
    entry_budget: PositiveInt = Field(default=ByteBudgets().entry)
    history_budget: PositiveInt = Field(default=ByteBudgets().history)
    picks_budget: PositiveInt = Field(default=ByteBudgets().picks)
    live_budget: PositiveInt = Field(default=ByteBudgets().live)
    bootstrap_budget: PositiveInt = Field(default=ByteBudgets().bootstrap)

    @model_validator(mode="after")
    def check_capacities(self) -> Settings:
        if self.popup_capacity >= self.history_capacity:
            raise ValueError("popup_capacity must be smaller than history_capacity")
        return self

    @property
    def pre_deadline_window(self) -> float:
        return self.pre_deadline_hours * 3600.0

    @property
    def byte_budgets(self) -> ByteBudgets:
        return ByteBudgets(
            entry=self.entry_budget,
            history=self.history_budget,
            picks=self.picks_budget,
            live=self.live_budget,
            bootstrap=self.bootstrap_budget,
        )

    def load_rules(self) -> ScoringRules:
        return load_rules(self.scoring_rules_path)


def read_env_file(path: Path) -> dict[str, str]:
    """Parse simple KEY=VALUE pairs from an ``.env`` file."""

    try:
        raw_lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}

    values: dict[str, str] = {}
    for raw_line in raw_lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if not line or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if value and value[0] in {'"', "'"} and value[-1] == value[0]:
            value = value[1:-1]
        else:
            value = value.split(" #", 1)[0].rstrip()
        values[key] = os.path.expandvars(value)
    return values


def load_settings(
    env: Mapping[str, str] | None = None,
    *,
    env_file: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build :class:`Settings` from overrides, the environment, then ``.env``."""

    file_values = read_env_file(env_file or PROJECT_ROOT / ".env")
    source: dict[str, str] = {**file_values, **(os.environ if env is None else env)}

    data: dict[str, Any] = {}
    for name, field_name in ENV_FIELDS.items():
        raw = source.get(name)
        if raw is not None and raw != "":
            data[field_name] = raw
    data.update({key: value for key, value in overrides.items() if value is not None})

    settings = Settings.model_validate(data)
    logger.debug("Loaded settings: %s", settings)
    return settings


__all__ = ["ENV_FIELDS", "PROJECT_ROOT", "Settings", "load_settings", "read_env_file"]
