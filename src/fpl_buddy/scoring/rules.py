"""Provider scoring-rule table.

Providers revise these values between seasons, so the engine reads every
weight from a :class:`ScoringRules` instance rather than from literals.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from ..types import Position


class PositionRules(BaseModel):
    """Weights that differ by position."""

    model_config = ConfigDict(frozen=True)

    goal: int
    clean_sheet: int
    # Lose one point per ``concede_step`` goals conceded; 0 disables.
    concede_step: int = 0
    # Earn one point per ``saves_step`` saves; 0 disables.
    saves_step: int = 0
    penalty_save: int = 0
    # Award ``defensive_contribution`` points per threshold reached; 0 disables.
    defensive_contribution_threshold: int = 0


def _current_positions() -> dict[int, PositionRules]:
    return {
        Position.GOALKEEPER: PositionRules(
            goal=10, clean_sheet=4, concede_step=2, saves_step=3, penalty_save=5
        ),
        Position.DEFENDER: PositionRules(
            goal=6, clean_sheet=4, concede_step=2, defensive_contribution_threshold=10
        ),
        Position.MIDFIELDER: PositionRules(
            goal=5, clean_sheet=1, defensive_contribution_threshold=12
        ),
        Position.FORWARD: PositionRules(
            goal=4, clean_sheet=0, defensive_contribution_threshold=12
        ),
    }


class ScoringRules(BaseModel):
    """Full rule set: flat weights plus the per-position table."""

    model_config = ConfigDict(frozen=True)

    appearance: int = 1
    sixty_minutes: int = 1
    sixty_minute_mark: int = 60
    assist: int = 3
    penalty_miss: int = -2
    yellow_card: int = -1
    red_card: int = -3
    own_goal: int = -2
    defensive_contribution: int = 2
    positions: dict[int, PositionRules] = Field(default_factory=_current_positions)

    def for_position(self, position_type: int) -> PositionRules | None:
        return self.positions.get(position_type)


DEFAULT_RULES = ScoringRules()


def load_rules(path: Path | None) -> ScoringRules:
    """Load a rule table from JSON, falling back to the current ruleset."""

    if path is None:
        return DEFAULT_RULES
    data = json.loads(path.read_text(encoding="utf-8"))
    return ScoringRules.model_validate(data)


__all__ = ["DEFAULT_RULES", "PositionRules", "ScoringRules", "load_rules"]
