"""Shared type definitions for the scoreboard engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum

from pydantic import BaseModel, ConfigDict

# =============================================================================
# Provider-facing models (Pydantic)
# =============================================================================


class Position(IntEnum):
    """Provider ``element_type`` ids."""

    GOALKEEPER = 1
    DEFENDER = 2
    MIDFIELDER = 3
    FORWARD = 4


class Category(StrEnum):
    """Attribution categories, declared in emission order."""

    MINUTES = "minutes"
    GOALS = "goals"
    ASSISTS = "assists"
    CLEAN_SHEET = "clean_sheet"
    SAVES = "saves"
    PENALTY_SAVE = "penalty_save"
    DEFENSIVE_CONTRIBUTION = "defensive_contribution"
    BONUS = "bonus"
    GOALS_CONCEDED = "goals_conceded"
    PENALTY_MISS = "penalty_miss"
    YELLOW = "yellow"
    RED = "red"
    OWN_GOAL = "own_goal"
    OTHER = "other"


CATEGORY_ORDER: tuple[Category, ...] = tuple(Category)


class Pick(BaseModel):
    """One squad member for one gameweek."""

    model_config = ConfigDict(frozen=True)

    element_id: int
    squad_slot: int
    multiplier: int = 1
    is_captain: bool = False
    is_vice_captain: bool = False
    position_type: int = 0  # 1=GKP, 2=DEF, 3=MID, 4=FWD
    team_id: int = 0
    player_name: str = ""
    position_name: str = "?"
    team_slug: str = ""

    @property
    def is_bench(self) -> bool:
        return self.squad_slot > 11

    @property
    def is_goalkeeper(self) -> bool:
        return self.position_type == Position.GOALKEEPER

    @property
    def display_name(self) -> str:
        return self.player_name or f"element {self.element_id}"


class LiveStats(BaseModel):
    """Raw live counters for one player, replaced wholesale on every poll.

    ``breakdown`` holds the provider's per-category point contributions when
    the live endpoint ships an ``explain`` payload. When present it is ground
    truth for attribution. ``total_points`` is the provider's raw total; it is
    ``None`` only for locally built stats, which then score canonically.
    """

    model_config = ConfigDict(frozen=True)

    total_points: int | None = None
    minutes: int = 0
    goals_scored: int = 0
    assists: int = 0
    clean_sheets: int = 0
    goals_conceded: int = 0
    own_goals: int = 0
    penalties_saved: int = 0
    penalties_missed: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    saves: int = 0
    bonus: int = 0
    defensive_contribution: int = 0
    breakdown: dict[Category, int] | None = None

    @property
    def has_breakdown(self) -> bool:
        return self.breakdown is not None


# =============================================================================
# Engine records (dataclasses)
# =============================================================================


@dataclass(frozen=True, slots=True)
class PlayerSnapshot:
    """A (pick, live stats) pair observed in one gameweek."""

    gameweek: int
    pick: Pick
    live: LiveStats


@dataclass(frozen=True, slots=True)
class EntrySummary:
    current_gw: int
    overall_rank: int
    overall_points: int


@dataclass(frozen=True, slots=True)
class GameweekState:
    """Lifecycle flags derived from the bootstrap ``events`` list."""

    is_live: bool
    current_gw: int = 0
    next_gw: int = 0
    deadline: datetime | None = None


@dataclass(slots=True)
class TeamSnapshot:
    """Everything one fetch-and-score pass produces for the squad."""

    current_gw: int
    overall_rank: int
    overall_points: int
    active_chip: str
    players: list[PlayerSnapshot]
    gw_points: int = 0
    has_player_meta: bool = False


@dataclass(frozen=True, slots=True)
class PollSnapshot:
    """Input of one publish cycle, from a live poll or the demo harness."""

    team: TeamSnapshot
    gameweek: GameweekState
    previous_rank: int | None = None


@dataclass(frozen=True, slots=True)
class AttributedEvent:
    """A single attributed point change. Never mutated after creation."""

    category: Category
    icon: str
    label: str
    player: str
    team: str
    element_id: int
    gameweek: int
    delta: int
    total_before: int
    total_after: int
    is_goalkeeper: bool
    timestamp: float


@dataclass(frozen=True, slots=True)
class SquadRow:
    """Display row for the squad list view."""

    slot: int
    player: str
    team: str
    points: int
    breakdown: str = ""
    has_played: bool = False
    is_captain: bool = False
    is_vice_captain: bool = False
    is_bench: bool = False
    is_goalkeeper: bool = False


@dataclass(frozen=True, slots=True)
class SharedUiState:
    """Versioned snapshot consumed by the renderer."""

    gw_points: int = 0
    has_gw_points: bool = False
    overall_rank: int = 0
    rank_diff: int = 0
    has_rank_data: bool = False
    total_points: int = 0
    has_total_points: bool = False
    current_gw: int = 0
    is_live: bool = False
    next_gw: int = 0
    next_deadline: datetime | None = None
    status_text: str = "Booting..."
    status_level: str = "info"
    gw_state_text: str = "GW live: ? | next: --"
    is_stale: bool = True
    last_success_at: float | None = None
    version: int = 0

    @property
    def has_next_gw(self) -> bool:
        return self.next_gw > 0


@dataclass(slots=True)
class PollResult:
    """Outcome of one poll cycle, returned for logging and tests."""

    ok: bool
    events: list[AttributedEvent] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False


__all__ = [
    "CATEGORY_ORDER",
    "AttributedEvent",
    "Category",
    "EntrySummary",
    "GameweekState",
    "LiveStats",
    "Pick",
    "PlayerSnapshot",
    "PollResult",
    "PollSnapshot",
    "Position",
    "SharedUiState",
    "SquadRow",
    "TeamSnapshot",
]
