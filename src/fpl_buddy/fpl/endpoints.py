"""Endpoint wrappers: raw FPL documents in, typed engine records out."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..scoring.engine import gameweek_total
from ..scoring.rules import DEFAULT_RULES, ScoringRules
from ..types import (
    Category,
    EntrySummary,
    GameweekState,
    LiveStats,
    Pick,
    PlayerSnapshot,
    TeamSnapshot,
)
from .fetch import DataError, FieldFilter, FplHttpClient
from .utils import map_position, parse_deadline, slugify_team_name

logger = logging.getLogger(__name__)

KIB = 1024
MIB = 1024 * KIB

STAT_FIELDS = (
    "total_points",
    "minutes",
    "goals_scored",
    "assists",
    "clean_sheets",
    "goals_conceded",
    "own_goals",
    "penalties_saved",
    "penalties_missed",
    "yellow_cards",
    "red_cards",
    "saves",
    "bonus",
    "defensive_contributions",
    "defensive_contribution",
)

ENTRY_FILTER: FieldFilter = {
    "current_event": True,
    "summary_overall_rank": True,
    "summary_overall_points": True,
}
HISTORY_FILTER: FieldFilter = {"current": [{"event": True, "overall_rank": True}]}
PICKS_FILTER: FieldFilter = {
    "active_chip": True,
    "picks": [
        {
            "element": True,
            "position": True,
            "multiplier": True,
            "is_captain": True,
            "is_vice_captain": True,
        }
    ],
}
LIVE_FILTER: FieldFilter = {
    "elements": [
        {
            "id": True,
            "stats": {name: True for name in STAT_FIELDS},
            "explain": True,
        }
    ]
}
BOOTSTRAP_FILTER: FieldFilter = {
    "events": [
        {
            "id": True,
            "is_current": True,
            "is_next": True,
            "finished": True,
            "deadline_time": True,
            "deadline_time_epoch": True,
        }
    ],
    "elements": [{"id": True, "web_name": True, "element_type": True, "team": True}],
    "teams": [{"id": True, "name": True}],
}

IDENTIFIER_CATEGORIES: dict[str, Category] = {
    "minutes": Category.MINUTES,
    "goals_scored": Category.GOALS,
    "assists": Category.ASSISTS,
    "clean_sheets": Category.CLEAN_SHEET,
    "goals_conceded": Category.GOALS_CONCEDED,
    "own_goals": Category.OWN_GOAL,
    "penalties_saved": Category.PENALTY_SAVE,
    "penalties_missed": Category.PENALTY_MISS,
    "yellow_cards": Category.YELLOW,
    "red_cards": Category.RED,
    "saves": Category.SAVES,
    "bonus": Category.BONUS,
    "defensive_contribution": Category.DEFENSIVE_CONTRIBUTION,
    "defensive_contributions": Category.DEFENSIVE_CONTRIBUTION,
}


@dataclass(frozen=True, slots=True)
class ByteBudgets:
    entry: int = 64 * KIB
    history: int = 256 * KIB
    picks: int = 64 * KIB
    live: int = 4 * MIB
    bootstrap: int = 8 * MIB


@dataclass(frozen=True, slots=True)
class PlayerMeta:
    name: str
    position_type: int
    team_id: int
    team_slug: str


@dataclass(slots=True)
class Bootstrap:
    gameweek: GameweekState
    players: dict[int, PlayerMeta] = field(default_factory=dict)


# =============================================================================
# Explain payloads
# =============================================================================


class ExplainStat(BaseModel):
    identifier: str = ""
    points: int = 0
    value: int = 0


class ExplainFixture(BaseModel):
    """Object shape: ``{"fixture": id, "stats": [...]}``."""

    fixture: int | None = None
    stats: list[ExplainStat] = []


# Each item is either the object shape or a bare list of stats.
_EXPLAIN_ADAPTER: TypeAdapter[list[ExplainFixture | list[ExplainStat]]] = TypeAdapter(
    list[ExplainFixture | list[ExplainStat]]
)


def parse_explain(raw: Any) -> dict[Category, int] | None:
    """Normalise either explain shape into per-category points.

    Returns ``None`` when no usable breakdown is present.
    """

    if not isinstance(raw, list):
        return None
    try:
        items = _EXPLAIN_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        logger.warning("Ignoring unrecognised explain payload: %s", exc)
        return None

    breakdown: dict[Category, int] = {}
    for item in items:
        stats = item.stats if isinstance(item, ExplainFixture) else item
        for stat in stats:
            category = IDENTIFIER_CATEGORIES.get(stat.identifier, Category.OTHER)
            breakdown[category] = breakdown.get(category, 0) + stat.points
    return breakdown


# =============================================================================
# Pure parsers
# =============================================================================


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _object_rows(rows: Any, what: str) -> list[Mapping[str, Any]]:
    """Return ``rows`` as a list of JSON objects. A missing array is empty."""

    if rows is None:
        return []
    if not isinstance(rows, list):
        raise DataError(f"{what} is not an array")
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise DataError(f"{what}[{index}] is not an object")
    return rows


def parse_entry_summary(document: Mapping[str, Any]) -> EntrySummary:
    current = document.get("current_event")
    if not isinstance(current, int) or current <= 0:
        raise DataError("entry summary has no current_event")
    return EntrySummary(
        current_gw=current,
        overall_rank=_int(document.get("summary_overall_rank")),
        overall_points=_int(document.get("summary_overall_points")),
    )


def previous_rank(history: Iterable[Mapping[str, Any]], current_gw: int) -> int | None:
    """Overall rank of the previous gameweek.

    Uses the exact previous gameweek when it has a rank, otherwise the latest
    earlier gameweek that does.
    """

    target = current_gw - 1
    best_event = -1
    best_rank: int | None = None
    for row in history:
        event = _int(row.get("event"))
        rank = _int(row.get("overall_rank"))
        if rank <= 0:
            continue
        if target > 0 and event == target:
            return rank
        if event < current_gw and event > best_event:
            best_event, best_rank = event, rank
    return best_rank if best_event > 0 else None


def rank_delta(previous: int | None, current: int) -> int:
    """Positive when the rank improved (moved towards 1)."""

    if previous is None or previous <= 0 or current <= 0:
        return 0
    return previous - current


def parse_gameweek_state(events: Iterable[Mapping[str, Any]]) -> GameweekState:
    is_live = False
    current_gw = 0
    next_gw = 0
    deadline = None
    for event in events:
        if event.get("is_current"):
            current_gw = _int(event.get("id"))
            is_live = not bool(event.get("finished", False))
        if event.get("is_next"):
            next_gw = _int(event.get("id"))
            deadline = parse_deadline(dict(event))
    return GameweekState(
        is_live=is_live, current_gw=current_gw, next_gw=next_gw, deadline=deadline
    )


def parse_player_meta(document: Mapping[str, Any]) -> dict[int, PlayerMeta]:
    teams = {
        _int(team.get("id")): slugify_team_name(str(team.get("name") or ""))
        for team in _object_rows(document.get("teams"), "teams")
    }
    players: dict[int, PlayerMeta] = {}
    for element in _object_rows(document.get("elements"), "elements"):
        element_id = _int(element.get("id"))
        if element_id <= 0:
            continue
        team_id = _int(element.get("team"))
        players[element_id] = PlayerMeta(
            name=str(element.get("web_name") or ""),
            position_type=_int(element.get("element_type")),
            team_id=team_id,
            team_slug=teams.get(team_id, ""),
        )
    return players


def parse_picks(document: Mapping[str, Any]) -> tuple[list[Pick], str]:
    raw_picks = document.get("picks")
    if not isinstance(raw_picks, list) or not raw_picks:
        raise DataError("picks response has no picks")
    picks = [
        Pick(
            element_id=_int(raw.get("element")),
            squad_slot=_int(raw.get("position")),
            multiplier=_int(raw.get("multiplier", 1)),
            is_captain=bool(raw.get("is_captain", False)),
            is_vice_captain=bool(raw.get("is_vice_captain", False)),
        )
        for raw in _object_rows(raw_picks, "picks")
    ]
    chip = document.get("active_chip")
    return picks, chip if isinstance(chip, str) else ""


def parse_live_stats(stats: Mapping[str, Any], explain: Any = None) -> LiveStats:
    defensive = _int(stats.get("defensive_contributions"))
    if defensive == 0:
        defensive = _int(stats.get("defensive_contribution"))
    return LiveStats(
        total_points=_int(stats.get("total_points")),
        minutes=_int(stats.get("minutes")),
        goals_scored=_int(stats.get("goals_scored")),
        assists=_int(stats.get("assists")),
        clean_sheets=_int(stats.get("clean_sheets")),
        goals_conceded=_int(stats.get("goals_conceded")),
        own_goals=_int(stats.get("own_goals")),
        penalties_saved=_int(stats.get("penalties_saved")),
        penalties_missed=_int(stats.get("penalties_missed")),
        yellow_cards=_int(stats.get("yellow_cards")),
        red_cards=_int(stats.get("red_cards")),
        saves=_int(stats.get("saves")),
        bonus=_int(stats.get("bonus")),
        defensive_contribution=defensive,
        breakdown=parse_explain(explain),
    )


def parse_live_elements(document: Mapping[str, Any]) -> dict[int, LiveStats]:
    elements = document.get("elements")
    if not isinstance(elements, list):
        raise DataError("live response has no elements array")
    live: dict[int, LiveStats] = {}
    for element in _object_rows(elements, "live elements"):
        element_id = _int(element.get("id"))
        if element_id <= 0:
            continue
        stats = element.get("stats") or {}
        if not isinstance(stats, Mapping):
            raise DataError(f"live element {element_id} has malformed stats")
        live[element_id] = parse_live_stats(stats, element.get("explain"))
    return live


def enrich_pick(pick: Pick, meta: PlayerMeta | None) -> Pick:
    if meta is None:
        return pick
    return pick.model_copy(
        update={
            "player_name": meta.name,
            "position_type": meta.position_type,
            "position_name": map_position(meta.position_type),
            "team_id": meta.team_id,
            "team_slug": meta.team_slug,
        }
    )


# =============================================================================
# Client facade
# =============================================================================


class FplApi:
    """Endpoint calls for one entry, each filtered and byte-budgeted."""

    def __init__(
        self,
        client: FplHttpClient,
        entry_id: int,
        *,
        budgets: ByteBudgets | None = None,
        rules: ScoringRules = DEFAULT_RULES,
    ) -> None:
        self.client = client
        self.entry_id = entry_id
        self.budgets = budgets or ByteBudgets()
        self.rules = rules

    def _get(self, path: str, budget: int, field_filter: FieldFilter) -> Any:
        document = self.client.fetch_json(self.client.url(path), budget, field_filter)
        if not isinstance(document, dict):
            raise DataError(f"{path} did not return a JSON object")
        return document

    def entry_summary(self) -> EntrySummary:
        return parse_entry_summary(
            self._get(f"entry/{self.entry_id}/", self.budgets.entry, ENTRY_FILTER)
        )

    def previous_rank(self, current_gw: int) -> int | None:
        document = self._get(
            f"entry/{self.entry_id}/history/", self.budgets.history, HISTORY_FILTER
        )
        return previous_rank(
            _object_rows(document.get("current"), "history"), current_gw
        )

    def bootstrap(self) -> Bootstrap:
        document = self._get(
            "bootstrap-static/", self.budgets.bootstrap, BOOTSTRAP_FILTER
        )
        return Bootstrap(
            gameweek=parse_gameweek_state(
                _object_rows(document.get("events"), "events")
            ),
            players=parse_player_meta(document),
        )

    def picks(self, gameweek: int) -> tuple[list[Pick], str]:
        return parse_picks(
            self._get(
                f"entry/{self.entry_id}/event/{gameweek}/picks/",
                self.budgets.picks,
                PICKS_FILTER,
            )
        )

    def live(self, gameweek: int) -> dict[int, LiveStats]:
        return parse_live_elements(
            self._get(f"event/{gameweek}/live/", self.budgets.live, LIVE_FILTER)
        )

    def team_snapshot(self, bootstrap: Bootstrap | None = None) -> TeamSnapshot:
        """One full fetch-and-score pass for the entry's current gameweek."""

        summary = self.entry_summary()
        gameweek = summary.current_gw
        picks, chip = self.picks(gameweek)
        live = self.live(gameweek)
        meta = bootstrap.players if bootstrap is not None else {}

        players = []
        for pick in picks:
            stats = live.get(pick.element_id)
            if stats is None:
                stats = LiveStats(total_points=0)
            players.append(
                PlayerSnapshot(
                    gameweek=gameweek,
                    pick=enrich_pick(pick, meta.get(pick.element_id)),
                    live=stats,
                )
            )

        return TeamSnapshot(
            current_gw=gameweek,
            overall_rank=summary.overall_rank,
            overall_points=summary.overall_points,
            active_chip=chip,
            players=players,
            gw_points=gameweek_total(players, self.rules),
            has_player_meta=bool(meta),
        )


__all__ = [
    "BOOTSTRAP_FILTER",
    "ENTRY_FILTER",
    "HISTORY_FILTER",
    "IDENTIFIER_CATEGORIES",
    "LIVE_FILTER",
    "PICKS_FILTER",
    "Bootstrap",
    "ByteBudgets",
    "ExplainFixture",
    "ExplainStat",
    "FplApi",
    "PlayerMeta",
    "enrich_pick",
    "parse_entry_summary",
    "parse_explain",
    "parse_gameweek_state",
    "parse_live_elements",
    "parse_live_stats",
    "parse_picks",
    "parse_player_meta",
    "previous_rank",
    "rank_delta",
]
