"""Unit tests for the scoring engine and breakdown helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fpl_buddy.scoring import (
    BonusState,
    build_squad_rows,
    canonical_points,
    category_points,
    effective_points,
    format_points_breakdown,
    gameweek_total,
    live_points,
    load_rules,
    resolve_bonus,
)
from fpl_buddy.types import Category, LiveStats, Pick, PlayerSnapshot, Position


def _pick(position: int = Position.FORWARD, slot: int = 1, multiplier: int = 1) -> Pick:
    return Pick(
        element_id=100 + slot,
        squad_slot=slot,
        multiplier=multiplier,
        position_type=position,
        player_name=f"Player {slot}",
    )


def test_forward_goal_and_full_match() -> None:
    live = LiveStats(minutes=90, goals_scored=1)
    assert canonical_points(_pick(Position.FORWARD), live) == (6, True)


def test_goal_weights_follow_position_table() -> None:
    live = LiveStats(minutes=90, goals_scored=1)
    goals = {
        position: category_points(position, live)[Category.GOALS]  # type: ignore[index]
        for position in Position
    }
    assert goals == {
        Position.GOALKEEPER: 10,
        Position.DEFENDER: 6,
        Position.MIDFIELDER: 5,
        Position.FORWARD: 4,
    }


def test_clean_sheet_requires_sixty_minutes() -> None:
    short = category_points(Position.DEFENDER, LiveStats(minutes=59, clean_sheets=1))
    full = category_points(Position.DEFENDER, LiveStats(minutes=60, clean_sheets=1))
    assert short is not None and full is not None
    assert short[Category.CLEAN_SHEET] == 0
    assert full[Category.CLEAN_SHEET] == 4


def test_goalkeeper_saves_concessions_and_penalty_saves() -> None:
    live = LiveStats(minutes=90, saves=7, goals_conceded=3, penalties_saved=1)
    values = category_points(Position.GOALKEEPER, live)
    assert values is not None
    assert values[Category.SAVES] == 2
    assert values[Category.GOALS_CONCEDED] == -1
    assert values[Category.PENALTY_SAVE] == 5


def test_saves_only_score_for_goalkeepers() -> None:
    values = category_points(Position.DEFENDER, LiveStats(minutes=90, saves=9))
    assert values is not None
    assert values[Category.SAVES] == 0


def test_defensive_contribution_thresholds() -> None:
    defender = category_points(
        Position.DEFENDER, LiveStats(minutes=90, defensive_contribution=21)
    )
    midfielder = category_points(
        Position.MIDFIELDER, LiveStats(minutes=90, defensive_contribution=11)
    )
    keeper = category_points(
        Position.GOALKEEPER, LiveStats(minutes=90, defensive_contribution=30)
    )
    assert defender is not None and midfielder is not None and keeper is not None
    assert defender[Category.DEFENSIVE_CONTRIBUTION] == 4
    assert midfielder[Category.DEFENSIVE_CONTRIBUTION] == 0
    assert keeper[Category.DEFENSIVE_CONTRIBUTION] == 0


def test_negative_events() -> None:
    live = LiveStats(
        minutes=90, penalties_missed=1, yellow_cards=1, red_cards=1, own_goals=1
    )
    values = category_points(Position.MIDFIELDER, live)
    assert values is not None
    assert values[Category.PENALTY_MISS] == -2
    assert values[Category.YELLOW] == -1
    assert values[Category.RED] == -3
    assert values[Category.OWN_GOAL] == -2


def test_unknown_position_falls_back_to_raw_total() -> None:
    pick = _pick(position=9)
    live = LiveStats(total_points=7, minutes=90, goals_scored=3)
    assert canonical_points(pick, live) == (7, False)
    resolution = resolve_bonus(pick, live)
    assert resolution.state is BonusState.UNKNOWN
    assert resolution.points == 7


@pytest.mark.parametrize(
    ("raw", "state", "points", "exact"),
    [
        (11, BonusState.INCLUDED, 11, True),
        (8, BonusState.PROJECTED, 11, True),
        (10, BonusState.INCLUDED, 10, False),
        (7, BonusState.PROJECTED, 10, False),
    ],
)
def test_bonus_resolution(
    raw: int, state: BonusState, points: int, exact: bool
) -> None:
    # Defender: 2 minute points + 6 goal + 3 bonus = 11 with bonus, 8 without.
    live = LiveStats(total_points=raw, minutes=90, goals_scored=1, bonus=3)
    resolution = resolve_bonus(_pick(Position.DEFENDER), live)
    assert resolution.state is state
    assert resolution.points == points
    assert resolution.exact is exact


def test_bonus_tie_is_treated_as_included() -> None:
    # Known approximation: 9 is equally far from 8 (without) and 10 (with).
    live = LiveStats(total_points=9, minutes=90, goals_scored=1, bonus=2)
    resolution = resolve_bonus(_pick(Position.DEFENDER), live)
    assert resolution.state is BonusState.INCLUDED
    assert resolution.points == 9
    assert resolution.exact is False


def test_bonus_resolution_is_idempotent() -> None:
    pick = _pick(Position.MIDFIELDER)
    live = LiveStats(total_points=4, minutes=90, assists=1, bonus=1)
    assert resolve_bonus(pick, live) == resolve_bonus(pick, live)


def test_locally_built_stats_score_canonically() -> None:
    live = LiveStats(minutes=90, goals_scored=1, bonus=2)
    resolution = resolve_bonus(_pick(Position.MIDFIELDER), live)
    assert resolution.state is BonusState.INCLUDED
    assert resolution.points == 9


def test_effective_points_apply_multiplier() -> None:
    live = LiveStats(minutes=90, goals_scored=1)
    assert effective_points(_pick(multiplier=2), live) == 12
    assert effective_points(_pick(multiplier=3), live) == 18
    assert effective_points(_pick(multiplier=0), live) == 0


def test_gameweek_total_includes_bench_slots() -> None:
    players = [
        PlayerSnapshot(
            gameweek=3,
            pick=_pick(Position.MIDFIELDER, slot=slot),
            live=LiveStats(minutes=90),
        )
        for slot in range(1, 16)
    ]
    captain = players[0]
    players[0] = PlayerSnapshot(
        gameweek=3,
        pick=captain.pick.model_copy(update={"multiplier": 2, "is_captain": True}),
        live=captain.live,
    )
    # Bench boost: all fifteen count, the captain twice.
    assert gameweek_total(players) == 14 * 2 + 2 * 2


def test_load_rules_from_json(tmp_path: Path) -> None:
    table = {
        "assist": 4,
        "positions": {
            "4": {"goal": 5, "clean_sheet": 0, "defensive_contribution_threshold": 12}
        },
    }
    path = tmp_path / "rules.json"
    path.write_text(json.dumps(table), encoding="utf-8")

    rules = load_rules(path)
    live = LiveStats(minutes=90, goals_scored=1, assists=1)
    assert live_points(_pick(Position.FORWARD), live, rules) == 2 + 5 + 4
    assert rules.for_position(Position.DEFENDER) is None


def test_load_rules_defaults_when_no_path() -> None:
    assert load_rules(None).assist == 3


def test_breakdown_text_lists_each_source() -> None:
    live = LiveStats(minutes=90, goals_scored=1)
    text = format_points_breakdown(_pick(Position.MIDFIELDER), live)
    assert text == "1 pt - appearance; 1 pt - 60+ mins; 5 pts - goals"


def test_breakdown_text_without_returns() -> None:
    assert format_points_breakdown(_pick(), LiveStats()) == "0 pts - no returns yet"


def test_breakdown_text_marks_projected_bonus() -> None:
    live = LiveStats(total_points=7, minutes=90, goals_scored=1, bonus=2)
    text = format_points_breakdown(_pick(Position.MIDFIELDER), live)
    assert text.endswith("2 pts - bonus (projected)")


def test_breakdown_text_reports_unexplained_points() -> None:
    live = LiveStats(total_points=9, minutes=90, goals_scored=1)
    text = format_points_breakdown(_pick(Position.MIDFIELDER), live)
    assert text.endswith("2 pts - other/live adjustments")


def test_squad_rows_sorted_with_headline() -> None:
    players = [
        PlayerSnapshot(
            gameweek=1,
            pick=_pick(Position.MIDFIELDER, slot=12, multiplier=0),
            live=LiveStats(minutes=0),
        ),
        PlayerSnapshot(
            gameweek=1,
            pick=_pick(Position.MIDFIELDER, slot=2),
            live=LiveStats(minutes=90, goals_scored=1),
        ),
    ]
    rows = build_squad_rows(players)
    assert [row.slot for row in rows] == [2, 12]
    assert rows[0].breakdown == "G +5"
    assert rows[0].points == 7
    assert rows[0].has_played is True
    assert rows[1].is_bench is True
    assert rows[1].points == 0
