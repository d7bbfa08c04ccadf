"""Human-readable breakdowns and squad rows built on the scoring engine."""

from __future__ import annotations

from collections.abc import Iterable

from ..types import Category, LiveStats, Pick, PlayerSnapshot, SquadRow
from .engine import BonusState, category_points, effective_points, resolve_bonus
from .rules import DEFAULT_RULES, ScoringRules

BREAKDOWN_LABELS: dict[Category, str] = {
    Category.GOALS: "goals",
    Category.ASSISTS: "assists",
    Category.CLEAN_SHEET: "clean sheet",
    Category.SAVES: "saves",
    Category.PENALTY_SAVE: "pen save",
    Category.DEFENSIVE_CONTRIBUTION: "defensive contrib",
    Category.BONUS: "bonus",
    Category.GOALS_CONCEDED: "goals conceded",
    Category.PENALTY_MISS: "pen miss",
    Category.YELLOW: "yellow card",
    Category.RED: "red card",
    Category.OWN_GOAL: "own goal",
}

# Squad-row headline, first match wins.
_HEADLINE_TAGS: tuple[tuple[Category, str], ...] = (
    (Category.GOALS, "G"),
    (Category.ASSISTS, "A"),
    (Category.CLEAN_SHEET, "CS"),
    (Category.SAVES, "SV"),
    (Category.YELLOW, "YC"),
    (Category.RED, "RC"),
)


def _part(points: int, label: str) -> str:
    unit = "pt" if abs(points) == 1 else "pts"
    return f"{points} {unit} - {label}"


def format_points_breakdown(
    pick: Pick, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> str:
    """Describe where a player's points came from, e.g. ``"1 pt - appearance"``."""

    resolution = resolve_bonus(pick, live, rules)
    values = category_points(pick.position_type, live, rules)
    if values is None:
        return _part(resolution.points, "raw total (unknown position)")

    parts: list[str] = []
    explained = 0

    if live.minutes > 0:
        parts.append(_part(rules.appearance, "appearance"))
        explained += rules.appearance
    if live.minutes >= rules.sixty_minute_mark:
        parts.append(_part(rules.sixty_minutes, "60+ mins"))
        explained += rules.sixty_minutes

    for category, label in BREAKDOWN_LABELS.items():
        points = values[category]
        if points == 0:
            continue
        if category is Category.BONUS and resolution.state is BonusState.PROJECTED:
            label = "bonus (projected)"
        parts.append(_part(points, label))
        explained += points

    if not parts:
        return "0 pts - no returns yet"

    unattributed = resolution.points - explained
    if unattributed != 0:
        parts.append(_part(unattributed, "other/live adjustments"))
    return "; ".join(parts)


def _headline(pick: Pick, live: LiveStats, rules: ScoringRules) -> str:
    values = category_points(pick.position_type, live, rules)
    if values is None:
        return ""
    for category, tag in _HEADLINE_TAGS:
        points = values[category]
        if points != 0:
            return f"{tag} {points:+d}"
    return ""


def build_squad_rows(
    players: Iterable[PlayerSnapshot], rules: ScoringRules = DEFAULT_RULES
) -> list[SquadRow]:
    rows = []
    for player in sorted(players, key=lambda item: item.pick.squad_slot):
        pick, live = player.pick, player.live
        rows.append(
            SquadRow(
                slot=pick.squad_slot,
                player=pick.player_name or "unknown",
                team=pick.team_slug,
                points=effective_points(pick, live, rules),
                breakdown=_headline(pick, live, rules),
                has_played=live.minutes > 0,
                is_captain=pick.is_captain,
                is_vice_captain=pick.is_vice_captain,
                is_bench=pick.is_bench,
                is_goalkeeper=pick.is_goalkeeper,
            )
        )
    return rows


__all__ = ["BREAKDOWN_LABELS", "build_squad_rows", "format_points_breakdown"]
