"""Pure scoring functions: raw counters in, fantasy points out.

Nothing here performs I/O or touches shared state, so the live poller and
the demo harness run the exact same arithmetic.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import NamedTuple

from ..types import CATEGORY_ORDER, Category, LiveStats, Pick, PlayerSnapshot
from .rules import DEFAULT_RULES, ScoringRules


class CanonicalScore(NamedTuple):
    points: int
    ok: bool


class BonusState(StrEnum):
    INCLUDED = "included"
    PROJECTED = "projected"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class BonusResolution:
    """How the provider's raw total relates to the provisional bonus.

    ``exact`` is False when the state was picked by distance rather than by
    an exact match against one of the two candidate totals.
    """

    state: BonusState
    points: int
    exact: bool


def category_points(
    position_type: int, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> dict[Category, int] | None:
    """Return the locally computed point contribution of every category.

    Returns ``None`` when ``position_type`` has no entry in the rule table.
    The mapping is ordered by :data:`CATEGORY_ORDER` and always contains
    every category (``OTHER`` is zero by construction).
    """

    table = rules.for_position(position_type)
    if table is None:
        return None

    minutes = 0
    if live.minutes > 0:
        minutes += rules.appearance
    if live.minutes >= rules.sixty_minute_mark:
        minutes += rules.sixty_minutes

    clean_sheet = 0
    if live.minutes >= rules.sixty_minute_mark:
        clean_sheet = table.clean_sheet * live.clean_sheets

    saves = live.saves // table.saves_step if table.saves_step > 0 else 0
    conceded = (
        -(live.goals_conceded // table.concede_step) if table.concede_step > 0 else 0
    )
    threshold = table.defensive_contribution_threshold
    defensive = (
        rules.defensive_contribution * (live.defensive_contribution // threshold)
        if threshold > 0
        else 0
    )

    values = {
        Category.MINUTES: minutes,
        Category.GOALS: table.goal * live.goals_scored,
        Category.ASSISTS: rules.assist * live.assists,
        Category.CLEAN_SHEET: clean_sheet,
        Category.SAVES: saves,
        Category.PENALTY_SAVE: table.penalty_save * live.penalties_saved,
        Category.DEFENSIVE_CONTRIBUTION: defensive,
        Category.BONUS: live.bonus,
        Category.GOALS_CONCEDED: conceded,
        Category.PENALTY_MISS: rules.penalty_miss * live.penalties_missed,
        Category.YELLOW: rules.yellow_card * live.yellow_cards,
        Category.RED: rules.red_card * live.red_cards,
        Category.OWN_GOAL: rules.own_goal * live.own_goals,
        Category.OTHER: 0,
    }
    return {category: values[category] for category in CATEGORY_ORDER}


def canonical_points(
    pick: Pick, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> CanonicalScore:
    """Recompute a player's points from counters, bonus included.

    ``ok`` is False only for an unrecognised position; ``points`` is then the
    provider's raw total, unmodified.
    """

    values = category_points(pick.position_type, live, rules)
    if values is None:
        return CanonicalScore(live.total_points or 0, False)
    return CanonicalScore(sum(values.values()), True)


def resolve_bonus(
    pick: Pick, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> BonusResolution:
    """Decide whether the raw total already contains the provisional bonus.

    Re-run on every poll; the answer is derived from the stats alone.
    """

    score = canonical_points(pick, live, rules)
    if not score.ok:
        return BonusResolution(BonusState.UNKNOWN, score.points, False)
    if live.total_points is None:
        return BonusResolution(BonusState.INCLUDED, score.points, True)

    raw = live.total_points
    with_bonus = score.points
    without_bonus = with_bonus - live.bonus

    if raw == with_bonus:
        return BonusResolution(BonusState.INCLUDED, raw, True)
    if raw == without_bonus:
        return BonusResolution(BonusState.PROJECTED, raw + live.bonus, True)

    # Ties go to "already included", the more common provider state.
    if abs(raw - without_bonus) < abs(raw - with_bonus):
        return BonusResolution(BonusState.PROJECTED, raw + live.bonus, False)
    return BonusResolution(BonusState.INCLUDED, raw, False)


def live_points(
    pick: Pick, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> int:
    """Bonus-resolved points for one player before the multiplier."""

    return resolve_bonus(pick, live, rules).points


def effective_points(
    pick: Pick, live: LiveStats, rules: ScoringRules = DEFAULT_RULES
) -> int:
    return live_points(pick, live, rules) * pick.multiplier


def gameweek_total(
    players: Iterable[PlayerSnapshot], rules: ScoringRules = DEFAULT_RULES
) -> int:
    """Sum effective points over the whole squad, bench included."""

    return sum(effective_points(p.pick, p.live, rules) for p in players)


__all__ = [
    "BonusResolution",
    "BonusState",
    "CanonicalScore",
    "canonical_points",
    "category_points",
    "effective_points",
    "gameweek_total",
    "live_points",
    "resolve_bonus",
]
