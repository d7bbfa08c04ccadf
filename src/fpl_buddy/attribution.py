"""Diff engine: turn consecutive live snapshots into attributed point events."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from enum import StrEnum

from .scoring.engine import (
    BonusState,
    category_points,
    live_points,
    resolve_bonus,
)
from .scoring.rules import DEFAULT_RULES, ScoringRules
from .sync import bounded_lock
from .types import (
    CATEGORY_ORDER,
    AttributedEvent,
    Category,
    LiveStats,
    Pick,
    PlayerSnapshot,
)

logger = logging.getLogger(__name__)

APPEARANCE_LABEL = "PLAYING!"
SIXTY_MINUTES_LABEL = "60+ mins!"

EVENT_LABELS: dict[Category, str] = {
    Category.MINUTES: SIXTY_MINUTES_LABEL,
    Category.GOALS: "GOAL!",
    Category.ASSISTS: "ASSIST!",
    Category.CLEAN_SHEET: "CLEAN SHEET!",
    Category.SAVES: "SAVE BONUS!",
    Category.PENALTY_SAVE: "PEN SAVE!",
    Category.DEFENSIVE_CONTRIBUTION: "DEF CON!",
    Category.BONUS: "BONUS PTS!",
    Category.GOALS_CONCEDED: "goals against",
    Category.PENALTY_MISS: "PEN MISS!",
    Category.YELLOW: "YELLOW!",
    Category.RED: "RED!",
    Category.OWN_GOAL: "OWN GOAL!",
    Category.OTHER: "other scoring rule",
}

_ICONS: dict[Category, str] = {
    Category.GOALS: "G",
    Category.ASSISTS: "A",
    Category.CLEAN_SHEET: "CS",
    Category.SAVES: "SV",
    Category.PENALTY_SAVE: "SV",
    Category.YELLOW: "YC",
    Category.RED: "RC",
}


class Strategy(StrEnum):
    SERVER = "server"
    HEURISTIC = "heuristic"


def icon_for(category: Category, delta: int) -> str:
    return _ICONS.get(category, "+" if delta >= 0 else "-")


def choose_strategy(
    previous: LiveStats, current: LiveStats, *, prefer_server: bool = True
) -> Strategy:
    """Use the provider breakdown only when both sides of the diff carry one."""

    if prefer_server and previous.has_breakdown and current.has_breakdown:
        return Strategy.SERVER
    return Strategy.HEURISTIC


def _category_values(
    strategy: Strategy, pick: Pick, live: LiveStats, rules: ScoringRules
) -> dict[Category, int] | None:
    if strategy is Strategy.HEURISTIC:
        return category_points(pick.position_type, live, rules)

    if live.breakdown is None:
        raise ValueError("server strategy requires a provider breakdown")
    values = {category: live.breakdown.get(category, 0) for category in CATEGORY_ORDER}
    # A projected bonus is counted in the live total but not yet in the explain rows.
    if values[Category.BONUS] == 0 and (
        resolve_bonus(pick, live, rules).state is BonusState.PROJECTED
    ):
        values[Category.BONUS] = live.bonus
    return values


def _split_minutes(
    delta: int, previous: LiveStats, current: LiveStats, rules: ScoringRules
) -> list[tuple[str, int]]:
    """Split a minutes delta into appearance and 60-minute milestones."""

    parts: list[tuple[str, int]] = []
    remaining = delta
    if remaining > 0 and previous.minutes < 1 <= current.minutes:
        step = min(rules.appearance, remaining)
        parts.append((APPEARANCE_LABEL, step))
        remaining -= step
    mark = rules.sixty_minute_mark
    if remaining > 0 and previous.minutes < mark <= current.minutes:
        step = min(rules.sixty_minutes, remaining)
        parts.append((SIXTY_MINUTES_LABEL, step))
        remaining -= step
    if remaining != 0:
        parts.append((SIXTY_MINUTES_LABEL, remaining))
    return parts


def attribute(
    previous: LiveStats,
    current: LiveStats,
    pick: Pick,
    *,
    gameweek: int,
    rules: ScoringRules = DEFAULT_RULES,
    strategy: Strategy | None = None,
    prefer_server: bool = True,
    now: float | None = None,
) -> list[AttributedEvent]:
    """Attribute the point change between two snapshots of one player.

    Event deltas always sum to the change in bonus-resolved live points; any
    gap the categories cannot explain becomes a trailing ``OTHER`` event.
    """

    if strategy is None:
        strategy = choose_strategy(previous, current, prefer_server=prefer_server)

    total_before = live_points(pick, previous, rules)
    total_after = live_points(pick, current, rules)
    true_delta = total_after - total_before

    parts: list[tuple[Category, str, int]] = []
    prev_values: dict[Category, int] | None = None
    curr_values: dict[Category, int] | None = None
    # Without a rule row only the raw total is trusted, whatever the strategy.
    if rules.for_position(pick.position_type) is not None:
        prev_values = _category_values(strategy, pick, previous, rules)
        curr_values = _category_values(strategy, pick, current, rules)
    if prev_values is not None and curr_values is not None:
        for category in CATEGORY_ORDER:
            if category is Category.OTHER:
                continue
            delta = curr_values[category] - prev_values[category]
            if category is Category.MINUTES:
                parts.extend(
                    (category, label, points)
                    for label, points in _split_minutes(delta, previous, current, rules)
                )
            elif delta != 0:
                parts.append((category, EVENT_LABELS[category], delta))

    explained = sum(points for _, _, points in parts)
    remainder = true_delta - explained
    if remainder != 0:
        parts.append((Category.OTHER, EVENT_LABELS[Category.OTHER], remainder))
        if prev_values is not None:
            logger.info(
                "[FPL EVENT] %s %+d pts total change (unattributed %+d, %s mode)",
                pick.display_name,
                true_delta,
                remainder,
                strategy,
            )

    timestamp = time.time() if now is None else now
    events: list[AttributedEvent] = []
    running = total_before
    for category, label, points in parts:
        event = AttributedEvent(
            category=category,
            icon=icon_for(category, points),
            label=label,
            player=pick.player_name or "unknown",
            team=pick.team_slug,
            element_id=pick.element_id,
            gameweek=gameweek,
            delta=points,
            total_before=running,
            total_after=running + points,
            is_goalkeeper=pick.is_goalkeeper,
            timestamp=timestamp,
        )
        running += points
        logger.info(
            "[FPL EVENT] %s %+d pt%s, %s",
            event.player,
            points,
            "" if abs(points) == 1 else "s",
            label,
        )
        events.append(event)
    return events


class LastObservedState:
    """Most recent live stats per (gameweek, element id).

    Observing a gameweek evicts every entry recorded for a different one, so
    a diff never spans two gameweeks.
    """

    def __init__(self, lock_timeout: float = 0.1) -> None:
        self._entries: dict[tuple[int, int], LiveStats] = {}
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def exchange(
        self, gameweek: int, element_id: int, live: LiveStats
    ) -> tuple[bool, LiveStats | None]:
        """Store ``live`` and return ``(acquired, previous)``."""

        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return False, None
            self._evict_other_gameweeks(gameweek)
            previous = self._entries.get((gameweek, element_id))
            self._entries[(gameweek, element_id)] = live
            return True, previous

    def seed(self, players: Iterable[PlayerSnapshot]) -> bool:
        """Overwrite entries without diffing (demo reset, reseed)."""

        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return False
            for player in players:
                self._evict_other_gameweeks(player.gameweek)
                self._entries[(player.gameweek, player.pick.element_id)] = player.live
            return True

    def get(self, gameweek: int, element_id: int) -> LiveStats | None:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            return self._entries.get((gameweek, element_id)) if acquired else None

    def clear(self) -> bool:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                logger.debug("Last-observed state busy; clear skipped")
                return False
            self._entries.clear()
            return True

    def count(self) -> int | None:
        """Number of tracked players, or ``None`` when the lock is busy."""

        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            return len(self._entries) if acquired else None

    def _evict_other_gameweeks(self, gameweek: int) -> None:
        stale = [key for key in self._entries if key[0] != gameweek]
        for key in stale:
            del self._entries[key]


class AttributionEngine:
    """Stateful front end: remembers the last snapshot and diffs new ones."""

    def __init__(
        self,
        rules: ScoringRules = DEFAULT_RULES,
        *,
        prefer_server: bool = True,
        lock_timeout: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rules = rules
        self.prefer_server = prefer_server
        self.state = LastObservedState(lock_timeout)
        self._clock = clock

    def process(self, players: Iterable[PlayerSnapshot]) -> list[AttributedEvent]:
        events: list[AttributedEvent] = []
        now = self._clock()
        for player in players:
            acquired, previous = self.state.exchange(
                player.gameweek, player.pick.element_id, player.live
            )
            if not acquired:
                logger.debug(
                    "Last-observed state busy; skipping %s this cycle",
                    player.pick.display_name,
                )
                continue
            if previous is None:
                continue
            events.extend(
                attribute(
                    previous,
                    player.live,
                    player.pick,
                    gameweek=player.gameweek,
                    rules=self.rules,
                    prefer_server=self.prefer_server,
                    now=now,
                )
            )
        return events

    def reseed(self, players: Iterable[PlayerSnapshot]) -> bool:
        return self.state.seed(players)


__all__ = [
    "APPEARANCE_LABEL",
    "EVENT_LABELS",
    "SIXTY_MINUTES_LABEL",
    "AttributionEngine",
    "LastObservedState",
    "Strategy",
    "attribute",
    "choose_strategy",
    "icon_for",
]
