"""Poller and renderer loops wired through the shared state structures.

The poller owns every freshly fetched snapshot until :class:`Publisher` hands
it to the shared structures; the renderer only copies those structures out.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from .attribution import AttributionEngine
from .fpl.endpoints import Bootstrap, FplApi, rank_delta
from .fpl.fetch import FetchError
from .modes import Mode, ModeMachine
from .render import Display, Frame
from .scoring.breakdown import build_squad_rows
from .scoring.rules import ScoringRules
from .sync import EventFeed, SharedStateStore, SquadBoard
from .types import (
    AttributedEvent,
    GameweekState,
    PollResult,
    PollSnapshot,
    SharedUiState,
)

logger = logging.getLogger(__name__)

STATUS_FETCHING = "Fetching FPL points..."
STATUS_UPDATED = "FPL updated"
STATUS_FAILED = "FPL fetch failed"


def format_gw_state(gameweek: GameweekState) -> str:
    live = "yes" if gameweek.is_live else "no"
    upcoming = str(gameweek.next_gw) if gameweek.next_gw > 0 else "--"
    return f"GW live: {live} | next: {upcoming}"


def is_stale(last_success_at: float | None, now: float, stale_after: float) -> bool:
    return last_success_at is None or now - last_success_at > stale_after


def ui_fields(snapshot: PollSnapshot) -> dict[str, Any]:
    """Shared UI state fields implied by one snapshot."""

    team, gameweek = snapshot.team, snapshot.gameweek
    return {
        "gw_points": team.gw_points,
        "has_gw_points": True,
        "overall_rank": team.overall_rank,
        "rank_diff": rank_delta(snapshot.previous_rank, team.overall_rank),
        "has_rank_data": team.overall_rank > 0,
        "total_points": team.overall_points,
        "has_total_points": True,
        "current_gw": team.current_gw,
        "is_live": gameweek.is_live,
        "next_gw": gameweek.next_gw,
        "next_deadline": gameweek.deadline,
        "gw_state_text": format_gw_state(gameweek),
    }


class Publisher:
    """Single write path into the shared structures, for polls and demo alike."""

    def __init__(
        self,
        engine: AttributionEngine,
        store: SharedStateStore,
        feed: EventFeed,
        squad: SquadBoard,
        *,
        stale_after: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine = engine
        self.store = store
        self.feed = feed
        self.squad = squad
        self.stale_after = stale_after
        self._clock = clock
        self._last_success_at: float | None = None

    @property
    def rules(self) -> ScoringRules:
        return self.engine.rules

    def publish(
        self,
        snapshot: PollSnapshot,
        *,
        status: str = STATUS_UPDATED,
        level: str = "info",
        attribute: bool = True,
    ) -> list[AttributedEvent]:
        players = snapshot.team.players
        if attribute:
            events = self.engine.process(players)
        else:
            self.engine.reseed(players)
            events = []

        now = self._clock()
        self._last_success_at = now
        self.store.update(
            **ui_fields(snapshot),
            status_text=status,
            status_level=level,
            is_stale=False,
            last_success_at=now,
        )
        self.feed.push(events)
        self.squad.update(build_squad_rows(players, self.rules))
        return events

    def mark_failure(self, status: str = STATUS_FAILED) -> None:
        """Record a failed poll without touching previously published data."""

        stale = is_stale(self._last_success_at, self._clock(), self.stale_after)
        self.store.update(status_text=status, status_level="error", is_stale=stale)

    def set_status(self, status: str, level: str = "info") -> None:
        self.store.set_status(status, level)


class Poller:
    """One fetch-and-publish pass per call to :meth:`poll_once`."""

    def __init__(
        self,
        api: FplApi,
        publisher: Publisher,
        *,
        is_paused: Callable[[], bool] = lambda: False,
    ) -> None:
        self.api = api
        self.publisher = publisher
        self._is_paused = is_paused
        self._bootstrap: Bootstrap | None = None

    def fetch(self) -> PollSnapshot:
        """Fetch everything one publish needs. Raises :class:`FetchError`."""

        try:
            self._bootstrap = self.api.bootstrap()
        except FetchError as exc:
            logger.warning("Bootstrap fetch failed, reusing last copy: %s", exc)

        team = self.api.team_snapshot(self._bootstrap)

        previous = None
        try:
            previous = self.api.previous_rank(team.current_gw)
        except FetchError as exc:
            logger.warning("Rank history fetch failed: %s", exc)

        gameweek = (
            self._bootstrap.gameweek
            if self._bootstrap is not None
            else GameweekState(is_live=False, current_gw=team.current_gw)
        )
        return PollSnapshot(team=team, gameweek=gameweek, previous_rank=previous)

    def poll_once(self) -> PollResult:
        if self._is_paused():
            return PollResult(ok=True, skipped=True)

        self.publisher.set_status(STATUS_FETCHING)
        try:
            snapshot = self.fetch()
        except FetchError as exc:
            logger.warning("FPL poll failed (%s): %s", type(exc).__name__, exc)
            self.publisher.mark_failure()
            return PollResult(ok=False, error=str(exc))

        # Demo mode may have been switched on while the fetch was in flight.
        if self._is_paused():
            return PollResult(ok=True, skipped=True)

        events = self.publisher.publish(snapshot)
        logger.info(
            "GW%d points: %d (%d events)",
            snapshot.team.current_gw,
            snapshot.team.gw_points,
            len(events),
        )
        return PollResult(ok=True, events=events)


class PollScheduler:
    """Runs :meth:`Poller.poll_once` on a fixed interval in a worker thread."""

    def __init__(self, poller: Poller, interval: float = 60.0) -> None:
        self.poller = poller
        self.interval = interval
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> PollResult | None:
        """Poll now unless a poll is already in flight."""

        if not self._running.acquire(blocking=False):
            logger.debug("Poll already running; skipping this tick")
            return None
        try:
            return self.poller.poll_once()
        finally:
            self._running.release()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                # The poller thread must outlive any single bad cycle.
                logger.exception("Unexpected error during FPL poll")
                self.poller.publisher.mark_failure()
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="fpl-poller", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


class RenderLoop:
    """Copies shared state out each tick and hands a frame to the display."""

    def __init__(
        self,
        store: SharedStateStore,
        feed: EventFeed,
        squad: SquadBoard,
        machine: ModeMachine,
        display: Display,
        *,
        interval: float = 0.25,
        stale_after: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.feed = feed
        self.squad = squad
        self.machine = machine
        self.display = display
        self.interval = interval
        self.stale_after = stale_after
        self._clock = clock
        self._state: SharedUiState | None = None
        self._last_key: tuple[object, ...] | None = None

    def render_once(self) -> Frame | None:
        """Run one tick. Returns the frame drawn, or ``None`` if nothing changed."""

        state = self.store.snapshot()
        if state is not None:
            self._state = state
        mode = self.machine.tick(state, self.feed)
        if self._state is None:
            return None

        feed = self.feed.snapshot()
        squad = self.squad.snapshot()
        if feed is None or squad is None:
            return None
        rows, squad_version = squad

        now = self._clock()
        current = self._state
        stale = current.is_stale or is_stale(
            current.last_success_at, now, self.stale_after
        )
        key = (
            current.version,
            feed.version,
            squad_version,
            mode,
            self.machine.popup,
            stale,
            int(now) if mode in (Mode.PRE_DEADLINE, Mode.FINAL_HOUR) else None,
        )
        if key == self._last_key:
            return None
        self._last_key = key

        frame = Frame(
            mode=mode,
            state=current,
            now=now,
            is_stale=stale,
            popup=self.machine.popup,
            history=feed.history,
            squad=rows,
        )
        self.display.render(frame)
        return frame

    def run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            self.render_once()
            stop.wait(self.interval)


__all__ = [
    "STATUS_FAILED",
    "STATUS_FETCHING",
    "STATUS_UPDATED",
    "PollScheduler",
    "Poller",
    "Publisher",
    "RenderLoop",
    "format_gw_state",
    "is_stale",
    "ui_fields",
]
