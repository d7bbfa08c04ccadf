"""Unit tests for the shared state store, event feed and squad board."""

from __future__ import annotations

import pytest

from fpl_buddy.sync import EventFeed, SharedStateStore, SquadBoard, bounded_lock
from fpl_buddy.types import AttributedEvent, Category, SquadRow


def _event(n: int) -> AttributedEvent:
    return AttributedEvent(
        category=Category.GOALS,
        icon="G",
        label="GOAL!",
        player=f"Player {n}",
        team="arsenal",
        element_id=n,
        gameweek=5,
        delta=4,
        total_before=2,
        total_after=6,
        is_goalkeeper=False,
        timestamp=float(n),
    )


def test_store_bumps_version_once_per_update() -> None:
    store = SharedStateStore()

    assert store.update(gw_points=12, has_gw_points=True, current_gw=5)
    state = store.snapshot()

    assert state is not None
    assert state.version == 1
    assert state.gw_points == 12
    assert state.current_gw == 5


def test_store_rejects_explicit_version() -> None:
    with pytest.raises(ValueError):
        SharedStateStore().update(version=10)


def test_store_set_status() -> None:
    store = SharedStateStore()
    store.set_status("FPL fetch failed", "error")
    state = store.snapshot()
    assert state is not None
    assert (state.status_text, state.status_level) == ("FPL fetch failed", "error")


def test_store_skips_when_lock_busy() -> None:
    store = SharedStateStore(lock_timeout=0.01)
    with bounded_lock(store._lock, 0.01) as acquired:
        assert acquired
        assert store.update(gw_points=1) is False
        assert store.snapshot() is None
    state = store.snapshot()
    assert state is not None
    assert state.version == 0


def test_history_evicts_oldest_and_popups_drop_newest() -> None:
    feed = EventFeed(history_capacity=3, popup_capacity=2)

    assert feed.push([_event(n) for n in range(1, 5)])

    assert [event.element_id for event in feed.history()] == [2, 3, 4]
    assert [event.element_id for event in feed.drain_popups()] == [1, 2]
    snapshot = feed.snapshot()
    assert snapshot is not None
    assert snapshot.dropped_popups == 2
    assert snapshot.pending_popups == 0


def test_feed_version_bumps_per_non_empty_push() -> None:
    feed = EventFeed()
    feed.push([_event(1), _event(2)])
    feed.push([])
    feed.push([_event(3)])

    snapshot = feed.snapshot()
    assert snapshot is not None
    assert snapshot.version == 2
    assert len(snapshot.history) == 3


def test_pop_popup_is_fifo() -> None:
    feed = EventFeed()
    feed.push([_event(1), _event(2)])

    first = feed.pop_popup()
    second = feed.pop_popup()

    assert first is not None and first.element_id == 1
    assert second is not None and second.element_id == 2
    assert feed.pop_popup() is None


def test_feed_clear_empties_history_and_popups() -> None:
    feed = EventFeed()
    feed.push([_event(1)])
    assert feed.clear()
    assert feed.history() == []
    assert feed.pop_popup() is None


def test_feed_push_fails_when_lock_busy() -> None:
    feed = EventFeed(lock_timeout=0.01)
    with bounded_lock(feed._lock, 0.01):
        assert feed.push([_event(1)]) is False
        assert feed.snapshot() is None
    assert feed.history() == []


@pytest.mark.parametrize(("history", "popups"), [(0, 1), (3, 0), (2, 3), (3, 3)])
def test_feed_rejects_bad_capacities(history: int, popups: int) -> None:
    with pytest.raises(ValueError):
        EventFeed(history, popups)


def test_squad_board_versions_rows() -> None:
    board = SquadBoard()
    assert board.snapshot() == ((), 0)

    row = SquadRow(slot=1, player="Raya", team="arsenal", points=6)
    board.update([row])

    assert board.snapshot() == ((row,), 1)
