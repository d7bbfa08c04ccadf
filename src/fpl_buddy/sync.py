"""Shared structures between the poller (writer) and the renderer (reader).

Each structure owns one lock. Locks are held only while copying data in or
out and are acquired with a short timeout; when the timeout expires the
operation is skipped and the caller tries again next cycle.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any

from .types import AttributedEvent, SharedUiState, SquadRow

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 0.1


@contextmanager
def bounded_lock(lock: threading.Lock, timeout: float) -> Iterator[bool]:
    """Acquire ``lock`` for at most ``timeout`` seconds and yield success."""

    acquired = lock.acquire(timeout=timeout)
    try:
        yield acquired
    finally:
        if acquired:
            lock.release()


class SharedStateStore:
    """Versioned :class:`SharedUiState`, replaced atomically on every write."""

    def __init__(
        self,
        initial: SharedUiState | None = None,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._state = initial or SharedUiState()
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def update(self, **changes: Any) -> bool:
        """Apply every field in ``changes`` then bump the version once."""

        if "version" in changes:
            raise ValueError("version is managed by the store")
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                logger.debug("Shared UI state busy; update skipped")
                return False
            self._state = replace(
                self._state, **changes, version=self._state.version + 1
            )
            return True

    def snapshot(self) -> SharedUiState | None:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                logger.debug("Shared UI state busy; snapshot skipped")
                return None
            return self._state

    def set_status(self, text: str, level: str = "info") -> bool:
        return self.update(status_text=text, status_level=level)


@dataclass(frozen=True, slots=True)
class FeedSnapshot:
    history: tuple[AttributedEvent, ...]
    pending_popups: int
    dropped_popups: int
    version: int


class EventFeed:
    """Event history (oldest evicted) plus a best-effort popup queue.

    Once the popup queue is full, newer events are dropped from it but still
    recorded in the history.
    """

    def __init__(
        self,
        history_capacity: int = 24,
        popup_capacity: int = 8,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        if history_capacity <= 0 or popup_capacity <= 0:
            raise ValueError("capacities must be positive")
        if popup_capacity >= history_capacity:
            raise ValueError("popup capacity must be smaller than history capacity")
        self._history: deque[AttributedEvent] = deque(maxlen=history_capacity)
        self._popups: deque[AttributedEvent] = deque()
        self._popup_capacity = popup_capacity
        self._dropped = 0
        self._version = 0
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def push(self, events: Iterable[AttributedEvent]) -> bool:
        batch = list(events)
        if not batch:
            return True
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                logger.warning("Event feed busy; dropped %d events", len(batch))
                return False
            for event in batch:
                self._history.append(event)
                if len(self._popups) < self._popup_capacity:
                    self._popups.append(event)
                else:
                    self._dropped += 1
            self._version += 1
            return True

    def pop_popup(self) -> AttributedEvent | None:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired or not self._popups:
                return None
            return self._popups.popleft()

    def drain_popups(self) -> list[AttributedEvent]:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return []
            drained = list(self._popups)
            self._popups.clear()
            return drained

    def history(self) -> list[AttributedEvent]:
        """Copy of the history, oldest first."""

        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            return list(self._history) if acquired else []

    def snapshot(self) -> FeedSnapshot | None:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return None
            return FeedSnapshot(
                history=tuple(self._history),
                pending_popups=len(self._popups),
                dropped_popups=self._dropped,
                version=self._version,
            )

    def clear(self) -> bool:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return False
            self._history.clear()
            self._popups.clear()
            self._version += 1
            return True


class SquadBoard:
    """Squad rows for the squad view, versioned like the UI state."""

    def __init__(self, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._rows: tuple[SquadRow, ...] = ()
        self._version = 0
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    def update(self, rows: Iterable[SquadRow]) -> bool:
        new_rows = tuple(rows)
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return False
            self._rows = new_rows
            self._version += 1
            return True

    def snapshot(self) -> tuple[tuple[SquadRow, ...], int] | None:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                return None
            return self._rows, self._version


__all__ = [
    "DEFAULT_LOCK_TIMEOUT",
    "EventFeed",
    "FeedSnapshot",
    "SharedStateStore",
    "SquadBoard",
    "bounded_lock",
]
