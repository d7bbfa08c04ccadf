"""Display-mode state machine driven by the clock, the gameweek and gestures."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum

from .sync import EventFeed
from .types import AttributedEvent, SharedUiState

logger = logging.getLogger(__name__)

DEFAULT_PRE_DEADLINE_WINDOW = 6 * 3600.0
DEFAULT_FINAL_HOUR_WINDOW = 3600.0
DEFAULT_POPUP_DURATION = 4.0
DEFAULT_LONG_PRESS = 3.0


class Mode(StrEnum):
    IDLE = "idle"
    PRE_DEADLINE = "pre_deadline"
    FINAL_HOUR = "final_hour"
    LIVE = "live"
    EVENT_POPUP = "event_popup"
    EVENTS_LIST = "events_list"
    SQUAD = "squad"


# Never overridden by the automatic rule once entered.
STICKY_MODES = frozenset({Mode.EVENT_POPUP, Mode.EVENTS_LIST, Mode.SQUAD})


class Gesture(StrEnum):
    TAP_TICKER = "tap_ticker"
    PRESS = "press"
    RELEASE = "release"
    BACK = "back"


def seconds_to_deadline(state: SharedUiState, now: float) -> float | None:
    if state.next_deadline is None:
        return None
    return state.next_deadline.timestamp() - now


def auto_mode(
    state: SharedUiState,
    now: float,
    *,
    pre_deadline_window: float = DEFAULT_PRE_DEADLINE_WINDOW,
    final_hour_window: float = DEFAULT_FINAL_HOUR_WINDOW,
) -> Mode:
    """Mode implied by the shared state alone.

    A missing or already passed deadline maps to ``Mode.IDLE``.
    """

    if state.is_live:
        return Mode.LIVE
    remaining = seconds_to_deadline(state, now)
    if remaining is None or remaining <= 0:
        return Mode.IDLE
    if remaining <= final_hour_window:
        return Mode.FINAL_HOUR
    if remaining <= pre_deadline_window:
        return Mode.PRE_DEADLINE
    return Mode.IDLE


class ModeMachine:
    """Renderer-side mode selection.

    Gestures may arrive from any thread through :meth:`submit`; they are
    queued and only applied at the start of the next :meth:`tick`, so the
    mode never changes while a frame is being drawn.
    """

    def __init__(
        self,
        *,
        pre_deadline_window: float = DEFAULT_PRE_DEADLINE_WINDOW,
        final_hour_window: float = DEFAULT_FINAL_HOUR_WINDOW,
        popup_duration: float = DEFAULT_POPUP_DURATION,
        long_press: float = DEFAULT_LONG_PRESS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if final_hour_window > pre_deadline_window:
            raise ValueError("final hour window exceeds the pre-deadline window")
        self.pre_deadline_window = pre_deadline_window
        self.final_hour_window = final_hour_window
        self.popup_duration = popup_duration
        self.long_press = long_press
        self._clock = clock
        self._mode = Mode.IDLE
        self._popup: AttributedEvent | None = None
        self._popup_started = 0.0
        self._pressed_at: float | None = None
        self._gestures: deque[tuple[Gesture, float]] = deque()
        self._gesture_lock = threading.Lock()

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def popup(self) -> AttributedEvent | None:
        """Event on screen while in ``Mode.EVENT_POPUP``."""

        return self._popup

    def submit(self, gesture: Gesture) -> None:
        with self._gesture_lock:
            self._gestures.append((gesture, self._clock()))

    def tick(self, state: SharedUiState | None, feed: EventFeed | None = None) -> Mode:
        """Advance the machine by one renderer tick and return the mode to draw.

        ``state`` is ``None`` when the shared state could not be copied this
        cycle; the automatic rule is then skipped and the mode held.
        """

        now = self._clock()
        self._apply_gestures()

        if self._pressed_at is not None and now - self._pressed_at >= self.long_press:
            self._pressed_at = None
            if self._mode is Mode.LIVE:
                self._switch(Mode.SQUAD)

        if (
            self._mode is Mode.EVENT_POPUP
            and now - self._popup_started >= self.popup_duration
        ):
            self._popup = None
            self._switch(Mode.LIVE)

        if self._mode not in STICKY_MODES and state is not None:
            self._switch(
                auto_mode(
                    state,
                    now,
                    pre_deadline_window=self.pre_deadline_window,
                    final_hour_window=self.final_hour_window,
                )
            )

        if self._mode is Mode.LIVE and feed is not None:
            event = feed.pop_popup()
            if event is not None:
                self._popup = event
                self._popup_started = now
                self._switch(Mode.EVENT_POPUP)

        return self._mode

    def _apply_gestures(self) -> None:
        with self._gesture_lock:
            pending = list(self._gestures)
            self._gestures.clear()

        for gesture, at in pending:
            if gesture is Gesture.PRESS:
                self._pressed_at = at
            elif gesture is Gesture.RELEASE:
                pressed_at, self._pressed_at = self._pressed_at, None
                if (
                    pressed_at is not None
                    and at - pressed_at >= self.long_press
                    and self._mode is Mode.LIVE
                ):
                    self._switch(Mode.SQUAD)
            elif gesture is Gesture.TAP_TICKER:
                if self._mode is Mode.LIVE:
                    self._switch(Mode.EVENTS_LIST)
            elif gesture is Gesture.BACK:
                if self._mode in STICKY_MODES:
                    self._popup = None
                    self._switch(Mode.LIVE)

    def _switch(self, mode: Mode) -> None:
        if mode is not self._mode:
            logger.debug("Mode %s -> %s", self._mode, mode)
            self._mode = mode


__all__ = [
    "DEFAULT_FINAL_HOUR_WINDOW",
    "DEFAULT_LONG_PRESS",
    "DEFAULT_POPUP_DURATION",
    "DEFAULT_PRE_DEADLINE_WINDOW",
    "STICKY_MODES",
    "Gesture",
    "Mode",
    "ModeMachine",
    "auto_mode",
    "seconds_to_deadline",
]
