"""Display boundary: frame record, display protocol and a console display."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Protocol, TextIO

from .fpl.utils import format_number_with_commas
from .modes import Mode, seconds_to_deadline
from .types import AttributedEvent, SharedUiState, SquadRow

TICKER_LENGTH = 3


@dataclass(frozen=True, slots=True)
class Frame:
    """Everything a display needs to draw one tick."""

    mode: Mode
    state: SharedUiState
    now: float
    is_stale: bool = False
    popup: AttributedEvent | None = None
    history: tuple[AttributedEvent, ...] = ()
    squad: tuple[SquadRow, ...] = ()


class Display(Protocol):
    def render(self, frame: Frame) -> None: ...


def format_rank_diff(rank_diff: int) -> str:
    """``^ 30,000`` for an improvement, ``v 1,234`` for a drop."""

    if rank_diff > 0:
        return f"^ {format_number_with_commas(rank_diff)}"
    if rank_diff < 0:
        return f"v {format_number_with_commas(-rank_diff)}"
    return "-"


def format_countdown(seconds: float, mode: Mode) -> str:
    remaining = max(0, int(seconds))
    hours, rest = divmod(remaining, 3600)
    minutes, secs = divmod(rest, 60)
    if mode is Mode.FINAL_HOUR:
        return f"{hours * 60 + minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_points(delta: int) -> str:
    unit = "pt" if abs(delta) == 1 else "pts"
    return f"{delta:+d} {unit}"


def format_ticker(event: AttributedEvent) -> str:
    return f"{event.icon} {event.player} {event.delta:+d}"


def format_popup(event: AttributedEvent) -> str:
    return (
        f"{event.label} {event.player} {format_points(event.delta)} "
        f"{event.total_before} -> {event.total_after} total"
    )


def format_squad_row(row: SquadRow) -> str:
    flags = " C" if row.is_captain else " VC" if row.is_vice_captain else ""
    bench = " (bench)" if row.is_bench else ""
    played = "" if row.has_played else " -"
    return (
        f"{row.slot:2d} {row.player:<15} {row.team or '-':<18} "
        f"{row.points:>3}{flags}{bench}{played} {row.breakdown}".rstrip()
    )


def _header(state: SharedUiState, stale: bool) -> list[str]:
    lines = []
    if state.has_gw_points:
        lines.append(f"GW{state.current_gw}: {state.gw_points} pts")
    if state.has_rank_data:
        lines.append(
            f"Rank {format_number_with_commas(state.overall_rank)} "
            f"{format_rank_diff(state.rank_diff)}"
        )
    if state.has_total_points:
        lines.append(f"Total {format_number_with_commas(state.total_points)}")
    status = state.status_text + (" (stale)" if stale else "")
    lines.append(status)
    return lines


def render_lines(frame: Frame) -> list[str]:
    """Text lines for ``frame`` in its mode's layout."""

    state, mode = frame.state, frame.mode
    lines = [f"[{mode.value}]"]

    if mode is Mode.EVENT_POPUP and frame.popup is not None:
        lines.append(format_popup(frame.popup))
        return lines

    if mode is Mode.EVENTS_LIST:
        if not frame.history:
            lines.append("No events yet")
        lines.extend(format_popup(event) for event in reversed(frame.history))
        return lines

    if mode is Mode.SQUAD:
        lines.extend(format_squad_row(row) for row in frame.squad)
        return lines

    lines.extend(_header(state, frame.is_stale))
    if mode in (Mode.PRE_DEADLINE, Mode.FINAL_HOUR):
        remaining = seconds_to_deadline(state, frame.now)
        if remaining is not None:
            label = f"GW{state.next_gw} deadline" if state.has_next_gw else "Deadline"
            lines.append(f"{label} in {format_countdown(remaining, mode)}")
    elif mode is Mode.LIVE:
        ticker = [format_ticker(event) for event in frame.history[-TICKER_LENGTH:]]
        if ticker:
            lines.append(" | ".join(reversed(ticker)))
    else:
        lines.append(state.gw_state_text)
    return lines


class ConsoleDisplay:
    """Writes each changed frame to a text stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._last: list[str] | None = None

    def render(self, frame: Frame) -> None:
        lines = render_lines(frame)
        if lines == self._last:
            return
        self._last = lines
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()


__all__ = [
    "ConsoleDisplay",
    "Display",
    "Frame",
    "format_countdown",
    "format_points",
    "format_popup",
    "format_rank_diff",
    "format_squad_row",
    "format_ticker",
    "render_lines",
]
