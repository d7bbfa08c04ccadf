"""Deterministic demo harness driven by a line-oriented command grammar.

The harness freezes one real snapshot as its seed, then mutates raw counters
of a working copy and publishes it through the same :class:`Publisher` that
live polling uses, so scoring and attribution run unmodified.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from .fpl.endpoints import rank_delta
from .fpl.fetch import FetchError
from .fpl.utils import format_number_with_commas
from .pipeline import Publisher, format_gw_state
from .scoring.engine import category_points, gameweek_total, live_points
from .scoring.rules import DEFAULT_RULES, ScoringRules
from .sync import bounded_lock
from .types import AttributedEvent, LiveStats, Pick, PlayerSnapshot, PollSnapshot

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "Demo mode active"
STATUS_SEEDED = "Demo seeded (ready)"
STATUS_RESET = "Demo reset"
STATUS_EVENT = "Demo event applied"
STATUS_GW = "Demo GW context updated"
STATUS_OFF = "Demo mode off (live polling)"

# Accepted spellings -> event type.
EVENT_TYPES: dict[str, str] = {
    "goal": "goal",
    "g": "goal",
    "assist": "assist",
    "a": "assist",
    "clean-sheet": "clean-sheet",
    "clean_sheet": "clean-sheet",
    "clean": "clean-sheet",
    "cs": "clean-sheet",
    "concede": "concede",
    "gc": "concede",
    "save": "save",
    "saves": "save",
    "sv": "save",
    "bonus": "bonus",
    "b": "bonus",
    "yellow": "yellow",
    "yc": "yellow",
    "red": "red",
    "rc": "red",
    "own-goal": "own-goal",
    "own_goal": "own-goal",
    "og": "own-goal",
    "penalty-save": "penalty-save",
    "pen_save": "penalty-save",
    "psave": "penalty-save",
    "penalty-miss": "penalty-miss",
    "pen_miss": "penalty-miss",
    "pmiss": "penalty-miss",
    "defensive-contribution": "defensive-contribution",
    "defcontrib": "defensive-contribution",
    "dc": "defensive-contribution",
    "minutes": "minutes",
    "mins": "minutes",
}

_STAT_FIELDS: dict[str, str] = {
    "goal": "goals_scored",
    "assist": "assists",
    "clean-sheet": "clean_sheets",
    "concede": "goals_conceded",
    "save": "saves",
    "bonus": "bonus",
    "yellow": "yellow_cards",
    "red": "red_cards",
    "own-goal": "own_goals",
    "penalty-save": "penalties_saved",
    "penalty-miss": "penalties_missed",
    "defensive-contribution": "defensive_contribution",
    "minutes": "minutes",
}

# These can change without the player being on the pitch.
_OFF_PITCH = frozenset({"bonus", "defensive-contribution", "minutes"})

_TRUE_TOKENS = frozenset({"1", "on", "true", "yes"})
_FALSE_TOKENS = frozenset({"0", "off", "false", "no"})

HELP_TEXT = """Demo commands:
  demo help
  demo seed
  demo on | demo off
  demo status | demo reset | demo squad
  gw live <0|1>
  gw current <num>
  gw next <num>
  gw deadline in <seconds>
  gw deadline clear
  event <slot> <type> [count]
Event types:
  goal assist clean-sheet concede save bonus yellow red own-goal
  penalty-save penalty-miss defensive-contribution minutes"""


class DemoCommandError(ValueError):
    """A demo command was rejected; the message is the diagnostic."""


def apply_stat_event(
    pick: Pick,
    live: LiveStats,
    event_type: str,
    count: int = 1,
    rules: ScoringRules = DEFAULT_RULES,
) -> tuple[LiveStats, int]:
    """Apply ``count`` occurrences of ``event_type`` to ``live``.

    Returns the new stats and the canonical point change. Any event that needs
    the player on the pitch gives at least one minute, and a clean sheet at
    least the sixty-minute mark. The raw total moves by the point change, and
    a provider breakdown (if any) moves category by category.
    """

    kind = EVENT_TYPES.get(event_type)
    if kind is None:
        raise DemoCommandError(f"Unknown event type '{event_type}'. Try `demo help`")
    if count <= 0:
        raise DemoCommandError("Count must be a positive integer")

    minutes = live.minutes
    if kind not in _OFF_PITCH and minutes < 1:
        minutes = 1
    changes: dict[str, object] = {}
    if kind == "minutes":
        minutes = max(0, minutes + count)
    else:
        field_name = _STAT_FIELDS[kind]
        changes[field_name] = getattr(live, field_name) + count
    if kind == "clean-sheet" and minutes < rules.sixty_minute_mark:
        minutes = rules.sixty_minute_mark
    changes["minutes"] = minutes
    updated = live.model_copy(update=changes)

    before = category_points(pick.position_type, live, rules)
    after = category_points(pick.position_type, updated, rules)
    if before is None or after is None:
        return updated, 0

    delta = sum(after.values()) - sum(before.values())
    final: dict[str, object] = {}
    if live.total_points is not None:
        final["total_points"] = live_points(pick, live, rules) + delta
    if live.breakdown is not None:
        previous = live.breakdown
        final["breakdown"] = {
            category: previous.get(category, 0) + after[category] - before[category]
            for category in after
        }
    return updated.model_copy(update=final), delta


@dataclass(slots=True)
class _DemoState:
    seed: PollSnapshot | None = None
    players: list[PlayerSnapshot] | None = None
    current_gw: int = 0
    is_live: bool = False
    next_gw: int = 0
    deadline: datetime | None = None
    enabled: bool = False


class DemoHarness:
    """Owns the demo seed and working copy; see :data:`HELP_TEXT`."""

    def __init__(
        self,
        publisher: Publisher,
        seed_source: Callable[[], PollSnapshot],
        *,
        lock_timeout: float = 0.1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.publisher = publisher
        self._seed_source = seed_source
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._clock = clock
        self._state = _DemoState()

    @property
    def rules(self) -> ScoringRules:
        return self.publisher.rules

    @property
    def enabled(self) -> bool:
        return self._state.enabled

    @property
    def seeded(self) -> bool:
        return self._state.seed is not None

    # -- command grammar ---------------------------------------------------

    def handle_line(self, line: str) -> str:
        """Run one command line and return its output text.

        Raises :class:`DemoCommandError` for unknown or invalid commands.
        """

        tokens = line.lower().split()
        if not tokens:
            return ""
        head, args = tokens[0], tokens[1:]
        if head in {"help", "?"}:
            return HELP_TEXT
        if head == "demo":
            return self._demo_command(args)
        if head == "gw":
            return self._gw_command(args)
        if head == "event":
            return self._event_command(args)
        raise DemoCommandError(f"Unknown command '{head}'. Try `demo help`")

    def _demo_command(self, args: list[str]) -> str:
        action = args[0] if args else "help"
        handlers: dict[str, Callable[[], str]] = {
            "help": lambda: HELP_TEXT,
            "seed": self.seed,
            "on": self.enable,
            "off": self.disable,
            "status": self.status,
            "reset": self.reset,
            "squad": self.squad,
        }
        handler = handlers.get(action)
        if handler is None:
            raise DemoCommandError("Unknown demo command. Try `demo help`")
        return handler()

    def _gw_command(self, args: list[str]) -> str:
        if len(args) < 2:
            raise DemoCommandError("Usage: gw live|current|next|deadline ...")
        field_name, value = args[0], args[1]
        if field_name == "live":
            if value in _TRUE_TOKENS:
                return self.set_gameweek(is_live=True)
            if value in _FALSE_TOKENS:
                return self.set_gameweek(is_live=False)
            raise DemoCommandError("gw live expects 0|1")
        if field_name == "current":
            return self.set_gameweek(current_gw=_positive_int(value, "gw current"))
        if field_name == "next":
            return self.set_gameweek(next_gw=_positive_int(value, "gw next"))
        if field_name == "deadline":
            if value == "clear":
                return self.set_gameweek(clear_deadline=True)
            if value == "in" and len(args) >= 3:
                seconds = _int_token(args[2], "gw deadline in")
                if seconds < 0:
                    raise DemoCommandError("gw deadline in expects seconds >= 0")
                return self.set_gameweek(deadline_in=seconds)
            raise DemoCommandError(
                "Usage: gw deadline in <seconds> | gw deadline clear"
            )
        raise DemoCommandError("Unknown gw command")

    def _event_command(self, args: list[str]) -> str:
        if len(args) < 2:
            raise DemoCommandError("Usage: event <slot> <type> [count]")
        slot = _positive_int(args[0], "Slot")
        count = _positive_int(args[2], "Count") if len(args) >= 3 else 1
        return self.apply_event(slot, args[1], count)

    # -- operations --------------------------------------------------------

    def seed(self) -> str:
        try:
            snapshot = self._seed_source()
        except FetchError as exc:
            raise DemoCommandError(f"Seed failed: {exc}") from exc

        with self._locked():
            state = self._state
            state.seed = snapshot
            self._restore_seed(state)
            enabled = state.enabled
            published = self._build_snapshot(state)

        self._publish(published, STATUS_ACTIVE if enabled else STATUS_SEEDED, False)
        logger.info("Demo seeded from GW%d", snapshot.team.current_gw)
        return self.status() + "\n" + self.squad()

    def enable(self) -> str:
        with self._locked():
            state = self._require_seeded()
            state.enabled = True
            published = self._build_snapshot(state)
        self._publish(published, STATUS_ACTIVE, False)
        return self.status()

    def disable(self) -> str:
        with self._locked():
            # The next live poll must not diff against demo values.
            if not self.publisher.engine.state.clear():
                raise DemoCommandError("Demo state busy, try again")
            self._state.enabled = False
        self.publisher.set_status(STATUS_OFF, "warning")
        return STATUS_OFF

    def reset(self) -> str:
        with self._locked():
            state = self._require_seeded()
            self._restore_seed(state)
            enabled = state.enabled
            published = self._build_snapshot(state)
        self._publish(published, STATUS_ACTIVE if enabled else STATUS_RESET, False)
        return self.status()

    def set_gameweek(
        self,
        *,
        is_live: bool | None = None,
        current_gw: int | None = None,
        next_gw: int | None = None,
        deadline_in: int | None = None,
        clear_deadline: bool = False,
    ) -> str:
        with self._locked():
            state = self._require_active()
            if is_live is not None:
                state.is_live = is_live
            if current_gw is not None:
                state.current_gw = current_gw
            if next_gw is not None:
                state.next_gw = next_gw
            if clear_deadline:
                state.deadline = None
            if deadline_in is not None:
                state.deadline = datetime.fromtimestamp(
                    self._clock() + deadline_in, tz=UTC
                )
            published = self._build_snapshot(state)
        self._publish(published, STATUS_GW, True)
        return self.status()

    def apply_event(self, slot: int, event_type: str, count: int = 1) -> str:
        with self._locked():
            state = self._require_active()
            players = state.players or []
            index = next(
                (i for i, p in enumerate(players) if p.pick.squad_slot == slot), None
            )
            if index is None:
                raise DemoCommandError(
                    f"Unknown slot {slot}. Use `demo squad` to list slots"
                )
            player = players[index]
            live, delta = apply_stat_event(
                player.pick, player.live, event_type, count, self.rules
            )
            players[index] = replace(player, live=live)
            published = self._build_snapshot(state)

        events = self._publish(published, STATUS_EVENT, True)
        name = player.pick.display_name
        if delta == 0 and not events:
            logger.info("[DEMO EVENT] %s | no immediate point change", name)
        return (
            f"[DEMO EVENT] slot:{slot} {EVENT_TYPES[event_type]} x{count} => "
            f"{delta:+d} pts | GW{published.team.current_gw} total: "
            f"{published.team.gw_points}"
        )

    def status(self) -> str:
        with self._locked():
            state = self._state
            enabled, seeded = state.enabled, state.seed is not None
            snapshot = self._build_snapshot(state) if seeded else None

        lines = [
            "=== Demo Mode ===",
            f"enabled: {_yes_no(enabled)} | seeded: {_yes_no(seeded)}",
        ]
        if snapshot is None:
            lines.append("Run: demo seed")
            return "\n".join(lines)

        team, gameweek = snapshot.team, snapshot.gameweek
        lines.append(
            f"GW{team.current_gw} points: {team.gw_points} | "
            f"total: {format_number_with_commas(team.overall_points)}"
        )
        lines.append(format_gw_state(gameweek))
        if gameweek.deadline is not None:
            lines.append(f"deadline: {gameweek.deadline.isoformat()}")
        else:
            lines.append("deadline: not set")
        if team.overall_rank > 0:
            diff = rank_delta(snapshot.previous_rank, team.overall_rank)
            lines.append(
                f"rank: {format_number_with_commas(team.overall_rank)} (diff {diff:+d})"
            )
        else:
            lines.append("rank: unavailable")
        return "\n".join(lines)

    def squad(self) -> str:
        with self._locked():
            players = list(self._state.players or [])
            seeded = self._state.seed is not None
        if not seeded:
            return "Not seeded. Run: demo seed"

        lines = ["=== Demo Squad Slots ==="]
        for player in sorted(players, key=lambda item: item.pick.squad_slot):
            pick = player.pick
            flags = " C" if pick.is_captain else " VC" if pick.is_vice_captain else ""
            lines.append(
                f"slot:{pick.squad_slot:2d} | element:{pick.element_id:4d} | "
                f"{pick.player_name or 'unknown':<15} | {pick.team_slug or '-'} | "
                f"pts:{live_points(pick, player.live, self.rules)} | "
                f"mult:{pick.multiplier}{flags}"
            )
        return "\n".join(lines)

    # -- internals ---------------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with bounded_lock(self._lock, self._lock_timeout) as acquired:
            if not acquired:
                raise DemoCommandError("Demo state busy, try again")
            yield

    def _require_seeded(self) -> _DemoState:
        if self._state.seed is None:
            raise DemoCommandError("Run `demo seed` first")
        return self._state

    def _require_active(self) -> _DemoState:
        state = self._state
        if state.seed is None or not state.enabled:
            raise DemoCommandError(
                "Requires active demo mode (run `demo seed`, `demo on`)"
            )
        return state

    @staticmethod
    def _restore_seed(state: _DemoState) -> None:
        seed = state.seed
        if seed is None:
            return
        state.players = list(seed.team.players)
        state.current_gw = seed.team.current_gw
        state.is_live = seed.gameweek.is_live
        state.next_gw = seed.gameweek.next_gw
        state.deadline = seed.gameweek.deadline

    def _build_snapshot(self, state: _DemoState) -> PollSnapshot:
        seed = state.seed
        if seed is None:
            raise DemoCommandError("Run `demo seed` first")
        players = [
            replace(player, gameweek=state.current_gw)
            for player in state.players or []
        ]
        gw_points = gameweek_total(players, self.rules)
        team = replace(
            seed.team,
            current_gw=state.current_gw,
            players=players,
            gw_points=gw_points,
            overall_points=seed.team.overall_points + gw_points - seed.team.gw_points,
        )
        gameweek = replace(
            seed.gameweek,
            is_live=state.is_live,
            current_gw=state.current_gw,
            next_gw=state.next_gw,
            deadline=state.deadline,
        )
        return PollSnapshot(
            team=team, gameweek=gameweek, previous_rank=seed.previous_rank
        )

    def _publish(
        self, snapshot: PollSnapshot, status: str, attribute: bool
    ) -> list[AttributedEvent]:
        return self.publisher.publish(snapshot, status=status, attribute=attribute)


def _int_token(token: str, what: str) -> int:
    try:
        return int(token)
    except ValueError as exc:
        raise DemoCommandError(f"{what} expects an integer, got '{token}'") from exc


def _positive_int(token: str, what: str) -> int:
    value = _int_token(token, what)
    if value <= 0:
        raise DemoCommandError(f"{what} must be a positive integer")
    return value


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


__all__ = [
    "EVENT_TYPES",
    "HELP_TEXT",
    "DemoCommandError",
    "DemoHarness",
    "apply_stat_event",
]
