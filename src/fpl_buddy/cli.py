"""Command-line interface for the live FPL scoreboard."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, TextIO

from pydantic import ValidationError

from .attribution import AttributionEngine
from .config import Settings, load_settings
from .demo import DemoCommandError, DemoHarness
from .fpl.endpoints import FplApi
from .fpl.fetch import FetchError, FplHttpClient
from .modes import Gesture, ModeMachine
from .pipeline import Poller, PollScheduler, Publisher, RenderLoop
from .render import ConsoleDisplay, Display
from .scoring.breakdown import format_points_breakdown
from .scoring.engine import effective_points
from .sync import EventFeed, SharedStateStore, SquadBoard
from .types import PollSnapshot

logger = logging.getLogger(__name__)

GESTURE_COMMANDS = {
    "tap": Gesture.TAP_TICKER,
    "press": Gesture.PRESS,
    "release": Gesture.RELEASE,
    "back": Gesture.BACK,
}
QUIT_COMMANDS = frozenset({"quit", "exit", "q"})


@dataclass(slots=True)
class Runtime:
    """Every long-lived component of one scoreboard process."""

    settings: Settings
    store: SharedStateStore
    feed: EventFeed
    squad: SquadBoard
    publisher: Publisher
    poller: Poller
    scheduler: PollScheduler
    machine: ModeMachine
    demo: DemoHarness
    render_loop: RenderLoop


def build_runtime(
    settings: Settings,
    *,
    api: FplApi | None = None,
    display: Display | None = None,
) -> Runtime:
    if api is None:
        if settings.entry_id is None:
            raise ValueError("FPL_ENTRY_ID (or --entry-id) is required")
        client = FplHttpClient(
            settings.api_base,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
        )
        api = FplApi(
            client,
            settings.entry_id,
            budgets=settings.byte_budgets,
            rules=settings.load_rules(),
        )

    store = SharedStateStore(lock_timeout=settings.lock_timeout)
    feed = EventFeed(
        settings.history_capacity,
        settings.popup_capacity,
        lock_timeout=settings.lock_timeout,
    )
    squad = SquadBoard(lock_timeout=settings.lock_timeout)
    engine = AttributionEngine(
        api.rules,
        prefer_server=settings.use_server_breakdown,
        lock_timeout=settings.lock_timeout,
    )
    publisher = Publisher(engine, store, feed, squad, stale_after=settings.stale_after)

    poller = Poller(api, publisher, is_paused=lambda: demo.enabled)
    demo = DemoHarness(publisher, poller.fetch, lock_timeout=settings.lock_timeout)

    machine = ModeMachine(
        pre_deadline_window=settings.pre_deadline_window,
        final_hour_window=settings.final_hour_window,
        popup_duration=settings.popup_duration,
        long_press=settings.long_press,
    )
    render_loop = RenderLoop(
        store,
        feed,
        squad,
        machine,
        display or ConsoleDisplay(),
        interval=settings.render_interval,
        stale_after=settings.stale_after,
    )
    return Runtime(
        settings=settings,
        store=store,
        feed=feed,
        squad=squad,
        publisher=publisher,
        poller=poller,
        scheduler=PollScheduler(poller, settings.poll_interval),
        machine=machine,
        demo=demo,
        render_loop=render_loop,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fpl-buddy",
        description="Live FPL scoreboard with per-event point attribution",
    )
    parser.add_argument(
        "--entry-id", type=int, default=None, help="FPL entry (team) ID"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: project root .env)",
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=None,
        help="JSON scoring-rule table overriding the built-in ruleset",
    )
    parser.add_argument(
        "--no-server-breakdown",
        action="store_true",
        help="Always attribute points heuristically",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "watch",
        help="Poll and render continuously; stdin takes gestures and demo commands",
    )
    snapshot_parser = subparsers.add_parser(
        "snapshot", help="Fetch and score the squad once"
    )
    snapshot_parser.add_argument(
        "--json", action="store_true", help="Print the snapshot as JSON"
    )
    subparsers.add_parser(
        "demo", help="Seed the demo harness and read demo commands from stdin"
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _load(args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {
        "entry_id": args.entry_id,
        "scoring_rules_path": args.rules,
    }
    if args.no_server_breakdown:
        overrides["use_server_breakdown"] = False
    return load_settings(env_file=args.env_file, **overrides)


def _snapshot_payload(snapshot: PollSnapshot, runtime: Runtime) -> dict[str, Any]:
    rules = runtime.publisher.rules
    team = snapshot.team
    players = []
    for player in sorted(team.players, key=lambda item: item.pick.squad_slot):
        pick = player.pick
        players.append(
            {
                "slot": pick.squad_slot,
                "element_id": pick.element_id,
                "name": pick.display_name,
                "position": pick.position_name,
                "team": pick.team_slug,
                "multiplier": pick.multiplier,
                "points": effective_points(pick, player.live, rules),
                "breakdown": format_points_breakdown(pick, player.live, rules),
            }
        )
    gameweek = asdict(snapshot.gameweek)
    if snapshot.gameweek.deadline is not None:
        gameweek["deadline"] = snapshot.gameweek.deadline.isoformat()
    return {
        "gameweek": team.current_gw,
        "gw_points": team.gw_points,
        "overall_rank": team.overall_rank,
        "previous_rank": snapshot.previous_rank,
        "overall_points": team.overall_points,
        "active_chip": team.active_chip,
        "lifecycle": gameweek,
        "players": players,
    }


def _print_snapshot(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return
    print(
        f"GW{payload['gameweek']}: {payload['gw_points']} pts | "
        f"rank {payload['overall_rank']} | total {payload['overall_points']}"
    )
    for row in payload["players"]:
        print(
            f"{row['slot']:2d} {row['name']:<15} {row['position']:<3} "
            f"x{row['multiplier']} {row['points']:>3}  {row['breakdown']}"
        )


def _run_snapshot(args: argparse.Namespace) -> int:
    try:
        runtime = build_runtime(_load(args))
        snapshot = runtime.poller.fetch()
    except (ValidationError, ValueError, OSError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except FetchError as exc:
        print(f"Fetch failed: {exc}", file=sys.stderr)
        return 1
    _print_snapshot(_snapshot_payload(snapshot, runtime), args.json)
    return 0


def handle_console_line(runtime: Runtime, line: str, out: TextIO) -> bool:
    """Dispatch one stdin line. Returns False when the user asked to quit."""

    command = line.strip().lower()
    if not command:
        return True
    if command in QUIT_COMMANDS:
        return False
    gesture = GESTURE_COMMANDS.get(command)
    if gesture is not None:
        runtime.machine.submit(gesture)
        return True
    try:
        output = runtime.demo.handle_line(command)
    except DemoCommandError as exc:
        print(f"[DEMO] {exc}", file=out)
        return True
    if output:
        print(output, file=out)
    return True


def _console_loop(runtime: Runtime, lines: Iterable[str], out: TextIO) -> None:
    for line in lines:
        if not handle_console_line(runtime, line, out):
            break


def _run_interactive(args: argparse.Namespace, *, live: bool) -> int:
    try:
        runtime = build_runtime(_load(args))
    except (ValidationError, ValueError, OSError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    stop = threading.Event()
    renderer = threading.Thread(
        target=runtime.render_loop.run, args=(stop,), name="fpl-render", daemon=True
    )
    renderer.start()
    if live:
        runtime.scheduler.start()
    else:
        handle_console_line(runtime, "demo seed", sys.stderr)
        handle_console_line(runtime, "demo on", sys.stderr)

    try:
        _console_loop(runtime, sys.stdin, sys.stderr)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        stop.set()
        runtime.scheduler.stop(timeout=1.0)
        renderer.join(timeout=1.0)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "snapshot":
        return _run_snapshot(args)
    if args.command == "watch":
        return _run_interactive(args, live=True)
    if args.command == "demo":
        return _run_interactive(args, live=False)
    parser.error(f"Unknown command {args.command}")
    return 1


__all__ = ["Runtime", "build_runtime", "handle_console_line", "main"]


if __name__ == "__main__":  # pragma: no cover - entry point
    raise SystemExit(main())
