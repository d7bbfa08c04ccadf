"""Unit tests for FPL endpoint parsing and the API facade."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from fpl_buddy.fpl.endpoints import (
    FplApi,
    parse_entry_summary,
    parse_explain,
    parse_gameweek_state,
    parse_live_elements,
    parse_live_stats,
    parse_picks,
    previous_rank,
    rank_delta,
)
from fpl_buddy.fpl.fetch import DataError, FieldFilter, apply_filter
from fpl_buddy.fpl.utils import map_position, parse_deadline, slugify_team_name
from fpl_buddy.types import Category, Position


class _FakeClient:
    """Serves canned documents keyed by API path."""

    def __init__(self, documents: dict[str, Any]) -> None:
        self.documents = documents
        self.calls: list[tuple[str, int]] = []

    def url(self, path: str) -> str:
        return path

    def fetch_json(
        self, url: str, byte_budget: int, field_filter: FieldFilter | None = None
    ) -> Any:
        self.calls.append((url, byte_budget))
        document = self.documents[url]
        if field_filter is None:
            return document
        return apply_filter(document, field_filter)


EXPLAIN_STATS = [
    {"identifier": "minutes", "points": 2, "value": 90},
    {"identifier": "goals_scored", "points": 5, "value": 1},
    {"identifier": "mystery_rule", "points": 1, "value": 1},
]


def test_parse_explain_accepts_both_shapes() -> None:
    object_shape = [{"fixture": 11, "stats": EXPLAIN_STATS}]
    list_shape = [EXPLAIN_STATS]

    expected = {Category.MINUTES: 2, Category.GOALS: 5, Category.OTHER: 1}
    assert parse_explain(object_shape) == expected
    assert parse_explain(list_shape) == expected


def test_parse_explain_sums_double_gameweeks() -> None:
    raw = [
        {"fixture": 1, "stats": [{"identifier": "minutes", "points": 2, "value": 90}]},
        {"fixture": 2, "stats": [{"identifier": "minutes", "points": 1, "value": 20}]},
    ]
    assert parse_explain(raw) == {Category.MINUTES: 3}


def test_parse_explain_ignores_unusable_payloads() -> None:
    assert parse_explain(None) is None
    assert parse_explain({"stats": []}) is None
    assert parse_explain([{"fixture": 1, "stats": [{"points": "lots"}]}]) is None


def test_parse_live_stats_reads_either_defensive_field() -> None:
    plural = parse_live_stats({"minutes": 90, "defensive_contributions": 11})
    singular = parse_live_stats({"minutes": 90, "defensive_contribution": 13})

    assert plural.defensive_contribution == 11
    assert singular.defensive_contribution == 13
    assert plural.breakdown is None
    assert plural.total_points == 0


def test_parse_live_elements_requires_elements() -> None:
    with pytest.raises(DataError):
        parse_live_elements({"fixtures": []})


def test_parse_entry_summary_requires_current_event() -> None:
    with pytest.raises(DataError):
        parse_entry_summary({"summary_overall_rank": 10})

    summary = parse_entry_summary(
        {
            "current_event": 5,
            "summary_overall_rank": 120000,
            "summary_overall_points": 310,
        }
    )
    assert (summary.current_gw, summary.overall_rank, summary.overall_points) == (
        5,
        120000,
        310,
    )


def test_parse_picks() -> None:
    picks, chip = parse_picks(
        {
            "active_chip": "3xc",
            "picks": [
                {
                    "element": 328,
                    "position": 1,
                    "multiplier": 3,
                    "is_captain": True,
                    "is_vice_captain": False,
                }
            ],
        }
    )
    assert chip == "3xc"
    assert picks[0].element_id == 328
    assert picks[0].multiplier == 3
    assert picks[0].is_captain is True

    with pytest.raises(DataError):
        parse_picks({"picks": []})


def test_previous_rank_prefers_exact_previous_gameweek() -> None:
    history = [
        {"event": 3, "overall_rank": 300000},
        {"event": 4, "overall_rank": 150000},
        {"event": 5, "overall_rank": 120000},
    ]
    assert previous_rank(history, 5) == 150000


def test_previous_rank_falls_back_to_latest_earlier_rank() -> None:
    history = [
        {"event": 2, "overall_rank": 400000},
        {"event": 3, "overall_rank": 300000},
        {"event": 4, "overall_rank": 0},
    ]
    assert previous_rank(history, 5) == 300000
    assert previous_rank([], 5) is None
    assert previous_rank([{"event": 5, "overall_rank": 10}], 5) is None


def test_rank_delta() -> None:
    assert rank_delta(150000, 120000) == 30000
    assert rank_delta(120000, 150000) == -30000
    assert rank_delta(None, 120000) == 0
    assert rank_delta(150000, 0) == 0


def test_parse_gameweek_state() -> None:
    events = [
        {"id": 4, "is_current": False, "is_next": False, "finished": True},
        {"id": 5, "is_current": True, "is_next": False, "finished": False},
        {
            "id": 6,
            "is_current": False,
            "is_next": True,
            "finished": False,
            "deadline_time": "2025-09-20T10:00:00Z",
        },
    ]
    state = parse_gameweek_state(events)

    assert state.is_live is True
    assert state.current_gw == 5
    assert state.next_gw == 6
    assert state.deadline == datetime(2025, 9, 20, 10, 0, tzinfo=UTC)


def test_parse_deadline_falls_back_to_epoch() -> None:
    event = {"deadline_time": "not a date", "deadline_time_epoch": 1758362400}
    assert parse_deadline(event) == datetime.fromtimestamp(1758362400, tz=UTC)
    assert parse_deadline({}) is None


@pytest.mark.parametrize(
    ("name", "slug"),
    [
        ("Arsenal", "arsenal"),
        ("Manchester City", "man_city"),
        ("Nott'm Forest", "nottingham_forest"),
        ("Wolverhampton Wanderers", "wolves"),
        ("Spurs", "spurs"),
    ],
)
def test_slugify_team_name(name: str, slug: str) -> None:
    assert slugify_team_name(name) == slug


def test_map_position() -> None:
    assert map_position(Position.GOALKEEPER) == "GKP"
    assert map_position(9) == "?"


def _documents() -> dict[str, Any]:
    return {
        "entry/42/": {
            "current_event": 5,
            "summary_overall_rank": 120000,
            "summary_overall_points": 310,
            "name": "Team",
        },
        "entry/42/history/": {
            "current": [{"event": 4, "overall_rank": 150000, "points": 60}]
        },
        "entry/42/event/5/picks/": {
            "active_chip": None,
            "picks": [
                {"element": 1, "position": 1, "multiplier": 2, "is_captain": True},
                {"element": 2, "position": 12, "multiplier": 0},
            ],
        },
        "event/5/live/": {
            "elements": [
                {
                    "id": 1,
                    "stats": {"total_points": 6, "minutes": 90, "goals_scored": 1},
                    "explain": [
                        {
                            "fixture": 9,
                            "stats": [
                                {"identifier": "minutes", "points": 2, "value": 90},
                                {"identifier": "goals_scored", "points": 4, "value": 1},
                            ],
                        }
                    ],
                }
            ]
        },
        "bootstrap-static/": {
            "events": [
                {"id": 5, "is_current": True, "is_next": False, "finished": False},
                {"id": 6, "is_next": True, "deadline_time_epoch": 1758362400},
            ],
            "elements": [
                {"id": 1, "web_name": "Haaland", "element_type": 4, "team": 13},
                {"id": 2, "web_name": "Raya", "element_type": 1, "team": 1},
            ],
            "teams": [{"id": 1, "name": "Arsenal"}, {"id": 13, "name": "Man City"}],
        },
    }


def test_team_snapshot_enriches_and_scores() -> None:
    client = _FakeClient(_documents())
    api = FplApi(client, 42)  # type: ignore[arg-type]

    bootstrap = api.bootstrap()
    team = api.team_snapshot(bootstrap)

    assert bootstrap.gameweek.is_live is True
    assert bootstrap.gameweek.next_gw == 6
    assert team.current_gw == 5
    assert team.overall_rank == 120000
    assert team.active_chip == ""
    assert team.has_player_meta is True
    assert team.gw_points == 12

    captain, bench = team.players
    assert captain.pick.player_name == "Haaland"
    assert captain.pick.position_name == "FWD"
    assert captain.pick.team_slug == "man_city"
    assert captain.live.breakdown == {Category.MINUTES: 2, Category.GOALS: 4}
    # Missing from the live payload: scored as a zero.
    assert bench.live.total_points == 0
    assert bench.pick.team_slug == "arsenal"


def test_team_snapshot_without_bootstrap_keeps_bare_picks() -> None:
    api = FplApi(_FakeClient(_documents()), 42)  # type: ignore[arg-type]
    team = api.team_snapshot()

    assert team.has_player_meta is False
    assert team.players[0].pick.player_name == ""
    # Unknown position scores the raw total.
    assert team.gw_points == 12


def test_previous_rank_endpoint_uses_budget() -> None:
    client = _FakeClient(_documents())
    api = FplApi(client, 42)  # type: ignore[arg-type]

    assert api.previous_rank(5) == 150000
    assert client.calls == [("entry/42/history/", api.budgets.history)]


def test_non_object_document_is_a_data_error() -> None:
    documents = _documents()
    documents["entry/42/"] = [1, 2, 3]
    api = FplApi(_FakeClient(documents), 42)  # type: ignore[arg-type]

    with pytest.raises(DataError):
        api.entry_summary()


@pytest.mark.parametrize(
    ("path", "key", "rows"),
    [
        ("event/5/live/", "elements", [5]),
        ("entry/42/event/5/picks/", "picks", ["captain"]),
    ],
)
def test_malformed_team_rows_are_data_errors(
    path: str, key: str, rows: list[Any]
) -> None:
    documents = _documents()
    documents[path][key] = rows
    api = FplApi(_FakeClient(documents), 42)  # type: ignore[arg-type]

    with pytest.raises(DataError, match=r"\[0\] is not an object"):
        api.team_snapshot()


def test_malformed_bootstrap_and_history_rows_are_data_errors() -> None:
    documents = _documents()
    documents["bootstrap-static/"]["teams"] = [None]
    documents["entry/42/history/"]["current"] = [4]
    api = FplApi(_FakeClient(documents), 42)  # type: ignore[arg-type]

    with pytest.raises(DataError, match="teams"):
        api.bootstrap()
    with pytest.raises(DataError, match="history"):
        api.previous_rank(5)


def test_live_element_with_malformed_stats_is_a_data_error() -> None:
    with pytest.raises(DataError, match="malformed stats"):
        parse_live_elements({"elements": [{"id": 1, "stats": [90]}]})
