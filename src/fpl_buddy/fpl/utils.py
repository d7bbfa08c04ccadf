"""Shared helpers for interpreting FPL API payloads."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from dateutil.parser import parse as parse_datetime  # type: ignore[import-untyped]

POSITION_MAPPING = {1: "GKP", 2: "DEF", 3: "MID", 4: "FWD"}
FPL_TIMEZONE = UTC

# Kit art is stored under these shorter names.
KIT_SLUG_ALIASES = {
    "afc_bournemouth": "bournemouth",
    "brighton_and_hove_albion": "brighton",
    "manchester_city": "man_city",
    "manchester_utd": "man_utd",
    "manchester_united": "man_utd",
    "newcastle_utd": "newcastle",
    "newcastle_united": "newcastle",
    "nott_m_forest": "nottingham_forest",
    "nottm_forest": "nottingham_forest",
    "tottenham_hotspur": "tottenham",
    "west_ham_united": "west_ham",
    "wolverhampton_wanderers": "wolves",
}

_SLUG_WORD = re.compile(r"[a-z0-9]+")


def map_position(element_type: int) -> str:
    return POSITION_MAPPING.get(element_type, "?")


def parse_fpl_datetime(value: str) -> datetime:
    parsed = parse_datetime(value)
    if not isinstance(parsed, datetime):
        raise ValueError(f"Expected datetime, got {type(parsed)}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=FPL_TIMEZONE)
    return parsed.astimezone(FPL_TIMEZONE)


def parse_deadline(event: dict[str, Any]) -> datetime | None:
    """Deadline of a bootstrap event: ISO-8601 first, then the epoch field."""

    raw = event.get("deadline_time")
    if isinstance(raw, str) and raw:
        try:
            return parse_fpl_datetime(raw)
        except (ValueError, OverflowError):
            pass
    epoch = event.get("deadline_time_epoch")
    if isinstance(epoch, int | float) and not isinstance(epoch, bool) and epoch > 0:
        return datetime.fromtimestamp(epoch, tz=FPL_TIMEZONE)
    return None


def slugify_team_name(name: str) -> str:
    """``"Manchester City"`` -> ``"man_city"``."""

    slug = "_".join(_SLUG_WORD.findall(name.lower()))
    return KIT_SLUG_ALIASES.get(slug, slug)


def format_number_with_commas(value: int) -> str:
    return f"{value:,}"


__all__ = [
    "FPL_TIMEZONE",
    "KIT_SLUG_ALIASES",
    "POSITION_MAPPING",
    "format_number_with_commas",
    "map_position",
    "parse_deadline",
    "parse_fpl_datetime",
    "slugify_team_name",
]
