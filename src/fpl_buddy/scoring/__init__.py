"""Scoring engine: rule table, canonical points, and bonus resolution."""

from .breakdown import build_squad_rows, format_points_breakdown
from .engine import (
    BonusResolution,
    BonusState,
    CanonicalScore,
    canonical_points,
    category_points,
    effective_points,
    gameweek_total,
    live_points,
    resolve_bonus,
)
from .rules import DEFAULT_RULES, PositionRules, ScoringRules, load_rules

__all__ = [
    "DEFAULT_RULES",
    "BonusResolution",
    "BonusState",
    "CanonicalScore",
    "PositionRules",
    "ScoringRules",
    "build_squad_rows",
    "canonical_points",
    "category_points",
    "effective_points",
    "format_points_breakdown",
    "gameweek_total",
    "live_points",
    "load_rules",
    "resolve_bonus",
]
