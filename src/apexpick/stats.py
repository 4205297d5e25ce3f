"""Advanced metric derivation (xG, xGA, xA, xPTS).

The estimation formulas are fixed heuristics and their constants are part
of the contract: reproducible expectations depend on them.  A value supplied
by a source always wins over an estimate, and only ``None`` counts as
missing (a reported zero is real data).
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import AdvancedStats, EnrichedProfile, StatsPayload
from .utils import XG_DECIMALS, XPTS_DECIMALS, clamp

logger = logging.getLogger(__name__)

DEFAULT_SHOTS = 12.0
DEFAULT_SHOTS_ON_TARGET = 4.0
DEFAULT_GOALS_FOR = 1.2
DEFAULT_GOALS_AGAINST = 1.0
DEFAULT_POSSESSION = 50.0
DEFAULT_GAMES_PLAYED = 10

SHOT_CONVERSION = 0.33
SHOT_QUALITY_WEIGHT = 0.2
PERFORMANCE_BOUNDS = (0.7, 1.3)
MIN_XG_RAW = 0.1
MIN_XGA = 0.3
MIN_XA = 0.1
ASSIST_RATIO = 0.8

FORM_POINTS = {"W": 1.0, "D": 0.5, "L": 0.0}
FORM_WINDOW = 5

XPTS_BUCKETS = ((1.5, 2.7), (0.8, 2.3), (0.3, 1.8), (-0.3, 1.3), (-0.8, 0.9))
XPTS_FLOOR = 0.5

HOME_ADVANTAGE_XG = 0.3
MATCH_DEFAULT_XG = 1.2
MATCH_DEFAULT_XGA = 1.0


def _or(value: float | None, default: float) -> float:
    return default if value is None else float(value)


def form_adjustment(form: str | None) -> float:
    """Scale the last five results (``W``/``D``/``L``) into ``[0.8, 1.2]``."""

    if not form:
        return 1.0
    score = sum(FORM_POINTS.get(result, 0.0) for result in form.upper()[:FORM_WINDOW])
    return 0.8 + (score / FORM_WINDOW) * 0.4


def estimate_xg(
    shots: float | None = None,
    shots_on_target: float | None = None,
    goals_for: float | None = None,
) -> float:
    shots = _or(shots, DEFAULT_SHOTS)
    on_target = _or(shots_on_target, DEFAULT_SHOTS_ON_TARGET)
    goals = _or(goals_for, DEFAULT_GOALS_FOR)
    shot_quality = on_target / max(shots, 1.0)
    raw = on_target * SHOT_CONVERSION * (1 + shot_quality * SHOT_QUALITY_WEIGHT)
    adjustment = clamp(goals / max(raw, MIN_XG_RAW), *PERFORMANCE_BOUNDS)
    return round(raw * adjustment, XG_DECIMALS)


def estimate_xga(goals_against: float | None = None, form: str | None = None) -> float:
    conceded = _or(goals_against, DEFAULT_GOALS_AGAINST)
    return round(max(MIN_XGA, conceded * (2 - form_adjustment(form))), XG_DECIMALS)


def estimate_xa(xg: float, possession: float | None = None) -> float:
    share = _or(possession, DEFAULT_POSSESSION)
    return round(max(MIN_XA, xg * ASSIST_RATIO * share / 50.0), XG_DECIMALS)


def expected_points_per_game(xg_difference: float) -> float:
    for threshold, points in XPTS_BUCKETS:
        if xg_difference > threshold:
            return points
    return XPTS_FLOOR


def estimate_xpts(xg: float, xga: float, games_played: int | None = None) -> float:
    games = DEFAULT_GAMES_PLAYED if games_played is None else games_played
    return round(expected_points_per_game(xg - xga) * games, XPTS_DECIMALS)


@dataclasses.dataclass(frozen=True, slots=True)
class MatchExpectation:
    home_expected: float
    away_expected: float

    @property
    def differential(self) -> float:
        return round(self.home_expected - self.away_expected, XG_DECIMALS)


def match_expectation(home: AdvancedStats, away: AdvancedStats) -> MatchExpectation:
    """Expected goals for each side, with a fixed home advantage."""

    home_expected = (_or(home.xg, MATCH_DEFAULT_XG) + _or(away.xga, MATCH_DEFAULT_XGA)) / 2
    away_expected = (_or(away.xg, MATCH_DEFAULT_XG) + _or(home.xga, MATCH_DEFAULT_XGA)) / 2
    return MatchExpectation(home_expected + HOME_ADVANTAGE_XG, away_expected)


def match_xg_differential(home: AdvancedStats, away: AdvancedStats) -> float:
    return match_expectation(home, away).differential


def _coerce_team_data(team_data: Any) -> StatsPayload:
    if isinstance(team_data, EnrichedProfile):
        return team_data.team_data()
    if isinstance(team_data, StatsPayload):
        return team_data
    if team_data is None:
        return StatsPayload()
    if isinstance(team_data, Mapping):
        try:
            return StatsPayload.model_validate(dict(team_data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid team data: {exc.error_count()} error(s)") from exc
    raise ValidationError(f"Unsupported team data type: {type(team_data).__name__}")


class StatsDeriver:
    """Fill in advanced metrics that no source supplied."""

    def derive(self, team_data: Any, games_played: int | None = None) -> AdvancedStats:
        data = _coerce_team_data(team_data)
        games = games_played if games_played is not None else data.games_played

        xg = data.xg if data.xg is not None else estimate_xg(
            data.shots, data.shots_on_target, data.goals_for
        )
        xga = data.xga if data.xga is not None else estimate_xga(data.goals_against, data.form)
        xa = data.xa if data.xa is not None else estimate_xa(xg, data.possession)
        xpts = data.xpts if data.xpts is not None else estimate_xpts(xg, xga, games)

        return AdvancedStats(
            xg=xg,
            xga=xga,
            xa=xa,
            xpts=xpts,
            possession=data.possession,
            shots=data.shots,
            shots_on_target=data.shots_on_target,
            corners=data.corners,
            fouls=data.fouls,
            yellow_cards=data.yellow_cards,
            red_cards=data.red_cards,
        )


def derive_stats(team_data: Any, games_played: int | None = None) -> AdvancedStats:
    """Module-level shortcut for :meth:`StatsDeriver.derive`."""

    return StatsDeriver().derive(team_data, games_played)


__all__ = [
    "MatchExpectation",
    "StatsDeriver",
    "derive_stats",
    "estimate_xa",
    "estimate_xg",
    "estimate_xga",
    "estimate_xpts",
    "form_adjustment",
    "match_expectation",
    "match_xg_differential",
]
