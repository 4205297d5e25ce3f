"""Corners and cards expectations for specialty markets."""

from __future__ import annotations

import dataclasses
import math
from typing import Sequence

from .models import AdvancedStats
from .utils import clamp

DEFAULT_CORNERS = 5.5
HOME_CORNER_ADVANTAGE = 0.5
CORNER_LINES = (8.5, 9.5, 10.5, 11.5, 12.5)

DEFAULT_YELLOW_CARDS = 2.0
DEFAULT_RED_CARDS = 0.1
AVERAGE_FOULS = 12.5
AGGRESSIVENESS_BOUNDS = (0.7, 1.3)
STRICT_REFEREE_FACTOR = 1.2


@dataclasses.dataclass(frozen=True, slots=True)
class CornersPrediction:
    home_corners: float
    away_corners: float
    total_corners: float
    line: float
    over_probability: float
    under_probability: float
    confidence: float


@dataclasses.dataclass(frozen=True, slots=True)
class CardsPrediction:
    home_yellow: float
    away_yellow: float
    total_yellow: float
    home_red: float
    away_red: float
    total_bookings: float
    over_2_5: float
    over_3_5: float
    confidence: float


def over_probability(expected: float, line: float) -> float:
    """Chance (percent) that a count with mean ``expected`` exceeds ``line``.

    Uses a logistic curve on the Poisson z-score.
    """

    if expected <= 0:
        return 0.0
    z = clamp((line - expected) / math.sqrt(expected), -700.0, 700.0)
    return 100.0 / (1.0 + math.exp(z))


def closest_corner_line(expected_total: float) -> float:
    return min(CORNER_LINES, key=lambda line: abs(expected_total - line))


def aggressiveness(fouls: float | None) -> float:
    if fouls is None:
        return 1.0
    return clamp(0.8 + ((fouls - AVERAGE_FOULS) / AVERAGE_FOULS) * 0.4, *AGGRESSIVENESS_BOUNDS)


def data_confidence(available: Sequence[bool]) -> float:
    """Share of available inputs as a percentage, +10 with three or more."""

    if not available:
        return 0.0
    count = sum(1 for flag in available if flag)
    bonus = 10.0 if count >= 3 else 0.0
    return min(100.0, count / len(available) * 100.0 + bonus)


def predict_corners(home: AdvancedStats, away: AdvancedStats) -> CornersPrediction:
    home_avg = DEFAULT_CORNERS if home.corners is None else home.corners
    away_avg = DEFAULT_CORNERS if away.corners is None else away.corners
    home_factor = (50.0 if home.possession is None else home.possession) / 50.0
    away_factor = (50.0 if away.possession is None else away.possession) / 50.0

    home_corners = home_avg * home_factor + HOME_CORNER_ADVANTAGE
    away_corners = away_avg * away_factor
    total = home_corners + away_corners
    line = closest_corner_line(total)
    over = over_probability(total, line)
    return CornersPrediction(
        home_corners=round(home_corners, 1),
        away_corners=round(away_corners, 1),
        total_corners=round(total, 1),
        line=line,
        over_probability=round(over, 1),
        under_probability=round(100.0 - over, 1),
        confidence=data_confidence(
            [home.corners is not None, away.corners is not None, home.possession is not None]
        ),
    )


def predict_cards(
    home: AdvancedStats,
    away: AdvancedStats,
    *,
    strict_referee: bool = False,
) -> CardsPrediction:
    referee = STRICT_REFEREE_FACTOR if strict_referee else 1.0
    home_aggr = aggressiveness(home.fouls)
    away_aggr = aggressiveness(away.fouls)

    home_yellow = (DEFAULT_YELLOW_CARDS if home.yellow_cards is None else home.yellow_cards)
    away_yellow = (DEFAULT_YELLOW_CARDS if away.yellow_cards is None else away.yellow_cards)
    home_red = DEFAULT_RED_CARDS if home.red_cards is None else home.red_cards
    away_red = DEFAULT_RED_CARDS if away.red_cards is None else away.red_cards

    home_yellow *= home_aggr * referee
    away_yellow *= away_aggr * referee
    home_red *= home_aggr * referee
    away_red *= away_aggr * referee

    total_yellow = home_yellow + away_yellow
    bookings = total_yellow + 2 * (home_red + away_red)
    return CardsPrediction(
        home_yellow=round(home_yellow, 1),
        away_yellow=round(away_yellow, 1),
        total_yellow=round(total_yellow, 1),
        home_red=round(home_red, 2),
        away_red=round(away_red, 2),
        total_bookings=round(bookings, 1),
        over_2_5=round(over_probability(total_yellow, 2.5), 1),
        over_3_5=round(over_probability(total_yellow, 3.5), 1),
        confidence=data_confidence(
            [home.yellow_cards is not None, away.yellow_cards is not None, home.fouls is not None]
        ),
    )


def expected_total_corners(home: AdvancedStats, away: AdvancedStats) -> float:
    return predict_corners(home, away).total_corners


def expected_total_cards(home: AdvancedStats, away: AdvancedStats) -> float:
    return predict_cards(home, away).total_yellow


__all__ = [
    "CORNER_LINES",
    "CardsPrediction",
    "CornersPrediction",
    "aggressiveness",
    "closest_corner_line",
    "data_confidence",
    "expected_total_cards",
    "expected_total_corners",
    "over_probability",
    "predict_cards",
    "predict_corners",
]
