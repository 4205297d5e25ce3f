"""Probability calibration, market normalisation and edge scoring."""

from __future__ import annotations

import dataclasses
import logging
import math
import statistics
from typing import Callable, Dict, Mapping, Sequence, Tuple

from .errors import ValidationError
from .models import Probability, Stability
from .utils import PERCENT_DECIMALS, PROBABILITY_DECIMALS, clamp, implied_probability

logger = logging.getLogger(__name__)

MIN_PROBABILITY = 5.0
MAX_PROBABILITY = 95.0

BASE_HALF_WIDTH = 5.0
AGREEMENT_PENALTY = 5.0
FULL_COVERAGE_SIGNALS = 3

THREE_WAY_ADJUSTMENT_SCALE = 15.0
TWO_WAY_ADJUSTMENT_SCALE = 10.0
DRAW_ADJUSTMENT_SHARE = 0.3
AWAY_ADJUSTMENT_SHARE = 0.7

HIGH_STABILITY_WIDTH = 0.25
LOW_STABILITY_WIDTH = 0.5

STABILITY_WEIGHTS: Mapping[Stability, int] = {
    Stability.HIGH: 90,
    Stability.MEDIUM: 60,
    Stability.LOW: 30,
}


# ---------------------------------------------------------------------------
# Market normalisation
# ---------------------------------------------------------------------------


def _bounded(value: float) -> float:
    return clamp(value, MIN_PROBABILITY, MAX_PROBABILITY)


def _round_probability(value: float) -> float:
    return round(value, PROBABILITY_DECIMALS)


def normalize_two_way(first: float, second: float) -> Tuple[float, float]:
    """Scale two probabilities into ``[5, 95]`` summing to 100 (1dp)."""

    first, second = _bounded(first), _bounded(second)
    total = first + second
    first = _round_probability(first / total * 100.0)
    second = _round_probability(second / total * 100.0)
    diff = 100.0 - (first + second)
    if abs(diff) > 0.001:
        if first >= second:
            first = _round_probability(first + diff)
        else:
            second = _round_probability(second + diff)
    return first, second


def normalize_three_way(home: float, draw: float, away: float) -> Tuple[float, float, float]:
    """Scale home/draw/away into ``[5, 95]`` summing to 100 (1dp).

    Proportional scaling first; if that pushes a value out of bounds the
    values are clamped and the shortfall is shared among those with room.
    Any residue from rounding lands on the largest adjustable value.
    """

    values = [_bounded(home), _bounded(draw), _bounded(away)]
    total = sum(values)
    if abs(total - 100.0) > 0.01:
        values = [value * 100.0 / total for value in values]
        if any(value > MAX_PROBABILITY or value < MIN_PROBABILITY for value in values):
            values = [_bounded(value) for value in values]
            shortfall = 100.0 - sum(values)
            movable = [
                index
                for index, value in enumerate(values)
                if (value < MAX_PROBABILITY if shortfall > 0 else value > MIN_PROBABILITY)
            ]
            if movable:
                share = shortfall / len(movable)
                for index in movable:
                    values[index] += share

    values = [_round_probability(value) for value in values]
    diff = 100.0 - sum(values)
    if abs(diff) > 0.001:
        candidates = [
            index
            for index, value in enumerate(values)
            if (value < MAX_PROBABILITY if diff > 0 else value > MIN_PROBABILITY)
        ]
        if candidates:
            target = max(candidates, key=lambda index: values[index])
            values[target] = _round_probability(_bounded(values[target] + diff))
    home, draw, away = (_bounded(value) for value in values)
    return home, draw, away


def _check_adjustment(adjustment: float) -> float:
    return clamp(adjustment, -0.5, 0.5)


def fair_two_way_from_odds(
    first_odds: float,
    second_odds: float,
    adjustment: float = 0.0,
) -> Tuple[float, float]:
    """Remove the bookmaker margin from a two-outcome market.

    ``adjustment`` in ``[-0.5, 0.5]`` shifts up to five points towards the
    first outcome (positive) or the second (negative).
    """

    first_implied = 100.0 / first_odds
    second_implied = 100.0 / second_odds
    total = first_implied + second_implied
    shift = _check_adjustment(adjustment) * TWO_WAY_ADJUSTMENT_SCALE
    first = first_implied / total * 100.0 + shift
    second = second_implied / total * 100.0 - shift
    return normalize_two_way(first, second)


def fair_three_way_from_odds(
    home_odds: float,
    draw_odds: float,
    away_odds: float,
    adjustment: float = 0.0,
) -> Tuple[float, float, float]:
    """Remove the margin from a home/draw/away market.

    A positive ``adjustment`` favours the home side; the draw absorbs 30%
    of the shift and the away side 70%.
    """

    implied = [100.0 / home_odds, 100.0 / draw_odds, 100.0 / away_odds]
    total = sum(implied)
    home, draw, away = (value / total * 100.0 for value in implied)
    shift = _check_adjustment(adjustment) * THREE_WAY_ADJUSTMENT_SCALE
    home += shift
    draw -= shift * DRAW_ADJUSTMENT_SHARE
    away -= shift * AWAY_ADJUSTMENT_SHARE
    return normalize_three_way(home, draw, away)


# ---------------------------------------------------------------------------
# Outcome models
# ---------------------------------------------------------------------------


def poisson_pmf(k: int, lam: float) -> float:
    if lam <= 0:
        return 1.0 if k == 0 else 0.0
    return math.exp(-lam) * lam**k / math.factorial(k)


@dataclasses.dataclass(frozen=True, slots=True)
class ScoreDistribution:
    """Joint distribution of final scores from independent Poisson goals."""

    grid: Mapping[Tuple[int, int], float]

    @classmethod
    def from_expectation(
        cls,
        home_lambda: float,
        away_lambda: float,
        max_goals: int = 10,
    ) -> "ScoreDistribution":
        home_pmf = [poisson_pmf(k, home_lambda) for k in range(max_goals + 1)]
        away_pmf = [poisson_pmf(k, away_lambda) for k in range(max_goals + 1)]
        grid: Dict[Tuple[int, int], float] = {}
        for home, p_home in enumerate(home_pmf):
            for away, p_away in enumerate(away_pmf):
                grid[(home, away)] = p_home * p_away
        return cls(grid)

    def probability(self, predicate: Callable[[int, int], bool]) -> float:
        """Percent of the (renormalised) mass where ``predicate`` holds."""

        total = sum(self.grid.values())
        if total <= 0:
            return 0.0
        hit = sum(p for (home, away), p in self.grid.items() if predicate(home, away))
        return hit / total * 100.0

    def match_winner(self, outcome: str) -> float:
        if outcome == "home":
            return self.probability(lambda h, a: h > a)
        if outcome == "away":
            return self.probability(lambda h, a: a > h)
        return self.probability(lambda h, a: h == a)

    def total(self, outcome: str, line: float) -> float:
        if outcome == "over":
            return self.probability(lambda h, a: h + a > line)
        return self.probability(lambda h, a: h + a < line)

    def both_teams_score(self, outcome: str) -> float:
        if outcome == "yes":
            return self.probability(lambda h, a: h > 0 and a > 0)
        return self.probability(lambda h, a: h == 0 or a == 0)

    def handicap(self, outcome: str, line: float) -> float:
        if outcome == "home":
            return self.probability(lambda h, a: h + line > a)
        return self.probability(lambda h, a: a + line > h)


SPORT_MARGIN_SCALES: Mapping[str, float] = {
    "basketball": 1.2,
    "american_football": 1.0,
    "baseball": 0.9,
    "tennis": 1.1,
}


def logistic_win_probability(margin: float, scale: float = 1.0) -> float:
    """Percent chance the side with expected ``margin`` wins."""

    exponent = clamp(-margin * scale, -700.0, 700.0)
    return 100.0 / (1.0 + math.exp(exponent))


# ---------------------------------------------------------------------------
# Calibration and edge
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class Calibration:
    probability: Probability
    confidence: float
    dispersion: float
    signal_count: int


class ProbabilityModel:
    """Combine independent probability signals into one calibrated estimate.

    The ensemble average is the mean signal bounded to ``[5, 95]``.  The
    calibrated range widens with signal disagreement (population standard
    deviation) and with missing data quality.  Confidence rewards agreement
    and coverage (three or more signals) equally with data quality.
    """

    def __init__(
        self,
        *,
        min_probability: float = MIN_PROBABILITY,
        max_probability: float = MAX_PROBABILITY,
        base_half_width: float = BASE_HALF_WIDTH,
    ) -> None:
        if not 0 <= min_probability < max_probability <= 100:
            raise ValidationError("probability bounds must satisfy 0 <= min < max <= 100")
        self.min_probability = min_probability
        self.max_probability = max_probability
        self.base_half_width = base_half_width

    def calibrate(self, signals: Sequence[float], data_quality: float) -> Calibration:
        values = [float(signal) for signal in signals]
        if not values:
            raise ValidationError("at least one probability signal is required")
        if any(math.isnan(value) or not 0.0 <= value <= 100.0 for value in values):
            raise ValidationError(f"probability signals must lie within [0, 100]: {values}")
        quality = clamp(float(data_quality), 0.0, 100.0)

        average = clamp(statistics.fmean(values), self.min_probability, self.max_probability)
        average = round(average, PERCENT_DECIMALS)
        dispersion = statistics.pstdev(values) if len(values) > 1 else 0.0
        half_width = self.base_half_width + dispersion + (100.0 - quality) / 20.0
        lower = round(clamp(average - half_width, 0.0, average), PERCENT_DECIMALS)
        upper = round(clamp(average + half_width, average, 100.0), PERCENT_DECIMALS)

        agreement = max(0.0, 100.0 - AGREEMENT_PENALTY * dispersion)
        coverage = min(1.0, len(values) / FULL_COVERAGE_SIGNALS)
        confidence = round(clamp(0.5 * agreement * coverage + 0.5 * quality, 1.0, 100.0), 1)

        return Calibration(
            probability=Probability(ensemble_average=average, lower=lower, upper=upper),
            confidence=confidence,
            dispersion=dispersion,
            signal_count=len(values),
        )


class EdgeCalculator:
    """Compare calibrated probabilities with market prices."""

    @staticmethod
    def implied_probability(odds: float) -> float:
        return implied_probability(odds)

    @staticmethod
    def edge(calculated_probability: float, implied: float) -> float:
        return calculated_probability - implied

    @staticmethod
    def stability(probability: Probability, confidence: float, data_quality: float) -> Stability:
        """Bucket how robust a prediction is to the width of its range."""

        relative_width = probability.width / max(probability.ensemble_average, 1.0)
        if relative_width > LOW_STABILITY_WIDTH or confidence < 40 or data_quality < 30:
            return Stability.LOW
        if relative_width <= HIGH_STABILITY_WIDTH and confidence >= 70 and data_quality >= 50:
            return Stability.HIGH
        return Stability.MEDIUM

    @staticmethod
    def stability_weight(stability: Stability) -> int:
        return STABILITY_WEIGHTS[stability]


__all__ = [
    "Calibration",
    "EdgeCalculator",
    "MAX_PROBABILITY",
    "MIN_PROBABILITY",
    "ProbabilityModel",
    "STABILITY_WEIGHTS",
    "SPORT_MARGIN_SCALES",
    "ScoreDistribution",
    "fair_three_way_from_odds",
    "fair_two_way_from_odds",
    "logistic_win_probability",
    "normalize_three_way",
    "normalize_two_way",
    "poisson_pmf",
]
