"""Fractional Kelly stake sizing with a hard bankroll ceiling."""

from __future__ import annotations

import logging
import math

from .errors import StakeCapViolation, ValidationError
from .models import RecommendedStake
from .utils import PERCENT_DECIMALS, clamp, round_percent, validate_decimal_odds

logger = logging.getLogger(__name__)

DEFAULT_STAKE_CAP = 5.0
DEFAULT_KELLY_MULTIPLIER = 0.25

_ROUNDING_TOLERANCE = 0.5 * 10**-PERCENT_DECIMALS / 100.0 + 1e-9

_KELLY_NAMES = {
    1.0: "Full Kelly",
    0.5: "Half Kelly",
    0.25: "Quarter Kelly",
    0.125: "Eighth Kelly",
}


class KellyCriterion:
    """Full Kelly fraction for decimal odds."""

    @staticmethod
    def fraction(win_probability: float, odds: float) -> float:
        net = odds - 1.0
        numerator = odds * win_probability - 1.0
        if numerator <= 0:
            return 0.0
        return numerator / net


def kelly_descriptor(multiplier: float) -> str:
    for value, name in _KELLY_NAMES.items():
        if math.isclose(multiplier, value):
            return name
    return f"{multiplier:.2f}x Kelly"


class StakeSizer:
    """Turn edge, odds and confidence into a capped bankroll percentage.

    ``percentage = f* x kelly_multiplier x confidence / 100 x 100`` where
    ``f*`` is the full Kelly fraction floored at zero; the result is clamped
    to ``[0, stake_cap]`` and the cap re-checked before it is returned.
    """

    def __init__(
        self,
        stake_cap: float = DEFAULT_STAKE_CAP,
        kelly_multiplier: float = DEFAULT_KELLY_MULTIPLIER,
    ) -> None:
        if stake_cap <= 0:
            raise ValidationError("stake_cap must be greater than zero")
        if not 0 < kelly_multiplier <= 1:
            raise ValidationError("kelly_multiplier must be within (0, 1]")
        self.stake_cap = float(stake_cap)
        self.kelly_multiplier = float(kelly_multiplier)

    def recommend_stake(
        self,
        edge: float,
        odds: float,
        confidence_score: float,
    ) -> RecommendedStake:
        price = validate_decimal_odds(odds)
        if math.isnan(edge) or math.isnan(confidence_score):
            raise ValidationError("edge and confidence_score must be numbers")
        if not 0.0 <= confidence_score <= 100.0:
            raise ValidationError(
                f"confidence_score must be within [0, 100], got {confidence_score}"
            )
        # Edges are built from implied probabilities rounded to PERCENT_DECIMALS.
        probability = (edge + 100.0 / price) / 100.0
        if probability < -_ROUNDING_TOLERANCE or probability > 1.0 + _ROUNDING_TOLERANCE:
            raise ValidationError(
                f"edge {edge} at odds {price} implies probability {probability:.4f} outside [0, 1]"
            )
        probability = clamp(probability, 0.0, 1.0)

        full_kelly = KellyCriterion.fraction(probability, price)
        raw = full_kelly * self.kelly_multiplier * (confidence_score / 100.0) * 100.0
        percentage = round_percent(clamp(raw, 0.0, self.stake_cap))
        if raw > self.stake_cap:
            logger.debug("Stake %.2f%% clamped to cap %.2f%%", raw, self.stake_cap)
        if percentage > self.stake_cap:
            raise StakeCapViolation(
                f"stake {percentage}% exceeds cap {self.stake_cap}%"
            )
        return RecommendedStake(
            kelly_fraction=kelly_descriptor(self.kelly_multiplier),
            unit_description=f"{percentage:.2f} units",
            percentage_of_bankroll=percentage,
        )


__all__ = [
    "DEFAULT_KELLY_MULTIPLIER",
    "DEFAULT_STAKE_CAP",
    "KellyCriterion",
    "StakeSizer",
    "kelly_descriptor",
]
