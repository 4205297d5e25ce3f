"""VaR/CVaR figures and qualitative risk flags for a scored market."""

from __future__ import annotations

import logging
from typing import List, Sequence

from .errors import ValidationError
from .models import BettingMarket, EnrichedProfile, Liquidity, RiskAssessment, Stability

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_LEVEL = 0.95
LOW_QUALITY_THRESHOLD = 50.0
MARGINAL_EDGE = 2.0
OUTSIDER_PROBABILITY = 40.0


def binary_var_cvar(
    stake: float,
    probability: float,
    odds: float,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
) -> tuple[float, float]:
    """VaR and CVaR (in stake units) of a single win/lose bet.

    The loss is ``stake`` with probability ``1 - p`` and ``-stake * (odds - 1)``
    otherwise.  CVaR averages the worst ``1 - confidence_level`` of outcomes,
    so it can never fall below VaR.
    """

    tail = 1.0 - confidence_level
    lose = 1.0 - probability
    value_at_risk = stake if lose >= tail else 0.0
    tail_loss = (min(lose, tail) * stake - max(0.0, tail - lose) * stake * (odds - 1.0)) / tail
    conditional = max(value_at_risk, tail_loss, 0.0)
    return round(value_at_risk, 2), round(conditional, 2)


class RiskAssessor:
    def __init__(
        self,
        confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
        *,
        low_quality_threshold: float = LOW_QUALITY_THRESHOLD,
        marginal_edge: float = MARGINAL_EDGE,
        outsider_probability: float = OUTSIDER_PROBABILITY,
    ) -> None:
        if not 0.0 < confidence_level < 1.0:
            raise ValidationError("confidence_level must be within (0, 1)")
        self.confidence_level = confidence_level
        self.low_quality_threshold = low_quality_threshold
        self.marginal_edge = marginal_edge
        self.outsider_probability = outsider_probability

    def assess_risk(
        self,
        market: BettingMarket,
        profiles: EnrichedProfile | Sequence[EnrichedProfile],
    ) -> RiskAssessment:
        team_profiles = [profiles] if isinstance(profiles, EnrichedProfile) else list(profiles)
        stake = market.recommended_stake.percentage_of_bankroll
        probability = market.calculated_probability.ensemble_average / 100.0
        var, cvar = binary_var_cvar(stake, probability, market.odds, self.confidence_level)
        expected_value = round(stake * (probability * (market.odds - 1.0) - (1.0 - probability)), 2)
        return RiskAssessment(
            var=var,
            cvar=cvar,
            expected_value=expected_value,
            key_risks=self._key_risks(market, team_profiles),
            potential_failures=self._potential_failures(team_profiles),
        )

    def _key_risks(self, market: BettingMarket, profiles: Sequence[EnrichedProfile]) -> List[str]:
        risks: List[str] = []
        quality = (
            sum(profile.data_quality_score for profile in profiles) / len(profiles)
            if profiles
            else 0.0
        )
        if quality < self.low_quality_threshold:
            risks.append("Insufficient data sources")
        if market.liquidity is Liquidity.LOW:
            risks.append("Thin market, odds may move")
        if market.stability is Stability.LOW:
            risks.append("Wide calibrated range, probability estimate is unstable")
        if market.edge < self.marginal_edge:
            risks.append("Marginal edge over the market price")
        if market.calculated_probability.ensemble_average < self.outsider_probability:
            risks.append("Outsider selection, losing run likely")
        return risks

    def _potential_failures(self, profiles: Sequence[EnrichedProfile]) -> List[str]:
        failures: List[str] = []
        for profile in profiles:
            team = profile.entity.entity_name
            if not profile.has_data:
                failures.append(f"No live data sources for {team}; figures rely on defaults")
                continue
            if profile.stats.xg is None:
                failures.append(f"xG for {team} estimated from shot data rather than sourced")
            if profile.sentiment.label == "negative":
                failures.append(f"Negative news sentiment around {team}")
            for injury in profile.news.injuries or ():
                failures.append(f"{team}: {injury}")
        return failures


__all__ = ["RiskAssessor", "binary_var_cvar"]
