"""Per-offer probability signals and market scoring.

Each offered selection is scored from up to three independent signals:

* the statistical model (Poisson score grid for goal sports, a logistic
  margin model elsewhere, corner/card expectations for specialty markets),
* the de-margined market consensus from the fixture's complete price set,
* a situational tilt from form and news sentiment for side markets.

The signals feed :class:`~apexpick.probability.ProbabilityModel`; edge,
stability and stake follow from the calibrated result.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Dict, List, Sequence, Tuple

from .models import (
    GOAL_SPORTS,
    AdvancedStats,
    BettingMarket,
    EnrichedProfile,
    Fixture,
    MarketOffer,
)
from .probability import (
    SPORT_MARGIN_SCALES,
    EdgeCalculator,
    ProbabilityModel,
    ScoreDistribution,
    fair_three_way_from_odds,
    fair_two_way_from_odds,
    logistic_win_probability,
)
from .specialty import expected_total_cards, expected_total_corners, over_probability
from .staking import StakeSizer
from .stats import form_adjustment, match_expectation
from .utils import clamp

logger = logging.getLogger(__name__)

FORM_TILT = 10.0
SENTIMENT_TILT = 5.0

_COMPLEMENTS = {
    "totals": ("over", "under"),
    "corners": ("over", "under"),
    "cards": ("over", "under"),
    "btts": ("yes", "no"),
    "handicap": ("home", "away"),
}


@dataclasses.dataclass(frozen=True, slots=True)
class MatchContext:
    """Everything known about a fixture once both profiles are in."""

    fixture: Fixture
    home_profile: EnrichedProfile
    away_profile: EnrichedProfile
    home_stats: AdvancedStats
    away_stats: AdvancedStats

    @property
    def data_quality(self) -> float:
        return round(
            (self.home_profile.data_quality_score + self.away_profile.data_quality_score) / 2, 2
        )

    @property
    def data_sources(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for name in self.home_profile.source_names + self.away_profile.source_names:
            seen.setdefault(name, None)
        return tuple(seen)


def _group_key(offer: MarketOffer) -> Tuple[str, float | None]:
    line = offer.line
    if offer.category == "handicap" and offer.outcome == "away" and line is not None:
        line = -line
    return offer.category, line


def best_prices(offers: Sequence[MarketOffer]) -> Dict[Tuple[str, float | None], Dict[str, MarketOffer]]:
    """Best price per outcome for every (category, line) group."""

    grouped: Dict[Tuple[str, float | None], Dict[str, MarketOffer]] = {}
    for offer in offers:
        outcomes = grouped.setdefault(_group_key(offer), {})
        current = outcomes.get(offer.outcome)
        if current is None or offer.odds > current.odds:
            outcomes[offer.outcome] = offer
    return grouped


class MatchModel:
    """Produce probability signals (percent) for individual offers."""

    def __init__(self, *, max_goals: int = 10, situational: bool = True) -> None:
        self.max_goals = max_goals
        self.situational = situational

    def model_probability(self, context: MatchContext, offer: MarketOffer) -> float | None:
        home, away = context.home_stats, context.away_stats
        if offer.category in ("corners", "cards"):
            expected = (
                expected_total_corners(home, away)
                if offer.category == "corners"
                else expected_total_cards(home, away)
            )
            over = over_probability(expected, float(offer.line))
            return over if offer.outcome == "over" else 100.0 - over

        expectation = match_expectation(home, away)
        if context.fixture.sport in GOAL_SPORTS:
            distribution = ScoreDistribution.from_expectation(
                expectation.home_expected, expectation.away_expected, self.max_goals
            )
            if offer.category == "match_winner":
                return distribution.match_winner(offer.outcome)
            if offer.category == "totals":
                return distribution.total(offer.outcome, float(offer.line))
            if offer.category == "btts":
                return distribution.both_teams_score(offer.outcome)
            if offer.category == "handicap":
                return distribution.handicap(offer.outcome, float(offer.line))
            return None

        scale = SPORT_MARGIN_SCALES.get(context.fixture.sport, 1.0)
        margin = expectation.home_expected - expectation.away_expected
        if offer.category == "match_winner" and offer.outcome in ("home", "away"):
            home_win = logistic_win_probability(margin, scale)
            return home_win if offer.outcome == "home" else 100.0 - home_win
        if offer.category == "handicap":
            line = float(offer.line)
            if offer.outcome == "home":
                return logistic_win_probability(margin + line, scale)
            return logistic_win_probability(-margin + line, scale)
        return None

    def market_probability(self, context: MatchContext, offer: MarketOffer) -> float:
        group = best_prices(context.fixture.offers).get(_group_key(offer), {})
        if offer.category == "match_winner":
            if {"home", "draw", "away"} <= group.keys():
                fair = fair_three_way_from_odds(
                    group["home"].odds, group["draw"].odds, group["away"].odds
                )
                return dict(zip(("home", "draw", "away"), fair))[offer.outcome]
            if {"home", "away"} <= group.keys() and offer.outcome != "draw":
                fair = fair_two_way_from_odds(group["home"].odds, group["away"].odds)
                return fair[0] if offer.outcome == "home" else fair[1]
        else:
            first, second = _COMPLEMENTS[offer.category]
            if {first, second} <= group.keys():
                fair = fair_two_way_from_odds(group[first].odds, group[second].odds)
                return fair[0] if offer.outcome == first else fair[1]
        return clamp(100.0 / offer.odds, 0.0, 100.0)

    def situational_probability(
        self,
        context: MatchContext,
        offer: MarketOffer,
        base: float,
    ) -> float | None:
        if not self.situational or offer.category not in ("match_winner", "handicap"):
            return None
        if offer.outcome not in ("home", "away"):
            return None
        home_data = context.home_profile.team_data()
        away_data = context.away_profile.team_data()
        home_sentiment = context.home_profile.sentiment.score
        away_sentiment = context.away_profile.sentiment.score
        if not any((home_data.form, away_data.form, home_sentiment is not None, away_sentiment is not None)):
            return None
        tilt = FORM_TILT * (form_adjustment(home_data.form) - form_adjustment(away_data.form))
        tilt += SENTIMENT_TILT * ((home_sentiment or 0.0) - (away_sentiment or 0.0))
        if offer.outcome == "away":
            tilt = -tilt
        return clamp(base + tilt, 0.0, 100.0)

    def signals(self, context: MatchContext, offer: MarketOffer) -> List[float]:
        market = self.market_probability(context, offer)
        model = self.model_probability(context, offer)
        signals = [clamp(market, 0.0, 100.0)]
        if model is not None:
            signals.insert(0, clamp(model, 0.0, 100.0))
        situational = self.situational_probability(
            context, offer, model if model is not None else market
        )
        if situational is not None:
            signals.append(situational)
        return signals


class MarketScorer:
    """Score every offer of a fixture into :class:`BettingMarket` records."""

    def __init__(
        self,
        *,
        match_model: MatchModel | None = None,
        probability_model: ProbabilityModel | None = None,
        edge_calculator: EdgeCalculator | None = None,
        stake_sizer: StakeSizer | None = None,
    ) -> None:
        self.match_model = match_model or MatchModel()
        self.probability_model = probability_model or ProbabilityModel()
        self.edge_calculator = edge_calculator or EdgeCalculator()
        self.stake_sizer = stake_sizer or StakeSizer()

    def score_offer(self, context: MatchContext, offer: MarketOffer) -> BettingMarket:
        signals = self.match_model.signals(context, offer)
        calibration = self.probability_model.calibrate(signals, context.data_quality)
        probability = calibration.probability
        implied = self.edge_calculator.implied_probability(offer.odds)
        edge = self.edge_calculator.edge(probability.ensemble_average, implied)
        stake = self.stake_sizer.recommend_stake(edge, offer.odds, calibration.confidence)
        stability = self.edge_calculator.stability(
            probability, calibration.confidence, context.data_quality
        )
        return BettingMarket.from_offer(
            context.fixture.fixture_id,
            offer,
            probability=probability,
            confidence_score=calibration.confidence,
            stability=stability,
            recommended_stake=stake,
            data_sources=context.data_sources,
        )

    def score(self, context: MatchContext) -> List[BettingMarket]:
        markets = [self.score_offer(context, offer) for offer in context.fixture.offers]
        logger.debug(
            "Scored %d markets for %s", len(markets), context.fixture.fixture_id
        )
        return markets


__all__ = ["MarketScorer", "MatchContext", "MatchModel", "best_prices"]
