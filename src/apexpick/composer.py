"""Assemble scored markets into ranked Apex predictions."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from typing import Any, Callable, Dict, Iterable, List, Protocol, Sequence, Tuple

import polars as pl

from .errors import ValidationError
from .markets import MatchContext
from .models import ApexPrediction, BettingMarket, ContingencyPick
from .risk import RiskAssessor
from .utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 55.0
CONTINGENCY_ODDS_DRIFT = 0.15


@dataclasses.dataclass(frozen=True, slots=True)
class FixtureAnalysis:
    """Scored markets for one fixture alongside the context they came from."""

    context: MatchContext
    markets: Tuple[BettingMarket, ...]

    @property
    def fixture_id(self) -> str:
        return self.context.fixture.fixture_id


def market_rank_key(market: BettingMarket) -> Tuple[float, float]:
    """Highest edge first, ties broken by higher confidence."""

    return (-market.edge, -market.confidence_score)


def rank_markets(markets: Iterable[BettingMarket]) -> List[BettingMarket]:
    return sorted(markets, key=market_rank_key)


class PredictionStore(Protocol):
    def save(self, record: Dict[str, Any]) -> None:
        """Persist one storage record."""


def to_storage_record(prediction: ApexPrediction, ttl: dt.timedelta) -> Dict[str, Any]:
    """Flatten a prediction into the shape handed to persistence."""

    return {
        "id": prediction.id,
        "sport": prediction.sport,
        "match": prediction.match,
        "betType": prediction.bet_type,
        "bestOdds": prediction.best_odds,
        "edge": round(prediction.edge, 2),
        "confidenceScore": prediction.confidence_score,
        "data": prediction.as_payload(),
        "createdAt": prediction.timestamp.isoformat(),
        "expiresAt": (prediction.timestamp + ttl).isoformat(),
    }


class PredictionComposer:
    """Pick the primary market per fixture and a contingency fallback.

    The primary market is the best ranked market whose confidence meets
    ``min_confidence``; when none qualifies the best market overall is used.
    The contingency pick is the best remaining market in the candidate pool
    that belongs to a different fixture or a different bet category.
    """

    def __init__(
        self,
        *,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        risk_assessor: RiskAssessor | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.min_confidence = min_confidence
        self.risk_assessor = risk_assessor or RiskAssessor()
        self._clock = clock or utc_now

    def select_primary(self, markets: Sequence[BettingMarket]) -> BettingMarket:
        if not markets:
            raise ValidationError("cannot select a primary market from an empty list")
        ranked = rank_markets(markets)
        for market in ranked:
            if market.confidence_score >= self.min_confidence:
                return market
        logger.info(
            "No market for %s reaches confidence %.1f; using best effort",
            ranked[0].fixture_id,
            self.min_confidence,
        )
        return ranked[0]

    def select_contingency(
        self,
        primary: BettingMarket,
        pool: Sequence[Tuple[MatchContext, BettingMarket]],
    ) -> ContingencyPick | None:
        candidates = [
            (context, market)
            for context, market in pool
            if market is not primary
            and (market.fixture_id != primary.fixture_id or market.category != primary.category)
        ]
        if not candidates:
            return None
        context, market = min(candidates, key=lambda item: market_rank_key(item[1]))
        fixture = context.fixture
        triggers = [
            f"If {primary.bet_type} odds drop below {max(1.01, primary.odds - CONTINGENCY_ODDS_DRIFT):.2f}",
        ]
        for profile in (context.home_profile, context.away_profile):
            if profile.news.injuries:
                triggers.append(f"If {profile.entity.entity_name} injury news is confirmed")
        if len(triggers) == 1:
            triggers.append("If the primary selection is suspended or voided")
        return ContingencyPick(
            fixture_id=fixture.fixture_id,
            sport=fixture.sport,
            match=fixture.match,
            bet_type=market.bet_type,
            selection=market.selection,
            odds=market.odds,
            confidence_score=market.confidence_score,
            stake_size=market.recommended_stake.unit_description,
            trigger_conditions=tuple(triggers),
        )

    def compose(
        self,
        analysis: FixtureAnalysis,
        pool: Sequence[Tuple[MatchContext, BettingMarket]] | None = None,
    ) -> ApexPrediction:
        if not analysis.markets:
            raise ValidationError(f"fixture {analysis.fixture_id} has no markets to compose")
        context = analysis.context
        fixture = context.fixture
        markets = tuple(rank_markets(analysis.markets))
        primary = self.select_primary(markets)
        candidate_pool = list(pool) if pool is not None else [
            (context, market) for market in markets
        ]
        timestamp = self._clock()
        return ApexPrediction(
            id=f"apex-{fixture.fixture_id}-{int(timestamp.timestamp())}",
            fixture_id=fixture.fixture_id,
            sport=fixture.sport,
            league=fixture.league,
            match=fixture.match,
            home_team=fixture.home_team,
            away_team=fixture.away_team,
            markets=markets,
            primary_market=primary,
            risk_assessment=self.risk_assessor.assess_risk(
                primary, (context.home_profile, context.away_profile)
            ),
            contingency_pick=self.select_contingency(primary, candidate_pool),
            prediction_stability=primary.stability,
            timestamp=timestamp,
            data_quality_score=context.data_quality,
            main_data_sources=context.data_sources,
        )

    def compose_all(self, analyses: Sequence[FixtureAnalysis]) -> List[ApexPrediction]:
        """Compose every fixture with markets, best prediction first."""

        pool = [
            (analysis.context, market) for analysis in analyses for market in analysis.markets
        ]
        predictions: List[ApexPrediction] = []
        for analysis in analyses:
            if not analysis.markets:
                logger.info("Skipping %s: no priced markets", analysis.fixture_id)
                continue
            predictions.append(self.compose(analysis, pool))
        predictions.sort(key=lambda prediction: market_rank_key(prediction.primary_market))
        return predictions

    def select_apex(self, analyses: Sequence[FixtureAnalysis]) -> ApexPrediction | None:
        predictions = self.compose_all(analyses)
        return predictions[0] if predictions else None


def markets_frame(predictions: Sequence[ApexPrediction]) -> pl.DataFrame:
    """Tabulate every scored market, primary selections flagged."""

    rows = [
        {
            "fixture_id": prediction.fixture_id,
            "match": prediction.match,
            "bet_type": market.bet_type,
            "odds": market.odds,
            "probability": market.calculated_probability.ensemble_average,
            "implied": market.implied_probability,
            "edge": round(market.edge, 2),
            "confidence": market.confidence_score,
            "stability": market.stability.value,
            "stake_pct": market.recommended_stake.percentage_of_bankroll,
            "primary": market is prediction.primary_market,
        }
        for prediction in predictions
        for market in prediction.markets
    ]
    schema = {
        "fixture_id": pl.Utf8,
        "match": pl.Utf8,
        "bet_type": pl.Utf8,
        "odds": pl.Float64,
        "probability": pl.Float64,
        "implied": pl.Float64,
        "edge": pl.Float64,
        "confidence": pl.Float64,
        "stability": pl.Utf8,
        "stake_pct": pl.Float64,
        "primary": pl.Boolean,
    }
    if not rows:
        return pl.DataFrame(schema=schema)
    return pl.DataFrame(rows, schema=schema).sort("edge", descending=True)


__all__ = [
    "FixtureAnalysis",
    "PredictionComposer",
    "PredictionStore",
    "markets_frame",
    "rank_markets",
    "to_storage_record",
]
