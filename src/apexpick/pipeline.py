"""End-to-end orchestration from fixtures to Apex predictions."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Iterable, List, Sequence

from .aggregator import SourceAggregator
from .composer import FixtureAnalysis, PredictionComposer, PredictionStore, to_storage_record
from .markets import MarketScorer, MatchContext
from .models import ApexPrediction, EnrichedProfile, EntitySpec, Fixture
from .scheduler import ScheduledJob, Scheduler
from .stats import StatsDeriver

logger = logging.getLogger(__name__)

WARMUP_INTERVAL_SECONDS = 240.0
DEFAULT_PREDICTION_TTL = dt.timedelta(hours=24)


class ApexPipeline:
    """Aggregate, derive, score and compose predictions for fixtures."""

    def __init__(
        self,
        aggregator: SourceAggregator,
        *,
        deriver: StatsDeriver | None = None,
        scorer: MarketScorer | None = None,
        composer: PredictionComposer | None = None,
        store: PredictionStore | None = None,
        prediction_ttl: dt.timedelta = DEFAULT_PREDICTION_TTL,
    ) -> None:
        self.aggregator = aggregator
        self.deriver = deriver or StatsDeriver()
        self.scorer = scorer or MarketScorer()
        self.composer = composer or PredictionComposer()
        self.store = store
        self.prediction_ttl = prediction_ttl

    async def analyse_fixture(self, fixture: Fixture) -> FixtureAnalysis:
        home_profile, away_profile = await asyncio.gather(
            self.aggregator.get_profile(fixture.home_entity),
            self.aggregator.get_profile(fixture.away_entity),
        )
        context = MatchContext(
            fixture=fixture,
            home_profile=home_profile,
            away_profile=away_profile,
            home_stats=self.deriver.derive(home_profile),
            away_stats=self.deriver.derive(away_profile),
        )
        return FixtureAnalysis(context=context, markets=tuple(self.scorer.score(context)))

    async def analyse(self, fixtures: Sequence[Fixture]) -> List[FixtureAnalysis]:
        return list(await asyncio.gather(*(self.analyse_fixture(f) for f in fixtures)))

    async def predict(self, fixtures: Sequence[Fixture]) -> List[ApexPrediction]:
        """Predictions for every priced fixture, best first."""

        analyses = await self.analyse(fixtures)
        predictions = self.composer.compose_all(analyses)
        if self.store is not None:
            for prediction in predictions:
                self.store.save(to_storage_record(prediction, self.prediction_ttl))
        logger.info(
            "Composed %d predictions from %d fixtures", len(predictions), len(fixtures)
        )
        return predictions

    async def apex_pick(self, fixtures: Sequence[Fixture]) -> ApexPrediction | None:
        predictions = await self.predict(fixtures)
        return predictions[0] if predictions else None

    async def warm(self, entities: Iterable[EntitySpec]) -> int:
        """Pre-populate the cache; returns how many entities had data."""

        profiles: List[EnrichedProfile] = list(
            await asyncio.gather(*(self.aggregator.get_profile(e) for e in entities))
        )
        warmed = sum(1 for profile in profiles if profile.has_data)
        logger.info("Cache warm-up: %d/%d entities with data", warmed, len(profiles))
        return warmed

    def schedule_warmup(
        self,
        scheduler: Scheduler,
        entities: Sequence[EntitySpec],
        *,
        interval: float = WARMUP_INTERVAL_SECONDS,
        retries: int = 0,
        retry_backoff: float = 2.0,
        jitter: float = 0.0,
    ) -> ScheduledJob:
        targets = tuple(entities)

        async def _warm() -> None:
            await self.warm(targets)

        return scheduler.add_job(
            _warm,
            interval=interval,
            jitter=jitter,
            retries=retries,
            retry_backoff=retry_backoff,
            name="cache-warmup",
        )


def fixture_entities(fixtures: Iterable[Fixture]) -> List[EntitySpec]:
    """Unique home/away entities across ``fixtures`` in first-seen order."""

    seen = {}
    for fixture in fixtures:
        for entity in (fixture.home_entity, fixture.away_entity):
            seen.setdefault(entity.cache_key, entity)
    return list(seen.values())


__all__ = ["ApexPipeline", "fixture_entities"]
