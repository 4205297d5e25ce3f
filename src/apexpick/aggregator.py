"""Fan-out aggregation of source adapters into enriched profiles."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Dict, List, Mapping, MutableMapping, Sequence, Tuple

from .adapters.base import SourceAdapter, StaticAdapter
from .adapters.espn import EspnNewsAdapter
from .adapters.http import HttpJsonAdapter
from .cache import TTLCache
from .errors import InsufficientData, SourceUnavailable, ValidationError
from .models import (
    CATEGORY_MODELS,
    EnrichedProfile,
    EntitySpec,
    RawRecord,
    canonical_sport,
    parse_category,
)
from .utils import utc_now

logger = logging.getLogger(__name__)


ADAPTER_REGISTRY: Mapping[str, type[SourceAdapter]] = {
    "static": StaticAdapter,
    "http": HttpJsonAdapter,
    "espn_news": EspnNewsAdapter,
}

MIN_POPULATED_QUALITY = 1.0


def data_quality_score(records: Sequence[RawRecord], attempted: int) -> float:
    """``(100 * high + 50 * medium) / attempted``, rounded to 2dp.

    A profile with at least one source never scores below
    ``MIN_POPULATED_QUALITY`` so that a zero score always means no data.
    """

    if attempted <= 0 or not records:
        return 0.0
    score = round(sum(record.quality.weight for record in records) / attempted, 2)
    return min(100.0, max(MIN_POPULATED_QUALITY, score))


def merge_category(records: Sequence[RawRecord], category: str) -> Any:
    """Merge one category field by field; earlier records win."""

    model = CATEGORY_MODELS[category]
    merged: Dict[str, Any] = {}
    for record in records:
        raw = record.category(category)
        if not raw:
            continue
        try:
            parsed = parse_category(category, raw)
        except ValidationError as exc:
            logger.warning("Ignoring %s from %s: %s", category, record.source, exc)
            continue
        for field_name in model.model_fields:
            if merged.get(field_name) is not None:
                continue
            value = getattr(parsed, field_name)
            if value is not None:
                merged[field_name] = value
    return model.model_validate(merged)


def build_profile(
    entity: EntitySpec,
    records: Sequence[RawRecord],
    attempted: int,
) -> EnrichedProfile:
    """Construct a fresh profile from records already in priority order."""

    ordered = tuple(records)
    return EnrichedProfile(
        entity=entity,
        data_sources=ordered,
        data_quality_score=data_quality_score(ordered, attempted),
        stats=merge_category(ordered, "stats"),
        news=merge_category(ordered, "news"),
        sentiment=merge_category(ordered, "sentiment"),
        standings=merge_category(ordered, "standings"),
        sources_attempted=attempted,
        aggregated_at=utc_now(),
    )


@dataclasses.dataclass(slots=True)
class RoutingTable:
    """Static mapping from sport to the ordered adapters consulted for it.

    Without an explicit route a sport gets every general adapter followed by
    the adapters that declare the sport, each group in declaration order.
    """

    adapters: Sequence[SourceAdapter]
    routes: Mapping[str, Sequence[str]] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        self.adapters = list(self.adapters)
        self.routes = {
            canonical_sport(sport): list(names) for sport, names in self.routes.items()
        }

    def for_sport(self, sport: str) -> List[SourceAdapter]:
        sport = canonical_sport(sport)
        explicit = self.routes.get(sport)
        if explicit is not None:
            by_name = {adapter.name: adapter for adapter in self.adapters}
            ordered: List[SourceAdapter] = []
            for name in explicit:
                adapter = by_name.get(name)
                if adapter is None:
                    logger.warning("Route for %s references unknown adapter %s", sport, name)
                    continue
                ordered.append(adapter)
            return ordered
        general = [adapter for adapter in self.adapters if not adapter.sports]
        specific = [
            adapter for adapter in self.adapters if adapter.sports and adapter.supports(sport)
        ]
        return general + specific

    def sports(self) -> List[str]:
        known = set(self.routes)
        for adapter in self.adapters:
            known.update(adapter.sports)
        return sorted(known)


@dataclasses.dataclass(slots=True)
class _CachedFetch:
    records: Tuple[RawRecord, ...]
    attempted: int


class SourceAggregator:
    """Collect data for an entity from every applicable adapter.

    ``get_profile`` never raises for environmental reasons: failed, slow or
    empty adapters are logged and skipped, and a total failure yields a
    profile with no sources and a zero quality score.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter] | RoutingTable,
        *,
        cache: TTLCache | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.routing = adapters if isinstance(adapters, RoutingTable) else RoutingTable(adapters)
        self.cache = cache if cache is not None else TTLCache()
        self.timeout_seconds = timeout_seconds
        self.last_run_details: Dict[str, Dict[str, Any]] = {}
        self._health: MutableMapping[str, Dict[str, Any]] = {}

    @property
    def adapters(self) -> Sequence[SourceAdapter]:
        return tuple(self.routing.adapters)

    async def get_profile(self, entity: EntitySpec) -> EnrichedProfile:
        if not isinstance(entity, EntitySpec):
            raise ValidationError(f"Expected an EntitySpec, got {type(entity).__name__}")

        key = entity.cache_key
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return build_profile(entity, cached.records, cached.attempted)

        adapters = self.routing.for_sport(entity.sport)
        start = time.perf_counter()
        details: Dict[str, Dict[str, Any]] = {}
        outcomes = await asyncio.gather(
            *(self._invoke(adapter, entity, details) for adapter in adapters)
        )
        records = tuple(record for record in outcomes if record is not None)
        self.last_run_details = details
        profile = build_profile(entity, records, len(adapters))

        if records:
            self.cache.set(key, _CachedFetch(records=records, attempted=len(adapters)))
        else:
            logger.warning("%s", InsufficientData(key, len(adapters)))
        logger.info(
            "Aggregated %s: %d/%d sources, quality %.2f in %.3fs",
            key,
            len(records),
            len(adapters),
            profile.data_quality_score,
            time.perf_counter() - start,
        )
        return profile

    async def _invoke(
        self,
        adapter: SourceAdapter,
        entity: EntitySpec,
        details: Dict[str, Dict[str, Any]],
    ) -> RawRecord | None:
        start = time.perf_counter()
        try:
            record = await adapter.fetch(entity, timeout=self.timeout_seconds)
        except SourceUnavailable as err:
            logger.warning("Source %s unavailable for %s: %s", adapter.name, entity.cache_key, err.reason)
            self._record(details, adapter.name, start, error=err.reason)
            return None
        except Exception as err:  # pragma: no cover - adapters overriding fetch
            logger.error("Adapter %s raised unexpectedly: %s", adapter.name, err)
            self._record(details, adapter.name, start, error=str(err))
            return None
        self._record(details, adapter.name, start, error=None)
        return record

    def _record(
        self,
        details: Dict[str, Dict[str, Any]],
        name: str,
        start: float,
        *,
        error: str | None,
    ) -> None:
        latency = time.perf_counter() - start
        details[name] = {
            "status": "ok" if error is None else "failed",
            "latency_seconds": latency,
            "error": error,
        }
        health = self._health.setdefault(
            name, {"successes": 0, "failures": 0, "last_error": None, "last_success_at": None}
        )
        if error is None:
            health["successes"] += 1
            health["last_success_at"] = utc_now().isoformat()
            health["last_ok"] = True
        else:
            health["failures"] += 1
            health["last_error"] = error
            health["last_ok"] = False

    def source_health(self) -> Dict[str, Dict[str, Any]]:
        """Per-adapter status: ``operational``, ``degraded`` or ``unknown``."""

        report: Dict[str, Dict[str, Any]] = {}
        for adapter in self.routing.adapters:
            health = self._health.get(adapter.name)
            if health is None:
                report[adapter.name] = {"status": "unknown", "quality": adapter.quality.value}
                continue
            status = "operational" if health.get("last_ok") else "degraded"
            report[adapter.name] = {
                "status": status,
                "quality": adapter.quality.value,
                "successes": health["successes"],
                "failures": health["failures"],
                "last_error": health["last_error"],
                "last_success_at": health["last_success_at"],
            }
        return report

    def stats(self) -> Dict[str, Any]:
        return {
            "cache_entries": len(self.cache),
            "cache_ttl_seconds": self.cache.ttl_seconds,
            "adapters": [adapter.name for adapter in self.routing.adapters],
            "routes": {
                sport: [adapter.name for adapter in self.routing.for_sport(sport)]
                for sport in self.routing.sports()
            },
        }


__all__ = [
    "ADAPTER_REGISTRY",
    "RoutingTable",
    "SourceAggregator",
    "build_profile",
    "data_quality_score",
    "merge_category",
]
