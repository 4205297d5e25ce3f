"""Source adapter contract.

Each provider is wrapped in a :class:`SourceAdapter` subclass that knows how
to turn an :class:`~apexpick.models.EntitySpec` into category payloads.  The
base class owns the timeout and converts every failure mode (exceptions,
deadline expiry, empty answers) into :class:`SourceUnavailable` so that the
aggregator only ever deals with one error type.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from ..errors import SourceUnavailable
from ..models import CATEGORIES, EntitySpec, RawRecord, SourceQuality, canonical_sport
from ..utils import utc_now

logger = logging.getLogger(__name__)

CategoryPayloads = Mapping[str, Mapping[str, Any]]


class SourceAdapter(ABC):
    """Base class for data providers with per-call deadlines."""

    name: str = "generic"
    quality: SourceQuality = SourceQuality.MEDIUM
    sports: Tuple[str, ...] = ()
    timeout_seconds: float = 10.0

    def supports(self, sport: str) -> bool:
        """General adapters (no declared sports) apply to every sport."""

        return not self.sports or canonical_sport(sport) in self.sports

    def configure(
        self,
        *,
        name: str | None = None,
        quality: SourceQuality | str | None = None,
        sports: Sequence[str] | None = None,
        timeout_seconds: float | None = None,
    ) -> "SourceAdapter":
        if name:
            self.name = name
        if quality is not None:
            self.quality = SourceQuality(quality)
        if sports is not None:
            self.sports = tuple(canonical_sport(sport) for sport in sports)
        if timeout_seconds is not None:
            self.timeout_seconds = float(timeout_seconds)
        return self

    async def fetch(self, entity: EntitySpec, timeout: float | None = None) -> RawRecord:
        """Fetch category payloads for ``entity`` within ``timeout`` seconds."""

        limit = self.timeout_seconds if timeout is None else timeout
        try:
            payload = await asyncio.wait_for(self._fetch_impl(entity), timeout=limit)
        except asyncio.TimeoutError as err:
            raise SourceUnavailable(self.name, f"timed out after {limit:.1f}s") from err
        except SourceUnavailable:
            raise
        except Exception as err:
            raise SourceUnavailable(self.name, str(err) or type(err).__name__) from err

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise SourceUnavailable(self.name, f"unexpected payload type {type(payload).__name__}")
        categories: Dict[str, Mapping[str, Any]] = {}
        for category in CATEGORIES:
            value = payload.get(category)
            if isinstance(value, Mapping) and value:
                categories[category] = value
        if not categories:
            raise SourceUnavailable(self.name, "empty payload")
        logger.debug(
            "Adapter %s returned %s for %s",
            self.name,
            ", ".join(sorted(categories)),
            entity.cache_key,
        )
        return RawRecord(
            source=self.name,
            quality=self.quality,
            payload=categories,
            fetched_at=utc_now(),
        )

    @abstractmethod
    async def _fetch_impl(self, entity: EntitySpec) -> CategoryPayloads:
        """Implementation hook for subclasses."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, quality={self.quality.value!r})"


class StaticAdapter(SourceAdapter):
    """Deterministic adapter used in tests and local development.

    ``payload`` is either a fixed mapping of categories, a mapping keyed by
    entity name, or a callable receiving the entity.
    """

    def __init__(
        self,
        name: str = "static",
        payload: CategoryPayloads | Callable[[EntitySpec], CategoryPayloads] | None = None,
        *,
        by_entity: Mapping[str, CategoryPayloads] | None = None,
        quality: SourceQuality | str = SourceQuality.MEDIUM,
        sports: Sequence[str] = (),
        delay_seconds: float = 0.0,
        error: Exception | str | None = None,
        timeout_seconds: float = 1.0,
    ) -> None:
        self.name = name
        self.quality = SourceQuality(quality)
        self.sports = tuple(canonical_sport(sport) for sport in sports)
        self.timeout_seconds = timeout_seconds
        self._payload = payload
        self._by_entity = {key.lower(): value for key, value in (by_entity or {}).items()}
        self._delay = delay_seconds
        self._error = error
        self.calls: List[EntitySpec] = []

    async def _fetch_impl(self, entity: EntitySpec) -> CategoryPayloads:
        self.calls.append(entity)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            if isinstance(self._error, Exception):
                raise self._error
            raise RuntimeError(self._error)
        if self._by_entity:
            return self._by_entity.get(entity.entity_name.lower(), {})
        if callable(self._payload):
            return self._payload(entity)
        return self._payload or {}


__all__ = ["CategoryPayloads", "SourceAdapter", "StaticAdapter"]
