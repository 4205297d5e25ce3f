"""Generic JSON-over-HTTP adapter driven by configuration."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Sequence
from urllib.parse import quote

from ..models import EntitySpec, SourceQuality
from .base import CategoryPayloads, SourceAdapter
from .common import AsyncHTTPClient, RateLimiter, dig, merge_headers

logger = logging.getLogger(__name__)


class HttpJsonAdapter(SourceAdapter):
    """Fetch one JSON document per entity and slice it into categories.

    ``endpoint`` is a template accepting ``{sport}``, ``{entity}`` and
    ``{league}``.  ``categories`` maps each category name to a dotted path
    inside the response, e.g. ``{"stats": "response.0.statistics"}``.
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        *,
        name: str | None = None,
        categories: Mapping[str, str] | None = None,
        quality: SourceQuality | str = SourceQuality.MEDIUM,
        sports: Sequence[str] = (),
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        client: AsyncHTTPClient | None = None,
        rate_limit_per_second: float | None = 1.0,
        timeout_seconds: float | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("HttpJsonAdapter requires an endpoint")
        self.configure(
            name=name or self.name,
            quality=quality,
            sports=sports,
            timeout_seconds=timeout_seconds,
        )
        self._endpoint = endpoint
        self._categories = dict(categories or {"stats": ""})
        self._params = dict(params or {})
        self._headers = dict(headers or {})
        self._client = client or AsyncHTTPClient(timeout=self.timeout_seconds)
        self._rate_limiter = RateLimiter(rate_limit_per_second)

    def build_url(self, entity: EntitySpec) -> str:
        return self._endpoint.format(
            sport=quote(entity.sport),
            entity=quote(entity.entity_name),
            league=quote(entity.league or ""),
        )

    async def _fetch_impl(self, entity: EntitySpec) -> CategoryPayloads:
        await self._rate_limiter.wait()
        url = self.build_url(entity)
        document = await self._client.get_json(
            url, params=self._params, headers=merge_headers(self._headers)
        )
        payload: Dict[str, Mapping[str, Any]] = {}
        for category, path in self._categories.items():
            section = dig(document, path) if path else document
            if isinstance(section, Mapping):
                payload[category] = dict(section)
            elif section is not None:
                logger.debug(
                    "Adapter %s: %s at %r is %s, expected an object",
                    self.name,
                    category,
                    path,
                    type(section).__name__,
                )
        return payload


__all__ = ["HttpJsonAdapter"]
