"""ESPN public news feed adapter.

Produces ``news`` and ``sentiment`` categories from the headlines ESPN
publishes for a league, keeping only articles that mention the entity.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from ..models import EntitySpec, SourceQuality
from .base import CategoryPayloads, SourceAdapter
from .common import AsyncHTTPClient, RateLimiter

logger = logging.getLogger(__name__)

ESPN_NEWS_URL = "https://site.api.espn.com/apis/site/v2/sports/{path}/news"

LEAGUE_PATHS: Mapping[str, str] = {
    "soccer": "soccer/eng.1",
    "basketball": "basketball/nba",
    "american_football": "football/nfl",
    "hockey": "hockey/nhl",
    "baseball": "baseball/mlb",
}

POSITIVE_TERMS = frozenset(
    {
        "win", "wins", "won", "victory", "unbeaten", "streak", "boost", "return",
        "returns", "fit", "dominant", "comeback", "record", "clinch", "clinches",
        "surge", "impressive", "strong",
    }
)
NEGATIVE_TERMS = frozenset(
    {
        "loss", "loses", "lost", "defeat", "injury", "injured", "out", "suspended",
        "suspension", "crisis", "sacked", "fired", "slump", "doubt", "blow",
        "ruled", "miss", "misses", "struggle", "struggles",
    }
)
INJURY_PATTERN = re.compile(r"\b(injur\w*|ruled out|sidelined|hamstring|knee|ankle)\b", re.I)
_WORD_PATTERN = re.compile(r"[a-z']+")


def headline_tone(text: str) -> int:
    """Return +1, -1 or 0 depending on which lexicon dominates ``text``."""

    words = _WORD_PATTERN.findall(text.lower())
    positive = sum(1 for word in words if word in POSITIVE_TERMS)
    negative = sum(1 for word in words if word in NEGATIVE_TERMS)
    if positive > negative:
        return 1
    if negative > positive:
        return -1
    return 0


def summarise_sentiment(texts: Sequence[str]) -> Dict[str, Any]:
    tones = [headline_tone(text) for text in texts]
    positive = tones.count(1)
    negative = tones.count(-1)
    neutral = tones.count(0)
    total = len(tones)
    score = (positive - negative) / total if total else 0.0
    if score > 0.2:
        label = "positive"
    elif score < -0.2:
        label = "negative"
    elif positive and positive == negative:
        label = "mixed"
    else:
        label = "neutral"
    return {
        "score": round(score, 3),
        "label": label,
        "positive": positive,
        "negative": negative,
        "neutral": neutral,
    }


class EspnNewsAdapter(SourceAdapter):
    """Team news and headline sentiment from ESPN's public site API."""

    name = "espn_news"
    quality = SourceQuality.MEDIUM
    sports: Tuple[str, ...] = tuple(LEAGUE_PATHS)

    def __init__(
        self,
        *,
        client: AsyncHTTPClient | None = None,
        rate_limit_per_second: float | None = 2.0,
        max_headlines: int = 5,
        league_paths: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._league_paths = dict(league_paths or LEAGUE_PATHS)
        self.configure(sports=list(self._league_paths), timeout_seconds=timeout_seconds)
        self._client = client or AsyncHTTPClient(timeout=self.timeout_seconds)
        self._rate_limiter = RateLimiter(rate_limit_per_second)
        self._max_headlines = max_headlines

    def _articles_for(self, entity: EntitySpec, document: Any) -> List[Mapping[str, Any]]:
        needle = entity.entity_name.lower()
        articles = document.get("articles", []) if isinstance(document, Mapping) else []
        matches: List[Mapping[str, Any]] = []
        for article in articles:
            if not isinstance(article, Mapping):
                continue
            text = f"{article.get('headline', '')} {article.get('description', '')}".lower()
            if needle in text:
                matches.append(article)
        return matches

    async def _fetch_impl(self, entity: EntitySpec) -> CategoryPayloads:
        path = self._league_paths.get(entity.sport)
        if path is None:
            return {}
        await self._rate_limiter.wait()
        document = await self._client.get_json(ESPN_NEWS_URL.format(path=path))
        articles = self._articles_for(entity, document)
        if not articles:
            logger.debug("No ESPN articles mention %s", entity.entity_name)
            return {}
        headlines = [str(article.get("headline", "")).strip() for article in articles]
        headlines = [headline for headline in headlines if headline]
        texts = [
            f"{article.get('headline', '')} {article.get('description', '')}"
            for article in articles
        ]
        injuries = [headline for headline in headlines if INJURY_PATTERN.search(headline)]
        return {
            "news": {
                "headlines": headlines[: self._max_headlines],
                "injuries": injuries,
                "articleCount": len(articles),
            },
            "sentiment": summarise_sentiment(texts),
        }


__all__ = ["ESPN_NEWS_URL", "EspnNewsAdapter", "LEAGUE_PATHS", "headline_tone", "summarise_sentiment"]
