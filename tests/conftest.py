import copy
import datetime as dt
from typing import Any, Dict, List, Mapping, Tuple

import pytest

from apexpick.adapters.base import StaticAdapter
from apexpick.aggregator import SourceAggregator
from apexpick.cache import TTLCache
from apexpick.models import Fixture


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubHTTPClient:
    def __init__(self, responses: Mapping[str, Any]) -> None:
        self._responses = dict(responses)
        self.calls: List[Tuple[str, Dict[str, Any], Dict[str, str]]] = []

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        self.calls.append((url, dict(params or {}), dict(headers or {})))
        response = self._responses[url]
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


HOME_PAYLOAD: Dict[str, Any] = {
    "stats": {
        "shotsFor": 15,
        "shotsOnTarget": 5,
        "goalsFor": 1.5,
        "goalsAgainst": 0.8,
        "possession": 58,
        "corners": 6.2,
        "fouls": 10.5,
        "yellowCards": 1.6,
        "form": "WWDWW",
    },
    "standings": {"position": 2, "points": 40, "played": 18, "wins": 12},
}

AWAY_PAYLOAD: Dict[str, Any] = {
    "stats": {
        "shotsFor": 11,
        "shotsOnTarget": 3,
        "goalsFor": 1.0,
        "goalsAgainst": 1.4,
        "possession": 46,
        "corners": 4.8,
        "fouls": 13.0,
        "yellowCards": 2.1,
        "form": "LDLWL",
    },
    "standings": {"position": 14, "points": 19, "played": 18, "wins": 4},
}

NEWS_PAYLOAD: Dict[str, Any] = {
    "news": {"headlines": ["Arsenal stay unbeaten"], "injuries": [], "articleCount": 1},
    "sentiment": {"score": 0.6, "label": "positive", "positive": 1, "negative": 0, "neutral": 0},
}


def fixture_mapping(fixture_id: str = "ars-che", **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": fixture_id,
        "sport": "soccer",
        "homeTeam": "Arsenal",
        "awayTeam": "Chelsea",
        "league": "Premier League",
        "kickoff": "2024-09-01T15:00:00+00:00",
        "offers": [
            {"category": "match_winner", "outcome": "home", "selection": "Arsenal", "odds": 1.95},
            {"category": "match_winner", "outcome": "draw", "selection": "Draw", "odds": 3.6},
            {"category": "match_winner", "outcome": "away", "selection": "Chelsea", "odds": 4.2},
            {"category": "totals", "outcome": "over", "selection": "Over 2.5", "line": 2.5, "odds": 1.9},
            {"category": "totals", "outcome": "under", "selection": "Under 2.5", "line": 2.5, "odds": 1.95},
            {"category": "btts", "outcome": "yes", "selection": "Yes", "odds": 1.8},
            {"category": "btts", "outcome": "no", "selection": "No", "odds": 2.0},
            {
                "category": "corners",
                "outcome": "over",
                "selection": "Over 10.5",
                "line": 10.5,
                "odds": 2.1,
                "liquidity": "Low",
            },
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def now() -> dt.datetime:
    return dt.datetime(2024, 9, 1, 12, tzinfo=dt.timezone.utc)


@pytest.fixture()
def sample_fixture() -> Fixture:
    return Fixture.from_mapping(fixture_mapping())


@pytest.fixture()
def team_adapters() -> List[StaticAdapter]:
    return [
        StaticAdapter(
            "stats_feed",
            by_entity={"Arsenal": HOME_PAYLOAD, "Chelsea": AWAY_PAYLOAD},
            quality="high",
        ),
        StaticAdapter("news_feed", NEWS_PAYLOAD, quality="medium"),
    ]


@pytest.fixture()
def aggregator(team_adapters: List[StaticAdapter], clock: FakeClock) -> SourceAggregator:
    return SourceAggregator(team_adapters, cache=TTLCache(300, clock=clock))


@pytest.fixture()
def make_fixture():
    """Factory building fixture mappings with optional overrides."""

    return fixture_mapping


@pytest.fixture()
def stub_client_factory():
    return StubHTTPClient


@pytest.fixture()
def payloads() -> Dict[str, Dict[str, Any]]:
    return {"home": HOME_PAYLOAD, "away": AWAY_PAYLOAD, "news": NEWS_PAYLOAD}
