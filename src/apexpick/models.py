"""Value objects shared by the aggregation and scoring stages.

Everything here is immutable once constructed.  The aggregator owns the
construction of :class:`EnrichedProfile`; later stages read profiles, stats
and markets but never change them.  Category payloads coming from adapters
are validated with pydantic models so that merge logic can walk an explicit
field list instead of guessing at untyped dictionaries.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .utils import implied_probability, slugify, utc_now, validate_decimal_odds

SPORT_ALIASES: Mapping[str, str] = {
    "football": "soccer",
    "association_football": "soccer",
    "icehockey": "hockey",
    "ice_hockey": "hockey",
    "nhl": "hockey",
    "nba": "basketball",
    "nfl": "american_football",
    "americanfootball": "american_football",
    "mlb": "baseball",
}

GOAL_SPORTS = frozenset({"soccer", "hockey"})

CATEGORIES: Tuple[str, ...] = ("stats", "news", "sentiment", "standings")

MARKET_OUTCOMES: Mapping[str, frozenset[str]] = {
    "match_winner": frozenset({"home", "draw", "away"}),
    "totals": frozenset({"over", "under"}),
    "btts": frozenset({"yes", "no"}),
    "handicap": frozenset({"home", "away"}),
    "corners": frozenset({"over", "under"}),
    "cards": frozenset({"over", "under"}),
}

LINE_MARKETS = frozenset({"totals", "handicap", "corners", "cards"})

CATEGORY_LABELS: Mapping[str, str] = {
    "match_winner": "Match Winner",
    "totals": "Total Goals",
    "btts": "Both Teams To Score",
    "handicap": "Handicap",
    "corners": "Total Corners",
    "cards": "Total Cards",
}


def canonical_sport(value: str) -> str:
    key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    return SPORT_ALIASES.get(key, key)


class SourceQuality(str, enum.Enum):
    """Static reliability grade attached to each adapter."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> float:
        return _QUALITY_WEIGHTS[self]


_QUALITY_WEIGHTS = {
    SourceQuality.HIGH: 100.0,
    SourceQuality.MEDIUM: 50.0,
    SourceQuality.LOW: 0.0,
}


class Stability(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Liquidity(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclasses.dataclass(frozen=True, slots=True)
class EntitySpec:
    """Identifies the team (or player) whose data is being aggregated."""

    sport: str
    entity_name: str
    league: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.sport, str) or not self.sport.strip():
            raise ValidationError("EntitySpec.sport must be a non-empty string")
        if not isinstance(self.entity_name, str) or not self.entity_name.strip():
            raise ValidationError("EntitySpec.entity_name must be a non-empty string")
        if self.league is not None and not isinstance(self.league, str):
            raise ValidationError("EntitySpec.league must be a string when provided")
        object.__setattr__(self, "sport", canonical_sport(self.sport))
        object.__setattr__(self, "entity_name", self.entity_name.strip())

    @property
    def cache_key(self) -> str:
        return f"{self.sport}:{slugify(self.entity_name)}"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Convert frozen payload structures back into plain ``dict``/``list``."""

    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dt.datetime):
        return value.isoformat()
    return value


@dataclasses.dataclass(frozen=True, slots=True)
class RawRecord:
    """One adapter's successful response, tagged with its source grade."""

    source: str
    quality: SourceQuality
    payload: Mapping[str, Mapping[str, Any]]
    fetched_at: dt.datetime = dataclasses.field(default_factory=utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality", SourceQuality(self.quality))
        object.__setattr__(self, "payload", _freeze(self.payload))

    def category(self, name: str) -> Mapping[str, Any] | None:
        return self.payload.get(name)


class _CategoryPayload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def as_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class StatsPayload(_CategoryPayload):
    """Per-game team statistics as reported by a source."""

    xg: float | None = Field(default=None, ge=0, alias="xG")
    xga: float | None = Field(default=None, ge=0, alias="xGA")
    xa: float | None = Field(default=None, ge=0, alias="xA")
    xpts: float | None = Field(default=None, ge=0, alias="xPTS")
    possession: float | None = Field(default=None, ge=0, le=100)
    shots: float | None = Field(default=None, ge=0, alias="shotsFor")
    shots_on_target: float | None = Field(default=None, ge=0, alias="shotsOnTarget")
    goals_for: float | None = Field(default=None, ge=0, alias="goalsFor")
    goals_against: float | None = Field(default=None, ge=0, alias="goalsAgainst")
    corners: float | None = Field(default=None, ge=0)
    fouls: float | None = Field(default=None, ge=0)
    yellow_cards: float | None = Field(default=None, ge=0, alias="yellowCards")
    red_cards: float | None = Field(default=None, ge=0, alias="redCards")
    form: str | None = None
    games_played: int | None = Field(default=None, ge=0, alias="gamesPlayed")


class NewsPayload(_CategoryPayload):
    headlines: Tuple[str, ...] | None = None
    injuries: Tuple[str, ...] | None = None
    article_count: int | None = Field(default=None, ge=0, alias="articleCount")


class SentimentPayload(_CategoryPayload):
    """Aggregate tone of recent coverage; ``score`` runs from -1 to 1."""

    score: float | None = Field(default=None, ge=-1, le=1)
    label: str | None = None
    positive: int | None = Field(default=None, ge=0)
    negative: int | None = Field(default=None, ge=0)
    neutral: int | None = Field(default=None, ge=0)


class StandingsPayload(_CategoryPayload):
    position: int | None = Field(default=None, ge=1)
    points: float | None = Field(default=None, ge=0)
    played: int | None = Field(default=None, ge=0)
    wins: int | None = Field(default=None, ge=0)
    draws: int | None = Field(default=None, ge=0)
    losses: int | None = Field(default=None, ge=0)
    goal_difference: float | None = Field(default=None, alias="goalDifference")
    form: str | None = None


CATEGORY_MODELS: Mapping[str, type[_CategoryPayload]] = {
    "stats": StatsPayload,
    "news": NewsPayload,
    "sentiment": SentimentPayload,
    "standings": StandingsPayload,
}


@dataclasses.dataclass(frozen=True, slots=True)
class EnrichedProfile:
    """Merged view of every source that answered for one entity."""

    entity: EntitySpec
    data_sources: Tuple[RawRecord, ...]
    data_quality_score: float
    stats: StatsPayload = dataclasses.field(default_factory=StatsPayload)
    news: NewsPayload = dataclasses.field(default_factory=NewsPayload)
    sentiment: SentimentPayload = dataclasses.field(default_factory=SentimentPayload)
    standings: StandingsPayload = dataclasses.field(default_factory=StandingsPayload)
    sources_attempted: int = 0
    aggregated_at: dt.datetime = dataclasses.field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not 0.0 <= self.data_quality_score <= 100.0:
            raise ValidationError(
                f"data_quality_score must be within [0, 100], got {self.data_quality_score}"
            )
        object.__setattr__(self, "data_sources", tuple(self.data_sources))

    @property
    def source_names(self) -> Tuple[str, ...]:
        return tuple(record.source for record in self.data_sources)

    @property
    def has_data(self) -> bool:
        return bool(self.data_sources)

    def team_data(self) -> StatsPayload:
        """Stats with form and games played backfilled from standings."""

        updates: Dict[str, Any] = {}
        if self.stats.form is None and self.standings.form is not None:
            updates["form"] = self.standings.form
        if self.stats.games_played is None and self.standings.played is not None:
            updates["games_played"] = self.standings.played
        if not updates:
            return self.stats
        return self.stats.model_copy(update=updates)

    def as_payload(self) -> Dict[str, Any]:
        return {
            "entity": {
                "sport": self.entity.sport,
                "entityName": self.entity.entity_name,
                "league": self.entity.league,
            },
            "dataSources": [
                {
                    "source": record.source,
                    "quality": record.quality.value,
                    "fetchedAt": record.fetched_at.isoformat(),
                }
                for record in self.data_sources
            ],
            "dataQualityScore": self.data_quality_score,
            "sourcesAttempted": self.sources_attempted,
            "stats": self.stats.as_payload(),
            "news": self.news.as_payload(),
            "sentiment": self.sentiment.as_payload(),
            "standings": self.standings.as_payload(),
            "aggregatedAt": self.aggregated_at.isoformat(),
        }


@dataclasses.dataclass(frozen=True, slots=True)
class AdvancedStats:
    xg: float | None = None
    xga: float | None = None
    xa: float | None = None
    xpts: float | None = None
    possession: float | None = None
    shots: float | None = None
    shots_on_target: float | None = None
    corners: float | None = None
    fouls: float | None = None
    yellow_cards: float | None = None
    red_cards: float | None = None

    def __post_init__(self) -> None:
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if value is not None and value < 0:
                raise ValidationError(f"AdvancedStats.{field.name} must be non-negative")

    def as_payload(self) -> Dict[str, Any]:
        return {
            "xG": self.xg,
            "xGA": self.xga,
            "xA": self.xa,
            "xPTS": self.xpts,
            "possession": self.possession,
            "shots": self.shots,
            "shotsOnTarget": self.shots_on_target,
            "corners": self.corners,
            "fouls": self.fouls,
            "yellowCards": self.yellow_cards,
            "redCards": self.red_cards,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class Probability:
    """Ensemble probability (percent) with its calibrated range."""

    ensemble_average: float
    lower: float
    upper: float

    def __post_init__(self) -> None:
        for name in ("ensemble_average", "lower", "upper"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ValidationError(f"Probability.{name} must be within [0, 100], got {value}")
        if not self.lower <= self.ensemble_average <= self.upper:
            raise ValidationError(
                "Probability range must satisfy lower <= ensemble_average <= upper "
                f"(got {self.lower} / {self.ensemble_average} / {self.upper})"
            )

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def as_payload(self) -> Dict[str, Any]:
        return {
            "ensembleAverage": self.ensemble_average,
            "calibratedRange": {"lower": self.lower, "upper": self.upper},
        }


@dataclasses.dataclass(frozen=True, slots=True)
class RecommendedStake:
    kelly_fraction: str
    unit_description: str
    percentage_of_bankroll: float

    def as_payload(self) -> Dict[str, Any]:
        return {
            "kellyFraction": self.kelly_fraction,
            "unitDescription": self.unit_description,
            "percentageOfBankroll": self.percentage_of_bankroll,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class MarketOffer:
    """A price quoted by a bookmaker for one selection of a fixture."""

    category: str
    selection: str
    outcome: str
    odds: float
    bookmaker: str = "consensus"
    line: float | None = None
    liquidity: Liquidity = Liquidity.MEDIUM

    def __post_init__(self) -> None:
        allowed = MARKET_OUTCOMES.get(self.category)
        if allowed is None:
            raise ValidationError(f"Unknown market category: {self.category!r}")
        if self.outcome not in allowed:
            raise ValidationError(
                f"Outcome {self.outcome!r} is not valid for {self.category} markets"
            )
        if self.category in LINE_MARKETS and self.line is None:
            raise ValidationError(f"{self.category} markets require a line")
        object.__setattr__(self, "odds", validate_decimal_odds(self.odds))
        try:
            object.__setattr__(self, "liquidity", Liquidity(self.liquidity))
        except ValueError as exc:
            raise ValidationError(f"Unknown liquidity grade: {self.liquidity!r}") from exc

    @property
    def bet_type(self) -> str:
        return f"{CATEGORY_LABELS[self.category]}: {self.selection}"

    @property
    def market_key(self) -> Tuple[str, float | None]:
        return self.category, self.line


@dataclasses.dataclass(frozen=True, slots=True)
class Fixture:
    fixture_id: str
    sport: str
    home_team: str
    away_team: str
    league: str | None = None
    kickoff: dt.datetime | None = None
    offers: Tuple[MarketOffer, ...] = ()

    def __post_init__(self) -> None:
        if not str(self.fixture_id).strip():
            raise ValidationError("Fixture.fixture_id must be non-empty")
        if not self.home_team.strip() or not self.away_team.strip():
            raise ValidationError("Fixture teams must be non-empty")
        object.__setattr__(self, "sport", canonical_sport(self.sport))
        object.__setattr__(self, "offers", tuple(self.offers))

    @property
    def match(self) -> str:
        return f"{self.home_team} vs {self.away_team}"

    @property
    def home_entity(self) -> EntitySpec:
        return EntitySpec(self.sport, self.home_team, self.league)

    @property
    def away_entity(self) -> EntitySpec:
        return EntitySpec(self.sport, self.away_team, self.league)

    def team_for(self, outcome: str) -> str | None:
        if outcome == "home":
            return self.home_team
        if outcome == "away":
            return self.away_team
        return None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Fixture":
        """Build a fixture from camelCase JSON as produced by odds feeds."""

        try:
            kickoff_raw = data.get("kickoff")
            kickoff = dt.datetime.fromisoformat(kickoff_raw) if kickoff_raw else None
            offers = [
                MarketOffer(
                    category=str(offer["category"]),
                    selection=str(offer.get("selection") or offer["outcome"]),
                    outcome=str(offer["outcome"]),
                    odds=offer["odds"],
                    bookmaker=str(offer.get("bookmaker", "consensus")),
                    line=None if offer.get("line") is None else float(offer["line"]),
                    liquidity=offer.get("liquidity", Liquidity.MEDIUM.value),
                )
                for offer in data.get("offers", [])
            ]
            return cls(
                fixture_id=str(data.get("id") or data["fixtureId"]),
                sport=str(data["sport"]),
                home_team=str(data["homeTeam"]),
                away_team=str(data["awayTeam"]),
                league=data.get("league"),
                kickoff=kickoff,
                offers=tuple(offers),
            )
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed fixture payload: {exc}") from exc


@dataclasses.dataclass(frozen=True, slots=True)
class BettingMarket:
    """One scored selection with its probability, edge and stake."""

    fixture_id: str
    category: str
    selection: str
    outcome: str
    line: float | None
    odds: float
    bookmaker: str
    liquidity: Liquidity
    calculated_probability: Probability
    implied_probability: float
    confidence_score: float
    stability: Stability
    recommended_stake: RecommendedStake
    data_sources: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_decimal_odds(self.odds)
        if not 1.0 <= self.confidence_score <= 100.0:
            raise ValidationError(
                f"confidence_score must be within [1, 100], got {self.confidence_score}"
            )
        object.__setattr__(self, "data_sources", tuple(self.data_sources))

    @classmethod
    def from_offer(
        cls,
        fixture_id: str,
        offer: MarketOffer,
        *,
        probability: Probability,
        confidence_score: float,
        stability: Stability,
        recommended_stake: RecommendedStake,
        data_sources: Sequence[str] = (),
    ) -> "BettingMarket":
        return cls(
            fixture_id=fixture_id,
            category=offer.category,
            selection=offer.selection,
            outcome=offer.outcome,
            line=offer.line,
            odds=offer.odds,
            bookmaker=offer.bookmaker,
            liquidity=offer.liquidity,
            calculated_probability=probability,
            implied_probability=implied_probability(offer.odds),
            confidence_score=confidence_score,
            stability=stability,
            recommended_stake=recommended_stake,
            data_sources=tuple(data_sources),
        )

    @property
    def edge(self) -> float:
        return self.calculated_probability.ensemble_average - self.implied_probability

    @property
    def expected_value(self) -> float:
        """Expected return per unit staked, as a percentage."""

        probability = self.calculated_probability.ensemble_average / 100.0
        return round((probability * self.odds - 1.0) * 100.0, 2)

    @property
    def bet_type(self) -> str:
        label = CATEGORY_LABELS.get(self.category, self.category)
        return f"{label}: {self.selection}"

    def as_payload(self) -> Dict[str, Any]:
        return {
            "fixtureId": self.fixture_id,
            "category": self.category,
            "betType": self.bet_type,
            "selection": self.selection,
            "line": self.line,
            "odds": self.odds,
            "bookmaker": self.bookmaker,
            "marketLiquidity": self.liquidity.value,
            "calculatedProbability": self.calculated_probability.as_payload(),
            "impliedProbability": self.implied_probability,
            "edge": round(self.edge, 2),
            "expectedValue": self.expected_value,
            "confidenceScore": self.confidence_score,
            "predictionStability": self.stability.value,
            "recommendedStake": self.recommended_stake.as_payload(),
            "dataSources": list(self.data_sources),
        }


@dataclasses.dataclass(frozen=True, slots=True)
class RiskAssessment:
    """Binary-outcome loss figures in units (1 unit = 1% of bankroll)."""

    var: float
    cvar: float
    expected_value: float
    key_risks: Tuple[str, ...] = ()
    potential_failures: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.var < 0 or self.cvar < 0:
            raise ValidationError("VaR and CVaR must be non-negative")
        if self.cvar < self.var:
            raise ValidationError(f"CVaR ({self.cvar}) must not be below VaR ({self.var})")
        object.__setattr__(self, "key_risks", tuple(self.key_risks))
        object.__setattr__(self, "potential_failures", tuple(self.potential_failures))

    def as_payload(self) -> Dict[str, Any]:
        return {
            "var": self.var,
            "cvar": self.cvar,
            "expectedValue": self.expected_value,
            "keyRisks": list(self.key_risks),
            "potentialFailures": list(self.potential_failures),
        }


@dataclasses.dataclass(frozen=True, slots=True)
class ContingencyPick:
    fixture_id: str
    sport: str
    match: str
    bet_type: str
    selection: str
    odds: float
    confidence_score: float
    stake_size: str
    trigger_conditions: Tuple[str, ...] = ()

    def as_payload(self) -> Dict[str, Any]:
        return {
            "fixtureId": self.fixture_id,
            "sport": self.sport,
            "match": self.match,
            "betType": self.bet_type,
            "selection": self.selection,
            "odds": self.odds,
            "confidenceScore": self.confidence_score,
            "stakeSize": self.stake_size,
            "triggerConditions": list(self.trigger_conditions),
        }


@dataclasses.dataclass(frozen=True, slots=True)
class ApexPrediction:
    id: str
    fixture_id: str
    sport: str
    league: str | None
    match: str
    home_team: str
    away_team: str
    markets: Tuple[BettingMarket, ...]
    primary_market: BettingMarket
    risk_assessment: RiskAssessment
    contingency_pick: ContingencyPick | None
    prediction_stability: Stability
    timestamp: dt.datetime
    data_quality_score: float = 0.0
    main_data_sources: Tuple[str, ...] = ()

    @property
    def bet_type(self) -> str:
        return self.primary_market.bet_type

    @property
    def best_odds(self) -> float:
        return self.primary_market.odds

    @property
    def edge(self) -> float:
        return self.primary_market.edge

    @property
    def confidence_score(self) -> float:
        return self.primary_market.confidence_score

    @property
    def total_data_sources(self) -> int:
        return len(self.main_data_sources)

    def alternative_markets(self) -> List[BettingMarket]:
        return [market for market in self.markets if market is not self.primary_market]

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fixtureId": self.fixture_id,
            "sport": self.sport,
            "league": self.league,
            "match": self.match,
            "homeTeam": self.home_team,
            "awayTeam": self.away_team,
            "betType": self.bet_type,
            "bestOdds": self.best_odds,
            "edge": round(self.edge, 2),
            "confidenceScore": self.confidence_score,
            "primaryMarket": self.primary_market.as_payload(),
            "markets": [market.as_payload() for market in self.markets],
            "riskAssessment": self.risk_assessment.as_payload(),
            "contingencyPick": (
                self.contingency_pick.as_payload() if self.contingency_pick else None
            ),
            "predictionStability": self.prediction_stability.value,
            "dataQualityScore": self.data_quality_score,
            "totalDataSources": self.total_data_sources,
            "mainDataSources": list(self.main_data_sources),
            "timestamp": self.timestamp.isoformat(),
        }


def parse_category(name: str, raw: Mapping[str, Any]) -> _CategoryPayload:
    """Validate one category payload, raising :class:`ValidationError`."""

    model = CATEGORY_MODELS[name]
    try:
        return model.model_validate(dict(thaw(raw)))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {name} payload: {exc.error_count()} error(s)") from exc


__all__ = [
    "AdvancedStats",
    "ApexPrediction",
    "BettingMarket",
    "CATEGORIES",
    "CATEGORY_MODELS",
    "ContingencyPick",
    "EnrichedProfile",
    "EntitySpec",
    "Fixture",
    "GOAL_SPORTS",
    "Liquidity",
    "MarketOffer",
    "NewsPayload",
    "Probability",
    "RawRecord",
    "RecommendedStake",
    "RiskAssessment",
    "SentimentPayload",
    "SourceQuality",
    "Stability",
    "StandingsPayload",
    "StatsPayload",
    "canonical_sport",
    "parse_category",
    "thaw",
]
