"""Primary/contingency selection and prediction assembly."""

from __future__ import annotations

import datetime as dt

import polars as pl
import pytest

from apexpick.composer import (
    FixtureAnalysis,
    PredictionComposer,
    markets_frame,
    rank_markets,
    to_storage_record,
)
from apexpick.errors import ValidationError
from apexpick.markets import MatchContext
from apexpick.models import (
    AdvancedStats,
    BettingMarket,
    EnrichedProfile,
    EntitySpec,
    Fixture,
    MarketOffer,
    NewsPayload,
    Probability,
    RawRecord,
    RecommendedStake,
    Stability,
)


def _profile(name: str, **categories) -> EnrichedProfile:
    return EnrichedProfile(
        entity=EntitySpec("soccer", name),
        data_sources=(RawRecord("feed", "high", {"stats": {"xG": 1.5}}),),
        data_quality_score=100.0,
        **categories,
    )


def _context(fixture_id: str = "ars-che", home: str = "Arsenal", away: str = "Chelsea", **kwargs) -> MatchContext:
    fixture = Fixture(fixture_id, "soccer", home, away, league="Premier League")
    return MatchContext(
        fixture=fixture,
        home_profile=kwargs.get("home_profile") or _profile(home),
        away_profile=kwargs.get("away_profile") or _profile(away),
        home_stats=AdvancedStats(xg=1.5, xga=1.0),
        away_stats=AdvancedStats(xg=1.1, xga=1.3),
    )


def _market(
    fixture_id: str,
    category: str,
    outcome: str,
    *,
    probability: float,
    odds: float,
    confidence: float,
    selection: str | None = None,
    line: float | None = None,
) -> BettingMarket:
    offer = MarketOffer(category, selection or outcome.title(), outcome, odds, line=line)
    return BettingMarket.from_offer(
        fixture_id,
        offer,
        probability=Probability(probability, max(0.0, probability - 6), min(100.0, probability + 6)),
        confidence_score=confidence,
        stability=Stability.MEDIUM,
        recommended_stake=RecommendedStake("Quarter Kelly", "1.00 units", 1.0),
        data_sources=("feed",),
    )


@pytest.fixture()
def fixed_clock(now: dt.datetime):
    return lambda: now


def test_rank_markets_by_edge_then_confidence() -> None:
    a = _market("f", "match_winner", "home", probability=60, odds=2.0, confidence=50)
    b = _market("f", "match_winner", "away", probability=30, odds=4.0, confidence=80)
    c = _market("f", "btts", "yes", probability=60, odds=2.0, confidence=70)

    assert rank_markets([a, b, c]) == [c, a, b]


def test_primary_prefers_confident_markets() -> None:
    composer = PredictionComposer(min_confidence=55)
    sharp = _market("f", "match_winner", "home", probability=60, odds=2.0, confidence=50)
    steady = _market("f", "btts", "yes", probability=56, odds=2.0, confidence=60)

    assert composer.select_primary([sharp, steady]) is steady
    assert PredictionComposer(min_confidence=90).select_primary([sharp, steady]) is sharp
    with pytest.raises(ValidationError):
        composer.select_primary([])


def test_contingency_comes_from_a_different_market() -> None:
    composer = PredictionComposer()
    context = _context()
    other = _context("liv-eve", "Liverpool", "Everton")
    primary = _market("ars-che", "match_winner", "home", probability=60, odds=1.95, confidence=70, selection="Arsenal")
    same_category = _market("ars-che", "match_winner", "draw", probability=40, odds=3.6, confidence=70)
    totals = _market("ars-che", "totals", "over", probability=55, odds=2.0, confidence=65, line=2.5)
    elsewhere = _market("liv-eve", "btts", "yes", probability=58, odds=2.0, confidence=60)
    pool = [(context, primary), (context, same_category), (context, totals), (other, elsewhere)]

    pick = composer.select_contingency(primary, pool)

    assert pick is not None
    assert pick.fixture_id == "liv-eve"
    assert pick.match == "Liverpool vs Everton"
    assert pick.bet_type == "Both Teams To Score: Yes"
    assert pick.trigger_conditions[0] == "If Match Winner: Arsenal odds drop below 1.80"
    assert pick.trigger_conditions[1] == "If the primary selection is suspended or voided"


def test_contingency_triggers_mention_injury_news() -> None:
    composer = PredictionComposer()
    injured = _profile("Chelsea", news=NewsPayload(injuries=("Palmer doubtful",)))
    context = _context(away_profile=injured)
    primary = _market("ars-che", "match_winner", "home", probability=60, odds=1.95, confidence=70)
    totals = _market("ars-che", "totals", "under", probability=52, odds=2.0, confidence=65, line=2.5)

    pick = composer.select_contingency(primary, [(context, primary), (context, totals)])

    assert pick is not None
    assert "If Chelsea injury news is confirmed" in pick.trigger_conditions
    assert composer.select_contingency(primary, [(context, primary)]) is None


def test_compose_builds_complete_prediction(fixed_clock, now: dt.datetime) -> None:
    composer = PredictionComposer(clock=fixed_clock)
    context = _context()
    markets = (
        _market("ars-che", "match_winner", "home", probability=58, odds=1.95, confidence=72, selection="Arsenal"),
        _market("ars-che", "btts", "yes", probability=57, odds=1.8, confidence=66, selection="Yes"),
        _market("ars-che", "totals", "over", probability=50, odds=1.9, confidence=60, selection="Over 2.5", line=2.5),
    )
    prediction = composer.compose(FixtureAnalysis(context=context, markets=markets))

    assert prediction.id == f"apex-ars-che-{int(now.timestamp())}"
    assert prediction.match == "Arsenal vs Chelsea"
    assert prediction.primary_market.selection == "Arsenal"
    assert prediction.bet_type == "Match Winner: Arsenal"
    assert prediction.best_odds == pytest.approx(1.95)
    assert prediction.edge == pytest.approx(58 - 51.28)
    assert [m.selection for m in prediction.markets] == ["Arsenal", "Yes", "Over 2.5"]
    assert prediction.alternative_markets()[0].selection == "Yes"
    assert prediction.contingency_pick is not None
    assert prediction.contingency_pick.selection == "Yes"
    assert prediction.risk_assessment.cvar >= prediction.risk_assessment.var
    assert prediction.data_quality_score == pytest.approx(100.0)
    assert prediction.main_data_sources == ("feed",)
    assert prediction.total_data_sources == 1
    assert prediction.timestamp == now

    payload = prediction.as_payload()
    assert payload["betType"] == "Match Winner: Arsenal"
    assert payload["primaryMarket"]["calculatedProbability"]["ensembleAverage"] == 58
    assert payload["timestamp"] == now.isoformat()


def test_compose_rejects_fixture_without_markets() -> None:
    with pytest.raises(ValidationError):
        PredictionComposer().compose(FixtureAnalysis(context=_context(), markets=()))


def test_compose_all_skips_empty_and_sorts(fixed_clock) -> None:
    composer = PredictionComposer(clock=fixed_clock)
    weak = FixtureAnalysis(
        context=_context(),
        markets=(_market("ars-che", "btts", "yes", probability=50, odds=1.9, confidence=70),),
    )
    strong = FixtureAnalysis(
        context=_context("liv-eve", "Liverpool", "Everton"),
        markets=(_market("liv-eve", "match_winner", "home", probability=70, odds=1.7, confidence=80),),
    )
    empty = FixtureAnalysis(context=_context("mci-tot", "Man City", "Spurs"), markets=())

    predictions = composer.compose_all([weak, strong, empty])

    assert [p.fixture_id for p in predictions] == ["liv-eve", "ars-che"]
    assert composer.select_apex([weak, strong, empty]).fixture_id == "liv-eve"
    assert composer.select_apex([empty]) is None
    # Each prediction's contingency comes from the other fixture.
    assert predictions[0].contingency_pick.fixture_id == "ars-che"


def test_storage_record_and_frame(fixed_clock, now: dt.datetime) -> None:
    composer = PredictionComposer(clock=fixed_clock)
    analysis = FixtureAnalysis(
        context=_context(),
        markets=(
            _market("ars-che", "btts", "yes", probability=50, odds=1.9, confidence=70),
            _market("ars-che", "match_winner", "home", probability=60, odds=1.9, confidence=70),
        ),
    )
    prediction = composer.compose(analysis)

    record = to_storage_record(prediction, dt.timedelta(hours=24))
    assert record["id"] == prediction.id
    assert record["expiresAt"] == (now + dt.timedelta(hours=24)).isoformat()
    assert record["data"]["match"] == "Arsenal vs Chelsea"

    frame = markets_frame([prediction])
    assert isinstance(frame, pl.DataFrame)
    assert frame.height == 2
    assert frame["edge"].to_list() == sorted(frame["edge"].to_list(), reverse=True)
    assert frame.filter(pl.col("primary"))["bet_type"].to_list() == ["Match Winner: Home"]
    assert markets_frame([]).is_empty()
