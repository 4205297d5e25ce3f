"""Property-based checks for the numeric core of the pipeline."""

from __future__ import annotations

from typing import List

import pytest
from hypothesis import given, strategies as st

from apexpick.aggregator import data_quality_score
from apexpick.cache import TTLCache
from apexpick.models import RawRecord, SourceQuality
from apexpick.probability import EdgeCalculator, ProbabilityModel, normalize_three_way, normalize_two_way
from apexpick.risk import binary_var_cvar
from apexpick.specialty import over_probability
from apexpick.staking import StakeSizer

_percent = st.floats(min_value=0.0, max_value=100.0, allow_nan=False, allow_infinity=False)
_odds = st.floats(min_value=1.01, max_value=20.0, allow_nan=False, allow_infinity=False)


@st.composite
def _records(draw: st.DrawFn) -> tuple[List[RawRecord], int]:
    qualities = draw(st.lists(st.sampled_from(list(SourceQuality)), max_size=6))
    records = [
        RawRecord(f"source-{index}", quality, {"stats": {"xG": 1.0}})
        for index, quality in enumerate(qualities)
    ]
    attempted = len(records) + draw(st.integers(min_value=0, max_value=4))
    return records, attempted


@given(
    probability=st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
    odds=_odds,
    confidence=_percent,
    stake_cap=st.sampled_from([1.0, 2.5, 5.0, 10.0]),
    multiplier=st.sampled_from([0.125, 0.25, 0.5, 1.0]),
)
def test_stake_never_exceeds_cap(
    probability: float, odds: float, confidence: float, stake_cap: float, multiplier: float
) -> None:
    sizer = StakeSizer(stake_cap=stake_cap, kelly_multiplier=multiplier)
    edge = EdgeCalculator.edge(probability * 100.0, EdgeCalculator.implied_probability(odds))

    stake = sizer.recommend_stake(edge, odds, confidence)

    assert 0.0 <= stake.percentage_of_bankroll <= stake_cap
    if edge <= 0:
        assert stake.percentage_of_bankroll == 0.0


@pytest.mark.parametrize("odds", [1.3, 1.7])
def test_certain_outcome_stake_is_capped(odds: float) -> None:
    edge = EdgeCalculator.edge(100.0, EdgeCalculator.implied_probability(odds))

    stake = StakeSizer(stake_cap=5.0, kelly_multiplier=1.0).recommend_stake(edge, odds, 100.0)

    assert stake.percentage_of_bankroll == 5.0


@given(
    stake=st.floats(min_value=0.0, max_value=10.0, allow_nan=False),
    probability=st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
    odds=_odds,
    confidence_level=st.floats(min_value=0.5, max_value=0.999, allow_nan=False),
)
def test_cvar_never_below_var(stake: float, probability: float, odds: float, confidence_level: float) -> None:
    var, cvar = binary_var_cvar(stake, probability, odds, confidence_level)

    assert cvar >= var >= 0.0
    assert cvar <= round(stake, 2) + 0.01


@given(first=_percent, second=_percent)
def test_two_way_normalisation_sums_to_hundred(first: float, second: float) -> None:
    a, b = normalize_two_way(first, second)

    assert abs(a + b - 100.0) < 1e-6
    assert 4.9 <= a <= 95.1 and 4.9 <= b <= 95.1


@given(home=_percent, draw=_percent, away=_percent)
def test_three_way_normalisation_stays_in_bounds(home: float, draw: float, away: float) -> None:
    values = normalize_three_way(home, draw, away)

    assert abs(sum(values) - 100.0) <= 0.11
    assert all(5.0 <= value <= 95.0 for value in values)


@given(signals=st.lists(_percent, min_size=1, max_size=5), quality=_percent)
def test_calibrated_range_brackets_average(signals: List[float], quality: float) -> None:
    calibration = ProbabilityModel().calibrate(signals, quality)
    probability = calibration.probability

    assert 0.0 <= probability.lower <= probability.ensemble_average <= probability.upper <= 100.0
    assert 5.0 <= probability.ensemble_average <= 95.0
    assert 1.0 <= calibration.confidence <= 100.0


@given(_records())
def test_quality_score_is_bounded(case: tuple[List[RawRecord], int]) -> None:
    records, attempted = case

    score = data_quality_score(records, attempted)

    assert 0.0 <= score <= 100.0
    assert (score == 0.0) == (not records)


@given(
    ttl=st.integers(min_value=1, max_value=1_000),
    elapsed=st.integers(min_value=0, max_value=2_000),
)
def test_cache_entry_fresh_only_within_ttl(ttl: int, elapsed: int) -> None:
    now = [1_000.0]
    cache = TTLCache(ttl, clock=lambda: now[0])
    cache.set("soccer:arsenal", "profile")

    now[0] += elapsed

    assert (cache.get("soccer:arsenal") == "profile") == (elapsed < ttl)
    assert "soccer:arsenal" in cache.keys()


@given(
    expected=st.floats(min_value=0.1, max_value=30.0, allow_nan=False),
    line=st.floats(min_value=0.5, max_value=30.0, allow_nan=False),
)
def test_over_probability_is_a_percentage(expected: float, line: float) -> None:
    value = over_probability(expected, line)

    assert 0.0 <= value <= 100.0
    assert over_probability(expected + 1.0, line) >= value
