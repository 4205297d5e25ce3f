from __future__ import annotations

import logging

import pytest

from apexpick.errors import StakeCapViolation, ValidationError
from apexpick.staking import KellyCriterion, StakeSizer, kelly_descriptor


def test_quarter_kelly_scaled_by_confidence() -> None:
    stake = StakeSizer().recommend_stake(edge=5.0, odds=2.0, confidence_score=80.0)

    assert stake.percentage_of_bankroll == pytest.approx(2.0)
    assert stake.unit_description == "2.00 units"
    assert stake.kelly_fraction == "Quarter Kelly"


def test_large_edges_are_clamped_to_cap(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="apexpick.staking"):
        stake = StakeSizer().recommend_stake(edge=40.0, odds=2.0, confidence_score=100.0)

    assert stake.percentage_of_bankroll == pytest.approx(5.0)
    assert "clamped" in caplog.text


def test_negative_edge_means_no_stake() -> None:
    stake = StakeSizer().recommend_stake(edge=-3.0, odds=2.5, confidence_score=90.0)

    assert stake.percentage_of_bankroll == 0.0
    assert stake.unit_description == "0.00 units"


def test_custom_cap_and_multiplier() -> None:
    sizer = StakeSizer(stake_cap=2.5, kelly_multiplier=0.5)
    stake = sizer.recommend_stake(edge=10.0, odds=3.0, confidence_score=100.0)

    # p = 0.4333, f* = (3 * 0.4333 - 1) / 2 = 0.15 -> half Kelly 7.5% -> cap 2.5%
    assert stake.percentage_of_bankroll == pytest.approx(2.5)
    assert stake.kelly_fraction == "Half Kelly"


@pytest.mark.parametrize(
    ("edge", "odds", "confidence"),
    [(5.0, 1.0, 50.0), (5.0, 2.0, 120.0), (80.0, 2.0, 50.0), (-60.0, 2.0, 50.0), (float("nan"), 2.0, 50.0)],
)
def test_invalid_inputs_raise(edge, odds, confidence) -> None:
    with pytest.raises(ValidationError):
        StakeSizer().recommend_stake(edge, odds, confidence)


def test_constructor_validation() -> None:
    with pytest.raises(ValidationError):
        StakeSizer(stake_cap=0)
    with pytest.raises(ValidationError):
        StakeSizer(kelly_multiplier=1.5)


def test_kelly_fraction_and_descriptor() -> None:
    assert KellyCriterion.fraction(0.55, 2.0) == pytest.approx(0.1)
    assert KellyCriterion.fraction(0.4, 2.0) == 0.0
    assert kelly_descriptor(0.125) == "Eighth Kelly"
    assert kelly_descriptor(0.3) == "0.30x Kelly"


def test_cap_violation_is_an_assertion_error() -> None:
    assert issubclass(StakeCapViolation, AssertionError)
