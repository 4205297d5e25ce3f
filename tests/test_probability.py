"""Normalisation, outcome models, calibration and edge."""

from __future__ import annotations

import pytest

from apexpick.errors import ValidationError
from apexpick.models import Probability, Stability
from apexpick.probability import (
    EdgeCalculator,
    ProbabilityModel,
    ScoreDistribution,
    fair_three_way_from_odds,
    fair_two_way_from_odds,
    logistic_win_probability,
    normalize_three_way,
    normalize_two_way,
    poisson_pmf,
)


def test_normalize_three_way_keeps_proportions() -> None:
    assert normalize_three_way(50, 30, 20) == (50.0, 30.0, 20.0)
    assert normalize_three_way(25, 15, 10) == (50.0, 30.0, 20.0)


def test_normalize_three_way_respects_bounds() -> None:
    home, draw, away = normalize_three_way(100, 0, 0)

    assert (home, draw, away) == (90.0, 5.0, 5.0)


def test_normalize_two_way() -> None:
    assert normalize_two_way(60, 60) == (50.0, 50.0)
    first, second = normalize_two_way(99, 1)
    assert (first, second) == (95.0, 5.0)


def test_fair_prices_remove_margin() -> None:
    assert fair_two_way_from_odds(1.9, 1.9) == (50.0, 50.0)
    assert fair_two_way_from_odds(1.9, 1.9, adjustment=0.5) == (55.0, 45.0)
    assert fair_three_way_from_odds(2.0, 4.0, 4.0) == (50.0, 25.0, 25.0)

    home, draw, away = fair_three_way_from_odds(2.0, 4.0, 4.0, adjustment=0.2)
    assert home == pytest.approx(53.0)
    assert draw == pytest.approx(24.1)
    assert away == pytest.approx(22.9)


def test_score_distribution_partitions_outcomes() -> None:
    distribution = ScoreDistribution.from_expectation(1.6, 1.1)

    winner = sum(distribution.match_winner(outcome) for outcome in ("home", "draw", "away"))
    assert winner == pytest.approx(100.0)
    assert distribution.total("over", 2.5) + distribution.total("under", 2.5) == pytest.approx(100.0)
    assert distribution.both_teams_score("yes") + distribution.both_teams_score("no") == pytest.approx(100.0)
    assert distribution.match_winner("home") > distribution.match_winner("away")
    assert distribution.handicap("home", 0.5) == pytest.approx(
        distribution.match_winner("home") + distribution.match_winner("draw")
    )


def test_poisson_pmf_edge_cases() -> None:
    assert poisson_pmf(0, 0.0) == 1.0
    assert poisson_pmf(2, 0.0) == 0.0
    assert poisson_pmf(1, 1.0) == pytest.approx(0.36788, rel=1e-4)


def test_logistic_win_probability_is_symmetric() -> None:
    assert logistic_win_probability(0.0) == pytest.approx(50.0)
    assert logistic_win_probability(1.5) + logistic_win_probability(-1.5) == pytest.approx(100.0)
    assert logistic_win_probability(1e6) == pytest.approx(100.0)


def test_calibrate_single_signal() -> None:
    calibration = ProbabilityModel().calibrate([58.0], data_quality=100.0)

    assert calibration.probability == Probability(58.0, 53.0, 63.0)
    assert calibration.confidence == pytest.approx(66.7)
    assert calibration.signal_count == 1


def test_calibrate_disagreement_widens_range() -> None:
    calibration = ProbabilityModel().calibrate([50.0, 60.0], data_quality=50.0)

    assert calibration.probability.ensemble_average == pytest.approx(55.0)
    assert calibration.probability.lower == pytest.approx(42.5)
    assert calibration.probability.upper == pytest.approx(67.5)
    assert calibration.confidence == pytest.approx(50.0)


def test_calibrate_bounds_average() -> None:
    calibration = ProbabilityModel().calibrate([99.0, 99.0, 99.0], data_quality=100.0)

    assert calibration.probability.ensemble_average == pytest.approx(95.0)
    assert calibration.probability.upper == pytest.approx(100.0)
    assert calibration.confidence == pytest.approx(100.0)


@pytest.mark.parametrize("signals", [[], [120.0], [float("nan")]])
def test_calibrate_rejects_bad_signals(signals) -> None:
    with pytest.raises(ValidationError):
        ProbabilityModel().calibrate(signals, data_quality=50.0)


def test_edge_against_implied_probability() -> None:
    implied = EdgeCalculator.implied_probability(1.75)

    assert implied == pytest.approx(57.14)
    assert EdgeCalculator.edge(58.0, implied) == pytest.approx(0.86)


def test_stability_buckets() -> None:
    tight = Probability(58.0, 53.0, 63.0)
    wide = Probability(30.0, 10.0, 50.0)

    assert EdgeCalculator.stability(tight, confidence=70.0, data_quality=60.0) is Stability.HIGH
    assert EdgeCalculator.stability(tight, confidence=50.0, data_quality=60.0) is Stability.MEDIUM
    assert EdgeCalculator.stability(wide, confidence=90.0, data_quality=90.0) is Stability.LOW
    assert EdgeCalculator.stability_weight(Stability.MEDIUM) == 60


def test_probability_invariants() -> None:
    with pytest.raises(ValidationError):
        Probability(50.0, 55.0, 60.0)
    with pytest.raises(ValidationError):
        Probability(50.0, 40.0, 101.0)
