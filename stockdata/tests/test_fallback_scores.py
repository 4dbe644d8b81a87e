"""
Fallback metric scores.

Rules:
  - every family starts at 50, first matching rule per ladder wins, result in [0, 100]
  - a missing field contributes nothing
  - identical input -> identical output
  - no scoring field at all -> None, never invented numbers
"""

import pytest

from stockdata.domain import Fundamentals, MetricScores
from stockdata.services.fallback_scores import (
    compute_metric_scores,
    fundamentals_from_mapping,
    quality_rating,
    score_momentum,
    score_performance,
    score_stability,
    score_value,
)


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------

def test_performance_ladders():
    f = Fundamentals(profit_margins=0.25, return_on_equity=0.15, revenue_growth=-0.01)
    assert score_performance(f) == 60.0   # +10 +5 -5


def test_performance_first_matching_rule_wins():
    # 0.25 matches both "> 0.20" and "> 0.10"; only the first applies
    assert score_performance(Fundamentals(profit_margins=0.25)) == 60.0


def test_stability_ladders():
    f = Fundamentals(beta=0.5, debt_to_equity=0.2, dividend_yield=0.04)
    assert score_stability(f) == 80.0


def test_stability_penalties():
    f = Fundamentals(beta=2.0, debt_to_equity=1.5, dividend_yield=0.0)
    assert score_stability(f) == 30.0


def test_value_uses_target_upside():
    f = Fundamentals(trailing_pe=10, price_to_book=6, price=100.0, target_mean_price=130.0)
    assert score_value(f) == 60.0   # +10 -10 +10


def test_value_skips_upside_when_price_is_zero():
    f = Fundamentals(price=0.0, target_mean_price=130.0)
    assert score_value(f) == 50.0


def test_momentum_ladders():
    f = Fundamentals(change_percent=3.0, price=90.0, fifty_day_average=100.0, earnings_growth=0.15)
    # fifty-day deviation is exactly -0.10, which is not < -0.10
    assert score_momentum(f) == 60.0


def test_extreme_inputs_stay_in_range():
    f = Fundamentals(
        profit_margins=-1000.0, return_on_equity=-1000.0, revenue_growth=-1000.0,
        beta=1e9, debt_to_equity=1e9, trailing_pe=1e9, price_to_book=1e9,
        price=1.0, target_mean_price=1e-9, change_percent=-1e9,
        fifty_day_average=1e9, earnings_growth=-1e9,
    )
    scores = compute_metric_scores(f)
    for value in (scores.performance, scores.stability, scores.value, scores.momentum):
        assert 0.0 <= value <= 100.0
    assert scores.performance == 30.0   # -10 -5 -5
    assert scores.value == 20.0
    assert scores.quality == "Low"


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("values, expected", [
    ((0.3, 0.2, 0.1, 0.2), "High"),
    ((0.1, 0.1, 0.1, 0.0), "Medium"),
    ((0.1, 0.1, 0.0, None), "Low"),      # exactly 0.05 is not above the threshold
    ((None, None, None, None), "Low"),
])
def test_quality_rating(values, expected):
    pm, roe, rg, eg = values
    f = Fundamentals(profit_margins=pm, return_on_equity=roe, revenue_growth=rg, earnings_growth=eg)
    assert quality_rating(f) == expected


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

def test_compute_is_deterministic():
    f = Fundamentals(profit_margins=0.12, beta=1.1, trailing_pe=22.0, change_percent=-1.0)
    assert compute_metric_scores(f) == compute_metric_scores(f)


def test_no_fields_means_insufficient_data():
    assert compute_metric_scores(Fundamentals()) is None


def test_non_finite_fields_count_as_missing():
    assert compute_metric_scores(Fundamentals(beta=float("nan"), trailing_pe=float("inf"))) is None


def test_price_alone_is_not_enough_to_score():
    assert compute_metric_scores(Fundamentals(price=123.0)) is None


def test_single_field_produces_scores():
    scores = compute_metric_scores(Fundamentals(trailing_pe=12.0))
    assert scores == MetricScores(performance=50.0, stability=50.0, value=60.0, momentum=50.0, quality="Low")


# ---------------------------------------------------------------------------
# Boundary conversion
# ---------------------------------------------------------------------------

def test_fundamentals_from_camel_case_mapping():
    f = fundamentals_from_mapping({
        "profitMargins": {"raw": 0.2, "fmt": "20.00%"},
        "beta": "1.2",
        "trailingPE": None,
        "regularMarketPrice": 150,
        "dividendYield": float("nan"),
    })
    assert f.profit_margins == 0.2
    assert f.beta == 1.2
    assert f.trailing_pe is None
    assert f.price == 150.0
    assert f.dividend_yield is None


def test_price_falls_back_to_current_price():
    assert fundamentals_from_mapping({"currentPrice": 99.5}).price == 99.5


def test_overrides_win_when_present():
    f = fundamentals_from_mapping({"beta": 1.2}, beta=0.7, price=None)
    assert f.beta == 0.7
    assert f.price is None


def test_unknown_override_is_rejected():
    with pytest.raises(TypeError):
        fundamentals_from_mapping({}, not_a_field=1.0)
