"""
Fallback metric scores.

Last-resort scoring used when no richer analytics exist for a ticker. Each
metric family starts at BASE_SCORE and walks a fixed list of per-field rule
ladders; within a ladder the first matching rule wins (best-to-worst order).
The result is clamped to [0, 100].

Policy:
  - Missing / non-finite field -> that ladder contributes nothing.
  - Derived ratios (target upside, fifty-day deviation) need both inputs non-zero.
  - Deterministic: no randomness anywhere. When no scoring field is present at
    all, compute_metric_scores() returns None ("insufficient data") instead of
    inventing numbers.
"""

from __future__ import annotations

import math
import operator
from collections.abc import Callable, Mapping
from typing import Any

from stockdata.domain import Fundamentals, MetricScores

BASE_SCORE = 50.0

Rule = tuple[Callable[[float, float], bool], float, float]   # (op, threshold, delta)
Ladder = tuple[Rule, ...]

_GT, _LT = operator.gt, operator.lt


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_num(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def _ratio_less_one(numerator: float | None, denominator: float | None) -> float | None:
    if not _is_num(numerator) or not _is_num(denominator) or numerator == 0 or denominator == 0:
        return None
    return numerator / denominator - 1


def _apply(value: float | None, ladder: Ladder) -> float:
    if not _is_num(value):
        return 0.0
    for op, threshold, delta in ladder:
        if op(value, threshold):
            return delta
    return 0.0


def _score(pairs: list[tuple[float | None, Ladder]]) -> float:
    return _clamp(BASE_SCORE + sum(_apply(v, ladder) for v, ladder in pairs))


# ---------------------------------------------------------------------------
# Rule ladders
# ---------------------------------------------------------------------------

PROFIT_MARGIN: Ladder = ((_GT, 0.20, 10), (_GT, 0.10, 5), (_LT, 0.0, -10))
RETURN_ON_EQUITY: Ladder = ((_GT, 0.20, 10), (_GT, 0.10, 5), (_LT, 0.0, -5))
REVENUE_GROWTH: Ladder = ((_GT, 0.10, 10), (_GT, 0.05, 5), (_LT, 0.0, -5))

BETA: Ladder = ((_LT, 0.8, 10), (_LT, 1.0, 5), (_GT, 1.5, -10))
DEBT_TO_EQUITY: Ladder = ((_LT, 0.3, 10), (_LT, 0.6, 5), (_GT, 1.0, -10))
DIVIDEND_YIELD: Ladder = ((_GT, 0.03, 10), (_GT, 0.015, 5))

TRAILING_PE: Ladder = ((_LT, 15, 10), (_LT, 25, 5), (_GT, 40, -10))
PRICE_TO_BOOK: Ladder = ((_LT, 1.5, 10), (_LT, 3, 5), (_GT, 5, -10))
TARGET_UPSIDE: Ladder = ((_GT, 0.20, 10), (_GT, 0.10, 5), (_LT, -0.10, -10))

CHANGE_PERCENT: Ladder = ((_GT, 5, 10), (_GT, 2, 5), (_LT, -5, -10))
FIFTY_DAY_DEVIATION: Ladder = ((_GT, 0.10, 10), (_GT, 0.05, 5), (_LT, -0.10, -10))
EARNINGS_GROWTH: Ladder = ((_GT, 0.20, 10), (_GT, 0.10, 5), (_LT, 0.0, -10))


# ---------------------------------------------------------------------------
# Metric families
# ---------------------------------------------------------------------------

def score_performance(f: Fundamentals) -> float:
    return _score([
        (f.profit_margins, PROFIT_MARGIN),
        (f.return_on_equity, RETURN_ON_EQUITY),
        (f.revenue_growth, REVENUE_GROWTH),
    ])


def score_stability(f: Fundamentals) -> float:
    return _score([
        (f.beta, BETA),
        (f.debt_to_equity, DEBT_TO_EQUITY),
        (f.dividend_yield, DIVIDEND_YIELD),
    ])


def score_value(f: Fundamentals) -> float:
    return _score([
        (f.trailing_pe, TRAILING_PE),
        (f.price_to_book, PRICE_TO_BOOK),
        (_ratio_less_one(f.target_mean_price, f.price), TARGET_UPSIDE),
    ])


def score_momentum(f: Fundamentals) -> float:
    return _score([
        (f.change_percent, CHANGE_PERCENT),
        (_ratio_less_one(f.price, f.fifty_day_average), FIFTY_DAY_DEVIATION),
        (f.earnings_growth, EARNINGS_GROWTH),
    ])


def quality_rating(f: Fundamentals) -> str:
    """High / Medium / Low from the mean of four growth-and-return ratios (missing = 0)."""
    vals = [f.profit_margins, f.return_on_equity, f.revenue_growth, f.earnings_growth]
    avg = sum(v if _is_num(v) else 0.0 for v in vals) / len(vals)
    if avg > 0.15:
        return "High"
    if avg > 0.05:
        return "Medium"
    return "Low"


_SCORING_FIELDS = (
    "profit_margins", "return_on_equity", "revenue_growth", "earnings_growth",
    "beta", "debt_to_equity", "dividend_yield", "trailing_pe", "price_to_book",
    "target_mean_price", "change_percent", "fifty_day_average",
)


def compute_metric_scores(f: Fundamentals) -> MetricScores | None:
    if not any(_is_num(getattr(f, name)) for name in _SCORING_FIELDS):
        return None
    return MetricScores(
        performance=score_performance(f),
        stability=score_stability(f),
        value=score_value(f),
        momentum=score_momentum(f),
        quality=quality_rating(f),
    )


# ---------------------------------------------------------------------------
# Boundary conversion
# ---------------------------------------------------------------------------

_CAMEL_KEYS: dict[str, tuple[str, ...]] = {
    "price": ("regularMarketPrice", "currentPrice"),
    "profit_margins": ("profitMargins",),
    "return_on_equity": ("returnOnEquity",),
    "revenue_growth": ("revenueGrowth",),
    "earnings_growth": ("earningsGrowth",),
    "beta": ("beta",),
    "debt_to_equity": ("debtToEquity",),
    "dividend_yield": ("dividendYield",),
    "trailing_pe": ("trailingPE",),
    "price_to_book": ("priceToBook",),
    "target_mean_price": ("targetMeanPrice",),
    "change_percent": ("regularMarketChangePercent",),
    "fifty_day_average": ("fiftyDayAverage",),
}


def _coerce(v: Any) -> float | None:
    if isinstance(v, Mapping):           # Yahoo {"raw": .., "fmt": ..} wrapper
        v = v.get("raw")
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def fundamentals_from_mapping(data: Mapping[str, Any] | None, **overrides: float | None) -> Fundamentals:
    """
    Build Fundamentals from a Yahoo-style camelCase mapping.

    Keyword overrides (snake_case) win over mapping values when not None.
    """
    data = data or {}
    values: dict[str, float | None] = {}
    for name, keys in _CAMEL_KEYS.items():
        values[name] = next((c for c in (_coerce(data.get(k)) for k in keys) if c is not None), None)
    for name, v in overrides.items():
        if name not in _CAMEL_KEYS:
            raise TypeError(f"unknown fundamentals field {name!r}")
        coerced = _coerce(v)
        if coerced is not None:
            values[name] = coerced
    return Fundamentals(**values)
