"""
Canonical typed structures.

Upstream payloads (database JSON columns, per-ticker JSON files, provider chart
responses) are converted into these at the boundary by the normalizers; nothing
past the normalizers sees raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class DataSourceMode(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Lookback(str, Enum):
    ONE_YEAR = "1Y"
    THREE_YEARS = "3Y"
    FIVE_YEARS = "5Y"
    MAX = "MAX"

    @classmethod
    def parse(cls, value: str | Lookback) -> Lookback:
        if isinstance(value, Lookback):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(
                f"lookback must be one of {[m.value for m in cls]}, got {value!r}"
            ) from None

    @property
    def quarters(self) -> int | None:
        """Number of quarter buckets, or None for MAX (data-dependent)."""
        return {"1Y": 4, "3Y": 12, "5Y": 20}.get(self.value)


# ---------------------------------------------------------------------------
# Price data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PeriodSeries:
    ticker: str
    period: str
    dates: tuple[date, ...]
    prices: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.dates) != len(self.prices) or not self.dates:
            raise ValueError(
                f"PeriodSeries requires equal, non-zero lengths "
                f"(dates={len(self.dates)}, prices={len(self.prices)})"
            )


@dataclass(frozen=True)
class PriceQuote:
    date: date
    price: float


@dataclass(frozen=True)
class PricePoint:
    """One point of a profile's chart history."""

    date: date
    price: float


# ---------------------------------------------------------------------------
# Dividends
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DividendEvent:
    """Dividend as received from upstream; the timestamp encoding is unknown."""

    raw_timestamp: str | int | float
    amount: float


@dataclass(frozen=True)
class NormalizedDividendEvent:
    date: date
    amount: float


@dataclass(frozen=True)
class QuarterBucket:
    label: str
    start_date: date
    end_date: date
    ticker_dividend: float = 0.0
    benchmark_dividend: float = 0.0
    ticker_yield_annualized: float = 0.0
    benchmark_yield_annualized: float = 0.0
    ticker_price: float | None = None
    benchmark_price: float | None = None


@dataclass(frozen=True)
class ComparisonSummary:
    ticker_total_dividend: float
    benchmark_total_dividend: float
    ticker_average_yield: float
    benchmark_average_yield: float
    yield_difference: float
    ticker_paying_quarters: int
    benchmark_paying_quarters: int


@dataclass(frozen=True)
class DividendComparison:
    ticker: str
    benchmark: str
    lookback: Lookback
    quarters: tuple[QuarterBucket, ...]
    summary: ComparisonSummary


# ---------------------------------------------------------------------------
# Profiles and scoring
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Fundamentals:
    """Raw fundamentals in Yahoo units (ratios as fractions, change_percent in %)."""

    price: float | None = None
    profit_margins: float | None = None
    return_on_equity: float | None = None
    revenue_growth: float | None = None
    earnings_growth: float | None = None
    beta: float | None = None
    debt_to_equity: float | None = None
    dividend_yield: float | None = None
    trailing_pe: float | None = None
    price_to_book: float | None = None
    target_mean_price: float | None = None
    change_percent: float | None = None
    fifty_day_average: float | None = None


@dataclass(frozen=True)
class MetricScores:
    performance: float
    stability: float
    value: float
    momentum: float
    quality: str


@dataclass(frozen=True)
class StockProfile:
    symbol: str
    name: str
    source: str
    price: float | None = None
    change: float | None = None
    change_percent: float | None = None
    previous_close: float | None = None
    day_high: float | None = None
    day_low: float | None = None
    volume: float | None = None
    average_volume: float | None = None
    market_cap: float | None = None
    beta: float | None = None
    pe_ratio: float | None = None
    eps: float | None = None
    sector: str = ""
    industry: str = ""
    dividend_yield: float | None = None   # percent
    target_high_price: float | None = None
    target_low_price: float | None = None
    target_mean_price: float | None = None
    recommendation_key: str = ""
    description: str = ""
    metrics: MetricScores | None = None
    history: tuple[PricePoint, ...] = field(default_factory=tuple)
