"""
Dividend yield comparison: ticker vs benchmark, bucketed by calendar quarter.

Pipeline:
  1. Fan out four fetches concurrently (ticker dividends, benchmark dividends,
     ticker prices, benchmark prices), each with a timeout. Any failure fails
     the whole comparison with DataUnavailable; a one-sided comparison is
     never returned.
  2. Normalize dividend timestamps. Events whose timestamp cannot be resolved
     are dropped rather than re-dated to "now"; events outside the window are
     discarded.
  3. Build every calendar quarter from the lookback start to the current
     quarter, inclusive, whether or not anything was paid in it.
  4. Per quarter and instrument:
       dividend = sum of events dated inside [quarter_start, quarter_end]
       price    = latest quote inside the quarter
                  else earliest quote within QUARTER_END_EXTENSION_DAYS after quarter end
                  else latest quote available for the instrument
  5. yield = dividend / price * 100, annualized * 4 (assumes quarterly payers).
     No dividend -> 0.0 dividend and 0.0 yield, never None/NaN.
  6. Summary: totals, mean of the non-zero annualized yields per instrument.

Quotes from up to PRICE_GRACE_DAYS before the window start are fetched and
kept so early quarters still have a nearby price to match against.
"""

import asyncio
import logging
from bisect import bisect_right
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone

from stockdata.domain import (
    ComparisonSummary,
    DividendComparison,
    DividendEvent,
    Lookback,
    NormalizedDividendEvent,
    PriceQuote,
    QuarterBucket,
)
from stockdata.normalizers.timestamp_normalizer import YEARS_BACK, parse_timestamp
from stockdata.services.downstream import guarded
from stockdata.services.market_data import MarketDataSource

logger = logging.getLogger(__name__)

QUARTERS_PER_YEAR: int = 4
PRICE_GRACE_DAYS: int = 30
QUARTER_END_EXTENSION_DAYS: int = 7
MAX_QUARTERS: int = YEARS_BACK * QUARTERS_PER_YEAR


# ---------------------------------------------------------------------------
# Quarter helpers
# ---------------------------------------------------------------------------

def quarter_of(d: date) -> tuple[int, int]:
    return d.year, (d.month - 1) // 3 + 1


def _shift(year: int, quarter: int, n: int) -> tuple[int, int]:
    idx = year * 4 + (quarter - 1) + n
    return idx // 4, idx % 4 + 1


def quarter_bounds(year: int, quarter: int) -> tuple[date, date]:
    start = date(year, 3 * (quarter - 1) + 1, 1)
    next_year, next_quarter = _shift(year, quarter, 1)
    return start, date(next_year, 3 * (next_quarter - 1) + 1, 1) - timedelta(days=1)


def quarters_between(first: date, last: date) -> int:
    fy, fq = quarter_of(first)
    ly, lq = quarter_of(last)
    return (ly * 4 + lq) - (fy * 4 + fq) + 1


def build_quarter_timeline(count: int, today: date) -> list[tuple[str, date, date]]:
    """`count` quarters ending with the quarter containing `today`, oldest first."""
    year, quarter = quarter_of(today)
    timeline = []
    for back in range(count - 1, -1, -1):
        y, q = _shift(year, quarter, -back)
        start, end = quarter_bounds(y, q)
        timeline.append((f"Q{q} {y}", start, end))
    return timeline


def window_start(lookback: Lookback, today: date) -> date:
    """First day covered by `lookback`. MAX reaches back as far as timestamps are trusted."""
    if lookback.quarters is None:
        return date(today.year - YEARS_BACK, 1, 1)
    return build_quarter_timeline(lookback.quarters, today)[0][1]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class _PriceIndex:
    """Quotes sorted by date with the quarter-end matching rule."""

    def __init__(self, quotes: Sequence[PriceQuote]):
        self._quotes = sorted(quotes, key=lambda q: q.date)
        self._dates = [q.date for q in self._quotes]

    def match(self, start: date, end: date) -> float | None:
        if not self._quotes:
            return None
        after_end = bisect_right(self._dates, end)
        if after_end > 0 and self._dates[after_end - 1] >= start:
            return self._quotes[after_end - 1].price
        limit = end + timedelta(days=QUARTER_END_EXTENSION_DAYS)
        if after_end < len(self._dates) and self._dates[after_end] <= limit:
            return self._quotes[after_end].price
        return self._quotes[-1].price


def annualized_yield(dividend: float, price: float | None) -> float:
    if dividend <= 0 or price is None or price <= 0:
        return 0.0
    return dividend / price * 100 * QUARTERS_PER_YEAR


def _mean_nonzero(values: Sequence[float]) -> float:
    nonzero = [v for v in values if v > 0]
    return sum(nonzero) / len(nonzero) if nonzero else 0.0


def summarize(buckets: Sequence[QuarterBucket]) -> ComparisonSummary:
    ticker_avg = _mean_nonzero([b.ticker_yield_annualized for b in buckets])
    benchmark_avg = _mean_nonzero([b.benchmark_yield_annualized for b in buckets])
    return ComparisonSummary(
        ticker_total_dividend=sum(b.ticker_dividend for b in buckets),
        benchmark_total_dividend=sum(b.benchmark_dividend for b in buckets),
        ticker_average_yield=ticker_avg,
        benchmark_average_yield=benchmark_avg,
        yield_difference=ticker_avg - benchmark_avg,
        ticker_paying_quarters=sum(1 for b in buckets if b.ticker_dividend > 0),
        benchmark_paying_quarters=sum(1 for b in buckets if b.benchmark_dividend > 0),
    )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class DividendYieldAggregator:
    def __init__(self, source: MarketDataSource, *, timeout_s: float):
        self._source = source
        self._timeout_s = timeout_s

    def _normalize_events(
        self,
        ticker: str,
        events: Sequence[DividendEvent],
        start: date,
        end: date,
        now: datetime,
    ) -> list[NormalizedDividendEvent]:
        normalized: list[NormalizedDividendEvent] = []
        unresolved = outside = 0
        for event in events:
            ts = parse_timestamp(event.raw_timestamp, now=now)
            if ts is None:
                unresolved += 1
                continue
            d = ts.date()
            if not start <= d <= end:
                outside += 1
                continue
            normalized.append(NormalizedDividendEvent(date=d, amount=event.amount))

        if unresolved:
            logger.warning("[DIVIDENDS] %s: dropped %d events with unresolvable timestamps",
                           ticker, unresolved)
        logger.debug("[DIVIDENDS] %s: %d events in window, %d outside",
                     ticker, len(normalized), outside)
        return sorted(normalized, key=lambda e: e.date)

    async def _fetch_all(self, ticker: str, benchmark: str, start: date, end: date):
        def guard(awaitable, what: str):
            return guarded(awaitable, source=what, timeout_s=self._timeout_s)

        return await asyncio.gather(
            guard(self._source.fetch_dividends(ticker, start, end), f"dividends:{ticker}"),
            guard(self._source.fetch_dividends(benchmark, start, end), f"dividends:{benchmark}"),
            guard(self._source.fetch_prices(ticker, start, end), f"prices:{ticker}"),
            guard(self._source.fetch_prices(benchmark, start, end), f"prices:{benchmark}"),
        )

    async def compare(
        self,
        ticker: str,
        benchmark: str,
        lookback: Lookback | str = Lookback.THREE_YEARS,
        *,
        today: date | None = None,
    ) -> DividendComparison | None:
        """
        Quarterly dividend comparison of `ticker` against `benchmark`.

        Returns None when either instrument has no price data at all.
        Raises DataUnavailable when any underlying fetch fails or times out,
        ValueError for an unknown lookback or empty ticker.
        """
        lookback = Lookback.parse(lookback)
        ticker, benchmark = ticker.strip().upper(), benchmark.strip().upper()
        if not ticker or not benchmark:
            raise ValueError("ticker and benchmark are required")

        if today is None:
            now = datetime.now(timezone.utc)
            today = now.date()
        else:
            now = datetime.combine(today, time(12), tzinfo=timezone.utc)

        start = window_start(lookback, today)
        fetch_start = start - timedelta(days=PRICE_GRACE_DAYS)
        logger.info("[DIVIDENDS] comparing %s vs %s over %s (%s..%s)",
                    ticker, benchmark, lookback.value, start, today)

        t_events, b_events, t_quotes, b_quotes = await self._fetch_all(ticker, benchmark, fetch_start, today)

        if not t_quotes or not b_quotes:
            logger.info("[DIVIDENDS] no price data for %s",
                        " / ".join(s for s, q in ((ticker, t_quotes), (benchmark, b_quotes)) if not q))
            return None

        t_divs = self._normalize_events(ticker, t_events, start, today, now)
        b_divs = self._normalize_events(benchmark, b_events, start, today, now)

        count = lookback.quarters
        if count is None:
            firsts = [
                max(start, min(item.date for item in series))
                for series in (t_divs, b_divs, t_quotes, b_quotes) if series
            ]
            count = min(MAX_QUARTERS, quarters_between(min(firsts), today))
        timeline = build_quarter_timeline(count, today)

        t_prices, b_prices = _PriceIndex(t_quotes), _PriceIndex(b_quotes)
        buckets = []
        for label, q_start, q_end in timeline:
            t_div = sum(e.amount for e in t_divs if q_start <= e.date <= q_end)
            b_div = sum(e.amount for e in b_divs if q_start <= e.date <= q_end)
            t_price = t_prices.match(q_start, q_end)
            b_price = b_prices.match(q_start, q_end)
            buckets.append(QuarterBucket(
                label=label,
                start_date=q_start,
                end_date=q_end,
                ticker_dividend=float(t_div),
                benchmark_dividend=float(b_div),
                ticker_yield_annualized=annualized_yield(t_div, t_price),
                benchmark_yield_annualized=annualized_yield(b_div, b_price),
                ticker_price=t_price,
                benchmark_price=b_price,
            ))

        summary = summarize(buckets)
        logger.info("[DIVIDENDS] %s avg %.2f%% vs %s avg %.2f%% over %d quarters",
                    ticker, summary.ticker_average_yield,
                    benchmark, summary.benchmark_average_yield, len(buckets))
        return DividendComparison(
            ticker=ticker,
            benchmark=benchmark,
            lookback=lookback,
            quarters=tuple(buckets),
            summary=summary,
        )
