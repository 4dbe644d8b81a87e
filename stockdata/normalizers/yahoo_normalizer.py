"""
Yahoo chart normalizers.

The chart endpoint (v8/finance/chart, events=div) returns result[0] shaped as:

  {
    "timestamp": [1700000000, ...],
    "indicators": {"quote": [{"close": [...], ...}], "adjclose": [{"adjclose": [...]}]},
    "events": {"dividends": {"1700000000": {"amount": 0.24, "date": 1700000000}}}
  }

Quotes use the split-adjusted `close` (what an investor actually paid on that
day), NOT `adjclose`, which already has dividends folded in and would
understate the yield.
"""

import logging
from datetime import datetime
from typing import Any

from stockdata.domain import DividendEvent, PriceQuote
from stockdata.normalizers.history_normalizer import dividend_events_from_payload, quotes_from_payload

logger = logging.getLogger(__name__)


def normalize_chart_quotes(
    ticker: str,
    chart_result: dict[str, Any] | None,
    *,
    now: datetime | None = None,
) -> list[PriceQuote]:
    """Daily closes from a chart result, sorted ascending; null closes are skipped."""
    if not chart_result:
        return []
    timestamps = chart_result.get("timestamp")
    if not isinstance(timestamps, list) or len(timestamps) == 0:
        return []

    quote_list = (chart_result.get("indicators") or {}).get("quote") or [{}]
    closes = (quote_list[0] or {}).get("close") or []

    quotes = quotes_from_payload({"timestamp": timestamps, "close": closes}, now=now)
    logger.debug("[Yahoo][Normalize] %d valid quotes of %d timestamps for %s",
                 len(quotes), len(timestamps), ticker)
    return quotes


def normalize_chart_dividends(ticker: str, chart_result: dict[str, Any] | None) -> list[DividendEvent]:
    """Raw dividend events from a chart result's events block."""
    if not chart_result:
        return []
    dividends = (chart_result.get("events") or {}).get("dividends")
    if not dividends:
        return []
    events = dividend_events_from_payload(dividends)
    logger.debug("[Yahoo][Normalize] %d dividend events for %s", len(events), ticker)
    return events
