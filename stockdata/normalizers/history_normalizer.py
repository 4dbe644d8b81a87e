"""
History payload normalizers.

Price history and dividend history reach us in two shapes, depending on which
job wrote them:

  columnar          {"dates": [...], "prices": [...]}            (also "timestamp"/"close", "amounts")
  array-of-objects  [{"date": ..., "close": ...}, ...]           (also "price"/"adjClose", "amount")

Yahoo chart events add a third one for dividends, a mapping keyed by epoch:

  {"1700000000": {"amount": 0.24, "date": 1700000000}, ...}

Everything is converted here into PriceQuote / DividendEvent lists so that no
downstream code branches on shape.
"""

import logging
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from stockdata.domain import DividendEvent, PriceQuote
from stockdata.normalizers.timestamp_normalizer import parse_timestamp

logger = logging.getLogger(__name__)

_DATE_KEYS = ("date", "Date", "timestamp", "exDate", "ex_date", "paymentDate", "time")
_PRICE_KEYS = ("close", "Close", "price", "adjClose", "adj_close", "close_adj")
_AMOUNT_KEYS = ("amount", "dividend", "dividends", "Dividends", "value")

_COLUMN_DATE_KEYS = ("dates", "timestamp", "timestamps")
_COLUMN_PRICE_KEYS = ("prices", "close", "closes")
_COLUMN_AMOUNT_KEYS = ("amounts", "dividends", "values")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _num_or_null(v: Any) -> float | None:
    """Return float if v is a valid finite number, else None."""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _first_present(row: Mapping, keys: tuple[str, ...]) -> Any:
    for k in keys:
        if row.get(k) is not None:
            return row[k]
    return None


def _columns(payload: Mapping, date_keys: tuple[str, ...], value_keys: tuple[str, ...]) -> list[tuple[Any, Any]] | None:
    dates = _first_present(payload, date_keys)
    values = _first_present(payload, value_keys)
    if not isinstance(dates, list) or not isinstance(values, list):
        return None
    if len(dates) != len(values):
        logger.warning("[HISTORY] columnar payload length mismatch: %d dates vs %d values",
                       len(dates), len(values))
    return list(zip(dates, values))


# ---------------------------------------------------------------------------
# Price quotes
# ---------------------------------------------------------------------------

def quotes_from_payload(payload: Any, *, now: datetime | None = None) -> list[PriceQuote]:
    """
    Convert a price-history payload into PriceQuotes sorted by date ascending.

    Rows without a resolvable date or a finite positive price are dropped.
    Duplicate dates keep the last row seen.
    """
    if isinstance(payload, Mapping):
        pairs = _columns(payload, _COLUMN_DATE_KEYS, _COLUMN_PRICE_KEYS) or []
    elif isinstance(payload, list):
        pairs = [
            (_first_present(row, _DATE_KEYS), _first_present(row, _PRICE_KEYS))
            for row in payload
            if isinstance(row, Mapping)
        ]
    else:
        return []

    by_date: dict = {}
    dropped = 0
    for raw_date, raw_price in pairs:
        ts = parse_timestamp(raw_date, now=now)
        price = _num_or_null(raw_price)
        if ts is None or price is None or price <= 0:
            dropped += 1
            continue
        by_date[ts.date()] = price

    if dropped:
        logger.debug("[HISTORY] dropped %d unusable price rows", dropped)
    return [PriceQuote(date=d, price=p) for d, p in sorted(by_date.items())]


# ---------------------------------------------------------------------------
# Dividend events
# ---------------------------------------------------------------------------

def _event(raw_ts: Any, raw_amount: Any) -> DividendEvent | None:
    if isinstance(raw_ts, bool) or not isinstance(raw_ts, (str, int, float)):
        return None
    amount = _num_or_null(raw_amount)
    if amount is None or amount < 0:
        return None
    return DividendEvent(raw_timestamp=raw_ts, amount=amount)


def dividend_events_from_payload(payload: Any) -> list[DividendEvent]:
    """
    Convert a dividend payload into raw DividendEvents (timestamps untouched).

    Events with a negative / non-finite amount or a non-scalar timestamp are dropped.
    """
    pairs: list[tuple[Any, Any]] = []

    if isinstance(payload, list):
        pairs = [
            (_first_present(row, _DATE_KEYS), _first_present(row, _AMOUNT_KEYS))
            for row in payload
            if isinstance(row, Mapping)
        ]
    elif isinstance(payload, Mapping):
        columnar = _columns(payload, _COLUMN_DATE_KEYS, _COLUMN_AMOUNT_KEYS)
        if columnar is not None:
            pairs = columnar
        else:
            # keyed by epoch: {"1700000000": {"amount": .., "date": ..}}
            for key, row in payload.items():
                if isinstance(row, Mapping):
                    pairs.append((_first_present(row, _DATE_KEYS) or key,
                                  _first_present(row, _AMOUNT_KEYS)))
                else:
                    pairs.append((key, row))

    events = [e for e in (_event(ts, amt) for ts, amt in pairs) if e is not None]
    if len(events) < len(pairs):
        logger.debug("[HISTORY] dropped %d unusable dividend rows", len(pairs) - len(events))
    return events
