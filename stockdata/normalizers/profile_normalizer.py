"""
Profile normalizers.

Two concerns, kept apart from the routing logic:

1. Sanitizing parse of the secondary store's per-ticker JSON files. Those files
   were dumped from JavaScript/pandas and contain bare NaN / Infinity /
   -Infinity / undefined tokens, which are not JSON. NaN and the infinities
   become 0, undefined becomes null, before any typed structure is built.

2. Field-by-field mapping of both stores' native shapes onto one StockProfile:

   primary    stocks row (snake_case columns, Numeric -> Decimal) + stock_data JSON blobs
   secondary  {"info": {<Yahoo camelCase quote fields>}, "history": [...]}

Units are aligned here: dividend_yield is a percent on the profile; the
secondary store carries Yahoo's fraction and is scaled by 100.
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from stockdata.domain import PricePoint, StockProfile
from stockdata.errors import InvalidShape
from stockdata.normalizers.history_normalizer import quotes_from_payload
from stockdata.services.fallback_scores import compute_metric_scores, fundamentals_from_mapping

logger = logging.getLogger(__name__)

HISTORY_POINTS: int = 90

# a JSON string literal (kept as is) or a bare `undefined` in a value position
_UNDEFINED_RE = re.compile(r'"(?:[^"\\]|\\.)*"|(?<=[:\[,])(\s*)undefined\b')


# ---------------------------------------------------------------------------
# Sanitizing parse
# ---------------------------------------------------------------------------

def _null_outside_strings(match: re.Match) -> str:
    if match.group(1) is None:
        return match.group(0)
    return match.group(1) + "null"


def sanitize_json_text(text: str) -> str:
    """Replace bare `undefined` tokens with null. NaN/Infinity are handled at parse time."""
    return _UNDEFINED_RE.sub(_null_outside_strings, text)


def _constant_to_zero(name: str) -> int:
    # json calls this for NaN, Infinity and -Infinity
    return 0


def loads_sanitized(text: str) -> Any:
    """
    Parse loosely-produced JSON.

    Raises InvalidShape when the text is not parseable even after sanitizing.
    """
    try:
        return json.loads(sanitize_json_text(text), parse_constant=_constant_to_zero)
    except json.JSONDecodeError as exc:
        raise InvalidShape(f"unparseable JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _num(v: Any) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, Decimal):
        v = float(v)
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _pick_num(*candidates: Any) -> float | None:
    """Return first finite numeric value from candidates."""
    for c in candidates:
        v = _num(c)
        if v is not None:
            return v
    return None


def _text(*candidates: Any) -> str:
    for c in candidates:
        if isinstance(c, str) and c.strip():
            return c.strip()
    return ""


def _history(payload: Any) -> tuple[PricePoint, ...]:
    quotes = quotes_from_payload(payload)[-HISTORY_POINTS:]
    return tuple(PricePoint(date=q.date, price=q.price) for q in quotes)


# ---------------------------------------------------------------------------
# Secondary store -> StockProfile
# ---------------------------------------------------------------------------

def profile_from_secondary(ticker: str, blob: Any) -> StockProfile:
    """
    Map a secondary-store blob onto StockProfile.

    Raises InvalidShape when the blob is not an object or carries no `info` object.
    """
    if not isinstance(blob, Mapping):
        raise InvalidShape(f"{ticker}: profile blob is {type(blob).__name__}, expected object")
    info = blob.get("info")
    if not isinstance(info, Mapping):
        raise InvalidShape(f"{ticker}: profile blob has no 'info' object")

    raw_yield = _num(info.get("dividendYield"))

    return StockProfile(
        symbol=ticker,
        name=_text(info.get("longName"), info.get("shortName"), info.get("displayName")) or ticker,
        source="secondary",
        price=_pick_num(info.get("regularMarketPrice"), info.get("currentPrice")),
        change=_num(info.get("regularMarketChange")),
        change_percent=_num(info.get("regularMarketChangePercent")),
        previous_close=_num(info.get("regularMarketPreviousClose")),
        day_high=_num(info.get("regularMarketDayHigh")),
        day_low=_num(info.get("regularMarketDayLow")),
        volume=_num(info.get("regularMarketVolume")),
        average_volume=_num(info.get("averageVolume")),
        market_cap=_num(info.get("marketCap")),
        beta=_num(info.get("beta")),
        pe_ratio=_num(info.get("trailingPE")),
        eps=_num(info.get("epsTrailingTwelveMonths")),
        sector=_text(info.get("sector")),
        industry=_text(info.get("industry"), info.get("sector")),
        dividend_yield=raw_yield * 100 if raw_yield is not None else None,
        target_high_price=_num(info.get("targetHighPrice")),
        target_low_price=_num(info.get("targetLowPrice")),
        target_mean_price=_num(info.get("targetMeanPrice")),
        recommendation_key=_text(info.get("recommendationKey")),
        description=_text(info.get("longBusinessSummary")),
        metrics=compute_metric_scores(fundamentals_from_mapping(info)),
        history=_history(blob.get("history")),
    )


# ---------------------------------------------------------------------------
# Primary store -> StockProfile
# ---------------------------------------------------------------------------

def profile_from_primary(stock: Mapping[str, Any], detail: Mapping[str, Any] | None) -> StockProfile:
    """
    Map a `stocks` row (+ optional `stock_data` row) onto StockProfile.

    `stock` / `detail` are column-name dicts as returned by stocks_repo.
    """
    detail = detail or {}
    financial = detail.get("financial_data")
    financial = financial if isinstance(financial, Mapping) else {}
    trend = detail.get("earnings_trend")
    trend = trend if isinstance(trend, Mapping) else {}

    ticker = str(stock["ticker"]).upper()
    price = _num(stock.get("current_price"))
    dividend_yield_pct = _num(stock.get("dividend_yield"))

    fundamentals = fundamentals_from_mapping(
        financial,
        price=price,
        beta=_num(stock.get("beta")),
        trailing_pe=_num(stock.get("pe_ratio")),
        dividend_yield=dividend_yield_pct / 100 if dividend_yield_pct is not None else None,
    )

    return StockProfile(
        symbol=ticker,
        name=_text(stock.get("company_name")) or ticker,
        source="primary",
        price=price,
        previous_close=_num(financial.get("regularMarketPreviousClose")),
        change=_num(financial.get("regularMarketChange")),
        change_percent=_num(financial.get("regularMarketChangePercent")),
        average_volume=_num(stock.get("average_volume")),
        market_cap=_num(stock.get("market_cap")),
        beta=_num(stock.get("beta")),
        pe_ratio=_num(stock.get("pe_ratio")),
        eps=_num(stock.get("eps")),
        sector=_text(stock.get("sector")),
        industry=_text(stock.get("industry")),
        dividend_yield=dividend_yield_pct,
        target_high_price=_pick_num(trend.get("targetHigh"), financial.get("targetHighPrice")),
        target_low_price=_pick_num(trend.get("targetLow"), financial.get("targetLowPrice")),
        target_mean_price=_pick_num(trend.get("targetMean"), financial.get("targetMeanPrice")),
        recommendation_key=_text(financial.get("recommendationKey")),
        description=_text(stock.get("description")),
        metrics=compute_metric_scores(fundamentals),
        history=_history(detail.get("closing_history")),
    )
