"""
TimePeriodData repository (primary store).

Lookup key: (ticker, lower(period)). Rows are written by the pre-computation
job; this module only reads and validates them.

Validation (all must hold, otherwise InvalidShape):
  - `dates` and `prices` are both lists
  - equal length, length > 0
  - every price coerces to a finite float (bools rejected)
  - every date parses (ISO date, or ISO datetime for intraday periods)
"""

import logging
import math
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockdata.domain import PeriodSeries
from stockdata.errors import InvalidShape
from stockdata.models import TimePeriodData

logger = logging.getLogger(__name__)


def get_period_row(db: Session, ticker: str, period: str) -> dict[str, Any] | None:
    """Fetch the raw (dates, prices) row for (ticker, period), case-insensitive on period."""
    row = db.scalars(
        select(TimePeriodData)
        .where(
            TimePeriodData.ticker == ticker,
            func.lower(TimePeriodData.period) == period.lower(),
        )
        .limit(1)
    ).first()
    if row is None:
        return None
    return {"ticker": row.ticker, "period": row.period, "dates": row.dates, "prices": row.prices}


def list_periods(db: Session, ticker: str) -> list[str]:
    rows = db.scalars(
        select(TimePeriodData.period).where(TimePeriodData.ticker == ticker).order_by(TimePeriodData.period)
    ).all()
    return [p.lower() for p in rows]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _parse_series_date(d: Any) -> date:
    if isinstance(d, datetime):
        return d
    if isinstance(d, date):
        return d
    if isinstance(d, str):
        text = d.strip()
        try:
            if len(text) <= 10:
                return date.fromisoformat(text)
            parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    raise InvalidShape(f"unparseable date entry {d!r}")


def _parse_price(p: Any) -> float:
    if p is None or isinstance(p, bool):
        raise InvalidShape(f"non-numeric price entry {p!r}")
    try:
        f = float(p)
    except (TypeError, ValueError):
        raise InvalidShape(f"non-numeric price entry {p!r}") from None
    if not math.isfinite(f):
        raise InvalidShape(f"non-finite price entry {p!r}")
    return f


def validate_series(ticker: str, period: str, row: dict[str, Any]) -> PeriodSeries:
    """Build a PeriodSeries from a raw row or raise InvalidShape."""
    dates = row.get("dates")
    prices = row.get("prices")
    if not isinstance(dates, list) or not isinstance(prices, list):
        raise InvalidShape(
            f"dates/prices must be arrays (got {type(dates).__name__}/{type(prices).__name__})"
        )
    if len(dates) != len(prices):
        raise InvalidShape(f"length mismatch: {len(dates)} dates vs {len(prices)} prices")
    if not dates:
        raise InvalidShape("empty series")

    return PeriodSeries(
        ticker=ticker,
        period=period.lower(),
        dates=tuple(_parse_series_date(d) for d in dates),
        prices=tuple(_parse_price(p) for p in prices),
    )
