"""
Stocks repository (primary store).

Read-only access to the `stocks` and `stock_data` tables. Rows come back as
plain column-name dicts; JSON columns are returned as stored (shape
normalization happens in the normalizers, not here).
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockdata.models import Stock, StockData

logger = logging.getLogger(__name__)


def _row_to_dict(row) -> dict[str, Any]:
    return {col.name: getattr(row, col.name) for col in row.__table__.columns}


def list_tickers(db: Session) -> list[str]:
    """All tickers present in `stocks`, ordered."""
    return [t.upper() for t in db.scalars(select(Stock.ticker).order_by(Stock.ticker)).all()]


def get_stock(db: Session, ticker: str) -> dict[str, Any] | None:
    row = db.get(Stock, ticker)
    return _row_to_dict(row) if row else None


def get_stock_detail(db: Session, ticker: str) -> dict[str, Any] | None:
    row = db.get(StockData, ticker)
    return _row_to_dict(row) if row else None


def get_profile_rows(db: Session, ticker: str) -> tuple[dict[str, Any], dict[str, Any] | None] | None:
    """
    Return (stock, detail) for a ticker, or None when the ticker has no `stocks` row.
    `detail` is None when `stock_data` has nothing for it.
    """
    stock = get_stock(db, ticker)
    if stock is None:
        logger.debug("[DB][Stocks] %s not found", ticker)
        return None
    return stock, get_stock_detail(db, ticker)


def get_history_payloads(db: Session, ticker: str) -> tuple[Any, Any] | None:
    """
    Return the raw (dividends, closing_history) JSON payloads for a ticker,
    or None when there is no `stock_data` row.
    """
    row = db.execute(
        select(StockData.dividends, StockData.closing_history).where(StockData.ticker == ticker)
    ).first()
    if row is None:
        return None
    return row.dividends, row.closing_history
