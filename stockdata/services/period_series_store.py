"""
Pre-computed period series accessor.

get_series(ticker, period):
  PeriodSeries       row found and valid (len(dates) == len(prices) > 0)
  None               row not found, or row fails validation (never partially returned)
  DataUnavailable    database error / timeout (retryable)

No caching: every call opens its own session in a worker thread, so the store
is safe to share between concurrent requests.
"""

import logging

from sqlalchemy.orm import sessionmaker

from stockdata.domain import PeriodSeries
from stockdata.errors import InvalidShape
from stockdata.repositories import period_series_repo
from stockdata.services.downstream import in_thread

logger = logging.getLogger(__name__)


class PeriodSeriesStore:
    def __init__(self, session_factory: sessionmaker, *, timeout_s: float):
        self._session_factory = session_factory
        self._timeout_s = timeout_s

    def _fetch_row(self, ticker: str, period: str) -> dict | None:
        with self._session_factory() as db:
            return period_series_repo.get_period_row(db, ticker, period)

    def _fetch_periods(self, ticker: str) -> list[str]:
        with self._session_factory() as db:
            return period_series_repo.list_periods(db, ticker)

    async def get_series(self, ticker: str, period: str) -> PeriodSeries | None:
        ticker = ticker.strip().upper()
        period = period.strip().lower()

        row = await in_thread(
            self._fetch_row, ticker, period,
            source="primary:time_period_data", timeout_s=self._timeout_s,
        )
        if row is None:
            logger.info("[SERIES] not found: %s (%s)", ticker, period)
            return None

        try:
            series = period_series_repo.validate_series(ticker, period, row)
        except InvalidShape as exc:
            logger.warning("[SERIES] invalid shape: %s (%s): %s", ticker, period, exc)
            return None

        logger.debug("[SERIES] %s (%s): %d points", ticker, period, len(series.dates))
        return series

    async def list_periods(self, ticker: str) -> list[str]:
        return await in_thread(
            self._fetch_periods, ticker.strip().upper(),
            source="primary:time_period_data", timeout_s=self._timeout_s,
        )
