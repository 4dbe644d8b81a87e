"""
Dividend and price sources for the dividend comparison.

  DatabaseMarketData   stock_data.dividends + stock_data.closing_history (primary store)
  YahooMarketData      provider chart endpoint with events=div

Both return canonical DividendEvent / PriceQuote lists. Dividend timestamps are
left raw (the aggregator normalizes them); quotes are filtered to [start, end].
An instrument with no data yields empty lists, never an exception.
"""

import asyncio
import logging
from datetime import date
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from stockdata.api_clients.yahoo_client import YahooClient
from stockdata.domain import DividendEvent, PriceQuote
from stockdata.normalizers.history_normalizer import dividend_events_from_payload, quotes_from_payload
from stockdata.normalizers.yahoo_normalizer import normalize_chart_dividends, normalize_chart_quotes
from stockdata.repositories import stocks_repo

logger = logging.getLogger(__name__)


class MarketDataSource(Protocol):
    async def fetch_dividends(self, ticker: str, start: date, end: date) -> list[DividendEvent]: ...

    async def fetch_prices(self, ticker: str, start: date, end: date) -> list[PriceQuote]: ...


def _within(quotes: list[PriceQuote], start: date, end: date) -> list[PriceQuote]:
    return [q for q in quotes if start <= q.date <= end]


class DatabaseMarketData:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _payloads(self, ticker: str):
        with self._session_factory() as db:
            return stocks_repo.get_history_payloads(db, ticker)

    async def fetch_dividends(self, ticker: str, start: date, end: date) -> list[DividendEvent]:
        payloads = await asyncio.to_thread(self._payloads, ticker)
        if payloads is None:
            logger.info("[DIVIDENDS][DB] no stock_data row for %s", ticker)
            return []
        return dividend_events_from_payload(payloads[0])

    async def fetch_prices(self, ticker: str, start: date, end: date) -> list[PriceQuote]:
        payloads = await asyncio.to_thread(self._payloads, ticker)
        if payloads is None:
            return []
        return _within(quotes_from_payload(payloads[1]), start, end)


class YahooMarketData:
    """
    One chart request answers both dividends and prices; concurrent callers for
    the same (ticker, start, end) share a single in-flight request.
    """

    def __init__(self, client: YahooClient):
        self._client = client
        self._inflight: dict[tuple[str, date, date], asyncio.Future] = {}

    async def _chart(self, ticker: str, start: date, end: date):
        key = (ticker, start, end)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._client.fetch_chart(ticker, start, end))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        # shield: one caller timing out must not cancel the request for the other
        return await asyncio.shield(task)

    async def fetch_dividends(self, ticker: str, start: date, end: date) -> list[DividendEvent]:
        return normalize_chart_dividends(ticker, await self._chart(ticker, start, end))

    async def fetch_prices(self, ticker: str, start: date, end: date) -> list[PriceQuote]:
        quotes = normalize_chart_quotes(ticker, await self._chart(ticker, start, end))
        return _within(quotes, start, end)
