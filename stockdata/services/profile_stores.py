"""
Profile stores consumed by the DataSourceRouter.

Both return the same StockProfile shape (or None) so the router never sees
either store's native format. Blocking work runs in worker threads; timeouts
and failure classification are applied by the router via downstream.guarded().
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from stockdata.domain import StockProfile
from stockdata.errors import InvalidShape
from stockdata.normalizers.profile_normalizer import profile_from_primary, profile_from_secondary
from stockdata.repositories import json_stock_repo, stocks_repo

logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    async def list_tickers(self) -> list[str]: ...

    async def get_profile(self, ticker: str) -> StockProfile | None: ...


class PrimaryProfileStore:
    """Relational store: `stocks` + `stock_data`."""

    name = "primary"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _list(self) -> list[str]:
        with self._session_factory() as db:
            return stocks_repo.list_tickers(db)

    def _load(self, ticker: str):
        with self._session_factory() as db:
            return stocks_repo.get_profile_rows(db, ticker)

    async def list_tickers(self) -> list[str]:
        return await asyncio.to_thread(self._list)

    async def get_profile(self, ticker: str) -> StockProfile | None:
        rows = await asyncio.to_thread(self._load, ticker)
        if rows is None:
            return None
        stock, detail = rows
        return profile_from_primary(stock, detail)


class FileProfileStore:
    """Secondary store: one sanitized JSON file per ticker."""

    name = "secondary"

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)

    async def list_tickers(self) -> list[str]:
        return await asyncio.to_thread(json_stock_repo.list_tickers, self._base_dir)

    async def get_profile(self, ticker: str) -> StockProfile | None:
        blob = await asyncio.to_thread(json_stock_repo.load_blob, self._base_dir, ticker)
        if blob is None:
            return None
        try:
            return profile_from_secondary(ticker, blob)
        except InvalidShape as exc:
            logger.warning("[JSON] invalid shape for %s: %s", ticker, exc)
            return None
