"""
Data source router.

Decides which store answers a profile lookup:

  1. mode == PRIMARY and ticker in known_available  -> primary store
  2. otherwise, or on a primary miss                 -> secondary (per-ticker JSON) store
  3. neither has it                                  -> None (never fabricated)

State is one immutable RouterState snapshot (mode + known_available). Writers
(operator toggle, ticker-list refresh, per-ticker eviction) build a new
snapshot and swap it in under a lock; readers take a single snapshot per
lookup and never see a half-updated set.

Failure policy:
  - primary NotFound        -> ticker evicted from known_available, fall back
  - primary DataUnavailable -> fall back, ticker kept (transient); if the
                               secondary has nothing either, the primary error
                               is re-raised since absence was not established
  - secondary DataUnavailable propagates
  - the mode is only ever changed by set_mode(); failures never demote the router
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace

from stockdata.domain import DataSourceMode, StockProfile
from stockdata.errors import DataUnavailable
from stockdata.services.downstream import guarded
from stockdata.services.profile_stores import ProfileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouterState:
    mode: DataSourceMode = DataSourceMode.PRIMARY
    known_available: frozenset[str] = frozenset()


class DataSourceRouter:
    def __init__(
        self,
        primary: ProfileStore,
        secondary: ProfileStore,
        *,
        timeout_s: float,
        state: RouterState | None = None,
    ):
        self._primary = primary
        self._secondary = secondary
        self._timeout_s = timeout_s
        self._state = state or RouterState()
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RouterState:
        return self._state

    def _swap(self, update: Callable[[RouterState], RouterState]) -> RouterState:
        with self._write_lock:
            self._state = update(self._state)
            return self._state

    def set_mode(self, mode: DataSourceMode | str) -> None:
        mode = DataSourceMode(mode)
        self._swap(lambda s: replace(s, mode=mode))
        logger.info("[ROUTER] data source set to %s", mode.value)

    def is_primary(self) -> bool:
        return self._state.mode is DataSourceMode.PRIMARY

    def _evict(self, ticker: str) -> None:
        self._swap(
            lambda s: replace(s, known_available=s.known_available - {ticker})
            if ticker in s.known_available else s
        )

    async def refresh_available(self) -> bool:
        """
        Re-enumerate primary tickers and swap in the new set.
        On failure the previous set is kept; returns False.
        """
        try:
            tickers = await guarded(
                self._primary.list_tickers(), source="primary:list_tickers", timeout_s=self._timeout_s
            )
        except DataUnavailable as exc:
            logger.warning("[ROUTER] primary ticker list unavailable, keeping %d known tickers: %s",
                           len(self._state.known_available), exc.reason)
            return False

        known = frozenset(t.strip().upper() for t in tickers if t and t.strip())
        self._swap(lambda s: replace(s, known_available=known))
        logger.info("[ROUTER] primary store reports %d tickers", len(known))
        return True

    async def available_tickers(self) -> list[str]:
        """Union of the primary's known tickers and the secondary store's files."""
        secondary = await guarded(
            self._secondary.list_tickers(), source="secondary:list_tickers", timeout_s=self._timeout_s
        )
        return sorted(self._state.known_available | {t.upper() for t in secondary})

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_stock_data(self, ticker: str) -> StockProfile | None:
        ticker = ticker.strip().upper()
        if not ticker:
            return None

        snapshot = self._state
        primary_error: DataUnavailable | None = None

        if snapshot.mode is DataSourceMode.PRIMARY and ticker in snapshot.known_available:
            try:
                profile = await guarded(
                    self._primary.get_profile(ticker), source="primary", timeout_s=self._timeout_s
                )
            except DataUnavailable as exc:
                primary_error = exc
                logger.warning("[ROUTER] primary unavailable for %s, trying secondary: %s",
                               ticker, exc.reason)
            else:
                if profile is not None:
                    return profile
                logger.info("[ROUTER] %s missing from primary, evicting from known set", ticker)
                self._evict(ticker)

        profile = await guarded(
            self._secondary.get_profile(ticker), source="secondary", timeout_s=self._timeout_s
        )
        if profile is not None:
            logger.debug("[ROUTER] %s served from secondary", ticker)
            return profile

        if primary_error is not None:
            raise primary_error
        logger.info("[ROUTER] no data for %s in any store", ticker)
        return None
