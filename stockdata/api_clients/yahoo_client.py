"""
Yahoo Finance chart client (market-data provider).

Session bootstrap:
  1. GET https://fc.yahoo.com/                        -> set-cookie header
  2. GET /v1/test/getcrumb (query1, then query2)      -> crumb text
  TTL 60 minutes. Single-flight via asyncio.Lock, re-checked after acquiring.

Requests:
  max_attempts tries, base_delay_s * 2^(attempt-1) ± 20 % jitter.
  401/403        -> invalidate session, re-bootstrap, retry
  429/999/5xx    -> backoff and retry
  404            -> None (provider has no such symbol)
  other 4xx      -> DataUnavailable, no retry
  HTML body      -> treated as transient, retried

Final failures raise DataUnavailable("yahoo", ...).
"""

import asyncio
import logging
import random
import time
from datetime import date, datetime, time as dt_time, timezone
from typing import Any

import httpx

from stockdata.errors import DataUnavailable

logger = logging.getLogger(__name__)

SESSION_TTL_S: float = 60 * 60
YAHOO_USER_AGENT: str = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
CHART_HOST: str = "https://query1.finance.yahoo.com"
_CRUMB_HOSTS = ("query1", "query2")
_RETRY_STATUSES = frozenset({429, 999})


def _add_jitter(delay_s: float) -> float:
    jitter = 0.2 * delay_s * (random.random() - 0.5) * 2
    return max(0.0, delay_s + jitter)


def _epoch(d: date) -> int:
    return int(datetime.combine(d, dt_time.min, tzinfo=timezone.utc).timestamp())


def build_chart_params(
    ticker: str,
    start: date,
    end: date,
    *,
    interval: str = "1d",
) -> tuple[str, dict[str, str]]:
    """(path, params) for the chart endpoint over [start, end], dividends included."""
    if not ticker:
        raise ValueError("ticker is required")
    if end < start:
        raise ValueError(f"end {end} is before start {start}")
    return f"/v8/finance/chart/{ticker}", {
        "period1": str(_epoch(start)),
        # period2 is exclusive on Yahoo's side
        "period2": str(_epoch(end) + 86_400),
        "interval": interval,
        "events": "div",
        "includeAdjustedClose": "true",
    }


class YahooClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        timeout_s: float = 30.0,
        max_attempts: int = 3,
        base_delay_s: float = 0.7,
    ):
        self._http = http
        self._timeout_s = timeout_s
        self._max_attempts = max_attempts
        self._base_delay_s = base_delay_s
        self._cookie: str | None = None
        self._crumb: str | None = None
        self._acquired_at: float = 0.0
        self._session_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def _session_fresh(self) -> bool:
        return (
            self._cookie is not None
            and self._crumb is not None
            and time.monotonic() - self._acquired_at < SESSION_TTL_S
        )

    def invalidate_session(self) -> None:
        self._cookie = None
        self._crumb = None
        self._acquired_at = 0.0

    async def _bootstrap_session(self) -> None:
        last_error = "unknown"
        for attempt in range(1, self._max_attempts + 1):
            try:
                cookie_resp = await self._http.get(
                    "https://fc.yahoo.com/",
                    headers={"User-Agent": YAHOO_USER_AGENT},
                    follow_redirects=True,
                    timeout=self._timeout_s,
                )
                cookie = cookie_resp.headers.get("set-cookie")
                if not cookie:
                    raise DataUnavailable("yahoo", f"no session cookie (status={cookie_resp.status_code})")

                crumb = await self._fetch_crumb(cookie)
                if not crumb:
                    raise DataUnavailable("yahoo", "invalid or empty crumb")

                self._cookie, self._crumb, self._acquired_at = cookie, crumb, time.monotonic()
                logger.info("[Yahoo][Session] cookie+crumb acquired")
                return
            except (DataUnavailable, httpx.HTTPError) as exc:
                last_error = str(exc)
                if attempt < self._max_attempts:
                    delay_s = _add_jitter(self._base_delay_s * (1.5 ** (attempt - 1)))
                    logger.warning("[Yahoo][Session] retry %d/%d, sleeping %.1fs: %s",
                                   attempt, self._max_attempts, delay_s, exc)
                    await asyncio.sleep(delay_s)
        raise DataUnavailable("yahoo", f"session bootstrap failed: {last_error}")

    async def _fetch_crumb(self, cookie: str) -> str | None:
        for host in _CRUMB_HOSTS:
            try:
                resp = await self._http.get(
                    f"https://{host}.finance.yahoo.com/v1/test/getcrumb",
                    headers={"cookie": cookie, "User-Agent": YAHOO_USER_AGENT},
                    timeout=self._timeout_s,
                )
            except httpx.HTTPError as exc:
                logger.debug("[Yahoo][Session] crumb host=%s error: %s", host, exc)
                continue
            body = resp.text.strip() if resp.is_success else ""
            if len(body) >= 5 and not body.startswith("<"):
                return body
        return None

    async def ensure_session(self) -> None:
        if self._session_fresh():
            return
        async with self._session_lock:
            if self._session_fresh():
                return
            await self._bootstrap_session()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _backoff(self, attempt: int, why: str) -> None:
        delay_s = _add_jitter(self._base_delay_s * (2 ** (attempt - 1)))
        logger.warning("[Yahoo][Fetch] %s, attempt %d/%d, sleeping %.1fs",
                       why, attempt, self._max_attempts, delay_s)
        await asyncio.sleep(delay_s)

    async def get_json(self, path: str, params: dict[str, str]) -> dict[str, Any] | None:
        """Signed GET against the chart host. None on 404."""
        await self.ensure_session()
        last_error = "unknown"

        for attempt in range(1, self._max_attempts + 1):
            retrying = attempt < self._max_attempts
            try:
                response = await self._http.get(
                    f"{CHART_HOST}{path}",
                    params={**params, "crumb": self._crumb or ""},
                    headers={"cookie": self._cookie or "", "User-Agent": YAHOO_USER_AGENT},
                    timeout=self._timeout_s,
                )
            except httpx.HTTPError as exc:
                last_error = f"network error: {exc}"
                if retrying:
                    await self._backoff(attempt, last_error)
                    continue
                break

            status = response.status_code
            logger.debug("[Yahoo][Fetch] %s status=%d len=%d", path, status, len(response.content))

            if status in (401, 403):
                last_error = f"authentication failed: status={status}"
                if retrying:
                    self.invalidate_session()
                    await self.ensure_session()
                    continue
                break

            if status in _RETRY_STATUSES or status >= 500:
                last_error = f"rate limited / server error: status={status}"
                if retrying:
                    await self._backoff(attempt, last_error)
                    continue
                break

            if status == 404:
                return None

            if status >= 400:
                raise DataUnavailable("yahoo", f"client error: status={status}")

            if response.text.lstrip().startswith("<"):
                last_error = "received HTML instead of JSON"
                if retrying:
                    await self._backoff(attempt, last_error)
                    continue
                break

            return response.json()

        raise DataUnavailable("yahoo", last_error)

    async def fetch_chart(
        self,
        ticker: str,
        start: date,
        end: date,
        *,
        interval: str = "1d",
    ) -> dict[str, Any] | None:
        """Chart result[0] for [start, end] with dividend events, or None if Yahoo has no data."""
        path, params = build_chart_params(ticker, start, end, interval=interval)
        data = await self.get_json(path, params)
        if data is None:
            return None

        chart = data.get("chart") or {}
        if chart.get("error"):
            logger.info("[Yahoo][Chart] %s: provider error %s", ticker, chart["error"])
            return None
        results = chart.get("result") or [None]
        if not results[0]:
            logger.info("[Yahoo][Chart] empty result for %s", ticker)
            return None
        return results[0]
