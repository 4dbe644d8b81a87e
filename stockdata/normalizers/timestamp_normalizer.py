"""
Timestamp normalizer.

Dividend events from the market-data provider carry timestamps in whatever
encoding was current when the record was written:

  - unix seconds            1700000000
  - unix milliseconds       1700000000000
  - ISO-8601 strings        "2023-11-14", "2023-11-14T00:00:00Z"
  - loose US-style strings  "11/14/2023", "paid 11-14-2023"
  - JS Date.toString()      "Tue Nov 14 2023 00:00:00 GMT+0000 (Coordinated Universal Time)"
  - text with an epoch      "ts=1700000000"

Strategy order:
  numeric input                   -> epoch (|v| < 1e10 seconds, else milliseconds)
  numeric string                  -> epoch, then the string strategies below
  other strings                   -> calendar parse, MM/DD/YYYY extraction, embedded epoch

Every candidate must land in [now.year - 20, now.year + 1]; an out-of-bound
candidate is rejected and the next strategy is tried.

parse_timestamp() returns None when nothing valid is found.
normalize_timestamp() never raises and returns `now` instead.
"""

import logging
import math
import re
from datetime import date, datetime, time, timezone
from typing import Any

logger = logging.getLogger(__name__)

EPOCH_MILLIS_THRESHOLD: int = 10_000_000_000
YEARS_BACK: int = 20
YEARS_AHEAD: int = 1

_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_MDY_RE = re.compile(r"(?<!\d)(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})(?!\d)")
_EMBEDDED_EPOCH_RE = re.compile(r"(?<!\d)(\d{9,13})(?!\d)")
_JS_TZ_NAME_RE = re.compile(r"\s*\([^)]*\)\s*$")

_TEXT_FORMATS: tuple[str, ...] = (
    "%Y/%m/%d",
    "%Y%m%d",
    "%Y-%m-%d %H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%a %b %d %Y %H:%M:%S GMT%z",
    "%a %b %d %Y",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _in_bounds(candidate: datetime | None, now: datetime) -> datetime | None:
    if candidate is None:
        return None
    if now.year - YEARS_BACK <= candidate.year <= now.year + YEARS_AHEAD:
        return candidate
    logger.debug("[TS] rejected out-of-bound candidate %s", candidate.isoformat())
    return None


def _from_epoch(value: Any) -> datetime | None:
    try:
        v = float(value)
        if not math.isfinite(v):
            return None
        seconds = v if abs(v) < EPOCH_MILLIS_THRESHOLD else v / 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


# ---------------------------------------------------------------------------
# String strategies
# ---------------------------------------------------------------------------

def _parse_calendar(text: str) -> datetime | None:
    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return _utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    stripped = _JS_TZ_NAME_RE.sub("", text)
    for fmt in _TEXT_FORMATS:
        try:
            return _utc(datetime.strptime(stripped, fmt))
        except ValueError:
            continue
    return None


def _parse_month_day_year(text: str) -> datetime | None:
    match = _MDY_RE.search(text)
    if not match:
        return None
    first, second, year = (int(g) for g in match.groups())
    # MM/DD first; DD/MM only when the first field cannot be a month
    for month, day in ((first, second), (second, first)):
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _parse_embedded_epoch(text: str) -> datetime | None:
    match = _EMBEDDED_EPOCH_RE.search(text)
    return _from_epoch(match.group(1)) if match else None


_STRING_STRATEGIES = (_parse_calendar, _parse_month_day_year, _parse_embedded_epoch)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_timestamp(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Resolve `value` to an aware UTC datetime inside the sane bound, or None."""
    now = _utc(now) if now is not None else datetime.now(timezone.utc)

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, datetime):
        return _in_bounds(_utc(value), now)
    if isinstance(value, date):
        return _in_bounds(datetime.combine(value, time.min, tzinfo=timezone.utc), now)
    if isinstance(value, (int, float)):
        return _in_bounds(_from_epoch(value), now)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _NUMERIC_RE.match(text):
        candidate = _in_bounds(_from_epoch(text), now)
        if candidate is not None:
            return candidate
        # compact dates such as "20240315" also look numeric

    for strategy in _STRING_STRATEGIES:
        candidate = _in_bounds(strategy(text), now)
        if candidate is not None:
            return candidate
    return None


def normalize_timestamp(value: Any, *, now: datetime | None = None) -> datetime:
    """
    Total version of parse_timestamp: unresolvable input yields `now`.

    The substitution can place an event in the wrong quarter; callers that
    would rather drop such records use parse_timestamp directly.
    """
    now = _utc(now) if now is not None else datetime.now(timezone.utc)
    parsed = parse_timestamp(value, now=now)
    if parsed is None:
        logger.debug("[TS] could not resolve %r, falling back to now", value)
        return now
    return parsed
