"""
Pre-computed period series.

  - valid row -> PeriodSeries with len(dates) == len(prices) > 0
  - missing or malformed row -> None (never partially returned)
  - database failure or timeout -> DataUnavailable
"""

import asyncio
import logging
import time
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from stockdata.errors import DataUnavailable
from stockdata.models import TimePeriodData
from stockdata.services.period_series_store import PeriodSeriesStore


def _row(period="1m", dates=("2024-01-02", "2024-01-03", "2024-01-04"), prices=(185.6, 184.25, 181.91)):
    return TimePeriodData(ticker="AAPL", period=period, dates=list(dates), prices=list(prices))


def _get(store, ticker="AAPL", period="1m"):
    return asyncio.run(store.get_series(ticker, period))


# ---------------------------------------------------------------------------
# Found
# ---------------------------------------------------------------------------

def test_valid_row_returns_series(session_factory, seed):
    seed(_row())
    series = _get(PeriodSeriesStore(session_factory, timeout_s=2))

    assert series.ticker == "AAPL"
    assert series.period == "1m"
    assert series.dates == (date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4))
    assert series.prices == (185.6, 184.25, 181.91)
    assert len(series.dates) == len(series.prices) > 0


def test_period_and_ticker_are_case_insensitive(session_factory, seed):
    seed(_row(period="1M"))
    series = _get(PeriodSeriesStore(session_factory, timeout_s=2), ticker=" aapl ", period="1m")
    assert series is not None
    assert series.period == "1m"


def test_numeric_strings_are_accepted_as_prices(session_factory, seed):
    seed(_row(prices=("185.6", 184, 181.91)))
    series = _get(PeriodSeriesStore(session_factory, timeout_s=2))
    assert series.prices == (185.6, 184.0, 181.91)


def test_intraday_timestamps_are_accepted(session_factory, seed):
    seed(_row(period="1d", dates=("2024-01-02T14:30:00Z", "2024-01-02T14:35:00Z"), prices=(185.0, 185.2)))
    series = _get(PeriodSeriesStore(session_factory, timeout_s=2), period="1d")
    assert len(series.dates) == 2
    assert series.dates[0].hour == 14


# ---------------------------------------------------------------------------
# Absent / invalid
# ---------------------------------------------------------------------------

def test_missing_row_returns_none(session_factory):
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


def test_length_mismatch_returns_none(session_factory, seed):
    seed(_row(dates=("2024-01-02", "2024-01-03"), prices=(1.0, 2.0, 3.0)))
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


def test_empty_series_returns_none(session_factory, seed):
    seed(_row(dates=(), prices=()))
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


@pytest.mark.parametrize("bad_price", ["abc", None, True, "NaN"])
def test_non_numeric_price_returns_none(session_factory, seed, bad_price):
    seed(_row(prices=(1.0, bad_price, 3.0)))
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


def test_unparseable_date_returns_none(session_factory, seed):
    seed(_row(dates=("2024-01-02", "yesterday", "2024-01-04")))
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


def test_non_array_columns_return_none(session_factory, seed):
    seed(TimePeriodData(ticker="AAPL", period="1m", dates={"a": 1}, prices=[1.0]))
    assert _get(PeriodSeriesStore(session_factory, timeout_s=2)) is None


# ---------------------------------------------------------------------------
# Unavailable
# ---------------------------------------------------------------------------

def test_database_error_raises_data_unavailable():
    def broken_factory():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with pytest.raises(DataUnavailable) as exc_info:
        _get(PeriodSeriesStore(broken_factory, timeout_s=2))
    assert exc_info.value.source == "primary:time_period_data"


def test_slow_database_times_out(session_factory):
    def slow_factory():
        time.sleep(0.3)
        return session_factory()

    with pytest.raises(DataUnavailable) as exc_info:
        _get(PeriodSeriesStore(slow_factory, timeout_s=0.05))
    assert "timed out" in exc_info.value.reason


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def test_list_periods(session_factory, seed):
    seed(_row(period="1M"), _row(period="1y"), _row(period="5d"))
    periods = asyncio.run(PeriodSeriesStore(session_factory, timeout_s=2).list_periods("aapl"))
    assert sorted(periods) == ["1m", "1y", "5d"]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_STORE_LOGGER = "stockdata.services.period_series_store"


def test_invalid_shape_is_logged_apart_from_not_found(session_factory, seed, caplog):
    seed(_row(dates=("2024-01-02",), prices=(1.0, 2.0)))
    store = PeriodSeriesStore(session_factory, timeout_s=2)
    caplog.set_level(logging.INFO, logger=_STORE_LOGGER)

    assert _get(store) is None
    assert _get(store, period="5y") is None

    invalid = [r for r in caplog.records if "invalid shape" in r.getMessage()]
    missing = [r for r in caplog.records if "not found" in r.getMessage()]
    assert [r.levelno for r in invalid] == [logging.WARNING]
    assert len(missing) == 1
    assert "5y" in missing[0].getMessage()
