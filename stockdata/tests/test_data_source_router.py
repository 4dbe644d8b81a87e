"""
Data source routing.

  - PRIMARY mode + known ticker -> primary store first
  - primary miss -> ticker evicted, secondary consulted
  - primary failure -> secondary consulted, ticker kept
  - SECONDARY mode -> primary never touched
  - nothing anywhere -> None
  - failures never change the mode
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from stockdata.domain import DataSourceMode
from stockdata.errors import DataUnavailable
from stockdata.services.data_source_router import DataSourceRouter, RouterState
from stockdata.tests.fakes import FakeStore, profile


def _router(primary, secondary, *, known=("AAPL",), mode=DataSourceMode.PRIMARY, timeout_s=1.0):
    return DataSourceRouter(
        primary, secondary,
        timeout_s=timeout_s,
        state=RouterState(mode=mode, known_available=frozenset(known)),
    )


def _lookup(router, ticker="AAPL"):
    return asyncio.run(router.get_stock_data(ticker))


# ---------------------------------------------------------------------------
# Source order
# ---------------------------------------------------------------------------

def test_known_ticker_served_from_primary():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")})
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})

    result = _lookup(_router(primary, secondary))

    assert result.source == "primary"
    assert secondary.lookups() == []


def test_unknown_ticker_skips_primary():
    primary = FakeStore({"MSFT": profile("MSFT", "primary")})
    secondary = FakeStore({"MSFT": profile("MSFT", "secondary")})

    result = _lookup(_router(primary, secondary, known=("AAPL",)), "MSFT")

    assert result.source == "secondary"
    assert primary.lookups() == []


def test_secondary_mode_never_touches_primary():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")})
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})

    result = _lookup(_router(primary, secondary, mode=DataSourceMode.SECONDARY))

    assert result.source == "secondary"
    assert primary.calls == []


def test_ticker_is_normalized():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")})
    result = _lookup(_router(primary, FakeStore()), "  aapl ")
    assert result.symbol == "AAPL"
    assert primary.lookups() == ["AAPL"]


def test_blank_ticker_returns_none():
    primary, secondary = FakeStore(), FakeStore()
    assert _lookup(_router(primary, secondary), "   ") is None
    assert primary.calls == secondary.calls == []


# ---------------------------------------------------------------------------
# Misses
# ---------------------------------------------------------------------------

def test_primary_miss_falls_back_and_evicts():
    primary = FakeStore({})
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})
    router = _router(primary, secondary)

    assert _lookup(router).source == "secondary"
    assert "AAPL" not in router.state.known_available

    _lookup(router)
    assert primary.lookups() == ["AAPL"]   # second lookup no longer tries primary


def test_missing_everywhere_returns_none():
    primary, secondary = FakeStore({}), FakeStore({})
    assert _lookup(_router(primary, secondary)) is None
    assert secondary.lookups() == ["AAPL"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_primary_error_falls_back_and_keeps_ticker():
    primary = FakeStore(error=OperationalError("SELECT", {}, Exception("connection refused")))
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})
    router = _router(primary, secondary)

    assert _lookup(router).source == "secondary"
    assert "AAPL" in router.state.known_available
    assert router.is_primary()


def test_primary_timeout_falls_back():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")}, delay_s=0.5)
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})

    result = _lookup(_router(primary, secondary, timeout_s=0.05))

    assert result.source == "secondary"


def test_primary_error_reraised_when_secondary_has_nothing():
    primary = FakeStore(error=OSError("network unreachable"))
    secondary = FakeStore({})

    with pytest.raises(DataUnavailable) as exc_info:
        _lookup(_router(primary, secondary))
    assert exc_info.value.source == "primary"


def test_secondary_error_propagates():
    secondary = FakeStore(error=OSError("permission denied"))
    with pytest.raises(DataUnavailable) as exc_info:
        _lookup(_router(FakeStore(), secondary, known=()))
    assert exc_info.value.source == "secondary"


def test_programming_errors_are_not_swallowed():
    primary = FakeStore(error=KeyError("ticker"))
    with pytest.raises(KeyError):
        _lookup(_router(primary, FakeStore()))


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

def test_set_mode_accepts_strings():
    router = _router(FakeStore(), FakeStore())
    router.set_mode("secondary")
    assert router.state.mode is DataSourceMode.SECONDARY
    assert not router.is_primary()


def test_set_mode_rejects_unknown_values():
    router = _router(FakeStore(), FakeStore())
    with pytest.raises(ValueError):
        router.set_mode("tertiary")
    assert router.is_primary()


def test_refresh_replaces_known_set():
    primary = FakeStore(tickers=[" aapl", "MSFT", ""])
    router = _router(primary, FakeStore(), known=("OLD",))

    assert asyncio.run(router.refresh_available()) is True
    assert router.state.known_available == frozenset({"AAPL", "MSFT"})


def test_failed_refresh_keeps_previous_set_and_mode():
    primary = FakeStore(list_error=OperationalError("SELECT", {}, Exception("down")))
    router = _router(primary, FakeStore(), known=("AAPL", "MSFT"))

    assert asyncio.run(router.refresh_available()) is False
    assert router.state.known_available == frozenset({"AAPL", "MSFT"})
    assert router.is_primary()


def test_snapshot_is_immutable():
    router = _router(FakeStore(), FakeStore())
    before = router.state
    router.set_mode(DataSourceMode.SECONDARY)
    assert before.mode is DataSourceMode.PRIMARY
    assert router.state is not before


def test_available_tickers_is_union():
    secondary = FakeStore(tickers=["msft", "KO"])
    router = _router(FakeStore(), secondary, known=("AAPL", "KO"))
    assert asyncio.run(router.available_tickers()) == ["AAPL", "KO", "MSFT"]


# ---------------------------------------------------------------------------
# State swaps during a lookup
# ---------------------------------------------------------------------------

def _during_lookup(router, ticker, swap):
    """Run a lookup and apply `swap` while the primary call is still in flight."""

    async def scenario():
        async def swap_soon():
            await asyncio.sleep(0.02)
            await swap()

        result, _ = await asyncio.gather(router.get_stock_data(ticker), swap_soon())
        return result

    return asyncio.run(scenario())


def test_mode_switch_mid_lookup_applies_to_next_call():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")}, delay_s=0.1)
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})
    router = _router(primary, secondary)

    async def to_secondary():
        router.set_mode(DataSourceMode.SECONDARY)

    in_flight = _during_lookup(router, "AAPL", to_secondary)

    assert in_flight.source == "primary"
    assert secondary.lookups() == []
    assert _lookup(router).source == "secondary"
    assert primary.lookups() == ["AAPL"]


def test_refresh_mid_lookup_applies_to_next_call():
    primary = FakeStore({"AAPL": profile("AAPL", "primary")}, tickers=["MSFT"], delay_s=0.1)
    secondary = FakeStore({"AAPL": profile("AAPL", "secondary")})
    router = _router(primary, secondary)

    async def refresh():
        assert await router.refresh_available() is True

    in_flight = _during_lookup(router, "AAPL", refresh)

    assert in_flight.source == "primary"
    assert router.state.known_available == frozenset({"MSFT"})
    assert _lookup(router).source == "secondary"
    assert primary.lookups() == ["AAPL"]
