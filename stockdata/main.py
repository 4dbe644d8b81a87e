import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stockdata.api_clients.yahoo_client import YahooClient
from stockdata.config import settings
from stockdata.database import Base, SessionLocal, engine
from stockdata.domain import DataSourceMode
from stockdata.errors import DataUnavailable
from stockdata.services.data_source_router import DataSourceRouter
from stockdata.services.dividend_comparison import DividendYieldAggregator
from stockdata.services.market_data import DatabaseMarketData, YahooMarketData
from stockdata.services.period_series_store import PeriodSeriesStore
from stockdata.services.profile_stores import FileProfileStore, PrimaryProfileStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ModeRequest(BaseModel):
    mode: DataSourceMode


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def _default_comparator(http: httpx.AsyncClient | None) -> DividendYieldAggregator:
    if settings.market_data == "yahoo":
        source = YahooMarketData(YahooClient(http, timeout_s=settings.timeout_s))
    else:
        source = DatabaseMarketData(SessionLocal)
    return DividendYieldAggregator(source, timeout_s=settings.timeout_s)


def create_app(
    router: DataSourceRouter | None = None,
    series_store: PeriodSeriesStore | None = None,
    comparator: DividendYieldAggregator | None = None,
    *,
    benchmark: str | None = None,
) -> FastAPI:
    """
    Build the API. Services left as None are wired to the configured database,
    JSON directory and market-data source.
    """
    owns_database = router is None or series_store is None
    http = httpx.AsyncClient() if comparator is None and settings.market_data == "yahoo" else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            Base.metadata.create_all(bind=engine)
        await app.state.router.refresh_available()
        try:
            yield
        finally:
            if http is not None:
                await http.aclose()

    app = FastAPI(title="StockData Backend", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.router = router or DataSourceRouter(
        PrimaryProfileStore(SessionLocal),
        FileProfileStore(settings.json_dir),
        timeout_s=settings.timeout_s,
    )
    app.state.series_store = series_store or PeriodSeriesStore(SessionLocal, timeout_s=settings.timeout_s)
    app.state.comparator = comparator or _default_comparator(http)
    app.state.benchmark = (benchmark or settings.benchmark).strip().upper()

    @app.exception_handler(DataUnavailable)
    async def data_unavailable_handler(request: Request, exc: DataUnavailable):
        logger.warning("[API] %s %s -> 503 (%s: %s)", request.method, request.url.path, exc.source, exc.reason)
        return JSONResponse(
            status_code=503,
            content={"detail": "data source unavailable", "source": exc.source, "reason": exc.reason},
        )

    # -----------------------------------------------------------------------
    # Read endpoints
    # -----------------------------------------------------------------------

    @app.get("/health")
    def healthcheck(request: Request):
        return {"status": "ok", "data_source": request.app.state.router.state.mode.value}

    @app.get("/stocks")
    async def list_stocks(request: Request):
        return {"tickers": await request.app.state.router.available_tickers()}

    @app.get("/stocks/{ticker}")
    async def get_stock(ticker: str, request: Request):
        profile = await request.app.state.router.get_stock_data(ticker)
        if profile is None:
            raise HTTPException(status_code=404, detail=f"No data found for {ticker.strip().upper()}")
        return asdict(profile)

    @app.get("/stocks/{ticker}/history")
    async def list_history_periods(ticker: str, request: Request):
        return {
            "ticker": ticker.strip().upper(),
            "periods": await request.app.state.series_store.list_periods(ticker),
        }

    @app.get("/stocks/{ticker}/history/{period}")
    async def get_history(ticker: str, period: str, request: Request):
        series = await request.app.state.series_store.get_series(ticker, period)
        if series is None:
            raise HTTPException(
                status_code=404, detail=f"No {period.lower()} history for {ticker.strip().upper()}"
            )
        return asdict(series)

    @app.get("/dividends/{ticker}/compare")
    async def compare_dividends(
        ticker: str,
        request: Request,
        benchmark: str | None = None,
        lookback: str = "3Y",
    ):
        benchmark = benchmark or request.app.state.benchmark
        try:
            comparison = await request.app.state.comparator.compare(ticker, benchmark, lookback)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if comparison is None:
            raise HTTPException(
                status_code=404,
                detail=f"No price data for {ticker.strip().upper()} or {benchmark.strip().upper()}",
            )
        return asdict(comparison)

    # -----------------------------------------------------------------------
    # Operator endpoints
    # -----------------------------------------------------------------------

    def _source_status(router: DataSourceRouter) -> dict:
        state = router.state
        return {"mode": state.mode.value, "known_available": len(state.known_available)}

    @app.get("/admin/data-source")
    def get_data_source(request: Request):
        return _source_status(request.app.state.router)

    @app.put("/admin/data-source")
    def set_data_source(body: ModeRequest, request: Request):
        request.app.state.router.set_mode(body.mode)
        return _source_status(request.app.state.router)

    @app.post("/admin/data-source/refresh")
    async def refresh_data_source(request: Request):
        ok = await request.app.state.router.refresh_available()
        return {"ok": ok, **_source_status(request.app.state.router)}

    return app


app = create_app()
