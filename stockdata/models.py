"""
Primary store tables.

All three tables are written by the external pre-computation job; this package
only reads them.

  stocks            one row per ticker (basic profile columns)
  stock_data        per-ticker JSON blobs: closing history, dividends, financial data, ...
  time_period_data  pre-computed chart series keyed by (ticker, period)
"""

from sqlalchemy import JSON, Column, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint

from stockdata.database import Base


class Stock(Base):
    __tablename__ = "stocks"

    ticker = Column(String(10), primary_key=True)
    company_name = Column(Text, nullable=False)
    sector = Column(Text)
    industry = Column(Text)
    current_price = Column(Numeric)
    market_cap = Column(Numeric)
    dividend_yield = Column(Numeric)   # percent, e.g. 0.52 == 0.52 %
    beta = Column(Numeric)
    pe_ratio = Column(Numeric)
    eps = Column(Numeric)
    fifty_two_week_high = Column(Numeric)
    fifty_two_week_low = Column(Numeric)
    average_volume = Column(Numeric)
    description = Column(Text)


class StockData(Base):
    __tablename__ = "stock_data"

    ticker = Column(String(10), ForeignKey("stocks.ticker"), primary_key=True)
    closing_history = Column(JSON)       # [{"date": ..., "close": ...}] or {"dates": [...], "prices": [...]}
    dividends = Column(JSON)             # [{"date": ..., "amount": ...}] or {"<epoch>": {...}}
    income_statement = Column(JSON)
    balance_sheet = Column(JSON)
    cash_flow = Column(JSON)
    recommendations = Column(JSON)
    earnings_trend = Column(JSON)
    financial_data = Column(JSON)        # Yahoo-style camelCase fundamentals


class TimePeriodData(Base):
    __tablename__ = "time_period_data"
    __table_args__ = (UniqueConstraint("ticker", "period", name="uq_time_period_ticker_period"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String(10), index=True, nullable=False)
    period = Column(String(10), nullable=False)
    dates = Column(JSON)
    prices = Column(JSON)
