"""
Runtime settings.

Loads .env from the repo root (never overriding variables already set in the
shell), then reads STOCKDATA_* environment variables:

  STOCKDATA_DATABASE_URL   primary relational store (default: sqlite file beside the package)
  STOCKDATA_JSON_DIR       secondary per-ticker JSON store directory
  STOCKDATA_TIMEOUT_S      timeout applied to every downstream call
  STOCKDATA_BENCHMARK      default benchmark ticker for dividend comparisons
  STOCKDATA_MARKET_DATA    "database" or "yahoo": source of dividend events and quotes
  STOCKDATA_LOG_LEVEL      logging level name
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_PACKAGE_DIR = Path(__file__).resolve().parent
load_dotenv(_PACKAGE_DIR.parent / ".env", override=False)

MARKET_DATA_SOURCES = ("database", "yahoo")


@dataclass(frozen=True)
class Settings:
    database_url: str
    json_dir: Path
    timeout_s: float
    benchmark: str
    market_data: str
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        market_data = os.environ.get("STOCKDATA_MARKET_DATA", "database").strip().lower()
        if market_data not in MARKET_DATA_SOURCES:
            raise ValueError(
                f"STOCKDATA_MARKET_DATA must be one of {MARKET_DATA_SOURCES}, got {market_data!r}"
            )
        return cls(
            database_url=os.environ.get(
                "STOCKDATA_DATABASE_URL", f"sqlite:///{_PACKAGE_DIR / 'stockdata.db'}"
            ),
            json_dir=Path(os.environ.get("STOCKDATA_JSON_DIR", str(_PACKAGE_DIR / "STOCKDATA"))),
            timeout_s=float(os.environ.get("STOCKDATA_TIMEOUT_S", "10")),
            benchmark=os.environ.get("STOCKDATA_BENCHMARK", "SPY").strip().upper(),
            market_data=market_data,
            log_level=os.environ.get("STOCKDATA_LOG_LEVEL", "INFO").upper(),
        )


settings = Settings.from_env()
