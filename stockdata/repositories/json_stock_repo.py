"""
Per-ticker JSON file repository (secondary store).

One file per ticker: <base_dir>/<TICKER>.json, as dumped by the
Yahoo export. Files are parsed through the sanitizing loader because they
contain NaN / Infinity / undefined tokens.

Outcomes:
  file missing              -> None                (NotFound)
  unparseable / not object  -> None, logged        (InvalidShape)
  OS error reading the file -> OSError propagates  (Unavailable, classified by the caller)
"""

import logging
import re
from pathlib import Path
from typing import Any

from stockdata.errors import InvalidShape
from stockdata.normalizers.profile_normalizer import loads_sanitized

logger = logging.getLogger(__name__)

# also keeps ticker input from escaping base_dir
_TICKER_RE = re.compile(r"^[A-Z0-9][A-Z0-9.\-^=]{0,14}$")


def _path_for(base_dir: Path, ticker: str) -> Path | None:
    if not _TICKER_RE.match(ticker):
        return None
    return base_dir / f"{ticker}.json"


def file_exists(base_dir: Path, ticker: str) -> bool:
    path = _path_for(base_dir, ticker)
    return path is not None and path.is_file()


def list_tickers(base_dir: Path) -> list[str]:
    if not base_dir.is_dir():
        logger.warning("[JSON] store directory %s does not exist", base_dir)
        return []
    return sorted(p.stem.upper() for p in base_dir.glob("*.json"))


def load_blob(base_dir: Path, ticker: str) -> dict[str, Any] | None:
    """Read and parse <TICKER>.json. Returns None when absent or invalid."""
    path = _path_for(base_dir, ticker)
    if path is None or not path.is_file():
        logger.debug("[JSON] no file for %s", ticker)
        return None

    try:
        blob = loads_sanitized(path.read_text(encoding="utf-8"))
    except (InvalidShape, UnicodeDecodeError) as exc:
        logger.warning("[JSON] invalid shape for %s: %s", ticker, exc)
        return None

    if not isinstance(blob, dict):
        logger.warning("[JSON] invalid shape for %s: top-level %s, expected object",
                       ticker, type(blob).__name__)
        return None
    return blob
