"""
Downstream call guard.

Every call that leaves the process (database query, file read, provider HTTP
request) goes through guarded(): it applies the timeout and turns transport
failures into DataUnavailable so callers branch on one exception type.

Programming errors (TypeError, KeyError, ...) are NOT converted; they propagate.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from sqlalchemy.exc import SQLAlchemyError

from stockdata.errors import DataUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSPORT_ERRORS = (SQLAlchemyError, httpx.HTTPError, OSError)


async def guarded(awaitable: Awaitable[T], *, source: str, timeout_s: float) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        logger.warning("[DOWNSTREAM] %s timed out after %.1fs", source, timeout_s)
        raise DataUnavailable(source, f"timed out after {timeout_s:.1f}s") from exc
    except _TRANSPORT_ERRORS as exc:
        logger.warning("[DOWNSTREAM] %s failed: %s", source, exc)
        raise DataUnavailable(source, str(exc) or type(exc).__name__) from exc


async def in_thread(fn: Callable[..., T], *args, source: str, timeout_s: float) -> T:
    """Run a blocking call (SQLAlchemy session, file read) in a worker thread, guarded."""
    return await guarded(asyncio.to_thread(fn, *args), source=source, timeout_s=timeout_s)
