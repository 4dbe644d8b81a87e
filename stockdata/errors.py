"""
Error taxonomy.

  NotFound      well-formed query, no data            -> callers get None
  InvalidShape  data exists but fails validation      -> callers get None, logged distinctly
  Unavailable   timeout / transport / database error  -> DataUnavailable raised (retryable)

Malformed timestamps are not errors at all; the timestamp normalizer resolves them.
"""


class StockDataError(Exception):
    """Base class for errors raised by this package."""


class DataUnavailable(StockDataError, RuntimeError):
    """A downstream store or provider could not answer. Retryable."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class InvalidShape(StockDataError, ValueError):
    """Stored data failed structural validation. Never served, treated as absent."""
