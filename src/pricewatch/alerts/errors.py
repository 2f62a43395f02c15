# src/pricewatch/alerts/errors.py
from __future__ import annotations


class WatcherError(Exception):
    """Base class for everything a poll cycle can surface."""


class ConfigError(WatcherError):
    pass


class FetchError(WatcherError):
    """Price source unreachable or answered with a non-success status. Aborts the cycle."""


class MissingPriceData(WatcherError):
    """
    Per-rule gap: the source answered but did not include this symbol.
    Recorded in the cycle report, never raised out of a cycle.
    """
    def __init__(self, symbol: str):
        super().__init__(f"no price returned for {symbol}")
        self.symbol = symbol


class NotifyError(WatcherError):
    """Delivery failed. The cycle still persists state."""


class PersistError(WatcherError):
    """State snapshot could not be written; the next restart would re-alert."""
