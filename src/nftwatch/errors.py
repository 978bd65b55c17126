"""
Errors
======

Exception taxonomy for the alert service.

Per-item and per-collection errors are caught at the smallest possible
scope by the pollers, so one failing collection never aborts a cycle.
Only ConfigurationError is fatal, and only at startup.
"""

from typing import Optional


class NftWatchError(Exception):
    """Base error for the service."""
    pass


class IncompleteUpstreamData(NftWatchError):
    """A fetched event (or its display data) lacks required fields."""

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


class UpstreamError(NftWatchError):
    """Marketplace API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamRateLimitError(UpstreamError):
    """Rate limit still in effect after the bounded backoff."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message, status=429)
        self.attempts = attempts


class StateStoreError(NftWatchError):
    """State store read/write failed."""
    pass


class NotifierError(NftWatchError):
    """Alert delivery failed."""
    pass


class ConfigurationError(NftWatchError):
    """Missing or invalid setting at startup."""
    pass
