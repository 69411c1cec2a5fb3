"""Exception hierarchy for the kiosk_lite cache layer.

Upstream and storage failures are raised as specific types so the
orchestrator can absorb the recoverable ones and route handlers can map the
rest onto HTTP status codes.
"""

from __future__ import annotations

from typing import Optional


class KioskCacheError(Exception):
    """Base exception for all cache layer errors."""


class UpstreamUnavailable(KioskCacheError):
    """Upstream fetch failed or timed out.

    Recovered inside the orchestrator: the caller is served whatever is
    already stored.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamNotModified(UpstreamUnavailable):
    """Upstream answered 304 Not Modified; stored items are still current."""

    def __init__(self, message: str = "Not Modified"):
        super().__init__(message, status_code=304)


class StorageFault(KioskCacheError):
    """The durable medium could not be read or written."""


class NoDataAvailable(KioskCacheError):
    """No cached data exists for a resource (never fetched, or store unreadable)."""

    def __init__(self, resource: str, reason: str = "no data has been stored yet"):
        super().__init__(f"{resource} data unavailable: {reason}")
        self.resource = resource
        self.reason = reason
