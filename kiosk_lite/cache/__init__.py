"""Stale-while-revalidate cache for the kiosk's calendar and task datasets."""

from .exceptions import (
    KioskCacheError,
    NoDataAvailable,
    StorageFault,
    UpstreamNotModified,
    UpstreamUnavailable,
)
from .freshness import evaluate
from .lock import RefreshLock
from .models import (
    AcquireResult,
    CachedBlob,
    CacheReadResult,
    FreshnessResult,
    RefreshOutcome,
    ResourceName,
)
from .orchestrator import RefreshOrchestrator
from .store import PersistentStore

__all__ = [
    "AcquireResult",
    "CacheReadResult",
    "CachedBlob",
    "FreshnessResult",
    "KioskCacheError",
    "NoDataAvailable",
    "PersistentStore",
    "RefreshLock",
    "RefreshOrchestrator",
    "RefreshOutcome",
    "ResourceName",
    "StorageFault",
    "UpstreamNotModified",
    "UpstreamUnavailable",
    "evaluate",
]
