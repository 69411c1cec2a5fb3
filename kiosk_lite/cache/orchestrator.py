"""Stale-while-revalidate read path for the cached resources.

A read checks the stored blob's age. Fresh blobs are returned without touching
the lock or the upstream. Stale blobs trigger at most one refresh attempt
guarded by the RefreshLock; whatever the attempt's outcome, the caller gets
what is stored afterwards. Upstream failures and lock contention are absorbed
here and only show up as ``stale`` in the freshness metadata.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Mapping
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from .exceptions import StorageFault, UpstreamNotModified
from .freshness import evaluate
from .lock import RefreshLock
from .models import (
    AcquireResult,
    CacheReadResult,
    FreshnessResult,
    RefreshOutcome,
    ResourceName,
)
from .store import PersistentStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[list[Any]]]

DEFAULT_TTL_SECONDS = 300
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


def _to_item(item: Any) -> dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(item, Mapping):
        return dict(item)
    raise TypeError(f"Unsupported item type from fetcher: {type(item).__name__}")


class RefreshOrchestrator:
    """Serves cached resources and refreshes them opportunistically."""

    def __init__(
        self,
        store: PersistentStore,
        lock: RefreshLock,
        fetchers: Optional[Mapping[ResourceName, Fetcher]] = None,
        ttl_seconds: Union[int, Mapping[ResourceName, int]] = DEFAULT_TTL_SECONDS,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        health_tracker: Any = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Durable store for blobs and lock markers
            lock: Refresh lock sharing the same store
            fetchers: Upstream fetch callables keyed by resource; a resource
                without a fetcher is served from storage only
            ttl_seconds: One TTL for every resource, or a per-resource mapping
            fetch_timeout_seconds: Upper bound on a single upstream fetch
            health_tracker: Optional HealthTracker recording refresh outcomes

        Raises:
            ValueError: if the lock's staleness threshold is not below every TTL
        """
        self._store = store
        self._lock = lock
        self._fetchers: dict[ResourceName, Fetcher] = {
            ResourceName(k): v for k, v in (fetchers or {}).items()
        }
        self._fetch_timeout = fetch_timeout_seconds
        self._health = health_tracker

        if isinstance(ttl_seconds, Mapping):
            self._ttl_ms = {
                r: int(ttl_seconds.get(r, DEFAULT_TTL_SECONDS)) * 1000 for r in ResourceName
            }
        else:
            self._ttl_ms = {r: int(ttl_seconds) * 1000 for r in ResourceName}

        for resource, ttl_ms in self._ttl_ms.items():
            if ttl_ms <= 0:
                raise ValueError(f"TTL for {resource.value} must be positive")
            if lock.stale_after_ms >= ttl_ms:
                raise ValueError(
                    f"Lock staleness threshold ({lock.stale_after_ms} ms) must be below "
                    f"the {resource.value} TTL ({ttl_ms} ms)"
                )

        if lock.stale_after_ms <= fetch_timeout_seconds * 1000:
            logger.warning(
                "Lock staleness threshold %d ms does not exceed fetch timeout %.1f s; "
                "a slow fetch may be overlapped by a second refresh",
                lock.stale_after_ms,
                fetch_timeout_seconds,
            )

    def ttl_ms(self, resource: ResourceName) -> int:
        return self._ttl_ms[ResourceName(resource)]

    def has_fetcher(self, resource: ResourceName) -> bool:
        return ResourceName(resource) in self._fetchers

    def describe(self, resource: ResourceName) -> FreshnessResult:
        """Freshness metadata for ``resource`` without triggering a refresh.

        Raises:
            StorageFault: if the store cannot be inspected.
        """
        resource = ResourceName(resource)
        stored_at = self._store.modification_time(resource)
        return evaluate(stored_at, self.ttl_ms(resource), self._store.now_ms())

    async def get_fresh(self, resource: ResourceName) -> CacheReadResult:
        """Return the stored items for ``resource``, refreshing first if stale.

        Never raises for upstream failures, lock contention or storage faults;
        unavailability is reported through ``CacheReadResult.available``.
        """
        resource = ResourceName(resource)

        try:
            freshness = self.describe(resource)
        except StorageFault as exc:
            logger.error("Cannot inspect %s cache: %s", resource.value, exc)
            return self._unavailable(resource, RefreshOutcome.FAILED, str(exc))

        if freshness.is_stale:
            outcome = await self._refresh(resource)
        else:
            outcome = RefreshOutcome.NOT_NEEDED

        return self._read_current(resource, outcome)

    async def force_refresh(self, resource: ResourceName) -> RefreshOutcome:
        """Refresh regardless of freshness, still honouring the refresh lock."""
        return await self._refresh(ResourceName(resource))

    async def _refresh(self, resource: ResourceName) -> RefreshOutcome:
        fetcher = self._fetchers.get(resource)
        if fetcher is None:
            logger.debug("No upstream configured for %s; serving stored data", resource.value)
            return RefreshOutcome.NO_FETCHER

        try:
            async with self._lock.hold(resource) as acquired:
                if acquired is AcquireResult.BUSY:
                    if self._health is not None:
                        self._health.record_lock_busy(resource.value)
                    return RefreshOutcome.BUSY
                return await self._fetch_and_store(resource, fetcher)
        except StorageFault as exc:
            logger.error("Refresh of %s aborted by storage fault: %s", resource.value, exc)
            self._record_failure(resource, exc)
            return RefreshOutcome.FAILED

    async def _fetch_and_store(self, resource: ResourceName, fetcher: Fetcher) -> RefreshOutcome:
        if self._health is not None:
            self._health.record_refresh_attempt(resource.value)

        logger.info("Refreshing %s cache...", resource.value)
        started = time.monotonic()

        try:
            raw_items = await asyncio.wait_for(fetcher(), timeout=self._fetch_timeout)
            items = [_to_item(item) for item in raw_items]
        except UpstreamNotModified:
            if self._store.touch(resource) is None:
                logger.warning("Upstream for %s reported not modified but nothing is stored", resource.value)
                self._record_failure(resource, "not modified without stored data")
                return RefreshOutcome.FAILED
            logger.info("Upstream for %s not modified; cache re-stamped", resource.value)
            if self._health is not None:
                self._health.record_refresh_success(resource.value, None)
            return RefreshOutcome.NOT_MODIFIED
        except asyncio.TimeoutError:
            logger.warning(
                "Refreshing %s timed out after %.1f s; serving stored data",
                resource.value,
                self._fetch_timeout,
            )
            self._record_failure(resource, "timeout")
            return RefreshOutcome.FAILED
        except Exception as exc:
            logger.warning("Error refreshing %s: %s; serving stored data", resource.value, exc)
            logger.debug("Refresh failure detail for %s", resource.value, exc_info=True)
            self._record_failure(resource, exc)
            return RefreshOutcome.FAILED

        self._store.write(resource, items)
        if self._health is not None:
            self._health.record_refresh_success(resource.value, len(items))
        logger.info(
            "Cached %d %s items in %.2f s", len(items), resource.value, time.monotonic() - started
        )
        return RefreshOutcome.REFRESHED

    def _record_failure(self, resource: ResourceName, error: Any) -> None:
        if self._health is not None:
            self._health.record_refresh_failure(resource.value, str(error))

    def _read_current(self, resource: ResourceName, outcome: RefreshOutcome) -> CacheReadResult:
        try:
            blob = self._store.read(resource)
        except StorageFault as exc:
            logger.error("Cannot read %s cache: %s", resource.value, exc)
            return self._unavailable(resource, outcome, str(exc))

        if blob is None:
            return self._unavailable(resource, outcome, "no data has been stored yet")

        freshness = evaluate(blob.stored_at, self.ttl_ms(resource), self._store.now_ms())
        return CacheReadResult(
            resource=resource,
            items=blob.items,
            freshness=freshness,
            outcome=outcome,
        )

    def _unavailable(
        self, resource: ResourceName, outcome: RefreshOutcome, reason: str
    ) -> CacheReadResult:
        return CacheReadResult(
            resource=resource,
            items=[],
            freshness=evaluate(None, self.ttl_ms(resource), self._store.now_ms()),
            outcome=outcome,
            available=False,
            reason=reason,
        )
