"""Best-effort, time-bounded refresh lock built on store lock markers.

This is a mutual-exclusion hint, not a correctness-grade mutex. Two callers
can both pass the staleness check in the window before the create; the worst
case is two redundant upstream fetches, each of which writes a valid blob.
A marker older than the staleness threshold is presumed abandoned by a
crashed holder and is reclaimed, so a dead process cannot wedge a resource.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

from .models import AcquireResult, ResourceName
from .store import PersistentStore

logger = logging.getLogger(__name__)

DEFAULT_LOCK_STALE_MS = 15_000


class RefreshLock:
    """Per-resource refresh lock with no in-process state."""

    def __init__(self, store: PersistentStore, stale_after_ms: int = DEFAULT_LOCK_STALE_MS) -> None:
        """Initialize the lock.

        Args:
            store: Store that owns the lock markers
            stale_after_ms: Marker age at which it is presumed abandoned
        """
        if stale_after_ms <= 0:
            raise ValueError("stale_after_ms must be positive")
        self._store = store
        self.stale_after_ms = stale_after_ms

    def try_acquire(self, resource: ResourceName) -> AcquireResult:
        """Try to take the refresh lock for ``resource``.

        Raises:
            StorageFault: if the marker cannot be inspected or created.
        """
        age = self._store.lock_marker_age(resource)
        if age is not None:
            if age < self.stale_after_ms:
                logger.debug("Refresh lock for %s busy (age %d ms)", ResourceName(resource).value, age)
                return AcquireResult.BUSY
            logger.warning(
                "Reclaiming abandoned refresh lock for %s (age %d ms >= %d ms)",
                ResourceName(resource).value,
                age,
                self.stale_after_ms,
            )
            self._store.remove_lock_marker(resource)

        if not self._store.put_lock_marker(resource):
            return AcquireResult.BUSY
        return AcquireResult.ACQUIRED

    def release(self, resource: ResourceName) -> None:
        """Remove the marker. Safe to call when the lock was never held."""
        self._store.remove_lock_marker(resource)

    @contextlib.asynccontextmanager
    async def hold(self, resource: ResourceName) -> AsyncIterator[AcquireResult]:
        """Acquire for the duration of the block; release on every exit path."""
        result = self.try_acquire(resource)
        try:
            yield result
        finally:
            if result is AcquireResult.ACQUIRED:
                try:
                    self.release(resource)
                except Exception:
                    logger.exception("Failed to release refresh lock for %s", ResourceName(resource).value)
