"""Staleness policy: a pure function of blob age and TTL."""

from __future__ import annotations

from typing import Optional

from .models import FreshnessResult


def evaluate(stored_at: Optional[int], ttl: int, now: int) -> FreshnessResult:
    """Decide whether a blob stored at ``stored_at`` is still trustworthy at ``now``.

    Args:
        stored_at: Epoch milliseconds of the last write, or None when nothing is stored
        ttl: Time-to-live in milliseconds
        now: Current epoch milliseconds

    Returns:
        FreshnessResult. An age equal to ``ttl`` is stale; a missing blob is
        reported with ``stored_at=0`` and is always stale.
    """
    if stored_at is None:
        return FreshnessResult(stored_at=0, is_stale=True, ttl=ttl)

    return FreshnessResult(stored_at=stored_at, is_stale=(now - stored_at) >= ttl, ttl=ttl)
