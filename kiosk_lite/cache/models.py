"""Data models for the stale-while-revalidate cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import NoDataAvailable


class ResourceName(str, Enum):
    """The closed set of cached datasets."""

    CALENDAR = "calendar"
    TASKS = "tasks"


class AcquireResult(str, Enum):
    """Outcome of a RefreshLock.try_acquire() call."""

    ACQUIRED = "acquired"
    BUSY = "busy"


class RefreshOutcome(str, Enum):
    """What happened to the upstream on a single read or forced refresh."""

    NOT_NEEDED = "not_needed"
    REFRESHED = "refreshed"
    NOT_MODIFIED = "not_modified"
    BUSY = "busy"
    FAILED = "failed"
    NO_FETCHER = "no_fetcher"


class CachedBlob(BaseModel):
    """One stored payload for a resource, as written to disk."""

    resource: ResourceName
    stored_at: int = Field(..., description="Epoch milliseconds of the write")
    items: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)


class LockMarker(BaseModel):
    """Body of a lock marker file. Only the file's age is used for decisions."""

    resource: ResourceName
    acquired_at: int
    pid: int
    host: str

    model_config = ConfigDict(use_enum_values=True)


@dataclass(frozen=True)
class FreshnessResult:
    """Freshness of a stored blob at a particular instant (all values in ms)."""

    stored_at: int
    is_stale: bool
    ttl: int

    @property
    def next_refresh(self) -> int:
        """Earliest time a refresh is likely: stored_at + ttl."""
        return self.stored_at + self.ttl

    def to_dict(self) -> dict[str, Any]:
        return {
            "storedAt": self.stored_at,
            "stale": self.is_stale,
            "ttl": self.ttl,
            "nextRefresh": self.next_refresh,
        }


@dataclass
class CacheReadResult:
    """Everything a request handler needs from one get_fresh() call."""

    resource: ResourceName
    items: list[dict[str, Any]]
    freshness: FreshnessResult
    outcome: RefreshOutcome
    available: bool = True
    reason: Optional[str] = field(default=None)

    @property
    def is_stale(self) -> bool:
        return self.freshness.is_stale

    def raise_if_unavailable(self) -> None:
        """Raise NoDataAvailable when there is nothing to serve."""
        if not self.available:
            raise NoDataAvailable(self.resource.value, self.reason or "no data has been stored yet")
