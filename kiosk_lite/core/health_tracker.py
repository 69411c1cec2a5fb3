"""Health tracking for the kiosk_lite server.

Records per-resource refresh activity reported by the RefreshOrchestrator so
/api/health can tell an operator whether upstreams are reachable, without
affecting what display clients are served.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

# A resource with no successful refresh for this long reports "degraded"
DEGRADED_AFTER_SECONDS = 900


@dataclass
class ResourceHealth:
    """Refresh counters for one cached resource."""

    last_refresh_attempt: Optional[float] = None
    last_refresh_success: Optional[float] = None
    last_refresh_failure: Optional[float] = None
    last_error: Optional[str] = None
    item_count: Optional[int] = None
    refresh_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    lock_busy_count: int = 0


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    uptime_seconds: int
    pid: int
    resources: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class SystemDiagnostics:
    """System diagnostics information."""

    platform: str
    python_version: str
    event_loop_running: bool


class HealthTracker:
    """In-process refresh bookkeeping; observability only, never used for cache decisions."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._resources: dict[str, ResourceHealth] = {}

    def _get(self, resource: str) -> ResourceHealth:
        return self._resources.setdefault(resource, ResourceHealth())

    def record_refresh_attempt(self, resource: str) -> None:
        """Record that an upstream fetch was started."""
        self._get(resource).last_refresh_attempt = time.time()

    def record_refresh_success(self, resource: str, item_count: Optional[int]) -> None:
        """Record a successful refresh.

        Args:
            resource: Resource name
            item_count: Items now stored, or None when the upstream reported no change
        """
        health = self._get(resource)
        health.last_refresh_success = time.time()
        health.refresh_count += 1
        health.consecutive_failures = 0
        health.last_error = None
        if item_count is not None:
            health.item_count = item_count

    def record_refresh_failure(self, resource: str, error: str) -> None:
        """Record a failed or timed-out refresh."""
        health = self._get(resource)
        health.last_refresh_failure = time.time()
        health.failure_count += 1
        health.consecutive_failures += 1
        health.last_error = error

    def record_lock_busy(self, resource: str) -> None:
        """Record that a refresh was skipped because another holder had the lock."""
        self._get(resource).lock_busy_count += 1

    def get_uptime_seconds(self) -> int:
        return int(time.time() - self._start_time)

    def get_resource_health(self, resource: str) -> ResourceHealth:
        return self._get(resource)

    def resource_summary(self, resource: str) -> dict[str, Any]:
        """JSON-friendly view of one resource's counters."""
        health = self._get(resource)
        now = time.time()

        def _age(ts: Optional[float]) -> Optional[int]:
            return None if ts is None else int(now - ts)

        return {
            "last_refresh_attempt_age_s": _age(health.last_refresh_attempt),
            "last_refresh_success_age_s": _age(health.last_refresh_success),
            "last_refresh_failure_age_s": _age(health.last_refresh_failure),
            "last_error": health.last_error,
            "item_count": health.item_count,
            "refresh_count": health.refresh_count,
            "failure_count": health.failure_count,
            "consecutive_failures": health.consecutive_failures,
            "lock_busy_count": health.lock_busy_count,
        }

    def determine_overall_status(self, resources: list[str]) -> str:
        """Return "ok" unless a tracked resource has failed repeatedly or gone quiet for too long."""
        now = time.time()
        for name in resources:
            health = self._resources.get(name)
            if health is None:
                continue
            if health.consecutive_failures >= 3:
                return "degraded"
            if (
                health.last_refresh_success is not None
                and now - health.last_refresh_success > DEGRADED_AFTER_SECONDS
                and health.last_refresh_failure is not None
                and health.last_refresh_failure > health.last_refresh_success
            ):
                return "degraded"
        return "ok"

    def get_health_status(self, resources: list[str]) -> HealthStatus:
        return HealthStatus(
            status=self.determine_overall_status(resources),
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            resources={name: self.resource_summary(name) for name in resources},
        )


def get_system_diagnostics() -> SystemDiagnostics:
    """Get system diagnostics information."""
    import asyncio
    import platform
    import sys

    event_loop_running = False
    try:
        asyncio.get_running_loop()
        event_loop_running = True
    except RuntimeError:
        pass

    return SystemDiagnostics(
        platform=platform.platform(),
        python_version=sys.version.split()[0],
        event_loop_running=event_loop_running,
    )
