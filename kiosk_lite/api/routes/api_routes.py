"""JSON API routes for kiosk_lite."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any

from kiosk_lite.cache import CacheReadResult, NoDataAvailable, ResourceName, StorageFault

logger = logging.getLogger(__name__)

TASKS_NOT_CONFIGURED_MESSAGE = (
    "Please configure GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and run the OAuth bootstrap"
)


def _check_bearer_token(request: Any, required_token: str | None) -> bool:
    """Check if request has valid bearer token.

    Args:
        request: aiohttp request object
        required_token: Expected bearer token; an empty token never matches

    Returns:
        True if the Authorization header carries the expected token
    """
    if not required_token:
        return False

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False

    return auth_header[7:] == required_token


def _is_loopback(remote: str | None) -> bool:
    if not remote:
        return False
    try:
        return ipaddress.ip_address(remote).is_loopback
    except ValueError:
        return False


def cache_headers(result: CacheReadResult) -> dict[str, str]:
    """Freshness headers attached to every data response."""
    return {
        "X-Cache-Stale": "true" if result.is_stale else "false",
        "X-Cache-Stored-At": str(result.freshness.stored_at),
    }


def register_api_routes(app: Any, deps: Any, version: str) -> None:
    """Register the kiosk JSON API.

    Args:
        app: aiohttp web application
        deps: AppDependencies built at startup
        version: Package version reported by /api/health
    """
    from aiohttp import web

    from kiosk_lite.core.health_tracker import get_system_diagnostics

    orchestrator = deps.orchestrator
    health_tracker = deps.health_tracker
    config = deps.config

    async def health_check(_request: Any) -> Any:
        """Liveness plus per-resource refresh counters; always 200."""
        resources = [r.value for r in ResourceName]
        status = health_tracker.get_health_status(resources)
        diag = get_system_diagnostics()

        return web.json_response(
            {
                "ok": True,
                "status": status.status,
                "uptime": status.uptime_seconds,
                "version": version,
                "pid": status.pid,
                "resources": status.resources,
                "system_diagnostics": {
                    "platform": diag.platform,
                    "python_version": diag.python_version,
                    "event_loop_running": diag.event_loop_running,
                },
            }
        )

    async def meta(_request: Any) -> Any:
        """Freshness metadata for both resources; never triggers a refresh."""
        try:
            described = {r: orchestrator.describe(r).to_dict() for r in ResourceName}
        except StorageFault:
            logger.exception("Failed to read cache metadata")
            return web.json_response({"error": "Failed to get metadata"}, status=500)

        body: dict[str, Any] = {r.value: described[r] for r in ResourceName}
        body["timezone"] = config.timezone
        body["nextRefresh"] = min(m["nextRefresh"] for m in described.values())
        return web.json_response(body)

    async def _serve_resource(resource: ResourceName, unavailable_error: str) -> Any:
        try:
            result = await orchestrator.get_fresh(resource)
        except Exception:
            logger.exception("Unexpected error serving %s", resource.value)
            return web.json_response({"error": unavailable_error}, status=503)

        try:
            result.raise_if_unavailable()
        except NoDataAvailable as exc:
            logger.warning("%s", exc)
            return web.json_response({"error": unavailable_error}, status=503)

        return web.json_response(result.items, headers=cache_headers(result))

    async def calendar(_request: Any) -> Any:
        return await _serve_resource(ResourceName.CALENDAR, "Calendar data unavailable")

    async def tasks(_request: Any) -> Any:
        if not orchestrator.has_fetcher(ResourceName.TASKS):
            try:
                has_stored = deps.store.modification_time(ResourceName.TASKS) is not None
            except StorageFault:
                logger.exception("Failed to inspect stored tasks")
                has_stored = True
            if not has_stored:
                return web.json_response(
                    {
                        "error": "Google Tasks not configured",
                        "message": TASKS_NOT_CONFIGURED_MESSAGE,
                    }
                )
        return await _serve_resource(ResourceName.TASKS, "Tasks data unavailable")

    async def admin_refresh(request: Any) -> Any:
        """Force-refresh every resource, still going through the refresh lock."""
        if not _is_loopback(request.remote) and not _check_bearer_token(
            request, config.admin_token
        ):
            logger.warning("Rejected admin refresh from %s", request.remote)
            return web.json_response({"error": "Unauthorized"}, status=403)

        logger.info("Manual cache refresh requested")
        results: dict[str, str] = {}
        for resource in ResourceName:
            outcome = await orchestrator.force_refresh(resource)
            results[resource.value] = outcome.value
            logger.info("Manual refresh of %s: %s", resource.value, outcome.value)

        return web.json_response(
            {"success": True, "message": "Cache refresh completed", "results": results}
        )

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/meta", meta)
    app.router.add_get("/api/calendar", calendar)
    app.router.add_get("/api/tasks", tasks)
    app.router.add_post("/api/admin/refresh", admin_refresh)
