"""kiosk_lite.api.server: aiohttp server for the kiosk display.

This module provides the server core that:
- builds the cache core (store, refresh lock, orchestrator) once at startup
- warms each configured resource with one forced refresh
- exposes the JSON API: GET /api/health, /api/meta, /api/calendar,
  /api/tasks and POST /api/admin/refresh

There is no background refresher: data is refreshed on the read path when a
client asks for a stale resource.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from aiohttp import web

from kiosk_lite.core.config_loader import Config
from kiosk_lite.core.dependencies import AppDependencies, DependencyContainer
from kiosk_lite.core.http_client import close_all_clients

logger = logging.getLogger(__name__)


async def _make_app(deps: AppDependencies) -> web.Application:
    """Create the aiohttp application with routes wired to ``deps``."""
    from kiosk_lite import __version__
    from kiosk_lite.api.middleware import correlation_id_middleware
    from kiosk_lite.api.routes import register_api_routes

    app = web.Application(middlewares=[correlation_id_middleware])
    register_api_routes(app, deps, __version__)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def warm_cache(deps: AppDependencies) -> dict[str, str]:
    """Force one refresh of every configured resource.

    Failures are absorbed by the orchestrator; the server starts regardless
    and serves whatever is stored.
    """
    results: dict[str, str] = {}
    for resource in deps.configured_resources():
        outcome = await deps.orchestrator.force_refresh(resource)
        results[resource.value] = outcome.value
        logger.info("Initial refresh of %s: %s", resource.value, outcome.value)
    return results


async def _serve(
    config: Config,
    external_stop_event: Optional[asyncio.Event] = None,
    deps: Optional[AppDependencies] = None,
) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Validated configuration
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
        deps: Prebuilt dependencies (tests); built from config when None
    """
    deps = deps or DependencyContainer.build_dependencies(config)
    stop_event = external_stop_event or deps.stop_event

    deps.store.ensure_data_dir()

    app = await _make_app(deps)
    runner = web.AppRunner(app)
    await runner.setup()

    host = config.server_bind
    port = config.server_port
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise

    logger.info("Kiosk API server running on http://%s:%d", host, port)
    logger.info("Data directory: %s", deps.store.data_dir)
    logger.info("ICS URL: %s", "configured" if config.ics_url else "not configured")
    logger.info(
        "Google Tasks: %s", "configured" if config.has_oauth_credentials else "not configured"
    )

    if deps.configured_resources():
        logger.info("Performing initial data fetch...")
        await warm_cache(deps)

    loop = asyncio.get_running_loop()
    if external_stop_event is None:

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await runner.cleanup()

    try:
        await close_all_clients()
        logger.debug("Shared HTTP clients cleaned up")
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


async def _refresh_once(config: Config) -> dict[str, str]:
    """Force-refresh every configured resource and close HTTP clients."""
    deps = DependencyContainer.build_dependencies(config)
    deps.store.ensure_data_dir()
    try:
        return await warm_cache(deps)
    finally:
        await close_all_clients()


def refresh_once(config: Config) -> dict[str, str]:
    """Blocking one-shot refresh used by ``kiosk-lite --refresh``."""
    return asyncio.run(_refresh_once(config))


async def _oauth_bootstrap(config: Config) -> None:
    from kiosk_lite.sources import OAuthService, TokenStore

    service = OAuthService(
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        redirect_uri=config.google_redirect_uri,
        scopes=config.google_scopes,
        token_store=TokenStore(config.secrets_dir),
    )
    try:
        await service.bootstrap()
    finally:
        await close_all_clients()


def oauth_bootstrap(config: Config) -> None:
    """Blocking OAuth consent flow used by ``kiosk-lite --oauth-bootstrap``."""
    asyncio.run(_oauth_bootstrap(config))


def start_server(config: Config) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks until SIGINT/SIGTERM is received.
    """
    from kiosk_lite.lite_logging import configure_lite_logging

    configure_lite_logging(debug_mode=config.debug_logging)
    logger.info("Logging configuration applied: debug_mode=%s", config.debug_logging)

    try:
        logger.debug("Running asyncio event loop for server")
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise

