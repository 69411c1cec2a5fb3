"""Dependency injection container for the kiosk_lite server."""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from kiosk_lite.cache import PersistentStore, RefreshLock, RefreshOrchestrator, ResourceName
from kiosk_lite.cache.orchestrator import Fetcher

from .config_loader import Config
from .health_tracker import HealthTracker

logger = logging.getLogger(__name__)


@dataclass
class AppDependencies:
    """Container for the shared objects wired into the HTTP routes.

    Built once at startup; route handlers receive it instead of reaching for
    module-level state.
    """

    # Configuration
    config: Config
    timezone: datetime.tzinfo

    # Cache core
    store: PersistentStore
    refresh_lock: RefreshLock
    orchestrator: RefreshOrchestrator

    # Infrastructure
    health_tracker: HealthTracker
    stop_event: asyncio.Event

    # Upstream adapters (None when not configured)
    oauth_service: Any = None

    def configured_resources(self) -> list[ResourceName]:
        """Resources that have an upstream fetcher registered."""
        return [r for r in ResourceName if self.orchestrator.has_fetcher(r)]


class DependencyContainer:
    """Factory for building application dependencies."""

    @staticmethod
    def build_dependencies(
        config: Config,
        clock: Optional[Callable[[], float]] = None,
        fetchers: Optional[dict[ResourceName, Fetcher]] = None,
    ) -> AppDependencies:
        """Build all application dependencies.

        Args:
            config: Validated application configuration
            clock: Optional epoch-seconds clock for the store (tests)
            fetchers: Explicit fetchers; when None they are built from config

        Returns:
            AppDependencies with the cache core and adapters initialized
        """
        from kiosk_lite.core.timezone_utils import resolve_timezone

        tz = resolve_timezone(config.timezone)
        health_tracker = HealthTracker()
        store = PersistentStore(config.data_dir, clock=clock)
        refresh_lock = RefreshLock(store, stale_after_ms=config.lock_stale_ms)

        oauth_service = None
        if fetchers is None:
            fetchers, oauth_service = DependencyContainer.build_fetchers(config, store, tz)

        orchestrator = RefreshOrchestrator(
            store,
            refresh_lock,
            fetchers=fetchers,
            ttl_seconds=config.ttl_map(),
            fetch_timeout_seconds=config.fetch_timeout_seconds,
            health_tracker=health_tracker,
        )

        return AppDependencies(
            config=config,
            timezone=tz,
            store=store,
            refresh_lock=refresh_lock,
            orchestrator=orchestrator,
            health_tracker=health_tracker,
            stop_event=asyncio.Event(),
            oauth_service=oauth_service,
        )

    @staticmethod
    def build_fetchers(
        config: Config, store: PersistentStore, tz: datetime.tzinfo
    ) -> tuple[dict[ResourceName, Fetcher], Any]:
        """Create upstream fetchers for whichever resources are configured.

        Returns:
            (fetchers keyed by resource, OAuthService or None)
        """
        from kiosk_lite.sources import IcsFetcher, OAuthService, TasksFetcher, TokenStore

        fetchers: dict[ResourceName, Fetcher] = {}
        oauth_service = None

        if config.ics_url:
            fetchers[ResourceName.CALENDAR] = IcsFetcher(
                config.ics_url,
                tz,
                has_stored_data=lambda: store.modification_time(ResourceName.CALENDAR) is not None,
            )
        else:
            logger.warning("ICS_URL not set; calendar will be served from storage only")

        if config.has_oauth_credentials:
            oauth_service = OAuthService(
                client_id=config.google_client_id,
                client_secret=config.google_client_secret,
                redirect_uri=config.google_redirect_uri,
                scopes=config.google_scopes,
                token_store=TokenStore(config.secrets_dir),
            )
            fetchers[ResourceName.TASKS] = TasksFetcher(oauth_service, tz)
        else:
            logger.info("Google OAuth credentials not set; tasks refresh disabled")

        return fetchers, oauth_service
