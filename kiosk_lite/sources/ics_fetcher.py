"""HTTP fetcher for the calendar ICS feed."""

from __future__ import annotations

import datetime
import logging
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx

from kiosk_lite.cache.exceptions import UpstreamNotModified, UpstreamUnavailable
from kiosk_lite.core.http_client import (
    get_headers_with_correlation_id,
    get_shared_client,
    record_client_error,
    record_client_success,
)
from kiosk_lite.core.timezone_utils import now_utc

from .ics_parser import parse_events
from .models import Event

logger = logging.getLogger(__name__)


class IcsFetcher:
    """Downloads and parses the configured ICS feed.

    Instances are async callables so they can be registered directly as the
    calendar fetcher of a RefreshOrchestrator. ETag/Last-Modified validators
    from the last successful response are replayed as conditional headers,
    but only while ``has_stored_data`` reports that there is something to
    revalidate.
    """

    def __init__(
        self,
        url: str,
        tz: datetime.tzinfo,
        has_stored_data: Optional[Callable[[], bool]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.tz = tz
        self._has_stored_data = has_stored_data or (lambda: False)
        self._client = client
        self._client_id = "ics_fetcher"
        self.etag: Optional[str] = None
        self.last_modified: Optional[str] = None
        self._pending_validators: tuple[Optional[str], Optional[str]] = (None, None)

    def get_conditional_headers(self) -> dict[str, str]:
        """Conditional request headers, empty when there is nothing stored to revalidate."""
        headers: dict[str, str] = {}
        if not self._has_stored_data():
            return headers
        if self.etag:
            headers["If-None-Match"] = self.etag
        if self.last_modified:
            headers["If-Modified-Since"] = self.last_modified
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(self._client_id)

    async def fetch_text(self) -> str:
        """Download the raw feed.

        Raises:
            UpstreamNotModified: on HTTP 304
            UpstreamUnavailable: when the URL is missing or invalid, on network
                errors and on any other non-2xx status
        """
        if not self.url:
            raise UpstreamUnavailable("ICS_URL is not configured")
        if urlparse(self.url).scheme not in ("http", "https"):
            raise UpstreamUnavailable(f"Unsupported ICS URL scheme: {self.url}")

        headers = get_headers_with_correlation_id()
        headers.update(self.get_conditional_headers())

        client = await self._get_client()
        logger.debug("Fetching ICS from %s", self.url)
        try:
            response = await client.get(self.url, headers=headers)
        except httpx.HTTPError as e:
            await record_client_error(self._client_id)
            raise UpstreamUnavailable(f"Network error fetching ICS: {e}") from e

        if response.status_code == 304:
            await record_client_success(self._client_id)
            logger.debug("ICS content not modified (304)")
            raise UpstreamNotModified()

        if not response.is_success:
            await record_client_error(self._client_id)
            raise UpstreamUnavailable(
                f"ICS fetch failed: HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        await record_client_success(self._client_id)
        content = response.text
        if "BEGIN:VCALENDAR" not in content:
            logger.warning("Content does not appear to be valid ICS format")

        self._pending_validators = (
            response.headers.get("etag"),
            response.headers.get("last-modified"),
        )
        logger.debug("Fetched ICS content (%d bytes)", len(content))
        return content

    async def __call__(self) -> list[Event]:
        content = await self.fetch_text()
        events = parse_events(content, self.tz, now=now_utc().astimezone(self.tz))
        # Validators only become usable once the body they describe parsed cleanly
        self.etag, self.last_modified = self._pending_validators
        return events
