"""Google Tasks fetcher (REST over httpx)."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

import httpx
from dateutil import parser as date_parser

from kiosk_lite.cache.exceptions import UpstreamUnavailable
from kiosk_lite.core.http_client import (
    get_headers_with_correlation_id,
    get_shared_client,
    record_client_error,
    record_client_success,
)

from .models import Task, TaskStatus
from .oauth import OAuthService

logger = logging.getLogger(__name__)

TASKS_API_BASE = "https://tasks.googleapis.com/tasks/v1"
MAX_RESULTS = 100


def _localize(value: Optional[str], tz: datetime.tzinfo) -> Optional[str]:
    """Re-render an RFC 3339 timestamp in ``tz``; unparsable values pass through."""
    if not value:
        return None
    try:
        dt = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        logger.debug("Unparsable task timestamp %r", value)
        return value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz).isoformat()


def _sort_key(task: Task) -> tuple[int, str]:
    # Tasks without a due date go last
    return (0, task.due) if task.due else (1, "")


def map_google_task(raw: dict[str, Any], list_id: str, tz: datetime.tzinfo) -> Task:
    """Convert one Tasks API resource into a Task."""
    status = TaskStatus.COMPLETED if raw.get("status") == "completed" else TaskStatus.NEEDS_ACTION
    return Task(
        id=str(raw["id"]),
        list_id=list_id,
        title=str(raw["title"]),
        notes=raw.get("notes"),
        due=_localize(raw.get("due"), tz),
        status=status,
        completed_at=_localize(raw.get("completed"), tz),
        updated=str(raw.get("updated", "")),
    )


class TasksFetcher:
    """Fetches tasks from the first (default) task list.

    Completed and hidden tasks are included; tasks without a title are
    dropped. Results are sorted by due date.
    """

    def __init__(
        self,
        oauth: OAuthService,
        tz: datetime.tzinfo,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.oauth = oauth
        self.tz = tz
        self._client = client
        self._client_id = "google"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(self._client_id)

    async def _get_json(self, path: str, access_token: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        client = await self._get_client()
        headers = get_headers_with_correlation_id()
        headers["Authorization"] = f"Bearer {access_token}"
        headers["Accept"] = "application/json"

        try:
            response = await client.get(f"{TASKS_API_BASE}{path}", headers=headers, params=params)
        except httpx.HTTPError as e:
            await record_client_error(self._client_id)
            raise UpstreamUnavailable(f"Network error calling Tasks API: {e}") from e

        if not response.is_success:
            await record_client_error(self._client_id)
            raise UpstreamUnavailable(
                f"Tasks API {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        await record_client_success(self._client_id)
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Tasks API {path} returned invalid JSON") from e
        return payload if isinstance(payload, dict) else {}

    async def __call__(self) -> list[Task]:
        access_token = await self.oauth.get_access_token()

        lists = (await self._get_json("/users/@me/lists", access_token)).get("items") or []
        if not lists:
            logger.info("No task lists found")
            return []

        default_list = lists[0]
        list_id = str(default_list["id"])
        logger.debug("Using task list: %s (%s)", default_list.get("title"), list_id)

        payload = await self._get_json(
            f"/lists/{list_id}/tasks",
            access_token,
            params={
                "showCompleted": "true",
                "showHidden": "true",
                "maxResults": MAX_RESULTS,
            },
        )

        tasks = [
            map_google_task(raw, list_id, self.tz)
            for raw in payload.get("items") or []
            if raw.get("title")
        ]
        tasks.sort(key=_sort_key)
        return tasks
