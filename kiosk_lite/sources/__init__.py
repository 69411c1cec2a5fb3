"""Upstream adapters producing calendar events and tasks."""

from .ics_fetcher import IcsFetcher
from .ics_parser import IcsParseError, parse_events
from .models import Event, Task, TaskStatus
from .oauth import OAuthError, OAuthService, TokenStore
from .tasks_fetcher import TasksFetcher

__all__ = [
    "Event",
    "IcsFetcher",
    "IcsParseError",
    "OAuthError",
    "OAuthService",
    "Task",
    "TaskStatus",
    "TasksFetcher",
    "TokenStore",
    "parse_events",
]
