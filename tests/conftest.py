"""Shared fixtures for kiosk_lite tests."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from pathlib import Path
from typing import Any, Optional

import pytest

from kiosk_lite.cache import PersistentStore, RefreshLock, ResourceName
from kiosk_lite.core.config_manager import ENV_KEYS

# 2023-11-14T22:13:20Z
EPOCH_START = 1_700_000_000.0


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = EPOCH_START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def ms(self) -> int:
        return int(self.now * 1000)


class FakeFetcher:
    """Async fetcher returning canned items, raising, or stalling on demand."""

    def __init__(
        self,
        items: Optional[list[Any]] = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
    ) -> None:
        self.items = items if items is not None else []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> list[Any]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.items)


def make_items(count: int, prefix: str = "item") -> list[dict[str, Any]]:
    """Plain item dicts with ids ``<prefix>-0`` .. ``<prefix>-<count-1>``."""
    return [{"id": f"{prefix}-{i}", "title": f"{prefix.title()} {i}"} for i in range(count)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir: Path, clock: FakeClock) -> PersistentStore:
    return PersistentStore(data_dir, clock=clock)


@pytest.fixture
def lock(store: PersistentStore) -> RefreshLock:
    return RefreshLock(store, stale_after_ms=15_000)


@pytest.fixture
def seed(store: PersistentStore, clock: FakeClock):
    """Write ``count`` items for a resource ``age_seconds`` in the past."""

    def _seed(resource: ResourceName, count: int, age_seconds: float = 0.0) -> int:
        clock.advance(-age_seconds)
        blob = store.write(resource, make_items(count, ResourceName(resource).value))
        clock.advance(age_seconds)
        return blob.stored_at

    return _seed


@pytest.fixture
def sample_ics() -> str:
    """
    ICS calendar used by the parser and fetcher tests.

    Relative to a "now" of 2024-01-10T12:00 America/Toronto:
    - "Team Meeting": timed, 2024-01-15 15:00-16:00 UTC
    - "Conference": all-day, 2024-01-12 (DTEND 2024-01-13)
    - untitled event: 2023-12-20 14:00 UTC with a 30 minute DURATION
    - "Ancient History": 2023-11-01, more than 30 days back, skipped
    """
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//Kiosk Test//EN\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:meeting-1@kiosk.test\r\n"
        "DTSTAMP:20240101T000000Z\r\n"
        "DTSTART:20240115T150000Z\r\n"
        "DTEND:20240115T160000Z\r\n"
        "SUMMARY:Team Meeting\r\n"
        "LOCATION:Conference Room A\r\n"
        "URL:https://example.com/meeting\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:allday-1@kiosk.test\r\n"
        "DTSTAMP:20240101T000000Z\r\n"
        "DTSTART;VALUE=DATE:20240112\r\n"
        "DTEND;VALUE=DATE:20240113\r\n"
        "SUMMARY:Conference\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:untitled-1@kiosk.test\r\n"
        "DTSTAMP:20240101T000000Z\r\n"
        "DTSTART:20231220T140000Z\r\n"
        "DURATION:PT30M\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:old-1@kiosk.test\r\n"
        "DTSTAMP:20240101T000000Z\r\n"
        "DTSTART:20231101T140000Z\r\n"
        "DTEND:20231101T150000Z\r\n"
        "SUMMARY:Ancient History\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Keep host configuration out of the tests."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("KIOSK_TEST_TIME", raising=False)
    yield


@pytest.fixture
def fake_fetcher() -> type[FakeFetcher]:
    """The FakeFetcher class, for building fetchers inside tests."""
    return FakeFetcher


@pytest.fixture
def items() -> Any:
    """The make_items helper."""
    return make_items
