"""Fixtures for kiosk_lite unit tests."""

from collections.abc import AsyncIterator

import pytest

from kiosk_lite.core.http_client import close_all_clients


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()
