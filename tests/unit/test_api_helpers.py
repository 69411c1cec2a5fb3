"""Unit tests for helpers in kiosk_lite.api.routes.api_routes."""

from types import SimpleNamespace

import pytest

from kiosk_lite.api.routes.api_routes import _check_bearer_token, _is_loopback, cache_headers
from kiosk_lite.cache import CacheReadResult, RefreshOutcome, ResourceName
from kiosk_lite.cache.models import FreshnessResult

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _request(authorization=None):
    headers = {} if authorization is None else {"Authorization": authorization}
    return SimpleNamespace(headers=headers)


@pytest.mark.parametrize(
    "remote, expected",
    [
        ("127.0.0.1", True),
        ("127.0.0.2", True),
        ("::1", True),
        ("192.168.1.20", False),
        ("not-an-ip", False),
        (None, False),
    ],
)
def test_is_loopback(remote, expected) -> None:
    assert _is_loopback(remote) is expected


def test_bearer_token_matches() -> None:
    assert _check_bearer_token(_request("Bearer s3cret"), "s3cret") is True


@pytest.mark.parametrize("authorization", [None, "Bearer wrong", "Basic s3cret", "s3cret"])
def test_bearer_token_rejected(authorization) -> None:
    assert _check_bearer_token(_request(authorization), "s3cret") is False


def test_empty_token_never_matches() -> None:
    assert _check_bearer_token(_request("Bearer "), "") is False


def test_cache_headers() -> None:
    result = CacheReadResult(
        resource=ResourceName.CALENDAR,
        items=[],
        freshness=FreshnessResult(stored_at=1_700_000_000_000, is_stale=True, ttl=300_000),
        outcome=RefreshOutcome.BUSY,
    )

    assert cache_headers(result) == {"X-Cache-Stale": "true", "X-Cache-Stored-At": "1700000000000"}
