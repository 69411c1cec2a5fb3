"""Unit tests for kiosk_lite.sources.ics_fetcher.IcsFetcher."""

import zoneinfo
from collections.abc import Callable

import httpx
import pytest

from kiosk_lite.cache import UpstreamNotModified, UpstreamUnavailable
from kiosk_lite.sources.ics_fetcher import IcsFetcher

pytestmark = [pytest.mark.unit, pytest.mark.fast]

FEED_URL = "https://calendar.example.com/feed.ics"
TORONTO = zoneinfo.ZoneInfo("America/Toronto")


class RecordingHandler:
    """MockTransport handler that replays queued responses and keeps the requests it saw."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


@pytest.fixture
def make_fetcher() -> Callable[..., IcsFetcher]:
    def _make(handler, url: str = FEED_URL, has_stored_data=None) -> IcsFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return IcsFetcher(url, TORONTO, has_stored_data=has_stored_data, client=client)

    return _make


@pytest.fixture(autouse=True)
def frozen_now(monkeypatch) -> None:
    monkeypatch.setenv("KIOSK_TEST_TIME", "2024-01-10T12:00:00-05:00")


async def test_fetch_parses_events(make_fetcher, sample_ics) -> None:
    handler = RecordingHandler(httpx.Response(200, text=sample_ics))

    events = await make_fetcher(handler)()

    assert [e.title for e in events] == ["Untitled Event", "Conference", "Team Meeting"]
    assert handler.requests[0].headers["User-Agent"] == "Kiosk-Calendar/1.0"


async def test_not_modified_raises(make_fetcher) -> None:
    fetcher = make_fetcher(RecordingHandler(httpx.Response(304)))

    with pytest.raises(UpstreamNotModified):
        await fetcher()


async def test_server_error_raises_unavailable_with_status(make_fetcher) -> None:
    fetcher = make_fetcher(RecordingHandler(httpx.Response(500)))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await fetcher()

    assert exc_info.value.status_code == 500


async def test_network_error_raises_unavailable(make_fetcher) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        await make_fetcher(handler)()


@pytest.mark.parametrize("url", ["", "ftp://example.com/feed.ics"])
async def test_bad_url_raises_without_request(make_fetcher, url) -> None:
    handler = RecordingHandler()

    with pytest.raises(UpstreamUnavailable):
        await make_fetcher(handler, url=url)()

    assert handler.requests == []


async def test_validators_replayed_only_with_stored_data(make_fetcher, sample_ics) -> None:
    handler = RecordingHandler(
        httpx.Response(200, text=sample_ics, headers={"ETag": '"v1"', "Last-Modified": "Wed, 10 Jan 2024 10:00:00 GMT"}),
        httpx.Response(200, text=sample_ics),
    )
    fetcher = make_fetcher(handler, has_stored_data=lambda: False)

    await fetcher()
    assert fetcher.etag == '"v1"'

    # Nothing stored: the validators are withheld so the upstream sends a body
    await fetcher()
    assert "If-None-Match" not in handler.requests[1].headers


async def test_conditional_headers_sent_when_data_stored(make_fetcher, sample_ics) -> None:
    handler = RecordingHandler(
        httpx.Response(200, text=sample_ics, headers={"ETag": '"v1"', "Last-Modified": "Wed, 10 Jan 2024 10:00:00 GMT"}),
        httpx.Response(304),
    )
    fetcher = make_fetcher(handler, has_stored_data=lambda: True)

    await fetcher()
    with pytest.raises(UpstreamNotModified):
        await fetcher()

    assert handler.requests[1].headers["If-None-Match"] == '"v1"'
    assert handler.requests[1].headers["If-Modified-Since"] == "Wed, 10 Jan 2024 10:00:00 GMT"


async def test_validators_not_committed_when_parse_fails(make_fetcher) -> None:
    handler = RecordingHandler(httpx.Response(200, text="garbage\r\nmore garbage\r\n", headers={"ETag": '"bad"'}))
    fetcher = make_fetcher(handler, has_stored_data=lambda: True)

    with pytest.raises(ValueError):
        await fetcher()

    assert fetcher.etag is None
    assert fetcher.get_conditional_headers() == {}
