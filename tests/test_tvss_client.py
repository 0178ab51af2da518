"""
Tests for the TVSS API client

Requests are served by httpx.MockTransport; backoff sleeps are patched out.
"""
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest

from tv_schedule.exceptions import ConfigurationError, RemoteFetchError
from tv_schedule.services.tvss_client import AUTH_HEADER, TvssClient


def build_client(handler, **kwargs) -> TvssClient:
    return TvssClient(
        kwargs.pop("api_key", "secret"),
        kwargs.pop("call_sign", "wgbh"),
        base_uri="https://tvss.test/tvss/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr("tv_schedule.services.tvss_client.asyncio.sleep", sleep)
    return sleep


@pytest.mark.asyncio
async def test_get_feeds_sends_auth_header_and_parses_channels():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"feeds": [
            {"cid": "c1", "full_name": "WGBH 2", "short_name": "2", "external_id": 1234, "timezone": "America/New_York"},
        ]})

    feeds = await build_client(handler).get_feeds()

    assert seen[0].url.path == "/tvss/wgbh/today/"
    assert seen[0].headers[AUTH_HEADER] == "secret"
    assert len(feeds) == 1
    assert feeds[0].cid == "c1"
    assert feeds[0].external_id == "1234"
    assert feeds[0].timezone == "America/New_York"


@pytest.mark.asyncio
async def test_get_listings_requests_date_with_images():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"feeds": [
            {
                "cid": "c1",
                "full_name": "WGBH 2",
                "timezone": "America/New_York",
                "listings": [
                    {"cid": "l1", "title": "Nova", "start_time": "2000", "minutes": 60, "unknown_key": 1},
                ],
            },
        ]})

    batches = await build_client(handler).get_listings(date(2024, 3, 10))

    assert seen[0].url.path == "/tvss/wgbh/day/20240310/"
    assert seen[0].url.params["fetch-images"] == "true"
    assert batches[0].listings[0].cid == "l1"
    assert batches[0].listings[0].minutes == 60


@pytest.mark.asyncio
async def test_empty_day_returns_no_batches():
    client = build_client(lambda request: httpx.Response(200, json={"feeds": []}))
    assert await client.get_listings(date(2030, 1, 1)) == []


@pytest.mark.asyncio
async def test_malformed_feed_is_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feeds": [
            {"full_name": "No CID"},
            {"cid": "c2", "full_name": "Good"},
        ]})

    feeds = await build_client(handler).get_feeds()

    assert [feed.cid for feed in feeds] == ["c2"]


@pytest.mark.asyncio
async def test_response_without_feeds_list_raises():
    client = build_client(lambda request: httpx.Response(200, json={"feeds": "nope"}))
    with pytest.raises(RemoteFetchError):
        await client.get_feeds()


@pytest.mark.asyncio
async def test_client_error_is_not_retried(no_sleep):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, json={"detail": "forbidden"})

    with pytest.raises(RemoteFetchError) as exc_info:
        await build_client(handler).get_feeds()

    assert exc_info.value.status_code == 403
    assert len(calls) == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_server_error_is_retried(no_sleep):
    responses = [httpx.Response(503), httpx.Response(200, json={"feeds": []})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    assert await build_client(handler).get_feeds() == []
    no_sleep.assert_awaited_once_with(1.0)


@pytest.mark.asyncio
async def test_retries_exhausted_raises(no_sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteFetchError):
        await build_client(handler, max_retries=3).get_feeds()

    assert no_sleep.await_count == 2


@pytest.mark.asyncio
async def test_invalid_json_raises():
    client = build_client(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(RemoteFetchError):
        await client.get_feeds()


@pytest.mark.asyncio
async def test_missing_credentials_is_configuration_error():
    client = build_client(lambda request: httpx.Response(200, json={"feeds": []}), api_key=None)
    with pytest.raises(ConfigurationError):
        await client.get_feeds()


@pytest.mark.asyncio
async def test_malformed_listing_only_skips_that_listing():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feeds": [
            {
                "cid": "TESTV",
                "full_name": "Test TV",
                "timezone": "America/Los_Angeles",
                "listings": [
                    {"cid": "A1", "title": "Nova", "start_time": "1930", "minutes": 60},
                    {"cid": "A2", "title": "Frontline", "start_time": "2030", "minutes": "soon"},
                    {"title": "No CID", "start_time": "2130", "minutes": 30},
                ],
            },
        ]})

    batches = await build_client(handler).get_listings(date(2024, 3, 10))

    assert [batch.cid for batch in batches] == ["TESTV"]
    assert [listing.cid for listing in batches[0].listings] == ["A1"]
    assert batches[0].malformed_cids == ["A2"]


@pytest.mark.asyncio
async def test_listing_without_minutes_parses_as_missing():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feeds": [
            {"cid": "TESTV", "listings": [{"cid": "A1", "title": "Nova", "start_time": "1930"}]},
        ]})

    batches = await build_client(handler).get_listings(date(2024, 3, 10))

    listing = batches[0].listings[0]
    assert listing.minutes is None
    assert listing.has("minutes") is False


@pytest.mark.asyncio
async def test_feed_with_non_list_listings_is_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"feeds": [
            {"cid": "BAD", "listings": "none"},
            {"cid": "GOOD", "listings": []},
        ]})

    batches = await build_client(handler).get_listings(date(2024, 3, 10))

    assert [batch.cid for batch in batches] == ["GOOD"]
