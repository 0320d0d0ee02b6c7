"""Tests for the rate limiter, retry policy and RateLimitedClient."""

import asyncio
import json
import time

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession
from helpers.http_helper import (
    ApiConnectionError,
    ApiStatusError,
    ApiTimeoutError,
    RateLimitedClient,
    RateLimiter,
    should_retry,
)


def _client(session: FakeSession, max_retries: int = 3, **kwargs) -> RateLimitedClient:
    return RateLimitedClient(
        "Test",
        session=session,
        rate_limiter=RateLimiter(max_per_second=100, max_per_minute=1000, poll_interval=0.01),
        max_retries=max_retries,
        retry_delay=0.01,
        **kwargs,
    )


@pytest.mark.parametrize(
    "error, retry_count, expected",
    [
        (ApiStatusError(500), 0, True),
        (ApiStatusError(503), 2, True),
        (ApiStatusError(429), 0, True),
        (ApiStatusError(408), 0, True),
        (ApiStatusError(400), 0, False),
        (ApiStatusError(404), 0, False),
        (ApiConnectionError("reset"), 0, True),
        (ApiTimeoutError("slow"), 1, True),
        (ApiStatusError(500), 3, False),
        (ApiConnectionError("reset"), 3, False),
        (ValueError("unrelated"), 0, False),
    ],
)
def test_should_retry(error, retry_count, expected) -> None:
    assert should_retry(error, retry_count, max_retries=3) is expected


def test_backoff_doubles_per_attempt() -> None:
    client = RateLimitedClient("Test", retry_delay=1.0)
    assert [client.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


async def test_two_server_errors_then_success_retries_twice() -> None:
    session = FakeSession([
        FakeResponse(500, body="boom"),
        FakeResponse(500, body="boom"),
        FakeResponse(200, {"ok": True}),
    ])
    client = _client(session)

    assert await client.get("https://api.test/games") == {"ok": True}
    assert len(session.calls) == 3


async def test_client_error_is_not_retried() -> None:
    session = FakeSession([FakeResponse(400, body="bad request")])
    client = _client(session)

    with pytest.raises(ApiStatusError) as exc_info:
        await client.get("https://api.test/games")

    assert exc_info.value.status == 400
    assert exc_info.value.body == "bad request"
    assert len(session.calls) == 1


async def test_exhausted_retries_propagate_last_error() -> None:
    session = FakeSession([FakeResponse(503) for _ in range(3)])
    client = _client(session, max_retries=2)

    with pytest.raises(ApiStatusError) as exc_info:
        await client.get("https://api.test/games")

    assert exc_info.value.status == 503
    assert len(session.calls) == 3


async def test_timeout_maps_to_timeout_error_and_is_retried() -> None:
    session = FakeSession([asyncio.TimeoutError(), asyncio.TimeoutError()])
    client = _client(session, max_retries=1)

    with pytest.raises(ApiTimeoutError):
        await client.get("https://api.test/games")
    assert len(session.calls) == 2


async def test_network_error_maps_to_connection_error() -> None:
    session = FakeSession([aiohttp.ClientConnectionError("refused"), FakeResponse(200, [1, 2])])
    client = _client(session)

    assert await client.get("https://api.test/games") == [1, 2]
    assert len(session.calls) == 2


async def test_none_params_are_dropped_and_timeout_passed() -> None:
    session = FakeSession([FakeResponse(200, {})])
    client = _client(session, timeout=2.5)

    await client.get("https://api.test/games", params={"search": "portal", "genres": None})

    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["params"] == {"search": "portal"}
    assert call["timeout"].total == 2.5


async def test_close_leaves_injected_session_open() -> None:
    session = FakeSession([])
    client = _client(session)
    await client.close()
    assert session.closed is False


async def test_rate_limiter_delays_request_over_per_second_ceiling() -> None:
    limiter = RateLimiter(max_per_second=3, max_per_minute=100, poll_interval=0.01)

    started = time.monotonic()
    for _ in range(3):
        await limiter.acquire()
    assert time.monotonic() - started < 0.5

    waited = await limiter.acquire()
    assert waited >= 0.9
    assert time.monotonic() - started >= 0.9


async def test_rate_limiter_respects_per_minute_ceiling() -> None:
    limiter = RateLimiter(max_per_second=100, max_per_minute=2, poll_interval=0.01)
    await limiter.acquire()
    await limiter.acquire()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(limiter.acquire(), timeout=0.2)


async def test_retries_count_against_rate_limit() -> None:
    session = FakeSession([FakeResponse(500), FakeResponse(200, {})])
    limiter = RateLimiter(max_per_second=100, max_per_minute=1000, poll_interval=0.01)
    client = RateLimitedClient("Test", session=session, rate_limiter=limiter, retry_delay=0.01)

    await client.get("https://api.test/games")
    assert len(limiter._timestamps) == 2


async def test_non_json_success_body_is_terminal_status_error() -> None:
    not_json = json.JSONDecodeError("Expecting value", "<html>Service busy</html>", 0)
    session = FakeSession([FakeResponse(200, not_json, body="<html>Service busy</html>")])
    client = _client(session)

    with pytest.raises(ApiStatusError) as exc_info:
        await client.get("https://api.test/games")

    assert exc_info.value.status == 200
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert len(session.calls) == 1
