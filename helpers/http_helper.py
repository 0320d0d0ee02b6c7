"""
HTTP Helper
Rate-limited, retrying aiohttp client shared by the upstream API adapters
"""

import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

import aiohttp

from helpers.logging_helper import get_logger

DEFAULT_TIMEOUT = 5.0  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_REQUESTS_PER_SECOND = 10
DEFAULT_MAX_REQUESTS_PER_MINUTE = 100
RATE_LIMIT_POLL_INTERVAL = 0.1  # seconds
RETRYABLE_STATUSES = {408, 429}

logger = get_logger("HttpClient")


# ===== ERRORS =====

class ApiError(Exception):
    """Base class for failed upstream calls."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class ApiStatusError(ApiError):
    """The upstream answered with a non-2xx status."""

    def __init__(self, status: int, url: str = "", body: str = ""):
        super().__init__(f"HTTP {status} from {url}", url)
        self.status = status
        self.body = body


class ApiConnectionError(ApiError):
    """No response was received (DNS failure, refused or reset connection)."""


class ApiTimeoutError(ApiConnectionError):
    """The per-call timeout elapsed before a response arrived."""


def should_retry(error: Exception, retry_count: int, max_retries: int) -> bool:
    """
    Decide whether a failed call gets another attempt.

    Network errors, timeouts, 408, 429 and 5xx are transient; any other
    status is a terminal client error.
    """
    if retry_count >= max_retries:
        return False

    if isinstance(error, ApiStatusError):
        return error.status in RETRYABLE_STATUSES or error.status >= 500

    return isinstance(error, ApiConnectionError)


# ===== RATE LIMITING =====

class RateLimiter:
    """
    Sliding-window limiter with a per-second and a per-minute ceiling.

    One instance per upstream service, shared by every request to it.
    """

    def __init__(
        self,
        max_per_second: int = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_per_minute: int = DEFAULT_MAX_REQUESTS_PER_MINUTE,
        poll_interval: float = RATE_LIMIT_POLL_INTERVAL,
    ):
        self.max_per_second = max_per_second
        self.max_per_minute = max_per_minute
        self.poll_interval = poll_interval
        self._timestamps: Deque[float] = deque()

    def _has_headroom(self, now: float) -> bool:
        one_minute_ago = now - 60.0
        one_second_ago = now - 1.0

        while self._timestamps and self._timestamps[0] <= one_minute_ago:
            self._timestamps.popleft()

        recent = sum(1 for ts in self._timestamps if ts > one_second_ago)
        return recent < self.max_per_second and len(self._timestamps) < self.max_per_minute

    async def acquire(self) -> float:
        """
        Wait until both windows have room, then record the request.
        Returns how long the caller was held back, in seconds.
        """
        started = time.monotonic()
        while not self._has_headroom(time.monotonic()):
            await asyncio.sleep(self.poll_interval)

        # No await between the check and the append, so the slot can't be taken meanwhile
        self._timestamps.append(time.monotonic())
        return time.monotonic() - started


# ===== CLIENT =====

class RateLimitedClient:
    """
    Wraps an aiohttp session with rate limiting, timeouts and retry/backoff.

    The session is created lazily and owned by the client unless one is passed in.
    """

    def __init__(
        self,
        name: str,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        self.name = name
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-indexed)."""
        return self.retry_delay * (2 ** (attempt - 1))

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        session = self._get_session()
        logger.debug(f"[{self.name}] HTTP Request: {method.upper()} {url}")
        try:
            async with session.request(
                method.upper(),
                url,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                **kwargs,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise ApiStatusError(resp.status, url, body[:500])
                logger.debug(f"[{self.name}] HTTP Response: {resp.status} {url}")
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise ApiStatusError(resp.status, url, "response body was not JSON") from e
        except asyncio.TimeoutError as e:
            raise ApiTimeoutError(f"Request timed out after {self.timeout}s: {url}", url) from e
        except aiohttp.ContentTypeError as e:
            raise ApiStatusError(getattr(e, "status", 0) or 0, url, "response body was not JSON") from e
        except aiohttp.ClientResponseError as e:
            raise ApiStatusError(e.status, url, e.message or "") from e
        except aiohttp.ClientError as e:
            raise ApiConnectionError(f"Network error for {url}: {e}", url) from e

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one logical call and return the decoded JSON body.

        Raises ApiStatusError / ApiConnectionError / ApiTimeoutError once the
        retry budget is spent or the failure is not retryable.
        """
        kwargs: Dict[str, Any] = {}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json is not None:
            kwargs["json"] = json
        if headers:
            kwargs["headers"] = headers

        retry_count = 0
        while True:
            waited = await self.rate_limiter.acquire()
            if waited > 0.05:
                logger.debug(f"[{self.name}] Rate limited for {waited:.2f}s before {url}")

            try:
                return await self._send(method, url, **kwargs)
            except ApiError as error:
                if not should_retry(error, retry_count, self.max_retries):
                    self._log_failure(error, url)
                    raise

                retry_count += 1
                delay = self.backoff_delay(retry_count)
                logger.warning(
                    f"[{self.name}] Retry {retry_count}/{self.max_retries} in {delay:.2f}s for {url} ({error})"
                )
                await asyncio.sleep(delay)

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request("GET", url, params=params, **kwargs)

    async def post(self, url: str, json: Optional[Any] = None, **kwargs) -> Any:
        return await self.request("POST", url, json=json, **kwargs)

    def _log_failure(self, error: ApiError, url: str) -> None:
        if isinstance(error, ApiStatusError):
            logger.error(f"[{self.name}] HTTP Error: {error.status} {url}")
        elif isinstance(error, ApiTimeoutError):
            logger.error(f"[{self.name}] Request timeout: {url}")
        else:
            logger.error(f"[{self.name}] Network error: {url} ({error})")
