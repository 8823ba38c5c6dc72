"""
Books API Client

Rate-limited access to the remote Books API:
- Fixed delay before every outbound call (one call in flight at a time)
- Daily call ceiling enforced before the call is made
- Non-success responses raised as RemoteError, never retried here
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from datetime import date

import httpx
import structlog

from bestsellers.config import get_settings
from bestsellers.exceptions import QuotaExceeded, RemoteError
from bestsellers.ingestion.schemas import ListDescriptor, ListSnapshot

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Sequential fixed-interval limiter with a daily budget.

    Construct one per run and hand it to the client; it owns the call
    counter and the clock used for throughput reporting.

    Example:
        limiter = RateLimiter(interval_seconds=12.0, max_calls_per_day=500)
        await limiter.acquire()
    """

    def __init__(
        self,
        interval_seconds: float,
        max_calls_per_day: int,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = interval_seconds
        self.max_calls_per_day = max_calls_per_day
        self._sleep = sleep
        self._clock = clock
        self._started_at = clock()
        self.call_count = 0

    @property
    def remaining(self) -> int:
        return max(self.max_calls_per_day - self.call_count, 0)

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self._started_at

    @property
    def calls_per_minute(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.call_count / elapsed * 60

    async def acquire(self) -> None:
        """
        Wait out the interval and count one call.

        Raises:
            QuotaExceeded: The daily ceiling is already reached; nothing is awaited
        """
        if self.call_count >= self.max_calls_per_day:
            raise QuotaExceeded(self.max_calls_per_day)

        await self._sleep(self.interval_seconds)
        self.call_count += 1


class BooksApiClient:
    """
    Client for the Books API v3.

    Example:
        async with BooksApiClient(api_key, rate_limiter=limiter) as client:
            lists = await client.fetch_list_names()
    """

    def __init__(
        self,
        api_key: str,
        rate_limiter: RateLimiter,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_key = api_key
        self.rate_limiter = rate_limiter
        self.base_url = (base_url or settings.books_api.base_url).rstrip("/")
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout_seconds or settings.books_api.timeout_seconds
        )

    async def __aenter__(self) -> "BooksApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    def _redact(self, url: str) -> str:
        return url.replace(self.api_key, "API_KEY") if self.api_key else url

    async def fetch(self, path: str) -> Dict[str, Any]:
        """
        GET ``{base_url}/{path}`` and return the decoded JSON body.

        Raises:
            QuotaExceeded: Daily budget exhausted, call not attempted
            RemoteError: Non-2xx response, transport failure or unusable URL
        """
        await self.rate_limiter.acquire()

        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.info(
            "Fetching",
            call=self.rate_limiter.call_count,
            url=url,
            elapsed_seconds=round(self.rate_limiter.elapsed_seconds, 1),
            calls_per_minute=round(self.rate_limiter.calls_per_minute, 1),
        )

        try:
            response = await self._http.get(url, params={"api-key": self.api_key})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise RemoteError(None, self._redact(str(e)) or type(e).__name__, url=url) from e

        if not response.is_success:
            raise RemoteError(response.status_code, response.reason_phrase, url=url)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(response.status_code, f"Invalid JSON body: {e}", url=url) from e

    async def fetch_list_names(self) -> List[ListDescriptor]:
        """Fetch the catalog of lists."""
        payload = await self.fetch("lists/names.json")
        descriptors = ListDescriptor.from_envelope(payload)
        logger.info("Fetched list catalog", lists=len(descriptors))
        return descriptors

    async def fetch_list_snapshot(
        self,
        list_name_encoded: str,
        published_date: Union[date, str],
    ) -> Optional[ListSnapshot]:
        """Fetch one list as of a date; ``"current"`` gives the latest edition."""
        if isinstance(published_date, date):
            published_date = published_date.isoformat()
        payload = await self.fetch(f"lists/{published_date}/{list_name_encoded}.json")
        return ListSnapshot.from_envelope(payload)

    async def fetch_current_snapshot(self, list_name_encoded: str) -> Optional[ListSnapshot]:
        return await self.fetch_list_snapshot(list_name_encoded, "current")


def create_books_api_client(http_client: Optional[httpx.AsyncClient] = None) -> BooksApiClient:
    """
    Create a client and its run-scoped rate limiter from settings.

    Raises:
        ValueError: NYT_API_KEY is not configured
    """
    settings = get_settings()
    if settings.books_api.api_key is None:
        raise ValueError("NYT_API_KEY environment variable not set")

    limiter = RateLimiter(
        interval_seconds=settings.books_api.rate_limit_delay_seconds,
        max_calls_per_day=settings.books_api.max_requests_per_day,
    )
    return BooksApiClient(
        api_key=settings.books_api.api_key.get_secret_value(),
        rate_limiter=limiter,
        http_client=http_client,
    )
