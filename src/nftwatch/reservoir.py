"""
Reservoir Client
================

Async client for the Reservoir marketplace API (the event source).

Features:
    - API key auth (x-api-key header)
    - Concurrency limit (Semaphore) and minimum interval between requests
    - Per-request timeout
    - Exponential backoff on HTTP 429, bounded by max_retries; after that
      the fetch is abandoned for the cycle (UpstreamRateLimitError)
    - Every other failure raises UpstreamError immediately, no retry

One instance is created at startup and passed to every poller.

Usage:
    async with ReservoirClient(api_key) as client:
        event = await client.fetch_latest_event("0xabc...", Category.FLOOR)
        window = await client.fetch_event_window("0xabc...", Category.SALES, 100)
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from nftwatch.errors import UpstreamError, UpstreamRateLimitError
from nftwatch.normalizers import (
    normalize_bid_event,
    normalize_floor_event,
    normalize_listings,
    normalize_sales,
)
from nftwatch.types import Category, FeedEvent, ScalarEvent
from nftwatch.utils import safe_get
from nftwatch.utils_time import now_ms

logger = logging.getLogger(__name__)

RESERVOIR_BASE_URL = "https://api.reservoir.tools"
REQUEST_TIMEOUT_SEC = 10
MAX_RETRIES = 4
BACKOFF_BASE_SEC = 1.0
BACKOFF_MAX_SEC = 30.0

PATH_FLOOR_EVENTS = "/events/collections/floor-ask/v1"
PATH_TOP_BID_EVENTS = "/events/collections/top-bid/v1"
PATH_ASKS = "/orders/asks/v3"
PATH_SALES = "/sales/v4"
PATH_TOKENS = "/tokens/v5"
PATH_COLLECTIONS = "/collections/v5"


def backoff_delay(attempt: int, base_sec: float = BACKOFF_BASE_SEC, max_sec: float = BACKOFF_MAX_SEC) -> float:
    """
    Delay before retry number ``attempt`` (1-based): base * 2^(attempt-1), capped.

    Example:
        >>> [backoff_delay(a) for a in (1, 2, 3, 4)]
        [1.0, 2.0, 4.0, 8.0]
    """
    return min(base_sec * (2 ** (attempt - 1)), max_sec)


def _retry_after(headers: dict[str, str]) -> Optional[float]:
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class ReservoirClient:
    """
    Async Reservoir API client.

    Args:
        api_key: Reservoir API key
        base_url: API base URL
        timeout_sec: Total timeout per request
        max_retries: Retries on HTTP 429 before giving up
        backoff_base_sec: First backoff delay, doubled per retry
        max_concurrency: Maximum concurrent requests
        min_interval_ms: Minimum milliseconds between requests
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = RESERVOIR_BASE_URL,
        timeout_sec: float = REQUEST_TIMEOUT_SEC,
        max_retries: int = MAX_RETRIES,
        backoff_base_sec: float = BACKOFF_BASE_SEC,
        max_concurrency: int = 4,
        min_interval_ms: int = 0,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._timeout_sec = timeout_sec
        self._max_retries = max_retries
        self._backoff_base_sec = backoff_base_sec
        self._min_interval_ms = min_interval_ms

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._rate_lock = asyncio.Lock()
        self._last_request_ts_ms: int = 0

        self._session: Optional[aiohttp.ClientSession] = None

        self.requests_total = 0
        self.rate_limited_total = 0

        logger.info(
            "reservoir_client_initialized",
            extra={
                "base_url": self.base_url,
                "max_retries": max_retries,
                "max_concurrency": max_concurrency,
            },
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec),
                headers={"x-api-key": self._api_key, "accept": "*/*"},
            )
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
            logger.info("reservoir_client_closed")

    async def __aenter__(self) -> "ReservoirClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _wait_for_rate_limit(self) -> None:
        if self._min_interval_ms <= 0:
            return
        async with self._rate_lock:
            elapsed = now_ms() - self._last_request_ts_ms
            if elapsed < self._min_interval_ms:
                await asyncio.sleep((self._min_interval_ms - elapsed) / 1000.0)
            self._last_request_ts_ms = now_ms()

    async def get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        GET a path and return parsed JSON.

        Raises:
            UpstreamRateLimitError: still rate limited after max_retries
            UpstreamError: any other failure
        """
        url = f"{self.base_url}{path}"
        attempt = 0

        async with self._semaphore:
            while True:
                attempt += 1
                await self._wait_for_rate_limit()
                start_ts = now_ms()
                self.requests_total += 1

                try:
                    session = await self._get_session()
                    async with session.get(url, params=params) as response:
                        status = response.status
                        headers = dict(response.headers)
                        elapsed_ms = now_ms() - start_ts

                        logger.debug(
                            "reservoir_request",
                            extra={
                                "path": path,
                                "status": status,
                                "elapsed_ms": elapsed_ms,
                                "attempt": attempt,
                            },
                        )

                        if 200 <= status < 300:
                            try:
                                return await response.json(content_type=None)
                            except ValueError as e:
                                raise UpstreamError(f"invalid JSON from {path}: {e}", status=status) from e

                        if status != 429:
                            text = await response.text()
                            raise UpstreamError(f"HTTP {status} from {path}: {text[:200]}", status=status)

                except asyncio.TimeoutError as e:
                    raise UpstreamError(f"timeout after {self._timeout_sec}s on {path}") from e
                except aiohttp.ClientError as e:
                    raise UpstreamError(f"request to {path} failed: {e}") from e

                # HTTP 429
                self.rate_limited_total += 1
                if attempt > self._max_retries:
                    logger.error(
                        "reservoir_rate_limit_exhausted",
                        extra={"path": path, "attempts": attempt},
                    )
                    raise UpstreamRateLimitError(f"rate limited on {path}", attempts=attempt)

                delay = _retry_after(headers)
                if delay is None:
                    delay = backoff_delay(attempt, self._backoff_base_sec)

                logger.warning(
                    "reservoir_rate_limited",
                    extra={"path": path, "attempt": attempt, "backoff_sec": delay},
                )
                await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Event source
    # ------------------------------------------------------------------

    async def fetch_latest_event(self, contract: str, category: Category) -> ScalarEvent:
        """
        Freshest floor-ask or top-bid event of a collection.

        Raises:
            IncompleteUpstreamData: event missing required fields
            UpstreamError: fetch failed
        """
        params = {"collection": contract, "sortDirection": "desc", "limit": 1}

        if category == Category.FLOOR:
            payload = await self.get_json(PATH_FLOOR_EVENTS, params)
            return normalize_floor_event(payload, contract)
        if category == Category.BID:
            payload = await self.get_json(PATH_TOP_BID_EVENTS, params)
            return normalize_bid_event(payload, contract)

        raise ValueError(f"{category.value} is not a scalar category")

    async def fetch_event_window(self, contract: str, category: Category, window_size: int) -> list[FeedEvent]:
        """
        Newest-first window of listings or sales (also used for burns).

        Raises:
            IncompleteUpstreamData: response lacks the event list
            UpstreamError: fetch failed
        """
        if category == Category.LISTINGS:
            payload = await self.get_json(
                PATH_ASKS,
                {
                    "contracts": contract,
                    "includePrivate": "false",
                    "includeMetadata": "true",
                    "includeRawData": "false",
                    "sortBy": "createdAt",
                    "limit": window_size,
                },
            )
            return normalize_listings(payload, contract)

        if category in (Category.SALES, Category.BURN):
            payload = await self.get_json(
                PATH_SALES,
                {
                    "contract": contract,
                    "includeTokenMetadata": "true",
                    "limit": window_size,
                },
            )
            return normalize_sales(payload, contract, category)

        raise ValueError(f"{category.value} is not an ordered-log category")

    # ------------------------------------------------------------------
    # Display lookups
    # ------------------------------------------------------------------

    async def fetch_token(self, contract: str, token_id: str, include_attributes: bool = False) -> Optional[dict]:
        """Token details (``tokens[0]``: {"token": ..., "market": ...}) or None."""
        payload = await self.get_json(
            PATH_TOKENS,
            {
                "tokens": f"{contract}:{token_id}",
                "sortBy": "floorAskPrice",
                "limit": 1,
                "includeTopBid": "false",
                "includeAttributes": "true" if include_attributes else "false",
            },
        )
        tokens = safe_get(payload, "tokens")
        return tokens[0] if isinstance(tokens, list) and tokens else None

    async def fetch_token_set(self, token_set_id: str) -> Optional[dict]:
        """First token of a token set (listing lookups) or None."""
        payload = await self.get_json(
            PATH_TOKENS,
            {
                "tokenSetId": token_set_id,
                "sortBy": "floorAskPrice",
                "limit": 20,
                "includeTopBid": "false",
            },
        )
        tokens = safe_get(payload, "tokens")
        return tokens[0] if isinstance(tokens, list) and tokens else None

    async def fetch_collection(self, contract: str, include_top_bid: bool = False) -> Optional[dict]:
        """Collection metadata (name, image, ...) or None."""
        payload = await self.get_json(
            PATH_COLLECTIONS,
            {
                "id": contract,
                "includeTopBid": "true" if include_top_bid else "false",
                "sortBy": "allTimeVolume",
                "limit": 1,
            },
        )
        collections = safe_get(payload, "collections")
        return collections[0] if isinstance(collections, list) and collections else None

    def get_stats(self) -> dict:
        return {
            "requests_total": self.requests_total,
            "rate_limited_total": self.rate_limited_total,
        }
