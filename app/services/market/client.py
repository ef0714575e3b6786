"""
HTTP client for the upstream market feed.

Fetches matches filtered by lifecycle status:

    GET {base}/market?status={live|upcoming|finished}&limit={n}&include_v2=false
    Authorization: Bearer {MARKET_API_KEY}

Transport errors, non-2xx responses and malformed JSON all surface as
``FetchError``. Each fetch is retried with exponential backoff (2s, 4s, capped
at 8s by default); exhausting the attempts re-raises the last ``FetchError``.

Usage:
    async with MarketApiClient() as client:
        matches = await client.fetch_matches("live")
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_market_api_request, record_market_api_retry
from app.services.market.types import FETCH_STATUSES

logger = get_logger(__name__)

# Internal status -> provider vocabulary
UPSTREAM_STATUS = {
    "live": "live",
    "upcoming": "upcoming",
    "completed": "finished",
}


class FetchError(Exception):
    """A fetch for one status failed (transport, HTTP status or payload)."""

    def __init__(self, status: str, message: str, status_code: Optional[int] = None):
        self.status = status
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{status}] {message}")


class MarketApiClient:
    """
    Client for the market provider.

    Attributes:
        base_url: Provider base URL (without trailing slash)
        max_attempts: Attempts per fetch, first try included
        backoff_seconds: Delay before the first retry; doubles per retry
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            base_url: Provider base URL (defaults to MARKET_API_BASE_URL)
            api_key: Bearer token (defaults to MARKET_API_KEY)
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per fetch (defaults to MARKET_FETCH_MAX_ATTEMPTS)
            backoff_seconds: First retry delay (defaults to MARKET_FETCH_BACKOFF_SECONDS)
            http_client: Shared httpx client; one is created and owned when omitted
            sleep: Awaitable used between attempts
        """
        self.base_url = (base_url if base_url is not None else settings.MARKET_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.MARKET_API_KEY
        self.timeout = timeout or settings.MARKET_API_TIMEOUT
        self.max_attempts = max_attempts or settings.MARKET_FETCH_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds or settings.MARKET_FETCH_BACKOFF_SECONDS
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)

    async def __aenter__(self) -> "MarketApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Cache-Control": "no-store",
            "Accept": "application/json",
        }

    def _log_retry(self, status: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            error = retry_state.outcome.exception() if retry_state.outcome else None
            record_market_api_retry(status)
            logger.warning(
                f"Market fetch attempt {retry_state.attempt_number} for {status} failed, "
                f"retrying in {delay:.1f}s: {error}",
                extra={
                    "status": status,
                    "attempt": retry_state.attempt_number,
                    "delay_seconds": delay,
                },
            )
        return before_sleep

    async def _fetch_once(self, status: str, limit: int) -> List[Dict[str, Any]]:
        params = {
            "status": UPSTREAM_STATUS[status],
            "limit": limit,
            "include_v2": "false",
        }
        try:
            response = await self._client.get(
                f"{self.base_url}/market", params=params, headers=self._headers()
            )
        except httpx.HTTPError as e:
            record_market_api_request("transport_error")
            raise FetchError(status, f"Transport error: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            record_market_api_request("http_error")
            raise FetchError(
                status,
                f"API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            record_market_api_request("malformed")
            raise FetchError(status, "Malformed JSON in response", status_code=response.status_code) from e

        if not isinstance(data, dict):
            record_market_api_request("malformed")
            raise FetchError(status, "Unexpected response shape", status_code=response.status_code)

        matches = data.get("matches") or []
        if not isinstance(matches, list):
            record_market_api_request("malformed")
            raise FetchError(status, "'matches' is not a list", status_code=response.status_code)

        record_market_api_request("success")
        return matches

    async def fetch_matches(self, status: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Fetch raw matches for one status, retrying on failure.

        Args:
            status: One of live, upcoming, completed
            limit: Maximum number of matches (defaults to MARKET_FETCH_LIMIT)

        Returns:
            List of raw match payloads

        Raises:
            ValueError: If status is not a fetchable status
            FetchError: When every attempt failed, or the client is not configured
        """
        if status not in FETCH_STATUSES:
            raise ValueError(f"Unknown status: {status}. Must be one of: {list(FETCH_STATUSES)}")
        if not self.base_url:
            raise FetchError(status, "MARKET_API_BASE_URL not configured")

        limit = limit or settings.MARKET_FETCH_LIMIT

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_seconds * 4),
            retry=retry_if_exception_type(FetchError),
            before_sleep=self._log_retry(status),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                matches = await self._fetch_once(status, limit)

        logger.info(
            f"Fetched {len(matches)} {status} matches",
            extra={"status": status, "count": len(matches)},
        )
        return matches
