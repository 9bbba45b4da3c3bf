"""HTTP client for downloading room calendar feeds."""

import asyncio
import logging
import random
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import FeedFetchError
from .http_client import DEFAULT_HEADERS, get_shared_client
from .models import FeedResponse

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


class ICSFetcher:
    """Async HTTP client for downloading ICS feeds.

    ``fetch_feed`` never raises: every failure is reported as
    ``FeedResponse(success=False)`` so one broken feed cannot abort its siblings.
    """

    def __init__(
        self,
        settings: Any,
        client: Optional[httpx.AsyncClient] = None,
        use_shared_client: bool = False,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Object exposing request_timeout, max_retries, retry_backoff_factor
            client: Optional caller-owned client (never closed by the fetcher)
            use_shared_client: Borrow the process-wide pooled client when no client is given
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = False
        self._use_shared_client = client is None and use_shared_client
        self._client_id = "roomstats_fetcher"

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client:
            if not self.client.is_closed:
                await self.client.aclose()
                logger.debug("Closed individual HTTP client")
            self.client = None
            self._owns_client = False

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is not None and not self.client.is_closed:
            return self.client

        if self._use_shared_client:
            try:
                self.client = await get_shared_client(self._client_id)
                return self.client
            except Exception as e:
                logger.warning(
                    "Failed to get shared HTTP client, falling back to individual client: %s", e
                )
                self._use_shared_client = False

        request_timeout = float(getattr(self.settings, "request_timeout", 30))
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            follow_redirects=True,
            verify=True,
            headers=DEFAULT_HEADERS,
        )
        self._owns_client = True
        return self.client

    def _validate_url(self, url: str) -> bool:
        """Accept only http(s) URLs with a hostname."""
        try:
            parsed = urlparse(url)
        except ValueError as e:
            logger.debug("URL validation error for %s: %s", url, e)
            return False

        if parsed.scheme not in ("http", "https"):
            logger.debug("Blocked non-HTTP(S) URL: %s", url)
            return False
        if not parsed.hostname:
            logger.debug("Blocked URL with missing hostname: %s", url)
            return False
        return True

    async def fetch_feed(self, url: str) -> FeedResponse:
        """Download feed text from ``url``.

        Timeouts and network errors are retried with jittered exponential
        backoff; HTTP status errors are not.

        Returns:
            FeedResponse with ``success`` set and either ``content`` or ``error_message``
        """
        if not self._validate_url(url):
            logger.error("Rejected feed URL: %s", url)
            return FeedResponse(success=False, error_message="Invalid feed URL", status_code=None)

        timeout = float(getattr(self.settings, "request_timeout", 30))
        try:
            await self._ensure_client()
            logger.debug("Fetching ICS from %s", url)
            response = await self._make_request_with_retry(url, timeout)
            return self._create_response(response)

        except httpx.TimeoutException:
            logger.warning("Timeout fetching ICS from %s", url)
            return FeedResponse(
                success=False, error_message=f"Request timeout after {timeout:g}s"
            )

        except httpx.HTTPStatusError as e:
            logger.warning("HTTP error fetching ICS from %s: %s", url, e.response.status_code)
            return FeedResponse(
                success=False,
                status_code=e.response.status_code,
                error_message=f"HTTP {e.response.status_code}: {e.response.reason_phrase}",
                headers=dict(e.response.headers),
            )

        except httpx.HTTPError as e:
            logger.warning("Network error fetching ICS from %s: %s", url, e)
            return FeedResponse(success=False, error_message=f"Network error: {e}")

        except FeedFetchError as e:
            logger.warning("Failed to fetch ICS from %s: %s", url, e)
            return FeedResponse(success=False, status_code=e.status_code, error_message=str(e))

        except Exception as e:
            logger.exception("Unexpected error fetching ICS from %s", url)
            return FeedResponse(success=False, error_message=f"Unexpected error: {e}")

    def _calculate_backoff(self, attempt: int, backoff_factor: float) -> float:
        """Exponential backoff capped at MAX_BACKOFF_SECONDS plus 10-30% jitter."""
        base_backoff = min(backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def _make_request_with_retry(self, url: str, timeout: float) -> httpx.Response:
        max_retries = int(getattr(self.settings, "max_retries", 2))
        backoff_factor = float(getattr(self.settings, "retry_backoff_factor", 1.5))

        headers: dict[str, str] = {}
        # Propagate the API request's correlation id to the upstream feed server
        from .middleware import get_request_id

        request_id = get_request_id()
        if request_id != "no-request-id":
            headers["X-Request-ID"] = request_id

        attempt = 0
        while True:
            if self.client is None:
                raise FeedFetchError("HTTP client not initialized")
            try:
                response = await self.client.get(url, headers=headers, timeout=timeout)
                response.raise_for_status()
                logger.debug(
                    "Fetched ICS from %s (attempt %d) - %d bytes",
                    url,
                    attempt + 1,
                    len(response.content),
                )
                return response

            except httpx.HTTPStatusError:
                raise

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= max_retries:
                    logger.warning("All %d attempts failed for %s", attempt + 1, url)
                    raise
                backoff_time = self._calculate_backoff(attempt, backoff_factor)
                logger.warning(
                    "Request failed (attempt %s/%s), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1

    def _create_response(self, http_response: httpx.Response) -> FeedResponse:
        headers = dict(http_response.headers)
        content = http_response.text
        content_type = headers.get("content-type", "").lower()

        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.warning("Unexpected content type: %s", content_type)

        if not content or not content.strip():
            logger.error("Empty ICS content received")
            return FeedResponse(
                success=False,
                status_code=http_response.status_code,
                error_message="Empty content received",
                headers=headers,
            )

        if "BEGIN:VCALENDAR" not in content:
            logger.warning("Content does not appear to be valid ICS format")

        return FeedResponse(
            success=True,
            content=content,
            status_code=http_response.status_code,
            headers=headers,
            etag=headers.get("etag"),
            last_modified=headers.get("last-modified"),
            cache_control=headers.get("cache-control"),
        )
