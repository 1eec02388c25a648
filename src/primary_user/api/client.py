#!/usr/bin/env python3
"""Async HTTP Client for Microsoft Graph.

This module provides the transport shared by every Graph adapter:

    - Bearer authentication via TokenManager
    - Token refresh on 401 responses
    - Retry with backoff for reads on 429, 5xx and network errors
    - Single-attempt writes (a rejected write is reported, never re-sent)
    - `@odata.nextLink` pagination
    - Connection pooling via a shared aiohttp session

Design Philosophy:
    This client knows HOW to talk to Graph, but not WHAT to fetch. It has no
    knowledge of devices, users or sign-ins. That knowledge belongs in the
    adapters that compose this client.

Usage:
    async with GraphClient(token_manager) as client:
        user = await client.get("/users/alice@contoso.com")

        async for page in client.paginate("/auditLogs/signIns"):
            for item in page:
                process(item)

        items = await client.fetch_all("/groups", params={"$filter": "..."})
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
from .exceptions import (
    APIError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/beta"

# ============================================
# Configuration
# ============================================

@dataclass
class PaginationConfig:
    """Configuration for paginated Graph requests.

    Attributes:
        page_size: `$top` sent with the first request (None = server default)
        delay_between_pages: Seconds to wait between page requests
        max_pages: Safety limit to prevent runaway paging (None = no limit)
    """
    page_size: Optional[int] = 100
    delay_between_pages: float = 0.0
    max_pages: Optional[int] = None


DEFAULT_PAGINATION = PaginationConfig()


def graph_error_message(response_body: Optional[str]) -> Optional[str]:
    """Pull `error.message` out of a Graph error body, if there is one."""
    if not response_body:
        return None
    try:
        payload = json.loads(response_body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None

# auditLogs/signIns allows up to 1000 per page and throttles aggressively
SIGN_INS_PAGINATION = PaginationConfig(
    page_size=1000,
    delay_between_pages=0.5,
    max_pages=None,
)


# ============================================
# The Client
# ============================================

class GraphClient:
    """Async HTTP client for Microsoft Graph.

    Use as an async context manager so the session is always closed:

        async with GraphClient(token_manager) as client:
            data = await client.get("/deviceManagement/managedDevices/{id}")

    Attributes:
        token_manager: TokenManager instance for OAuth2 authentication
        base_url: Graph base URL including the API version segment
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        request_timeout: float = 60.0,
    ):
        """Initialize the GraphClient.

        Args:
            token_manager: TokenManager instance for authentication
            base_url: Graph base URL. Falls back to GRAPH_BASE_URL, then to
                the public beta endpoint.
            request_timeout: Total timeout per request in seconds
        """
        self.token_manager = token_manager
        self.base_url = (
            base_url or os.getenv("GRAPH_BASE_URL") or DEFAULT_GRAPH_BASE_URL
        ).rstrip("/")
        self.request_timeout = request_timeout

        if not self.base_url.startswith("http"):
            raise ConfigurationError(
                f"Invalid Graph base URL: {self.base_url!r}",
                missing_keys=["GRAPH_BASE_URL"],
            )

        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "GraphClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
            timeout=aiohttp.ClientTimeout(total=self.request_timeout, connect=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _build_url(self, endpoint: str) -> str:
        # nextLink values are already absolute
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _get_auth_headers(self) -> dict[str, str]:
        token = await self.token_manager.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a single HTTP request (no retry logic).

        Returns:
            Parsed JSON response, or an empty dict for bodiless responses

        Raises:
            APIError: If response status is not 2xx
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "GraphClient must be used as async context manager: "
                "async with GraphClient(...) as client:"
            )

        url = self._build_url(endpoint)

        try:
            headers = await self._get_auth_headers()

            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                # $ref writes answer 204 No Content
                if response.status == 204 or response.content_type != "application/json":
                    return {}

                return await response.json()

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.request_timeout,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        graph_message = graph_error_message(response_body)
        suffix = f": {graph_message}" if graph_message else ""
        if status == 401:
            return TokenExpiredError(
                "Access token expired or invalid",
                details={"endpoint": endpoint},
            )

        if status == 404:
            return NotFoundError(
                resource_type="Resource",
                resource_id=endpoint,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 429:
            try:
                wait = int(retry_after) if retry_after else None
            except ValueError:
                wait = None
            return RateLimitError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=wait,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status in (400, 422):
            return ValidationError(
                f"Validation failed for {method} {endpoint}{suffix}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}{suffix}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed{suffix}",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        """Make an HTTP request with retry.

            - 401 Unauthorized: invalidate token, retry
            - 429 Rate Limited: wait for Retry-After, retry
            - 5xx / network errors: exponential backoff, retry
            - 400/404: raise immediately

        With max_retries=1 the request is sent exactly once and the first
        error is raised as-is.

        Raises:
            APIError: If request fails after all retries
            NetworkError: If network error persists after retries
        """
        last_error: Optional[Exception] = None
        backoff_delay = 1.0

        for attempt in range(1, max_retries + 1):
            try:
                return await self._request(method, endpoint, params, json_body)

            except TokenExpiredError as e:
                last_error = e
                logger.warning(f"Token rejected, refreshing (attempt {attempt})")
                self.token_manager.invalidate()
                continue

            except RateLimitError as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(
                        f"Throttled, waiting {e.retry_after}s (attempt {attempt}/{max_retries})"
                    )
                    await asyncio.sleep(e.retry_after)
                    continue
                raise

            except (ServerError, NetworkError) as e:
                last_error = e
                if attempt < max_retries:
                    logger.warning(
                        f"{e.message}. Retrying in {backoff_delay}s "
                        f"(attempt {attempt}/{max_retries})"
                    )
                    await asyncio.sleep(backoff_delay)
                    backoff_delay = min(backoff_delay * 2, 60.0)
                    continue
                raise

            except (NotFoundError, ValidationError):
                raise

        if last_error:
            raise last_error

        raise APIError(
            "Request failed after all retries",
            status_code=0,
            endpoint=endpoint,
            method=method,
        )

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a GET request (retried on transient failures)."""
        return await self._request_with_retry("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_body: dict,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a POST request.

        Writes are sent exactly once. Any failure, including throttling,
        is raised to the caller.
        """
        return await self._request_with_retry(
            "POST", endpoint, params=params, json_body=json_body, max_retries=1
        )

    # ----------------------------------------
    # Pagination Methods
    # ----------------------------------------

    async def paginate(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Iterate through a Graph collection one page at a time.

        The first request carries `params` (plus `$top`); every following
        request uses the server-provided `@odata.nextLink` verbatim.

        Yields:
            The `value` list of each page
        """
        config = config or DEFAULT_PAGINATION
        params = dict(params or {})
        if config.page_size and "$top" not in params:
            params["$top"] = config.page_size

        next_link: Optional[str] = endpoint
        request_params: Optional[dict] = params
        pages_fetched = 0
        items_fetched = 0

        while next_link:
            data = await self.get(next_link, params=request_params)
            items = data.get("value", [])

            if items:
                yield items

            pages_fetched += 1
            items_fetched += len(items)
            logger.debug(f"Fetched page {pages_fetched} of {endpoint} ({items_fetched:,} items)")

            next_link = data.get("@odata.nextLink")
            request_params = None

            if config.max_pages and pages_fetched >= config.max_pages:
                logger.info(f"Reached max_pages limit ({config.max_pages})")
                break

            if next_link and config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.info(f"Pagination complete for {endpoint}: {items_fetched:,} items in {pages_fetched} pages")

    async def fetch_all(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """Fetch every item of a paginated collection into one list."""
        all_items = []
        async for page in self.paginate(endpoint, config, params):
            all_items.extend(page)
        return all_items
