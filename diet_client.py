#!/usr/bin/env python3
"""
Powermeal Diet Service Client
=============================

Async client for the Powermeal panel API used by the menu assistant:
- refresh token exchange
- diet listing and per-diet calendar state
- per-day menu items and per-dish-size ingredients
- menu change submission

Usage:
    from diet_client import DietServiceClient, DietServiceError

    async with DietServiceClient() as client:
        tokens = await client.refresh_token(stored_refresh_token)
        client.set_token(tokens.token)
        diets = await client.fetch_diets()

Architecture:
    DietServiceClient
    ├── One aiohttp.ClientSession per run (closed by the context manager)
    ├── RateLimitPolicy: HTTP 429 -> sleep Retry-After (default 10s) and
    │   resend the same request; never surfaced to callers
    └── DietAPIError for non-2xx responses, transport failures and payloads
        that do not match the expected shape
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import aiohttp

from config import API_URL, PANEL_ORIGIN, RATE_LIMIT_DEFAULT_DELAY
from menu_models import (
    Calendar,
    DayBundle,
    DietsList,
    MenuChange,
    TokenPair,
    parse_ingredients,
)
from tools.logging_utils import get_logger

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class DietServiceError(Exception):
    """
    Base exception for diet service errors.

    Provides context about what operation failed and why.

    Attributes:
        message: Human-readable error description
        operation: The operation that failed (e.g., "fetch_diets", "change_menu")
        details: Additional context (e.g., HTTP status code, response body)
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.operation = operation
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context."""
        parts = [self.message]
        if self.operation:
            parts.insert(0, f"[{self.operation}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class DietAPIError(DietServiceError):
    """Exception raised for API-specific errors (HTTP failures, bad payloads)."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if status_code is not None:
            details['status_code'] = status_code
        if response_body:
            # Truncate long response bodies
            details['response'] = response_body[:200] + "..." if len(response_body) > 200 else response_body
        super().__init__(message, operation, details)
        self.status_code = status_code
        self.response_body = response_body


# =============================================================================
# RATE LIMITING
# =============================================================================

@dataclass(frozen=True)
class RateLimitPolicy:
    """
    How to react to HTTP 429.

    Attributes:
        default_delay: Seconds to wait when the server sends no usable Retry-After
        max_retries: Give up after this many consecutive 429s (None = never)
    """
    default_delay: float = RATE_LIMIT_DEFAULT_DELAY
    max_retries: Optional[int] = None

    def delay_for(self, retry_after: Optional[str]) -> float:
        if retry_after is None:
            return self.default_delay
        try:
            return max(0.0, float(int(retry_after.strip())))
        except ValueError:
            return self.default_delay

    def allows_retry(self, attempt: int) -> bool:
        return self.max_retries is None or attempt < self.max_retries


# =============================================================================
# CLIENT
# =============================================================================

class DietServiceClient:
    """
    Powermeal panel API client.

    Args:
        base_url: API base URL (default: config.API_URL)
        origin: Origin header expected by the API (default: config.PANEL_ORIGIN)
        token: Bearer (access) token, usually set later via set_token()
        session: Existing aiohttp session (the client will not close it)
        rate_limit: Reaction to HTTP 429
        sleep: Coroutine used for backoff waits
    """

    def __init__(
        self,
        base_url: str = API_URL,
        origin: str = PANEL_ORIGIN,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: Optional[RateLimitPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip('/')
        self.origin = origin
        self.token = token
        self.rate_limit = rate_limit or RateLimitPolicy()
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

        logger.debug(f"DietServiceClient initialized: base_url={self.base_url}")

    async def __aenter__(self) -> 'DietServiceClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Clean up connections."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def set_token(self, token: str) -> None:
        self.token = token

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            # No overall timeout: a hung request blocks, only 429 is retried
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
            self._owns_session = True
        return self._session

    def _headers(self, auth: bool, has_body: bool) -> Dict[str, str]:
        headers = {
            "Origin": self.origin,
            "Accept": "application/json, text/plain, */*",
        }
        if auth:
            headers["Authorization"] = f"Bearer {self.token or ''}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[str],
    ) -> Tuple[int, Mapping[str, str], str]:
        """Send one HTTP request and return (status, headers, text)."""
        session = self._get_session()
        async with session.request(method, url, data=body, headers=headers) as response:
            text = await response.text()
            return response.status, response.headers, text

    async def _request(
        self,
        method: str,
        endpoint: str,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Any:
        """
        Perform an HTTP request with rate-limit backoff and error handling.

        Args:
            method: HTTP method (GET, PUT)
            endpoint: Path under the API base (e.g., "/frontend/secure/my-diets")
            operation: Name used in error messages
            payload: JSON body for PUT requests
            auth: Send the bearer token

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            DietAPIError: On HTTP, network or JSON errors
        """
        url = f"{self.base_url}{endpoint}"
        body = json.dumps(payload) if payload is not None else None
        headers = self._headers(auth, body is not None)

        attempt = 0
        while True:
            try:
                status, response_headers, text = await self._send(method, url, headers, body)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise DietAPIError(
                    f"Network error: {e}",
                    operation=operation,
                    details={'endpoint': endpoint},
                ) from e

            if status == 429 and self.rate_limit.allows_retry(attempt):
                delay = self.rate_limit.delay_for(response_headers.get("Retry-After"))
                attempt += 1
                logger.warning(f"⚠️ Rate limited on {operation}, retrying in {delay:.0f}s (attempt {attempt})")
                await self._sleep(delay)
                continue
            break

        if not 200 <= status < 300:
            raise DietAPIError(
                f"HTTP error {status}",
                operation=operation,
                status_code=status,
                response_body=text,
            )

        if not text.strip():
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DietAPIError(
                f"Malformed JSON: {e}",
                operation=operation,
                status_code=status,
                response_body=text,
            ) from e

    def _parse(self, operation: str, data: Any, parser: Callable[[Any], Any]) -> Any:
        try:
            return parser(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DietAPIError(
                f"Unexpected response shape: {e!r}",
                operation=operation,
                response_body=json.dumps(data)[:1000] if data is not None else None,
            ) from e

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for an access token (and a rotated refresh token)."""
        data = await self._request(
            "PUT", "/refresh_token", "refresh_token",
            payload={"refreshToken": refresh_token},
            auth=False,
        )
        return self._parse("refresh_token", data, TokenPair.from_api)

    # -------------------------------------------------------------------------
    # Diets and calendar
    # -------------------------------------------------------------------------

    async def fetch_diets(self) -> DietsList:
        data = await self._request("GET", "/frontend/secure/my-diets?pagination=false", "fetch_diets")
        diets = self._parse("fetch_diets", data, DietsList.from_api)
        logger.debug(f"Fetched {len(diets.diets)} diets")
        return diets

    async def fetch_calendar(self, diet_id: int, start: date, end: date) -> Calendar:
        endpoint = f"/frontend/secure/calendar/{diet_id}/{start.isoformat()}/{end.isoformat()}"
        data = await self._request("GET", endpoint, "fetch_calendar")
        return self._parse("fetch_calendar", data, Calendar.from_api)

    # -------------------------------------------------------------------------
    # Day menu
    # -------------------------------------------------------------------------

    async def fetch_day_items(self, diet_id: int, day: date) -> DayBundle:
        endpoint = f"/v2/frontend/secure/calendar/{diet_id}/days/{day.isoformat()}/items"
        data = await self._request("GET", endpoint, "fetch_day_items")
        return self._parse("fetch_day_items", data, DayBundle.from_api)

    async def fetch_ingredients(self, dish_size_id: int) -> List[str]:
        """
        Fetch the ingredient list of one dish size.

        Raises:
            DietAPIError: If the API does not return exactly one record
        """
        endpoint = f"/v2/frontend/ingredients_by_dish_sizes/list?dishSizeIds[]={dish_size_id}"
        data = await self._request("GET", endpoint, "fetch_ingredients")
        members = self._parse("fetch_ingredients", data, lambda d: list(d['hydra:member']))
        if len(members) != 1:
            raise DietAPIError(
                f"Expected one dish size ingredients, got {len(members)}",
                operation="fetch_ingredients",
                details={'dish_size_id': dish_size_id},
            )
        ingredients = self._parse("fetch_ingredients", members[0], parse_ingredients)
        return ingredients or []

    async def fetch_day_with_ingredients(
        self,
        diet_id: int,
        day: date,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> DayBundle:
        """
        Fetch a day's menu and fill in the ingredients of every enabled option
        that arrived without them. Any failure aborts the whole day.
        """
        bundle = await self.fetch_day_items(diet_id, day)
        for option in bundle.missing_ingredients():
            if on_progress:
                on_progress(f"Fetching ingredients for {option.name}")
            if option.dish_size_id is None:
                raise DietServiceError(
                    f"while fetching ingredients: option {option.name!r} has no dish size id",
                    operation="fetch_ingredients",
                )
            try:
                option.ingredients = await self.fetch_ingredients(option.dish_size_id)
            except DietServiceError as e:
                raise DietServiceError(
                    f"while fetching ingredients for {option.name!r}: {e}",
                    operation="fetch_day_with_ingredients",
                    details={'day': day.isoformat()},
                ) from e
        return bundle

    # -------------------------------------------------------------------------
    # Menu changes
    # -------------------------------------------------------------------------

    async def change_menu(self, diet_id: int, day: date, changes: List[MenuChange]) -> None:
        """Submit all of a day's menu changes as one request. Not idempotent."""
        endpoint = f"/v2/frontend/secure/calendar/{diet_id}/days/{day.isoformat()}/change-menu"
        payload = {"items": [change.to_api() for change in changes]}
        await self._request("PUT", endpoint, "change_menu", payload=payload)
        logger.info(f"✅ Submitted {len(changes)} menu changes for {day.isoformat()}")
