"""
Base class for catalog source adapters.

An adapter turns a `CatalogQuery` into normalized `CatalogItem`s. It never
raises: every failure (missing credentials, transport error, timeout,
non-success status, malformed payload) comes back as a `SourceResult` with
no items and a `SourceFetchError`, so one failing source cannot abort an
aggregation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from encounter.config import settings
from encounter.schemas.encounter import CatalogItem, CatalogQuery
from encounter.services.errors import SourceFetchError
from encounter.services.rate_limiter import RateLimiter, rate_limiter
from encounter.utils.logging import preview

logger = logging.getLogger(__name__)

# (url, query params, headers)
PreparedRequest = Tuple[str, Dict[str, Any], Dict[str, str]]


@dataclass
class SourceResult:
    """Outcome of one adapter call."""
    source: str
    items: List[CatalogItem] = field(default_factory=list)
    error: Optional[SourceFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CatalogAdapter(ABC):
    """
    Shared request/response handling for catalog sources.

    Subclasses define `source`, `service_name` (rate limiter key) and
    implement `is_configured`, `build_request` and `parse`.
    """

    source: str = ""
    service_name: str = ""

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        retry_after_429_seconds: Optional[float] = None,
    ):
        self._limiter = limiter or rate_limiter
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.CATALOG_TIMEOUT_SECONDS
        # None disables the single retry on HTTP 429
        self._retry_after_429_seconds = retry_after_429_seconds

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the credentials this source needs are present."""

    @abstractmethod
    def build_request(self, query: CatalogQuery) -> PreparedRequest:
        """Build the HTTP GET request for a query."""

    @abstractmethod
    def parse(self, payload: Any, query: CatalogQuery) -> List[CatalogItem]:
        """
        Normalize a decoded JSON payload.

        Raises KeyError, TypeError or ValueError when the payload shape is
        not what the source documents.
        """

    def _failed(self, message: str, status_code: Optional[int] = None) -> SourceResult:
        return SourceResult(
            source=self.source,
            items=[],
            error=SourceFetchError(self.source, message, status_code=status_code),
        )

    async def search(self, query: CatalogQuery) -> SourceResult:
        """Search the source. Always returns, never raises."""
        if not self.is_configured():
            logger.warning(f"[{self.source}] credentials not configured, skipping search")
            return self._failed("not configured")

        try:
            url, params, headers = self.build_request(query)
        except ValueError as e:
            logger.error(f"[{self.source}] invalid query '{query.keyword}': {e}")
            return self._failed(f"invalid query: {e}")

        try:
            payload = await self._get_json(url, params, headers)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                f"[{self.source}] HTTP {status_code} for '{query.keyword}': "
                f"{preview(e.response.text, 300)}"
            )
            return self._failed(f"HTTP {status_code}", status_code=status_code)
        except httpx.TimeoutException as e:
            logger.error(f"[{self.source}] timeout for '{query.keyword}': {e!r}")
            return self._failed("timeout")
        except httpx.HTTPError as e:
            logger.error(f"[{self.source}] transport error for '{query.keyword}': {e!r}")
            return self._failed("transport error")
        except ValueError as e:
            logger.error(f"[{self.source}] response is not JSON for '{query.keyword}': {e}")
            return self._failed("malformed payload")

        try:
            items = self.parse(payload, query)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[{self.source}] malformed payload for '{query.keyword}': {e}")
            return self._failed("malformed payload")

        logger.info(f"[{self.source}] '{query.keyword}' -> {len(items)} items")
        return SourceResult(source=self.source, items=items)

    async def _get_json(self, url: str, params: Dict[str, Any], headers: Dict[str, str]) -> Any:
        await self._limiter.wait(self.service_name)

        if self._http_client is not None:
            return await self._send(self._http_client, url, params, headers)

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._send(client, url, params, headers)

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Dict[str, Any],
        headers: Dict[str, str],
    ) -> Any:
        response = await client.get(url, params=params, headers=headers, timeout=self._timeout)

        if response.status_code == 429 and self._retry_after_429_seconds is not None:
            logger.warning(
                f"[{self.source}] 429 rate limited, retrying in {self._retry_after_429_seconds}s"
            )
            await asyncio.sleep(self._retry_after_429_seconds)
            await self._limiter.wait(self.service_name)
            response = await client.get(url, params=params, headers=headers, timeout=self._timeout)

        response.raise_for_status()
        return response.json()
