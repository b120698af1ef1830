"""
HTTP client for the catalog service.

Wraps the four endpoints used by imports. Every request carries a timeout,
and transient failures (transport errors and 429/502/503/504 responses) are
retried with exponential backoff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import FetchFailure, SubmissionFailure
from .models import NormalizedItem

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = frozenset({429, 502, 503, 504})


class _TransientResponse(Exception):
    """Retryable status code; carries the last response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


@dataclass
class ProxyResponse:
    """Body of a ``POST /fetch-proxy`` reply."""

    success: bool
    content: str = ""
    content_type: str = ""
    message: str = ""

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(data, Mapping):
        return str(data.get("message") or data.get("error") or data)
    return str(data)


class CatalogClient:
    """Async client for the catalog CRUD service."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        cookies: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize catalog client.

        Args:
            base_url: Root of the catalog API, e.g. ``https://hub.example/api``
            token: Bearer token forwarded on every request
            cookies: Session cookies forwarded on every request
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt for transient failures
            backoff: Base delay in seconds for exponential backoff
            transport: Custom transport, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            cookies=dict(cookies) if cookies else None,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff, max=10),
            retry=retry_if_exception_type((httpx.TransportError, _TransientResponse)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.request(method, path, **kwargs)
                    if response.status_code in RETRY_STATUS_CODES:
                        raise _TransientResponse(response)
        except _TransientResponse as e:
            return e.response
        return response

    async def create_item(self, item: NormalizedItem) -> Dict[str, Any]:
        """
        Create one item with ``POST /items``.

        Returns:
            The created record as returned by the service

        Raises:
            SubmissionFailure: On a non-2xx response or a network error
        """
        try:
            response = await self._request("POST", "/items", json=item.to_payload())
        except httpx.HTTPError as e:
            raise SubmissionFailure(f"Network error creating item: {e}") from e

        if not response.is_success:
            raise SubmissionFailure(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def create_items_bulk(self, items: Sequence[NormalizedItem]) -> int:
        """
        Create several items with ``POST /items/bulk``.

        Returns:
            The ``created`` count reported by the service
        """
        body = {"items": [item.to_payload() for item in items]}
        try:
            response = await self._request("POST", "/items/bulk", json=body)
        except httpx.HTTPError as e:
            raise SubmissionFailure(f"Network error creating batch: {e}") from e

        if not response.is_success:
            raise SubmissionFailure(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            created = response.json().get("created", len(items))
        except (ValueError, AttributeError):
            return len(items)
        if isinstance(created, list):
            return len(created)
        try:
            return int(created)
        except (TypeError, ValueError):
            logger.warning(f"Unexpected created count {created!r}, assuming {len(items)}")
            return len(items)

    async def list_items(self) -> List[Dict[str, Any]]:
        """Fetch already-registered items with ``GET /items``."""
        try:
            response = await self._request("GET", "/items")
        except httpx.HTTPError as e:
            raise SubmissionFailure(f"Network error listing items: {e}") from e

        if not response.is_success:
            raise SubmissionFailure(
                f"HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SubmissionFailure(
                "Item listing returned a non-JSON body",
                status_code=response.status_code,
            ) from e
        if isinstance(data, dict):
            data = data.get("items", [])
        if not isinstance(data, list):
            raise SubmissionFailure(
                "Item listing returned an unexpected body",
                status_code=response.status_code,
            )
        return [item for item in data if isinstance(item, dict)]

    async def fetch_url(self, url: str) -> ProxyResponse:
        """
        Fetch a remote page through ``POST /fetch-proxy``.

        Raises:
            FetchFailure: On transport errors, non-2xx replies, or a proxy
                reply with ``success: false`` (its message is kept verbatim)
        """
        try:
            response = await self._request("POST", "/fetch-proxy", json={"url": url})
        except httpx.TimeoutException as e:
            raise FetchFailure(url, f"Request timeout fetching {url}") from e
        except httpx.HTTPError as e:
            raise FetchFailure(url, f"Network error fetching {url}: {e}") from e

        if not response.is_success:
            raise FetchFailure(
                url,
                f"Failed to fetch URL: HTTP {response.status_code} "
                f"{_error_detail(response)}".strip(),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FetchFailure(url, "Fetch proxy returned invalid JSON") from e
        if not isinstance(data, dict):
            raise FetchFailure(url, "Fetch proxy returned an unexpected body")

        if not data.get("success"):
            raise FetchFailure(
                url,
                data.get("message") or "Failed to fetch URL",
                status_code=data.get("status"),
            )

        logger.debug(f"Fetched {url} ({data.get('contentType', 'unknown type')})")
        return ProxyResponse(
            success=True,
            content=data.get("content") or "",
            content_type=data.get("contentType") or "",
            message=data.get("message") or "",
        )
