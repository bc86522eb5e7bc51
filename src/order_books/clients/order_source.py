"""Order source client for a WooCommerce-style REST API."""

import asyncio
from typing import Any

import httpx
import structlog

from order_books.config import get_settings

logger = structlog.get_logger(__name__)


class OrderSourceError(Exception):
    """Base exception for order source errors."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(OrderSourceError):
    """Consumer key/secret rejected."""

    pass


class TransientFetchError(OrderSourceError):
    """Network or backend failure; the whole fetch can be retried."""

    retryable = True


class RateLimitError(TransientFetchError):
    """Rate limit exceeded."""

    pass


class MalformedPageError(OrderSourceError):
    """A page payload could not be read as a list of order records."""

    pass


class OrderSourceClient:
    """Async client for the order source with basic auth and retries."""

    def __init__(
        self,
        base_url: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.order_source_url).rstrip("/")
        self._consumer_key = consumer_key or settings.order_source_consumer_key
        self._consumer_secret = (
            consumer_secret or settings.order_source_consumer_secret.get_secret_value()
        )
        self._timeout = timeout if timeout is not None else settings.order_source_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.order_source_max_retries
        )

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                auth=httpx.BasicAuth(self._consumer_key, self._consumer_secret),
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OrderSourceClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make a request, retrying network errors with exponential backoff."""
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=path, params=params)
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning(
                    "order_source_retry",
                    path=path,
                    attempt=retry_count + 1,
                    error=str(e),
                )
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, retry_count + 1)
            raise TransientFetchError(f"Request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Order source rejected credentials", status_code=response.status_code
            )

        if response.status_code == 429:
            header = response.headers.get("Retry-After", "")
            retry_after = int(header) if header.isdigit() else 60
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {
                    "raw": response.text[:500] if response.text else "empty response"
                }
            error_cls = TransientFetchError if response.status_code >= 500 else OrderSourceError
            raise error_cls(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        try:
            return response.json() if response.content else None
        except ValueError as e:
            raise MalformedPageError(
                "Response body is not valid JSON",
                status_code=response.status_code,
                details={"raw": response.text[:500]},
            ) from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    # === Order Endpoints ===

    async def list_orders(
        self,
        after: str,
        before: str,
        page: int = 1,
        per_page: int = 100,
        order: str = "asc",
        orderby: str = "date",
    ) -> list[dict[str, Any]]:
        """List one page of orders created between ``after`` and ``before``."""
        result = await self.get(
            "/orders",
            params={
                "after": after,
                "before": before,
                "page": page,
                "per_page": per_page,
                "order": order,
                "orderby": orderby,
            },
        )
        if not isinstance(result, list) or not all(isinstance(r, dict) for r in result):
            raise MalformedPageError(
                f"Expected a list of orders on page {page}",
                details={"type": type(result).__name__},
            )
        return result
