"""Shared async HTTP plumbing for the Codat and Zenoti clients."""

from typing import Any

import httpx
import structlog

from spa_sync.errors import TransientUpstreamError

logger = structlog.get_logger(__name__)


class APIError(Exception):
    """Base exception for upstream API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    @property
    def error_text(self) -> str:
        """Best-effort human readable message from the error body."""
        if isinstance(self.details, dict):
            for key in ("error", "message", "detail", "errorMessage"):
                value = self.details.get(key)
                if value:
                    return str(value)
        return str(self)


class RateLimitError(TransientUpstreamError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, details={"retry_after": retry_after})
        self.status_code = 429
        self.retry_after = retry_after


class BaseAPIClient:
    """Async JSON client over a single base URL.

    Subclasses supply the auth header and the error type they raise.
    """

    error_class: type[APIError] = APIError
    service_name = "api"

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BaseAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated request and decode the JSON body."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )
        except httpx.RequestError as e:
            raise self.error_class(f"Request to {self.service_name} failed: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                seconds = float(retry_after) if retry_after else None
            except ValueError:
                seconds = None
            logger.warning("rate_limited", service=self.service_name, path=path)
            raise RateLimitError(f"{self.service_name} rate limited", retry_after=seconds)

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            raise self.error_class(
                f"{self.service_name} API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(
                f"{self.service_name} returned a non-JSON response",
                status_code=response.status_code,
                details={"raw": response.text[:500]},
            ) from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make POST request."""
        return await self._request("POST", path, params=params, json=json)
