"""Codat client: companies, connections, accounts and push operations."""

from typing import Any

import structlog

from spa_sync.clients.base import APIError, BaseAPIClient, RateLimitError
from spa_sync.config import FlatSettings, get_settings
from spa_sync.errors import ConfigurationError
from spa_sync.models import PushOperation
from spa_sync.retry import RetryPolicy, retry_async

logger = structlog.get_logger(__name__)


class CodatAPIError(APIError):
    """Codat returned an error response."""

    pass


def _is_rate_limited(error: Exception) -> bool:
    return isinstance(error, RateLimitError)


class CodatClient(BaseAPIClient):
    """Async client for the Codat API using Basic key auth."""

    error_class = CodatAPIError
    service_name = "codat"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        settings: FlatSettings | None = None,
    ):
        settings = settings or get_settings()
        if api_key is None and settings.codat_api_key is not None:
            api_key = settings.codat_api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError("Codat API key not configured (set CODAT_API_KEY)")

        super().__init__(base_url or settings.codat_api_url, timeout=settings.http_timeout)
        self._api_key = api_key
        self._page_size = settings.codat_page_size
        self._page_retry = RetryPolicy(
            max_attempts=settings.rate_limit_max_attempts,
            delay=settings.rate_limit_pause_seconds,
        )

    async def __aenter__(self) -> "CodatClient":
        return self

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        headers["Authorization"] = f"Basic {self._api_key}"
        return headers

    # === Pagination ===

    @staticmethod
    def _next_link(page: Any) -> str | None:
        if not isinstance(page, dict):
            return None
        next_link = (page.get("_links") or {}).get("next")
        if isinstance(next_link, dict):
            return next_link.get("href") or None
        return None

    @staticmethod
    def _extract_results(page: Any) -> list[dict[str, Any]]:
        if isinstance(page, list):
            return page
        if isinstance(page, dict):
            results = page.get("results")
            if isinstance(results, list):
                return results
        return []

    async def _list_all(self, path: str) -> list[dict[str, Any]]:
        """Fetch every page of a listing, following ``_links.next``.

        Rate-limited page fetches are retried with a fixed pause.
        """
        items: list[dict[str, Any]] = []
        url: str | None = path
        params: dict[str, Any] | None = {"page": 1, "pageSize": self._page_size}
        seen: set[str] = set()

        while url:
            page_url, page_params = url, params
            page = await retry_async(
                lambda: self.get(page_url, params=page_params),
                self._page_retry,
                _is_rate_limited,
            )
            results = self._extract_results(page)
            items.extend(results)

            next_url = self._next_link(page)
            if not results or not next_url or next_url in seen:
                break
            seen.add(next_url)
            # The next link already carries its own query string
            url, params = next_url, None

        logger.debug("listing_fetched", path=path, count=len(items))
        return items

    # === Companies ===

    async def list_companies(self) -> list[dict[str, Any]]:
        """List every company on the Codat instance."""
        return await self._list_all("/companies")

    async def create_company(self, name: str) -> dict[str, Any]:
        """Create a company."""
        result = await self.post("/companies", json={"name": name})
        return result if isinstance(result, dict) else {}

    # === Connections ===

    async def list_connections(self, company_id: str) -> list[dict[str, Any]]:
        """List data connections for a company."""
        result = await self.get(f"/companies/{company_id}/connections")
        return self._extract_results(result)

    async def create_connection(self, company_id: str, platform_key: str) -> dict[str, Any]:
        """Start a connection to an accounting platform; the result carries ``linkUrl``."""
        result = await self.post(
            f"/companies/{company_id}/connections", json={"platformKey": platform_key}
        )
        return result if isinstance(result, dict) else {}

    # === Accounts ===

    async def list_accounts(self, company_id: str) -> list[dict[str, Any]]:
        """List the chart of accounts for a company."""
        return await self._list_all(f"/companies/{company_id}/data/accounts")

    async def list_account_categories(self, company_id: str, connection_id: str) -> list[str]:
        """Categories the connection accepts when creating accounts."""
        result = await self.get(
            f"/companies/{company_id}/connections/{connection_id}/options/chartOfAccounts"
        )
        if isinstance(result, list):
            return [str(value) for value in result]

        categories: list[str] = []
        properties = result.get("properties") if isinstance(result, dict) else None
        for prop in ("type", "fullyQualifiedCategory"):
            options = ((properties or {}).get(prop) or {}).get("options") or []
            for option in options:
                value = option.get("value") if isinstance(option, dict) else option
                if value and str(value) not in categories:
                    categories.append(str(value))
        return categories

    async def create_account(
        self, company_id: str, connection_id: str, account: dict[str, Any]
    ) -> PushOperation:
        """Push a new account; returns the pending push operation."""
        result = await self.post(
            f"/companies/{company_id}/connections/{connection_id}/push/accounts",
            json=account,
        )
        return PushOperation.from_api(result if isinstance(result, dict) else {})

    # === Journals ===

    async def create_journal_entry(
        self, company_id: str, connection_id: str, entry: dict[str, Any]
    ) -> PushOperation:
        """Push a journal entry; returns the pending push operation."""
        result = await self.post(
            f"/companies/{company_id}/connections/{connection_id}/push/journalEntries",
            json=entry,
        )
        return PushOperation.from_api(result if isinstance(result, dict) else {})

    # === Push Operations ===

    async def get_push_operation(self, company_id: str, push_operation_key: str) -> PushOperation:
        """Fetch the current state of a push operation."""
        result = await self.get(f"/companies/{company_id}/push/{push_operation_key}")
        return PushOperation.from_api(result if isinstance(result, dict) else {})
