"""Zenoti client: centers plus the sales and collections reports."""

from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from spa_sync.clients.base import APIError, BaseAPIClient
from spa_sync.config import FlatSettings, get_settings
from spa_sync.windows import DateWindow

logger = structlog.get_logger(__name__)


class ZenotiAPIError(APIError):
    """Zenoti returned an error response."""

    pass


@dataclass
class SourceBatch:
    """Raw report rows for one window."""

    sales: list[dict[str, Any]] = field(default_factory=list)
    collections: list[dict[str, Any]] = field(default_factory=list)


class ZenotiClient(BaseAPIClient):
    """Async client for the Zenoti API using a per-request API key."""

    error_class = ZenotiAPIError
    service_name = "zenoti"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        settings: FlatSettings | None = None,
    ):
        settings = settings or get_settings()
        super().__init__(base_url or settings.zenoti_api_url, timeout=settings.http_timeout)
        self._api_key = api_key

    async def __aenter__(self) -> "ZenotiClient":
        return self

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        headers["Authorization"] = f"apikey {self._api_key}"
        return headers

    @staticmethod
    def _extract_rows(result: Any, key: str) -> list[dict[str, Any]]:
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            rows = result.get(key)
            if isinstance(rows, list):
                return rows
        return []

    @staticmethod
    def _report_params(center_id: str, start: date, end: date) -> dict[str, Any]:
        return {
            "centerId": center_id,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        }

    async def list_centers(self) -> list[dict[str, Any]]:
        """List the centers visible to the API key."""
        result = await self.get("/v1/centers")
        return self._extract_rows(result, "centers")

    async def list_sales(self, center_id: str, start: date, end: date) -> list[dict[str, Any]]:
        """Sales report rows for an inclusive date range."""
        result = await self.get(
            "/v1/sales/salesreport", params=self._report_params(center_id, start, end)
        )
        return self._extract_rows(result, "sales")

    async def list_collections(
        self, center_id: str, start: date, end: date
    ) -> list[dict[str, Any]]:
        """Collections report rows for an inclusive date range."""
        result = await self.get(
            "/v1/collections_report", params=self._report_params(center_id, start, end)
        )
        return self._extract_rows(result, "collections")

    async def fetch_transactions(self, center_id: str, window: DateWindow) -> SourceBatch:
        """Fetch both reports for one window."""
        sales = await self.list_sales(center_id, window.start, window.end)
        collections = await self.list_collections(center_id, window.start, window.end)
        logger.info(
            "source_window_fetched",
            center_id=center_id,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            sales=len(sales),
            collections=len(collections),
        )
        return SourceBatch(sales=sales, collections=collections)
