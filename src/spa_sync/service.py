"""Transport-neutral request handlers.

Each handler takes a decoded request body and returns the response body,
so an HTTP router or the CLI can call them unchanged. Errors never escape:
they come back as ``{"error": message}``.
"""

from typing import Any, Mapping

import structlog

from spa_sync.cache import KeyValueStore, company_key
from spa_sync.clients.base import APIError
from spa_sync.clients.codat import CodatClient
from spa_sync.clients.zenoti import ZenotiClient
from spa_sync.config import FlatSettings, get_settings
from spa_sync.errors import SyncError, ValidationError
from spa_sync.models import SyncRequest
from spa_sync.orchestrator import SyncOrchestrator

logger = structlog.get_logger(__name__)


def _require(payload: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if not payload.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _error_message(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.error_text
    return str(error)


async def run_sync_request(
    payload: Mapping[str, Any],
    settings: FlatSettings | None = None,
    cache: KeyValueStore | None = None,
) -> dict[str, Any]:
    """Handle a sync request body.

    Validation and configuration are checked before any client is built,
    so a bad request never reaches Zenoti or Codat.
    """
    try:
        request = SyncRequest.from_payload(payload)
    except ValidationError as e:
        return {"error": str(e)}

    settings = settings or get_settings()
    try:
        async with CodatClient(settings=settings) as codat, ZenotiClient(
            request.api_key, settings=settings
        ) as zenoti:
            report = await SyncOrchestrator(codat, zenoti, settings, cache=cache).sync(request)
    except (SyncError, APIError) as e:
        logger.error("sync_failed", company=request.company_name, error=_error_message(e))
        return {"error": f"Sync failed: {_error_message(e)}"}

    return report.to_dict()


async def run_centers_request(
    payload: Mapping[str, Any], settings: FlatSettings | None = None
) -> dict[str, Any]:
    """List the Zenoti centers an API key can see."""
    try:
        _require(payload, "apiKey", "companyName")
    except ValidationError as e:
        return {"error": str(e)}

    try:
        async with ZenotiClient(str(payload["apiKey"]), settings=settings) as zenoti:
            centers = await zenoti.list_centers()
    except (SyncError, APIError) as e:
        logger.error("centers_failed", company=payload["companyName"], error=_error_message(e))
        return {"error": f"Failed to fetch centers from Zenoti: {_error_message(e)}"}

    if not centers:
        return {"error": "No centers found in response"}
    return {"centers": centers}


async def run_auth_link_request(
    payload: Mapping[str, Any],
    settings: FlatSettings | None = None,
    cache: KeyValueStore | None = None,
) -> dict[str, Any]:
    """Create a Codat company and start its accounting platform connection."""
    try:
        _require(payload, "companyName")
        settings = settings or get_settings()
        company_name = str(payload["companyName"]).strip()
        async with CodatClient(settings=settings) as codat:
            company = await codat.create_company(company_name)
            company_id = company.get("id")
            if not company_id:
                raise SyncError(f"Codat did not return an id for company {company_name!r}")
            logger.info("company_created", company=company_name, company_id=company_id)

            connection = await codat.create_connection(
                str(company_id), settings.codat_platform_key
            )
    except (SyncError, APIError) as e:
        logger.error("auth_link_failed", error=_error_message(e))
        return {"error": f"Failed to generate auth link: {_error_message(e)}"}

    if cache is not None:
        cache.put(company_key(company_name), str(company_id))
    return {"companyId": str(company_id), "authUrl": connection.get("linkUrl")}
