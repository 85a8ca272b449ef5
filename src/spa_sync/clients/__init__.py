"""HTTP clients for the source and ledger platforms."""

from spa_sync.clients.base import APIError, RateLimitError
from spa_sync.clients.codat import CodatAPIError, CodatClient
from spa_sync.clients.zenoti import SourceBatch, ZenotiAPIError, ZenotiClient

__all__ = [
    "APIError",
    "RateLimitError",
    "CodatClient",
    "CodatAPIError",
    "ZenotiClient",
    "ZenotiAPIError",
    "SourceBatch",
]
