"""Spa ledger sync - posts daily Zenoti activity to Codat as journal entries."""

__version__ = "0.1.0"

from spa_sync.accounts import AccountResolver
from spa_sync.aggregator import aggregate
from spa_sync.clients import CodatClient, ZenotiClient
from spa_sync.config import configure_logging, get_settings
from spa_sync.journal import JournalBuilder
from spa_sync.orchestrator import SyncOrchestrator, SyncReport
from spa_sync.polling import PushOperationPoller
from spa_sync.service import run_auth_link_request, run_centers_request, run_sync_request
from spa_sync.windows import DateWindow, DateWindows

__all__ = [
    # Version
    "__version__",
    # Engine
    "DateWindow",
    "DateWindows",
    "aggregate",
    "AccountResolver",
    "JournalBuilder",
    "PushOperationPoller",
    "SyncOrchestrator",
    "SyncReport",
    # Clients
    "CodatClient",
    "ZenotiClient",
    # Request handlers
    "run_sync_request",
    "run_centers_request",
    "run_auth_link_request",
    # Config
    "get_settings",
    "configure_logging",
]
