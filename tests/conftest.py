"""Pytest configuration and fixtures."""

import os
from collections import Counter
from datetime import date
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("CODAT_API_KEY", "codat-test-key")

from spa_sync.clients.zenoti import SourceBatch  # noqa: E402
from spa_sync.config.settings import FlatSettings  # noqa: E402
from spa_sync.models import (  # noqa: E402
    REQUIRED_ACCOUNTS,
    AccountMapping,
    AccountRole,
    AccountState,
    PushOperation,
    PushStatus,
    ResolvedAccount,
)
from spa_sync.retry import RetryPolicy  # noqa: E402
from spa_sync.windows import DateWindow  # noqa: E402

CENTER_ID = "6f1c2d3e-4a5b-6c7d-8e9f-0a1b2c3d4e5f"

FAST_POLL = RetryPolicy(max_attempts=3, delay=0.0)


def make_settings(**overrides: Any) -> FlatSettings:
    """Settings with no waiting, for tests."""
    values: dict[str, Any] = {
        "CODAT_API_KEY": "codat-test-key",
        "RATE_LIMIT_PAUSE_SECONDS": 0.0,
        "RATE_LIMIT_MAX_ATTEMPTS": 3,
        "PUSH_INITIAL_DELAY_SECONDS": 0.0,
        "PUSH_POLL_INTERVAL_SECONDS": 0.0,
        "PUSH_MAX_ATTEMPTS": 3,
    }
    values.update(overrides)
    return FlatSettings(**values)


def slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def ledger_accounts(*roles: AccountRole) -> list[dict[str, Any]]:
    """Codat account rows for the given roles (all required ones by default)."""
    names = [r.value for r in roles] if roles else [a.name for a in REQUIRED_ACCOUNTS]
    return [{"id": f"acc-{slug(name)}", "name": name} for name in names]


def resolved_mapping(*unresolved: AccountRole) -> AccountMapping:
    mapping = AccountMapping()
    for role in AccountRole:
        if role in unresolved:
            mapping.set(role, ResolvedAccount(None, AccountState.UNRESOLVED))
        else:
            mapping.set(role, ResolvedAccount(f"acc-{slug(role.value)}", AccountState.EXISTING))
    return mapping


def mock_response(
    status_code: int = 200,
    payload: Any = None,
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """httpx-like response double."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.content = b"content" if payload is not None else b""
    response.text = "content" if payload is not None else ""
    response.headers = headers or {}
    return response


class FakeCodat:
    """In-memory stand-in for CodatClient.

    Account creations succeed unless the name is listed in
    ``account_failures``. A failure message mentioning "already exists"
    also adds the account, as if a concurrent run had just created it.
    """

    def __init__(
        self,
        accounts: list[dict[str, Any]] | None = None,
        companies: list[dict[str, Any]] | None = None,
        connections: dict[str, list[dict[str, Any]]] | None = None,
        categories: list[str] | None = None,
    ):
        self.accounts = list(accounts if accounts is not None else ledger_accounts())
        self.companies = companies if companies is not None else [
            {"id": "co-1", "name": "Glow Spa"}
        ]
        self.connections = connections if connections is not None else {
            "co-1": [{"id": "conn-1", "platformName": "QuickBooks Online"}]
        }
        self.categories = categories if categories is not None else [
            "Asset",
            "Liability",
            "Income",
        ]
        self.account_failures: dict[str, str] = {}
        self.journal_failures: dict[str, str] = {}
        self.created_accounts: list[dict[str, Any]] = []
        self.journals: list[dict[str, Any]] = []
        self.operations: dict[str, PushOperation] = {}
        self.calls: Counter[str] = Counter()

    async def list_companies(self) -> list[dict[str, Any]]:
        self.calls["list_companies"] += 1
        return list(self.companies)

    async def list_connections(self, company_id: str) -> list[dict[str, Any]]:
        self.calls["list_connections"] += 1
        return list(self.connections.get(company_id, []))

    async def list_accounts(self, company_id: str) -> list[dict[str, Any]]:
        self.calls["list_accounts"] += 1
        return [dict(account) for account in self.accounts]

    async def list_account_categories(self, company_id: str, connection_id: str) -> list[str]:
        self.calls["list_account_categories"] += 1
        return list(self.categories)

    async def create_account(
        self, company_id: str, connection_id: str, account: dict[str, Any]
    ) -> PushOperation:
        self.calls["create_account"] += 1
        self.created_accounts.append(account)
        key = f"push-account-{len(self.created_accounts)}"
        name = account["name"]
        failure = self.account_failures.get(name)
        if failure is None:
            account_id = f"new-{slug(name)}"
            self.accounts.append({"id": account_id, "name": name})
            self.operations[key] = PushOperation(key, PushStatus.SUCCESS, data={"id": account_id})
        else:
            if "already exists" in failure:
                self.accounts.append({"id": f"race-{slug(name)}", "name": name})
            self.operations[key] = PushOperation(key, PushStatus.FAILED, error_message=failure)
        return PushOperation(key, PushStatus.PENDING)

    async def create_journal_entry(
        self, company_id: str, connection_id: str, entry: dict[str, Any]
    ) -> PushOperation:
        self.calls["create_journal_entry"] += 1
        self.journals.append(entry)
        key = f"push-journal-{len(self.journals)}"
        posted_on = entry["postedOn"][:10]
        if posted_on in self.journal_failures:
            self.operations[key] = PushOperation(
                key, PushStatus.FAILED, error_message=self.journal_failures[posted_on]
            )
        else:
            self.operations[key] = PushOperation(
                key, PushStatus.SUCCESS, data={"id": f"journal-{posted_on}"}
            )
        return PushOperation(key, PushStatus.PENDING)

    async def get_push_operation(self, company_id: str, push_operation_key: str) -> PushOperation:
        self.calls["get_push_operation"] += 1
        return self.operations[push_operation_key]


class FakeZenoti:
    """Serves report rows per window.

    Like the real reports, sales are filtered by sold date and collections
    by created date. With ``filtered=False`` every window gets every row.
    """

    def __init__(
        self,
        sales: list[dict[str, Any]] | None = None,
        collections: list[dict[str, Any]] | None = None,
        filtered: bool = True,
    ):
        self.sales = sales or []
        self.collections = collections or []
        self.filtered = filtered
        self.windows: list[DateWindow] = []

    def _rows(self, rows: list[dict[str, Any]], key: str, window: DateWindow) -> list[dict]:
        if not self.filtered:
            return list(rows)
        return [row for row in rows if date.fromisoformat(row[key][:10]) in window]

    async def fetch_transactions(self, center_id: str, window: DateWindow) -> SourceBatch:
        self.windows.append(window)
        return SourceBatch(
            sales=self._rows(self.sales, "sold_date", window),
            collections=self._rows(self.collections, "created_date", window),
        )


@pytest.fixture
def settings() -> FlatSettings:
    return make_settings()


@pytest.fixture
def fake_codat() -> FakeCodat:
    return FakeCodat()


@pytest.fixture
def service_sale() -> dict[str, Any]:
    """A 100.00 service sale on 2024-03-01."""
    return {
        "invoice_no": "INV-1001",
        "item_type": 0,
        "sold_date": "2024-03-01T09:15:00",
        "serviced_date": "2024-03-01T10:00:00",
        "amount": 100,
    }


@pytest.fixture
def cash_payment() -> dict[str, Any]:
    """A 100.00 cash payment collected on 2024-03-01."""
    return {
        "invoice_no": "INV-1001",
        "type": "Payment",
        "created_date": "2024-03-01T10:30:00",
        "amount": 100,
        "payments": [{"payment_method": "Cash", "amount": 100}],
    }
