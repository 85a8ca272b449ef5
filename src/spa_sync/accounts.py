"""Make sure the ledger holds every account the journals post to.

Accounts are matched by name first. Missing ones are pushed to Codat and
the push operation is polled. Two syncs for the same company can race to
create the same account, so a "duplicate" failure is recovered by listing
the accounts again and using the one the other run created.
"""

from typing import Any, Iterable

import structlog

from spa_sync.clients.codat import CodatAPIError, CodatClient
from spa_sync.errors import AccountResolutionError, DuplicateResourceError, InvalidCategoryError
from spa_sync.models import (
    REQUIRED_ACCOUNTS,
    AccountMapping,
    AccountState,
    LogicalAccount,
    PollOutcome,
    ResolvedAccount,
)
from spa_sync.polling import PushOperationPoller

logger = structlog.get_logger(__name__)

DUPLICATE_MARKERS = ("already exists", "duplicate")


def _normalize(value: Any) -> str:
    return str(value or "").strip().casefold()


def is_duplicate_error(message: str | None) -> bool:
    text = _normalize(message)
    return any(marker in text for marker in DUPLICATE_MARKERS)


def find_account(accounts: Iterable[dict[str, Any]], name: str) -> dict[str, Any] | None:
    """Find an account by name, then by fully qualified name."""
    target = _normalize(name)
    candidates = [a for a in accounts if a.get("id")]
    for account in candidates:
        if _normalize(account.get("name")) == target:
            return account
    for account in candidates:
        qualified = account.get("fullyQualifiedName")
        if qualified and _normalize(qualified) == target:
            return account
    return None


def pick_category(account: LogicalAccount, allowed: Iterable[str]) -> str:
    """First allowed category that fits the account's classification.

    Raises:
        InvalidCategoryError: None of the accepted categories is allowed.
    """
    allowed_list = list(allowed)
    for accepted in account.classification.accepted_categories:
        wanted = _normalize(accepted)
        for category in allowed_list:
            normalized = _normalize(category)
            if normalized == wanted or normalized.split(".")[0] == wanted:
                return category
    raise InvalidCategoryError(
        f"No allowed category for {account.name!r} ({account.classification.value})",
        details={"allowed": allowed_list},
    )


class AccountResolver:
    """Build an AccountMapping for one company, creating missing accounts."""

    def __init__(
        self,
        client: CodatClient,
        poller: PushOperationPoller,
        *,
        required: tuple[LogicalAccount, ...] = REQUIRED_ACCOUNTS,
        currency: str = "USD",
        strict: bool = True,
    ):
        self._client = client
        self._poller = poller
        self._required = required
        self._currency = currency
        self._strict = strict

    async def resolve(self, company_id: str, connection_id: str) -> AccountMapping:
        """Map every required account to a ledger id.

        Raises:
            InvalidCategoryError: A missing account cannot be created on this
                connection.
            AccountResolutionError: Strict mode and an account stayed unresolved.
        """
        log = logger.bind(company_id=company_id, connection_id=connection_id)
        accounts = await self._client.list_accounts(company_id)
        mapping = AccountMapping()
        allowed: list[str] | None = None

        for logical in self._required:
            existing = find_account(accounts, logical.name)
            if existing:
                mapping.set(
                    logical.role, ResolvedAccount(str(existing["id"]), AccountState.EXISTING)
                )
                continue

            if allowed is None:
                allowed = await self._client.list_account_categories(company_id, connection_id)
            category = pick_category(logical, allowed)

            try:
                resolved = await self._create(company_id, connection_id, logical, category)
            except DuplicateResourceError:
                accounts = await self._client.list_accounts(company_id)
                existing = find_account(accounts, logical.name)
                if existing:
                    log.info("account_duplicate_recovered", account=logical.name)
                    resolved = ResolvedAccount(str(existing["id"]), AccountState.EXISTING)
                else:
                    resolved = ResolvedAccount(None, AccountState.UNRESOLVED)

            mapping.set(logical.role, resolved)
            if resolved.state is AccountState.UNRESOLVED:
                if self._strict:
                    raise AccountResolutionError(
                        f"Could not create ledger account {logical.name!r}",
                        details={"account": logical.name},
                    )
                log.warning("account_unresolved", account=logical.name)

        log.info(
            "accounts_resolved",
            total=len(mapping),
            created=sum(1 for _, a in mapping.items() if a.state is AccountState.CREATED),
        )
        return mapping

    async def _create(
        self,
        company_id: str,
        connection_id: str,
        logical: LogicalAccount,
        category: str,
    ) -> ResolvedAccount:
        """Push one account and wait for the outcome.

        Raises:
            DuplicateResourceError: The ledger reports the name is taken.
        """
        log = logger.bind(company_id=company_id, account=logical.name)
        payload = {
            "name": logical.name,
            "description": logical.description,
            "fullyQualifiedCategory": category,
            "type": logical.classification.value,
            "status": "Active",
            "currency": self._currency,
        }

        try:
            operation = await self._client.create_account(company_id, connection_id, payload)
        except CodatAPIError as e:
            if is_duplicate_error(e.error_text):
                raise DuplicateResourceError(e.error_text) from e
            log.warning("account_create_rejected", error=e.error_text, status_code=e.status_code)
            return ResolvedAccount(None, AccountState.UNRESOLVED)

        if not operation.key:
            log.warning("account_create_missing_key")
            return ResolvedAccount(None, AccountState.UNRESOLVED)

        result = await self._poller.wait(company_id, operation.key)
        if result.outcome is PollOutcome.SUCCESS:
            account_id = result.data.get("id")
            if account_id:
                log.info("account_created", account_id=str(account_id))
                return ResolvedAccount(str(account_id), AccountState.CREATED)
            log.warning("account_created_without_id")
            return ResolvedAccount(None, AccountState.UNRESOLVED)

        if result.outcome is PollOutcome.FAILED and is_duplicate_error(result.error):
            raise DuplicateResourceError(result.error or "Account already exists")

        log.warning("account_create_failed", outcome=result.outcome.value, error=result.error)
        return ResolvedAccount(None, AccountState.UNRESOLVED)
