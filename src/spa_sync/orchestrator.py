"""Orchestrator - runs one Zenoti to Codat reconciliation.

For a single company and center the orchestrator:
- Resolves the Codat company (by name) and its first connection
- Makes sure every required ledger account exists, once, up front
- Walks the requested date range in windows of at most seven days
- Aggregates each window's sales and collections per calendar day
- Builds a balanced journal per day and pushes it to Codat

Days are processed strictly in date order. Any unrecoverable error aborts
the run and the results gathered so far are discarded.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

import structlog

from spa_sync.accounts import AccountResolver
from spa_sync.aggregator import aggregate
from spa_sync.cache import KeyValueStore, company_key
from spa_sync.clients.codat import CodatAPIError, CodatClient
from spa_sync.clients.zenoti import ZenotiClient
from spa_sync.config import FlatSettings, get_settings
from spa_sync.errors import (
    CompanyNotFoundError,
    ConnectionNotFoundError,
    JournalSubmissionError,
)
from spa_sync.journal import JournalBuilder
from spa_sync.models import DayBucket, JournalEntry, PollOutcome, SyncRequest, SyncResult
from spa_sync.polling import PushOperationPoller
from spa_sync.windows import DateWindow, DateWindows

logger = structlog.get_logger(__name__)


@dataclass
class SyncReport:
    """Per-day results of a completed sync."""

    company_id: str
    connection_id: str
    results: list[SyncResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"syncedDetails": [result.to_dict() for result in self.results]}


class SyncOrchestrator:
    """Sequences account resolution, fetching, aggregation and posting."""

    def __init__(
        self,
        codat: CodatClient,
        zenoti: ZenotiClient,
        settings: FlatSettings | None = None,
        *,
        cache: KeyValueStore | None = None,
        poller: PushOperationPoller | None = None,
    ):
        self._codat = codat
        self._zenoti = zenoti
        self._settings = settings or get_settings()
        self._cache = cache
        self._poller = poller or PushOperationPoller.from_settings(codat, self._settings)

    # === Company & Connection ===

    async def resolve_company(self, company_name: str, use_cache: bool = True) -> str:
        """Find the Codat company id for a name.

        An exact match wins over a case-insensitive one.

        Raises:
            CompanyNotFoundError: No company carries the name.
        """
        key = company_key(company_name)
        if use_cache and self._cache is not None:
            cached = self._cache.get(key)
            if cached:
                logger.debug("company_cache_hit", company=company_name)
                return cached

        companies = await self._codat.list_companies()
        company = next((c for c in companies if c.get("name") == company_name), None)
        if company is None:
            wanted = company_name.strip().casefold()
            company = next(
                (c for c in companies if str(c.get("name", "")).strip().casefold() == wanted),
                None,
            )
        if company is None or not company.get("id"):
            raise CompanyNotFoundError(f"Company not found: {company_name}")

        company_id = str(company["id"])
        if self._cache is not None:
            self._cache.put(key, company_id)
        return company_id

    async def resolve_connection(self, company_id: str) -> str:
        """First data connection of a company.

        Raises:
            ConnectionNotFoundError: The company has no connections.
        """
        connections = await self._codat.list_connections(company_id)
        connection = next((c for c in connections if c.get("id")), None)
        if connection is None:
            raise ConnectionNotFoundError(f"No connection found for company {company_id}")
        return str(connection["id"])

    async def _resolve_target(self, company_name: str) -> tuple[str, str]:
        company_id = await self.resolve_company(company_name)
        try:
            return company_id, await self.resolve_connection(company_id)
        except CodatAPIError as e:
            if e.status_code != 404 or self._cache is None:
                raise
        # The cached company is gone on the Codat side
        logger.info("company_cache_invalidated", company=company_name)
        self._cache.delete(company_key(company_name))
        company_id = await self.resolve_company(company_name, use_cache=False)
        return company_id, await self.resolve_connection(company_id)

    # === Sync ===

    async def sync(self, request: SyncRequest) -> SyncReport:
        """Run the reconciliation for one request.

        Raises:
            SyncError: Any unrecoverable failure; no partial report is returned.
            APIError: An upstream call failed outright.
        """
        log = logger.bind(company=request.company_name, center_id=request.center_id)
        log.info(
            "sync_started",
            start=request.start_date.isoformat(),
            end=request.end_date.isoformat(),
        )

        windows = DateWindows(
            request.start_date, request.end_date, self._settings.sync_window_days
        )
        company_id, connection_id = await self._resolve_target(request.company_name)
        log = log.bind(company_id=company_id, connection_id=connection_id)

        resolver = AccountResolver(
            self._codat,
            self._poller,
            currency=self._settings.sync_currency,
            strict=self._settings.sync_strict_accounts,
        )
        mapping = await resolver.resolve(company_id, connection_id)
        builder = JournalBuilder(mapping, currency=self._settings.sync_currency)

        report = SyncReport(company_id=company_id, connection_id=connection_id)
        # Buckets dated after the window that fetched them, e.g. a service
        # sold on a window's last day and performed the next day
        carried: dict[date, DayBucket] = {}
        for window in windows:
            batch = await self._zenoti.fetch_transactions(request.center_id, window)
            due = self._due_buckets(
                aggregate(batch.sales, batch.collections), window, request.end_date, carried, log
            )

            for day, bucket in due.items():
                entry = builder.build(day, bucket)
                if not entry.lines:
                    log.debug("journal_empty", date=day.isoformat())
                    continue
                journal_id = await self._submit(company_id, connection_id, builder, entry)
                report.results.append(SyncResult(day, entry.total_debits, journal_id))
                log.info(
                    "journal_posted",
                    date=day.isoformat(),
                    journal_entry_id=journal_id,
                    total=str(entry.total_debits),
                )

        log.info("sync_completed", days=len(report.results))
        return report

    @staticmethod
    def _due_buckets(
        buckets: Mapping[date, DayBucket],
        window: DateWindow,
        last_day: date,
        carried: dict[date, DayBucket],
        log: Any,
    ) -> dict[date, DayBucket]:
        """Buckets to post for ``window``, in date order.

        Later-dated buckets are moved into ``carried`` and merged back when
        their own window comes up. Earlier windows have already posted
        their days, so anything before ``window.start`` is dropped.
        """
        due: dict[date, DayBucket] = {}
        for day, bucket in buckets.items():
            if day < window.start or day > last_day:
                log.info("bucket_outside_range", date=day.isoformat())
            elif day > window.end:
                carried[day] = carried[day].merge(bucket) if day in carried else bucket
                log.debug("bucket_carried", date=day.isoformat())
            else:
                due[day] = bucket

        for day in [d for d in carried if d in window]:
            bucket = carried.pop(day)
            due[day] = bucket.merge(due[day]) if day in due else bucket
        return dict(sorted(due.items()))

    async def _submit(
        self,
        company_id: str,
        connection_id: str,
        builder: JournalBuilder,
        entry: JournalEntry,
    ) -> str:
        """Push a balanced entry and wait for Codat to accept it."""
        operation = await self._codat.create_journal_entry(
            company_id, connection_id, builder.to_payload(entry)
        )
        if not operation.key:
            raise JournalSubmissionError(
                f"Journal for {entry.posted_on.isoformat()} was not accepted for push"
            )

        result = await self._poller.wait(company_id, operation.key)
        if result.outcome is not PollOutcome.SUCCESS:
            raise JournalSubmissionError(
                f"Journal for {entry.posted_on.isoformat()} {result.outcome.value}: "
                f"{result.error or 'no details'}",
                details={"push_operation_key": operation.key},
            )

        journal_id = result.data.get("id")
        if not journal_id:
            logger.warning("journal_id_missing", push_operation_key=operation.key)
            return operation.key
        return str(journal_id)
