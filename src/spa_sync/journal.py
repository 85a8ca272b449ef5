"""Turn one day's bucket into a balanced journal entry."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from spa_sync.errors import UnbalancedJournalError
from spa_sync.models import (
    ITEM_SALES_ACCOUNT,
    ZERO,
    AccountMapping,
    AccountRole,
    DayBucket,
    ItemType,
    JournalEntry,
    JournalLine,
    PaymentSplit,
    Polarity,
    RawCollection,
)

logger = structlog.get_logger(__name__)

DEBIT = Polarity.DEBIT
CREDIT = Polarity.CREDIT

CENT = Decimal("0.01")


def _cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def undeposited_account(split: PaymentSplit) -> AccountRole:
    if split.is_cash:
        return AccountRole.UNDEPOSITED_CASH
    return AccountRole.UNDEPOSITED_CARD


def liability_account(item_type: ItemType) -> AccountRole:
    if item_type is ItemType.PACKAGE:
        return AccountRole.PACKAGE_LIABILITY
    return AccountRole.GIFT_CARD_LIABILITY


class JournalBuilder:
    """Builds daily journal entries against a resolved account mapping.

    Amounts are posted with the sign they carry in the source reports, so a
    refund reported as -50 reduces both the undeposited funds and the sales
    account it reverses. Payments credit Due Amount; those credits are
    netted with the balancing line into a single closing Due Amount line.
    """

    def __init__(self, mapping: AccountMapping, currency: str = "USD"):
        self._mapping = mapping
        self._currency = currency

    def build(self, day: date, bucket: DayBucket) -> JournalEntry:
        """Build the entry for ``day``.

        Raises:
            UnbalancedJournalError: The lines do not balance, typically because
                lines on unresolved accounts had to be dropped.
        """
        lines: list[JournalLine] = []

        def add(
            account: AccountRole, amount: Decimal, polarity: Polarity, description: str
        ) -> None:
            amount = _cents(amount)
            if amount != ZERO:
                lines.append(JournalLine(account, amount, polarity, description, self._currency))

        for item_type, total in bucket.sales.items():
            add(ITEM_SALES_ACCOUNT[item_type], total, CREDIT, f"{item_type.value} sales")

        for refund in bucket.refunds:
            sales_account = ITEM_SALES_ACCOUNT[refund.item_type]
            for split in self._splits(refund):
                add(undeposited_account(split), split.amount, DEBIT, f"Refund ({split.method})")
                add(sales_account, split.amount, CREDIT, f"Refund ({split.method})")

        for payment in bucket.payments:
            for split in self._splits(payment):
                add(undeposited_account(split), split.amount, DEBIT, f"Payment ({split.method})")

        for redemption in bucket.redemptions:
            amount = redemption.amount
            add(AccountRole.MEMBERSHIP_REDEMPTIONS, amount, DEBIT, "Membership redemption")
            add(AccountRole.MEMBERSHIP_REVENUE, amount, CREDIT, "Membership redemption")

        for refund_payment in bucket.refund_payments:
            liability = liability_account(refund_payment.item_type)
            for split in self._splits(refund_payment):
                description = f"Refund payment ({split.method})"
                add(liability, split.amount, CREDIT, description)
                add(undeposited_account(split), split.amount, DEBIT, description)

        residual = JournalEntry(day, tuple(lines)).imbalance
        if residual != ZERO:
            if residual > ZERO:
                add(AccountRole.DUE_AMOUNT, residual, DEBIT, "Due amount")
            else:
                add(AccountRole.DUE_AMOUNT, -residual, CREDIT, "Due amount")

        kept = [line for line in lines if self._mapping.is_resolved(line.account)]
        if len(kept) != len(lines):
            dropped = {
                line.account.value
                for line in lines
                if not self._mapping.is_resolved(line.account)
            }
            logger.warning(
                "journal_lines_omitted", date=day.isoformat(), accounts=sorted(dropped)
            )

        entry = JournalEntry(
            posted_on=day,
            lines=tuple(kept),
            description=f"Zenoti daily summary {day.isoformat()}",
        )
        if not entry.is_balanced:
            raise UnbalancedJournalError(
                f"Journal for {day.isoformat()} is out of balance by {entry.imbalance}",
                details={
                    "date": day.isoformat(),
                    "credits": str(entry.total_credits),
                    "debits": str(entry.total_debits),
                },
            )
        return entry

    @staticmethod
    def _splits(collection: RawCollection) -> tuple[PaymentSplit, ...]:
        if collection.payments:
            return collection.payments
        return (PaymentSplit("unspecified", collection.amount),)

    def to_payload(self, entry: JournalEntry) -> dict[str, Any]:
        """Codat journal entry body. Debits are positive net amounts."""
        return {
            "description": entry.description,
            "postedOn": f"{entry.posted_on.isoformat()}T00:00:00",
            "journalLines": [
                {
                    "description": line.description,
                    "netAmount": float(line.net_amount),
                    "currency": line.currency,
                    "accountRef": {"id": self._mapping.account_id(line.account)},
                }
                for line in entry.lines
            ],
        }
