"""Domain types shared by the reconciliation engine."""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from spa_sync.errors import InvalidRangeError, ValidationError

# Credits and debits within this tolerance count as balanced
BALANCE_EPSILON = Decimal("0.01")

ZERO = Decimal("0")


# =============================================================================
# SOURCE RECORDS
# =============================================================================


class ItemType(str, Enum):
    """Category of item sold at a center."""

    SERVICE = "service"
    PRODUCT = "product"
    MEMBERSHIP = "membership"
    PACKAGE = "package"
    GIFT_CARD = "gift_card"

    @classmethod
    def parse(cls, value: Any) -> "ItemType":
        """Parse a numeric item type code or a type name."""
        if isinstance(value, bool):
            raise ValueError(f"Unknown item type: {value!r}")
        if isinstance(value, int):
            try:
                return _ITEM_TYPE_CODES[value]
            except KeyError:
                raise ValueError(f"Unknown item type code: {value}") from None
        key = _normalize_key(str(value))
        if key.isdigit():
            return cls.parse(int(key))
        try:
            return _ITEM_TYPE_NAMES[key]
        except KeyError:
            raise ValueError(f"Unknown item type: {value!r}") from None


_ITEM_TYPE_CODES: dict[int, ItemType] = {
    0: ItemType.SERVICE,
    2: ItemType.PRODUCT,
    3: ItemType.MEMBERSHIP,
    4: ItemType.PACKAGE,
    6: ItemType.GIFT_CARD,
}

_ITEM_TYPE_NAMES: dict[str, ItemType] = {
    "service": ItemType.SERVICE,
    "services": ItemType.SERVICE,
    "product": ItemType.PRODUCT,
    "products": ItemType.PRODUCT,
    "membership": ItemType.MEMBERSHIP,
    "package": ItemType.PACKAGE,
    "giftcard": ItemType.GIFT_CARD,
    "prepaidcard": ItemType.GIFT_CARD,
}


class CollectionKind(str, Enum):
    """Sub-type of a collection record."""

    PAYMENT = "payment"
    REFUND = "refund"
    REDEMPTION = "redemption"
    REFUND_PAYMENT = "refund_payment"

    @classmethod
    def parse(cls, value: Any) -> "CollectionKind":
        key = _normalize_key(str(value))
        for kind in cls:
            if _normalize_key(kind.value) == key:
                return kind
        raise ValueError(f"Unknown collection type: {value!r}")


def _normalize_key(value: str) -> str:
    return re.sub(r"[\s_\-]+", "", value.strip().lower())


@dataclass(frozen=True)
class PaymentSplit:
    """The part of a collection settled with one payment method."""

    method: str
    amount: Decimal

    @property
    def is_cash(self) -> bool:
        return "cash" in self.method.strip().lower()


@dataclass(frozen=True)
class RawSale:
    """One sales report line."""

    sold_on: date | None
    serviced_on: date | None
    item_type: ItemType
    amount: Decimal

    @property
    def bucket_date(self) -> date | None:
        """Service revenue lands on the day it was serviced, the rest when sold."""
        if self.item_type is ItemType.SERVICE:
            return self.serviced_on
        return self.sold_on


@dataclass(frozen=True)
class RawCollection:
    """One collections report line."""

    created_on: date | None
    kind: CollectionKind
    amount: Decimal
    payments: tuple[PaymentSplit, ...] = ()
    item_type: ItemType = ItemType.SERVICE


@dataclass(frozen=True)
class DayBucket:
    """Classified activity for one calendar date."""

    sales: Mapping[ItemType, Decimal] = field(
        default_factory=lambda: MappingProxyType({})
    )
    refunds: tuple[RawCollection, ...] = ()
    payments: tuple[RawCollection, ...] = ()
    redemptions: tuple[RawCollection, ...] = ()
    refund_payments: tuple[RawCollection, ...] = ()

    @property
    def net_sales(self) -> Decimal:
        return sum(self.sales.values(), ZERO)

    def merge(self, other: "DayBucket") -> "DayBucket":
        """Combine two buckets for the same date."""
        sales = dict(self.sales)
        for item_type, amount in other.sales.items():
            sales[item_type] = sales.get(item_type, ZERO) + amount
        return DayBucket(
            sales=MappingProxyType(sales),
            refunds=self.refunds + other.refunds,
            payments=self.payments + other.payments,
            redemptions=self.redemptions + other.redemptions,
            refund_payments=self.refund_payments + other.refund_payments,
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.sales
            or self.refunds
            or self.payments
            or self.redemptions
            or self.refund_payments
        )


# =============================================================================
# LEDGER ACCOUNTS
# =============================================================================


class AccountClassification(str, Enum):
    """Ledger classification of a logical account."""

    INCOME = "Income"
    LIABILITY = "Liability"
    ASSET = "Asset"

    @property
    def accepted_categories(self) -> tuple[str, ...]:
        """Ledger category strings this classification may be created under."""
        return ACCEPTED_CATEGORIES[self]


# Connections disagree on vocabulary, so each classification accepts both forms
ACCEPTED_CATEGORIES: dict[AccountClassification, tuple[str, ...]] = {
    AccountClassification.INCOME: ("Income", "Revenue"),
    AccountClassification.LIABILITY: ("Liability", "Current Liability"),
    AccountClassification.ASSET: ("Asset", "Current Asset"),
}


class AccountRole(str, Enum):
    """Names of the ledger accounts the reconciliation posts to."""

    SERVICE_SALES = "Service Sales"
    PRODUCT_SALES = "Product Sales"
    MEMBERSHIP_REVENUE = "Membership Revenue"
    PACKAGE_LIABILITY = "Package Liability"
    GIFT_CARD_LIABILITY = "Gift Card Liability"
    UNDEPOSITED_CASH = "Undeposited Cash"
    UNDEPOSITED_CARD = "Undeposited Card Payment"
    MEMBERSHIP_REDEMPTIONS = "Membership Redemptions"
    DUE_AMOUNT = "Due Amount"


@dataclass(frozen=True)
class LogicalAccount:
    """A named, classified account the ledger must hold."""

    role: AccountRole
    classification: AccountClassification
    description: str = ""

    @property
    def name(self) -> str:
        return self.role.value


REQUIRED_ACCOUNTS: tuple[LogicalAccount, ...] = (
    LogicalAccount(AccountRole.SERVICE_SALES, AccountClassification.INCOME, "Service revenue"),
    LogicalAccount(
        AccountRole.PRODUCT_SALES, AccountClassification.INCOME, "Retail product revenue"
    ),
    LogicalAccount(
        AccountRole.MEMBERSHIP_REVENUE, AccountClassification.INCOME, "Membership revenue"
    ),
    LogicalAccount(
        AccountRole.PACKAGE_LIABILITY, AccountClassification.LIABILITY, "Unused package balances"
    ),
    LogicalAccount(
        AccountRole.GIFT_CARD_LIABILITY, AccountClassification.LIABILITY, "Outstanding gift cards"
    ),
    LogicalAccount(
        AccountRole.UNDEPOSITED_CASH, AccountClassification.ASSET, "Cash not yet banked"
    ),
    LogicalAccount(
        AccountRole.UNDEPOSITED_CARD, AccountClassification.ASSET, "Card payments not yet settled"
    ),
    LogicalAccount(
        AccountRole.MEMBERSHIP_REDEMPTIONS,
        AccountClassification.INCOME,
        "Contra-revenue offsetting Membership Revenue for redeemed benefits",
    ),
    LogicalAccount(
        AccountRole.DUE_AMOUNT, AccountClassification.ASSET, "Amounts due from guests"
    ),
)

ITEM_SALES_ACCOUNT: dict[ItemType, AccountRole] = {
    ItemType.SERVICE: AccountRole.SERVICE_SALES,
    ItemType.PRODUCT: AccountRole.PRODUCT_SALES,
    ItemType.MEMBERSHIP: AccountRole.MEMBERSHIP_REVENUE,
    ItemType.PACKAGE: AccountRole.PACKAGE_LIABILITY,
    ItemType.GIFT_CARD: AccountRole.GIFT_CARD_LIABILITY,
}


class AccountState(str, Enum):
    EXISTING = "existing"
    CREATED = "created"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ResolvedAccount:
    account_id: str | None
    state: AccountState


class AccountMapping:
    """Logical account name to ledger account id, for one sync run."""

    def __init__(self, entries: Mapping[AccountRole, ResolvedAccount] | None = None):
        self._entries: dict[AccountRole, ResolvedAccount] = dict(entries or {})

    def set(self, role: AccountRole, account: ResolvedAccount) -> None:
        self._entries[role] = account

    def get(self, role: AccountRole) -> ResolvedAccount | None:
        return self._entries.get(role)

    def account_id(self, role: AccountRole) -> str | None:
        """Ledger id for a role, or None when it is missing or unresolved."""
        entry = self._entries.get(role)
        if entry is None or entry.state is AccountState.UNRESOLVED:
            return None
        return entry.account_id

    def is_resolved(self, role: AccountRole) -> bool:
        return self.account_id(role) is not None

    def unresolved(self) -> list[AccountRole]:
        return [role for role in AccountRole if not self.is_resolved(role)]

    def __contains__(self, role: object) -> bool:
        return role in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> list[tuple[AccountRole, ResolvedAccount]]:
        return list(self._entries.items())


# =============================================================================
# JOURNALS
# =============================================================================


class Polarity(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class JournalLine:
    """One side of a journal entry. Amounts keep the sign they had at the source."""

    account: AccountRole
    amount: Decimal
    polarity: Polarity
    description: str
    currency: str = "USD"

    @property
    def net_amount(self) -> Decimal:
        """Ledger-signed amount: debits positive, credits negative."""
        return self.amount if self.polarity is Polarity.DEBIT else -self.amount


@dataclass(frozen=True)
class JournalEntry:
    """A dated set of journal lines."""

    posted_on: date
    lines: tuple[JournalLine, ...]
    description: str = ""

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.polarity is Polarity.DEBIT), ZERO
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (line.amount for line in self.lines if line.polarity is Polarity.CREDIT), ZERO
        )

    @property
    def imbalance(self) -> Decimal:
        return self.total_credits - self.total_debits

    @property
    def is_balanced(self) -> bool:
        return abs(self.imbalance) <= BALANCE_EPSILON


# =============================================================================
# PUSH OPERATIONS
# =============================================================================


class PushStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def from_api(cls, value: Any) -> "PushStatus":
        status = str(value or "").strip().lower()
        if status == "success":
            return cls.SUCCESS
        if status in ("failed", "timedout"):
            return cls.FAILED
        return cls.PENDING


@dataclass(frozen=True)
class PushOperation:
    """Snapshot of an asynchronous ledger write."""

    key: str
    status: PushStatus
    data: dict[str, Any] | None = None
    error_message: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "PushOperation":
        data = payload.get("data")
        error_message = payload.get("errorMessage")
        if not error_message:
            # Codat reports field-level problems under validation.errors
            errors = (payload.get("validation") or {}).get("errors") or []
            messages = [str(e.get("message")) for e in errors if isinstance(e, dict)]
            error_message = "; ".join(m for m in messages if m) or None
        return cls(
            key=str(payload.get("pushOperationKey", "")),
            status=PushStatus.from_api(payload.get("status")),
            data=data if isinstance(data, dict) else None,
            error_message=error_message,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status is not PushStatus.PENDING


class PollOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    operation: PushOperation | None = None
    error: str | None = None

    @property
    def data(self) -> dict[str, Any]:
        if self.operation and self.operation.data:
            return self.operation.data
        return {}


# =============================================================================
# REQUESTS AND RESULTS
# =============================================================================


@dataclass(frozen=True)
class SyncResult:
    """One posted day."""

    date: date
    total_amount: Decimal
    journal_entry_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "totalAmount": float(self.total_amount),
            "journalEntryId": self.journal_entry_id,
        }


CENTER_ID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

_REQUIRED_FIELDS = ("apiKey", "companyName", "centerId", "startDate", "endDate")


@dataclass(frozen=True)
class SyncRequest:
    """A validated sync request."""

    api_key: str
    company_name: str
    center_id: str
    start_date: date
    end_date: date

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SyncRequest":
        """Validate a raw request body.

        Raises:
            ValidationError: A field is missing or malformed.
            InvalidRangeError: endDate is before startDate.
        """
        missing = [name for name in _REQUIRED_FIELDS if not payload.get(name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

        center_id = str(payload["centerId"]).strip()
        if not CENTER_ID_PATTERN.match(center_id):
            raise ValidationError(
                f"Invalid centerId: {payload['centerId']!r} is not a UUID",
                details={"centerId": payload["centerId"]},
            )

        start = _parse_request_date("startDate", payload["startDate"])
        end = _parse_request_date("endDate", payload["endDate"])
        if end < start:
            raise InvalidRangeError(
                f"endDate {end.isoformat()} is before startDate {start.isoformat()}"
            )

        return cls(
            api_key=str(payload["apiKey"]),
            company_name=str(payload["companyName"]).strip(),
            center_id=center_id,
            start_date=start,
            end_date=end,
        )


def _parse_request_date(name: str, value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(
            f"Invalid {name}: {value!r} is not a YYYY-MM-DD date",
            details={name: value},
        ) from None
