"""Classify raw source records into per-day buckets.

Nothing in here performs I/O. Records that cannot be parsed are logged and
skipped; the rest of the batch is still aggregated.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import structlog

from spa_sync.models import (
    ZERO,
    CollectionKind,
    DayBucket,
    ItemType,
    PaymentSplit,
    RawCollection,
    RawSale,
)

logger = structlog.get_logger(__name__)

# Zenoti reports "no date" as the minimum datetime
NULL_DATE = date(1, 1, 1)

_SALE_AMOUNT_KEYS = ("amount", "final_sale_price", "net_amount", "sale_amount")
_SALE_SOLD_KEYS = ("sold_date", "sale_date", "invoice_date", "date")
_SALE_SERVICED_KEYS = ("serviced_date", "service_date", "appointment_date")
_COLLECTION_DATE_KEYS = ("created_date", "collected_date", "date")
_COLLECTION_AMOUNT_KEYS = ("amount", "total_collection", "collected_amount")
_METHOD_KEYS = ("payment_method", "payment_type", "name", "type")


def _first(record: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def _parse_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def _item_type(record: Mapping[str, Any]) -> ItemType:
    value = record.get("item_type")
    if value is None and isinstance(record.get("item"), dict):
        value = record["item"].get("type")
    if value is None:
        raise ValueError("Missing item type")
    return ItemType.parse(value)


def parse_sale(record: Mapping[str, Any]) -> RawSale:
    """Build a RawSale from a sales report row.

    Raises:
        ValueError: The row is missing a required field or has a bad value.
    """
    return RawSale(
        sold_on=_parse_date(_first(record, _SALE_SOLD_KEYS)),
        serviced_on=_parse_date(_first(record, _SALE_SERVICED_KEYS)),
        item_type=_item_type(record),
        amount=_parse_decimal(_first(record, _SALE_AMOUNT_KEYS)),
    )


def parse_collection(record: Mapping[str, Any]) -> RawCollection:
    """Build a RawCollection from a collections report row.

    Raises:
        ValueError: The row is missing a required field or has a bad value.
    """
    kind_value = record.get("type") or record.get("collection_type")
    if kind_value is None:
        raise ValueError("Missing collection type")
    amount = _parse_decimal(_first(record, _COLLECTION_AMOUNT_KEYS))

    splits: list[PaymentSplit] = []
    for payment in record.get("payments") or []:
        if not isinstance(payment, Mapping):
            raise ValueError(f"Invalid payment split: {payment!r}")
        method = _first(payment, _METHOD_KEYS)
        if method is None:
            raise ValueError("Payment split without a method")
        splits.append(PaymentSplit(str(method), _parse_decimal(payment.get("amount"))))
    if not splits and record.get("payment_method"):
        splits.append(PaymentSplit(str(record["payment_method"]), amount))

    item_value = record.get("item_type")
    return RawCollection(
        created_on=_parse_date(_first(record, _COLLECTION_DATE_KEYS)),
        kind=CollectionKind.parse(kind_value),
        amount=amount,
        payments=tuple(splits),
        item_type=ItemType.parse(item_value) if item_value is not None else ItemType.SERVICE,
    )


class _BucketBuilder:
    """Scratch space for one date while the aggregation pass runs."""

    def __init__(self) -> None:
        self.sales: dict[ItemType, Decimal] = defaultdict(lambda: ZERO)
        self.collections: dict[CollectionKind, list[RawCollection]] = defaultdict(list)

    def freeze(self) -> DayBucket:
        return DayBucket(
            sales=MappingProxyType(dict(self.sales)),
            refunds=tuple(self.collections[CollectionKind.REFUND]),
            payments=tuple(self.collections[CollectionKind.PAYMENT]),
            redemptions=tuple(self.collections[CollectionKind.REDEMPTION]),
            refund_payments=tuple(self.collections[CollectionKind.REFUND_PAYMENT]),
        )


def aggregate(
    sales: Iterable[Mapping[str, Any]],
    collections: Iterable[Mapping[str, Any]],
) -> Mapping[date, DayBucket]:
    """Group raw sales and collections by calendar date.

    Returns:
        Read-only mapping of date to bucket, in date order.
    """
    builders: dict[date, _BucketBuilder] = defaultdict(_BucketBuilder)

    for record in sales:
        try:
            sale = parse_sale(record)
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning("sale_skipped", reason=str(e))
            continue
        day = sale.bucket_date
        if day is None or day == NULL_DATE or sale.amount <= ZERO:
            continue
        builders[day].sales[sale.item_type] += sale.amount

    for record in collections:
        try:
            collection = parse_collection(record)
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning("collection_skipped", reason=str(e))
            continue
        day = collection.created_on
        if day is None or day == NULL_DATE:
            logger.warning("collection_skipped", reason="missing created date")
            continue
        builders[day].collections[collection.kind].append(collection)

    return MappingProxyType({day: builders[day].freeze() for day in sorted(builders)})
