"""Tests for per-day aggregation of source records."""

from datetime import date
from decimal import Decimal

import pytest

from spa_sync.aggregator import aggregate, parse_collection, parse_sale
from spa_sync.models import CollectionKind, ItemType, PaymentSplit


class TestSaleClassification:
    """Tests for how sales are dated and bucketed."""

    def test_service_uses_serviced_date(self):
        """Service revenue is booked on the day the service happened."""
        buckets = aggregate(
            [
                {
                    "item_type": 0,
                    "sold_date": "2024-03-01T09:00:00",
                    "serviced_date": "2024-03-03T11:00:00",
                    "amount": "80.00",
                }
            ],
            [],
        )

        assert list(buckets) == [date(2024, 3, 3)]
        assert buckets[date(2024, 3, 3)].sales == {ItemType.SERVICE: Decimal("80.00")}

    def test_product_uses_sold_date(self):
        """Non-service items are booked on the day they were sold."""
        buckets = aggregate(
            [
                {
                    "item_type": "Product",
                    "sold_date": "2024-03-01T09:00:00",
                    "serviced_date": "2024-03-03T11:00:00",
                    "amount": 25,
                }
            ],
            [],
        )

        assert list(buckets) == [date(2024, 3, 1)]

    def test_totals_per_category(self):
        """Sales on the same day are summed per item type."""
        sales = [
            {"item_type": 0, "serviced_date": "2024-03-01", "amount": "60.50"},
            {"item_type": 0, "serviced_date": "2024-03-01", "amount": "39.50"},
            {"item_type": 2, "sold_date": "2024-03-01", "amount": "12"},
            {"item": {"type": "gift card"}, "sold_date": "2024-03-01", "amount": "50"},
        ]

        bucket = aggregate(sales, [])[date(2024, 3, 1)]

        assert bucket.sales[ItemType.SERVICE] == Decimal("100.00")
        assert bucket.sales[ItemType.PRODUCT] == Decimal("12")
        assert bucket.sales[ItemType.GIFT_CARD] == Decimal("50")
        assert bucket.net_sales == Decimal("162.00")

    def test_null_date_sale_dropped(self):
        """Sales dated on the sentinel null date are ignored."""
        buckets = aggregate(
            [{"item_type": 0, "serviced_date": "0001-01-01T00:00:00", "amount": 40}],
            [],
        )

        assert dict(buckets) == {}

    @pytest.mark.parametrize("amount", [0, "-15.00"])
    def test_non_positive_sale_dropped(self, amount):
        buckets = aggregate([{"item_type": 2, "sold_date": "2024-03-01", "amount": amount}], [])

        assert dict(buckets) == {}

    def test_malformed_sales_skipped(self):
        """Bad rows are skipped without losing the good ones."""
        sales = [
            {"sold_date": "2024-03-01", "amount": 10},  # no item type
            {"item_type": 2, "sold_date": "2024-03-01", "amount": "ten"},
            {"item_type": 99, "sold_date": "2024-03-01", "amount": 10},
            {"item_type": 2, "sold_date": "not-a-date", "amount": 10},
            {"item_type": 2, "sold_date": "2024-03-01", "amount": 10},
        ]

        bucket = aggregate(sales, [])[date(2024, 3, 1)]

        assert bucket.sales == {ItemType.PRODUCT: Decimal("10")}


class TestCollectionClassification:
    """Tests for how collections are bucketed."""

    def test_collections_split_by_kind(self):
        collections = [
            {"type": "Payment", "created_date": "2024-03-01", "amount": 10,
             "payment_method": "Cash"},
            {"type": "Refund", "created_date": "2024-03-01", "amount": -5,
             "payment_method": "Card"},
            {"type": "Redemption", "created_date": "2024-03-01", "amount": 20},
            {"type": "RefundPayment", "created_date": "2024-03-01", "amount": 7},
        ]

        bucket = aggregate([], collections)[date(2024, 3, 1)]

        assert len(bucket.payments) == 1
        assert len(bucket.refunds) == 1
        assert len(bucket.redemptions) == 1
        assert len(bucket.refund_payments) == 1
        assert bucket.refunds[0].amount == Decimal("-5")

    def test_zero_amount_collection_kept(self):
        """Zero collections stay in the bucket."""
        bucket = aggregate(
            [], [{"type": "Payment", "created_date": "2024-03-02", "amount": 0}]
        )[date(2024, 3, 2)]

        assert bucket.payments[0].amount == Decimal("0")

    def test_collection_without_date_skipped(self):
        buckets = aggregate([], [{"type": "Payment", "amount": 10}])

        assert dict(buckets) == {}

    def test_payment_splits_parsed(self):
        collection = parse_collection(
            {
                "type": "payment",
                "created_date": "2024-03-01T18:00:00",
                "amount": "120.00",
                "payments": [
                    {"payment_method": "Cash", "amount": "20.00"},
                    {"payment_type": "Visa", "amount": "100.00"},
                ],
            }
        )

        assert collection.kind is CollectionKind.PAYMENT
        assert collection.payments == (
            PaymentSplit("Cash", Decimal("20.00")),
            PaymentSplit("Visa", Decimal("100.00")),
        )

    def test_single_method_becomes_one_split(self):
        collection = parse_collection(
            {
                "type": "Payment",
                "created_date": "2024-03-01",
                "amount": 45,
                "payment_method": "Amex",
            }
        )

        assert collection.payments == (PaymentSplit("Amex", Decimal("45")),)

    def test_unknown_collection_type_skipped(self):
        buckets = aggregate([], [{"type": "Tip", "created_date": "2024-03-01", "amount": 5}])

        assert dict(buckets) == {}


class TestAggregateResult:
    """Tests for the shape of the aggregation result."""

    def test_dates_in_order(self, service_sale, cash_payment):
        later = dict(service_sale, serviced_date="2024-03-05")
        buckets = aggregate([later, service_sale], [cash_payment])

        assert list(buckets) == [date(2024, 3, 1), date(2024, 3, 5)]

    def test_result_is_read_only(self, service_sale):
        buckets = aggregate([service_sale], [])

        with pytest.raises(TypeError):
            buckets[date(2024, 3, 9)] = None  # type: ignore[index]
        with pytest.raises(TypeError):
            buckets[date(2024, 3, 1)].sales[ItemType.PRODUCT] = Decimal("1")  # type: ignore[index]

    def test_same_input_same_output(self, service_sale, cash_payment):
        """Aggregation has no hidden state between calls."""
        first = aggregate([service_sale], [cash_payment])
        second = aggregate([service_sale], [cash_payment])

        assert dict(first) == dict(second)

    def test_parse_sale_fields(self, service_sale):
        sale = parse_sale(service_sale)

        assert sale.item_type is ItemType.SERVICE
        assert sale.sold_on == date(2024, 3, 1)
        assert sale.bucket_date == date(2024, 3, 1)
        assert sale.amount == Decimal("100")
