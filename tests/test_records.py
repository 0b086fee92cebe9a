"""Tests for source record contracts and parsing."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from business_analytics.foundation.errors import MalformedRecordError
from business_analytics.foundation.records import (
    Product,
    SalesFact,
    parse_customers,
    parse_products,
    parse_sales_facts,
)


def _fact_record(**overrides):
    record = {
        "order_id": "SO1",
        "customer_id": "C1",
        "product_id": "P1",
        "order_date": "2023-01-05",
        "shipping_date": "2023-01-12",
        "due_date": "2023-01-17",
        "sales_amount": "40.00",
        "quantity": 2,
        "price": "20.00",
    }
    record.update(overrides)
    return record


class TestSalesFact:
    """Test SalesFact invariants."""

    def test_valid_fact(self):
        """A consistent line item is created successfully."""
        fact = SalesFact(
            order_id="SO1",
            customer_id="C1",
            product_id="P1",
            order_date=date(2023, 1, 5),
            sales_amount=Decimal("40.00"),
            quantity=2,
            price=Decimal("20.00"),
        )
        assert fact.sales_amount == Decimal("40.00")
        assert fact.shipping_date is None

    def test_amount_within_rounding_tolerance(self):
        """Rounding differences up to one cent are accepted."""
        fact = SalesFact(
            "SO1", "C1", "P1", date(2023, 1, 5), Decimal("10.00"), 3, Decimal("3.333")
        )
        assert fact.quantity == 3

    def test_amount_mismatch_raises_error(self):
        """sales_amount != quantity * price should raise MalformedRecordError."""
        with pytest.raises(MalformedRecordError, match="quantity \\* price"):
            SalesFact(
                "SO1", "C1", "P1", date(2023, 1, 5), Decimal("50.00"), 2, Decimal("20.00")
            )

    def test_negative_quantity_raises_error(self):
        with pytest.raises(MalformedRecordError, match="Quantity cannot be negative"):
            SalesFact(
                "SO1", "C1", "P1", date(2023, 1, 5), Decimal("0"), -1, Decimal("0")
            )

    def test_shipping_before_order_raises_error(self):
        """Dates must satisfy order <= shipping <= due."""
        with pytest.raises(MalformedRecordError, match="Dates out of order"):
            SalesFact(
                "SO1",
                "C1",
                "P1",
                date(2023, 1, 5),
                Decimal("20"),
                1,
                Decimal("20"),
                shipping_date=date(2023, 1, 1),
            )

    def test_due_before_shipping_raises_error(self):
        with pytest.raises(MalformedRecordError, match="Dates out of order"):
            SalesFact(
                "SO1",
                "C1",
                "P1",
                date(2023, 1, 5),
                Decimal("20"),
                1,
                Decimal("20"),
                shipping_date=date(2023, 1, 10),
                due_date=date(2023, 1, 8),
            )

    def test_due_date_only_is_checked_against_order_date(self):
        with pytest.raises(MalformedRecordError, match="Dates out of order"):
            SalesFact(
                "SO1",
                "C1",
                "P1",
                date(2023, 1, 5),
                Decimal("20"),
                1,
                Decimal("20"),
                due_date=date(2023, 1, 1),
            )


class TestParseSalesFacts:
    """Test parse_sales_facts."""

    def test_parses_iso_strings(self):
        facts = parse_sales_facts([_fact_record()])
        assert len(facts) == 1
        fact = facts[0]
        assert fact.order_date == date(2023, 1, 5)
        assert fact.shipping_date == date(2023, 1, 12)
        assert fact.due_date == date(2023, 1, 17)
        assert fact.sales_amount == Decimal("40.00")
        assert fact.quantity == 2
        assert fact.price == Decimal("20.00")

    def test_accepts_datetime_values(self):
        facts = parse_sales_facts(
            [_fact_record(order_date=datetime(2023, 1, 5, 14, 30), shipping_date=None, due_date=None)]
        )
        assert facts[0].order_date == date(2023, 1, 5)

    def test_missing_sales_amount_is_derived(self):
        """sales_amount is derived from quantity * price when absent."""
        record = _fact_record()
        del record["sales_amount"]
        facts = parse_sales_facts([record])
        assert facts[0].sales_amount == Decimal("40.00")

    def test_amount_without_price_raises_error(self):
        """An amount that cannot be checked rejects the run."""
        with pytest.raises(MalformedRecordError, match="price") as exc_info:
            parse_sales_facts([_fact_record(), _fact_record(price=None)])
        assert exc_info.value.record_index == 1
        assert exc_info.value.record_type == "sales_fact"

    def test_amount_without_quantity_raises_error(self):
        record = _fact_record()
        del record["quantity"]
        with pytest.raises(MalformedRecordError, match="quantity"):
            parse_sales_facts([record])

    def test_missing_order_date_raises_error(self):
        with pytest.raises(MalformedRecordError, match="order_date"):
            parse_sales_facts([_fact_record(order_date=None)])

    def test_missing_customer_id_raises_error(self):
        with pytest.raises(MalformedRecordError, match="customer_id"):
            parse_sales_facts([_fact_record(customer_id="")])

    def test_invalid_date_raises_error(self):
        with pytest.raises(MalformedRecordError, match="not an ISO date"):
            parse_sales_facts([_fact_record(order_date="05/01/2023")])

    def test_non_numeric_price_raises_error(self):
        with pytest.raises(MalformedRecordError, match="price must be numeric"):
            parse_sales_facts([_fact_record(price="twenty")])

    def test_fractional_quantity_raises_error(self):
        with pytest.raises(MalformedRecordError, match="whole number"):
            parse_sales_facts([_fact_record(quantity=1.5, sales_amount="30.00")])

    def test_invariant_violation_reports_index(self):
        with pytest.raises(MalformedRecordError) as exc_info:
            parse_sales_facts([_fact_record(), _fact_record(sales_amount="99.00")])
        assert exc_info.value.record_index == 1
        assert "index 1" in str(exc_info.value)


class TestParseDimensions:
    """Test parse_customers and parse_products."""

    def test_parse_customers(self):
        customers = parse_customers(
            [
                {
                    "customer_id": 11000,
                    "create_date": "2021-01-10",
                    "birth_date": "1971-10-06",
                    "country": "Australia",
                    "marital_status": "Married",
                    "gender": "Male",
                },
                {"customer_id": "11001"},
            ]
        )
        assert customers[0].customer_id == "11000"
        assert customers[0].birth_date == date(1971, 10, 6)
        assert customers[0].country == "Australia"
        assert customers[1].birth_date is None
        assert customers[1].country is None

    def test_duplicate_customer_ids_raise_error(self):
        with pytest.raises(MalformedRecordError, match="Duplicate customer IDs"):
            parse_customers([{"customer_id": "C1"}, {"customer_id": "C1"}])

    def test_parse_products(self):
        products = parse_products(
            [
                {
                    "product_id": "P1",
                    "name": "Road-150 Red",
                    "category": "Bikes",
                    "subcategory": "Road Bikes",
                    "cost": 2171,
                    "create_date": "2020-07-01",
                }
            ]
        )
        assert products[0].cost == Decimal("2171")
        assert products[0].category == "Bikes"

    def test_negative_cost_raises_error(self):
        with pytest.raises(MalformedRecordError) as exc_info:
            parse_products([{"product_id": "P1", "cost": -5}])
        assert exc_info.value.record_index == 0

    def test_product_with_null_cost(self):
        product = Product("P1")
        assert product.cost is None

    def test_duplicate_product_ids_raise_error(self):
        with pytest.raises(MalformedRecordError, match="Duplicate product IDs"):
            parse_products([{"product_id": "P1"}, {"product_id": "P1"}])
