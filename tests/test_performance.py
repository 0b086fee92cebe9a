"""Tests for yearly performance, category contribution and magnitude analyses."""

from datetime import date
from decimal import Decimal

import pytest

from business_analytics.analyses.performance import (
    analyze_category_contribution,
    analyze_yearly_product_performance,
    summarize_dimension,
)
from business_analytics.analyses.reports import run_analytics
from business_analytics.foundation.records import Customer, Product, SalesFact


def _fact(order_id, customer_id, product_id, order_date, amount):
    amount = Decimal(str(amount))
    return SalesFact(order_id, customer_id, product_id, order_date, amount, 1, amount)


@pytest.fixture
def products():
    return [
        Product("P1", "Mountain-200", "Bikes"),
        Product("P2", "Water Bottle", "Accessories"),
        Product("P3", "Jersey", None),
    ]


@pytest.fixture
def customers():
    return [
        Customer("C1", country="Canada"),
        Customer("C2", country="Canada"),
        Customer("C3", country=None),
    ]


@pytest.fixture
def facts():
    return [
        _fact("SO1", "C1", "P1", date(2021, 3, 1), 100),
        _fact("SO2", "C2", "P1", date(2022, 5, 1), 300),
        _fact("SO3", "C1", "P1", date(2024, 7, 1), 200),
        _fact("SO4", "C3", "P2", date(2022, 1, 1), 50),
        _fact("SO5", "C3", "P2", date(2023, 1, 1), 50),
    ]


class TestYearlyProductPerformance:
    """Test analyze_yearly_product_performance."""

    def test_compares_with_average_and_previous_year(self, products, facts):
        results = analyze_yearly_product_performance(products, facts)
        p1 = [r for r in results if r.product_id == "P1"]

        assert [r.year for r in p1] == [2021, 2022, 2024]
        assert all(r.average_sales == Decimal("200.00") for r in p1)
        assert [r.average_flag for r in p1] == ["Below Avg", "Above Avg", "Avg"]
        assert [r.diff_from_average for r in p1] == [
            Decimal("-100.00"),
            Decimal("100.00"),
            Decimal("0.00"),
        ]
        # 2023 had no sales: 2024 compares with 2022
        assert [r.previous_year_sales for r in p1] == [
            None,
            Decimal("100.00"),
            Decimal("300.00"),
        ]
        assert [r.previous_year_flag for r in p1] == [None, "Increase", "Decrease"]
        assert p1[0].product_name == "Mountain-200"

    def test_no_change(self, products, facts):
        results = analyze_yearly_product_performance(products, facts)
        p2 = [r for r in results if r.product_id == "P2"]
        assert [r.previous_year_flag for r in p2] == [None, "No Change"]
        assert p2[1].diff_from_previous == Decimal("0.00")

    def test_sorted_by_product_then_year(self, products, facts):
        results = analyze_yearly_product_performance(products, list(reversed(facts)))
        keys = [(r.product_id, r.year) for r in results]
        assert keys == sorted(keys)

    def test_empty(self, products):
        assert analyze_yearly_product_performance(products, []) == []

    def test_unknown_product_is_excluded(self, products, facts):
        facts = facts + [_fact("SO9", "C1", "GHOST", date(2023, 1, 1), 999)]
        results = analyze_yearly_product_performance(products, facts)

        assert {r.product_id for r in results} == {"P1", "P2"}
        assert analyze_yearly_product_performance(
            [Product("P1")], [_fact("SO1", "C1", "GHOST", date(2023, 1, 1), 10)]
        ) == []


class TestCategoryContribution:
    """Test analyze_category_contribution."""

    def test_shares(self, customers, products, facts):
        result = run_analytics(customers, products, facts)
        contributions = analyze_category_contribution(result.product_report)

        assert [(c.category, c.total_sales, c.percentage_of_total) for c in contributions] == [
            ("Bikes", Decimal("600.00"), Decimal("85.71")),
            ("Accessories", Decimal("100.00"), Decimal("14.29")),
            ("n/a", Decimal("0.00"), Decimal("0.00")),
        ]

    def test_zero_total_sales(self, customers, products):
        result = run_analytics(customers, products, [])
        contributions = analyze_category_contribution(result.product_report)
        assert all(c.percentage_of_total == Decimal("0.00") for c in contributions)


class TestSummarizeDimension:
    """Test summarize_dimension."""

    def test_customers_by_country(self, customers, products, facts):
        result = run_analytics(customers, products, facts)
        summaries = summarize_dimension(result.customer_report, "country")

        assert [(s.value, s.entity_count, s.active_entities, s.total_sales) for s in summaries] == [
            ("Canada", 2, 2, Decimal("600.00")),
            ("n/a", 1, 1, Decimal("100.00")),
        ]

    def test_products_by_callable(self, customers, products, facts):
        result = run_analytics(customers, products, facts)
        summaries = summarize_dimension(
            result.product_report,
            lambda row: row.performance_tier.value if row.performance_tier else None,
        )
        assert {s.value for s in summaries} == {"High-Performer", "Mid-Range", "n/a"}

    def test_unknown_attribute_raises_error(self, customers, products, facts):
        result = run_analytics(customers, products, facts)
        with pytest.raises(AttributeError, match="shoe_size"):
            summarize_dimension(result.customer_report, "shoe_size")
