"""Tests for the time-series engine."""

from datetime import date
from decimal import Decimal

import pytest

from business_analytics.foundation.errors import ConfigurationError
from business_analytics.foundation.records import SalesFact
from business_analytics.foundation.timeseries import (
    PeriodGranularity,
    PeriodMeasure,
    bucket_sales,
    build_period_series,
    growth_rate,
    growth_rates,
    moving_average,
    running_total,
)


def _fact(order_id, customer_id, order_date, amount, quantity=1):
    amount = Decimal(str(amount))
    return SalesFact(
        order_id=order_id,
        customer_id=customer_id,
        product_id="P1",
        order_date=order_date,
        sales_amount=amount,
        quantity=quantity,
        price=amount / quantity,
    )


@pytest.fixture
def facts():
    return [
        _fact("SO1", "C1", date(2023, 1, 5), 100),
        _fact("SO2", "C2", date(2023, 1, 20), 50, quantity=2),
        _fact("SO3", "C1", date(2023, 2, 3), 225),
        # No facts in March
        _fact("SO4", "C3", date(2023, 4, 11), 75),
        _fact("SO5", "C1", date(2024, 1, 2), 300, quantity=3),
    ]


class TestSeriesPrimitives:
    """Test running_total, moving_average and growth_rates."""

    def test_running_total(self):
        values = [Decimal(v) for v in (10, 20, 30, 40)]
        assert running_total(values) == [Decimal(10), Decimal(30), Decimal(60), Decimal(100)]

    def test_running_total_non_decreasing_for_non_negative_values(self):
        values = [Decimal(v) for v in (0, 5, 0, 0, 12, 3)]
        totals = running_total(values)
        assert all(a <= b for a, b in zip(totals, totals[1:]))

    def test_moving_average_window_three(self):
        values = [Decimal(v) for v in (10, 20, 30, 40)]
        assert moving_average(values, window=3) == [
            None,
            None,
            Decimal("20.00"),
            Decimal("30.00"),
        ]

    def test_moving_average_window_one_is_identity(self):
        values = [Decimal(v) for v in (10, 20)]
        assert moving_average(values, window=1) == [Decimal("10.00"), Decimal("20.00")]

    def test_moving_average_window_longer_than_series(self):
        values = [Decimal(v) for v in (10, 20)]
        assert moving_average(values, window=5) == [None, None]

    def test_moving_average_rounds(self):
        values = [Decimal(v) for v in (10, 10, 11)]
        assert moving_average(values, window=3) == [None, None, Decimal("10.33")]

    def test_moving_average_invalid_window(self):
        with pytest.raises(ConfigurationError):
            moving_average([Decimal(1)], window=0)

    def test_growth_rate(self):
        assert growth_rate(Decimal(150), Decimal(100)) == Decimal("50.00")

    def test_growth_rate_decline(self):
        assert growth_rate(Decimal(2), Decimal(3)) == Decimal("-33.33")

    def test_growth_rate_zero_previous_is_none(self):
        assert growth_rate(Decimal(150), Decimal(0)) is None

    def test_growth_rate_missing_previous_is_none(self):
        assert growth_rate(Decimal(150), None) is None

    def test_growth_rates_sequence(self):
        values = [Decimal(v) for v in (100, 150, 0, 30)]
        assert growth_rates(values) == [None, Decimal("50.00"), Decimal("-100.00"), None]


class TestBucketSales:
    """Test bucket_sales."""

    def test_monthly_buckets_preserve_gaps(self, facts):
        buckets = bucket_sales(facts, PeriodGranularity.MONTH)
        assert [b.label for b in buckets] == ["2023-01", "2023-02", "2023-04", "2024-01"]

        january = buckets[0]
        assert january.period_start == date(2023, 1, 1)
        assert january.total_sales == Decimal("150.00")
        assert january.total_customers == 2
        assert january.total_quantity == 3
        assert january.total_orders == 2

    def test_yearly_buckets(self, facts):
        buckets = bucket_sales(facts, PeriodGranularity.YEAR)
        assert [(b.year, b.month) for b in buckets] == [(2023, None), (2024, None)]
        assert buckets[0].total_sales == Decimal("450.00")
        assert buckets[0].total_customers == 3
        assert buckets[1].label == "2024"

    def test_empty(self):
        assert bucket_sales([]) == []

    def test_sorted_regardless_of_input_order(self, facts):
        buckets = bucket_sales(list(reversed(facts)))
        assert [b.period_key for b in buckets] == sorted(b.period_key for b in buckets)


class TestBuildPeriodSeries:
    """Test build_period_series."""

    def test_sales_series(self, facts):
        series = build_period_series(facts, PeriodGranularity.MONTH, window=2)

        assert [b.measure_value for b in series] == [
            Decimal("150.00"),
            Decimal("225.00"),
            Decimal("75.00"),
            Decimal("300.00"),
        ]
        assert [b.running_total for b in series] == [
            Decimal("150.00"),
            Decimal("375.00"),
            Decimal("450.00"),
            Decimal("750.00"),
        ]
        assert [b.moving_average for b in series] == [
            None,
            Decimal("187.50"),
            Decimal("150.00"),
            Decimal("187.50"),
        ]
        # April's previous period is February: gaps are not synthesised
        assert [b.previous_value for b in series] == [
            None,
            Decimal("150.00"),
            Decimal("225.00"),
            Decimal("75.00"),
        ]
        assert [b.growth_rate for b in series] == [
            None,
            Decimal("50.00"),
            Decimal("-66.67"),
            Decimal("300.00"),
        ]

    def test_customer_measure(self, facts):
        series = build_period_series(
            facts, PeriodGranularity.MONTH, PeriodMeasure.CUSTOMERS, window=3
        )
        assert [b.measure_value for b in series] == [
            Decimal(2),
            Decimal(1),
            Decimal(1),
            Decimal(1),
        ]
        assert [b.running_total for b in series] == [
            Decimal(2),
            Decimal(3),
            Decimal(4),
            Decimal(5),
        ]

    def test_invalid_window_raises_error(self, facts):
        with pytest.raises(ConfigurationError):
            build_period_series(facts, window=0)

    def test_deterministic(self, facts):
        assert build_period_series(facts) == build_period_series(list(reversed(facts)))
