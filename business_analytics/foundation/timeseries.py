"""Time-series aggregation over calendar periods.

Sales facts are bucketed by month or year and a chosen measure is tracked
across the ordered period sequence: running total, trailing moving average
and period-over-period growth. Periods without facts are not synthesised,
so a gap in the data stays a gap in the series and "previous period" always
means the previous bucket that exists.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional, Sequence

from business_analytics.foundation.errors import ConfigurationError
from business_analytics.foundation.records import SalesFact

PERCENTAGE_PRECISION = Decimal("0.01")
AVERAGE_PRECISION = Decimal("0.01")


class PeriodGranularity(str, Enum):
    """Supported time granularities for period buckets."""

    MONTH = "month"
    YEAR = "year"


class PeriodMeasure(str, Enum):
    """Measures that the derived series can be computed over."""

    SALES = "sales"
    CUSTOMERS = "customers"
    QUANTITY = "quantity"


@dataclass(frozen=True)
class PeriodBucket:
    """Aggregated sales for one calendar period.

    Attributes
    ----------
    year:
        Calendar year
    month:
        Calendar month, None for yearly buckets
    period_start:
        First day of the period
    total_sales:
        Sum of sales amounts in the period
    total_customers:
        Number of distinct customers with a fact in the period
    total_quantity:
        Units sold in the period
    total_orders:
        Number of distinct orders in the period
    measure_value:
        Value of the selected measure for this period
    running_total:
        Cumulative sum of the measure up to and including this period
    moving_average:
        Trailing average of the measure, None until the window is full
    previous_value:
        Measure value of the preceding bucket, None for the first bucket
    growth_rate:
        Percentage change from the preceding bucket, None when undefined
    """

    year: int
    month: Optional[int]
    period_start: date
    total_sales: Decimal
    total_customers: int
    total_quantity: int
    total_orders: int
    measure_value: Decimal = Decimal("0")
    running_total: Decimal = Decimal("0")
    moving_average: Optional[Decimal] = None
    previous_value: Optional[Decimal] = None
    growth_rate: Optional[Decimal] = None

    @property
    def period_key(self) -> tuple[int, int]:
        """Sort key (year, month); month is 0 for yearly buckets."""
        return (self.year, self.month or 0)

    @property
    def label(self) -> str:
        if self.month is None:
            return f"{self.year}"
        return f"{self.year}-{self.month:02d}"

    def value_of(self, measure: PeriodMeasure) -> Decimal:
        if measure is PeriodMeasure.SALES:
            return self.total_sales
        if measure is PeriodMeasure.CUSTOMERS:
            return Decimal(self.total_customers)
        if measure is PeriodMeasure.QUANTITY:
            return Decimal(self.total_quantity)
        raise ValueError(f"Unsupported measure: {measure}")  # pragma: no cover


def _normalise_period(dt: date, granularity: PeriodGranularity) -> date:
    """Return the first day of the period containing dt."""
    if granularity is PeriodGranularity.MONTH:
        return dt.replace(day=1)
    if granularity is PeriodGranularity.YEAR:
        return dt.replace(month=1, day=1)
    raise ValueError(f"Unsupported granularity: {granularity}")  # pragma: no cover


def bucket_sales(
    facts: Iterable[SalesFact],
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
) -> list[PeriodBucket]:
    """Aggregate sales facts into calendar period buckets.

    Returns
    -------
    list[PeriodBucket]
        One bucket per period that has at least one fact, ascending by
        period. Derived series fields are left at their defaults.
    """
    buckets: dict[date, dict[str, object]] = {}
    for fact in facts:
        period_start = _normalise_period(fact.order_date, granularity)
        bucket = buckets.setdefault(
            period_start,
            {
                "total_sales": Decimal("0"),
                "customers": set(),
                "orders": set(),
                "total_quantity": 0,
            },
        )
        bucket["total_sales"] += fact.sales_amount
        bucket["customers"].add(fact.customer_id)
        bucket["orders"].add(fact.order_id)
        bucket["total_quantity"] += fact.quantity

    aggregates: list[PeriodBucket] = []
    for period_start in sorted(buckets):
        payload = buckets[period_start]
        aggregates.append(
            PeriodBucket(
                year=period_start.year,
                month=period_start.month
                if granularity is PeriodGranularity.MONTH
                else None,
                period_start=period_start,
                total_sales=payload["total_sales"].quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                ),
                total_customers=len(payload["customers"]),
                total_quantity=payload["total_quantity"],
                total_orders=len(payload["orders"]),
            )
        )
    return aggregates


def running_total(values: Sequence[Decimal]) -> list[Decimal]:
    """Prefix sums of the values in order.

    >>> running_total([Decimal(1), Decimal(2), Decimal(3)])
    [Decimal('1'), Decimal('3'), Decimal('6')]
    """
    totals: list[Decimal] = []
    acc = Decimal("0")
    for value in values:
        acc += value
        totals.append(acc)
    return totals


def moving_average(values: Sequence[Decimal], window: int = 3) -> list[Optional[Decimal]]:
    """Trailing average over ``window`` values including the current one.

    The first ``window - 1`` positions are None because the window is not
    yet full.

    >>> moving_average([Decimal(v) for v in (10, 20, 30, 40)], window=3)
    [None, None, Decimal('20.00'), Decimal('30.00')]
    """
    if window < 1:
        raise ConfigurationError(f"moving_average_window must be positive: {window}")

    averages: list[Optional[Decimal]] = []
    for idx in range(len(values)):
        if idx + 1 < window:
            averages.append(None)
            continue
        trailing = values[idx + 1 - window : idx + 1]
        average = sum(trailing, Decimal("0")) / Decimal(window)
        averages.append(average.quantize(AVERAGE_PRECISION, rounding=ROUND_HALF_UP))
    return averages


def growth_rate(current: Decimal, previous: Optional[Decimal]) -> Optional[Decimal]:
    """Percentage change from previous to current, rounded to 2 dp.

    Returns None when there is no previous value or it is zero.

    >>> growth_rate(Decimal(150), Decimal(100))
    Decimal('50.00')
    >>> growth_rate(Decimal(150), Decimal(0)) is None
    True
    """
    if previous is None or previous == 0:
        return None
    return ((current - previous) / previous * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


def growth_rates(values: Sequence[Decimal]) -> list[Optional[Decimal]]:
    """Period-over-period growth for each position in the sequence."""
    rates: list[Optional[Decimal]] = []
    previous: Optional[Decimal] = None
    for value in values:
        rates.append(growth_rate(value, previous))
        previous = value
    return rates


def build_period_series(
    facts: Iterable[SalesFact],
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
    measure: PeriodMeasure = PeriodMeasure.SALES,
    window: int = 3,
) -> list[PeriodBucket]:
    """Bucket facts by period and fill in the derived series for a measure.

    Parameters
    ----------
    facts:
        Sales facts to aggregate
    granularity:
        Month or year buckets
    measure:
        Measure that running total, moving average and growth are based on
    window:
        Moving average window size (positive)

    Returns
    -------
    list[PeriodBucket]
        Buckets ascending by period with every derived field populated

    Examples
    --------
    >>> from datetime import date
    >>> facts = [
    ...     SalesFact("SO1", "C1", "P1", date(2023, 1, 5), Decimal("100"), 1, Decimal("100")),
    ...     SalesFact("SO2", "C2", "P1", date(2023, 2, 5), Decimal("150"), 1, Decimal("150")),
    ... ]
    >>> series = build_period_series(facts)
    >>> [b.growth_rate for b in series]
    [None, Decimal('50.00')]
    """
    if window < 1:
        raise ConfigurationError(f"moving_average_window must be positive: {window}")

    buckets = bucket_sales(facts, granularity)
    values = [bucket.value_of(measure) for bucket in buckets]
    totals = running_total(values)
    averages = moving_average(values, window)
    rates = growth_rates(values)

    series: list[PeriodBucket] = []
    for idx, bucket in enumerate(buckets):
        series.append(
            replace(
                bucket,
                measure_value=values[idx],
                running_total=totals[idx],
                moving_average=averages[idx],
                previous_value=values[idx - 1] if idx > 0 else None,
                growth_rate=rates[idx],
            )
        )
    return series
