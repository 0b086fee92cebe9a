"""Performance, part-to-whole and magnitude analyses.

These analyses sit next to the two main reports and answer follow-up
questions about them:

- How does each product's yearly revenue compare with its own average year
  and with the year before?
- Which categories contribute most to total revenue?
- How are revenue and entity counts distributed across an attribute such as
  country or category?
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Sequence

from business_analytics.analyses.reports import (
    CustomerReportRow,
    ProductReportRow,
    total_sales,
)
from business_analytics.foundation.records import Product, SalesFact

PERCENTAGE_PRECISION = Decimal("0.01")
MONEY_PRECISION = Decimal("0.01")
UNCATEGORISED = "n/a"


@dataclass(frozen=True)
class ProductYearPerformance:
    """Yearly sales of one product compared with its average and prior year.

    Attributes
    ----------
    product_id:
        Product identifier
    product_name:
        Product name from the dimension, if known
    year:
        Calendar year of the order dates
    current_sales:
        Sales of the product in this year
    average_sales:
        Mean yearly sales of the product across the years it sold
    diff_from_average:
        current_sales - average_sales
    average_flag:
        "Above Avg", "Below Avg" or "Avg"
    previous_year_sales:
        Sales in the product's preceding active year, None for its first year
    diff_from_previous:
        current_sales - previous_year_sales, None for its first year
    previous_year_flag:
        "Increase", "Decrease", "No Change", or None for its first year
    """

    product_id: str
    product_name: Optional[str]
    year: int
    current_sales: Decimal
    average_sales: Decimal
    diff_from_average: Decimal
    average_flag: str
    previous_year_sales: Optional[Decimal]
    diff_from_previous: Optional[Decimal]
    previous_year_flag: Optional[str]


@dataclass(frozen=True)
class CategoryContribution:
    """Share of total revenue contributed by one category."""

    category: str
    total_sales: Decimal
    percentage_of_total: Decimal

    def __post_init__(self) -> None:
        if not 0 <= self.percentage_of_total <= 100:
            raise ValueError(
                f"Percentage of total must be 0-100: {self.percentage_of_total} "
                f"(category={self.category})"
            )


@dataclass(frozen=True)
class DimensionSummary:
    """Magnitude of revenue and entity counts for one attribute value."""

    value: str
    entity_count: int
    active_entities: int
    total_sales: Decimal


def _compare(diff: Decimal, above: str, below: str, equal: str) -> str:
    if diff > 0:
        return above
    if diff < 0:
        return below
    return equal


def _record_attribute(name: str) -> Callable[[object], Optional[str]]:
    def getter(row):
        record = row.customer if isinstance(row, CustomerReportRow) else row.product
        if not hasattr(record, name):
            raise AttributeError(f"{type(record).__name__} has no attribute {name!r}")
        return getattr(record, name)

    return getter


def analyze_yearly_product_performance(
    products: Sequence[Product],
    facts: Sequence[SalesFact],
) -> list[ProductYearPerformance]:
    """Compare each product's yearly sales with its average and previous year.

    Years without sales for a product are not synthesised, so the "previous
    year" of a product is its preceding active year. Facts referencing a
    product id outside the product dimension are excluded.

    Returns
    -------
    list[ProductYearPerformance]
        Sorted by product_id then year
    """
    names = {p.product_id: p.name for p in products}
    yearly: dict[str, dict[int, Decimal]] = defaultdict(dict)
    for fact in facts:
        if fact.product_id not in names:
            continue
        by_year = yearly[fact.product_id]
        year = fact.order_date.year
        by_year[year] = by_year.get(year, Decimal("0")) + fact.sales_amount

    results: list[ProductYearPerformance] = []
    for product_id in sorted(yearly):
        by_year = yearly[product_id]
        average = (sum(by_year.values(), Decimal("0")) / len(by_year)).quantize(
            MONEY_PRECISION, rounding=ROUND_HALF_UP
        )
        previous: Optional[Decimal] = None
        for year in sorted(by_year):
            current = by_year[year].quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)
            diff_avg = current - average
            diff_prev = current - previous if previous is not None else None
            results.append(
                ProductYearPerformance(
                    product_id=product_id,
                    product_name=names.get(product_id),
                    year=year,
                    current_sales=current,
                    average_sales=average,
                    diff_from_average=diff_avg,
                    average_flag=_compare(diff_avg, "Above Avg", "Below Avg", "Avg"),
                    previous_year_sales=previous,
                    diff_from_previous=diff_prev,
                    previous_year_flag=(
                        _compare(diff_prev, "Increase", "Decrease", "No Change")
                        if diff_prev is not None
                        else None
                    ),
                )
            )
            previous = current
    return results


def analyze_category_contribution(
    product_report: Sequence[ProductReportRow],
) -> list[CategoryContribution]:
    """Part-to-whole share of total sales per product category.

    Products without a category are grouped under "n/a". When total sales are
    zero every share is zero.

    Returns
    -------
    list[CategoryContribution]
        Sorted by total sales descending, then category name
    """
    grand_total = total_sales(product_report)
    by_category: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for row in product_report:
        by_category[row.product.category or UNCATEGORISED] += row.metrics.total_sales

    contributions: list[CategoryContribution] = []
    for category, sales in by_category.items():
        if grand_total > 0:
            share = (sales / grand_total * 100).quantize(
                PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
            )
        else:
            share = Decimal("0.00")
        contributions.append(CategoryContribution(category, sales, share))

    contributions.sort(key=lambda c: (-c.total_sales, c.category))
    return contributions


def summarize_dimension(
    report_rows: Sequence[CustomerReportRow] | Sequence[ProductReportRow],
    attribute: str | Callable[[object], Optional[str]],
) -> list[DimensionSummary]:
    """Group report rows by an attribute and total their sales.

    Parameters
    ----------
    report_rows:
        Customer or product report rows
    attribute:
        Name of an attribute on the row's customer/product record (for
        example "country" or "category"), or a callable taking the row

    Returns
    -------
    list[DimensionSummary]
        Sorted by total sales descending, then value. Missing values are
        grouped under "n/a".
    """
    getter = _record_attribute(attribute) if isinstance(attribute, str) else attribute

    groups: dict[str, list] = defaultdict(list)
    for row in report_rows:
        value = getter(row)
        groups[str(value) if value is not None else UNCATEGORISED].append(row)

    summaries = [
        DimensionSummary(
            value=value,
            entity_count=len(rows),
            active_entities=sum(1 for row in rows if row.metrics.has_activity),
            total_sales=total_sales(rows),
        )
        for value, rows in groups.items()
    ]
    summaries.sort(key=lambda s: (-s.total_sales, s.value))
    return summaries
