"""Customer and product report assembly.

Joins the dimension records with the metric calculators, segmentation rules
and time-series engine into the final report shapes:

- one CustomerReportRow per customer in the customer dimension
- one ProductReportRow per product in the product dimension
- optionally, the period series for a chosen measure

Every dimension entity appears exactly once, including entities without
sales; those carry zero metrics and no segment or tier. Filtering and sorting
beyond the default id order are left to the consumer.
"""

from __future__ import annotations

import logging
import warnings
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from business_analytics.foundation.config import AnalyticsConfig
from business_analytics.foundation.errors import (
    ConfigurationError,
    MalformedRecordError,
    ReferentialGapWarning,
)
from business_analytics.foundation.metrics import (
    CustomerMetrics,
    ProductMetrics,
    calculate_all_customer_metrics,
    calculate_all_product_metrics,
    resolve_reference_date,
)
from business_analytics.foundation.records import (
    Customer,
    Product,
    SalesFact,
    ensure_unique_ids,
)
from business_analytics.foundation.segmentation import (
    CustomerSegment,
    ProductTier,
    age_group_lower_bound,
    assign_age_group,
    assign_cost_range,
    customer_segment_rules,
    rank_products,
    segment_customer,
    tier_products,
)
from business_analytics.foundation.timeseries import (
    PeriodBucket,
    PeriodGranularity,
    PeriodMeasure,
    build_period_series,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerReportRow:
    """A customer dimension record joined with its metrics and segment."""

    customer: Customer
    metrics: CustomerMetrics
    age_group: Optional[str]
    segment: Optional[CustomerSegment]

    def __post_init__(self) -> None:
        if self.customer.customer_id != self.metrics.customer_id:
            raise ValueError(
                f"Metrics for {self.metrics.customer_id} joined to customer "
                f"{self.customer.customer_id}"
            )
        if self.segment is not None and not self.metrics.has_activity:
            raise ValueError(
                f"Customer without orders cannot be segmented: {self.customer.customer_id}"
            )

    @property
    def customer_id(self) -> str:
        return self.customer.customer_id


@dataclass(frozen=True)
class ProductReportRow:
    """A product dimension record joined with its metrics and tier."""

    product: Product
    metrics: ProductMetrics
    cost_range: Optional[str]
    performance_tier: Optional[ProductTier]
    sales_rank: Optional[int]

    def __post_init__(self) -> None:
        if self.product.product_id != self.metrics.product_id:
            raise ValueError(
                f"Metrics for {self.metrics.product_id} joined to product "
                f"{self.product.product_id}"
            )
        if self.performance_tier is not None and not self.metrics.has_activity:
            raise ValueError(
                f"Product without sales cannot be tiered: {self.product.product_id}"
            )

    @property
    def product_id(self) -> str:
        return self.product.product_id


@dataclass(frozen=True)
class ReferentialGap:
    """A sales fact pointing at an id missing from a dimension.

    Attributes
    ----------
    fact_index:
        Position of the fact in the input collection
    order_id:
        Order the fact belongs to
    dimension:
        "customer" or "product"
    entity_id:
        The dangling foreign key
    """

    fact_index: int
    order_id: str
    dimension: str
    entity_id: str


@dataclass(frozen=True)
class AnalyticsResult:
    """Output of a complete analytics run."""

    reference_date: Optional[date]
    customer_report: list[CustomerReportRow]
    product_report: list[ProductReportRow]
    period_series: Optional[list[PeriodBucket]]
    referential_gaps: list[ReferentialGap]


def build_customer_report(
    customers: Sequence[Customer],
    metrics: Sequence[CustomerMetrics],
    config: AnalyticsConfig | None = None,
) -> list[CustomerReportRow]:
    """Join customers with their metrics, age group and segment.

    Raises
    ------
    ValueError
        If a customer has no metrics entry.
    """
    config = config or AnalyticsConfig()
    rules = customer_segment_rules(config)
    by_id = {m.customer_id: m for m in metrics}

    rows: list[CustomerReportRow] = []
    for customer in customers:
        customer_metrics = by_id.get(customer.customer_id)
        if customer_metrics is None:
            raise ValueError(f"No metrics calculated for customer {customer.customer_id}")
        rows.append(
            CustomerReportRow(
                customer=customer,
                metrics=customer_metrics,
                age_group=assign_age_group(customer_metrics.age, config.age_bucket_width),
                segment=segment_customer(customer_metrics, rules),
            )
        )
    rows.sort(key=lambda row: row.customer_id)
    return rows


def build_product_report(
    products: Sequence[Product],
    metrics: Sequence[ProductMetrics],
) -> list[ProductReportRow]:
    """Join products with their metrics, cost range, rank and tier."""
    by_id = {m.product_id: m for m in metrics}
    tiers = tier_products(metrics)
    ranks = {m.product_id: rank for rank, m in rank_products(metrics)}

    rows: list[ProductReportRow] = []
    for product in products:
        product_metrics = by_id.get(product.product_id)
        if product_metrics is None:
            raise ValueError(f"No metrics calculated for product {product.product_id}")
        rows.append(
            ProductReportRow(
                product=product,
                metrics=product_metrics,
                cost_range=assign_cost_range(product.cost),
                performance_tier=tiers.get(product.product_id),
                sales_rank=ranks.get(product.product_id),
            )
        )
    rows.sort(key=lambda row: row.product_id)
    return rows


def find_referential_gaps(
    customers: Sequence[Customer],
    products: Sequence[Product],
    facts: Sequence[SalesFact],
) -> list[ReferentialGap]:
    """Return every fact reference to a customer or product id not in its dimension."""
    customer_ids = {c.customer_id for c in customers}
    product_ids = {p.product_id for p in products}

    gaps: list[ReferentialGap] = []
    for idx, fact in enumerate(facts):
        if fact.customer_id not in customer_ids:
            gaps.append(ReferentialGap(idx, fact.order_id, "customer", fact.customer_id))
        if fact.product_id not in product_ids:
            gaps.append(ReferentialGap(idx, fact.order_id, "product", fact.product_id))
    return gaps


def summarize_age_segments(
    customer_report: Sequence[CustomerReportRow],
) -> dict[str, dict[str, int]]:
    """Cross-tabulate customer counts by age group and segment.

    Customers without a known age or without a segment are left out.

    Returns
    -------
    dict[str, dict[str, int]]
        {age_group: {segment label: count}}, age groups youngest first
    """
    counts: Counter[tuple[str, str]] = Counter()
    for row in customer_report:
        if row.age_group is None or row.segment is None:
            continue
        counts[(row.age_group, row.segment.value)] += 1

    table: dict[str, dict[str, int]] = defaultdict(dict)
    ordered = sorted(
        counts.items(), key=lambda item: (age_group_lower_bound(item[0][0]), item[0][1])
    )
    for (age_group, segment), count in ordered:
        table[age_group][segment] = count
    return dict(table)


def run_analytics(
    customers: Sequence[Customer],
    products: Sequence[Product],
    facts: Sequence[SalesFact],
    config: AnalyticsConfig | None = None,
    granularity: PeriodGranularity | None = PeriodGranularity.MONTH,
    measure: PeriodMeasure = PeriodMeasure.SALES,
) -> AnalyticsResult:
    """Run the full analytics computation over the source collections.

    Parameters
    ----------
    customers:
        Customer dimension (unique ids)
    products:
        Product dimension (unique ids)
    facts:
        Sales facts
    config:
        Run configuration; defaults to AnalyticsConfig()
    granularity:
        Period size for the time series, or None to skip it
    measure:
        Measure the time series derived values are computed over

    Returns
    -------
    AnalyticsResult
        Customer and product reports, optional period series and the
        referential gaps found in the facts

    Raises
    ------
    MalformedRecordError
        If a dimension repeats an id, or a customer's birth date falls after
        the reference date.
    ConfigurationError
        If the configured reference timestamp is earlier than the latest
        order date.

    Notes
    -----
    A fact whose customer is missing from the customer dimension is excluded
    from customer metrics only; it still counts towards its product and the
    time series. Facts with a missing product are handled symmetrically.
    Each affected dimension triggers one ReferentialGapWarning.
    """
    config = config or AnalyticsConfig()
    ensure_unique_ids([c.customer_id for c in customers], "customer")
    ensure_unique_ids([p.product_id for p in products], "product")

    latest_order = max((fact.order_date for fact in facts), default=None)
    configured = config.reference_date
    if configured is not None and latest_order is not None and configured < latest_order:
        raise ConfigurationError(
            f"reference_timestamp ({configured}) is earlier than the latest "
            f"order date ({latest_order})"
        )
    reference_date = resolve_reference_date(facts, configured)

    if reference_date is not None:
        for idx, customer in enumerate(customers):
            if customer.birth_date is not None and customer.birth_date > reference_date:
                raise MalformedRecordError(
                    f"Birth date {customer.birth_date} is after the reference date "
                    f"{reference_date} (customer_id={customer.customer_id})",
                    record_type="customer",
                    record_index=idx,
                )

    logger.info(
        f"Running analytics for {len(customers)} customers, {len(products)} products, "
        f"{len(facts)} sales facts (reference date {reference_date})"
    )

    gaps = find_referential_gaps(customers, products, facts)
    for dimension in ("customer", "product"):
        dimension_gaps = [gap for gap in gaps if gap.dimension == dimension]
        if not dimension_gaps:
            continue
        missing_ids = sorted({gap.entity_id for gap in dimension_gaps})
        message = (
            f"{len(dimension_gaps)} sales facts reference {len(missing_ids)} "
            f"{dimension} IDs missing from the {dimension} dimension: {missing_ids[:10]}"
        )
        logger.warning(message)
        warnings.warn(message, ReferentialGapWarning, stacklevel=2)

    customer_metrics = calculate_all_customer_metrics(
        customers,
        facts,
        reference_date,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )
    product_metrics = calculate_all_product_metrics(
        products,
        facts,
        reference_date,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )

    period_series = None
    if granularity is not None:
        period_series = build_period_series(
            facts, granularity, measure, config.moving_average_window
        )

    customer_report = build_customer_report(customers, customer_metrics, config)
    product_report = build_product_report(products, product_metrics)

    segmented = sum(1 for row in customer_report if row.segment is not None)
    logger.info(
        f"Analytics run complete: {segmented}/{len(customer_report)} customers segmented, "
        f"{len(product_report)} products reported"
    )

    return AnalyticsResult(
        reference_date=reference_date,
        customer_report=customer_report,
        product_report=product_report,
        period_series=period_series,
        referential_gaps=gaps,
    )


def total_sales(rows: Sequence[CustomerReportRow] | Sequence[ProductReportRow]) -> Decimal:
    """Sum of total_sales across report rows."""
    return sum((row.metrics.total_sales for row in rows), Decimal("0"))
