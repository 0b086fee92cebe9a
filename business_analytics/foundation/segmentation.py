"""Rule-based segmentation of customers and products.

Customer segments are assigned by an ordered list of rules where the first
matching rule wins. The rules are not mutually exclusive by construction, so
their order is part of the contract.

Products are ranked by total sales and split into three equally sized
performance tiers. Entities without any sales facts never receive a segment
or tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from business_analytics.foundation.config import AnalyticsConfig
from business_analytics.foundation.metrics import CustomerMetrics, ProductMetrics

AGE_FLOOR = 20
AGE_CEILING = 50


class CustomerSegment(str, Enum):
    """Customer lifecycle segments."""

    VIP = "VIP"
    REGULAR = "Regular"
    NEW = "New"


class ProductTier(str, Enum):
    """Product performance tiers, best first."""

    HIGH = "High-Performer"
    MID = "Mid-Range"
    LOW = "Low-Performer"


@dataclass(frozen=True)
class SegmentRule:
    """A (label, predicate) pair evaluated in order by segment_customer."""

    label: CustomerSegment
    predicate: Callable[[CustomerMetrics], bool]


def customer_segment_rules(
    config: AnalyticsConfig | None = None,
) -> list[SegmentRule]:
    """Return the priority-ordered customer segmentation rules.

    1. VIP: lifespan >= minimum AND total sales > threshold
    2. Regular: lifespan >= minimum (did not qualify as VIP)
    3. New: lifespan < minimum
    """
    config = config or AnalyticsConfig()
    min_lifespan = config.vip_min_lifespan_months
    threshold = config.vip_sales_threshold

    return [
        SegmentRule(
            CustomerSegment.VIP,
            lambda m: m.lifespan_months >= min_lifespan and m.total_sales > threshold,
        ),
        SegmentRule(
            CustomerSegment.REGULAR,
            lambda m: m.lifespan_months >= min_lifespan and m.total_sales <= threshold,
        ),
        SegmentRule(CustomerSegment.NEW, lambda m: m.lifespan_months < min_lifespan),
    ]


def segment_customer(
    metrics: CustomerMetrics, rules: Sequence[SegmentRule]
) -> Optional[CustomerSegment]:
    """Return the label of the first rule matching the customer.

    Customers without orders are not segmented and return None.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> metrics = CustomerMetrics(
    ...     "C1", 4, Decimal("6000"), 8, 3, date(2022, 1, 5), date(2023, 3, 5),
    ...     14, 0, None, Decimal("1500"), Decimal("428.57"),
    ... )
    >>> segment_customer(metrics, customer_segment_rules())
    <CustomerSegment.VIP: 'VIP'>
    """
    if not metrics.has_activity:
        return None
    for rule in rules:
        if rule.predicate(metrics):
            return rule.label
    return None


def assign_age_group(age: Optional[int], bucket_width: int = 10) -> Optional[str]:
    """Place an age into its band.

    Bands are "Under 20", then ``bucket_width``-year bands starting at 20,
    then "50 and above". Returns None when the age is unknown.

    >>> assign_age_group(34)
    '30-39'
    >>> assign_age_group(None) is None
    True
    """
    if age is None:
        return None
    if bucket_width < 1:
        raise ValueError(f"bucket_width must be positive: {bucket_width}")
    if age < AGE_FLOOR:
        return f"Under {AGE_FLOOR}"
    if age >= AGE_CEILING:
        return f"{AGE_CEILING} and above"
    lower = AGE_FLOOR + ((age - AGE_FLOOR) // bucket_width) * bucket_width
    upper = min(lower + bucket_width, AGE_CEILING) - 1
    return f"{lower}-{upper}"


def age_group_lower_bound(label: str) -> int:
    """Sort key placing age band labels in age order ("Under 20" first).

    >>> sorted(["50 and above", "Under 20", "20-29"], key=age_group_lower_bound)
    ['Under 20', '20-29', '50 and above']
    """
    if label.startswith("Under "):
        return 0
    return int(label.split("-")[0].split()[0])


def rank_products(
    metrics: Sequence[ProductMetrics],
) -> list[tuple[int, ProductMetrics]]:
    """Rank active products by total sales.

    Ordering is total sales descending with ascending product_id as the tie
    break, so equal revenue values always rank the same way. Products without
    sales facts are left out.

    Returns
    -------
    list[tuple[int, ProductMetrics]]
        (1-based rank, metrics) pairs in rank order
    """
    active = [m for m in metrics if m.has_activity]
    active.sort(key=lambda m: (-m.total_sales, m.product_id))
    return [(rank, m) for rank, m in enumerate(active, start=1)]


def tier_products(metrics: Sequence[ProductMetrics]) -> dict[str, ProductTier]:
    """Split ranked products into High/Mid/Low performance tiers.

    The ranked list is cut into three contiguous parts whose sizes differ by
    at most one; when the count is not divisible by three the higher tiers
    receive the extra products.

    Examples
    --------
    >>> from datetime import date
    >>> products = [
    ...     ProductMetrics(f"P{i}", 1, Decimal(sales), 1, 1, date(2023, 1, 1),
    ...                    date(2023, 1, 1), 0, 0, Decimal(sales), Decimal(sales),
    ...                    Decimal(sales))
    ...     for i, sales in enumerate([90, 80, 70, 60, 50, 40, 30, 20, 10], start=1)
    ... ]
    >>> tiers = tier_products(products)
    >>> [tiers[f"P{i}"].value for i in (1, 4, 7)]
    ['High-Performer', 'Mid-Range', 'Low-Performer']
    """
    ranked = [m.product_id for _, m in rank_products(metrics)]
    if not ranked:
        return {}

    tiers: dict[str, ProductTier] = {}
    partitions = np.array_split(np.arange(len(ranked)), len(ProductTier))
    for tier, positions in zip(ProductTier, partitions):
        for position in positions:
            tiers[ranked[int(position)]] = tier
    return tiers


def assign_cost_range(cost: Optional[Decimal]) -> Optional[str]:
    """Label a product cost with its price band.

    >>> assign_cost_range(Decimal("250"))
    '100-500'
    """
    if cost is None:
        return None
    if cost < 100:
        return "Below 100"
    if cost <= 500:
        return "100-500"
    if cost <= 1000:
        return "500-1000"
    return "Above 1000"
