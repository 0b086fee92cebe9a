"""Foundational building blocks for the analytics engine.

This package exposes the source record contracts, run configuration, the
per-entity metric calculators, the segmentation rules and the time-series
engine used by the report assembler.
"""

from .config import AnalyticsConfig
from .errors import (
    AnalyticsError,
    ConfigurationError,
    MalformedRecordError,
    ReferentialGapWarning,
)
from .metrics import (
    CustomerMetrics,
    ProductMetrics,
    calculate_all_customer_metrics,
    calculate_all_product_metrics,
    calculate_customer_metrics,
    calculate_product_metrics,
    months_between,
    resolve_reference_date,
    years_between,
)
from .records import (
    Customer,
    Product,
    SalesFact,
    parse_customers,
    parse_products,
    parse_sales_facts,
)
from .segmentation import (
    CustomerSegment,
    ProductTier,
    SegmentRule,
    age_group_lower_bound,
    assign_age_group,
    assign_cost_range,
    customer_segment_rules,
    rank_products,
    segment_customer,
    tier_products,
)
from .timeseries import (
    PeriodBucket,
    PeriodGranularity,
    PeriodMeasure,
    bucket_sales,
    build_period_series,
    growth_rate,
    growth_rates,
    moving_average,
    running_total,
)

__all__ = [
    "AnalyticsConfig",
    "AnalyticsError",
    "ConfigurationError",
    "MalformedRecordError",
    "ReferentialGapWarning",
    "CustomerMetrics",
    "ProductMetrics",
    "calculate_all_customer_metrics",
    "calculate_all_product_metrics",
    "calculate_customer_metrics",
    "calculate_product_metrics",
    "months_between",
    "resolve_reference_date",
    "years_between",
    "Customer",
    "Product",
    "SalesFact",
    "parse_customers",
    "parse_products",
    "parse_sales_facts",
    "CustomerSegment",
    "ProductTier",
    "SegmentRule",
    "age_group_lower_bound",
    "assign_age_group",
    "assign_cost_range",
    "customer_segment_rules",
    "rank_products",
    "segment_customer",
    "tier_products",
    "PeriodBucket",
    "PeriodGranularity",
    "PeriodMeasure",
    "bucket_sales",
    "build_period_series",
    "growth_rate",
    "growth_rates",
    "moving_average",
    "running_total",
]
