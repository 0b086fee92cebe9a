"""Report assembly and follow-up analyses.

1. Customer report - metrics, age group and lifecycle segment per customer
2. Product report - metrics, cost range, sales rank and performance tier
3. Period series - running total, moving average and growth per period
4. Yearly product performance, category contribution and magnitude summaries
"""

from .reports import (
    AnalyticsResult,
    CustomerReportRow,
    ProductReportRow,
    ReferentialGap,
    build_customer_report,
    build_product_report,
    find_referential_gaps,
    run_analytics,
    summarize_age_segments,
)
from .performance import (
    CategoryContribution,
    DimensionSummary,
    ProductYearPerformance,
    analyze_category_contribution,
    analyze_yearly_product_performance,
    summarize_dimension,
)

__all__ = [
    # Reports
    "AnalyticsResult",
    "CustomerReportRow",
    "ProductReportRow",
    "ReferentialGap",
    "build_customer_report",
    "build_product_report",
    "find_referential_gaps",
    "run_analytics",
    "summarize_age_segments",
    # Performance
    "CategoryContribution",
    "DimensionSummary",
    "ProductYearPerformance",
    "analyze_category_contribution",
    "analyze_yearly_product_performance",
    "summarize_dimension",
]
