"""Pandas DataFrame adapters for reports and period series."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from business_analytics.analyses.performance import ProductYearPerformance
from business_analytics.analyses.reports import CustomerReportRow, ProductReportRow
from business_analytics.foundation.records import SalesFact, parse_sales_facts
from business_analytics.foundation.segmentation import age_group_lower_bound
from business_analytics.foundation.timeseries import PeriodBucket
from ._utils import decimal_to_float, frame_records

CUSTOMER_REPORT_COLUMNS = [
    "customer_id",
    "name",
    "country",
    "marital_status",
    "gender",
    "age",
    "age_group",
    "segment",
    "total_orders",
    "total_sales",
    "total_quantity",
    "total_products",
    "first_order_date",
    "last_order_date",
    "lifespan_months",
    "recency_months",
    "avg_order_value",
    "avg_monthly_spend",
]

PRODUCT_REPORT_COLUMNS = [
    "product_id",
    "name",
    "category",
    "subcategory",
    "cost",
    "cost_range",
    "sales_rank",
    "performance_tier",
    "total_orders",
    "total_sales",
    "total_quantity",
    "total_customers",
    "first_order_date",
    "last_order_date",
    "lifespan_months",
    "recency_months",
    "avg_selling_price",
    "avg_order_revenue",
    "avg_monthly_revenue",
]

PERIOD_SERIES_COLUMNS = [
    "period",
    "year",
    "month",
    "total_sales",
    "total_customers",
    "total_quantity",
    "total_orders",
    "measure_value",
    "running_total",
    "moving_average",
    "previous_value",
    "growth_rate",
]

YEARLY_PERFORMANCE_COLUMNS = [
    "product_id",
    "product_name",
    "year",
    "current_sales",
    "average_sales",
    "diff_from_average",
    "average_flag",
    "previous_year_sales",
    "diff_from_previous",
    "previous_year_flag",
]


def customer_report_to_dataframe(rows: Sequence[CustomerReportRow]) -> pd.DataFrame:
    """Convert customer report rows to a pandas DataFrame.

    Args:
        rows: Customer report rows

    Returns:
        DataFrame with CUSTOMER_REPORT_COLUMNS, one row per customer, sorted by
        customer_id. Money columns are floats; segment is the label string or
        None.

    Example:
        >>> result = run_analytics(customers, products, facts)
        >>> df = customer_report_to_dataframe(result.customer_report)
        >>> df[df["segment"] == "VIP"]
    """
    if not rows:
        return pd.DataFrame(columns=CUSTOMER_REPORT_COLUMNS)

    records = []
    for row in rows:
        customer, m = row.customer, row.metrics
        records.append(
            {
                "customer_id": customer.customer_id,
                "name": customer.name,
                "country": customer.country,
                "marital_status": customer.marital_status,
                "gender": customer.gender,
                "age": m.age,
                "age_group": row.age_group,
                "segment": row.segment.value if row.segment is not None else None,
                "total_orders": m.total_orders,
                "total_sales": decimal_to_float(m.total_sales),
                "total_quantity": m.total_quantity,
                "total_products": m.total_products,
                "first_order_date": m.first_order_date,
                "last_order_date": m.last_order_date,
                "lifespan_months": m.lifespan_months,
                "recency_months": m.recency_months,
                "avg_order_value": decimal_to_float(m.avg_order_value),
                "avg_monthly_spend": decimal_to_float(m.avg_monthly_spend),
            }
        )

    df = pd.DataFrame(records, columns=CUSTOMER_REPORT_COLUMNS)
    return df.sort_values("customer_id").reset_index(drop=True)


def product_report_to_dataframe(rows: Sequence[ProductReportRow]) -> pd.DataFrame:
    """Convert product report rows to a pandas DataFrame.

    Args:
        rows: Product report rows

    Returns:
        DataFrame with PRODUCT_REPORT_COLUMNS, sorted by product_id
    """
    if not rows:
        return pd.DataFrame(columns=PRODUCT_REPORT_COLUMNS)

    records = []
    for row in rows:
        product, m = row.product, row.metrics
        records.append(
            {
                "product_id": product.product_id,
                "name": product.name,
                "category": product.category,
                "subcategory": product.subcategory,
                "cost": decimal_to_float(product.cost),
                "cost_range": row.cost_range,
                "sales_rank": row.sales_rank,
                "performance_tier": (
                    row.performance_tier.value if row.performance_tier is not None else None
                ),
                "total_orders": m.total_orders,
                "total_sales": decimal_to_float(m.total_sales),
                "total_quantity": m.total_quantity,
                "total_customers": m.total_customers,
                "first_order_date": m.first_order_date,
                "last_order_date": m.last_order_date,
                "lifespan_months": m.lifespan_months,
                "recency_months": m.recency_months,
                "avg_selling_price": decimal_to_float(m.avg_selling_price),
                "avg_order_revenue": decimal_to_float(m.avg_order_revenue),
                "avg_monthly_revenue": decimal_to_float(m.avg_monthly_revenue),
            }
        )

    df = pd.DataFrame(records, columns=PRODUCT_REPORT_COLUMNS)
    return df.sort_values("product_id").reset_index(drop=True)


def period_series_to_dataframe(series: Sequence[PeriodBucket]) -> pd.DataFrame:
    """Convert a period series to a pandas DataFrame in period order.

    Undefined moving averages and growth rates stay missing (None/NaN) rather
    than being filled with zero.
    """
    if not series:
        return pd.DataFrame(columns=PERIOD_SERIES_COLUMNS)

    records = [
        {
            "period": bucket.label,
            "year": bucket.year,
            "month": bucket.month,
            "total_sales": decimal_to_float(bucket.total_sales),
            "total_customers": bucket.total_customers,
            "total_quantity": bucket.total_quantity,
            "total_orders": bucket.total_orders,
            "measure_value": decimal_to_float(bucket.measure_value),
            "running_total": decimal_to_float(bucket.running_total),
            "moving_average": decimal_to_float(bucket.moving_average),
            "previous_value": decimal_to_float(bucket.previous_value),
            "growth_rate": decimal_to_float(bucket.growth_rate),
        }
        for bucket in series
    ]
    return pd.DataFrame(records, columns=PERIOD_SERIES_COLUMNS)


def yearly_performance_to_dataframe(
    results: Sequence[ProductYearPerformance],
) -> pd.DataFrame:
    """Convert yearly product performance results to a pandas DataFrame."""
    if not results:
        return pd.DataFrame(columns=YEARLY_PERFORMANCE_COLUMNS)

    records = [
        {
            "product_id": r.product_id,
            "product_name": r.product_name,
            "year": r.year,
            "current_sales": decimal_to_float(r.current_sales),
            "average_sales": decimal_to_float(r.average_sales),
            "diff_from_average": decimal_to_float(r.diff_from_average),
            "average_flag": r.average_flag,
            "previous_year_sales": decimal_to_float(r.previous_year_sales),
            "diff_from_previous": decimal_to_float(r.diff_from_previous),
            "previous_year_flag": r.previous_year_flag,
        }
        for r in results
    ]
    return pd.DataFrame(records, columns=YEARLY_PERFORMANCE_COLUMNS)


def age_segment_crosstab_df(rows: Sequence[CustomerReportRow]) -> pd.DataFrame:
    """Cross-tabulate customer counts by age group (rows) and segment (columns).

    Customers without a known age or without a segment are excluded.
    """
    pairs = [
        (row.age_group, row.segment.value)
        for row in rows
        if row.age_group is not None and row.segment is not None
    ]
    if not pairs:
        return pd.DataFrame()

    df = pd.DataFrame(pairs, columns=["age_group", "segment"])
    table = pd.crosstab(df["age_group"], df["segment"])
    return table.reindex(sorted(table.index, key=age_group_lower_bound))


def dataframe_to_sales_facts(facts_df: pd.DataFrame) -> List[SalesFact]:
    """Convert a pandas DataFrame of line items to validated sales facts.

    Args:
        facts_df: DataFrame with at least order_id, customer_id, product_id,
            order_date, quantity and price columns; sales_amount,
            shipping_date and due_date are optional

    Returns:
        List of SalesFact objects in row order

    Raises:
        ValueError: If required columns are missing
        MalformedRecordError: If a row violates a line item invariant

    Example:
        >>> facts_df = pd.read_csv("fact_sales.csv")
        >>> facts = dataframe_to_sales_facts(facts_df)
    """
    required_cols = ["order_id", "customer_id", "product_id", "order_date", "quantity", "price"]
    missing_cols = set(required_cols) - set(facts_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if facts_df.empty:
        return []

    return parse_sales_facts(frame_records(facts_df))
