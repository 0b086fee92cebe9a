"""Pandas DataFrame adapters for the analytics engine."""

from .reports import (
    age_segment_crosstab_df,
    customer_report_to_dataframe,
    dataframe_to_sales_facts,
    period_series_to_dataframe,
    product_report_to_dataframe,
    yearly_performance_to_dataframe,
)

__all__ = [
    "age_segment_crosstab_df",
    "customer_report_to_dataframe",
    "dataframe_to_sales_facts",
    "period_series_to_dataframe",
    "product_report_to_dataframe",
    "yearly_performance_to_dataframe",
]
