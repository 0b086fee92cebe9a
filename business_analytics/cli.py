"""Command line entry points for the business analytics engine."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from business_analytics.analyses.reports import run_analytics
from business_analytics.foundation import (
    AnalyticsConfig,
    PeriodGranularity,
    PeriodMeasure,
    parse_customers,
    parse_products,
    parse_sales_facts,
)
from business_analytics.foundation.errors import AnalyticsError
from business_analytics.pandas import (
    customer_report_to_dataframe,
    period_series_to_dataframe,
    product_report_to_dataframe,
)

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 100 * 1024 * 1024  # 100 MiB cap to avoid accidental OOM


def _load_records(path: Path) -> list[dict[str, Any]]:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of records in {resolved}")
    return payload


def _load_config(path: Path | None) -> AnalyticsConfig:
    if path is None:
        return AnalyticsConfig()
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in config file {path}")
    return AnalyticsConfig.from_mapping(payload)


def build_reports_cli(argv: list[str] | None = None) -> int:
    """Build customer and product reports from JSON source collections.

    Reads the customer, product and sales fact collections, runs the
    analytics engine and writes ``customer_report.csv``,
    ``product_report.csv`` and, unless ``--granularity none`` is given,
    ``period_series.csv`` to the output directory.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when the run is aborted)
    """
    parser = argparse.ArgumentParser(
        description="Build customer and product analytics reports"
    )
    parser.add_argument(
        "--customers", type=Path, required=True, help="JSON file with customer records"
    )
    parser.add_argument(
        "--products", type=Path, required=True, help="JSON file with product records"
    )
    parser.add_argument(
        "--sales", type=Path, required=True, help="JSON file with sales fact records"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional JSON file with run configuration (reference_timestamp, "
        "vip_sales_threshold, moving_average_window, age_bucket_width, ...)",
    )
    parser.add_argument(
        "--granularity",
        choices=[item.value for item in PeriodGranularity] + ["none"],
        default=PeriodGranularity.MONTH.value,
        help="Period size for the time series (default: month)",
    )
    parser.add_argument(
        "--measure",
        choices=[item.value for item in PeriodMeasure],
        default=PeriodMeasure.SALES.value,
        help="Measure for running total, moving average and growth (default: sales)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory the report CSV files are written to",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    granularity = (
        None if args.granularity == "none" else PeriodGranularity(args.granularity)
    )

    try:
        config = _load_config(args.config)
        logger.info(f"Loading source collections from {args.customers.parent}")
        customers = parse_customers(_load_records(args.customers))
        products = parse_products(_load_records(args.products))
        facts = parse_sales_facts(_load_records(args.sales))
        result = run_analytics(
            customers,
            products,
            facts,
            config=config,
            granularity=granularity,
            measure=PeriodMeasure(args.measure),
        )
    except AnalyticsError as exc:
        logger.error(f"Analytics run aborted: {exc}")
        return 1
    except (OSError, ValueError) as exc:
        # Unreadable, oversized or non-list input files
        logger.error(f"Could not load input files: {exc}")
        return 1

    output_dir = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    customer_report_to_dataframe(result.customer_report).to_csv(
        output_dir / "customer_report.csv", index=False
    )
    product_report_to_dataframe(result.product_report).to_csv(
        output_dir / "product_report.csv", index=False
    )
    if result.period_series is not None:
        period_series_to_dataframe(result.period_series).to_csv(
            output_dir / "period_series.csv", index=False
        )

    logger.info(
        f"Reports exported to {output_dir} "
        f"({len(result.customer_report)} customers, {len(result.product_report)} products, "
        f"{len(result.referential_gaps)} referential gaps)"
    )
    return 0


def main() -> None:
    raise SystemExit(build_reports_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
