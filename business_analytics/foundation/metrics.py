"""Per-entity metric calculators.

Customer and product metrics are aggregates over the sales facts that
reference the entity: totals, distinct counts, first/last order dates,
lifespan and recency. Every date-relative metric is measured against a
single reference date shared by the whole run, so repeated runs over the
same frozen dataset produce the same numbers.

Entities are independent of each other, which lets the bulk calculators fan
the work out over worker processes for large dimensions.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from business_analytics.foundation.records import Customer, Product, SalesFact

logger = logging.getLogger(__name__)

MONEY_PRECISION = Decimal("0.01")

T = TypeVar("T")


def months_between(start: date, end: date) -> int:
    """Return the number of completed calendar months from start to end.

    >>> months_between(date(2023, 1, 15), date(2023, 3, 15))
    2
    >>> months_between(date(2023, 1, 31), date(2023, 2, 1))
    0
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def years_between(start: date, end: date) -> int:
    """Return the number of completed years from start to end (age)."""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def resolve_reference_date(
    facts: Sequence[SalesFact], reference_timestamp: Optional[date] = None
) -> Optional[date]:
    """Return the run reference date.

    The configured timestamp wins; otherwise the latest order date in the
    facts is used. Returns None when neither is available.
    """
    if reference_timestamp is not None:
        return reference_timestamp
    if not facts:
        return None
    return max(fact.order_date for fact in facts)


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CustomerMetrics:
    """Aggregated sales metrics for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    total_orders:
        Number of distinct orders
    total_sales:
        Sum of line sales amounts
    total_quantity:
        Sum of units purchased
    total_products:
        Number of distinct products purchased
    first_order_date:
        Earliest order date, None without orders
    last_order_date:
        Latest order date, None without orders
    lifespan_months:
        Completed months between first and last order
    recency_months:
        Completed months between last order and the reference date
    age:
        Age in whole years at the reference date, None without a birth date
    avg_order_value:
        total_sales / total_orders
    avg_monthly_spend:
        total_sales / lifespan_months, or total_sales when lifespan is zero
    """

    customer_id: str
    total_orders: int
    total_sales: Decimal
    total_quantity: int
    total_products: int
    first_order_date: Optional[date]
    last_order_date: Optional[date]
    lifespan_months: int
    recency_months: Optional[int]
    age: Optional[int]
    avg_order_value: Decimal
    avg_monthly_spend: Decimal

    def __post_init__(self) -> None:
        """Validate customer metrics."""
        _validate_common(
            self.customer_id,
            self.total_orders,
            self.total_sales,
            self.total_quantity,
            self.lifespan_months,
            self.recency_months,
        )
        if self.age is not None and self.age < 0:
            raise ValueError(
                f"Age cannot be negative: {self.age} (customer_id={self.customer_id})"
            )

    @property
    def has_activity(self) -> bool:
        return self.total_orders > 0


@dataclass(frozen=True)
class ProductMetrics:
    """Aggregated sales metrics for a single product."""

    product_id: str
    total_orders: int
    total_sales: Decimal
    total_quantity: int
    total_customers: int
    first_order_date: Optional[date]
    last_order_date: Optional[date]
    lifespan_months: int
    recency_months: Optional[int]
    avg_selling_price: Decimal
    avg_order_revenue: Decimal
    avg_monthly_revenue: Decimal

    def __post_init__(self) -> None:
        """Validate product metrics."""
        _validate_common(
            self.product_id,
            self.total_orders,
            self.total_sales,
            self.total_quantity,
            self.lifespan_months,
            self.recency_months,
        )

    @property
    def has_activity(self) -> bool:
        return self.total_orders > 0


def _validate_common(
    entity_id: str,
    total_orders: int,
    total_sales: Decimal,
    total_quantity: int,
    lifespan_months: int,
    recency_months: Optional[int],
) -> None:
    if total_orders < 0:
        raise ValueError(f"Total orders cannot be negative: {total_orders} (id={entity_id})")
    if total_sales < 0:
        raise ValueError(f"Total sales cannot be negative: {total_sales} (id={entity_id})")
    if total_quantity < 0:
        raise ValueError(
            f"Total quantity cannot be negative: {total_quantity} (id={entity_id})"
        )
    if lifespan_months < 0:
        raise ValueError(f"Lifespan cannot be negative: {lifespan_months} (id={entity_id})")
    if recency_months is not None and recency_months < 0:
        raise ValueError(f"Recency cannot be negative: {recency_months} (id={entity_id})")


@dataclass(frozen=True)
class _Totals:
    total_orders: int
    total_sales: Decimal
    total_quantity: int
    first_order_date: Optional[date]
    last_order_date: Optional[date]
    lifespan_months: int
    recency_months: Optional[int]


def _aggregate(facts: Sequence[SalesFact], reference_date: Optional[date]) -> _Totals:
    if not facts:
        return _Totals(0, Decimal("0.00"), 0, None, None, 0, None)

    total_sales = sum((fact.sales_amount for fact in facts), Decimal("0"))
    first_order = min(fact.order_date for fact in facts)
    last_order = max(fact.order_date for fact in facts)
    recency = (
        months_between(last_order, reference_date) if reference_date is not None else None
    )
    return _Totals(
        total_orders=len({fact.order_id for fact in facts}),
        total_sales=_quantize(total_sales),
        total_quantity=sum(fact.quantity for fact in facts),
        first_order_date=first_order,
        last_order_date=last_order,
        lifespan_months=months_between(first_order, last_order),
        recency_months=recency,
    )


def calculate_customer_metrics(
    customer_id: str,
    facts: Sequence[SalesFact],
    reference_date: Optional[date],
    birth_date: Optional[date] = None,
) -> CustomerMetrics:
    """Calculate metrics for one customer from the facts that reference it.

    Facts belonging to other customers are ignored, so callers may pass either
    the pre-grouped facts of this customer or the full fact collection.

    Examples
    --------
    >>> from decimal import Decimal
    >>> facts = [
    ...     SalesFact("SO1", "C1", "P1", date(2023, 1, 10), Decimal("50"), 1, Decimal("50")),
    ...     SalesFact("SO2", "C1", "P2", date(2023, 4, 10), Decimal("30"), 3, Decimal("10")),
    ... ]
    >>> metrics = calculate_customer_metrics("C1", facts, date(2023, 6, 1))
    >>> metrics.total_orders, metrics.total_sales, metrics.lifespan_months
    (2, Decimal('80.00'), 3)
    """
    matching = [fact for fact in facts if fact.customer_id == customer_id]
    totals = _aggregate(matching, reference_date)

    age = None
    if birth_date is not None and reference_date is not None:
        age = years_between(birth_date, reference_date)

    if totals.total_orders:
        avg_order_value = _quantize(totals.total_sales / totals.total_orders)
    else:
        avg_order_value = Decimal("0.00")
    if totals.lifespan_months:
        avg_monthly_spend = _quantize(totals.total_sales / totals.lifespan_months)
    else:
        avg_monthly_spend = totals.total_sales

    return CustomerMetrics(
        customer_id=customer_id,
        total_orders=totals.total_orders,
        total_sales=totals.total_sales,
        total_quantity=totals.total_quantity,
        total_products=len({fact.product_id for fact in matching}),
        first_order_date=totals.first_order_date,
        last_order_date=totals.last_order_date,
        lifespan_months=totals.lifespan_months,
        recency_months=totals.recency_months,
        age=age,
        avg_order_value=avg_order_value,
        avg_monthly_spend=avg_monthly_spend,
    )


def calculate_product_metrics(
    product_id: str,
    facts: Sequence[SalesFact],
    reference_date: Optional[date],
) -> ProductMetrics:
    """Calculate metrics for one product from the facts that reference it."""
    matching = [fact for fact in facts if fact.product_id == product_id]
    totals = _aggregate(matching, reference_date)

    if totals.total_quantity:
        avg_selling_price = _quantize(totals.total_sales / totals.total_quantity)
    else:
        avg_selling_price = Decimal("0.00")
    if totals.total_orders:
        avg_order_revenue = _quantize(totals.total_sales / totals.total_orders)
    else:
        avg_order_revenue = Decimal("0.00")
    if totals.lifespan_months:
        avg_monthly_revenue = _quantize(totals.total_sales / totals.lifespan_months)
    else:
        avg_monthly_revenue = totals.total_sales

    return ProductMetrics(
        product_id=product_id,
        total_orders=totals.total_orders,
        total_sales=totals.total_sales,
        total_quantity=totals.total_quantity,
        total_customers=len({fact.customer_id for fact in matching}),
        first_order_date=totals.first_order_date,
        last_order_date=totals.last_order_date,
        lifespan_months=totals.lifespan_months,
        recency_months=totals.recency_months,
        avg_selling_price=avg_selling_price,
        avg_order_revenue=avg_order_revenue,
        avg_monthly_revenue=avg_monthly_revenue,
    )


def group_facts_by(
    facts: Iterable[SalesFact], key: Callable[[SalesFact], str]
) -> dict[str, list[SalesFact]]:
    """Group facts by an entity key in a single pass."""
    grouped: dict[str, list[SalesFact]] = {}
    for fact in facts:
        grouped.setdefault(key(fact), []).append(fact)
    return grouped


def _customer_chunk(
    chunk: list[tuple[Customer, list[SalesFact]]], reference_date: Optional[date]
) -> list[CustomerMetrics]:
    """Calculate metrics for a chunk of customers (multiprocessing worker)."""
    return [
        calculate_customer_metrics(
            customer.customer_id, facts, reference_date, birth_date=customer.birth_date
        )
        for customer, facts in chunk
    ]


def _product_chunk(
    chunk: list[tuple[Product, list[SalesFact]]], reference_date: Optional[date]
) -> list[ProductMetrics]:
    """Calculate metrics for a chunk of products (multiprocessing worker)."""
    return [
        calculate_product_metrics(product.product_id, facts, reference_date)
        for product, facts in chunk
    ]


def _evaluate(
    items: list,
    worker: Callable[[list, Optional[date]], list[T]],
    reference_date: Optional[date],
    parallel: bool,
    parallel_threshold: int,
    n_workers: Optional[int],
) -> list[T]:
    use_parallel = parallel and len(items) >= parallel_threshold
    if not use_parallel:
        return worker(items, reference_date)

    if n_workers is None:
        workers = os.cpu_count() or 1
    else:
        workers = max(1, n_workers)

    # Partition entities into chunks; each worker returns its own result list
    chunk_size = max(1, len(items) // workers)
    chunks = [
        (items[i : i + chunk_size], reference_date)
        for i in range(0, len(items), chunk_size)
    ]
    logger.info(
        f"Evaluating {len(items)} entities in parallel "
        f"({workers} workers, {len(chunks)} chunks)"
    )

    with multiprocessing.Pool(processes=workers) as pool:
        chunk_results = pool.starmap(worker, chunks)

    results: list[T] = []
    for chunk_result in chunk_results:
        results.extend(chunk_result)
    return results


def calculate_all_customer_metrics(
    customers: Sequence[Customer],
    facts: Sequence[SalesFact],
    reference_date: Optional[date],
    parallel: bool = True,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> list[CustomerMetrics]:
    """Calculate metrics for every customer in the dimension.

    Customers without facts get zero totals. Facts for ids outside the
    dimension are ignored.

    Parameters
    ----------
    customers:
        Customer dimension
    facts:
        Sales facts
    reference_date:
        Shared reference date for recency and age
    parallel:
        Enable parallel processing once ``parallel_threshold`` is reached
    parallel_threshold:
        Number of customers above which worker processes are used
    n_workers:
        Number of worker processes. If None, uses the CPU count.

    Returns
    -------
    list[CustomerMetrics]
        One entry per customer, sorted by customer_id
    """
    grouped = group_facts_by(facts, lambda fact: fact.customer_id)
    items = [(customer, grouped.get(customer.customer_id, [])) for customer in customers]
    metrics = _evaluate(
        items, _customer_chunk, reference_date, parallel, parallel_threshold, n_workers
    )
    metrics.sort(key=lambda m: m.customer_id)
    return metrics


def calculate_all_product_metrics(
    products: Sequence[Product],
    facts: Sequence[SalesFact],
    reference_date: Optional[date],
    parallel: bool = True,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> list[ProductMetrics]:
    """Calculate metrics for every product in the dimension, sorted by product_id."""
    grouped = group_facts_by(facts, lambda fact: fact.product_id)
    items = [(product, grouped.get(product.product_id, [])) for product in products]
    metrics = _evaluate(
        items, _product_chunk, reference_date, parallel, parallel_threshold, n_workers
    )
    metrics.sort(key=lambda m: m.product_id)
    return metrics
