"""Source record definitions and parsing utilities.

The engine consumes three read-only collections: the customer and product
dimensions and the sales fact table (one row per order line item). Raw
records arrive as mappings from whatever upstream system produced them; the
``parse_*`` helpers turn them into validated, immutable dataclasses and
reject anything that breaks a structural invariant instead of coercing it.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Sequence

from business_analytics.foundation.errors import MalformedRecordError

#: Allowed difference between sales_amount and quantity * price.
AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class Customer:
    """Customer dimension record.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    create_date:
        Date the customer record was created
    birth_date:
        Birth date, if known. Customers without one have no age.
    country:
        Country of residence
    marital_status:
        Marital status as reported by the source system
    gender:
        Gender as reported by the source system
    name:
        Display name
    """

    customer_id: str
    create_date: date | None = None
    birth_date: date | None = None
    country: str | None = None
    marital_status: str | None = None
    gender: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class Product:
    """Product dimension record."""

    product_id: str
    name: str | None = None
    category: str | None = None
    subcategory: str | None = None
    cost: Decimal | None = None
    create_date: date | None = None
    product_line: str | None = None

    def __post_init__(self) -> None:
        if self.cost is not None and self.cost < 0:
            raise MalformedRecordError(
                f"Product cost cannot be negative: {self.cost} (product_id={self.product_id})",
                record_type="product",
            )


@dataclass(frozen=True)
class SalesFact:
    """A single order line item.

    Attributes
    ----------
    order_id:
        Order identifier (one order may span several line items)
    customer_id:
        Foreign key into the customer dimension
    product_id:
        Foreign key into the product dimension
    order_date:
        Date the order was placed
    shipping_date:
        Date the order shipped, if known
    due_date:
        Date the order was due, if known
    sales_amount:
        Line revenue; must equal quantity * price within AMOUNT_TOLERANCE
    quantity:
        Units sold
    price:
        Unit price
    """

    order_id: str
    customer_id: str
    product_id: str
    order_date: date
    sales_amount: Decimal
    quantity: int
    price: Decimal
    shipping_date: date | None = None
    due_date: date | None = None

    def __post_init__(self) -> None:
        """Validate line item invariants."""
        if self.quantity < 0:
            raise MalformedRecordError(
                f"Quantity cannot be negative: {self.quantity} (order_id={self.order_id})",
                record_type="sales_fact",
            )
        if self.price < 0:
            raise MalformedRecordError(
                f"Price cannot be negative: {self.price} (order_id={self.order_id})",
                record_type="sales_fact",
            )
        if self.sales_amount < 0:
            raise MalformedRecordError(
                f"Sales amount cannot be negative: {self.sales_amount} (order_id={self.order_id})",
                record_type="sales_fact",
            )

        expected = self.price * self.quantity
        if abs(self.sales_amount - expected) > AMOUNT_TOLERANCE:
            raise MalformedRecordError(
                f"Sales amount ({self.sales_amount}) != quantity * price ({expected}) "
                f"(order_id={self.order_id})",
                record_type="sales_fact",
            )

        # order_date <= shipping_date <= due_date among the dates present
        ordered = [
            d for d in (self.order_date, self.shipping_date, self.due_date) if d is not None
        ]
        if ordered != sorted(ordered):
            raise MalformedRecordError(
                f"Dates out of order: order={self.order_date}, shipping={self.shipping_date}, "
                f"due={self.due_date} (order_id={self.order_id})",
                record_type="sales_fact",
            )


def parse_customers(records: Iterable[Mapping[str, Any]]) -> list[Customer]:
    """Validate raw customer records and return canonical customers.

    Raises
    ------
    MalformedRecordError
        If a record lacks ``customer_id``, carries an unparseable date, or the
        same id appears twice.
    """
    customers: list[Customer] = []
    for idx, record in enumerate(records):
        customer_id = _require_id(record, "customer_id", "customer", idx)
        customers.append(
            Customer(
                customer_id=customer_id,
                create_date=_parse_date(record.get("create_date"), "create_date", "customer", idx),
                birth_date=_parse_date(record.get("birth_date"), "birth_date", "customer", idx),
                country=_optional_str(record.get("country")),
                marital_status=_optional_str(record.get("marital_status")),
                gender=_optional_str(record.get("gender")),
                name=_optional_str(record.get("name")),
            )
        )
    ensure_unique_ids([c.customer_id for c in customers], "customer")
    return customers


def parse_products(records: Iterable[Mapping[str, Any]]) -> list[Product]:
    """Validate raw product records and return canonical products."""
    products: list[Product] = []
    for idx, record in enumerate(records):
        product_id = _require_id(record, "product_id", "product", idx)
        cost = record.get("cost")
        try:
            products.append(
                Product(
                    product_id=product_id,
                    name=_optional_str(record.get("name")),
                    category=_optional_str(record.get("category")),
                    subcategory=_optional_str(record.get("subcategory")),
                    cost=None if cost is None else _parse_decimal(cost, "cost", "product", idx),
                    create_date=_parse_date(record.get("create_date"), "create_date", "product", idx),
                    product_line=_optional_str(record.get("product_line")),
                )
            )
        except MalformedRecordError as exc:
            if exc.record_index is not None:
                raise
            raise MalformedRecordError(
                str(exc), record_type="product", record_index=idx
            ) from exc
    ensure_unique_ids([p.product_id for p in products], "product")
    return products


def parse_sales_facts(records: Iterable[Mapping[str, Any]]) -> list[SalesFact]:
    """Validate raw sales fact records and return canonical line items.

    When ``sales_amount`` is absent it is derived from ``quantity * price``.
    When it is present, both ``quantity`` and ``price`` must be present too so
    that the amount identity can be checked.

    Examples
    --------
    >>> facts = parse_sales_facts([
    ...     {"order_id": "SO1", "customer_id": "C1", "product_id": "P1",
    ...      "order_date": "2023-01-05", "quantity": 2, "price": "10.00"},
    ... ])
    >>> facts[0].sales_amount
    Decimal('20.00')
    """
    facts: list[SalesFact] = []
    for idx, record in enumerate(records):
        order_id = _require_id(record, "order_id", "sales_fact", idx)
        customer_id = _require_id(record, "customer_id", "sales_fact", idx)
        product_id = _require_id(record, "product_id", "sales_fact", idx)

        order_date = _parse_date(record.get("order_date"), "order_date", "sales_fact", idx)
        if order_date is None:
            raise MalformedRecordError(
                "Sales fact missing order_date", record_type="sales_fact", record_index=idx
            )

        raw_amount = record.get("sales_amount")
        raw_quantity = record.get("quantity")
        raw_price = record.get("price")
        if raw_quantity is None or raw_price is None:
            missing = [
                key for key, value in (("quantity", raw_quantity), ("price", raw_price))
                if value is None
            ]
            raise MalformedRecordError(
                f"Sales fact missing {missing}; sales amount cannot be checked",
                record_type="sales_fact",
                record_index=idx,
            )

        quantity = _parse_int(raw_quantity, "quantity", idx)
        price = _parse_decimal(raw_price, "price", "sales_fact", idx)
        if raw_amount is None:
            sales_amount = price * quantity
        else:
            sales_amount = _parse_decimal(raw_amount, "sales_amount", "sales_fact", idx)

        try:
            facts.append(
                SalesFact(
                    order_id=order_id,
                    customer_id=customer_id,
                    product_id=product_id,
                    order_date=order_date,
                    shipping_date=_parse_date(
                        record.get("shipping_date"), "shipping_date", "sales_fact", idx
                    ),
                    due_date=_parse_date(record.get("due_date"), "due_date", "sales_fact", idx),
                    sales_amount=sales_amount,
                    quantity=quantity,
                    price=price,
                )
            )
        except MalformedRecordError as exc:
            if exc.record_index is not None:
                raise
            raise MalformedRecordError(
                str(exc), record_type="sales_fact", record_index=idx
            ) from exc
    return facts


def ensure_unique_ids(ids: Sequence[str], record_type: str) -> None:
    """Raise MalformedRecordError if a dimension repeats an identifier."""
    counts = Counter(ids)
    duplicates = sorted(entity_id for entity_id, count in counts.items() if count > 1)
    if duplicates:
        raise MalformedRecordError(
            f"Duplicate {record_type} IDs found: {duplicates}", record_type=record_type
        )


def _require_id(record: Mapping[str, Any], key: str, record_type: str, idx: int) -> str:
    value = record.get(key)
    if value is None or value == "":
        raise MalformedRecordError(
            f"Record missing required field {key!r}",
            record_type=record_type,
            record_index=idx,
        )
    return str(value)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_date(value: Any, key: str, record_type: str, idx: int) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError as exc:
            raise MalformedRecordError(
                f"{key} is not an ISO date: {value!r}",
                record_type=record_type,
                record_index=idx,
            ) from exc
    raise MalformedRecordError(
        f"{key} must be a date, datetime or ISO string, got {type(value).__name__}",
        record_type=record_type,
        record_index=idx,
    )


def _parse_decimal(value: Any, key: str, record_type: str, idx: int) -> Decimal:
    if isinstance(value, bool):
        raise MalformedRecordError(
            f"{key} must be numeric, got {value!r}", record_type=record_type, record_index=idx
        )
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise MalformedRecordError(
            f"{key} must be numeric, got {value!r}", record_type=record_type, record_index=idx
        ) from exc
    if not result.is_finite():
        raise MalformedRecordError(
            f"{key} must be finite, got {value!r}", record_type=record_type, record_index=idx
        )
    return result


def _parse_int(value: Any, key: str, idx: int) -> int:
    number = _parse_decimal(value, key, "sales_fact", idx)
    if number != number.to_integral_value():
        raise MalformedRecordError(
            f"{key} must be a whole number, got {value!r}",
            record_type="sales_fact",
            record_index=idx,
        )
    return int(number)
