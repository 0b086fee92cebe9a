"""Run configuration for the analytics engine."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from business_analytics.foundation.errors import ConfigurationError

DEFAULT_VIP_SALES_THRESHOLD = Decimal("5000")
DEFAULT_VIP_MIN_LIFESPAN_MONTHS = 12
DEFAULT_MOVING_AVERAGE_WINDOW = 3
DEFAULT_AGE_BUCKET_WIDTH = 10

_INTEGER_FIELDS = (
    "vip_min_lifespan_months",
    "moving_average_window",
    "age_bucket_width",
    "parallel_threshold",
    "n_workers",
)


@dataclass(frozen=True)
class AnalyticsConfig:
    """Configuration for a single analytics run.

    Attributes
    ----------
    reference_timestamp:
        Fixed "now" used for every recency and age computation in the run.
        Defaults to the latest order date found in the sales facts.
    vip_sales_threshold:
        Total sales a retained customer must exceed to be labelled VIP.
    vip_min_lifespan_months:
        Minimum lifespan (in months) for a customer to count as retained.
    moving_average_window:
        Number of trailing periods averaged by the time-series engine.
    age_bucket_width:
        Width in years of the age bands used for cross-tabulation.
    parallel:
        Fan out per-entity metric calculation over worker processes once the
        entity count reaches ``parallel_threshold``.
    parallel_threshold:
        Entity count above which parallel evaluation is used.
    n_workers:
        Number of worker processes. If None, uses the CPU count.
    """

    reference_timestamp: date | datetime | None = None
    vip_sales_threshold: Decimal = DEFAULT_VIP_SALES_THRESHOLD
    vip_min_lifespan_months: int = DEFAULT_VIP_MIN_LIFESPAN_MONTHS
    moving_average_window: int = DEFAULT_MOVING_AVERAGE_WINDOW
    age_bucket_width: int = DEFAULT_AGE_BUCKET_WIDTH
    parallel: bool = True
    parallel_threshold: int = 100_000
    n_workers: int | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.reference_timestamp is not None and not isinstance(
            self.reference_timestamp, date
        ):
            raise ConfigurationError(
                f"reference_timestamp must be a date or datetime: {self.reference_timestamp!r}"
            )
        if not isinstance(self.vip_sales_threshold, Decimal):
            object.__setattr__(
                self, "vip_sales_threshold", _to_decimal(self.vip_sales_threshold)
            )
        if not self.vip_sales_threshold.is_finite():
            raise ConfigurationError(
                f"vip_sales_threshold must be a finite number: {self.vip_sales_threshold}"
            )
        for name in _INTEGER_FIELDS:
            value = getattr(self, name)
            if name == "n_workers" and value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer: {value!r}")
        if self.vip_sales_threshold < 0:
            raise ConfigurationError(
                f"vip_sales_threshold cannot be negative: {self.vip_sales_threshold}"
            )
        if self.vip_min_lifespan_months < 0:
            raise ConfigurationError(
                f"vip_min_lifespan_months cannot be negative: {self.vip_min_lifespan_months}"
            )
        if self.moving_average_window < 1:
            raise ConfigurationError(
                f"moving_average_window must be positive: {self.moving_average_window}"
            )
        if self.age_bucket_width < 1:
            raise ConfigurationError(
                f"age_bucket_width must be positive: {self.age_bucket_width}"
            )
        if self.parallel_threshold < 1:
            raise ConfigurationError(
                f"parallel_threshold must be positive: {self.parallel_threshold}"
            )
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError(f"n_workers must be positive: {self.n_workers}")

    @property
    def reference_date(self) -> date | None:
        """Configured reference timestamp truncated to a calendar date."""
        if isinstance(self.reference_timestamp, datetime):
            return self.reference_timestamp.date()
        return self.reference_timestamp

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "AnalyticsConfig":
        """Build a configuration from a JSON-style mapping.

        ISO strings are accepted for ``reference_timestamp`` and numeric
        strings for ``vip_sales_threshold``. Unknown keys are rejected.

        Examples
        --------
        >>> config = AnalyticsConfig.from_mapping(
        ...     {"reference_timestamp": "2024-01-01", "moving_average_window": 6}
        ... )
        >>> config.moving_average_window
        6
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")

        values = dict(mapping)
        reference = values.get("reference_timestamp")
        if isinstance(reference, str):
            try:
                values["reference_timestamp"] = datetime.fromisoformat(
                    reference.replace("Z", "+00:00")
                )
            except ValueError as exc:
                raise ConfigurationError(
                    f"reference_timestamp is not an ISO date: {reference!r}"
                ) from exc
        if "vip_sales_threshold" in values:
            values["vip_sales_threshold"] = _to_decimal(values["vip_sales_threshold"])
        return cls(**values)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"Expected a numeric value, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"Expected a numeric value, got {value!r}") from exc
