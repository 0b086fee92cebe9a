"""Exception and warning types raised by the analytics engine."""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for errors that abort an analytics run."""


class MalformedRecordError(AnalyticsError, ValueError):
    """A source record violates a structural invariant.

    Attributes
    ----------
    record_type:
        Kind of record ("customer", "product" or "sales_fact").
    record_index:
        Position of the offending record in its input collection, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        record_type: str | None = None,
        record_index: int | None = None,
    ) -> None:
        if record_index is not None:
            message = f"{message} ({record_type} record at index {record_index})"
        super().__init__(message)
        self.record_type = record_type
        self.record_index = record_index


class ConfigurationError(AnalyticsError, ValueError):
    """A configuration value is out of range."""


class ReferentialGapWarning(UserWarning):
    """Sales facts reference customers or products missing from a dimension."""
