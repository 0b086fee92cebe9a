"""Shared utilities for pandas conversion operations."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import pandas as pd  # type: ignore


def decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    """Convert Decimal to float for pandas compatibility, keeping None."""
    if value is None:
        return None
    return float(value)


def frame_records(df: pd.DataFrame) -> list[dict]:
    """Return DataFrame rows as dicts with NaN/NaT replaced by None.

    Example:
        >>> df = pd.DataFrame({"a": [1.0, None]})
        >>> frame_records(df)
        [{'a': 1.0}, {'a': None}]
    """
    cleaned = df.astype(object).where(pd.notnull(df), None)
    return cleaned.to_dict("records")
