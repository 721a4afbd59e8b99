"""
Chart series skill.

Turns one column of raw records into at most ten (label, value) points:
equal-width bins for numeric columns, ranked category counts otherwise.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from core.models import MAX_SERIES_POINTS, ChartPoint, Column, ColumnType, Schema
from core.utils import (
    MISSING_LABEL,
    column_values,
    finite_numbers,
    is_missing,
    resolve_col,
    stringify_value,
)
from skills.profile import ordered_counts

logger = logging.getLogger("uvicorn.error")


def _bin_label(low: float, high: float) -> str:
    return f"{low:.2f} - {high:.2f}"


def _category_label(value: Any) -> str:
    text = stringify_value(value)
    return text if text.strip() else MISSING_LABEL


def numeric_series(values: Sequence[Any]) -> List[ChartPoint]:
    """Equal-width histogram; bin count is capped by the number of distinct values."""
    nums = finite_numbers(values)
    if nums.size == 0:
        return []

    unique_count = len({stringify_value(float(v)) for v in nums})
    bin_count = min(MAX_SERIES_POINTS, unique_count)
    if bin_count == 0:
        return []

    lo = float(nums.min())
    hi = float(nums.max())
    span = hi - lo
    if span == 0:
        return [ChartPoint(name=_bin_label(lo, hi), value=int(nums.size))]

    bin_size = span / bin_count
    idx = np.floor((nums - lo) / bin_size).astype(int)
    # the maximum lands on index == bin_count
    idx = np.clip(idx, 0, bin_count - 1)
    counts = np.bincount(idx, minlength=bin_count)

    return [
        ChartPoint(
            name=_bin_label(lo + i * bin_size, lo + (i + 1) * bin_size),
            value=int(n),
        )
        for i, n in enumerate(counts)
    ]


def categorical_series(values: Sequence[Any]) -> List[ChartPoint]:
    """Top categories by count; ties keep first-appearance order."""
    labels = [_category_label(v) for v in values if not is_missing(v)]
    counts = ordered_counts(labels)
    if counts.empty:
        return []
    ranked = counts.sort_values(ascending=False, kind="stable").head(MAX_SERIES_POINTS)
    return [ChartPoint(name=str(k), value=int(n)) for k, n in ranked.items()]


def build_series(
    records: Sequence[Dict[str, Any]],
    column: str,
    column_type: ColumnType | str,
) -> List[ChartPoint]:
    """
    Chart series for *column*.

    Deterministic and total: an empty dataset or a column with no usable
    values gives an empty series.
    """
    if not records or not column:
        return []
    values = column_values(records, column)
    if column_type == ColumnType.number:
        return numeric_series(values)
    return categorical_series(values)


def resolve_chart_column(schema: Schema, requested: Optional[str]) -> Optional[Column]:
    """Column named by *requested*, or the first schema column when it names nothing."""
    if not schema.columns:
        return None
    name = resolve_col(requested, schema.column_names())
    if name is None:
        if requested:
            logger.warning("Unknown chart column %r; using %r", requested, schema.columns[0].name)
        return schema.columns[0]
    return schema.get(name)
