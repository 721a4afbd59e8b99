"""
Column profiling skill.

Per-value frequencies and numeric range for one column; the same statistics
feed the chart builder and the text-generation prompt.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import pandas as pd

from core.models import ColumnProfile, ColumnType, Schema
from core.utils import column_values, finite_numbers, is_missing, stringify_value

PROMPT_TOP_VALUES = 3


def ordered_counts(keys: Sequence[str]) -> pd.Series:
    """Occurrences per distinct key, in first-appearance order."""
    s = pd.Series(list(keys), dtype="object")
    if s.empty:
        return pd.Series(dtype="int64")
    return s.groupby(s, sort=False).size()


def profile_column(records: Sequence[Dict[str, Any]], column: str) -> ColumnProfile:
    """
    Frequency profile of *column*.

    Missing values (None, NaN, NaT, absent key) are skipped entirely. Values
    are bucketed by their canonical string form; min/max cover the finite
    numeric readings (numeric strings included, see finite_numbers).
    """
    present = [v for v in column_values(records, column) if not is_missing(v)]
    counts = ordered_counts([stringify_value(v) for v in present])

    nums = finite_numbers(present)

    return ColumnProfile(
        column=column,
        unique_count=int(len(counts)),
        total_count=len(present),
        value_counts={str(k): int(n) for k, n in counts.items()},
        min=float(nums.min()) if nums.size else None,
        max=float(nums.max()) if nums.size else None,
    )


def profile_summary(schema: Schema, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Compact per-column context for the prompt."""
    out: List[Dict[str, Any]] = []
    for col in schema.columns:
        prof = profile_column(records, col.name)
        info: Dict[str, Any] = {
            "name": col.name,
            "type": col.type.value,
            "uniqueCount": prof.unique_count,
            "totalCount": prof.total_count,
        }
        if col.type == ColumnType.number and prof.min is not None:
            info["min"] = prof.min
            info["max"] = prof.max
        else:
            top = sorted(prof.value_counts.items(), key=lambda kv: kv[1], reverse=True)
            info["topValues"] = [f"{k[:80]} ({n})" for k, n in top[:PROMPT_TOP_VALUES]]
        out.append(info)
    return out
