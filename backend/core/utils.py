"""
Shared utility helpers.

Pure functions with no network or I/O.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

MISSING_LABEL = "Unknown"
PAGE_SIZE = 10


# ---------------------------------------------------------------------------
# Value classification
# ---------------------------------------------------------------------------

def is_missing(value: Any) -> bool:
    """True for None, NaN and NaT scalars."""
    if value is None:
        return True
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def is_bool_value(value: Any) -> bool:
    return isinstance(value, (bool, np.bool_))


def is_number_value(value: Any) -> bool:
    """Runtime numeric check; booleans are not numbers here."""
    if is_bool_value(value):
        return False
    return isinstance(value, (int, float, np.integer, np.floating))


def is_datetime_value(value: Any) -> bool:
    return isinstance(value, (datetime, date, np.datetime64))


def stringify_value(value: Any) -> str:
    """
    Canonical string form used for counting.

    Integral floats render without a fractional part so that 1, 1.0 and "1"
    land in the same bucket.
    """
    if is_bool_value(value):
        return "true" if value else "false"
    if isinstance(value, (float, np.floating)):
        f = float(value)
        if math.isfinite(f) and f.is_integer():
            return str(int(f))
        return repr(f)
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if isinstance(value, np.datetime64):
        return pd.Timestamp(value).isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# Smart numeric parsing (currency, SI suffixes, percentages)
# ---------------------------------------------------------------------------

_SUFFIX_MAP = {
    "k": 1_000.0,
    "m": 1_000_000.0,
    "mm": 1_000_000.0,
    "b": 1_000_000_000.0,
    "bn": 1_000_000_000.0,
}


def smart_numeric_value(val) -> float:
    """Parse a value that might be a number, currency, SI-suffixed or percentage string."""
    if is_missing(val) or is_bool_value(val):
        return np.nan
    if is_number_value(val):
        return float(val)
    if not isinstance(val, str):
        return np.nan
    text = val.strip()
    if not text:
        return np.nan
    text = text.replace(",", "").replace("$", "").replace("€", "")
    if text.endswith("%"):
        try:
            return float(text[:-1].strip()) / 100.0
        except ValueError:
            return np.nan
    lower = text.lower()
    for suffix in sorted(_SUFFIX_MAP.keys(), key=len, reverse=True):
        if lower.endswith(suffix):
            try:
                return float(text[: -len(suffix)]) * _SUFFIX_MAP[suffix]
            except ValueError:
                return np.nan
    try:
        return float(text)
    except ValueError:
        return np.nan


def finite_numbers(values: Sequence[Any]) -> np.ndarray:
    """
    Finite numeric readings of *values*, in order.

    Numbers pass through; strings go through smart_numeric_value. Booleans,
    missing values, unparseable strings and +/-inf are dropped. Profiling
    and chart binning both read numbers through here.
    """
    nums = np.array([smart_numeric_value(v) for v in values], dtype=float)
    return nums[np.isfinite(nums)]


# ---------------------------------------------------------------------------
# DataFrame / record conversion
# ---------------------------------------------------------------------------

def df_json_safe(df: pd.DataFrame) -> pd.DataFrame:
    """Replace +/-inf -> NaN, then NaN -> None so records stay JSON friendly."""
    if df.empty:
        return df
    tmp = df.replace([np.inf, -np.inf], np.nan)
    tmp = tmp.astype(object)
    return tmp.where(pd.notna(tmp), None)


def df_to_records_safe(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Row dicts keyed by string column names (sheets may have numeric headers)."""
    df = df.copy()
    df.columns = df.columns.map(str)
    return df_json_safe(df).to_dict(orient="records")


def column_values(records: Sequence[Dict[str, Any]], column: str) -> List[Any]:
    """Values of one column in record order; absent keys read as None."""
    return [row.get(column) for row in records]


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

def resolve_col(name: Optional[str], columns: Sequence[str]) -> Optional[str]:
    """Resolve a column name case-insensitively; tolerate spacing/underscore diffs."""
    if not name:
        return None
    if name in columns:
        return name
    lower_map = {c.lower(): c for c in columns}
    key = name.strip().lower()
    if key in lower_map:
        return lower_map[key]

    def norm(s: str) -> str:
        return re.sub(r"[\s_\-]+", "", s.lower())

    target = norm(name)
    for c in columns:
        if norm(c) == target:
            return c
    return None


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def paginate(records: Sequence[Dict[str, Any]], page: int, page_size: int = PAGE_SIZE) -> Dict[str, Any]:
    """1-based page slice; out-of-range pages are clamped."""
    total = len(records)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(1, page), total_pages)
    start = (page - 1) * page_size
    return {
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "total_rows": total,
        "rows": list(records[start : start + page_size]),
    }


# ---------------------------------------------------------------------------
# SQL display formatting
# ---------------------------------------------------------------------------

_SQL_KEYWORDS = [
    "SELECT", "FROM", "WHERE", "GROUP BY", "ORDER BY", "HAVING",
    "LEFT JOIN", "RIGHT JOIN", "INNER JOIN", "JOIN",
    "LIMIT", "OFFSET", "AND", "OR", "NOT IN", "IN",
    "NOT EXISTS", "EXISTS", "UNION", "INTERSECT", "EXCEPT",
    "COUNT", "SUM", "AVG", "MIN", "MAX", "DISTINCT",
]

_SQL_BREAKS = [
    (re.compile(r"\s*\b(FROM)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(WHERE)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(GROUP BY)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(ORDER BY)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(HAVING)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(LIMIT)\b"), "\n  \\1"),
    (re.compile(r"\s*\b((?:LEFT |RIGHT |INNER )?JOIN)\b"), "\n  \\1"),
    (re.compile(r"\s*\b(AND)\b"), "\n    \\1"),
    (re.compile(r"\s*\b(OR)\b"), "\n    \\1"),
]


def format_sql(query: str) -> str:
    """Upper-case SQL keywords and break clauses onto indented lines."""
    text = (query or "").strip()
    if not text:
        return ""
    for kw in _SQL_KEYWORDS:
        pattern = r"\b" + kw.replace(" ", r"\s+") + r"\b"
        text = re.sub(pattern, kw, text, flags=re.IGNORECASE)
    for pattern, repl in _SQL_BREAKS:
        text = pattern.sub(repl, text)
    return text.strip()
