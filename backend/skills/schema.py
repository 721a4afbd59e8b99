"""
Schema inference skill.

Column types are read off the first record only; later rows are interpreted
under that type and never promote it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from core.models import Column, ColumnType, Schema
from core.utils import is_bool_value, is_datetime_value, is_number_value


def detect_column_type(value: Any) -> ColumnType:
    """number > datetime > boolean > string, by runtime type."""
    if is_number_value(value):
        return ColumnType.number
    if is_datetime_value(value):
        return ColumnType.datetime
    if is_bool_value(value):
        return ColumnType.boolean
    return ColumnType.string


def infer_columns(first_record: Optional[Dict[str, Any]]) -> List[Column]:
    if not first_record:
        return []
    return [Column(name=str(key), type=detect_column_type(value)) for key, value in first_record.items()]


def build_schema(records: Sequence[Dict[str, Any]], table_name: str) -> Schema:
    """Schema for a dataset; an empty dataset yields no columns."""
    first = records[0] if records else None
    return Schema(table_name=table_name, columns=infer_columns(first))


def table_name_from_filename(filename: Optional[str]) -> str:
    """File name up to the first dot ("sales.2024.xlsx" -> "sales")."""
    if not filename:
        return "table"
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    return base.split(".", 1)[0] or "table"
