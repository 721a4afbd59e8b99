"""
Core Pydantic models for the spreadsheet Q&A engine.

All domain types live here so every module shares the same vocabulary.
Attribute names are snake_case; the JSON wire format uses the camelCase
aliases the frontend expects.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_SERIES_POINTS = 10

ChartKind = Literal["pie", "bar", "line"]
CHART_KINDS = ("pie", "bar", "line")


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class ColumnType(str, Enum):
    number = "number"
    datetime = "datetime"
    boolean = "boolean"
    string = "string"


class Column(WireModel):
    name: str
    type: ColumnType


class Schema(WireModel):
    table_name: str = Field(alias="tableName")
    columns: List[Column] = Field(default_factory=list)

    @field_validator("columns")
    @classmethod
    def validate_unique_names(cls, v: List[Column]) -> List[Column]:
        """Column names must be unique within a table."""
        seen = set()
        for col in v:
            if col.name in seen:
                raise ValueError(f"duplicate column name '{col.name}'")
            seen.add(col.name)
        return v

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def get(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


# ---------------------------------------------------------------------------
# Profile & chart series
# ---------------------------------------------------------------------------

class ColumnProfile(WireModel):
    column: str
    unique_count: int = Field(0, alias="uniqueCount")
    total_count: int = Field(0, alias="totalCount")
    value_counts: Dict[str, int] = Field(default_factory=dict, alias="valueCounts")
    min: Optional[float] = None
    max: Optional[float] = None


class ChartPoint(WireModel):
    name: str
    value: Union[int, float]


# ---------------------------------------------------------------------------
# Analysis result & conversation
# ---------------------------------------------------------------------------

class AnalysisResult(WireModel):
    answer: str = ""
    sql_query: str = Field("", alias="sqlQuery")
    needs_chart: bool = Field(False, alias="needsChart")
    chart_type: Optional[ChartKind] = Field(None, alias="chartType")
    chart_data_column: str = Field("", alias="chartDataColumn")
    chart_data: Optional[List[ChartPoint]] = Field(None, alias="chartData")
    formatted_sql: str = Field("", alias="formattedSql")
    execution_time: Optional[int] = Field(None, alias="executionTime")

    @field_validator("chart_data")
    @classmethod
    def validate_series_length(cls, v: Optional[List[ChartPoint]]) -> Optional[List[ChartPoint]]:
        """A chart series never carries more than MAX_SERIES_POINTS points."""
        if v is not None and len(v) > MAX_SERIES_POINTS:
            return v[:MAX_SERIES_POINTS]
        return v


class ChatMessage(WireModel):
    role: Literal["user", "assistant"]
    content: str


class ChartResponse(WireModel):
    column: str
    column_type: ColumnType = Field(alias="columnType")
    chart_type: ChartKind = Field("pie", alias="chartType")
    chart_data: List[ChartPoint] = Field(default_factory=list, alias="chartData")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class QuestionRequest(BaseModel):
    question: str

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("question must not be empty")
        return v
