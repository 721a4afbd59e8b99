"""
Query orchestrator: answers one question against the session dataset.

Per question: greeting short-circuit, or context construction → external
text generation → reply parsing → chart backfill. Every failure of the
external service degrades to a renderable AnalysisResult, and each question
adds exactly one user/assistant turn to the session log.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from app.llm import (
    ExternalServiceUnavailable,
    MalformedExternalResponse,
    TextGenClient,
    _short_error,
    parse_analysis_reply,
)
from app.prompts import (
    GREETING_REPLY,
    PARSE_FALLBACK_REPLY,
    SAMPLE_ROWS,
    SERVICE_FALLBACK_REPLY,
    build_prompt,
)
from core.models import AnalysisResult, ChartPoint, ChartResponse, Schema
from core.storage import Session
from core.utils import format_sql
from skills.chart_series import build_series, resolve_chart_column
from skills.profile import profile_summary

logger = logging.getLogger("uvicorn.error")

GREETINGS = frozenset({"hi", "hello", "hey", "greetings"})

# chart kind used when the reply asks for a chart without naming one
DEFAULT_CHART_TYPE = "bar"


def is_greeting(question: str) -> bool:
    return (question or "").strip().casefold() in GREETINGS


def build_context(schema: Schema, records: Sequence[Dict[str, Any]], question: str) -> str:
    """Prompt with the full schema, the first rows only, column stats and the question."""
    sample = [dict(row) for row in records[:SAMPLE_ROWS]]
    return build_prompt(schema.to_wire(), sample, profile_summary(schema, records), question)


def interpret_reply(text: str) -> AnalysisResult:
    """Parse the generated text; anything unreadable becomes the apology result."""
    try:
        fields = parse_analysis_reply(text)
    except MalformedExternalResponse as exc:
        logger.warning("Unparseable text generation reply: %s", _short_error(exc))
        return AnalysisResult(answer=PARSE_FALLBACK_REPLY)

    chart_data = fields.pop("chart_data")
    result = AnalysisResult(**fields)
    if chart_data:
        result.chart_data = [ChartPoint(**p) for p in chart_data]
    if not result.answer:
        result.answer = PARSE_FALLBACK_REPLY
    return result


def backfill_chart(result: AnalysisResult, schema: Schema, records: Sequence[Dict[str, Any]]) -> AnalysisResult:
    """Compute the chart series locally when the reply wants a chart but sent no data."""
    if not result.needs_chart:
        return result
    if result.chart_type is None:
        result.chart_type = DEFAULT_CHART_TYPE
    if result.chart_data:
        return result

    column = resolve_chart_column(schema, result.chart_data_column)
    if column is None:
        result.chart_data = []
        return result
    result.chart_data_column = column.name
    result.chart_data = build_series(records, column.name, column.type)
    return result


class QueryOrchestrator:
    def __init__(self, client: Optional[TextGenClient] = None) -> None:
        self.client = client or TextGenClient()

    async def ask(self, session: Session, question: str) -> AnalysisResult:
        """
        Answer *question* for *session*.

        Submissions are single-flight per session: a second question waits
        on the session lock and runs after the first resolves, so turns land
        in submission order. Raises NoDataLoaded if nothing is uploaded.
        """
        async with session.lock:
            schema, records = session.require_data()
            session.in_flight = True
            t0 = time.perf_counter()
            try:
                result = await self._resolve(schema, records, question)
            finally:
                session.in_flight = False
            result.execution_time = int((time.perf_counter() - t0) * 1000)
            session.append_turn(question, result.answer)
            return result

    async def _resolve(self, schema: Schema, records: List[Dict[str, Any]], question: str) -> AnalysisResult:
        if is_greeting(question):
            logger.info("Greeting short-circuit: %r", question.strip())
            return AnalysisResult(answer=GREETING_REPLY)

        prompt = build_context(schema, records, question)
        logger.info("Dispatching question over %d rows, %d columns", len(records), len(schema.columns))

        try:
            text = await self.client.generate(prompt)
        except ExternalServiceUnavailable as exc:
            logger.warning("Text generation unavailable: %s", _short_error(exc))
            return AnalysisResult(answer=SERVICE_FALLBACK_REPLY.format(reason=str(exc)))
        except MalformedExternalResponse as exc:
            logger.warning("Malformed text generation response: %s", _short_error(exc))
            return AnalysisResult(answer=PARSE_FALLBACK_REPLY)

        logger.debug("Text generation raw reply teaser: %r", text[:200])
        result = backfill_chart(interpret_reply(text), schema, records)
        result.formatted_sql = format_sql(result.sql_query)
        return result


def explore_column(session: Session, column: Optional[str], chart_type: str = "pie") -> ChartResponse:
    """On-demand series for any column, independent of the last answer."""
    schema, records = session.require_data()
    col = resolve_chart_column(schema, column)
    return ChartResponse(
        column=col.name,
        column_type=col.type,
        chart_type=chart_type,
        chart_data=build_series(records, col.name, col.type),
    )
