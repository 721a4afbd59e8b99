"""
Exploration API routes, mounted as a sub-router on the main FastAPI app.

Column charts and profiles on demand, the conversation log, and the
text-generation service status.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.llm import TextGenClient
from core.storage import NoDataLoaded, get_session
from server.orchestrator import QueryOrchestrator, explore_column
from skills.chart_series import resolve_chart_column
from skills.profile import profile_column

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["explore"])


def require_session_id(request: Request) -> str:
    sid = request.headers.get("X-Session-Id")
    if not sid:
        raise HTTPException(status_code=400, detail="Missing X-Session-Id header.")
    return sid


@lru_cache(maxsize=1)
def get_orchestrator() -> QueryOrchestrator:
    return QueryOrchestrator(TextGenClient())


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/chart")
@router.get("/chart/{column}")
async def column_chart(
    request: Request,
    column: Optional[str] = None,
    chart_type: Literal["pie", "bar", "line"] = Query("pie"),
):
    """Chart series for any column; unknown names fall back to the first column."""
    sess = get_session(require_session_id(request))
    try:
        chart = explore_column(sess, column, chart_type)
    except NoDataLoaded as e:
        raise HTTPException(status_code=400, detail=str(e))
    return chart.to_wire()


@router.get("/profile/{column}")
async def column_profile(request: Request, column: str):
    """Frequency profile of a column."""
    sess = get_session(require_session_id(request))
    try:
        schema, records = sess.require_data()
    except NoDataLoaded as e:
        raise HTTPException(status_code=400, detail=str(e))
    col = resolve_chart_column(schema, column)
    return profile_column(records, col.name).to_wire()


@router.get("/conversation")
async def conversation(request: Request):
    """The session's append-only question/answer log."""
    sess = get_session(require_session_id(request))
    return {
        "messages": [m.to_wire() for m in sess.conversation],
        "in_flight": sess.in_flight,
    }


@router.get("/llm/status")
async def llm_status(orchestrator: QueryOrchestrator = Depends(get_orchestrator)):
    """Whether the text-generation service answers and has the configured model."""
    return await orchestrator.client.status()
