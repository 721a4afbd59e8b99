from fastapi import Depends, FastAPI, UploadFile, File, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from core.models import QuestionRequest
from core.storage import get_session
from core.utils import df_to_records_safe, paginate
from server.api import get_orchestrator, require_session_id, router as explore_router
from server.orchestrator import QueryOrchestrator, explore_column
from skills.schema import build_schema, table_name_from_filename
import pandas as pd
import io
from dotenv import load_dotenv
import logging
import hashlib
import json
import time
from datetime import datetime

logger = logging.getLogger("uvicorn.error")
load_dotenv()
app = FastAPI(title="Spreadsheet Q&A", description="Ask questions about a spreadsheet, get answers and charts")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount the exploration API router
app.include_router(explore_router)

EXCEL_EXTS = {"xlsx", "xlsm", "xls"}


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _log_response(ctx: str, payload) -> None:
    """Pretty-print JSON-able payloads; fall back to str()."""
    try:
        logger.info("%s response: %s", ctx, json.dumps(payload, indent=2, default=str))
    except Exception:
        logger.info("%s response (non-serializable): %s", ctx, str(payload))


def _read_upload(content: bytes, ext: str) -> pd.DataFrame:
    """First sheet of a workbook, or a CSV (pyarrow engine when available)."""
    if ext in EXCEL_EXTS:
        return pd.read_excel(io.BytesIO(content), sheet_name=0)
    try:
        return pd.read_csv(io.BytesIO(content), engine="pyarrow")
    except Exception:
        return pd.read_csv(io.BytesIO(content))


@app.post("/upload")
async def upload(request: Request, file: UploadFile = File(...)):
    sid = require_session_id(request)
    content = await file.read()

    filename = file.filename or "table.csv"
    ext = (filename.rsplit(".", 1)[1].lower() if "." in filename else "").strip()

    try:
        df = _read_upload(content, ext)
    except Exception as e:
        logger.exception("Failed to read upload")
        raise HTTPException(status_code=400, detail=f"Failed to read file: {e}")

    records = df_to_records_safe(df)
    if not records:
        raise HTTPException(status_code=400, detail="The uploaded sheet has no rows.")

    schema = build_schema(records, table_name_from_filename(filename))

    # --- replace the session dataset wholesale ---
    sess = get_session(sid)
    sess.load(
        schema,
        records,
        meta={
            "file_name": filename,
            "file_ext": ext,
            "file_size": len(content),
            "file_hash": _sha256_bytes(content),
            "created_at": datetime.utcnow().isoformat() + "Z",
            "n_rows": len(records),
            "n_cols": len(schema.columns),
        },
    )

    resp = {
        "ok": True,
        "table": schema.table_name,
        "rows": len(records),
        "schema": schema.to_wire(),
        "meta": sess.meta,
        # first column is pre-selected for exploration
        "chart": explore_column(sess, None).to_wire(),
    }
    _log_response("UPLOAD", resp)
    return resp


@app.get("/schema")
async def schema(request: Request):
    sess = get_session(require_session_id(request))
    if sess.schema is None:
        raise HTTPException(status_code=400, detail="Please upload data first")
    return sess.schema.to_wire()


@app.get("/table/preview")
async def table_preview(request: Request, page: int = Query(1, ge=1)):
    """One page (10 rows) of the current dataset."""
    sess = get_session(require_session_id(request))
    if sess.schema is None:
        raise HTTPException(status_code=400, detail="Please upload data first")

    resp = {"table": sess.schema.table_name, "columns": sess.schema.column_names(), **paginate(sess.records, page)}
    _log_response("PREVIEW", resp)
    return resp


@app.post("/nlq", response_model=None)
async def nlq(
    request: Request,
    body: QuestionRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    sid = require_session_id(request)
    sess = get_session(sid)
    if not sess.has_data:
        raise HTTPException(status_code=400, detail="Please upload data first")

    t0 = time.perf_counter()
    result = await orchestrator.ask(sess, body.question)
    dt_ms = int((time.perf_counter() - t0) * 1000)

    meta = {
        "question": body.question,
        "chart_column": result.chart_data_column,
        "duration_ms": dt_ms,
    }
    logger.info("NLQ meta: %s", json.dumps(meta, indent=2))

    payload = result.to_wire()
    _log_response("NLQ", payload)
    return payload
