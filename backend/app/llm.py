import asyncio
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

import httpx

from core.models import CHART_KINDS, MAX_SERIES_POINTS
from .llm_loader import TextGenConfig, get_text_gen_config

logger = logging.getLogger("uvicorn.error")

STATUS_TIMEOUT = 5.0


class LLMError(RuntimeError):
    pass


class ExternalServiceUnavailable(LLMError):
    """Connection refused, timeout, HTTP error status or an error body."""


class MalformedExternalResponse(LLMError):
    """The reply held no parseable JSON object."""


def _short_error(exc: Exception) -> str:
    msg = str(exc)
    if not msg:
        return exc.__class__.__name__
    msg = msg.replace("\n", " ").strip()
    return msg[:200]


# ---------- wire format: {response} or NDJSON fragments ----------


def _fragment_text(obj: Any) -> str:
    if not isinstance(obj, dict):
        raise MalformedExternalResponse(f"unexpected fragment type {type(obj).__name__}")
    err = obj.get("error")
    if err:
        raise ExternalServiceUnavailable(f"text generation error: {err}")
    chunk = obj.get("response")
    return chunk if isinstance(chunk, str) else ""


def collect_response_text(body: str) -> str:
    """
    Reassemble the generated text from a response body.

    Accepts a single JSON object or newline-delimited JSON fragments, whose
    `response` chunks are joined in arrival order.
    """
    body = body or ""
    try:
        return _fragment_text(json.loads(body))
    except json.JSONDecodeError:
        pass
    parts: List[str] = []
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            raise MalformedExternalResponse(f"bad NDJSON fragment: {_short_error(exc)}") from exc
        parts.append(_fragment_text(obj))
    return "".join(parts)


class TextGenClient:
    """Async client for a local `/api/generate` endpoint."""

    def __init__(
        self,
        config: Optional[TextGenConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or get_text_gen_config()
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _read_stream(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> str:
        parts: List[str] = []
        async with client.stream("POST", url, json=payload) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if line.strip():
                    parts.append(collect_response_text(line))
        return "".join(parts)

    async def generate(self, prompt: str) -> str:
        payload = {"model": self.config.model, "prompt": prompt, "stream": self.config.stream}
        url = self.config.generate_url
        logger.info("Text generation request: model=%s stream=%s prompt=%r...", self.config.model, self.config.stream, prompt[:100])
        try:
            async with self._client(self.config.timeout) as client:
                if self.config.stream:
                    # httpx timeouts are per read; the whole stream shares one deadline
                    return await asyncio.wait_for(
                        self._read_stream(client, url, payload), self.config.timeout
                    )

                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                return collect_response_text(resp.text)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ExternalServiceUnavailable(
                f"The text generation service timed out after {self.config.timeout:g}s."
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceUnavailable(
                f"Text generation service error ({exc.response.status_code})."
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceUnavailable(
                f"Could not connect to the text generation service at {self.config.base_url}. "
                "Please ensure it is running."
            ) from exc

    async def status(self) -> Dict[str, Any]:
        """Reachability of the service and whether the configured model is pulled."""
        out: Dict[str, Any] = {
            "available": False,
            "base_url": self.config.base_url,
            "model": self.config.model,
            "model_available": False,
        }
        try:
            async with self._client(STATUS_TIMEOUT) as client:
                resp = await client.get(self.config.tags_url)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            out["detail"] = _short_error(exc)
            return out
        models = [m.get("name") for m in (data.get("models") or []) if isinstance(m, dict)]
        out["available"] = True
        out["model_available"] = self.config.model in models
        return out


# ---------- reply parsing ----------


def _strip_code_fences(text: str) -> str:
    return re.sub(
        r"^```(?:json)?\s*|\s*```$",
        "",
        text.strip(),
        flags=re.IGNORECASE | re.MULTILINE,
    )


def _first_balanced_object(text: str) -> str:
    """First balanced {...} block; braces inside JSON strings are ignored."""
    start = text.find("{")
    if start < 0:
        raise MalformedExternalResponse("no JSON object in reply")
    depth = 0
    in_str = False
    escaped = False
    for j in range(start, len(text)):
        ch = text[j]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : j + 1]
    teaser = text[start : start + 400].replace("\n", "\\n")
    raise MalformedExternalResponse(f"unterminated JSON (teaser): {teaser}")


_re_trailing_commas = re.compile(r",(\s*[}\]])")
_re_single_quoted   = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")
_re_bare_literals   = re.compile(r"\b(?:None|True|False)\b")


def _try_repair_json(s: str) -> Any:
    t = s
    # 1) remove trailing commas
    t = _re_trailing_commas.sub(r"\1", t)
    # 2) Python literals -> JSON
    t = _re_bare_literals.sub(lambda m: {"None": "null", "True": "true", "False": "false"}[m.group(0)], t)
    # 3) single-quoted strings -> double-quoted
    t = _re_single_quoted.sub(lambda m: '"' + m.group(1).replace('"', '\\"') + '"', t)
    return json.loads(t)


def load_reply_json(text: str) -> Dict[str, Any]:
    txt = _strip_code_fences(text or "")
    if not txt.strip():
        raise MalformedExternalResponse("empty reply")
    block = _first_balanced_object(txt)
    try:
        obj = json.loads(block)
    except json.JSONDecodeError:
        try:
            obj = _try_repair_json(block)
        except json.JSONDecodeError as e:
            teaser = block[:400].replace("\n", "\\n")
            raise MalformedExternalResponse(f"json_parse_failed after repair: {e}; teaser={teaser}") from e
    if not isinstance(obj, dict):
        raise MalformedExternalResponse(f"reply JSON is {type(obj).__name__}, not an object")
    return obj


_re_chart_kind = re.compile(r"\b(" + "|".join(CHART_KINDS) + r")\b", re.IGNORECASE)


def _chart_kind(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    m = _re_chart_kind.search(value)
    return m.group(1).lower() if m else None


def _chart_value(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(num):
        return None
    return int(num) if num.is_integer() else num


def _chart_points(value: Any) -> Optional[List[Dict[str, Any]]]:
    """Reply-supplied series; any unusable point discards the whole series."""
    if not isinstance(value, list) or not value:
        return None
    points = []
    for item in value[:MAX_SERIES_POINTS]:
        if not isinstance(item, dict) or "name" not in item:
            return None
        num = _chart_value(item.get("value"))
        if num is None:
            return None
        points.append({"name": str(item["name"]), "value": num})
    return points


def parse_analysis_reply(text: str) -> Dict[str, Any]:
    """
    Normalise a free-text reply into AnalysisResult fields.

    `visualization` and `chartType` are both accepted for the chart kind; an
    explicit `needsChart` is honoured, otherwise a chart kind implies one.
    Raises MalformedExternalResponse when no JSON object can be read.
    """
    obj = load_reply_json(text)

    answer = obj.get("answer")
    sql = obj.get("sqlQuery", obj.get("sql_query", obj.get("sql")))
    kind = _chart_kind(obj.get("visualization")) or _chart_kind(obj.get("chartType"))
    needs = obj.get("needsChart")
    column = obj.get("chartDataColumn")

    return {
        "answer": answer.strip() if isinstance(answer, str) else "",
        "sql_query": sql.strip() if isinstance(sql, str) else "",
        "chart_type": kind,
        "needs_chart": (needs is True) or kind is not None,
        "chart_data_column": column if isinstance(column, str) else "",
        "chart_data": _chart_points(obj.get("chartData")),
    }
