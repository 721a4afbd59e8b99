"""
In-memory session storage.

A Session owns the uploaded dataset together with its schema (replaced as a
pair on each upload) and the append-only conversation log.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .models import ChatMessage, Schema


class NoDataLoaded(RuntimeError):
    """Raised when a question or chart is requested before any upload."""


class Session:
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.schema: Optional[Schema] = None
        self.records: List[Dict[str, Any]] = []
        self.meta: Dict[str, Any] = {}
        self._conversation: List[ChatMessage] = []
        self._lock: Optional[asyncio.Lock] = None
        self.in_flight = False

    # -- dataset -----------------------------------------------------------

    def load(self, schema: Schema, records: List[Dict[str, Any]], meta: Optional[dict] = None) -> None:
        """Replace schema and dataset wholesale."""
        self.schema = schema
        self.records = list(records)
        self.meta = dict(meta or {})
        self.meta.setdefault("created_at", datetime.utcnow().isoformat() + "Z")

    @property
    def has_data(self) -> bool:
        return self.schema is not None and bool(self.schema.columns) and bool(self.records)

    def require_data(self) -> Tuple[Schema, List[Dict[str, Any]]]:
        if not self.has_data:
            raise NoDataLoaded("Please upload data first")
        return self.schema, self.records

    # -- conversation ------------------------------------------------------

    @property
    def conversation(self) -> List[ChatMessage]:
        return list(self._conversation)

    def append_turn(self, question: str, answer: str) -> None:
        """Record one question/answer pair; the log is never edited in place."""
        self._conversation.extend([
            ChatMessage(role="user", content=question),
            ChatMessage(role="assistant", content=answer),
        ])

    # -- single-flight -----------------------------------------------------

    @property
    def lock(self) -> asyncio.Lock:
        # created lazily so it binds to the running event loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock


SESSIONS: Dict[str, Session] = {}


def get_session(session_id: str) -> Session:
    if session_id not in SESSIONS:
        SESSIONS[session_id] = Session(session_id)
    return SESSIONS[session_id]
