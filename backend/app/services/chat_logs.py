from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from app.services.db import get_conn

logger = logging.getLogger(__name__)


@dataclass
class ChatEvent:
    request_id: str
    event_type: str
    component: str
    message: str
    chat_id: Optional[str] = None
    user_id: Optional[str] = None
    duration_ms: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error_details: Optional[dict[str, Any]] = None
    severity: str = "info"


class ChatEventLog:
    """
    Request-scoped event sink backed by the chat_logs table.
    record() never raises: a failed write is logged and dropped.
    """

    def __init__(self, db_path: Optional[Path] = None, *, enabled: bool = True) -> None:
        self.db_path = db_path
        self.enabled = enabled

    def record(self, event: ChatEvent) -> None:
        if not self.enabled:
            return
        try:
            with get_conn(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO chat_logs (
                        request_id, chat_id, user_id, event_type, component,
                        message, duration_ms, metadata, error_details, severity
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.request_id,
                        event.chat_id,
                        event.user_id,
                        event.event_type,
                        event.component,
                        event.message,
                        event.duration_ms,
                        json.dumps(event.metadata, default=str),
                        json.dumps(event.error_details, default=str) if event.error_details else None,
                        event.severity,
                    ),
                )
        except Exception as e:
            logger.warning("chat_logs.record_failed event=%s err=%s", event.event_type, e)

    def events_for(self, request_id: str) -> list[dict[str, Any]]:
        with get_conn(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT event_type, component, message, duration_ms, metadata, severity
                FROM chat_logs
                WHERE request_id = ?
                ORDER BY id ASC
                """,
                (request_id,),
            ).fetchall()
        return [dict(r) for r in rows]
