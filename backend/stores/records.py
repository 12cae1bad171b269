"""Operational log entries and conversation summaries."""
import json
import uuid
from typing import Any, Dict, List, Optional

from ..core.database import get_db_connection, utc_now, to_json, from_json
from ..core.errors import PersistenceError
from ..core.logger import logger
from ..models.enums import LogLevel
from ..models.records import LogEntry, Summary


class LogStore:
    """Persisted log entries. Writing one is best-effort."""

    def record(self, level: LogLevel, module: str, message: str,
               metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        entry_id = str(uuid.uuid4())
        try:
            with get_db_connection() as conn:
                conn.execute("""
                    INSERT INTO logs (id, level, module, message, metadata, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (entry_id, level.value, module, message, to_json(metadata), utc_now().isoformat()))
        except PersistenceError as e:
            logger.error(f"Failed to persist {module} log entry: {e}")
            return None
        return entry_id

    def recent(self, module: Optional[str] = None, limit: int = 50) -> List[LogEntry]:
        query = "SELECT * FROM logs"
        params: list = []
        if module:
            query += " WHERE module = ?"
            params.append(module)
        query += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)
        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        entries = []
        for row in rows:
            data = dict(row)
            data["metadata"] = from_json(data.get("metadata"), {})
            entries.append(LogEntry(**data))
        return entries


class SummaryStore:
    """One summary per lead, replaced on every new summarization."""

    def upsert(self, lead_id: str, conversation_summary: str, key_points: List[str]) -> Summary:
        now = utc_now().isoformat()
        with get_db_connection() as conn:
            conn.execute("""
                INSERT INTO summaries (lead_id, conversation_summary, key_points, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(lead_id) DO UPDATE SET
                    conversation_summary = excluded.conversation_summary,
                    key_points = excluded.key_points,
                    updated_at = excluded.updated_at
            """, (lead_id, conversation_summary, json.dumps(key_points), now, now))
        return self.get(lead_id)

    def get(self, lead_id: str) -> Optional[Summary]:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM summaries WHERE lead_id = ?", (lead_id,)).fetchone()
        if row is None:
            return None
        data = dict(row)
        data["key_points"] = from_json(data.get("key_points"), [])
        return Summary(**data)
