"""Append-only message log."""
import uuid
from typing import List, Optional

from ..core.database import get_db_connection, utc_now
from ..models.response import Response, ResponseCreate


class ResponseStore:
    """Responses are inserted and read, never updated or deleted."""

    def insert(self, record: ResponseCreate) -> Response:
        response_id = str(uuid.uuid4())
        created_at = utc_now()
        with get_db_connection() as conn:
            conn.execute("""
                INSERT INTO responses (
                    id, lead_id, channel, direction, content, status,
                    external_message_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                response_id,
                record.lead_id,
                record.channel.value,
                record.direction.value,
                record.content,
                record.status.value,
                record.external_message_id,
                created_at.isoformat(),
            ))
        return Response(id=response_id, created_at=created_at, **record.model_dump())

    def for_lead(self, lead_id: str, channel: Optional[str] = None,
                 limit: Optional[int] = None, newest_first: bool = False) -> List[Response]:
        query = "SELECT * FROM responses WHERE lead_id = ?"
        params: list = [lead_id]
        if channel:
            query += " AND channel = ?"
            params.append(channel)
        query += " ORDER BY created_at DESC, rowid DESC" if newest_first else " ORDER BY created_at ASC, rowid ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Response(**dict(row)) for row in rows]

    def history(self, lead_id: str, channel: Optional[str] = None, limit: int = 10) -> List[Response]:
        """Most recent `limit` messages, returned oldest first."""
        recent = self.for_lead(lead_id, channel=channel, limit=limit, newest_first=True)
        return list(reversed(recent))

    def exists_external(self, external_message_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM responses WHERE external_message_id = ? LIMIT 1",
                (external_message_id,),
            ).fetchone()
        return row is not None

    def count(self, direction: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) AS total FROM responses"
        params: list = []
        if direction:
            query += " WHERE direction = ?"
            params.append(direction)
        with get_db_connection() as conn:
            return conn.execute(query, params).fetchone()["total"]
