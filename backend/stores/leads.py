"""Lead persistence."""
import re
import sqlite3
import uuid
from typing import Dict, List, Optional, Any

from ..core.database import get_db_connection, utc_now
from ..core.errors import ConflictError, ValidationError
from ..models.lead import Lead, LeadCreate
from ..models.enums import LeadStatus


UPDATABLE_FIELDS = {"name", "email", "phone", "status", "source_url", "last_contacted", "notes"}


def _duplicate_field(error: sqlite3.IntegrityError) -> str:
    match = re.search(r"leads\.(\w+)", str(error))
    return match.group(1) if match else "contact"


def _integrity_error(error: sqlite3.IntegrityError, prefix: str):
    """UNIQUE failures are conflicts; any other constraint means bad input."""
    field = _duplicate_field(error)
    if "UNIQUE" in str(error):
        return ConflictError(f"{prefix} with this {field} already exists.", {"duplicateField": field})
    return ValidationError("Validation failed", [{"field": field, "message": f"{field} is required."}])


def _to_lead(row) -> Lead:
    return Lead(**dict(row))


def _db_value(value):
    if isinstance(value, LeadStatus):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class LeadStore:
    """Lead collection backed by the `leads` table."""

    def create(self, data: LeadCreate, date_scraped=None) -> Lead:
        now = utc_now().isoformat()
        lead_id = str(uuid.uuid4())
        try:
            with get_db_connection() as conn:
                conn.execute("""
                    INSERT INTO leads (
                        id, name, email, phone, status, source_url,
                        date_scraped, notes, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    lead_id,
                    data.name,
                    data.email,
                    data.phone,
                    data.status.value,
                    data.source_url,
                    _db_value(date_scraped) or now,
                    data.notes,
                    now,
                    now,
                ))
        except sqlite3.IntegrityError as e:
            raise _integrity_error(e, "Lead") from e
        return self.get(lead_id)

    def get(self, lead_id: str) -> Optional[Lead]:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM leads WHERE id = ?", (lead_id,)).fetchone()
        return _to_lead(row) if row else None

    def find(self, filter: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Lead]:
        """Find leads in insertion order.

        Supported filter keys: status, email, phone, has_contact.
        """
        filter = filter or {}
        query = "SELECT * FROM leads WHERE 1=1"
        params: List[Any] = []

        if "status" in filter:
            query += " AND status = ?"
            params.append(_db_value(filter["status"]))
        if "email" in filter:
            query += " AND email = ?"
            params.append(filter["email"])
        if "phone" in filter:
            query += " AND phone = ?"
            params.append(filter["phone"])
        if filter.get("has_contact"):
            query += " AND ((email IS NOT NULL AND email != '') OR (phone IS NOT NULL AND phone != ''))"

        query += " ORDER BY created_at ASC, rowid ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_to_lead(row) for row in rows]

    def find_by_email(self, email: str) -> Optional[Lead]:
        leads = self.find({"email": email.strip().lower()}, limit=1)
        return leads[0] if leads else None

    def find_by_phone(self, phone: str) -> Optional[Lead]:
        """Match on digits only, so '15551230001' finds '+15551230001'."""
        digits = re.sub(r"\D", "", phone)
        if not digits:
            return None
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM leads WHERE REPLACE(phone, '+', '') = ? LIMIT 1",
                (digits,),
            ).fetchone()
        return _to_lead(row) if row else None

    def list(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Lead]:
        query = "SELECT * FROM leads"
        params: List[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_to_lead(row) for row in rows]

    def update_one(self, lead_id: str, patch: Dict[str, Any]) -> Optional[Lead]:
        """Apply a partial update. Returns the updated lead, or None if it does not exist."""
        fields = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}
        if not fields:
            return self.get(lead_id)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_db_value(v) for v in fields.values()]
        params.extend([utc_now().isoformat(), lead_id])

        try:
            with get_db_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE leads SET {assignments}, updated_at = ? WHERE id = ?",
                    params,
                )
                updated = cursor.rowcount
                if updated and ("email" in fields or "phone" in fields):
                    row = conn.execute("SELECT email, phone FROM leads WHERE id = ?", (lead_id,)).fetchone()
                    if not row["email"] and not row["phone"]:
                        # Raising inside the block rolls the update back
                        raise ValidationError("Validation failed", [{
                            "field": "contact",
                            "message": "Either email or phone must be provided.",
                        }])
        except sqlite3.IntegrityError as e:
            raise _integrity_error(e, "Another lead") from e

        if updated == 0:
            return None
        return self.get(lead_id)

    def delete(self, lead_id: str) -> bool:
        with get_db_connection() as conn:
            cursor = conn.execute("DELETE FROM leads WHERE id = ?", (lead_id,))
            return cursor.rowcount > 0

    def exists(self, email: Optional[str] = None, phone: Optional[str] = None) -> bool:
        """True if a lead already holds the given email or phone."""
        with get_db_connection() as conn:
            if email and conn.execute("SELECT 1 FROM leads WHERE email = ?", (email,)).fetchone():
                return True
            if phone and conn.execute("SELECT 1 FROM leads WHERE phone = ?", (phone,)).fetchone():
                return True
        return False

    def count_by_status(self) -> Dict[str, int]:
        with get_db_connection() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS count FROM leads GROUP BY status").fetchall()
        return {row["status"]: row["count"] for row in rows}
