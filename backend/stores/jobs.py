"""Job records: one per scraper or outreach run."""
import uuid
from typing import Any, Dict, List, Optional

from ..core.database import get_db_connection, utc_now, to_json, from_json
from ..models.enums import JobStatus, JobType
from ..models.job import Job


TERMINAL_STATUSES = tuple(s.value for s in JobStatus if s.is_terminal)


def _to_job(row) -> Job:
    data = dict(row)
    data["details"] = from_json(data.get("details"), {})
    return Job(**data)


class JobStore:

    def insert(self, job_type: JobType, status: JobStatus = JobStatus.PENDING,
               details: Optional[Dict[str, Any]] = None) -> str:
        job_id = str(uuid.uuid4())
        now = utc_now().isoformat()
        with get_db_connection() as conn:
            conn.execute("""
                INSERT INTO jobs (id, job_type, status, date, details, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (job_id, job_type.value, status.value, now, to_json(details), now, now))
        return job_id

    def get(self, job_id: str) -> Optional[Job]:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return _to_job(row) if row else None

    def update_by_id(self, job_id: str, patch: Dict[str, Any]) -> bool:
        """Patch a job that has not finished yet.

        Returns False when the job is missing or already terminal, which is how
        the single terminal transition is enforced.
        """
        columns = {}
        for key in ("status", "leads_processed", "leads_sent", "error_message"):
            if key in patch:
                value = patch[key]
                columns[key] = value.value if isinstance(value, JobStatus) else value

        details_patch = patch.get("details")

        with get_db_connection() as conn:
            row = conn.execute("SELECT status, details FROM jobs WHERE id = ?", (job_id,)).fetchone()
            if row is None or row["status"] in TERMINAL_STATUSES:
                return False

            if details_patch:
                merged = from_json(row["details"], {})
                merged.update(details_patch)
                columns["details"] = to_json(merged)

            assignments = ", ".join(f"{name} = ?" for name in columns)
            params = list(columns.values()) + [utc_now().isoformat(), job_id]
            prefix = f"{assignments}, " if assignments else ""
            cursor = conn.execute(
                f"UPDATE jobs SET {prefix}updated_at = ? WHERE id = ? "
                f"AND status NOT IN ({','.join('?' * len(TERMINAL_STATUSES))})",
                params + list(TERMINAL_STATUSES),
            )
            return cursor.rowcount > 0

    def finish(self, job_id: str, status: JobStatus, leads_processed: int = 0,
               leads_sent: int = 0, error_message: Optional[str] = None,
               details: Optional[Dict[str, Any]] = None) -> bool:
        """Move a job to its terminal status."""
        patch: Dict[str, Any] = {
            "status": status,
            "leads_processed": leads_processed,
            "leads_sent": leads_sent,
            "error_message": error_message,
        }
        if details:
            patch["details"] = details
        return self.update_by_id(job_id, patch)

    def latest(self, job_type: JobType) -> Optional[Job]:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE job_type = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (job_type.value,),
            ).fetchone()
        return _to_job(row) if row else None

    def recent(self, job_type: JobType, limit: int = 20) -> List[Job]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE job_type = ? ORDER BY date DESC, rowid DESC LIMIT ?",
                (job_type.value, limit),
            ).fetchall()
        return [_to_job(row) for row in rows]
