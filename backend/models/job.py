from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

from .enums import JobType, JobStatus


class Job(BaseModel):
    """Persisted record of one scraper or outreach run."""

    id: str
    job_type: JobType
    status: JobStatus = JobStatus.PENDING
    date: Optional[datetime] = None
    leads_processed: int = 0
    leads_sent: int = 0
    error_message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobResult(BaseModel):
    """Outcome handed back by a finished run."""
    job_id: Optional[str] = None
    status: JobStatus
    leads_processed: int = 0
    leads_sent: int = 0
    error_message: Optional[str] = None
