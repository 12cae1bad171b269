from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from .enums import LogLevel


class LogEntry(BaseModel):
    """Operational log entry persisted alongside the process log."""
    id: str
    level: LogLevel = LogLevel.INFO
    module: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class Summary(BaseModel):
    """AI summary of the conversation with one lead."""
    lead_id: str
    conversation_summary: str
    key_points: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
