from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

from .enums import MessageChannel, Direction, ResponseStatus


class Response(BaseModel):
    """One message exchanged with a lead. Log entry, never updated."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    lead_id: str
    channel: MessageChannel
    direction: Direction
    content: str
    status: ResponseStatus
    external_message_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ResponseCreate(BaseModel):
    """Schema for appending a message to the log."""
    lead_id: str
    channel: MessageChannel
    direction: Direction
    content: str
    status: ResponseStatus
    external_message_id: Optional[str] = None
