from .lead import Lead, LeadCreate, LeadUpdate
from .response import Response, ResponseCreate
from .job import Job, JobResult
from .records import LogEntry, Summary
from .channel import ContactTarget, EmailTarget, WhatsAppTarget, resolve_target, target_for_channel
from .enums import (
    LeadStatus,
    MessageChannel,
    Direction,
    ResponseStatus,
    JobType,
    JobStatus,
    LogLevel,
    SchedulerState,
)

__all__ = [
    "Lead",
    "LeadCreate",
    "LeadUpdate",
    "Response",
    "ResponseCreate",
    "Job",
    "JobResult",
    "LogEntry",
    "Summary",
    "ContactTarget",
    "EmailTarget",
    "WhatsAppTarget",
    "resolve_target",
    "target_for_channel",
    "LeadStatus",
    "MessageChannel",
    "Direction",
    "ResponseStatus",
    "JobType",
    "JobStatus",
    "LogLevel",
    "SchedulerState",
]
