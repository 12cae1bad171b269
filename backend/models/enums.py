from enum import Enum


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    REPLIED = "replied"
    QUALIFIED = "qualified"
    UNQUALIFIED = "unqualified"


class MessageChannel(str, Enum):
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class ResponseStatus(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    FAILED = "failed"


class JobType(str, Enum):
    SCRAPER = "scraper"
    MESSAGING = "messaging"
    SUMMARY = "summary"


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"
    CRITICAL = "critical"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
