"""Application error taxonomy.

Every error carries the HTTP status it maps to when it reaches the API layer.
Inside the outreach core the type decides recovery: transport and composition
failures are handled per lead, persistence failures abort the run.
"""
from typing import Any, Optional


class LeadBotError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LeadBotError):
    """Caller supplied malformed input."""

    status_code = 400


class NotFoundError(LeadBotError):
    """Referenced lead or job does not exist."""

    status_code = 404


class ConflictError(LeadBotError):
    """Unique email/phone constraint violated."""

    status_code = 409


class QuotaExceededError(LeadBotError):
    status_code = 429


class TransportError(LeadBotError):
    """A channel adapter could not deliver a message."""

    status_code = 502


class CompositionError(LeadBotError):
    """The generative-AI call failed or returned nothing usable."""

    status_code = 502


class PersistenceError(LeadBotError):
    """The document store is unavailable or rejected a write."""

    status_code = 500


class ServiceUnavailableError(LeadBotError):
    status_code = 503
