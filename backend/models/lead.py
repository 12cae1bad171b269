import re
from pydantic import BaseModel, ValidationInfo, field_validator, model_validator
from typing import Optional
from datetime import datetime

from .enums import LeadStatus


PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
URL_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://\S+$")


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Trim and lower-case an email; empty strings become None."""
    if value is None:
        return None
    value = value.strip().lower()
    if not value:
        return None
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please provide a valid email address.")
    return value


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Trim a phone number and store it with a leading +; empty strings become None."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please provide a valid phone number (E.164 format).")
    return value if value.startswith("+") else f"+{value}"


def validate_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not URL_PATTERN.match(value):
        raise ValueError("Source URL must be a valid URI.")
    return value


class Lead(BaseModel):
    """Pydantic schema for Lead records and API responses."""

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    source_url: str
    date_scraped: Optional[datetime] = None
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone)


class LeadCreate(BaseModel):
    """Schema for creating a new lead. Exactly one-or-both of email/phone is required."""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    source_url: str
    status: LeadStatus = LeadStatus.NEW
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Lead name is required.")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)

    @field_validator("source_url")
    @classmethod
    def _source_url(cls, v):
        return validate_url(v)

    @model_validator(mode="after")
    def _contact_required(self):
        if not self.email and not self.phone:
            raise ValueError("Either email or phone must be provided.")
        return self


class LeadUpdate(BaseModel):
    """Schema for updating a lead. At least one field must be set."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[LeadStatus] = None
    source_url: Optional[str] = None
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("name", "status", "source_url")
    @classmethod
    def _not_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null.")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Lead name cannot be empty.")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)

    @field_validator("source_url")
    @classmethod
    def _source_url(cls, v):
        return validate_url(v)

    @model_validator(mode="after")
    def _not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update.")
        return self
