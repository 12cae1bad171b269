"""Outbound contact targets.

A lead's contact channel is resolved once into one of these variants; code
downstream dispatches on the variant type and never re-inspects which lead
fields are populated.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .enums import MessageChannel
from .lead import Lead
from ..core.errors import ValidationError


@dataclass(frozen=True)
class WhatsAppTarget:
    phone: str

    channel = MessageChannel.WHATSAPP

    @property
    def destination(self) -> str:
        return self.phone


@dataclass(frozen=True)
class EmailTarget:
    address: str

    channel = MessageChannel.EMAIL

    @property
    def destination(self) -> str:
        return self.address


ContactTarget = Union[WhatsAppTarget, EmailTarget]


def resolve_target(lead: Lead) -> Optional[ContactTarget]:
    """Pick the outreach target for a lead: WhatsApp when a phone is known, else email."""
    if lead.phone:
        return WhatsAppTarget(lead.phone)
    if lead.email:
        return EmailTarget(lead.email)
    return None


def target_for_channel(lead: Lead, channel: MessageChannel) -> ContactTarget:
    """Build the target for an explicitly requested channel."""
    if channel == MessageChannel.WHATSAPP:
        if not lead.phone:
            raise ValidationError("Lead does not have a phone number for WhatsApp.")
        return WhatsAppTarget(lead.phone)
    if not lead.email:
        raise ValidationError("Lead does not have an email address.")
    return EmailTarget(lead.email)
