"""Channel adapters with dry-run (file storage) and live (WhatsApp Cloud API / SMTP) modes."""
import asyncio
import smtplib
import json
import re
import uuid
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Optional
from datetime import datetime
from pathlib import Path

import httpx

from ..core.logger import logger
from ..core.config import settings
from ..core.errors import TransportError
from ..models.channel import ContactTarget, EmailTarget, WhatsAppTarget
from ..models.enums import MessageChannel


class WhatsAppAdapter:
    """Sends WhatsApp text messages through the WhatsApp Cloud API."""

    def __init__(self, api_url: Optional[str] = None, phone_number_id: Optional[str] = None,
                 access_token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = (api_url or settings.whatsapp_api_url).rstrip("/")
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.whatsapp_phone_number_id
        self.access_token = access_token if access_token is not None else settings.whatsapp_access_token
        self._transport = transport

    @property
    def ready(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    async def send(self, destination: str, content: str) -> str:
        if not self.ready:
            raise TransportError("WhatsApp client is not ready. Configure the phone number id and access token.")

        to = re.sub(r"\D", "", destination)
        if not to:
            raise TransportError(f"Invalid WhatsApp destination: {destination!r}")

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": content},
        }
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/{self.phone_number_id}/messages",
                    headers={"Authorization": f"Bearer {self.access_token}"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send WhatsApp message to {to}: {e}") from e

        if response.status_code >= 400:
            raise TransportError(f"WhatsApp API returned {response.status_code} for {to}: {response.text[:200]}")

        try:
            delivery_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError) as e:
            raise TransportError(f"Unexpected WhatsApp API response: {e}") from e

        logger.info(f"[LIVE] WhatsApp message sent to {to}")
        return delivery_id


class EmailAdapter:
    """Sends plain-text email over SMTP."""

    def __init__(self, subject: Optional[str] = None):
        self.subject = subject or settings.email_subject

    @property
    def ready(self) -> bool:
        return settings.smtp_enabled

    async def send(self, destination: str, content: str, subject: Optional[str] = None) -> str:
        if not self.ready:
            raise TransportError("SMTP not enabled in settings, cannot send email")
        return await asyncio.to_thread(self._send_sync, destination, content, subject or self.subject)

    def _send_sync(self, destination: str, content: str, subject: str) -> str:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.smtp_from
        msg["To"] = destination
        message_id = make_msgid(domain=settings.smtp_from.split("@")[-1])
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(content, "plain"))

        try:
            server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30)
            try:
                if settings.smtp_use_tls:
                    server.starttls()
                if settings.smtp_user and settings.smtp_password:
                    server.login(settings.smtp_user, settings.smtp_password)
                server.send_message(msg)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send email to {destination}: {e}") from e

        logger.info(f"[LIVE] Sent email to {destination}")
        return message_id


class DryRunAdapter:
    """Saves messages to storage instead of sending them.

    File format: {storage}/{timestamp}_{channel}_{destination}_{delivery_id}.json
    """

    def __init__(self, channel: MessageChannel, storage_path: Optional[str] = None):
        self.channel = channel
        self.storage_path = Path(storage_path or settings.storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    @property
    def ready(self) -> bool:
        return True

    async def send(self, destination: str, content: str) -> str:
        delivery_id = f"dryrun-{uuid.uuid4()}"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        destination_safe = re.sub(r"[^A-Za-z0-9@._+-]", "_", destination)
        filepath = self.storage_path / f"{timestamp}_{self.channel.value}_{destination_safe}_{delivery_id}.json"

        message_data = {
            "delivery_id": delivery_id,
            "timestamp": timestamp,
            "channel": self.channel.value,
            "destination": destination,
            "content": content,
            "status": "DRY_RUN_SAVED",
        }
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(message_data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise TransportError(f"Error saving message to storage: {e}") from e

        logger.info(f"[DRY RUN] Saved {self.channel.value} message to {filepath.name}")
        return delivery_id


class ChannelDispatcher:
    """Routes a resolved contact target to the adapter for its channel."""

    def __init__(self, whatsapp, email):
        self.adapters = {
            MessageChannel.WHATSAPP: whatsapp,
            MessageChannel.EMAIL: email,
        }

    def is_ready(self, channel: MessageChannel) -> bool:
        return bool(getattr(self.adapters[channel], "ready", True))

    async def send(self, target: ContactTarget, content: str) -> str:
        """Deliver content to the target. Raises TransportError on failure."""
        if isinstance(target, WhatsAppTarget):
            return await self.adapters[MessageChannel.WHATSAPP].send(target.phone, content)
        if isinstance(target, EmailTarget):
            return await self.adapters[MessageChannel.EMAIL].send(target.address, content)
        raise TransportError(f"Unsupported contact target: {target!r}")


# Factory function
def create_dispatcher(dry_run: bool = True) -> ChannelDispatcher:
    """Create a dispatcher that either stores or really sends messages."""
    if dry_run:
        logger.info(f"Channel dispatcher initialized in DRY RUN mode (storage: {settings.storage_path})")
        return ChannelDispatcher(
            whatsapp=DryRunAdapter(MessageChannel.WHATSAPP),
            email=DryRunAdapter(MessageChannel.EMAIL),
        )
    logger.info(f"Channel dispatcher initialized in LIVE mode (SMTP: {settings.smtp_host}:{settings.smtp_port})")
    return ChannelDispatcher(whatsapp=WhatsAppAdapter(), email=EmailAdapter())
