"""Manual sends and inbound replies. Both draw from the shared daily quota."""
import asyncio
import random
from typing import Awaitable, Callable, Dict, Optional

from ..core.database import utc_now
from ..core.errors import (
    NotFoundError,
    QuotaExceededError,
    ServiceUnavailableError,
    TransportError,
)
from ..core.logger import logger
from ..models.channel import EmailTarget, WhatsAppTarget, target_for_channel
from ..models.enums import Direction, LeadStatus, LogLevel, MessageChannel, ResponseStatus
from ..models.response import ResponseCreate
from .composer import MessageComposer
from .message_sender import ChannelDispatcher
from .quota import DailyQuotaTracker


LOG_MODULE = "Messaging"


class MessagingService:
    """Send one message to one lead on request."""

    def __init__(self, quota: DailyQuotaTracker, leads, responses,
                 composer: MessageComposer, dispatcher: ChannelDispatcher):
        self.quota = quota
        self.leads = leads
        self.responses = responses
        self.composer = composer
        self.dispatcher = dispatcher

    async def send_to_lead(self, lead_id: str, channel: MessageChannel, template_id: str = "intro",
                           variables: Optional[Dict[str, str]] = None) -> Dict:
        lead = self.leads.get(lead_id)
        if lead is None:
            raise NotFoundError("Lead not found.")

        purpose = self.composer.purpose_for(template_id)
        target = target_for_channel(lead, channel)

        if not self.dispatcher.is_ready(channel):
            raise ServiceUnavailableError(f"{channel.value} client is not ready. Cannot send message.")

        if not self.quota.try_reserve():
            raise QuotaExceededError(
                f"Daily message limit of {self.quota.limit} reached. Cannot send more messages today."
            )
        day_key = self.quota.day_key

        try:
            content = await self.composer.compose(lead, purpose, channel, template_id, variables)
            delivery_id = await self.dispatcher.send(target, content)
        except BaseException:
            self.quota.release(day_key)
            raise

        response = self.responses.insert(ResponseCreate(
            lead_id=lead.id,
            channel=channel,
            direction=Direction.OUTGOING,
            content=content,
            status=ResponseStatus.SENT,
            external_message_id=delivery_id,
        ))
        self.leads.update_one(lead.id, {"status": LeadStatus.CONTACTED, "last_contacted": utc_now()})

        logger.info(f"Message sent to lead {lead.id} via {channel.value}. Daily count: {self.quota.count}")
        return {
            "leadId": lead.id,
            "channel": channel.value,
            "responseId": response.id,
            "deliveryId": delivery_id,
        }


class ReplyHandler:
    """Log inbound messages from known leads and answer them with an AI reply.

    Messages from unknown senders are logged and ignored.
    """

    def __init__(self, quota: DailyQuotaTracker, leads, responses, logs,
                 composer: MessageComposer, dispatcher: ChannelDispatcher,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 rng: Optional[random.Random] = None,
                 history_limit: int = 10):
        self.quota = quota
        self.leads = leads
        self.responses = responses
        self.logs = logs
        self.composer = composer
        self.dispatcher = dispatcher
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.history_limit = history_limit

    def _find_lead(self, channel: MessageChannel, sender: str):
        if channel == MessageChannel.WHATSAPP:
            return self.leads.find_by_phone(sender)
        return self.leads.find_by_email(sender)

    async def handle_incoming(self, channel: MessageChannel, sender: str, content: str,
                              external_message_id: Optional[str] = None) -> Dict:
        logger.info(f"Incoming {channel.value} message from {sender}")

        if external_message_id and self.responses.exists_external(external_message_id):
            logger.info(f"Duplicate delivery of message {external_message_id}; ignoring.")
            return {"handled": False, "reason": "duplicate"}

        lead = self._find_lead(channel, sender)
        if lead is None:
            logger.warning(f"Incoming {channel.value} message from unknown sender {sender}. Ignoring.")
            self.logs.record(
                LogLevel.WARN, LOG_MODULE,
                "Incoming message from unknown sender. Ignoring.",
                {"from": sender, "channel": channel.value, "message": content},
            )
            return {"handled": False, "reason": "unknown_sender"}

        self.responses.insert(ResponseCreate(
            lead_id=lead.id,
            channel=channel,
            direction=Direction.INCOMING,
            content=content,
            status=ResponseStatus.RECEIVED,
            external_message_id=external_message_id,
        ))
        if lead.status in (LeadStatus.NEW, LeadStatus.CONTACTED):
            self.leads.update_one(lead.id, {"status": LeadStatus.REPLIED})

        history = self.responses.history(lead.id, channel=channel.value, limit=self.history_limit)
        reply = await self.composer.compose_reply(lead, content, history, channel)
        if reply is None:
            self.logs.record(
                LogLevel.WARN, LOG_MODULE,
                f"No AI reply generated for lead {lead.id}.",
                {"leadId": lead.id},
            )
            return {"handled": True, "leadId": lead.id, "replied": False, "reason": "no_reply"}

        if not self.quota.try_reserve():
            logger.warning(f"Daily limit reached; not replying to lead {lead.id} today.")
            return {"handled": True, "leadId": lead.id, "replied": False, "reason": "quota_exhausted"}
        day_key = self.quota.day_key

        target = WhatsAppTarget(lead.phone or sender) if channel == MessageChannel.WHATSAPP \
            else EmailTarget(lead.email or sender)

        try:
            # Short human-looking pause before answering
            await self.sleep(1.0 + self.rng.random() * 2.0)
            delivery_id = await self.dispatcher.send(target, reply)
        except TransportError as e:
            self.quota.release(day_key)
            logger.error(f"Failed to reply to lead {lead.id}: {e}")
            self.logs.record(
                LogLevel.ERROR, LOG_MODULE,
                f"Failed to reply to lead {lead.id}: {e}",
                {"leadId": lead.id},
            )
            return {"handled": True, "leadId": lead.id, "replied": False, "reason": "transport_error"}
        except BaseException:
            self.quota.release(day_key)
            raise

        self.responses.insert(ResponseCreate(
            lead_id=lead.id,
            channel=channel,
            direction=Direction.OUTGOING,
            content=reply,
            status=ResponseStatus.SENT,
            external_message_id=delivery_id,
        ))
        logger.info(f"AI replied to lead {lead.id} via {channel.value}.")
        return {"handled": True, "leadId": lead.id, "replied": True, "deliveryId": delivery_id}
