"""Tests for manual sends and inbound reply handling."""
import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from backend.core.errors import (
    NotFoundError,
    QuotaExceededError,
    ServiceUnavailableError,
    TransportError,
    ValidationError,
)
from backend.models.channel import EmailTarget, WhatsAppTarget
from backend.models.enums import Direction, LeadStatus, LogLevel, MessageChannel, ResponseStatus
from backend.services.messaging import MessagingService, ReplyHandler
from backend.services.quota import DailyQuotaTracker


@pytest.fixture
def quota(clock):
    return DailyQuotaTracker(2, clock=clock)


@pytest.fixture
def messaging(quota, lead_store, response_store, composer, dispatcher):
    return MessagingService(quota, lead_store, response_store, composer, dispatcher)


@pytest.fixture
def replies(quota, lead_store, response_store, log_store, ai_composer, dispatcher, no_sleep):
    return ReplyHandler(quota, lead_store, response_store, log_store, ai_composer, dispatcher,
                        sleep=no_sleep, rng=random.Random(0))


class TestSendToLead:

    @pytest.mark.asyncio
    async def test_send_records_response_and_contacts_lead(self, messaging, make_lead, lead_store,
                                                           response_store, quota, dispatcher):
        lead = make_lead(email="owner@acme.com")

        result = await messaging.send_to_lead(lead.id, MessageChannel.EMAIL, "intro")

        assert result["leadId"] == lead.id
        assert result["channel"] == "email"
        assert result["deliveryId"] == "delivery-1"
        assert dispatcher.send.await_args.args[0] == EmailTarget("owner@acme.com")
        assert lead_store.get(lead.id).status == LeadStatus.CONTACTED
        [response] = response_store.for_lead(lead.id)
        assert response.direction == Direction.OUTGOING
        assert response.status == ResponseStatus.SENT
        assert quota.count == 1

    @pytest.mark.asyncio
    async def test_fallback_template_uses_variables(self, messaging, make_lead, dispatcher):
        lead = make_lead(name="Dana", phone="+15551230001")

        await messaging.send_to_lead(lead.id, MessageChannel.WHATSAPP, "follow_up", {"company": "Dana's Bakery"})

        target, content = dispatcher.send.await_args.args
        assert target == WhatsAppTarget("+15551230001")
        assert "Dana" in content
        assert "Dana's Bakery" in content

    @pytest.mark.asyncio
    async def test_unknown_lead(self, messaging):
        with pytest.raises(NotFoundError):
            await messaging.send_to_lead("missing", MessageChannel.EMAIL)

    @pytest.mark.asyncio
    async def test_missing_channel_field(self, messaging, make_lead, quota):
        """Test that asking for WhatsApp on an email-only lead is a validation error."""
        lead = make_lead(email="owner@acme.com")

        with pytest.raises(ValidationError):
            await messaging.send_to_lead(lead.id, MessageChannel.WHATSAPP)
        assert quota.count == 0

    @pytest.mark.asyncio
    async def test_unknown_template(self, messaging, make_lead):
        lead = make_lead(email="owner@acme.com")
        with pytest.raises(ValidationError):
            await messaging.send_to_lead(lead.id, MessageChannel.EMAIL, "no_such_template")

    @pytest.mark.asyncio
    async def test_channel_not_ready(self, messaging, make_lead, dispatcher):
        lead = make_lead(phone="+15551230001")
        dispatcher.is_ready.return_value = False

        with pytest.raises(ServiceUnavailableError):
            await messaging.send_to_lead(lead.id, MessageChannel.WHATSAPP)

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, messaging, make_lead, quota, dispatcher):
        lead = make_lead(email="owner@acme.com")
        quota.try_reserve()
        quota.try_reserve()

        with pytest.raises(QuotaExceededError):
            await messaging.send_to_lead(lead.id, MessageChannel.EMAIL)
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_failure_releases_slot(self, messaging, make_lead, quota, dispatcher, lead_store):
        lead = make_lead(email="owner@acme.com")
        dispatcher.send = AsyncMock(side_effect=TransportError("SMTP refused"))

        with pytest.raises(TransportError):
            await messaging.send_to_lead(lead.id, MessageChannel.EMAIL)

        assert quota.count == 0
        assert lead_store.get(lead.id).status == LeadStatus.NEW


class TestReplyHandler:

    @pytest.mark.asyncio
    async def test_known_lead_gets_ai_reply(self, replies, make_lead, lead_store, response_store,
                                            dispatcher, fake_ai, quota):
        lead = make_lead(phone="+15551230001")
        lead_store.update_one(lead.id, {"status": LeadStatus.CONTACTED})

        result = await replies.handle_incoming(MessageChannel.WHATSAPP, "15551230001", "Sounds interesting", "wamid.1")

        assert result["replied"] is True
        assert lead_store.get(lead.id).status == LeadStatus.REPLIED
        history = response_store.for_lead(lead.id)
        assert [r.direction for r in history] == [Direction.INCOMING, Direction.OUTGOING]
        assert history[0].external_message_id == "wamid.1"
        assert history[1].content.startswith("Thanks for getting back to us")
        assert "Sounds interesting" in fake_ai.generate.await_args.args[0]
        assert quota.count == 1

    @pytest.mark.asyncio
    async def test_unknown_sender_ignored(self, replies, log_store, dispatcher):
        result = await replies.handle_incoming(MessageChannel.EMAIL, "stranger@example.com", "hello")

        assert result == {"handled": False, "reason": "unknown_sender"}
        dispatcher.send.assert_not_awaited()
        [entry] = log_store.recent("Messaging")
        assert entry.level == LogLevel.WARN
        assert entry.metadata["from"] == "stranger@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_delivery_ignored(self, replies, make_lead, response_store):
        lead = make_lead(email="owner@acme.com")
        await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "hi", "<msg-1@acme.com>")

        result = await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "hi", "<msg-1@acme.com>")

        assert result["reason"] == "duplicate"
        assert response_store.count(Direction.INCOMING.value) == 1

    @pytest.mark.asyncio
    async def test_no_reply_without_ai(self, quota, lead_store, response_store, log_store, composer,
                                       dispatcher, no_sleep, make_lead):
        handler = ReplyHandler(quota, lead_store, response_store, log_store, composer, dispatcher, sleep=no_sleep)
        lead = make_lead(email="owner@acme.com")

        result = await handler.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "Tell me more")

        assert result["reason"] == "no_reply"
        assert lead_store.get(lead.id).status == LeadStatus.REPLIED
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_respects_quota(self, replies, make_lead, quota, dispatcher, response_store):
        lead = make_lead(email="owner@acme.com")
        quota.try_reserve()
        quota.try_reserve()

        result = await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "Tell me more")

        assert result["reason"] == "quota_exhausted"
        dispatcher.send.assert_not_awaited()
        assert response_store.count(Direction.INCOMING.value) == 1

    @pytest.mark.asyncio
    async def test_reply_transport_failure(self, replies, make_lead, quota, dispatcher):
        make_lead(email="owner@acme.com")
        dispatcher.send = AsyncMock(side_effect=TransportError("SMTP refused"))

        result = await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "Tell me more")

        assert result["reason"] == "transport_error"
        assert quota.count == 0

    @pytest.mark.asyncio
    async def test_cancelled_reply_returns_slot(self, replies, make_lead, quota, no_sleep, dispatcher):
        """Test that a reply cancelled during its pause does not keep the quota slot."""
        make_lead(email="owner@acme.com")
        no_sleep.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "Tell me more")

        assert quota.count == 0
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_send_error_returns_slot(self, replies, make_lead, quota, dispatcher):
        make_lead(email="owner@acme.com")
        dispatcher.send = AsyncMock(side_effect=RuntimeError("adapter crashed"))

        with pytest.raises(RuntimeError):
            await replies.handle_incoming(MessageChannel.EMAIL, "owner@acme.com", "Tell me more")

        assert quota.count == 0

    @pytest.mark.asyncio
    async def test_qualified_lead_keeps_status(self, replies, make_lead, lead_store):
        lead = make_lead(email="owner@acme.com")
        lead_store.update_one(lead.id, {"status": LeadStatus.QUALIFIED})

        await replies.handle_incoming(MessageChannel.EMAIL, "Owner@Acme.com", "Any update?")

        assert lead_store.get(lead.id).status == LeadStatus.QUALIFIED
