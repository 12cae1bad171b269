"""Outreach copywriting backed by Gemini, with deterministic fallbacks."""
import random
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.errors import CompositionError, ServiceUnavailableError, ValidationError
from ..core.logger import logger
from ..models.enums import Direction, MessageChannel
from ..models.lead import Lead
from ..models.response import Response
from .gemini_client import GeminiClient


DEFAULT_PURPOSE = "introduce our lead generation service and invite them to a short demo"

# Template id -> (purpose given to the AI, fallback text)
TEMPLATES: Dict[str, Tuple[str, str]] = {
    "intro": (
        DEFAULT_PURPOSE,
        "Hi {name}, we help businesses like {company} find and reach new customers "
        "automatically. Would you be open to {cta}?",
    ),
    "follow_up": (
        "follow up politely on our earlier message and ask whether they had a chance to consider it",
        "Hi {name}, just following up on my earlier note about new customer leads for {company}. "
        "Would you be open to {cta}?",
    ),
    "demo_invite": (
        "invite them to a live demo of the lead generation bot",
        "Hi {name}, I'd love to show you a quick live demo of how our bot brings {company} new leads. "
        "Are you free to {cta}?",
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "your business" if key == "company" else ""


class MessageComposer:
    """Generate personalized outreach, replies and conversation summaries."""

    def __init__(self, ai: Optional[GeminiClient] = None, rng: Optional[random.Random] = None):
        self.ai = ai if ai is not None else GeminiClient()
        self.rng = rng or random.Random()
        self.ctas = [
            "book a quick 15-minute call",
            "schedule a brief 10-minute chat",
            "grab 15 minutes this week",
            "connect for a short conversation",
        ]

    @property
    def ai_available(self) -> bool:
        return self.ai.available

    def fallback(self, lead: Lead, template_id: str = "intro",
                 variables: Optional[Dict[str, str]] = None) -> str:
        """Render the deterministic template used when the AI is unavailable."""
        _, text = TEMPLATES.get(template_id, TEMPLATES["intro"])
        values = _Defaults(name=lead.name or "there", cta=self.rng.choice(self.ctas))
        values.update({k: str(v) for k, v in (variables or {}).items()})
        return text.format_map(values)

    def purpose_for(self, template_id: str) -> str:
        if template_id not in TEMPLATES:
            raise ValidationError(f"Unknown message template '{template_id}'.",
                                  [{"field": "templateId", "message": f"Must be one of: {', '.join(TEMPLATES)}"}])
        return TEMPLATES[template_id][0]

    async def compose(self, lead: Lead, purpose: str, channel: MessageChannel,
                      template_id: str = "intro", variables: Optional[Dict[str, str]] = None) -> str:
        """Produce outreach text for a lead. Never raises."""
        if not self.ai_available:
            logger.warning("Gemini client not available. Using fallback message.")
            return self.fallback(lead, template_id, variables)

        prompt = self._outreach_prompt(lead, purpose, channel, variables)
        try:
            text = await self.ai.generate(prompt)
            logger.info(f"AI generated {channel.value} message for lead {lead.id}")
            return self._fit_to_channel(text, channel)
        except CompositionError as e:
            logger.error(f"Failed to generate AI message for lead {lead.id}: {e}")
            return self.fallback(lead, template_id, variables)

    async def personalize(self, lead: Lead, context: str, purpose: str,
                          history: Sequence[Response] = ()) -> str:
        """On-demand personalized message. Raises when the AI cannot produce one."""
        self._require_ai()
        history_text = "\n".join(f"{r.direction.value}: {r.content}" for r in history)
        prompt = f"""Generate a highly personalized, natural, and business-friendly outreach message for a lead named {lead.name or 'valued client'}.
Context: {context}
Purpose: {purpose}
Previous interactions (if any):
{history_text}

Focus on avoiding generic spam phrases and making it sound like a genuine human conversation. Suggest a next step."""
        return await self.ai.generate(prompt)

    async def compose_reply(self, lead: Lead, incoming: str, history: Sequence[Response],
                            channel: MessageChannel) -> Optional[str]:
        """Reply to an inbound message. Returns None when no reply can be generated."""
        if not self.ai_available:
            logger.warning("Gemini client not initialized. Cannot generate AI reply for incoming message.")
            return None

        transcript = "\n".join(
            f"{'Bot' if r.direction == Direction.OUTGOING else 'Lead'}: {r.content}" for r in history
        )
        prompt = f"""The lead '{lead.name}' sent the following message: "{incoming}".
Conversation history:
{transcript}

Based on this, craft a natural and business-friendly {channel.value} reply. Keep it concise and aimed at progressing the conversation."""
        try:
            return self._fit_to_channel(await self.ai.generate(prompt), channel)
        except CompositionError as e:
            logger.error(f"Failed to generate AI reply for lead {lead.id}: {e}")
            return None

    async def summarize(self, lead: Lead, conversation: Sequence[Tuple[str, str]]) -> Tuple[str, List[str]]:
        """Summarize (sender, message) pairs into a summary and key points."""
        self._require_ai()
        formatted = "\n".join(f"{sender}: {message}" for sender, message in conversation)
        prompt = f"""Summarize the following conversation with Lead {lead.name or 'ID ' + lead.id} and extract 3-5 key points discussed. The summary should be concise and capture the essence of the discussion. Start the response with a "Summary:" section, followed by a "Key Points:" section.
Conversation:
{formatted}"""
        text = await self.ai.generate(prompt)
        return parse_summary(text)

    async def extract_key_points(self, text: str) -> List[str]:
        self._require_ai()
        prompt = ("Extract the 3-5 most important key points from the following text. "
                  f"List them as a simple, unnumbered, bulleted list using hyphens:\n\n{text}")
        return split_points(await self.ai.generate(prompt))

    def _require_ai(self):
        if not self.ai_available:
            raise ServiceUnavailableError("AI service (Gemini) is not initialized or available.")

    def _outreach_prompt(self, lead: Lead, purpose: str, channel: MessageChannel,
                         variables: Optional[Dict[str, str]]) -> str:
        extra = ""
        if variables:
            extra = "\nUse these details where natural: " + ", ".join(f"{k}={v}" for k, v in variables.items())
        length = "under 60 words" if channel == MessageChannel.WHATSAPP else "under 120 words, plain text"
        return (
            f"Generate a personalized {channel.value} outreach message for a lead named {lead.name or 'Lead'}. "
            f"The purpose is to {purpose}. Keep it business-friendly, natural and {length}. "
            f"Do not include a subject line or placeholders.{extra}"
        )

    def _fit_to_channel(self, text: str, channel: MessageChannel) -> str:
        max_words = 60 if channel == MessageChannel.WHATSAPP else 120
        return truncate_to_words(text.strip(), max_words)


def truncate_to_words(text: str, max_words: int) -> str:
    """Truncate text to maximum word count, preferring a sentence boundary."""
    words = text.split()
    if len(words) <= max_words:
        return text

    truncated = ' '.join(words[:max_words])
    if '.' in truncated:
        sentences = truncated.split('.')
        return '.'.join(sentences[:-1]) + '.'

    return truncated + '...'


def split_points(text: str) -> List[str]:
    points = re.split(r"\n\s*[-*]|^\s*[-*]", text)
    return [p.strip(" -*\n\t") for p in points if p.strip(" -*\n\t")]


def parse_summary(text: str) -> Tuple[str, List[str]]:
    """Split an AI response into its Summary and Key Points sections."""
    summary_match = re.search(r"Summary:([\s\S]*?)(Key Points:|$)", text, re.IGNORECASE)
    points_match = re.search(r"Key Points:([\s\S]*)", text, re.IGNORECASE)
    summary = summary_match.group(1).strip() if summary_match else text.strip()
    key_points = split_points(points_match.group(1)) if points_match else []
    return summary, key_points
