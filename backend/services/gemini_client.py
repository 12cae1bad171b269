"""Minimal async client for the Gemini generateContent REST endpoint."""
from typing import Optional

import httpx

from ..core.config import settings
from ..core.errors import CompositionError
from ..core.logger import logger


class GeminiClient:
    """Generates text from a prompt. Raises CompositionError on any failure."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout or settings.gemini_timeout_seconds
        self._transport = transport

        if self.api_key:
            logger.info(f"Gemini client configured with model: {self.model}")
        else:
            logger.warning("GEMINI_API_KEY is not set. AI functionalities will use fallback templates.")

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str) -> str:
        if not self.available:
            raise CompositionError("AI service (Gemini) is not configured.")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as e:
            raise CompositionError(f"Gemini request failed: {e}") from e

        if response.status_code != 200:
            raise CompositionError(f"Gemini returned {response.status_code}: {response.text[:200]}")

        try:
            result = response.json()
            parts = result["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts).strip()
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompositionError(f"Unexpected Gemini response shape: {e}") from e

        if not text:
            raise CompositionError("Gemini returned an empty response")
        return text
