"""Gemini API client for summary generation."""

import logging
import os
import re
from typing import Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-001"

_API_KEY_RE = re.compile(r'^[A-Za-z0-9_-]+$')


class GeminiClient:
    """Async client for Google's Gemini models, one instance per API key."""

    def __init__(
        self,
        api_key: str,
        model: str = None,
        timeout_seconds: float = None,
        temperature: float = 0.5
    ):
        """Initialize Gemini client.

        Args:
            api_key: The group's Gemini API key
            model: Model name (defaults to GEMINI_MODEL or gemini-2.0-flash-001)
            timeout_seconds: HTTP timeout (defaults to GEMINI_TIMEOUT_SECONDS or 120)
            temperature: Sampling temperature
        """
        self.model = model or os.getenv('GEMINI_MODEL', DEFAULT_MODEL)
        if timeout_seconds is None:
            timeout_seconds = float(os.getenv('GEMINI_TIMEOUT_SECONDS', '120'))
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature

        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )

    @staticmethod
    def is_valid_api_key_format(api_key: str) -> bool:
        """Cheap format check before a key is stored.

        Gemini keys are long URL-safe tokens; this does not contact the API.
        """
        return bool(api_key) and len(api_key) > 20 and bool(_API_KEY_RE.match(api_key))

    async def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Generate text for a prompt.

        Args:
            prompt: Full prompt text
            max_tokens: Optional output token cap

        Returns:
            Generated text ("" if the model returned nothing)

        Raises:
            Exception: Whatever the SDK raises; callers classify failures
        """
        config = types.GenerateContentConfig(temperature=self.temperature)
        if max_tokens:
            config.max_output_tokens = max_tokens

        logger.debug(f"Generating with model {self.model} ({len(prompt)} prompt chars)...")

        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=config,
        )

        text = getattr(response, "text", None)
        if not text:
            logger.warning(f"Gemini returned empty response for model={self.model}")
            return ""
        return text.strip()

    async def check_api_key(self) -> None:
        """Make a minimal request to prove the key works.

        Raises:
            Exception: The SDK error if the key is rejected
        """
        await self.generate("Reply with the single word: ok", max_tokens=5)
