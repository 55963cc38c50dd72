"""
Gemini language model client.

Single-shot prompt in, text out. No streaming, no tools and no provider
side chat state: the caller re-sends all context on every call.
"""

import asyncio
from typing import Optional, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors

from health_companion.config import settings
from health_companion.core.errors import AIError
from health_companion.utils.logger import get_logger

logger = get_logger("gemini_client")


class LanguageModel(Protocol):
    """Anything that turns a prompt into reply text."""

    async def generate(self, prompt: str) -> str:
        ...


class GeminiClient:
    """
    Wrapper around the Google Gen AI SDK.

    Construction fails with ``ConfigurationError`` when no API key is
    configured; there is no offline fallback.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        if api_key is None:
            settings.require("gemini_api_key")
            api_key = settings.gemini_api_key

        self.client = genai.Client(api_key=api_key)
        self.model = model or settings.gemini_model
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        logger.info("Gemini client initialized", model=self.model)

    async def generate(self, prompt: str) -> str:
        """
        Generate a reply for the prompt.

        Raises:
            AIError: Provider error, transport error, timeout or empty reply
        """
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Gemini call timed out", timeout_seconds=self.timeout_seconds)
            raise AIError("The AI service did not respond in time") from exc
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            logger.error("Gemini call failed", error=str(exc))
            raise AIError(str(exc)) from exc

        text = response.text
        if not text:
            raise AIError("The AI service returned an empty reply")

        logger.info("Gemini reply received", chars=len(text))
        return text

