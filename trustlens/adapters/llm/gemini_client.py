"""Gemini vision client adapter."""

import base64
import binascii
from typing import Any

from google import genai
from google.genai import types

from trustlens.adapters.llm.base import AbstractVisionClient, is_rate_limit_error
from trustlens.core.errors import LLMAppError

_SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


class GeminiVisionClient(AbstractVisionClient):
    """Client for Gemini multimodal generation returning JSON text.

    Uses the official google-genai SDK through its async surface.
    """

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        timeout_seconds: float = 30.0,
        temperature: float = 0.1,
        max_output_tokens: int = 1024,
    ) -> None:
        """Initialize the Gemini client.

        Args:
            api_key: Gemini API key.
            model: Model name (e.g., "gemini-1.5-flash").
            timeout_seconds: Timeout for requests in seconds.
            temperature: Sampling temperature.
            max_output_tokens: Upper bound on generated tokens.
        """
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def _build_config(self, **kwargs: Any) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=kwargs.get("temperature", self.temperature),
            top_p=kwargs.get("top_p", 0.8),
            top_k=kwargs.get("top_k", 20),
            max_output_tokens=kwargs.get("max_output_tokens", self.max_output_tokens),
            response_mime_type="application/json",
            safety_settings=[
                types.SafetySetting(
                    category=category,
                    threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                )
                for category in _SAFETY_CATEGORIES
            ],
        )

    async def generate_text(
        self,
        prompt: str,
        *,
        image_data: str,
        mime_type: str = "image/jpeg",
        **kwargs: Any,
    ) -> str:
        """Generate a JSON answer about an image using Gemini.

        Raises:
            LLMAppError: If the payload is not base64, the API call fails,
                or the response is empty.
        """
        try:
            image_bytes = base64.b64decode(image_data)
        except (binascii.Error, ValueError) as exc:
            raise LLMAppError(
                code="invalid_image_payload",
                message=f"Image payload is not valid base64: {exc}",
                details={"provider": self.provider},
            ) from exc

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    prompt,
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                ],
                config=self._build_config(**kwargs),
            )
        except Exception as exc:
            rate_limited = is_rate_limit_error(exc)
            raise LLMAppError(
                code="llm_rate_limited" if rate_limited else "llm_call_failed",
                message=f"Gemini API error: {exc}",
                details={
                    "provider": self.provider,
                    "model": self.model,
                    "http_status": 429 if rate_limited else 502,
                },
            ) from exc

        text = response.text
        if not text:
            raise LLMAppError(
                code="llm_empty_response",
                message="Gemini returned empty response",
                details={"provider": self.provider, "model": self.model},
            )
        return text.strip()
