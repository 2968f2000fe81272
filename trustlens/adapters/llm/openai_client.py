"""OpenAI-compatible vision client adapter (OpenAI, OpenRouter)."""

from typing import Any

from openai import AsyncOpenAI

from trustlens.adapters.llm.base import AbstractVisionClient, is_rate_limit_error
from trustlens.core.errors import LLMAppError


class OpenAIVisionClient(AbstractVisionClient):
    """Client for calling chat completions with an inline image.

    Uses the official OpenAI Python SDK with async support. Pointing
    ``base_url`` at https://openrouter.ai/api/v1 routes to any model
    OpenRouter serves.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        temperature: float = 0.1,
        max_output_tokens: int = 1024,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: API key for authentication.
            model: Model name (e.g., "gpt-4o-mini", "anthropic/claude-3.5-sonnet").
            base_url: Optional custom base URL.
            timeout_seconds: Timeout for requests in seconds.
            temperature: Sampling temperature.
            max_output_tokens: Upper bound on generated tokens.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def generate_text(
        self,
        prompt: str,
        *,
        image_data: str,
        mime_type: str = "image/jpeg",
        **kwargs: Any,
    ) -> str:
        """Ask the model about an image and return its raw text answer.

        Raises:
            LLMAppError: If the API call fails or the response is empty.
        """
        messages = [
            {
                "role": "system",
                "content": "Output JSON only. No extra text or markdown formatting.",
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{mime_type};base64,{image_data}"},
                    },
                ],
            },
        ]

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", self.temperature),
            "max_tokens": kwargs.pop("max_output_tokens", self.max_output_tokens),
        }
        for param in ("top_p", "seed"):
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            rate_limited = is_rate_limit_error(exc)
            raise LLMAppError(
                code="llm_rate_limited" if rate_limited else "llm_call_failed",
                message=f"OpenAI API error: {exc}",
                details={
                    "provider": self.provider,
                    "model": self.model,
                    "http_status": 429 if rate_limited else 502,
                },
            ) from exc

        content = response.choices[0].message.content
        if not content:
            raise LLMAppError(
                code="llm_empty_response",
                message="LLM returned empty response",
                details={"provider": self.provider, "model": self.model},
            )
        return content.strip()
