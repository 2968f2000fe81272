"""Factory pattern for creating vision client instances."""

from trustlens.adapters.llm.base import AbstractVisionClient
from trustlens.adapters.llm.gemini_client import GeminiVisionClient
from trustlens.adapters.llm.openai_client import OpenAIVisionClient
from trustlens.core.config import settings
from trustlens.core.errors import ValidationAppError

# Value shipped in the sample .env files; never a usable key
PLACEHOLDER_API_KEYS = {"your_gemini_api_key_here", "your_api_key_here"}


def is_placeholder_api_key(api_key: str | None) -> bool:
    return bool(api_key) and api_key.strip() in PLACEHOLDER_API_KEYS


def create_vision_client() -> AbstractVisionClient:
    """Factory function to instantiate vision clients based on provider.

    Reads configuration from trustlens.core.config.settings (Pydantic Settings).

    Returns:
        AbstractVisionClient: Configured client instance.

    Raises:
        ValidationAppError: If provider-specific requirements are not met.
            ``llm_missing_api_key`` when no key is set and
            ``llm_placeholder_api_key`` when the sample value was left in.
    """
    provider = settings.llm.provider.lower()
    api_key = settings.llm.api_key

    if provider not in ("gemini", "openai"):
        raise ValidationAppError(
            code="llm_unknown_provider",
            message=(
                f"Unknown LLM provider: '{provider}'. Supported providers: gemini, openai"
            ),
        )

    if not api_key or not api_key.strip():
        raise ValidationAppError(
            code="llm_missing_api_key",
            message=f"{provider} provider requires LLM_API_KEY environment variable",
            details={"provider": provider},
        )

    if is_placeholder_api_key(api_key):
        raise ValidationAppError(
            code="llm_placeholder_api_key",
            message=f"{provider} provider requires a real LLM_API_KEY, not the sample value",
            details={"provider": provider},
        )

    if provider == "gemini":
        return GeminiVisionClient(
            api_key=api_key,
            model=settings.llm.model,
            timeout_seconds=settings.llm.timeout_seconds,
            temperature=settings.llm.temperature,
            max_output_tokens=settings.llm.max_output_tokens,
        )

    return OpenAIVisionClient(
        api_key=api_key,
        model=settings.llm.model,
        base_url=settings.llm.base_url,
        timeout_seconds=settings.llm.timeout_seconds,
        temperature=settings.llm.temperature,
        max_output_tokens=settings.llm.max_output_tokens,
    )
