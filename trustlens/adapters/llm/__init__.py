"""Vision model adapter layer - abstracts over multiple providers."""

from trustlens.adapters.llm.base import AbstractVisionClient, is_rate_limit_error
from trustlens.adapters.llm.factory import create_vision_client
from trustlens.adapters.llm.gemini_client import GeminiVisionClient
from trustlens.adapters.llm.openai_client import OpenAIVisionClient

__all__ = [
    "AbstractVisionClient",
    "GeminiVisionClient",
    "OpenAIVisionClient",
    "create_vision_client",
    "is_rate_limit_error",
]
