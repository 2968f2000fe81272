from abc import ABC, abstractmethod
from typing import Any

_RATE_LIMIT_MARKERS = (
    "429",
    "too many requests",
    "rate limit",
    "rate_limit_exceeded",
    "quota",
    "resource_exhausted",
)


class AbstractVisionClient(ABC):
	"""Interface for vision model clients that answer a prompt about an image."""

	provider: str
	model: str

	@abstractmethod
	async def generate_text(
		self,
		prompt: str,
		*,
		image_data: str,
		mime_type: str = "image/jpeg",
		**kwargs: Any,
	) -> str:
		"""Send an image and a prompt, returning the raw model text.

		The text is expected to be JSON but callers cannot rely on that:
		models may wrap it in Markdown fences or answer in prose.

		Args:
			prompt: Instruction describing the expected JSON shape.
			image_data: Base64-encoded image payload (no data URL prefix).
			mime_type: MIME type of the encoded image.
			**kwargs: Provider-specific options (e.g., temperature).

		Returns:
			str: Raw text returned by the model.

		Raises:
			LLMAppError: If the provider call fails or returns no content.
		"""
		...


def is_rate_limit_error(exc: BaseException) -> bool:
	"""Detect provider throttling from an exception's status or message."""
	for attr in ("status_code", "code", "status"):
		if getattr(exc, attr, None) == 429:
			return True

	details = getattr(exc, "details", None)
	if isinstance(details, dict) and details.get("http_status") == 429:
		return True

	message = str(exc).lower()
	return any(marker in message for marker in _RATE_LIMIT_MARKERS)
