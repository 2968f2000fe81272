"""Integration tests for the vision adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from trustlens.adapters.llm import (
    GeminiVisionClient,
    OpenAIVisionClient,
    create_vision_client,
    is_rate_limit_error,
)
from trustlens.core.config import LLMSettings, settings
from trustlens.core.errors import LLMAppError, ValidationAppError

IMAGE_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


class TestGeminiVisionClient:
    """Gemini client with the SDK call mocked out."""

    @pytest.mark.asyncio
    async def test_generate_text_success(self) -> None:
        """Image bytes and prompt are sent; the text answer is returned stripped."""
        client = GeminiVisionClient(api_key="test-key", model="gemini-1.5-flash")

        with patch.object(
            client.client.aio.models,
            "generate_content",
            new_callable=AsyncMock,
            return_value=MagicMock(text='  {"detected": true}\n'),
        ) as mock_generate:
            result = await client.generate_text("Describe", image_data=IMAGE_B64)

        assert result == '{"detected": true}'
        call_kwargs = mock_generate.call_args.kwargs
        assert call_kwargs["model"] == "gemini-1.5-flash"
        assert call_kwargs["contents"][0] == "Describe"
        assert call_kwargs["config"].response_mime_type == "application/json"
        assert call_kwargs["config"].temperature == 0.1

    @pytest.mark.asyncio
    async def test_quota_error_is_flagged_as_rate_limit(self) -> None:
        client = GeminiVisionClient(api_key="test-key")

        with patch.object(
            client.client.aio.models,
            "generate_content",
            new_callable=AsyncMock,
            side_effect=RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"),
        ):
            with pytest.raises(LLMAppError) as exc:
                await client.generate_text("Describe", image_data=IMAGE_B64)

        assert exc.value.code == "llm_rate_limited"
        assert exc.value.details["http_status"] == 429
        assert is_rate_limit_error(exc.value)

    @pytest.mark.asyncio
    async def test_other_errors_are_wrapped(self) -> None:
        client = GeminiVisionClient(api_key="test-key")

        with patch.object(
            client.client.aio.models,
            "generate_content",
            new_callable=AsyncMock,
            side_effect=RuntimeError("connection reset"),
        ):
            with pytest.raises(LLMAppError) as exc:
                await client.generate_text("Describe", image_data=IMAGE_B64)

        assert exc.value.code == "llm_call_failed"
        assert not is_rate_limit_error(exc.value)

    @pytest.mark.asyncio
    async def test_empty_response_raises(self) -> None:
        client = GeminiVisionClient(api_key="test-key")

        with patch.object(
            client.client.aio.models,
            "generate_content",
            new_callable=AsyncMock,
            return_value=MagicMock(text=None),
        ):
            with pytest.raises(LLMAppError, match="empty response"):
                await client.generate_text("Describe", image_data=IMAGE_B64)

    @pytest.mark.asyncio
    async def test_invalid_base64_is_rejected_before_calling(self) -> None:
        client = GeminiVisionClient(api_key="test-key")

        with patch.object(
            client.client.aio.models, "generate_content", new_callable=AsyncMock
        ) as mock_generate:
            with pytest.raises(LLMAppError) as exc:
                await client.generate_text("Describe", image_data="abc")

        assert exc.value.code == "invalid_image_payload"
        mock_generate.assert_not_called()


class TestOpenAIVisionClient:
    """OpenAI-compatible client with chat completions mocked out."""

    @pytest.mark.asyncio
    async def test_generate_text_sends_image_as_data_url(self) -> None:
        mock_response = MagicMock()
        mock_response.choices = [MagicMock(message=MagicMock(content='{"itemName": "Can"}'))]

        client = OpenAIVisionClient(api_key="test-key", model="gpt-4o-mini")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=mock_response,
        ) as mock_create:
            result = await client.generate_text("Eco?", image_data=IMAGE_B64, seed=42)

        assert result == '{"itemName": "Can"}'
        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-4o-mini"
        assert call_kwargs["seed"] == 42
        user_content = call_kwargs["messages"][1]["content"]
        assert user_content[0] == {"type": "text", "text": "Eco?"}
        assert user_content[1]["image_url"]["url"] == f"data:image/jpeg;base64,{IMAGE_B64}"

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self) -> None:
        client = OpenAIVisionClient(api_key="test-key", model="gpt-4o-mini")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=RuntimeError("Too Many Requests"),
        ):
            with pytest.raises(LLMAppError) as exc:
                await client.generate_text("Eco?", image_data=IMAGE_B64)

        assert exc.value.code == "llm_rate_limited"

    @pytest.mark.asyncio
    async def test_empty_content_raises(self) -> None:
        mock_response = MagicMock()
        mock_response.choices = [MagicMock(message=MagicMock(content=""))]
        client = OpenAIVisionClient(api_key="test-key", model="gpt-4o-mini")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=mock_response,
        ):
            with pytest.raises(LLMAppError, match="empty response"):
                await client.generate_text("Eco?", image_data=IMAGE_B64)


class TestIsRateLimitError:
    """Provider throttling detection."""

    def test_status_code_attribute(self) -> None:
        exc = RuntimeError("nope")
        exc.status_code = 429  # type: ignore[attr-defined]

        assert is_rate_limit_error(exc)

    @pytest.mark.parametrize(
        "message",
        ["Rate limit reached", "You exceeded your current quota", "HTTP 429"],
    )
    def test_message_markers(self, message: str) -> None:
        assert is_rate_limit_error(RuntimeError(message))

    def test_unrelated_error(self) -> None:
        assert not is_rate_limit_error(RuntimeError("invalid argument"))


class TestVisionClientFactory:
    """Provider selection from settings."""

    def test_creates_gemini_client_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            settings, "llm", LLMSettings(provider="gemini", api_key="k", model="gemini-1.5-flash")
        )

        client = create_vision_client()

        assert isinstance(client, GeminiVisionClient)
        assert client.model == "gemini-1.5-flash"

    def test_creates_openai_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            settings,
            "llm",
            LLMSettings(
                provider="openai",
                api_key="k",
                model="anthropic/claude-3.5-sonnet",
                base_url="https://openrouter.ai/api/v1",
            ),
        )

        client = create_vision_client()

        assert isinstance(client, OpenAIVisionClient)
        assert client.model == "anthropic/claude-3.5-sonnet"

    @pytest.mark.parametrize("api_key", [None, "", "   "])
    def test_missing_api_key_raises_error(
        self, monkeypatch: pytest.MonkeyPatch, api_key: str | None
    ) -> None:
        monkeypatch.setattr(settings, "llm", LLMSettings(provider="gemini", api_key=api_key))

        with pytest.raises(ValidationAppError, match="requires LLM_API_KEY") as exc:
            create_vision_client()
        assert exc.value.code == "llm_missing_api_key"

    def test_sample_api_key_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            settings, "llm", LLMSettings(provider="gemini", api_key="your_gemini_api_key_here")
        )

        with pytest.raises(ValidationAppError) as exc:
            create_vision_client()
        assert exc.value.code == "llm_placeholder_api_key"

    def test_unknown_provider_raises_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "llm", LLMSettings(provider="unknown-provider", api_key="k"))

        with pytest.raises(ValidationAppError, match="Unknown LLM provider") as exc:
            create_vision_client()
        assert exc.value.code == "llm_unknown_provider"
