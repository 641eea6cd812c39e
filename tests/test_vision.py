"""
Tests for the vision models and the fallback chain.

SDK clients are mocked; no network calls.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions

from conftest import SAMPLE_IMAGE, FakeVisionModel
from expense_tracker.config import GeminiSettings, Settings
from expense_tracker.config.settings import DEFAULT_VISION_MODELS
from expense_tracker.services.vision import (
    RECEIPT_PROMPT,
    AllModelsFailedError,
    EmptyResponseError,
    GeminiVisionModel,
    InvalidImageError,
    OpenRouterVisionModel,
    VisionAuthenticationError,
    VisionConnectionError,
    VisionModelError,
    VisionModelFallbackChain,
    VisionRateLimitError,
    VisionTimeoutError,
    build_fallback_chain,
    decode_data_uri,
    image_payload_size,
)
from expense_tracker.services.vision import gemini as gemini_module


OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _status_response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", OPENROUTER_URL))


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _openrouter_model(create: AsyncMock) -> OpenRouterVisionModel:
    client = MagicMock()
    client.chat.completions.create = create
    return OpenRouterVisionModel("qwen/qwen2.5-vl-72b-instruct:free", client)


class TestImageHelpers:
    """Tests for data URI handling."""

    def test_decode_data_uri(self):
        mime_type, data = decode_data_uri(SAMPLE_IMAGE)
        assert mime_type == "image/png"
        assert data.startswith(b"\x89PNG")

    def test_decode_rejects_non_image(self):
        with pytest.raises(InvalidImageError):
            decode_data_uri("data:text/plain;base64,aGVsbG8=")
        with pytest.raises(InvalidImageError):
            decode_data_uri("https://example.com/receipt.jpg")

    def test_payload_size_is_decoded_size(self):
        assert image_payload_size("data:image/png;base64," + "A" * 400) == 300


class TestOpenRouterVisionModel:
    """Tests for the OpenRouter adapter."""

    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        create = AsyncMock(return_value=_completion('{"storeName": "A", "totalAmount": 1}'))
        model = _openrouter_model(create)

        text = await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

        assert text == '{"storeName": "A", "totalAmount": 1}'
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "qwen/qwen2.5-vl-72b-instruct:free"
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": RECEIPT_PROMPT}
        assert content[1]["image_url"]["url"] == SAMPLE_IMAGE

    @pytest.mark.asyncio
    async def test_rate_limit_is_mapped(self):
        error = openai.RateLimitError("rate limited", response=_status_response(429), body=None)
        model = _openrouter_model(AsyncMock(side_effect=error))

        with pytest.raises(VisionRateLimitError) as exc_info:
            await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)
        assert exc_info.value.status_code == 429
        assert exc_info.value.code == "RATE_LIMITED"

    @pytest.mark.asyncio
    async def test_auth_failure_is_mapped(self):
        error = openai.AuthenticationError("bad key", response=_status_response(401), body=None)
        model = _openrouter_model(AsyncMock(side_effect=error))

        with pytest.raises(VisionAuthenticationError):
            await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

    @pytest.mark.asyncio
    async def test_timeout_is_mapped(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", OPENROUTER_URL))
        model = _openrouter_model(AsyncMock(side_effect=error))

        with pytest.raises(VisionTimeoutError):
            await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

    @pytest.mark.asyncio
    async def test_connection_error_is_mapped(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", OPENROUTER_URL))
        model = _openrouter_model(AsyncMock(side_effect=error))

        with pytest.raises(VisionConnectionError):
            await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

    @pytest.mark.asyncio
    async def test_empty_choices_is_empty_response(self):
        model = _openrouter_model(AsyncMock(return_value=SimpleNamespace(choices=[])))

        with pytest.raises(EmptyResponseError):
            await model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)


class TestGeminiVisionModel:
    """Tests for the direct Gemini adapter."""

    @pytest.fixture
    def gemini_model(self, monkeypatch):
        monkeypatch.setattr(gemini_module.genai, "configure", MagicMock())
        monkeypatch.setattr(gemini_module.genai, "GenerativeModel", MagicMock())
        return GeminiVisionModel(GeminiSettings(api_key="test-key"))

    @pytest.mark.asyncio
    async def test_sends_inline_image(self, gemini_model):
        gemini_model._model.generate_content_async = AsyncMock(
            return_value=SimpleNamespace(text="Store: Lidl, Total: 5.00")
        )

        text = await gemini_model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

        assert text == "Store: Lidl, Total: 5.00"
        parts = gemini_model._model.generate_content_async.await_args.args[0]
        assert parts[0] == RECEIPT_PROMPT
        assert parts[1]["mime_type"] == "image/png"
        assert parts[1]["data"].startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_quota_error_is_rate_limit(self, gemini_model):
        gemini_model._model.generate_content_async = AsyncMock(
            side_effect=google_exceptions.ResourceExhausted("quota")
        )

        with pytest.raises(VisionRateLimitError):
            await gemini_model.describe_receipt(SAMPLE_IMAGE, RECEIPT_PROMPT)

    @pytest.mark.asyncio
    async def test_invalid_image_is_model_error(self, gemini_model):
        with pytest.raises(VisionModelError):
            await gemini_model.describe_receipt("not-a-data-uri", RECEIPT_PROMPT)


class TestFallbackChain:
    """Tests for ordered model fallback."""

    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self):
        first = FakeVisionModel("a/first", response="answer")
        second = FakeVisionModel("b/second", response="other")

        result = await VisionModelFallbackChain([first, second]).run(SAMPLE_IMAGE)

        assert result.raw_text == "answer"
        assert result.model == "a/first"
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_falls_through_to_next_model(self):
        first = FakeVisionModel("a/first", error=VisionRateLimitError("a/first", "429", 429))
        second = FakeVisionModel("b/second", response="answer")
        failures = []

        async def on_failure(error):
            failures.append(error)

        result = await VisionModelFallbackChain([first, second]).run(
            SAMPLE_IMAGE, on_failure=on_failure
        )

        assert result.model == "b/second"
        assert result.short_model == "second"
        assert first.calls == 1
        assert [f.model for f in failures] == ["a/first"]

    @pytest.mark.asyncio
    async def test_every_model_gets_the_same_prompt(self):
        first = FakeVisionModel("a/first", error=VisionTimeoutError("a/first", "slow"))
        second = FakeVisionModel("b/second", response="answer")

        await VisionModelFallbackChain([first, second], prompt="PROMPT").run(SAMPLE_IMAGE)

        assert first.prompts == ["PROMPT"]
        assert second.prompts == ["PROMPT"]

    @pytest.mark.asyncio
    async def test_blank_answer_counts_as_failure(self):
        first = FakeVisionModel("a/first", response="   ")
        second = FakeVisionModel("b/second", response="answer")
        failures = []

        async def on_failure(error):
            failures.append(error)

        result = await VisionModelFallbackChain([first, second]).run(
            SAMPLE_IMAGE, on_failure=on_failure
        )

        assert result.model == "b/second"
        assert isinstance(failures[0], EmptyResponseError)

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_stop_chain(self):
        first = FakeVisionModel("a/first", error=RuntimeError("boom"))
        second = FakeVisionModel("b/second", response="answer")

        result = await VisionModelFallbackChain([first, second]).run(SAMPLE_IMAGE)

        assert result.model == "b/second"

    @pytest.mark.asyncio
    async def test_exhaustion_carries_last_error(self):
        models = [
            FakeVisionModel("a/first", error=VisionRateLimitError("a/first", "429", 429)),
            FakeVisionModel("b/second", error=VisionTimeoutError("b/second", "timed out")),
        ]

        with pytest.raises(AllModelsFailedError) as exc_info:
            await VisionModelFallbackChain(models).run(SAMPLE_IMAGE)

        error = exc_info.value
        assert error.attempted_models == ["a/first", "b/second"]
        assert error.last_error.message == "timed out"
        assert error.error_code == "ALL_MODELS_FAILED"
        assert error.status_code == 503

    def test_all_auth_failures_are_invalid_key(self):
        error = AllModelsFailedError([
            VisionAuthenticationError("a", "401"),
            VisionAuthenticationError("b", "401"),
        ])
        assert error.error_code == "INVALID_API_KEY"
        assert error.status_code == 401

    def test_all_rate_limits_are_rate_limit_exceeded(self):
        error = AllModelsFailedError([VisionRateLimitError("a", "429")])
        assert error.error_code == "RATE_LIMIT_EXCEEDED"
        assert error.status_code == 429

    @pytest.mark.asyncio
    async def test_empty_chain_fails(self):
        with pytest.raises(AllModelsFailedError) as exc_info:
            await VisionModelFallbackChain([]).run(SAMPLE_IMAGE)
        assert exc_info.value.error_code == "ALL_MODELS_FAILED"
        assert exc_info.value.last_error is None


class TestBuildFallbackChain:
    """Tests for building the chain from configuration."""

    def test_openrouter_models_in_configured_order(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")
        monkeypatch.delenv("OPENROUTER_MODELS", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        chain = build_fallback_chain(Settings())

        assert chain.model_names == DEFAULT_VISION_MODELS.split(",")
        assert all(isinstance(m, OpenRouterVisionModel) for m in chain.models)

    def test_unconfigured_chain_is_empty(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        chain = build_fallback_chain(Settings())

        assert chain.model_names == []
