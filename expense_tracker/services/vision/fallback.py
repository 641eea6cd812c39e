"""
Vision Model Fallback Chain

Free vision models are often rate limited or temporarily down, so a
receipt is offered to an ordered list of models:

1. Each model gets the identical prompt
2. ANY failure (rate limit, auth, timeout, connection, empty answer)
   moves on to the next model; the same model is never retried
3. The first non-empty answer wins
4. If every model fails, AllModelsFailedError carries every error and the
   caller falls back to manual entry

The chain holds no state between scans beyond the shared SDK clients.
"""

from typing import Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from expense_tracker.config import Settings, get_settings
from expense_tracker.models.expense import VisionResult
from expense_tracker.services.vision.base import (
    RECEIPT_PROMPT,
    EmptyResponseError,
    VisionAuthenticationError,
    VisionModel,
    VisionModelError,
    VisionRateLimitError,
)
from expense_tracker.services.vision.gemini import GeminiVisionModel
from expense_tracker.services.vision.openrouter import (
    OpenRouterVisionModel,
    create_openrouter_client,
)


logger = structlog.get_logger(__name__)

FailureCallback = Callable[[VisionModelError], Awaitable[None]]


class AllModelsFailedError(Exception):
    """Every model in the chain failed for this image."""

    def __init__(self, errors: list[VisionModelError]):
        self.errors = errors
        message = f"All {len(errors)} vision models failed"
        if errors:
            message += f"; last error: {errors[-1]}"
        super().__init__(message)

    @property
    def last_error(self) -> Optional[VisionModelError]:
        return self.errors[-1] if self.errors else None

    @property
    def attempted_models(self) -> list[str]:
        return [error.model for error in self.errors]

    @property
    def error_code(self) -> str:
        """
        Classify the exhaustion for the caller.

        INVALID_API_KEY / RATE_LIMIT_EXCEEDED only when every model failed
        the same way; anything mixed is ALL_MODELS_FAILED.
        """
        if self.errors and all(isinstance(e, VisionAuthenticationError) for e in self.errors):
            return "INVALID_API_KEY"
        if self.errors and all(isinstance(e, VisionRateLimitError) for e in self.errors):
            return "RATE_LIMIT_EXCEEDED"
        return "ALL_MODELS_FAILED"

    @property
    def status_code(self) -> int:
        return {
            "INVALID_API_KEY": 401,
            "RATE_LIMIT_EXCEEDED": 429,
        }.get(self.error_code, 503)


class VisionModelFallbackChain:
    """
    Ordered list of vision models tried until one answers.
    """

    def __init__(
        self,
        models: list[VisionModel],
        prompt: str = RECEIPT_PROMPT,
    ):
        self._models = list(models)
        self._prompt = prompt

    @property
    def models(self) -> list[VisionModel]:
        return list(self._models)

    @property
    def model_names(self) -> list[str]:
        return [model.name for model in self._models]

    async def run(
        self,
        image: str,
        on_failure: Optional[FailureCallback] = None,
    ) -> VisionResult:
        """
        Get a free-text answer for the receipt image.

        Args:
            image: Receipt image as a data URI
            on_failure: Awaited with each model error (used for auditing)

        Returns:
            VisionResult with the raw answer and the full model name

        Raises:
            AllModelsFailedError: If no model produced a non-empty answer
        """
        errors: list[VisionModelError] = []

        for position, model in enumerate(self._models, start=1):
            try:
                text = await model.describe_receipt(image, self._prompt)
            except VisionModelError as e:
                error = e
            except Exception as e:
                # An SDK bug or unexpected payload must not stop the chain
                error = VisionModelError(model.name, f"Unexpected error: {e}")
            else:
                if text and text.strip():
                    logger.info(
                        "vision_model_succeeded",
                        model=model.name,
                        position=position,
                    )
                    return VisionResult(raw_text=text, model=model.name)
                error = EmptyResponseError(model.name, "Model returned an empty response")

            logger.warning(
                "vision_model_failed",
                model=model.name,
                position=position,
                error_code=error.code,
                error=error.message,
            )
            errors.append(error)
            if on_failure is not None:
                await on_failure(error)

        raise AllModelsFailedError(errors)


def build_fallback_chain(settings: Optional[Settings] = None) -> VisionModelFallbackChain:
    """
    Build the chain from configuration.

    OpenRouter models come first, in configured order, sharing one client.
    Gemini is appended when its API key is set. With nothing configured the
    chain is empty and every scan ends in AllModelsFailedError.
    """
    settings = settings or get_settings()
    models: list[VisionModel] = []

    try:
        openrouter = settings.openrouter
    except ValidationError as e:
        logger.warning("openrouter_not_configured", error=str(e))
    else:
        client = create_openrouter_client(openrouter, referer=settings.app.url_domain)
        models.extend(
            OpenRouterVisionModel(
                name,
                client,
                max_tokens=openrouter.max_tokens,
                temperature=openrouter.temperature,
            )
            for name in openrouter.models_list
        )

    gemini = settings.gemini
    if gemini.is_configured:
        models.append(GeminiVisionModel(gemini))

    logger.info("vision_chain_built", models=[model.name for model in models])
    return VisionModelFallbackChain(models)
