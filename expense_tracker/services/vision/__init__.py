"""Vision model services for receipt scanning."""

from expense_tracker.services.vision.base import (
    RECEIPT_PROMPT,
    EmptyResponseError,
    InvalidImageError,
    VisionAuthenticationError,
    VisionConnectionError,
    VisionModel,
    VisionModelError,
    VisionRateLimitError,
    VisionTimeoutError,
    decode_data_uri,
    image_payload_size,
)
from expense_tracker.services.vision.fallback import (
    AllModelsFailedError,
    VisionModelFallbackChain,
    build_fallback_chain,
)
from expense_tracker.services.vision.gemini import GeminiVisionModel
from expense_tracker.services.vision.openrouter import (
    OpenRouterVisionModel,
    create_openrouter_client,
)

__all__ = [
    "RECEIPT_PROMPT",
    "AllModelsFailedError",
    "EmptyResponseError",
    "GeminiVisionModel",
    "InvalidImageError",
    "OpenRouterVisionModel",
    "VisionAuthenticationError",
    "VisionConnectionError",
    "VisionModel",
    "VisionModelError",
    "VisionModelFallbackChain",
    "VisionRateLimitError",
    "VisionTimeoutError",
    "build_fallback_chain",
    "create_openrouter_client",
    "decode_data_uri",
    "image_payload_size",
]
