"""
Vision Model Base

Every vision provider is wrapped in a VisionModel that takes a receipt
image and the extraction prompt and returns the model's free-text answer.
Provider SDK errors are translated into the VisionModelError hierarchy so
the fallback chain can treat all providers alike.
"""

import base64
import binascii
import re
from abc import ABC, abstractmethod
from typing import Optional


RECEIPT_PROMPT = """You are reading a photo of a shopping receipt. The receipt may be in Hebrew, German or English.

Return ONLY a JSON object with exactly these two fields:
{"storeName": "<name of the store>", "totalAmount": <final total as a number>}

Rules:
- storeName: the business name, usually printed at the TOP of the receipt.
- totalAmount: the FINAL amount paid, usually at the BOTTOM, next to a word such as TOTAL, סה״כ, GESAMT or SUMME.
- Ignore subtotals, tax lines, discounts and individual item prices.
- totalAmount must be a plain number without a currency symbol, e.g. 45.50.
- Do not add any explanation before or after the JSON."""


DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$",
    re.DOTALL,
)


# =============================================================================
# ERRORS
# =============================================================================

class VisionModelError(Exception):
    """Base exception for a single vision model call."""

    code = "MODEL_ERROR"

    def __init__(self, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{model}: {message}")
        self.model = model
        self.message = message
        self.status_code = status_code


class VisionRateLimitError(VisionModelError):
    """Provider rejected the call with a rate limit / quota error."""
    code = "RATE_LIMITED"


class VisionAuthenticationError(VisionModelError):
    """API key missing, invalid or not allowed to use the model."""
    code = "INVALID_API_KEY"


class VisionTimeoutError(VisionModelError):
    code = "TIMEOUT"


class VisionConnectionError(VisionModelError):
    code = "CONNECTION_ERROR"


class EmptyResponseError(VisionModelError):
    """Model answered, but with no usable text."""
    code = "EMPTY_RESPONSE"


class InvalidImageError(ValueError):
    """The image payload is not a usable data URI or URL."""
    pass


# =============================================================================
# IMAGE HELPERS
# =============================================================================

def decode_data_uri(image: str) -> tuple[str, bytes]:
    """
    Split a base64 data URI into (mime_type, raw_bytes).

    Raises:
        InvalidImageError: If the payload is not a base64 image data URI
    """
    match = DATA_URI_PATTERN.match(image.strip())
    if not match or not match.group("mime").startswith("image/"):
        raise InvalidImageError("Image must be a base64 data URI (data:image/...;base64,...)")
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Image data is not valid base64: {e}")
    if not data:
        raise InvalidImageError("Image data is empty")
    return match.group("mime"), data


def image_payload_size(image: str) -> int:
    """Approximate decoded size in bytes of a data URI (or raw length for URLs)."""
    if image.startswith("data:") and "," in image:
        encoded = image.split(",", 1)[1]
        return len(encoded) * 3 // 4
    return len(image)


# =============================================================================
# MODEL INTERFACE
# =============================================================================

class VisionModel(ABC):
    """A single named vision model."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def describe_receipt(self, image: str, prompt: str) -> str:
        """
        Ask the model about the receipt image.

        Args:
            image: Image as a data URI (or URL for providers that fetch it)
            prompt: The extraction prompt

        Returns:
            Non-empty response text

        Raises:
            VisionModelError: On any provider failure or empty answer
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
