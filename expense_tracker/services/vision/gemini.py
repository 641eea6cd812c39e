"""
Direct Gemini Vision Model

Optional last link of the fallback chain, used when GEMINI_API_KEY is set.
Gemini takes the image as inline bytes, so the data URI is decoded first.
"""

from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from expense_tracker.config import GeminiSettings, get_settings
from expense_tracker.services.vision.base import (
    EmptyResponseError,
    InvalidImageError,
    VisionAuthenticationError,
    VisionConnectionError,
    VisionModel,
    VisionModelError,
    VisionRateLimitError,
    VisionTimeoutError,
    decode_data_uri,
)


class GeminiVisionModel(VisionModel):

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        super().__init__(self._settings.model_name)
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def describe_receipt(self, image: str, prompt: str) -> str:
        try:
            mime_type, data = decode_data_uri(image)
        except InvalidImageError as e:
            raise VisionModelError(self.name, str(e))

        try:
            response = await self._model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": data}]
            )
        except (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests) as e:
            raise VisionRateLimitError(self.name, str(e), status_code=429)
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise VisionAuthenticationError(self.name, str(e), status_code=401)
        except google_exceptions.DeadlineExceeded as e:
            raise VisionTimeoutError(self.name, str(e))
        except google_exceptions.ServiceUnavailable as e:
            raise VisionConnectionError(self.name, str(e))
        except google_exceptions.GoogleAPIError as e:
            raise VisionModelError(self.name, str(e))

        try:
            text = response.text
        except ValueError:
            # Raised when the candidate was blocked and has no text parts
            text = ""
        if not text or not text.strip():
            raise EmptyResponseError(self.name, "Model returned an empty response")
        return text
