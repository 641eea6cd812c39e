"""
OpenRouter Vision Models

All OpenRouter models share one AsyncOpenAI client pointed at the
OpenRouter endpoint. The SDK's own retries are disabled: a failing model
is skipped, not retried, and the fallback chain moves on.
"""

from typing import Optional

import openai
from openai import AsyncOpenAI

from expense_tracker.config import OpenRouterSettings, get_settings
from expense_tracker.services.vision.base import (
    EmptyResponseError,
    VisionAuthenticationError,
    VisionConnectionError,
    VisionModel,
    VisionModelError,
    VisionRateLimitError,
    VisionTimeoutError,
)


def create_openrouter_client(
    settings: Optional[OpenRouterSettings] = None,
    referer: Optional[str] = None,
) -> AsyncOpenAI:
    """
    Create the process-wide OpenRouter client.

    Args:
        settings: OpenRouter settings (loaded from the environment if None)
        referer: Public app origin sent as HTTP-Referer
    """
    settings = settings or get_settings().openrouter
    referer = referer or get_settings().app.url_domain
    return AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
        default_headers={
            "HTTP-Referer": referer,
            "X-Title": settings.app_title,
        },
    )


class OpenRouterVisionModel(VisionModel):
    """One OpenRouter-hosted vision model, e.g. qwen/qwen2.5-vl-72b-instruct:free."""

    def __init__(
        self,
        name: str,
        client: AsyncOpenAI,
        max_tokens: int = 300,
        temperature: float = 0.1,
    ):
        super().__init__(name)
        self._client = client
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def describe_receipt(self, image: str, prompt: str) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self.name,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image}},
                        ],
                    }
                ],
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except openai.RateLimitError as e:
            raise VisionRateLimitError(self.name, str(e), status_code=e.status_code)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise VisionAuthenticationError(self.name, str(e), status_code=e.status_code)
        except openai.APITimeoutError as e:
            raise VisionTimeoutError(self.name, str(e))
        except openai.APIConnectionError as e:
            raise VisionConnectionError(self.name, str(e))
        except openai.APIStatusError as e:
            raise VisionModelError(self.name, str(e), status_code=e.status_code)
        except openai.OpenAIError as e:
            raise VisionModelError(self.name, str(e))

        # OpenRouter can answer 200 with an error body and no choices
        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise EmptyResponseError(self.name, "Model returned an empty response")
        return content
