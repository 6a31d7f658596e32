"""
Gemini image generation for Preview nodes.

Sends the sprite prompt plus reference images as inline parts and returns
every part of the first candidate so the gateway can pick the image.
"""

import logging
from typing import Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .pipeline.errors import RateLimited, TransportError
from .pipeline.gateway import ImageResponse, ResponsePart
from .pipeline.models import ImageRef

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image"
DEFAULT_TEMPERATURE = 0.4


class GeminiImageClient:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        if not api_key:
            logger.warning("GEMINI_API_KEY not set, image generation will fail")
        genai.configure(api_key=api_key)
        self.model_name = model
        self._model = genai.GenerativeModel(
            model_name=model,
            generation_config={"temperature": temperature},
        )

    async def generate_image(self, prompt: str, references: Sequence[ImageRef]) -> ImageResponse:
        parts: list = [prompt]
        for ref in references:
            parts.append({"mime_type": ref.mime_type, "data": ref.data})

        logger.info(f"Gemini {self.model_name}: {len(references)} reference images")
        try:
            response = await self._model.generate_content_async(parts)
        except google_exceptions.ResourceExhausted as e:
            raise RateLimited(f"Gemini quota exceeded: {e.message}", status_code=429) from e
        except google_exceptions.GoogleAPIError as e:
            status = getattr(e, "code", None)
            raise TransportError(f"Gemini API error: {e}", status_code=status) from e

        if not response.candidates:
            return ImageResponse(parts=[])

        out = []
        for part in response.candidates[0].content.parts:
            inline = part.inline_data
            if inline and inline.mime_type:
                out.append(ResponsePart(mime_type=inline.mime_type, data=inline.data))
            elif part.text:
                out.append(ResponsePart(text=part.text))
        return ImageResponse(parts=out)
