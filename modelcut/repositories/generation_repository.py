# repositories/generation_repository.py
from __future__ import annotations
import logging
from typing import List, Optional, Tuple

from google.genai import errors as genai_errors
from google.genai import types
import httpx

from ..models.generation_engine import GenerationEngine
from ..exceptions import GenerationError, GenerationTimeoutError

logger = logging.getLogger(__name__)


class GenerationRepository:
    """
    One generate_content round trip.

    • Builds request parts from text and raw image bytes.
    • Pulls the first inline image (and first text line) out of the response.
    """

    def __init__(self, engine: GenerationEngine | None = None) -> None:
        self.engine = engine or GenerationEngine()

    # ---------- private helpers ----------
    @staticmethod
    def _extract(response) -> Tuple[Optional[bytes], Optional[str], str]:
        image_bytes, mime_type, summary = None, None, ""
        for candidate in response.candidates or []:
            content = candidate.content
            for part in (content.parts if content else None) or []:
                if part.inline_data is not None and part.inline_data.data and image_bytes is None:
                    image_bytes = part.inline_data.data
                    mime_type = part.inline_data.mime_type or "image/png"
                elif part.text and not summary:
                    summary = part.text.strip().split("\n")[0]
            if image_bytes is not None:
                break
        return image_bytes, mime_type, summary

    # ---------- public API ----------
    @staticmethod
    def text_part(text: str) -> types.Part:
        return types.Part.from_text(text=text)

    @staticmethod
    def image_part(data: bytes, mime_type: str = "image/png") -> types.Part:
        return types.Part.from_bytes(data=data, mime_type=mime_type)

    def generate_image(
            self,
            parts: List[types.Part],
            system_instruction: str | None = None,
            aspect_ratio: str = "1:1",
            image_size: str = "1K",
    ) -> Tuple[bytes, str, str]:
        """
        Returns (image bytes, mime type, one-line summary).
        Raises GenerationError when the call fails or yields no image.
        """
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_modalities=["IMAGE", "TEXT"],
            image_config=types.ImageConfig(aspect_ratio=aspect_ratio, image_size=image_size),
        )
        try:
            response = self.engine.client.models.generate_content(
                model=self.engine.model_name,
                contents=[types.Content(role="user", parts=parts)],
                config=config,
            )
        except httpx.TimeoutException as err:
            raise GenerationTimeoutError("Generation request timed out", cause=err)
        except genai_errors.APIError as err:
            raise GenerationError(
                "Generation API request failed", cause=err,
                context={"code": getattr(err, "code", None)},
            )

        image_bytes, mime_type, summary = self._extract(response)
        if image_bytes is None:
            raise GenerationError(
                "Generation returned no image", context={"summary": summary}
            )
        logger.debug(f"Received {len(image_bytes)} bytes ({mime_type}) from {self.engine.model_name}")
        return image_bytes, mime_type, summary
