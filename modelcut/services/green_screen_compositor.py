from __future__ import annotations
from typing import Tuple
import logging
import os
import re

from dotenv import load_dotenv

from ..models.image import Image
from .generation_service import GenerationService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

_SYSTEM_INSTRUCTION = """
You are a precise photo retoucher. Replace ONLY the background.
The subject (model, clothing, products, hair, hands) stays pixel-for-pixel
identical: same pose, colors, lighting, framing and aspect ratio.
The new background is one perfectly flat, uniform color with no gradient,
texture, shadow or vignette.
"""


class GreenScreenCompositor:
    """
    Asks the generation API to re-render a subject against a flat backdrop
    (pure green by default), ready for ChromaKeyFilter.
    """

    _DEFAULT_COLOR: str = "#00FF00"

    def __init__(self, generation_service: GenerationService | None = None):
        self.generation_service = generation_service or GenerationService()
        self.default_color = os.getenv("CHROMA_KEY_COLOR", self._DEFAULT_COLOR)

    @staticmethod
    def parse_color(color: str) -> Tuple[int, int, int]:
        """'#RRGGBB' → (r, g, b). Raises ValueError for anything else."""
        if not isinstance(color, str) or not _HEX_COLOR.match(color):
            raise ValueError(f"Expected a #RRGGBB color, got {color!r}")
        return int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16)

    @staticmethod
    def _aspect_ratio(image: Image) -> str:
        """Closest ratio string the API accepts for this image."""
        ratios = {"1:1": 1.0, "3:4": 3 / 4, "4:3": 4 / 3, "9:16": 9 / 16, "16:9": 16 / 9}
        actual = image.width / image.height
        return min(ratios, key=lambda k: abs(ratios[k] - actual))

    def replace_background(self, image: Image, color: str | None = None,
                           preserve_shadows: bool = True) -> Image:
        """
        Returns a new Image with the background replaced by *color*.
        With preserve_shadows=False the render drops the subject's cast shadows.
        Upstream failures propagate; nothing is retried.
        """
        color = color or self.default_color
        r, g, b = self.parse_color(color)
        shadows = ("Preserve natural shadows cast by the subject." if preserve_shadows
                   else "Remove all shadows.")
        instruction = (
            f"Replace the entire background of this image with a solid, uniform "
            f"{color.upper()} (RGB {r}, {g}, {b}) backdrop. Keep the subject exactly as it is, "
            f"including fine hair strands and semi-transparent edges. {shadows}"
        )
        logger.info(f"Requesting {color.upper()} backdrop for {image.width}x{image.height} image")
        return self.generation_service.edit_image(
            image,
            instruction,
            system_instruction=_SYSTEM_INSTRUCTION,
            aspect_ratio=self._aspect_ratio(image),
        )
