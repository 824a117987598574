# pipeline/background_remover.py
from __future__ import annotations
from typing import List, Optional
import logging
import os

from dotenv import load_dotenv

from ..models.image import Image
from ..services.chroma_key_filter import ChromaKeyFilter
from ..services.green_screen_compositor import GreenScreenCompositor
from ..services.image_service import ImageService

# ------------------------------------------------------------------
# env‑vars
load_dotenv()
KEY_COLOR = os.getenv("CHROMA_KEY_COLOR", "#00FF00")

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
def remove_background(
    image: Image,
    *,
    compositor: Optional[GreenScreenCompositor] = None,
    chroma_key_filter: Optional[ChromaKeyFilter] = None,
    color: str = KEY_COLOR,
    tolerance: Optional[float] = None,
    preserve_shadows: bool = True,
) -> Image:
    """
    Two-stage background removal:
        • compositor re-renders the subject on a flat *color* backdrop
        • chroma_key_filter keys that backdrop to transparency
    If the compositor raises, the filter never runs.
    Returns a new RGBA Image.
    """
    compositor = compositor or GreenScreenCompositor()
    chroma_key_filter = chroma_key_filter or ChromaKeyFilter()

    green = compositor.replace_background(image, color, preserve_shadows=preserve_shadows)
    logger.info(f"Green-screen render received: {green.width}x{green.height}")

    keyed = chroma_key_filter.apply(green, tolerance)
    keyed.path = image.path
    return keyed


def remove_backgrounds(
    gallery: List[Image],
    *,
    compositor: Optional[GreenScreenCompositor] = None,
    chroma_key_filter: Optional[ChromaKeyFilter] = None,
    image_service: Optional[ImageService] = None,
    color: str = KEY_COLOR,
    tolerance: Optional[float] = None,
    preserve_shadows: bool = True,
) -> List[Image]:
    """
    For every Image in *gallery*:
        • run remove_background
        • update pixels in-memory (preserving original)
    Returns the same Image objects with updated pixels.
    """
    compositor = compositor or GreenScreenCompositor()
    chroma_key_filter = chroma_key_filter or ChromaKeyFilter()
    image_service = image_service or ImageService()

    for i, img in enumerate(gallery, 1):
        logger.info(f"Removing background {i}/{len(gallery)}")
        # 1. remove BG → new pixels
        keyed = remove_background(img, compositor=compositor,
                                  chroma_key_filter=chroma_key_filter,
                                  color=color, tolerance=tolerance,
                                  preserve_shadows=preserve_shadows)

        # 2. update pixels in-memory while preserving original
        image_service.apply_pipeline_modification(img, keyed.pixels)

    return gallery
