from __future__ import annotations
from typing import List, Optional
import logging
import os

from dotenv import load_dotenv

from ..models.image import Image
from ..models.workspace import GenerationConfig, GenerationResult, ImageAsset
from ..repositories.generation_repository import GenerationRepository
from ..exceptions import GenerationError, ImageDecodeError
from .image_service import ImageService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


_SYSTEM_WITH_BASE = """
You are a creative director for a fashion and beauty product studio.
1. Keep the camera distance, zoom and cropping of the base image.
2. Cosmetics are held delicately near the face or hands; accessories sit
   naturally on shoulder, hand or face; clothing fits the model's anatomy.
3. Keep the base model's pose. Change appearance only when asked.
4. The result must look like a real professional photograph.
"""

_SYSTEM_NO_BASE = """
You are a creative director producing model shots for product advertising.
Every image includes a human model showcasing the product.
Beauty products: clean soft backgrounds, natural fresh makeup, soft light.
Fashion products: editorial styling with the item as the hero.
Professional campaign-quality photography.
"""

_EDIT_MODE = """
EDIT MODE: the previous generated image is attached last. Keep its model,
pose, composition, lighting and style; apply ONLY the requested changes.
"""


class GenerationService:
    """
    Business-level calls to the image-generation API.
    *   Works with Image objects and ImageAsset urls; never persists anything.
    """

    def __init__(self,
                 repository: GenerationRepository | None = None,
                 image_service: ImageService | None = None):
        self.repository = repository or GenerationRepository()
        self.image_service = image_service or ImageService()
        self.default_image_size = os.getenv("DEFAULT_IMAGE_SIZE", "1K")

    # ─── Public API ────────────────────────────────────────────────
    def edit_image(self, image: Image, instruction: str,
                   system_instruction: str | None = None,
                   aspect_ratio: str = "1:1") -> Image:
        """
        Send *image* with *instruction* and decode the returned image.
        """
        parts = [
            self.repository.text_part(instruction),
            self.repository.image_part(self.image_service.encode_png(image), "image/png"),
        ]
        data, mime_type, _ = self.repository.generate_image(
            parts,
            system_instruction=system_instruction,
            aspect_ratio=aspect_ratio,
            image_size=self.default_image_size,
        )
        try:
            return self.image_service.decode(data)
        except ImageDecodeError as err:
            raise GenerationError("Generation returned an undecodable image",
                                  cause=err, context={"mime_type": mime_type})

    def generate_product_shot(
            self,
            base_image: Optional[ImageAsset],
            product_images: List[ImageAsset],
            config: GenerationConfig,
    ) -> GenerationResult:
        """
        Create (or, with config.previous_image, edit) a model shot featuring
        the products. Returns a GenerationResult holding a data URI.

        A base image that cannot be loaded is fatal; broken product or
        previous images are skipped with a warning.
        """
        has_base = base_image is not None
        editing = bool(config.previous_image)

        parts = [self.repository.text_part(self._user_prompt(has_base, editing, config.prompt))]

        if has_base:
            try:
                data, mime_type = self.image_service.resolve_bytes(base_image.url)
            except (ImageDecodeError, FileNotFoundError) as err:
                raise GenerationError("Failed to process base image", cause=err)
            parts.append(self.repository.image_part(data, base_image.mime_type or mime_type))

        for product in product_images:
            try:
                data, mime_type = self.image_service.resolve_bytes(product.url)
            except (ImageDecodeError, FileNotFoundError) as err:
                logger.warning(f"Failed to process product image, skipping: {err}")
                continue
            parts.append(self.repository.image_part(data, product.mime_type or mime_type))

        if editing:
            try:
                data, mime_type = self.image_service.resolve_bytes(config.previous_image)
                parts.append(self.repository.image_part(data, mime_type))
            except (ImageDecodeError, FileNotFoundError) as err:
                logger.warning(f"Failed to process previous image: {err}")

        data, mime_type, summary = self.repository.generate_image(
            parts,
            system_instruction=_SYSTEM_WITH_BASE if has_base else _SYSTEM_NO_BASE,
            aspect_ratio=config.aspect_ratio.api_ratio,
            image_size=config.image_size or self.default_image_size,
        )
        image_url = self.image_service.image_repository.bytes_to_data_uri(data, mime_type)
        logger.info(f"Generated product shot ({mime_type}, {len(data)} bytes)")
        return GenerationResult(
            image_url=image_url,
            summary=summary,
            prompt=config.prompt,
            aspect_ratio=config.aspect_ratio,
        )

    # ─── Internal helpers ──────────────────────────────────────────
    @staticmethod
    def _user_prompt(has_base: bool, editing: bool, request: str) -> str:
        edit = _EDIT_MODE if editing else ""
        if has_base:
            return (
                f"{edit}\nINSTRUCTION: Integrate the provided products into the scene.\n"
                "BEHAVIOR: Small items are held by the model as in a professional beauty commercial.\n"
                f"SPECIFIC REQUESTS: {request or 'Apply products naturally and keep the overall aesthetic.'}"
            )
        instruction = ("Edit the previous image based on the request." if editing
                       else "Create a model shot featuring a model showcasing the provided product(s).")
        return (
            f"{edit}\nINSTRUCTION: {instruction}\n"
            f"SPECIFIC REQUESTS: {request or 'Create a professional model shot for this product category.'}"
        )
