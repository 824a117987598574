"""
Product Shot Generator Pipeline
Generates (or edits) a model shot for a workspace and records it in the
workspace history.
"""
from __future__ import annotations
from typing import Optional
import logging

from ..exceptions import ProjectStoreError
from ..models.workspace import GenerationConfig, GenerationResult, Workspace
from ..services.generation_service import GenerationService
from ..services.project_service import ProjectService

logger = logging.getLogger(__name__)


def generate_product_shot(
    workspace: Workspace,
    config: GenerationConfig,
    *,
    generation_service: Optional[GenerationService] = None,
    project_service: Optional[ProjectService] = None,
) -> GenerationResult:
    """
    1. Resolve stored asset references of the workspace inputs to inline data
    2. Call the generation API (edit mode when config.previous_image is set)
    3. Append the result to workspace.history and select it

    Args:
        workspace: Workspace whose base/product images are used
        config: aspect ratio, prompt, optional previous image
        generation_service: Service for generation API calls
        project_service: Service resolving asset:// references

    Returns:
        GenerationResult: the new result (image as data URI)
    """
    generation_service = generation_service or GenerationService()
    project_service = project_service or ProjectService()

    if workspace.base_image is None and not workspace.product_images:
        raise ValueError("A base image or at least one product image is required")

    # a missing base is fatal, missing products / previous image are dropped
    base = project_service.inline_asset(workspace.base_image) if workspace.base_image else None

    products = []
    for product in workspace.product_images:
        try:
            products.append(project_service.inline_asset(product))
        except ProjectStoreError as err:
            logger.warning(f"Failed to load product image, skipping: {err}")
    if base is None and not products:
        raise ValueError("None of the product images could be loaded")

    if config.previous_image:
        try:
            previous_image = project_service.inline_url(config.previous_image)
        except ProjectStoreError as err:
            logger.warning(f"Failed to load previous image, generating from scratch: {err}")
            previous_image = None
        config = GenerationConfig(
            aspect_ratio=config.aspect_ratio,
            prompt=config.prompt,
            previous_image=previous_image,
            image_size=config.image_size,
        )

    logger.info(
        f"Generating product shot for '{workspace.name}': base={base is not None}, "
        f"products={len(products)}, edit={bool(config.previous_image)}"
    )
    result = generation_service.generate_product_shot(base, products, config)

    workspace.history.append(result)
    workspace.active_version_index = len(workspace.history) - 1
    return result
