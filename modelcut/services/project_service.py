from __future__ import annotations
from pathlib import Path
from typing import Callable, List, Optional
import logging

from ..models.image import Image
from ..models.workspace import ImageAsset, Workspace
from ..repositories.project_repository import ProjectRepository
from .image_service import ImageService

logger = logging.getLogger(__name__)


class ProjectService:
    """
    Business logic for workspaces and their stored images.
    Delegates persistence to ProjectRepository.
    """

    def __init__(self, repository: ProjectRepository | None = None,
                 image_service: ImageService | None = None):
        self.repository = repository or ProjectRepository()
        self.image_service = image_service or ImageService()

    # ─── workspaces ───────────────────────────────────────────────
    def list_projects(self) -> List[Workspace]:
        return self.repository.fetch_projects()

    def get_project(self, project_id: str) -> Workspace:
        return self.repository.get_project(project_id)

    def save_project(self, workspace: Workspace,
                     on_progress: Optional[Callable[[str], None]] = None) -> str:
        return self.repository.save_project(workspace, on_progress)

    def update_project(self, project_id: str, workspace: Workspace,
                       on_progress: Optional[Callable[[str], None]] = None) -> Workspace:
        return self.repository.update_project(project_id, workspace, on_progress)

    def delete_project(self, project_id: str) -> None:
        self.repository.delete_project(project_id)

    # ─── images ───────────────────────────────────────────────────
    def store_image(self, image: Image, folder: str = "results") -> str:
        """Persist a finished image as PNG. Returns its stable reference."""
        return self.repository.save_asset(self.image_service.encode_png(image), folder, ".png")

    def load_image(self, url: str) -> Image:
        """Decode a store reference, data URI, http(s) URL or local path."""
        if self.repository.is_asset_reference(url):
            return self.image_service.decode(self.repository.load_asset(url))
        return self.image_service.resolve(url)

    def asset_path(self, reference: str) -> Path:
        return self.repository.asset_path(reference)

    def inline_asset(self, asset: ImageAsset) -> ImageAsset:
        """Copy of *asset* whose store reference is swapped for a data URI."""
        if not self.repository.is_asset_reference(asset.url):
            return asset
        return ImageAsset(url=self.inline_url(asset.url), id=asset.id,
                          name=asset.name, mime_type=asset.mime_type)

    def inline_url(self, url: str) -> str:
        if not self.repository.is_asset_reference(url):
            return url
        data = self.repository.load_asset(url)
        mime_type = self.image_service.guess_mime(url)
        return self.image_service.image_repository.bytes_to_data_uri(data, mime_type)
