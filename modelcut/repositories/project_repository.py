from __future__ import annotations
from pathlib import Path
from typing import Callable, List, Optional, Union
import json
import logging
import mimetypes
import os
import uuid

from dotenv import load_dotenv

from ..models.workspace import GenerationResult, ImageAsset, Workspace, now_ms
from ..exceptions import ProjectNotFoundError, ProjectStoreError
from .image_repository import ImageRepository

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

ASSET_SCHEME = "asset://"

ProgressCallback = Optional[Callable[[str], None]]


class ProjectRepository:
    """
    Filesystem-backed project store.

    <root>/projects/<id>.json          workspace documents
    <root>/assets/<folder>/<name>.<ext> image payloads, referenced as asset://<folder>/<name>.<ext>
    """

    def __init__(self, root: Union[str, Path, None] = None):
        self.root = Path(root or os.getenv("PROJECT_STORE_DIR", "data/project_store"))
        self.projects_dir = self.root / "projects"
        self.assets_dir = self.root / "assets"
        self.projects_dir.mkdir(parents=True, exist_ok=True)
        self.assets_dir.mkdir(parents=True, exist_ok=True)
        self.image_repository = ImageRepository()

    # ─── assets ───────────────────────────────────────────────────────
    @staticmethod
    def is_asset_reference(url: str | None) -> bool:
        return bool(url) and url.startswith(ASSET_SCHEME)

    def _asset_path(self, reference: str) -> Path:
        relative = reference[len(ASSET_SCHEME):]
        path = (self.assets_dir / relative).resolve()
        if self.assets_dir.resolve() not in path.parents:
            raise ProjectStoreError("Asset reference escapes the store", context={"reference": reference})
        return path

    def save_asset(self, payload: bytes, folder: str, ext: str = ".png") -> str:
        target_dir = self.assets_dir / folder
        target_dir.mkdir(parents=True, exist_ok=True)
        name = f"{uuid.uuid4().hex}{ext}"
        try:
            (target_dir / name).write_bytes(payload)
        except OSError as err:
            raise ProjectStoreError("Could not write asset", cause=err, context={"folder": folder})
        return f"{ASSET_SCHEME}{folder}/{name}"

    def load_asset(self, reference: str) -> bytes:
        path = self._asset_path(reference)
        if not path.is_file():
            raise ProjectStoreError("Asset not found", context={"reference": reference})
        return path.read_bytes()

    def asset_path(self, reference: str) -> Path:
        return self._asset_path(reference)

    def delete_asset(self, reference: str) -> bool:
        try:
            path = self._asset_path(reference)
        except ProjectStoreError as err:
            logger.warning(f"Could not delete asset: {err}")
            return False
        if not path.is_file():
            return False
        path.unlink()
        return True

    def _upload_inline(self, url: str, folder: str) -> str:
        """data URI → stored asset reference; anything else is returned as-is."""
        if not url.startswith("data:"):
            return url
        mime_type, payload = self.image_repository.split_data_uri(url)
        ext = mimetypes.guess_extension(mime_type) or ".png"
        return self.save_asset(payload, folder, ext)

    def _upload_workspace_images(self, workspace: Workspace, on_progress: ProgressCallback) -> Workspace:
        if on_progress:
            on_progress("Uploading base image...")
        base = None
        if workspace.base_image:
            base = ImageAsset(
                url=self._upload_inline(workspace.base_image.url, "base"),
                id=workspace.base_image.id,
                name=workspace.base_image.name,
                mime_type=workspace.base_image.mime_type,
            )

        if on_progress:
            on_progress("Uploading product images...")
        products = [
            ImageAsset(url=self._upload_inline(img.url, "products"), id=img.id,
                       name=img.name, mime_type=img.mime_type)
            for img in workspace.product_images
        ]

        history: List[GenerationResult] = []
        for i, result in enumerate(workspace.history, 1):
            if on_progress:
                on_progress(f"Uploading results... ({i}/{len(workspace.history)})")
            history.append(GenerationResult(
                image_url=self._upload_inline(result.image_url, "results"),
                id=result.id, summary=result.summary, prompt=result.prompt,
                timestamp=result.timestamp, aspect_ratio=result.aspect_ratio,
            ))

        return Workspace(
            name=workspace.name, id=workspace.id, owner=workspace.owner,
            base_image=base, product_images=products, history=history,
            active_version_index=workspace.active_version_index,
            last_updated=workspace.last_updated, created_at=workspace.created_at,
        )

    # ─── documents ────────────────────────────────────────────────────
    def _document_path(self, project_id: str) -> Path:
        if not project_id or "/" in project_id or "\\" in project_id or project_id.startswith("."):
            raise ProjectNotFoundError("Invalid project id", context={"id": project_id})
        return self.projects_dir / f"{project_id}.json"

    def _write_document(self, workspace: Workspace) -> None:
        path = self._document_path(workspace.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(workspace.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as err:
            raise ProjectStoreError("Could not write project", cause=err, context={"id": workspace.id})

    def get_project(self, project_id: str) -> Workspace:
        path = self._document_path(project_id)
        if not path.is_file():
            raise ProjectNotFoundError("Project not found", context={"id": project_id})
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as err:
            raise ProjectStoreError("Could not read project", cause=err, context={"id": project_id})
        data["id"] = project_id
        return Workspace.from_dict(data)

    def save_project(self, workspace: Workspace, on_progress: ProgressCallback = None) -> str:
        """Upload inline images and persist a new project. Returns its id."""
        stored = self._upload_workspace_images(workspace, on_progress)
        now = now_ms()
        stored.id = workspace.id or uuid.uuid4().hex
        stored.last_updated = now
        stored.created_at = now

        if on_progress:
            on_progress("Saving project...")
        self._write_document(stored)
        logger.info(f"Project saved: {stored.id}")
        return stored.id

    def update_project(self, project_id: str, workspace: Workspace, on_progress: ProgressCallback = None) -> Workspace:
        existing = self.get_project(project_id)
        stored = self._upload_workspace_images(workspace, on_progress)
        stored.id = project_id
        stored.created_at = existing.created_at
        stored.last_updated = now_ms()

        if on_progress:
            on_progress("Updating project...")
        self._write_document(stored)

        # assets dropped by the update are no longer referenced anywhere
        kept = set(stored.iter_assets())
        for url in existing.iter_assets():
            if self.is_asset_reference(url) and url not in kept:
                self.delete_asset(url)

        logger.info(f"Project updated: {project_id}")
        return stored

    def fetch_projects(self) -> List[Workspace]:
        projects = [self.get_project(p.stem) for p in self.projects_dir.glob("*.json")]
        projects.sort(key=lambda w: w.last_updated, reverse=True)
        logger.info(f"Fetched {len(projects)} projects")
        return projects

    def delete_project(self, project_id: str) -> None:
        """Delete the document and every stored asset it references."""
        workspace = self.get_project(project_id)
        for url in workspace.iter_assets():
            if self.is_asset_reference(url):
                self.delete_asset(url)
        self._document_path(project_id).unlink()
        logger.info(f"Project deleted: {project_id}")
