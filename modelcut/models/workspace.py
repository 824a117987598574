from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import time
import uuid


class AspectRatio(str, Enum):
    SQUARE = "SQUARE"
    PORTRAIT_4_5 = "PORTRAIT_4_5"
    MOBILE_9_16 = "MOBILE_9_16"

    @property
    def api_ratio(self) -> str:
        """Ratio string understood by the image-generation API."""
        return _API_RATIOS[self]


_API_RATIOS = {
    AspectRatio.SQUARE: "1:1",
    AspectRatio.PORTRAIT_4_5: "3:4",
    AspectRatio.MOBILE_9_16: "9:16",
}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ImageAsset:
    """
    An image attached to a workspace.
    url is a data URI before upload, a store reference or external URL after.
    """
    url: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def is_inline(self) -> bool:
        return self.url.startswith("data:")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "name": self.name, "mimeType": self.mime_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ImageAsset:
        return cls(
            url=data["url"],
            id=data.get("id") or uuid.uuid4().hex,
            name=data.get("name"),
            mime_type=data.get("mimeType"),
        )


@dataclass
class GenerationConfig:
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    prompt: str = ""
    previous_image: Optional[str] = None  # url of the result being edited
    image_size: Optional[str] = None  # None → DEFAULT_IMAGE_SIZE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GenerationConfig:
        return cls(
            aspect_ratio=AspectRatio(data.get("aspectRatio", AspectRatio.SQUARE.value)),
            prompt=data.get("prompt") or "",
            previous_image=data.get("previousImage"),
            image_size=data.get("imageSize") or None,
        )


@dataclass
class GenerationResult:
    image_url: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    summary: str = ""
    prompt: str = ""
    timestamp: int = field(default_factory=now_ms)
    aspect_ratio: Optional[AspectRatio] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "imageUrl": self.image_url,
            "summary": self.summary,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
            "aspectRatio": self.aspect_ratio.value if self.aspect_ratio else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GenerationResult:
        ratio = data.get("aspectRatio")
        return cls(
            image_url=data["imageUrl"],
            id=data.get("id") or uuid.uuid4().hex,
            summary=data.get("summary") or "",
            prompt=data.get("prompt") or "",
            timestamp=data.get("timestamp") or now_ms(),
            aspect_ratio=AspectRatio(ratio) if ratio else None,
        )


@dataclass
class Workspace:
    """
    Data object for one project: inputs, generation history and the
    currently selected version. Serialises to the persisted camelCase document.
    """
    name: str
    id: Optional[str] = None
    owner: Optional[str] = None
    base_image: Optional[ImageAsset] = None
    product_images: List[ImageAsset] = field(default_factory=list)
    history: List[GenerationResult] = field(default_factory=list)
    active_version_index: int = -1
    last_updated: int = field(default_factory=now_ms)
    created_at: Optional[int] = None

    @property
    def active_result(self) -> Optional[GenerationResult]:
        if 0 <= self.active_version_index < len(self.history):
            return self.history[self.active_version_index]
        return None

    def iter_assets(self):
        """Yield every image url referenced by the workspace."""
        if self.base_image:
            yield self.base_image.url
        for img in self.product_images:
            yield img.url
        for result in self.history:
            yield result.image_url

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "baseImage": self.base_image.to_dict() if self.base_image else None,
            "productImages": [img.to_dict() for img in self.product_images],
            "history": [res.to_dict() for res in self.history],
            "activeVersionIndex": self.active_version_index,
            "lastUpdated": self.last_updated,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Workspace:
        base = data.get("baseImage")
        return cls(
            id=data.get("id"),
            name=data.get("name") or "Untitled",
            # userName is the legacy owner field
            owner=data.get("owner") or data.get("userName"),
            base_image=ImageAsset.from_dict(base) if base else None,
            product_images=[ImageAsset.from_dict(d) for d in data.get("productImages") or []],
            history=[GenerationResult.from_dict(d) for d in data.get("history") or []],
            active_version_index=int(data.get("activeVersionIndex", -1)),
            last_updated=data.get("lastUpdated") or now_ms(),
            created_at=data.get("createdAt"),
        )
