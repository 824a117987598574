from __future__ import annotations
from pathlib import Path
from typing import Iterable, Union, Iterator, Tuple
import logging
import mimetypes

import numpy as np

from ..models.image import Image
from ..repositories.image_repository import ImageRepository
from ..exceptions import SurfaceUnavailableError

logger = logging.getLogger(__name__)


class ImageService:
    """I/O helpers.  No keying logic, no generation API imports."""
    def __init__(self):
        self.image_repository = ImageRepository()

    def create_image(self, pixels: np.ndarray, path: Union[str, Path] = None) -> Image:
        return self.image_repository.create_image(pixels, path)

    def load(self, path: str | Path) -> Image:
        """Load a single image from disk into an Image object."""
        return self.image_repository.load(path)

    def decode(self, data: bytes) -> Image:
        return self.image_repository.decode(data)

    def resolve(self, url: str) -> Image:
        """
        Decode an image from a data URI, an http(s) URL or a local path.
        """
        if url.startswith("data:"):
            return self.image_repository.decode_data_uri(url)
        if url.startswith(("http://", "https://")):
            return self.image_repository.fetch(url)
        return self.load(url)

    @staticmethod
    def guess_mime(name: str) -> str:
        return mimetypes.guess_type(name)[0] or "image/jpeg"

    def resolve_bytes(self, url: str) -> Tuple[bytes, str]:
        """Raw payload + mime type for a data URI or http(s) URL."""
        if url.startswith("data:"):
            mime_type, data = self.image_repository.split_data_uri(url)
            return data, mime_type
        if url.startswith(("http://", "https://")):
            return self.image_repository.fetch_bytes(url), self.guess_mime(url)
        path = Path(url)
        if not path.is_file():
            raise FileNotFoundError(f"Image not found or unreadable: {path}")
        return path.read_bytes(), self.guess_mime(str(path))

    def stream_gallery(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Image]:
        """
        Yield images lazily instead of returning a gigantic list.
        """
        return self.image_repository.iter_dir(folder,
                                              recursive=recursive,
                                              exts=exts)

    def save(self, image: Image) -> None:
        """
        Business-level method to save the image (always PNG, keeps alpha).
        """
        self.image_repository.save(image)

    def encode_png(self, image: Image) -> bytes:
        return self.image_repository.encode_png(image)

    def to_data_uri(self, image: Image) -> str:
        return self.image_repository.to_data_uri(image)

    def apply_pipeline_modification(self, image: Image, new_pixels: np.ndarray) -> None:
        """
        Apply a pipeline modification while preserving original for comparison.
        """
        self.image_repository.update_pixels_preserve_original(image, new_pixels)

    @staticmethod
    def ensure_rgba_surface(img: Image) -> np.ndarray:
        """
        Return a C-contiguous (H, W, 4) uint8 view of the pixels,
        or raise SurfaceUnavailableError.
        """
        pixels = img.pixels
        if (
            not isinstance(pixels, np.ndarray)
            or pixels.dtype != np.uint8
            or pixels.ndim != 3
            or pixels.shape[2] != 4
            or pixels.size == 0
        ):
            raise SurfaceUnavailableError(
                "Expected a non-empty (H, W, 4) uint8 RGBA buffer",
                context={"shape": getattr(pixels, "shape", None),
                         "dtype": str(getattr(pixels, "dtype", None))},
            )
        if not pixels.flags['C_CONTIGUOUS']:
            try:
                pixels = np.ascontiguousarray(pixels)
            except MemoryError as err:
                raise SurfaceUnavailableError("Could not allocate RGBA surface", cause=err)
        return pixels
