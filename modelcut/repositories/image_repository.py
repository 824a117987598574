from __future__ import annotations
from pathlib import Path
from typing import Union, Iterable, Iterator, Tuple
from io import BytesIO
import base64
import binascii
import logging
import os
import re

import numpy as np
import cv2
import requests
from PIL import Image as PILImage
from dotenv import load_dotenv

from ..models.image import Image
from ..exceptions import ImageDecodeError, SurfaceUnavailableError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


class ImageRepository:
    """
    Handles codec I/O and pixel updates for Image entities.
    Everything returned here is an (H, W, 4) uint8 RGBA buffer.
    """
    def __init__(self):
        self.VALID_EXTS = {
            ext.strip().lower()
            for ext in os.getenv("VALID_IMAGE_EXTENSIONS", ".png,.jpg,.jpeg,.webp,.bmp").split(",")
        }
        self.fetch_timeout = float(os.getenv("HTTP_FETCH_TIMEOUT", "30"))

    @staticmethod
    def create_image(pixels: np.ndarray, path: Union[str, Path] = None) -> Image:
        if path is None:
            return Image(pixels)
        return Image(pixels=pixels, path=Path(path))

    # ─── decoding ─────────────────────────────────────────────────────
    @staticmethod
    def _to_rgba(arr: np.ndarray) -> np.ndarray:
        """cv2 decode output (GRAY / BGR / BGRA, 8 or 16 bit) → RGBA uint8."""
        try:
            if arr.dtype == np.uint16:
                arr = (arr >> 8).astype(np.uint8)
            elif arr.dtype != np.uint8:
                arr = np.clip(arr, 0, 255).astype(np.uint8)

            if arr.ndim == 2:
                return cv2.cvtColor(arr, cv2.COLOR_GRAY2RGBA)
            channels = arr.shape[2]
            if channels == 1:
                return cv2.cvtColor(arr[:, :, 0], cv2.COLOR_GRAY2RGBA)
            if channels == 3:
                return cv2.cvtColor(arr, cv2.COLOR_BGR2RGBA)
            if channels == 4:
                return cv2.cvtColor(arr, cv2.COLOR_BGRA2RGBA)
        except (MemoryError, cv2.error) as err:
            raise SurfaceUnavailableError("Could not allocate RGBA surface", cause=err)
        raise SurfaceUnavailableError(
            "Unsupported channel layout", context={"shape": arr.shape}
        )

    def decode(self, data: bytes) -> Image:
        """Decode an encoded image (PNG, JPEG, WebP, ...) into an RGBA Image."""
        if not data:
            raise ImageDecodeError("Empty image payload")
        buf = np.frombuffer(data, dtype=np.uint8)
        try:
            arr = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
        except cv2.error as err:
            raise ImageDecodeError("Image could not be decoded", cause=err)
        if arr is None:
            raise ImageDecodeError(
                "Image could not be decoded", context={"bytes": len(data)}
            )
        return Image(pixels=self._to_rgba(arr))

    @staticmethod
    def split_data_uri(uri: str) -> Tuple[str, bytes]:
        """data:<mime>;base64,<payload> → (mime, raw bytes)."""
        match = _DATA_URI.match(uri)
        if not match:
            raise ImageDecodeError("Malformed data URI")
        try:
            return match.group(1), base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError) as err:
            raise ImageDecodeError("Malformed base64 payload", cause=err)

    def decode_data_uri(self, uri: str) -> Image:
        _, data = self.split_data_uri(uri)
        return self.decode(data)

    def fetch_bytes(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            raise ImageDecodeError(f"Failed to fetch image from {url}", cause=err)
        return response.content

    def fetch(self, url: str) -> Image:
        return self.decode(self.fetch_bytes(url))

    def load(self, path: Union[str, Path]) -> Image:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Image not found or unreadable: {path}")
        img = self.decode(path.read_bytes())
        img.path = path
        return img

    # ─── encoding ─────────────────────────────────────────────────────
    @staticmethod
    def encode_png(image: Image) -> bytes:
        buffer = BytesIO()
        PILImage.fromarray(np.ascontiguousarray(image.pixels)).save(buffer, format="PNG")
        return buffer.getvalue()

    @staticmethod
    def bytes_to_data_uri(data: bytes, mime_type: str = "image/png") -> str:
        return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"

    def to_data_uri(self, image: Image) -> str:
        return self.bytes_to_data_uri(self.encode_png(image), "image/png")

    def save(self, image: Image) -> None:
        path = Path(image.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.encode_png(image))

    # ─── pixel bookkeeping ────────────────────────────────────────────
    @staticmethod
    def update_pixels_preserve_original(image: Image, new_pixels: np.ndarray) -> None:
        """Update pixels while preserving original for comparison"""
        if image.original_pixels is None:
            image.original_pixels = image.pixels.copy()
        image.pixels = new_pixels

    def iter_dir(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Image]:
        """
        Yield Image objects one at a time.  Nothing accumulates in memory.
        Files that fail to decode are skipped with a warning.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(folder)

        allowed = {e.lower() for e in (exts or self.VALID_EXTS)}
        pattern = "**/*" if recursive else "*"

        for p in sorted(folder.glob(pattern)):
            if p.suffix.lower() not in allowed or not p.is_file():
                logger.debug(f"Skipping {p}")
                continue
            try:
                yield self.load(p)
            except (ImageDecodeError, SurfaceUnavailableError) as err:
                logger.warning(f"Skipping {p.name}: {err}")
