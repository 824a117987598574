import os
import tempfile
from io import BytesIO

# keep the API server's module-level project store out of the working tree
os.environ.setdefault("PROJECT_STORE_DIR", tempfile.mkdtemp(prefix="modelcut-store-"))

import numpy as np
import pytest
from PIL import Image as PILImage

from modelcut.models.image import Image
from modelcut.repositories.generation_repository import GenerationRepository
from modelcut.repositories.project_repository import ProjectRepository
from modelcut.services.project_service import ProjectService

GREEN = (0, 255, 0, 255)
SUBJECT = (180, 120, 90, 255)
SPILL = (150, 170, 80, 255)


@pytest.fixture
def make_image():
    """make_image(h, w, rgba) → solid Image; make_image(array) wraps an array."""
    def _make(h_or_pixels, w=None, rgba=GREEN):
        if isinstance(h_or_pixels, np.ndarray):
            return Image(pixels=h_or_pixels.astype(np.uint8))
        pixels = np.empty((h_or_pixels, w, 4), dtype=np.uint8)
        pixels[:, :] = rgba
        return Image(pixels=pixels)
    return _make


@pytest.fixture
def ring_image(make_image):
    """4x4: green ring around a 2x2 subject whose bottom-right pixel carries spill."""
    img = make_image(4, 4, GREEN)
    img.pixels[1:3, 1:3] = SUBJECT
    img.pixels[2, 2] = SPILL
    return img


@pytest.fixture
def encode():
    """encode(array, fmt="PNG") → encoded bytes via Pillow."""
    def _encode(pixels: np.ndarray, fmt: str = "PNG") -> bytes:
        buffer = BytesIO()
        PILImage.fromarray(pixels).save(buffer, format=fmt)
        return buffer.getvalue()
    return _encode


@pytest.fixture
def decode_png():
    def _decode(data: bytes) -> np.ndarray:
        return np.array(PILImage.open(BytesIO(data)).convert("RGBA"))
    return _decode


class FakeGenerationRepository(GenerationRepository):
    """Records requests and answers with a canned image instead of calling the API."""

    def __init__(self, response: bytes = b"", mime_type: str = "image/png",
                 summary: str = "", error: Exception | None = None):
        super().__init__()
        self.response = response
        self.mime_type = mime_type
        self.summary = summary
        self.error = error
        self.calls = []

    def generate_image(self, parts, system_instruction=None, aspect_ratio="1:1", image_size="1K"):
        self.calls.append({
            "parts": parts,
            "system_instruction": system_instruction,
            "aspect_ratio": aspect_ratio,
            "image_size": image_size,
        })
        if self.error is not None:
            raise self.error
        return self.response, self.mime_type, self.summary


@pytest.fixture
def fake_generation_repository():
    return FakeGenerationRepository


@pytest.fixture
def project_service(tmp_path):
    return ProjectService(ProjectRepository(tmp_path / "store"))
