from __future__ import annotations
from pathlib import Path
from typing import Callable, Optional
import logging
import math
import os
import time

import numpy as np
from dotenv import load_dotenv

from ..models.image import Image
from ..models.chroma_key_profile import ChromaKeyProfile, DEFAULT_TOLERANCE
from ..repositories.chroma_key_repository import ChromaKeyRepository
from ..exceptions import SurfaceUnavailableError
from .image_service import ImageService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[str], None]]


class ChromaKeyFilter:
    """
    Turns a pure-green-background image into a transparent-background one.

    *   Pass 1 keys the backdrop (hard cut, graded alpha, tint correction).
    *   Pass 2 despills pixels bordering transparency, reading a frozen
        snapshot of Pass 1 and writing a separate buffer.
    *   Pass 3 trims faint residual green everywhere, capped per pixel.

    Pure function of (pixels, tolerance): no I/O, never mutates its input.
    """

    def __init__(self,
                 profile: ChromaKeyProfile | None = None,
                 tolerance: float | None = None,
                 progress: ProgressCallback = None):
        """
        Args:
            profile: threshold profile (defaults to the reference profile)
            tolerance: default tolerance (defaults to env CHROMA_KEY_TOLERANCE)
            progress: optional observer called with the name of each finished pass
        """
        self.profile = profile or ChromaKeyProfile()
        self.tolerance = float(tolerance if tolerance is not None
                               else os.getenv("CHROMA_KEY_TOLERANCE", DEFAULT_TOLERANCE))
        if not math.isfinite(self.tolerance) or self.tolerance <= 0:
            raise ValueError(f"tolerance must be a positive finite number, got {self.tolerance}")
        self.progress = progress
        self.repository = ChromaKeyRepository()
        self.image_service = ImageService()

    # ─── Public API ────────────────────────────────────────────────
    def apply(self, image: Image, tolerance: float | None = None) -> Image:
        """
        Key *image* and return a new Image with identical dimensions.

        Raises:
            SurfaceUnavailableError: pixels are not an (H, W, 4) uint8 buffer
                or the working buffers cannot be allocated.
            ValueError: tolerance <= 0.
        """
        profile = self.profile.scaled(tolerance if tolerance is not None else self.tolerance)
        source = self.image_service.ensure_rgba_surface(image)
        h, w = source.shape[:2]

        started = time.perf_counter()
        try:
            keyed = self.repository.key_pass(source, profile)
            self._notify("key")

            # Pass 2 must only ever see the fully materialised Pass 1 result
            read_snapshot = keyed
            write_buffer = self.repository.edge_despill_pass(read_snapshot, profile)
            self._notify("edge_despill")

            out = self.repository.fine_despill_pass(write_buffer, profile)
            self._notify("fine_despill")
        except MemoryError as err:
            raise SurfaceUnavailableError(
                "Could not allocate working buffers", cause=err, context={"size": (w, h)}
            )

        logger.debug(
            f"Chroma key {w}x{h}: {np.count_nonzero(out[:, :, 3] == 0)} transparent px "
            f"in {time.perf_counter() - started:.3f}s"
        )
        path = Path(image.path).with_suffix(".png") if image.path else None
        return self.image_service.create_image(out, path)

    def apply_bytes(self, data: bytes, tolerance: float | None = None) -> bytes:
        """Decode → key → PNG bytes."""
        image = self.image_service.decode(data)
        return self.image_service.encode_png(self.apply(image, tolerance))

    # ─── Internal helpers ──────────────────────────────────────────
    def _notify(self, stage: str) -> None:
        if self.progress is not None:
            self.progress(stage)
