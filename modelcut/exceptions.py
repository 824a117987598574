"""
Exception hierarchy for ModelCut.

Each failure scenario gets its own type so the API layer can map it to a
status code and the pipelines can stop before the next stage runs.
"""

from typing import Optional, Dict, Any


class ModelCutError(Exception):
    """Base exception for all ModelCut errors"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [super().__str__()]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        if self.context:
            parts.append(f" Context: {self.context}")
        return "".join(parts)


# === Raster exceptions ===

class ImageDecodeError(ModelCutError):
    """Source bytes could not be parsed as a raster image"""
    pass


class SurfaceUnavailableError(ModelCutError):
    """No pixel-addressable RGBA buffer could be obtained"""
    pass


# === Generation exceptions ===

class GenerationError(ModelCutError):
    """Generation API failed or returned no usable image"""
    pass


class GenerationConfigError(GenerationError):
    """Generation client is not configured (missing API key)"""
    pass


class GenerationTimeoutError(GenerationError):
    """Generation request timed out or was cancelled"""
    pass


# === Project store exceptions ===

class ProjectStoreError(ModelCutError):
    """Project metadata or asset could not be read or written"""
    pass


class ProjectNotFoundError(ProjectStoreError):
    """No project with the requested id"""
    pass
