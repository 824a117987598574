# repositories/chroma_key_repository.py
import cv2
import numpy as np

from ..models.chroma_key_profile import ChromaKeyProfile


class ChromaKeyRepository:
    """
    Pixel math for green-screen keying.

    • Works on (H, W, 4) uint8 RGBA arrays only.
    • Each pass is a full-array operation, so one pass never sees a
      partially updated result of the previous one.
    """

    # 8-neighbourhood; the centre pixel is not its own neighbour
    _NEIGHBOURS = np.array([[1, 1, 1],
                            [1, 0, 1],
                            [1, 1, 1]], dtype=np.uint8)

    # ---------- private helpers ----------
    @staticmethod
    def _rgb(pixels: np.ndarray):
        r = pixels[:, :, 0].astype(np.float32)
        g = pixels[:, :, 1].astype(np.float32)
        b = pixels[:, :, 2].astype(np.float32)
        return r, g, b

    @staticmethod
    def _to_u8(values: np.ndarray) -> np.ndarray:
        """8-bit saturation: round half to even, clamp to [0, 255]."""
        return np.clip(np.rint(values), 0, 255).astype(np.uint8)

    @staticmethod
    def green_strength(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
        return g - np.maximum(r, b)

    @staticmethod
    def green_ratio(g: np.ndarray, avg_rb: np.ndarray) -> np.ndarray:
        return g / (avg_rb + 1.0)

    def _near_see_through(self, alpha: np.ndarray, edge_alpha: int) -> np.ndarray:
        """True where at least one in-bounds 8-neighbour has alpha < edge_alpha."""
        see_through = (alpha < edge_alpha).astype(np.uint8)
        grown = cv2.dilate(see_through, self._NEIGHBOURS,
                           borderType=cv2.BORDER_CONSTANT, borderValue=0)
        return grown > 0

    # ---------- public API ----------
    def key_pass(self, pixels: np.ndarray, profile: ChromaKeyProfile) -> np.ndarray:
        """
        Pass 1: classify every visible pixel, first tier wins.

        strong → alpha 0
        medium → alpha = 255 - greenStrength * falloff, G = avg(R, B)
        weak   → G = avg(R, B)

        Returns a new array; *pixels* is left untouched.
        """
        out = pixels.copy()
        r, g, b = self._rgb(pixels)
        visible = pixels[:, :, 3] > 0

        strength = self.green_strength(r, g, b)
        avg_rb = (r + b) / 2.0
        ratio = self.green_ratio(g, avg_rb)

        strong = visible & (
            (strength > profile.strong_strength)
            | ((g > profile.strong_green) & (ratio > profile.strong_ratio))
        )
        medium = visible & ~strong & (
            (strength > profile.medium_strength)
            | ((g > profile.medium_green) & (ratio > profile.medium_ratio))
        )
        weak = visible & ~strong & ~medium & (
            (strength > profile.weak_strength) | (ratio > profile.weak_ratio)
        )

        alpha = out[:, :, 3]
        alpha[strong] = 0
        alpha[medium] = self._to_u8(255.0 - strength[medium] * profile.alpha_falloff)

        despill = medium | weak
        out[:, :, 1][despill] = self._to_u8(avg_rb[despill])
        return out

    def edge_despill_pass(self, read_snapshot: np.ndarray, profile: ChromaKeyProfile) -> np.ndarray:
        """
        Pass 2: clamp G to avg(R, B) on visible pixels bordering a mostly
        transparent neighbour.

        All reads come from *read_snapshot*; writes go to a separate
        write buffer, which is returned.
        """
        write_buffer = read_snapshot.copy()
        alpha = read_snapshot[:, :, 3]
        r, g, b = self._rgb(read_snapshot)

        edge = (alpha > 0) & self._near_see_through(alpha, profile.edge_alpha)
        target = edge & (self.green_strength(r, g, b) > profile.edge_strength)

        clamped = np.minimum((r + b) / 2.0, g)
        write_buffer[:, :, 1][target] = self._to_u8(clamped[target])
        return write_buffer

    def fine_despill_pass(self, pixels: np.ndarray, profile: ChromaKeyProfile) -> np.ndarray:
        """
        Pass 3: trim faint residual tint everywhere.
        G drops by min(excess * factor, cap) where excess = G - avg(R, B) > margin.

        Mutates and returns *pixels*.
        """
        r, g, b = self._rgb(pixels)
        excess = g - (r + b) / 2.0
        target = (pixels[:, :, 3] > 0) & (excess > profile.fine_margin)

        reduction = np.minimum(excess * profile.fine_factor, profile.fine_cap)
        pixels[:, :, 1][target] = self._to_u8((g - reduction)[target])
        return pixels
