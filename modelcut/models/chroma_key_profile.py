from __future__ import annotations
from dataclasses import dataclass, replace
import math


DEFAULT_TOLERANCE: float = 40.0


@dataclass(frozen=True)
class ChromaKeyProfile:
    """
    Value-object holding the cut points of the three keying passes.

    greenStrength = G - max(R, B)
    greenRatio    = G / ((R + B) / 2 + 1)

    Defaults are the reference profile; tolerance scaling only moves the
    strong/medium greenStrength cuts.
    """
    # ── Pass 1: strong green → fully transparent ────────────────────
    strong_strength: float = 80.0
    strong_green:    float = 180.0
    strong_ratio:    float = 1.8

    # ── Pass 1: medium green → graded alpha + despill ───────────────
    medium_strength: float = 40.0
    medium_green:    float = 120.0
    medium_ratio:    float = 1.4
    alpha_falloff:   float = 3.0      # alpha = 255 - greenStrength * falloff

    # ── Pass 1: weak tint → despill only ────────────────────────────
    weak_strength:   float = 15.0
    weak_ratio:      float = 1.2

    # ── Pass 2: edge despill ────────────────────────────────────────
    edge_alpha:      int   = 128      # neighbour counts as "transparent" below this
    edge_strength:   float = 5.0

    # ── Pass 3: fine despill ────────────────────────────────────────
    fine_margin:     float = 10.0
    fine_factor:     float = 0.3
    fine_cap:        float = 10.0

    def scaled(self, tolerance: float) -> ChromaKeyProfile:
        """
        Return a copy whose strong/medium greenStrength cuts are scaled by
        DEFAULT_TOLERANCE / tolerance. tolerance == DEFAULT_TOLERANCE is a no-op.
        """
        if tolerance is None:
            return self
        if not math.isfinite(tolerance) or tolerance <= 0:
            raise ValueError(f"tolerance must be a positive finite number, got {tolerance}")
        factor = DEFAULT_TOLERANCE / float(tolerance)
        return replace(
            self,
            strong_strength=self.strong_strength * factor,
            medium_strength=self.medium_strength * factor,
        )
