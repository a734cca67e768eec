"""
Internal data structures for the detection pipeline.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

Point = Tuple[float, float]


@dataclass(frozen=True)
class Quad:
    """Four corners in normalized (0-1) image coordinates, origin top-left."""
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    def as_array(self) -> np.ndarray:
        return np.array(
            [self.top_left, self.top_right, self.bottom_right, self.bottom_left],
            dtype=np.float32,
        )

    def to_pixels(self, width: int, height: int) -> np.ndarray:
        return self.as_array() * np.array([width, height], dtype=np.float32)

    @classmethod
    def from_pixels(cls, pts: np.ndarray, width: int, height: int) -> "Quad":
        norm = np.asarray(pts, dtype=np.float32).reshape(4, 2) / np.array([width, height], dtype=np.float32)
        norm = np.clip(norm, 0.0, 1.0)
        tl, tr, br, bl = (tuple(float(v) for v in p) for p in norm)
        return cls(top_left=tl, top_right=tr, bottom_right=br, bottom_left=bl)


@dataclass(frozen=True)
class RectangleObservation:
    """Raw detector output before the acceptance filters."""
    quad: Quad
    confidence: float
    aspect_ratio: float  # short side / long side, measured in pixels
    skew_deg: float      # largest corner deviation from 90 degrees
    size: float          # shorter side relative to the shorter frame side


@dataclass(frozen=True, eq=False)
class DetectedRegion:
    """An accepted, perspective-corrected region; consumed once by the uploader."""
    quad: Quad
    confidence: float
    aspect_ratio: float
    image: np.ndarray = field(repr=False)
    frame_index: int = 0

    def to_dict(self) -> dict:
        return {
            "corners": {
                "top_left": list(self.quad.top_left),
                "top_right": list(self.quad.top_right),
                "bottom_right": list(self.quad.bottom_right),
                "bottom_left": list(self.quad.bottom_left),
            },
            "confidence": round(self.confidence, 4),
            "aspect_ratio": round(self.aspect_ratio, 4),
            "width": int(self.image.shape[1]),
            "height": int(self.image.shape[0]),
            "frame_index": self.frame_index,
        }


def side_lengths(pts: np.ndarray) -> tuple[float, float]:
    """Mean (width, height) of a TL, TR, BR, BL pixel quad."""
    def dist(a, b) -> float:
        return math.hypot(float(a[0] - b[0]), float(a[1] - b[1]))

    tl, tr, br, bl = pts
    width = (dist(tl, tr) + dist(bl, br)) / 2.0
    height = (dist(tl, bl) + dist(tr, br)) / 2.0
    return width, height
