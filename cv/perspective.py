"""Perspective correction of a detected quad into an upright image."""
from __future__ import annotations

import math

import cv2
import numpy as np

from cv.exceptions import CorrectionFailed
from cv.types import Quad


def correct_perspective(image: np.ndarray, quad: Quad) -> np.ndarray:
    """Warp the quad's content into a rectangle sized by its longest edges."""
    height, width = image.shape[:2]
    pts = quad.to_pixels(width, height)
    tl, tr, br, bl = pts

    def dist(a, b) -> float:
        return math.hypot(float(a[0] - b[0]), float(a[1] - b[1]))

    out_w = int(round(max(dist(tl, tr), dist(bl, br))))
    out_h = int(round(max(dist(tl, bl), dist(tr, br))))
    if out_w < 2 or out_h < 2:
        raise CorrectionFailed(f"Degenerate quad ({out_w}x{out_h})")

    dst = np.array(
        [[0, 0], [out_w - 1, 0], [out_w - 1, out_h - 1], [0, out_h - 1]],
        dtype=np.float32,
    )
    try:
        matrix = cv2.getPerspectiveTransform(pts, dst)
        corrected = cv2.warpPerspective(image, matrix, (out_w, out_h))
    except cv2.error as exc:
        raise CorrectionFailed(f"Perspective warp failed: {exc}") from exc

    if corrected is None or corrected.size == 0:
        raise CorrectionFailed("Perspective warp produced no output image")
    return corrected
