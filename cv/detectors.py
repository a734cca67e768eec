"""
Contour-based rectangle detector.

Finds convex four-sided contours in a frame and scores how rectangular they
are. Filtering by confidence, aspect ratio and skew is left to the caller.
"""
from __future__ import annotations

import math
from typing import List

import cv2
import numpy as np

from cv.config import (
    APPROX_EPSILON,
    BLUR_KSIZE,
    CANNY_HIGH,
    CANNY_LOW,
    DILATE_ITERATIONS,
    MIN_CONTOUR_AREA_RATIO,
)
from cv.types import Quad, RectangleObservation, side_lengths


def order_corners(pts: np.ndarray) -> np.ndarray:
    """Return corners as TL, TR, BR, BL."""
    pts = np.asarray(pts, np.float32).reshape(4, 2)
    sorted_y = pts[np.argsort(pts[:, 1], kind="stable")]
    top2 = sorted_y[:2]
    bottom2 = sorted_y[2:]
    tl, tr = top2[np.argsort(top2[:, 0], kind="stable")]
    bl, br = bottom2[np.argsort(bottom2[:, 0], kind="stable")]
    return np.array([tl, tr, br, bl], dtype=np.float32)


def max_corner_deviation(pts: np.ndarray) -> float:
    """Largest deviation (degrees) of any interior angle from 90."""
    worst = 0.0
    for i in range(4):
        prev_pt = pts[i - 1]
        pt = pts[i]
        next_pt = pts[(i + 1) % 4]
        v1 = prev_pt - pt
        v2 = next_pt - pt
        n1 = float(np.linalg.norm(v1))
        n2 = float(np.linalg.norm(v2))
        if n1 < 1e-6 or n2 < 1e-6:
            return 90.0
        cos_angle = float(np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0))
        angle = math.degrees(math.acos(cos_angle))
        worst = max(worst, abs(angle - 90.0))
    return worst


class RectangleDetector:
    def __init__(
        self,
        blur_ksize: int = BLUR_KSIZE,
        canny_low: int = CANNY_LOW,
        canny_high: int = CANNY_HIGH,
        approx_epsilon: float = APPROX_EPSILON,
        min_area_ratio: float = MIN_CONTOUR_AREA_RATIO,
    ):
        self.blur_ksize = blur_ksize
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.approx_epsilon = approx_epsilon
        self.min_area_ratio = min_area_ratio

    def _edges(self, image: np.ndarray) -> np.ndarray:
        gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if self.blur_ksize > 1:
            gray = cv2.GaussianBlur(gray, (self.blur_ksize, self.blur_ksize), 0)
        edges = cv2.Canny(gray, self.canny_low, self.canny_high)
        if DILATE_ITERATIONS > 0:
            edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=DILATE_ITERATIONS)
        return edges

    def detect(self, image: np.ndarray) -> List[RectangleObservation]:
        """Return observations sorted best first."""
        height, width = image.shape[:2]
        frame_area = float(width * height)
        if frame_area <= 0:
            return []

        # [-2] keeps this working across OpenCV 3/4 return signatures.
        contours = cv2.findContours(self._edges(image), cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)[-2]

        scored: list[tuple[float, float, RectangleObservation]] = []
        for contour in contours:
            contour_area = abs(cv2.contourArea(contour))
            if contour_area < frame_area * self.min_area_ratio:
                continue

            peri = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, self.approx_epsilon * peri, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue

            pts = order_corners(approx)
            quad_area = abs(cv2.contourArea(pts))
            if quad_area <= 0:
                continue

            quad_w, quad_h = side_lengths(pts)
            long_side = max(quad_w, quad_h)
            if long_side <= 1e-3:
                continue

            confidence = min(contour_area, quad_area) / max(contour_area, quad_area)
            observation = RectangleObservation(
                quad=Quad.from_pixels(pts, width, height),
                confidence=float(confidence),
                aspect_ratio=float(min(quad_w, quad_h) / long_side),
                skew_deg=float(max_corner_deviation(pts)),
                size=float(min(quad_w, quad_h) / min(width, height)),
            )
            scored.append((round(confidence, 2), quad_area, observation))

        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [obs for _, _, obs in scored]


def get_detector() -> RectangleDetector:
    return RectangleDetector()
