"""Single-flight rectangle detection with acceptance filtering."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List

import numpy as np

from cv.config import (
    MAX_ASPECT_RATIO,
    MAX_OBSERVATIONS,
    MIN_ASPECT_RATIO,
    MIN_CONFIDENCE,
    MIN_SIZE,
    QUADRATURE_TOLERANCE_DEG,
)
from cv.detectors import RectangleDetector
from cv.exceptions import (
    DetectionBusyError,
    DetectionError,
    HandlerError,
    NoRegionFound,
)
from cv.perspective import correct_perspective
from cv.types import DetectedRegion, RectangleObservation
from streaming.frame_source import Frame

logger = logging.getLogger(__name__)

RegionCallback = Callable[[DetectedRegion], None]


class DetectionGate:
    """
    Runs at most one detection pass at a time.

    ``detect`` is the raw attempt. ``submit`` wraps it for the frame stream:
    failures are logged and dropped, and only the first accepted region per
    search generation is handed to ``on_region`` until ``reset_dispatch``
    or ``reset`` is called.
    """

    def __init__(
        self,
        detector: RectangleDetector,
        on_region: RegionCallback | None = None,
        min_confidence: float = MIN_CONFIDENCE,
        min_aspect_ratio: float = MIN_ASPECT_RATIO,
        max_aspect_ratio: float = MAX_ASPECT_RATIO,
        quadrature_tolerance_deg: float = QUADRATURE_TOLERANCE_DEG,
        min_size: float = MIN_SIZE,
        max_observations: int = MAX_OBSERVATIONS,
    ):
        self._detector = detector
        self.on_region = on_region
        self.min_confidence = min_confidence
        self.min_aspect_ratio = min_aspect_ratio
        self.max_aspect_ratio = max_aspect_ratio
        self.quadrature_tolerance_deg = quadrature_tolerance_deg
        self.min_size = min_size
        self.max_observations = max(1, max_observations)
        self._busy = False
        self._dispatched = False
        self._generation = 0
        self._task: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def dispatched(self) -> bool:
        return self._dispatched

    @property
    def generation(self) -> int:
        return self._generation

    def accepts(self, observation: RectangleObservation) -> bool:
        return (
            observation.confidence >= self.min_confidence
            and self.min_aspect_ratio <= observation.aspect_ratio <= self.max_aspect_ratio
            and observation.skew_deg <= self.quadrature_tolerance_deg
            and observation.size >= self.min_size
        )

    def _select(self, observations: List[RectangleObservation]) -> RectangleObservation:
        for observation in observations[: self.max_observations]:
            if self.accepts(observation):
                return observation
        raise NoRegionFound(f"{len(observations)} observation(s), none accepted")

    def _detect_sync(self, frame: Frame) -> DetectedRegion:
        image: np.ndarray = frame.image
        try:
            observations = self._detector.detect(image)
        except Exception as exc:
            raise HandlerError(f"Rectangle detector failed: {type(exc).__name__}: {exc}") from exc

        candidate = self._select(observations)
        corrected = correct_perspective(image, candidate.quad)
        return DetectedRegion(
            quad=candidate.quad,
            confidence=candidate.confidence,
            aspect_ratio=candidate.aspect_ratio,
            image=corrected,
            frame_index=frame.frame_index,
        )

    async def detect(self, frame: Frame) -> DetectedRegion:
        if self._busy:
            raise DetectionBusyError("Detection already in flight")
        # Set before the first await so no second caller can slip in.
        self._busy = True
        worker = asyncio.ensure_future(asyncio.to_thread(self._detect_sync, frame))
        # Cleared only when the thread finishes, even if the caller is cancelled.
        worker.add_done_callback(self._release)
        return await asyncio.shield(worker)

    def _release(self, worker: asyncio.Future) -> None:
        self._busy = False
        if not worker.cancelled() and worker.exception() is not None:
            logger.debug("Detection worker finished with %s", type(worker.exception()).__name__)

    def submit(self, frame: Frame) -> bool:
        """Start a background attempt on ``frame``; False if the gate is busy."""
        if self._busy or (self._task is not None and not self._task.done()):
            return False
        self._task = asyncio.create_task(self._attempt(frame, self._generation))
        return True

    async def _attempt(self, frame: Frame, generation: int) -> None:
        try:
            region = await self.detect(frame)
        except NoRegionFound as exc:
            logger.debug("Frame %d: %s", frame.frame_index, exc)
            return
        except DetectionBusyError:
            return
        except DetectionError as exc:
            logger.warning("Frame %d: rectangle detection failed - %s", frame.frame_index, exc)
            return

        if generation != self._generation:
            logger.debug("Dropping region from stale generation %d", generation)
            return
        if self._dispatched:
            logger.debug("Region already dispatched; ignoring frame %d", frame.frame_index)
            return

        self._dispatched = True
        logger.info(
            "Accepted region on frame %d (confidence=%.3f, aspect=%.2f)",
            frame.frame_index,
            region.confidence,
            region.aspect_ratio,
        )
        if self.on_region is not None:
            self.on_region(region)

    def reset_dispatch(self) -> None:
        self._dispatched = False

    def reset(self) -> None:
        """Start a new generation; in-flight results from the old one are dropped."""
        self._generation += 1
        self._dispatched = False

    async def close(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
