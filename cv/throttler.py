"""Frame-rate gate in front of the detection pipeline."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from cv.config import THROTTLE_INTERVAL_SEC
from cv.gate import DetectionGate
from streaming.frame_source import Frame

logger = logging.getLogger(__name__)


class FrameThrottler:
    """
    Forwards frames to the gate at most once per ``interval`` and only while
    the gate is idle. Skipped frames are dropped, never queued.
    """

    def __init__(
        self,
        gate: DetectionGate,
        interval: float = THROTTLE_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gate = gate
        self._interval = interval
        self._clock = clock
        self._active = False
        self._last_forward: float | None = None
        self.forwarded = 0
        self.dropped = 0

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        if not self._active:
            logger.info("Frame throttler started (interval=%.2fs)", self._interval)
        self._active = True
        self._last_forward = None

    def stop(self) -> None:
        if self._active:
            logger.info("Frame throttler stopped")
        self._active = False

    def on_frame(self, frame: Frame) -> None:
        if not self._active:
            return

        now = self._clock()
        if self._last_forward is not None and (now - self._last_forward) < self._interval:
            self.dropped += 1
            return

        if not self._gate.submit(frame):
            self.dropped += 1
            return

        self._last_forward = now
        self.forwarded += 1

    async def run(self, frames: asyncio.Queue) -> None:
        """Pump frames from a newest-only queue until a ``None`` sentinel."""
        while True:
            frame = await frames.get()
            if frame is None:
                break
            self.on_frame(frame)
