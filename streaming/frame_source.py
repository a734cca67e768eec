"""
Camera frame source feeding the detection pipeline.
"""
from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import List, Tuple

# Quiet FFmpeg decode warnings for file and stream sources.
os.environ.setdefault("OPENCV_FFMPEG_LOGLEVEL", "error")

import cv2  # noqa: E402
import numpy as np  # noqa: E402

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    frame_index: int
    timestamp: float
    image: np.ndarray

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


def offer_latest(queue_ref: asyncio.Queue, item) -> None:
    """Put without blocking, evicting the oldest entry when full."""
    if queue_ref.full():
        try:
            queue_ref.get_nowait()
        except asyncio.QueueEmpty:
            pass
    try:
        queue_ref.put_nowait(item)
    except asyncio.QueueFull:
        pass


class FrameSource:
    def __init__(self, source: int | str, loop: bool = True) -> None:
        self.source = source
        self.loop = loop
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._subscribers: List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []
        self._start_wall = time.monotonic()
        self._frame_index = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        # Single capture thread feeds every subscriber.
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return

            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        logger.info("Frame source started: %s", self.source)

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join(timeout=2)
        logger.info("Frame source stopped: %s", self.source)

    def subscribe(self, loop: asyncio.AbstractEventLoop, maxsize: int = 1) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.append((loop, q))
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = [(loop, sub) for (loop, sub) in self._subscribers if sub is not q]

    def _broadcast(self, packet: Frame) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for loop, q in subscribers:
            try:
                loop.call_soon_threadsafe(offer_latest, q, packet)
            except RuntimeError:
                # Subscriber loop already closed.
                self.unsubscribe(q)

    def _frame_time(self, cap: cv2.VideoCapture) -> float:
        """Seconds since the start of the current pass through the source."""
        position = cap.get(cv2.CAP_PROP_POS_MSEC)
        if position and position > 0:
            return position / 1000.0
        return time.monotonic() - self._start_wall

    def _rewind(self, cap: cv2.VideoCapture) -> None:
        cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        self._frame_index = 0
        self._start_wall = time.monotonic()
        logger.debug("Frame source rewound: %s", self.source)

    def _run(self) -> None:
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            logger.error("Failed to open frame source: %s", self.source)
            return

        # Devices deliver at their own cadence; files are paced to their FPS.
        fps = cap.get(cv2.CAP_PROP_FPS)
        is_device = isinstance(self.source, int)
        period = 1.0 / fps if not is_device and fps and fps > 1 else 0.0
        deadline = time.monotonic()

        try:
            while not self._stop_event.is_set():
                ok, image = cap.read()
                if not ok:
                    if is_device or not self.loop:
                        logger.warning("Frame source ended: %s", self.source)
                        break
                    self._rewind(cap)
                    continue

                self._frame_index += 1
                self._broadcast(Frame(self._frame_index, self._frame_time(cap), image))

                if period:
                    deadline += period
                    remaining = deadline - time.monotonic()
                    if remaining > 0:
                        self._stop_event.wait(remaining)
                    elif remaining < -3 * period:
                        deadline = time.monotonic()
        finally:
            cap.release()
