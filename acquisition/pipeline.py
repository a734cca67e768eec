"""Wires frame source, detection, upload and state machine together."""
from __future__ import annotations

import asyncio
import logging

from acquisition.machine import AcquisitionStateMachine
from common.config.camera import CAMERA_QUEUE_SIZE
from cv.detectors import RectangleDetector, get_detector
from cv.gate import DetectionGate
from cv.throttler import FrameThrottler
from scoring.client import UploadClient
from scoring.polling import PollingSession
from streaming.events import OverlayEventHub
from streaming.frame_source import FrameSource, offer_latest

logger = logging.getLogger(__name__)


class OverlayPipeline:
    def __init__(
        self,
        frame_source: FrameSource,
        client: UploadClient,
        hub: OverlayEventHub | None = None,
        detector: RectangleDetector | None = None,
        queue_size: int = CAMERA_QUEUE_SIZE,
    ):
        self.frame_source = frame_source
        self.client = client
        self.hub = hub if hub is not None else OverlayEventHub()
        self.gate = DetectionGate(detector if detector is not None else get_detector())
        self.throttler = FrameThrottler(self.gate)
        self.machine = AcquisitionStateMachine(
            throttler=self.throttler,
            gate=self.gate,
            client=client,
            surface=self.hub,
            polling=PollingSession(client),
        )
        self._queue_size = queue_size
        self._frames: asyncio.Queue | None = None
        self._pump: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._pump is not None and not self._pump.done()

    async def start(self) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._frames = self.frame_source.subscribe(loop, maxsize=self._queue_size)
        self._pump = asyncio.create_task(self.throttler.run(self._frames))
        self.frame_source.start()
        self.machine.start_search("launch")
        logger.info("Overlay pipeline started")

    async def stop(self) -> None:
        await self.machine.shutdown()

        if self._frames is not None:
            self.frame_source.unsubscribe(self._frames)
            offer_latest(self._frames, None)
        if self._pump is not None:
            try:
                await asyncio.wait_for(self._pump, timeout=2)
            except asyncio.TimeoutError:
                self._pump.cancel()
        self._pump = None
        self._frames = None

        await asyncio.to_thread(self.frame_source.stop)
        await self.client.aclose()
        self.hub.close()
        logger.info("Overlay pipeline stopped")
