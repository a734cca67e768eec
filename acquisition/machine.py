"""Acquisition state machine: search -> upload -> track."""
from __future__ import annotations

import asyncio
import logging

from acquisition.exceptions import InvalidTransitionError
from acquisition.tracking import TrackingMonitor
from acquisition.types import SEARCH_MESSAGE, AcquisitionState, OverlaySurface
from common.config.camera import TRACKING_TIMEOUT_SEC
from common.types import Payload
from cv.gate import DetectionGate
from cv.throttler import FrameThrottler
from cv.types import DetectedRegion
from scoring.client import UploadClient
from scoring.exceptions import UploadError
from scoring.polling import PollingSession

logger = logging.getLogger(__name__)


class AcquisitionStateMachine:
    """
    Owns the single acquisition state and every transition out of it.

    All methods must be called from the event loop thread. Each search
    starts a new ``cycle``; upload completions carry the cycle they were
    started in and are dropped if a newer search has begun since.
    """

    def __init__(
        self,
        throttler: FrameThrottler,
        gate: DetectionGate,
        client: UploadClient,
        surface: OverlaySurface,
        polling: PollingSession | None = None,
        tracking_timeout: float = TRACKING_TIMEOUT_SEC,
    ):
        self._throttler = throttler
        self._gate = gate
        self._client = client
        self._surface = surface
        self._polling = polling if polling is not None else PollingSession(client)
        self.tracking = TrackingMonitor(self.tracking_lost, timeout=tracking_timeout)
        self._state = AcquisitionState.IDLE
        self._cycle = 0
        self._payload: Payload | None = None
        self._region: DetectedRegion | None = None
        self._upload_task: asyncio.Task | None = None
        self._has_loaded_game = False
        self.current_game_label = ""

        gate.on_region = self.on_region_found

    @property
    def state(self) -> AcquisitionState:
        return self._state

    @property
    def cycle(self) -> int:
        return self._cycle

    @property
    def payload(self) -> Payload | None:
        return self._payload

    @property
    def polling(self) -> PollingSession:
        return self._polling

    @property
    def has_loaded_game(self) -> bool:
        return self._has_loaded_game

    def _transition(self, new_state: AcquisitionState) -> None:
        if new_state is not self._state:
            logger.info("Acquisition %s -> %s (cycle %d)", self._state.value, new_state.value, self._cycle)
        self._state = new_state

    # ---------- Search ----------

    def start_search(self, reason: str = "start") -> None:
        """Tear down any game in progress and look for a new region."""
        logger.info("Starting search (%s)", reason)
        self._cycle += 1

        if self._upload_task is not None and not self._upload_task.done():
            self._upload_task.cancel()
        self._upload_task = None

        self._polling.stop()
        self.tracking.stop()
        self._payload = None
        self._region = None
        self._gate.reset()

        self._surface.stop_loading()
        self._surface.hide_retry()
        self._surface.clear()
        self._surface.show_message(SEARCH_MESSAGE, auto_hide=self._has_loaded_game)

        self._transition(AcquisitionState.SEARCHING)
        self._throttler.start()

    def retry(self) -> None:
        if self._state not in (AcquisitionState.FAILED, AcquisitionState.IDLE):
            raise InvalidTransitionError(f"Cannot retry while {self._state.value}")
        self.start_search("retry")

    def session_failed(self, reason: str) -> None:
        logger.warning("Tracking session failed: %s", reason)
        self.start_search("session failed")

    # ---------- Detection + upload ----------

    def on_region_found(self, region: DetectedRegion) -> None:
        if self._state is not AcquisitionState.SEARCHING:
            logger.debug("Ignoring region while %s", self._state.value)
            return

        self._region = region
        self._transition(AcquisitionState.AWAITING_UPLOAD_RESULT)
        self._throttler.stop()
        # The region must be anchored within the grace period or the search restarts.
        self.tracking.start()
        self._surface.start_loading()
        self._upload_task = asyncio.create_task(self._upload(region, self._cycle))

    async def _upload(self, region: DetectedRegion, cycle: int) -> None:
        try:
            payload = await self._client.upload(region)
        except UploadError as exc:
            self._upload_failed(exc, cycle)
            return
        except Exception as exc:
            logger.exception("Unexpected upload failure")
            self._upload_failed(exc, cycle)
            return
        self._upload_succeeded(region, payload, cycle)

    def _is_current(self, cycle: int) -> bool:
        return cycle == self._cycle and self._state is AcquisitionState.AWAITING_UPLOAD_RESULT

    def _upload_succeeded(self, region: DetectedRegion, payload: Payload, cycle: int) -> None:
        if not self._is_current(cycle):
            logger.debug("Dropping upload result from stale cycle %d", cycle)
            return

        self._upload_task = None
        self._payload = payload
        self._has_loaded_game = True
        self._transition(AcquisitionState.TRACKING)

        self._surface.stop_loading()
        self.current_game_label = payload.headline
        self._surface.show_message(self.current_game_label, auto_hide=True)
        self._surface.render(region, payload)
        self._polling.start(payload.game_id, self._on_poll_update, initial=payload)

    def _upload_failed(self, exc: BaseException, cycle: int) -> None:
        if not self._is_current(cycle):
            logger.debug("Dropping upload failure from stale cycle %d", cycle)
            return

        logger.warning("Upload failed: %s", exc)
        self._upload_task = None
        self._gate.reset_dispatch()
        self._transition(AcquisitionState.FAILED)
        self._surface.stop_loading()
        self._surface.show_retry()

    def _on_poll_update(self, payload: Payload) -> None:
        if self._state is not AcquisitionState.TRACKING:
            return
        self._payload = payload
        self._surface.update_payload(payload)

    # ---------- Tracking ----------

    def anchor_updated(self, is_tracked: bool = True) -> None:
        if not self.tracking.started:
            self.tracking.start()
        else:
            self.tracking.anchor_updated(is_tracked)

    def tracking_lost(self) -> bool:
        """Apply a lost-tracking signal. Returns True if a new search began."""
        if self._state in (AcquisitionState.SEARCHING, AcquisitionState.AWAITING_UPLOAD_RESULT):
            self.start_search("tracking lost")
            return True
        if self._state is AcquisitionState.TRACKING:
            logger.info("Tracking lost after game loaded; keeping overlay")
        else:
            logger.debug("Tracking lost ignored while %s", self._state.value)
        return False

    # ---------- Lifecycle ----------

    async def shutdown(self) -> None:
        self._cycle += 1
        self._throttler.stop()
        self.tracking.stop()
        await self._polling.aclose()

        task = self._upload_task
        self._upload_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._gate.close()
        self._payload = None
        self._transition(AcquisitionState.IDLE)

    def snapshot(self) -> dict:
        return {
            "state": self._state.value,
            "cycle": self._cycle,
            "payload": self._payload.to_wire() if self._payload else None,
            "current_game_label": self.current_game_label,
            "polling": self._polling.active,
            "has_loaded_game": self._has_loaded_game,
        }
