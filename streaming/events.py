"""
Overlay event hub: the UI surface of the acquisition state machine.

Every surface call becomes a JSON-ready event fanned out to websocket
subscribers. The hub also keeps the current overlay state so late
subscribers can be brought up to date.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List

from common.config.camera import MESSAGE_AUTO_HIDE_SEC
from common.types import Payload
from cv.types import DetectedRegion
from streaming.frame_source import offer_latest

logger = logging.getLogger(__name__)


class OverlayEventHub:
    def __init__(self, auto_hide_seconds: float = MESSAGE_AUTO_HIDE_SEC, queue_size: int = 32) -> None:
        self._auto_hide_seconds = auto_hide_seconds
        self._queue_size = queue_size
        self._subscribers: List[asyncio.Queue] = []
        self._hide_handle: asyncio.TimerHandle | None = None
        self.message: str | None = None
        self.message_visible = False
        self.loading = False
        self.retry_visible = False
        self.region: dict | None = None
        self.payload: dict | None = None

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers = [sub for sub in self._subscribers if sub is not q]

    def snapshot(self) -> dict:
        return {
            "type": "snapshot",
            "message": self.message if self.message_visible else None,
            "loading": self.loading,
            "retry": self.retry_visible,
            "region": self.region,
            "payload": self.payload,
        }

    def _publish(self, event: dict) -> None:
        # Slow subscribers lose their oldest events rather than blocking the loop.
        for q in list(self._subscribers):
            offer_latest(q, event)

    # ---------- OverlaySurface ----------

    def show_message(self, text: str, auto_hide: bool) -> None:
        self.message = text
        self.message_visible = True
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None
        if auto_hide and self._auto_hide_seconds > 0:
            loop = asyncio.get_running_loop()
            self._hide_handle = loop.call_later(self._auto_hide_seconds, self._hide_message)
        self._publish({"type": "message", "text": text, "visible": True, "auto_hide": auto_hide})

    def _hide_message(self) -> None:
        self._hide_handle = None
        self.message_visible = False
        self._publish({"type": "message", "text": self.message, "visible": False, "auto_hide": True})

    def start_loading(self) -> None:
        self.loading = True
        self._publish({"type": "loading", "active": True})

    def stop_loading(self) -> None:
        if self.loading:
            self.loading = False
            self._publish({"type": "loading", "active": False})

    def show_retry(self) -> None:
        self.retry_visible = True
        self._publish({"type": "retry", "visible": True})

    def hide_retry(self) -> None:
        if self.retry_visible:
            self.retry_visible = False
            self._publish({"type": "retry", "visible": False})

    def render(self, region: DetectedRegion, payload: Payload) -> None:
        self.region = region.to_dict()
        self.payload = payload.to_wire()
        self._publish({"type": "render", "region": self.region, "payload": self.payload})

    def update_payload(self, payload: Payload) -> None:
        self.payload = payload.to_wire()
        self._publish({"type": "payload", "payload": self.payload})

    def clear(self) -> None:
        self.region = None
        self.payload = None
        self._publish({"type": "clear"})

    def close(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None
        for q in list(self._subscribers):
            offer_latest(q, None)
        self._subscribers.clear()
        logger.debug("Overlay event hub closed")
