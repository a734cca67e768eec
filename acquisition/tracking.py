"""Grace-period detection of lost plane tracking."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from common.config.camera import TRACKING_TIMEOUT_SEC

logger = logging.getLogger(__name__)


class TrackingMonitor:
    """
    Fires ``on_lost`` once if no tracked anchor update arrives within
    ``timeout`` seconds. Every tracked update pushes the deadline back.
    """

    def __init__(self, on_lost: Callable[[], None], timeout: float = TRACKING_TIMEOUT_SEC):
        self._on_lost = on_lost
        self._timeout = timeout
        self._handle: asyncio.TimerHandle | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self._started = True
        self._arm()

    def anchor_updated(self, is_tracked: bool) -> None:
        if self._started and is_tracked:
            self._arm()

    def stop(self) -> None:
        self._started = False
        self._disarm()

    def _arm(self) -> None:
        self._disarm()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._timeout, self._expire)

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self) -> None:
        self._handle = None
        logger.info("No tracked anchor update for %.1fs", self._timeout)
        self._on_lost()
