"""Types for the acquisition state machine."""
from __future__ import annotations

from enum import Enum
from typing import Protocol

from common.types import Payload
from cv.types import DetectedRegion

SEARCH_MESSAGE = "Place Camera at a Live Game"


class AcquisitionState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    AWAITING_UPLOAD_RESULT = "awaiting_upload_result"
    TRACKING = "tracking"
    FAILED = "failed"


class OverlaySurface(Protocol):
    """Everything the state machine tells the outside world."""

    def show_message(self, text: str, auto_hide: bool) -> None: ...

    def start_loading(self) -> None: ...

    def stop_loading(self) -> None: ...

    def show_retry(self) -> None: ...

    def hide_retry(self) -> None: ...

    def render(self, region: DetectedRegion, payload: Payload) -> None: ...

    def update_payload(self, payload: Payload) -> None: ...

    def clear(self) -> None: ...
