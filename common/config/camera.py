"""Camera source and overlay timing configuration."""
from __future__ import annotations

import os

from .paths import BASE_DIR  # noqa: F401  (loads .env)


def _truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_source(raw: str) -> int | str:
    raw = raw.strip()
    # Bare integers select a local capture device.
    return int(raw) if raw.isdigit() else raw


CAMERA_SOURCE = _parse_source(os.getenv("CAMERA_SOURCE", "0"))
CAMERA_LOOP = _truthy(os.getenv("CAMERA_LOOP"), default=True)
CAMERA_QUEUE_SIZE = max(1, int(os.getenv("CAMERA_QUEUE_SIZE", "1")))

TRACKING_TIMEOUT_SEC = float(os.getenv("TRACKING_TIMEOUT_SEC", "1.0"))
MESSAGE_AUTO_HIDE_SEC = float(os.getenv("MESSAGE_AUTO_HIDE_SEC", "5.0"))
