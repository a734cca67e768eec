"""HTTP client for the scoring service."""
from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

import cv2
import httpx
import numpy as np
from pydantic import ValidationError

from common.config.scoring import ScoringConfig, scoring_config
from common.types import Payload
from cv.types import DetectedRegion
from scoring.exceptions import (
    DecodeError,
    EncodeError,
    NetworkError,
    NoData,
    PollDecodeError,
    UploadTimeout,
)

logger = logging.getLogger(__name__)

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


class UploadClient:
    """
    Uploads corrected regions and fetches game state.

    Every call is a single attempt. Retrying is up to the caller.
    """

    def __init__(
        self,
        config: ScoringConfig = scoring_config,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            transport=transport,
            headers={"accept": "application/json"},
        )

    async def __aenter__(self) -> "UploadClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def encode_image(self, image: np.ndarray) -> bytes:
        rotation = _ROTATIONS.get(self.config.upload_rotation)
        if rotation is not None:
            image = cv2.rotate(image, rotation)
        try:
            ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality])
        except cv2.error as exc:
            raise EncodeError(f"Unable to encode region image: {exc}") from exc
        if not ok:
            raise EncodeError("Unable to encode region image")
        return buffer.tobytes()

    async def upload(self, region: DetectedRegion) -> Payload:
        data = await asyncio.to_thread(self.encode_image, region.image)
        # Unique name per request so intermediaries never serve a cached result.
        filename = f"frame-{uuid4().hex}.jpg"

        # httpx timeouts apply per phase; wait_for bounds the whole exchange.
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self.config.upload_url,
                    files={"file": (filename, data, "image/jpeg")},
                    timeout=self.config.upload_timeout_sec,
                ),
                timeout=self.config.upload_timeout_sec,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise UploadTimeout(
                f"Upload timed out after {self.config.upload_timeout_sec:.1f}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Upload failed: {type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise NetworkError(
                f"Upload rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = Payload.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeError(f"Unable to decode payload: {exc.error_count()} error(s)") from exc

        logger.info("Uploaded %s (%d bytes) -> game %s", filename, len(data), payload.game_id)
        return payload

    async def fetch_game(self, game_id: str | None) -> Payload:
        params = {"gameId": game_id} if game_id else None
        try:
            response = await self._client.get(
                self.config.game_url,
                params=params,
                timeout=self.config.poll_timeout_sec,
            )
        except httpx.HTTPError as exc:
            raise NoData(f"Game fetch failed: {type(exc).__name__}: {exc}") from exc

        if not response.is_success or not response.content:
            raise NoData(f"Game fetch returned HTTP {response.status_code} with {len(response.content)} byte(s)")

        try:
            return Payload.model_validate_json(response.content)
        except ValidationError as exc:
            raise PollDecodeError(f"Unable to decode game payload: {exc.error_count()} error(s)") from exc
