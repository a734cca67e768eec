"""Scoring service (upload + game polling) configuration."""
from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator

from .paths import BASE_DIR  # noqa: F401  (loads .env)


class ScoringConfig(BaseModel):
    base_url: str = Field(
        default_factory=lambda: os.getenv("SCORING_BASE_URL", "http://stats-on-sight.appspot.com").strip().rstrip("/")
    )
    upload_path: str = Field(default_factory=lambda: os.getenv("SCORING_UPLOAD_PATH", "/upload").strip())
    game_path: str = Field(default_factory=lambda: os.getenv("SCORING_GAME_PATH", "/game").strip())
    upload_timeout_sec: float = Field(default_factory=lambda: float(os.getenv("SCORING_UPLOAD_TIMEOUT_SEC", "10")))
    poll_timeout_sec: float = Field(default_factory=lambda: float(os.getenv("SCORING_POLL_TIMEOUT_SEC", "10")))
    poll_interval_sec: float = Field(default_factory=lambda: float(os.getenv("SCORING_POLL_INTERVAL_SEC", "2.0")))
    jpeg_quality: int = Field(default_factory=lambda: int(os.getenv("SCORING_JPEG_QUALITY", "100")))
    upload_rotation: int = Field(default_factory=lambda: int(os.getenv("SCORING_UPLOAD_ROTATION", "0")))

    @field_validator("upload_rotation")
    @classmethod
    def _check_rotation(cls, value: int) -> int:
        if value % 360 not in (0, 90, 180, 270):
            raise ValueError("upload_rotation must be a multiple of 90 degrees")
        return value % 360

    @field_validator("jpeg_quality")
    @classmethod
    def _check_quality(cls, value: int) -> int:
        return max(0, min(100, value))

    @field_validator("upload_path", "game_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}{self.upload_path}"

    @property
    def game_url(self) -> str:
        return f"{self.base_url}{self.game_path}"


scoring_config = ScoringConfig()
