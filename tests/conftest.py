"""Shared test fixtures for overlay pipeline tests.

The acquisition machine is built around mocked throttler, gate and client
objects so transitions can be driven directly. The API client fixture
swaps the camera for a FakeFrameSource and routes scoring calls through
an httpx.MockTransport.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from acquisition.machine import AcquisitionStateMachine
from common.config.scoring import ScoringConfig
from cv.gate import DetectionGate
from cv.throttler import FrameThrottler
from scoring.client import UploadClient
from scoring.polling import PollingSession
from tests.fakes import SCENARIO_JSON, FakeFrameSource, RecordingSurface


# ---------- Config fixtures ----------

@pytest.fixture()
def scoring_config() -> ScoringConfig:
    return ScoringConfig(
        base_url="http://scoring.test",
        upload_path="/upload",
        game_path="/game",
        upload_timeout_sec=10,
        poll_timeout_sec=10,
        poll_interval_sec=2.0,
        jpeg_quality=90,
        upload_rotation=0,
    )


# ---------- Acquisition fixtures ----------

@pytest.fixture()
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture()
def fake_client() -> MagicMock:
    client = MagicMock()
    client.upload = AsyncMock()
    client.fetch_game = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture()
def machine_factory(surface, fake_client):
    """Factory that builds a state machine around mocked collaborators."""

    def _create(poll_interval: float = 60.0, tracking_timeout: float = 1.0) -> AcquisitionStateMachine:
        throttler = MagicMock(spec=FrameThrottler)
        gate = MagicMock(spec=DetectionGate)
        polling = PollingSession(fake_client, interval=poll_interval)
        return AcquisitionStateMachine(
            throttler=throttler,
            gate=gate,
            client=fake_client,
            surface=surface,
            polling=polling,
            tracking_timeout=tracking_timeout,
        )

    return _create


# ---------- API fixtures ----------

@pytest.fixture()
def scoring_requests() -> list[httpx.Request]:
    return []


@pytest.fixture()
def api_client(monkeypatch, scoring_config, scoring_requests):
    import api

    def handler(request: httpx.Request) -> httpx.Response:
        scoring_requests.append(request)
        return httpx.Response(200, text=SCENARIO_JSON)

    frame_source = FakeFrameSource()
    monkeypatch.setattr(api, "create_frame_source", lambda: frame_source)
    monkeypatch.setattr(
        api,
        "create_upload_client",
        lambda: UploadClient(config=scoring_config, transport=httpx.MockTransport(handler)),
    )

    with TestClient(api.app) as client:
        yield client
