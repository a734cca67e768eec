"""FastAPI control surface for the scoreboard overlay pipeline."""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.websockets import WebSocketDisconnect

from acquisition import InvalidTransitionError
from acquisition.pipeline import OverlayPipeline
from common.config import CAMERA_LOOP, CAMERA_SOURCE
from scoring.client import UploadClient
from streaming.frame_source import FrameSource

logger = logging.getLogger(__name__)

_DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def _parse_cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "")
    if raw.strip():
        return [o.strip() for o in raw.split(",") if o.strip()]
    return list(_DEFAULT_CORS_ORIGINS)


pipeline: OverlayPipeline | None = None


class AnchorUpdate(BaseModel):
    is_tracked: bool = True


class SessionFailure(BaseModel):
    reason: str = "unknown"


def create_frame_source() -> FrameSource:
    return FrameSource(CAMERA_SOURCE, loop=CAMERA_LOOP)


def create_upload_client() -> UploadClient:
    return UploadClient()


@asynccontextmanager
async def lifespan(_: FastAPI):
    global pipeline

    pipeline = OverlayPipeline(create_frame_source(), create_upload_client())
    await pipeline.start()

    yield

    if pipeline:
        await pipeline.stop()
        pipeline = None


app = FastAPI(
    title="Scoreboard Overlay API",
    description="Detects a scoreboard screen, uploads it for scoring and keeps the game payload fresh",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            return


def _require_pipeline() -> OverlayPipeline:
    if not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


@app.get("/")
def read_root():
    return {
        "status": "ok",
        "message": "Scoreboard Overlay API is running",
        "endpoints": {
            "state": "/api/state",
            "restart": "/api/search/restart",
            "retry": "/api/retry",
            "tracking_anchor": "/api/tracking/anchor",
            "tracking_lost": "/api/tracking/lost",
            "session_failed": "/api/session/failed",
            "overlay_ws": "/api/overlay/ws",
            "health": "/health",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/state")
async def get_state():
    return _require_pipeline().machine.snapshot()


@app.post("/api/search/restart", status_code=202)
async def restart_search():
    machine = _require_pipeline().machine
    machine.start_search("requested")
    return machine.snapshot()


@app.post("/api/retry", status_code=202)
async def retry_search():
    machine = _require_pipeline().machine
    try:
        machine.retry()
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return machine.snapshot()


@app.post("/api/tracking/anchor", status_code=204)
async def anchor_update(update: AnchorUpdate):
    _require_pipeline().machine.anchor_updated(update.is_tracked)


@app.post("/api/tracking/lost", status_code=202)
async def tracking_lost():
    machine = _require_pipeline().machine
    restarted = machine.tracking_lost()
    return {"restarted": restarted, **machine.snapshot()}


@app.post("/api/session/failed", status_code=202)
async def session_failed(failure: SessionFailure):
    machine = _require_pipeline().machine
    machine.session_failed(failure.reason)
    return machine.snapshot()


@app.websocket("/api/overlay/ws")
async def websocket_overlay(websocket: WebSocket):
    await websocket.accept()

    if not pipeline:
        await websocket.send_json({"type": "error", "message": "Pipeline unavailable"})
        await websocket.close(code=1011)
        return

    hub = pipeline.hub
    events = hub.subscribe()
    # Watch for client disconnect while blocked on the event queue.
    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        await websocket.send_json(hub.snapshot())
        while True:
            getter = asyncio.create_task(events.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                getter.cancel()
                break
            event = getter.result()
            if event is None:
                await websocket.close(code=1001)
                break
            await websocket.send_json(event)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Overlay websocket stream failed")
    finally:
        receiver.cancel()
        hub.unsubscribe(events)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000, workers=1, loop="asyncio")
