"""Creative Council: Web Server.

FastAPI backend for the council dashboard.
Provides REST endpoints + WebSocket for real-time progress.

Usage:
    python server.py
    # Then open http://localhost:8000
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import queue as queue_mod
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Form, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

import config
from council.errors import InputError, PipelineBusyError, RestartConfirmationRequired
from council.llm import get_usage_summary
from council.orchestrator import Orchestrator
from council.progress import ProgressEvent
from schemas.council import Asset, RunInputs

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _check_api_keys() -> list[str]:
    """Check the reasoning-service credentials. Returns list of warnings."""
    warnings = []
    if not config.GOOGLE_API_KEY:
        warnings.append("GOOGLE_API_KEY is not set, council runs will fail!")
    return warnings


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

orchestrator = Orchestrator()

ws_clients: list[WebSocket] = []

# ProgressLog observers run on the council's control thread; the broadcaster
# task drains this queue on the event loop.
_event_queue: queue_mod.Queue = queue_mod.Queue(maxsize=1000)


def _enqueue_event(event: ProgressEvent):
    try:
        _event_queue.put_nowait(event)
    except queue_mod.Full:
        logger.warning("Progress event queue full, dropping %s event", event.kind)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    key_warnings = _check_api_keys()
    if key_warnings:
        logger.warning("=" * 60)
        logger.warning("API KEY WARNINGS:")
        for w in key_warnings:
            logger.warning("  • %s", w)
        logger.warning("Copy .env.example to .env and add your keys:")
        logger.warning("  cp .env.example .env")
        logger.warning("=" * 60)
    else:
        logger.info("API keys: Gemini configured")

    unsubscribe = orchestrator.progress.subscribe(_enqueue_event)
    broadcaster_task = asyncio.create_task(_event_broadcaster())

    yield

    # Shutdown
    broadcaster_task.cancel()
    unsubscribe()


app = FastAPI(title="Creative Council", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# WebSocket broadcast
# ---------------------------------------------------------------------------

async def broadcast(msg: dict):
    """Send a message to all connected WebSocket clients."""
    dead = []
    for ws in ws_clients:
        try:
            await ws.send_json(msg)
        except Exception:
            dead.append(ws)
    for ws in dead:
        ws_clients.remove(ws)


def _event_message(event: ProgressEvent) -> dict:
    msg = {"type": event.kind, "percent": round(event.percent, 2)}
    if event.message is not None:
        msg["message"] = event.message
    return msg


async def _event_broadcaster():
    """Background task: drain progress events and broadcast to WS clients."""
    while True:
        batch: list[ProgressEvent] = []
        try:
            while len(batch) < 50:
                batch.append(_event_queue.get_nowait())
        except queue_mod.Empty:
            pass

        if ws_clients:
            for event in batch:
                await broadcast(_event_message(event))
            if batch:
                await broadcast({"type": "stage", "stage": orchestrator.stage.value})

        await asyncio.sleep(0.25)


def _state_payload() -> dict:
    state = orchestrator.snapshot()
    return state.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------

async def _read_assets(uploads: list[UploadFile]) -> list[Asset]:
    assets = []
    for index, upload in enumerate(uploads, start=1):
        data = await upload.read()
        mime_type = upload.content_type
        if not mime_type or mime_type == "application/octet-stream":
            guessed, _ = mimetypes.guess_type(upload.filename or "")
            mime_type = guessed or "application/octet-stream"
        assets.append(Asset(id=f"asset_{index}", raw_bytes=data, mime_type=mime_type))
    return assets


@app.post("/api/start")
async def api_start(
    url: str = Form(""),
    market: str = Form(config.DEFAULT_MARKET),
    persona_count: int = Form(config.DEFAULT_PERSONA_COUNT),
    confirm_restart: bool = Form(False),
    assets: list[UploadFile] = File(default=[]),
):
    """Start a council run in the background."""
    inputs = RunInputs(
        target_url=url,
        market=market,
        persona_count=persona_count,
        assets=await _read_assets(assets),
    )
    try:
        orchestrator.start(inputs, confirm_restart=confirm_restart)
    except RestartConfirmationRequired as e:
        return JSONResponse({"error": str(e), "confirm_required": True}, status_code=409)
    except InputError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except PipelineBusyError as e:
        return JSONResponse({"error": str(e)}, status_code=409)

    logger.info(
        "Council started: %s (%s, %d persona(s), %d asset(s))",
        inputs.target_url, inputs.market, inputs.persona_count, len(inputs.assets),
    )
    return {"status": "started", "stage": orchestrator.stage.value}


@app.post("/api/reset")
async def api_reset():
    """Discard the current report and return to idle."""
    try:
        orchestrator.reset()
    except PipelineBusyError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    await broadcast({"type": "reset"})
    return {"status": "idle"}


@app.get("/api/state")
async def api_state():
    """Full council state: stage, progress, log, brand, personas, judgments, report."""
    return _state_payload()


@app.get("/api/health")
async def api_health():
    """Check system health: API key, model, council limits."""
    warnings = _check_api_keys()
    return {
        "ok": not warnings,
        "model": config.COUNCIL_MODEL,
        "stage": orchestrator.stage.value,
        "markets": config.MARKETS,
        "default_market": config.DEFAULT_MARKET,
        "persona_range": [config.MIN_PERSONAS, config.MAX_PERSONAS],
        "usage": get_usage_summary(),
        "warnings": warnings,
    }


# ---------------------------------------------------------------------------
# WebSocket for real-time updates
# ---------------------------------------------------------------------------

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    ws_clients.append(ws)
    try:
        await ws.send_json({"type": "state_sync", "state": _state_payload()})
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        if ws in ws_clients:
            ws_clients.remove(ws)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    print("\n  Creative Council Dashboard")
    print("  http://localhost:8000\n")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
