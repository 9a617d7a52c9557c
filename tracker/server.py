"""
HTTP and WebSocket endpoints.

Endpoints:
1. POST /api/track - tracking lookup
2. GET /api/health - liveness and counters
3. WebSocket /ws - live presence, chat and tracking updates
"""

import asyncio
import uuid
from contextlib import asynccontextmanager

import orjson
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from tracker import __version__
from tracker.core import TrackerServices
from tracker.exceptions import TrackerError
from tracker.live import QueueConnection
from tracker.models import TrackRequest


async def _pump_events(websocket: WebSocket, connection: QueueConnection):
    """Forward queued server events to the socket."""
    while True:
        event = await connection.outbox.get()
        await websocket.send_text(orjson.dumps(event.to_wire()).decode())


def create_app(services: TrackerServices) -> FastAPI:
    """Build the FastAPI application around shared services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.close()
        logger.info("Tracker services closed")

    app = FastAPI(title="Ultimate Tracker", version=__version__, lifespan=lifespan)
    app.state.services = services

    # ===== Error mapping =====

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body."})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error."})

    # ===== REST =====

    @app.post("/api/track")
    async def track(body: TrackRequest):
        """Look up a tracking number."""
        result = await services.tracking.track(body.tracking_number)
        return result.to_payload()

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", **services.get_stats()}

    # ===== WebSocket =====

    @app.websocket("/ws")
    async def live_socket(websocket: WebSocket):
        """
        Live viewer connection.

        Frames are JSON objects ``{"eventType": ..., "payload": ...}`` in
        both directions.
        """
        connection = QueueConnection(uuid.uuid4().hex)

        # Attached before accept so no broadcast is missed
        services.presence.connect(connection)
        await websocket.accept()

        writer = asyncio.create_task(_pump_events(websocket, connection))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                # Text and binary frames carry the same JSON envelope
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await services.presence.dispatch(connection.connection_id, raw)
        except WebSocketDisconnect:
            pass
        finally:
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Event writer for {connection.connection_id} stopped: {e!r}")
            await services.presence.disconnect(connection.connection_id)

    return app
