"""
AgriWatch Backend - FastAPI Application

Dashboard backend for the field camera. Handles:
- Detection ingestion from the Raspberry Pi (images, objects, stats)
- Priority alerts and their acknowledgement
- The Pi's rotating public stream URL
- Live updates to dashboards over WebSocket
- mDNS advertisement for device discovery

To run locally:
    uvicorn main:create_app --factory --reload --host 0.0.0.0 --port 3000
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from auth import ApiKeyVerifier, CredentialVerifier, require_principal
from config import DEFAULT_API_KEY, Settings, get_settings
from discovery import ServiceAdvertiser
from errors import AgriWatchError
from models import (
    AcknowledgeResponse,
    AlertPage,
    Detection,
    DetectionPage,
    DetectionSubmission,
    HealthResponse,
    StatsView,
    StreamUrlInfo,
    StreamUrlResponse,
    StreamUrlUpdate,
    SubmitResponse,
    SuccessResponse,
    utcnow,
)
from pipeline import Pipeline
from fanout import Publisher, Subscription
from storage import LocalBlobStore, SupabaseBlobStore, build_blob_store

VERSION = "1.0.0"

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


# ==================== API Endpoints ====================

@router.get("/api/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check endpoint."""
    return HealthResponse(
        status="online",
        timestamp=utcnow(),
        uptime=time.monotonic() - request.app.state.started_at,
    )


@router.get("/api/info")
async def server_info(request: Request):
    """
    Server information for device discovery.
    The Pi can use this to verify the connection and find the endpoints.
    """
    settings: Settings = request.app.state.settings
    advertiser: Optional[ServiceAdvertiser] = request.app.state.advertiser
    return {
        "success": True,
        "server": {
            "name": "AgriWatch",
            "version": VERSION,
            "blob_backend": settings.blob_backend,
            "mdns_enabled": settings.mdns_enabled,
            "mdns_running": bool(advertiser and advertiser.running),
            "subscribers": request.app.state.pipeline.publisher.subscriber_count,
            "endpoints": {
                "detection": "/api/detection",
                "stream_url": "/api/update-stream-url",
                "realtime": "/ws",
                "docs": "/docs",
            },
        },
    }


@router.post("/api/detection", response_model=SubmitResponse, dependencies=[Depends(require_principal)])
async def submit_detection(submission: DetectionSubmission, pipeline: Pipeline = Depends(get_pipeline)):
    """
    Receive a detection from the Raspberry Pi.

    - Saves the image (if any)
    - Stores the detection and updates stats
    - Raises an alert for priority objects
    - Pushes both to connected dashboards
    """
    detection = await pipeline.ingest(submission)
    return SubmitResponse(success=True, message="Detection recorded", id=detection.id)


@router.post("/api/update-stream-url", response_model=StreamUrlResponse, dependencies=[Depends(require_principal)])
async def update_stream_url(body: StreamUrlUpdate, pipeline: Pipeline = Depends(get_pipeline)):
    """The Pi posts its current tunnel URL here."""
    endpoint = pipeline.update_stream_url(body.stream_url)
    return StreamUrlResponse(success=True, message="Stream URL updated", url=endpoint.url)


@router.get("/api/stream-url", response_model=StreamUrlInfo)
async def get_stream_url(pipeline: Pipeline = Depends(get_pipeline)):
    endpoint = pipeline.stream.get_url()
    return StreamUrlInfo(url=endpoint.url, last_update=endpoint.last_update)


@router.get("/api/detections", response_model=DetectionPage)
async def list_detections(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=0),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Get detections, most recent first."""
    total, page = pipeline.detections.list(offset, limit)
    return DetectionPage(total=total, data=page)


@router.get("/api/detections/{detection_id}", response_model=Detection)
async def get_detection(detection_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.detections.get(detection_id)


@router.delete("/api/detections/{detection_id}", response_model=SuccessResponse, dependencies=[Depends(require_principal)])
async def delete_detection(detection_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    """Delete a detection and, in the background, its image."""
    pipeline.delete_detection(detection_id)
    return SuccessResponse(success=True)


@router.get("/api/alerts", response_model=AlertPage)
async def list_alerts(unacknowledged: bool = False, pipeline: Pipeline = Depends(get_pipeline)):
    total, page = pipeline.alerts.list(only_unacknowledged=unacknowledged)
    return AlertPage(total=total, data=page)


@router.post("/api/alerts/{alert_id}/acknowledge", response_model=AcknowledgeResponse)
async def acknowledge_alert(alert_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    alert = pipeline.acknowledge_alert(alert_id)
    return AcknowledgeResponse(success=True, alert=alert)


@router.get("/api/stats", response_model=StatsView)
async def get_stats(pipeline: Pipeline = Depends(get_pipeline)):
    """Get dashboard statistics."""
    return pipeline.stats_view()


# ==================== WebSocket ====================

async def _pump(websocket: WebSocket, subscription: Subscription, publisher: Publisher) -> None:
    """
    Forward queued events to one client until it goes away. The
    subscription is dropped as soon as sending stops, whatever the reason.
    """
    try:
        while True:
            event, data = await subscription.next_event()
            await websocket.send_json({"event": event, "data": data})
    except (WebSocketDisconnect, RuntimeError):
        pass
    except Exception as e:
        logger.warning(f"⚠️ Failed to send to client {subscription.id}: {e}")
    finally:
        publisher.unsubscribe(subscription)


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    """
    Live channel for dashboards. Sends `initial_stats` on connect, then
    new_detection, new_alert, stream_url_updated and alert_acknowledged.
    """
    pipeline: Pipeline = websocket.app.state.pipeline
    await websocket.accept()
    subscription = pipeline.publisher.subscribe()
    logger.info(f"📱 Client connected: {subscription.id}")

    sender = asyncio.create_task(_pump(websocket, subscription, pipeline.publisher))
    try:
        while True:
            # Clients don't send anything meaningful; this only detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        with suppress(asyncio.CancelledError):
            await sender
        pipeline.publisher.unsubscribe(subscription)
        logger.info(f"👋 Client disconnected: {subscription.id}")


# ==================== Error Handling ====================

async def handle_domain_error(request: Request, exc: AgriWatchError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())},
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    exc = context.get("exception")
    logger.error(f"❌ Unhandled error: {context.get('message')}", exc_info=exc)


# ==================== Application ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings
    logger.info(f"🚀 Starting AgriWatch Backend v{VERSION}...")

    # Keep serving if a background task blows up
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    if settings.api_key == DEFAULT_API_KEY:
        logger.warning("⚠️ API_KEY is not set, using the default key")

    blob_store = app.state.pipeline.blob_store
    if isinstance(blob_store, SupabaseBlobStore):
        # Warn early about a missing or unreachable bucket
        await asyncio.to_thread(blob_store.check)

    if settings.mdns_enabled:
        app.state.advertiser = ServiceAdvertiser(settings.mdns_hostname, settings.port, VERSION)
        app.state.advertiser.start()

    logger.info(f"✅ Backend ready on port {settings.port} (images: {settings.blob_backend})")

    yield

    # Shutdown
    if app.state.advertiser is not None:
        app.state.advertiser.stop()
    await app.state.pipeline.drain()
    logger.info("👋 Shutting down AgriWatch Backend...")


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[Pipeline] = None,
    verifier: Optional[CredentialVerifier] = None,
) -> FastAPI:
    """Build the application with its state wired in."""
    settings = settings or get_settings()
    if pipeline is None:
        pipeline = Pipeline(settings, build_blob_store(settings))

    app = FastAPI(
        title="AgriWatch API",
        description="Detection ingestion and alerting backend for the field camera",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.verifier = verifier or ApiKeyVerifier(settings.api_key)
    app.state.advertiser = None
    app.state.started_at = time.monotonic()

    # CORS Configuration - the dashboard may be served from anywhere
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AgriWatchError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(router)

    # Serve uploaded images
    if isinstance(pipeline.blob_store, LocalBlobStore):
        app.mount("/uploads", StaticFiles(directory=pipeline.blob_store.upload_dir), name="uploads")

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


# ==================== Run Server ====================

if __name__ == "__main__":
    run()
