"""
Detection ingestion and alerting pipeline.

The Pipeline owns every piece of process state (stores, stats, stream
registry, publisher) and is the only place that mutates it. Each mutation
runs under a single lock and never awaits while holding it, so subscribers
see events in the same order the stores changed.
"""
import asyncio
import base64
import binascii
import logging
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Sequence, Set

from pydantic import BaseModel

from config import Settings
from errors import Internal, InvalidInput
from models import (
    Alert,
    DetectedObject,
    Detection,
    DetectionSubmission,
    Priority,
    StatsView,
    StreamEndpoint,
    utcnow,
)
from priority import classify
from fanout import (
    ALERT_ACKNOWLEDGED,
    NEW_ALERT,
    NEW_DETECTION,
    STREAM_URL_UPDATED,
    Publisher,
)
from storage import BlobStore
from store import AlertStore, DetectionStore, StatsAggregator
from stream import StreamRegistry

logger = logging.getLogger(__name__)

RECENT_DETECTIONS = 10


def new_id(prefix: str) -> str:
    """Time-based id with a random suffix, e.g. det_1718000000000_3f9c0a1b2."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def decode_image(image_b64: str) -> bytes:
    """
    Decode a base64 image, accepting an optional data-URL prefix and
    MIME-style line wrapping.

    Raises:
        InvalidInput: if the payload is not valid base64
    """
    payload = "".join(image_b64.split(",")[-1].split())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput("Image is not valid base64") from e


def alert_message(objects: Sequence[DetectedObject]) -> str:
    return f"⚠️ Priority detection: {', '.join(obj.name for obj in objects)}"


def to_payload(model: BaseModel) -> Any:
    """JSON-ready dict using the wire (alias) field names."""
    return model.model_dump(mode="json", by_alias=True)


class Pipeline:
    """
    Process-wide state for the backend, constructed once at startup.

    Args:
        settings: Runtime configuration
        blob_store: Where detection images are written
        clock: Server clock, injectable for tests
    """

    def __init__(self, settings: Settings, blob_store: BlobStore, clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.blob_store = blob_store
        self.detections = DetectionStore(settings.max_detections)
        self.alerts = AlertStore(settings.max_alerts)
        self.stats = StatsAggregator(settings.other_category, clock=clock)
        self.stream = StreamRegistry(timedelta(seconds=settings.stream_url_ttl_seconds), clock=clock)
        self.publisher = Publisher(lambda: to_payload(self.stats.snapshot()), settings.subscriber_queue_size)
        self._priority_classes = frozenset(c.lower() for c in settings.priority_classes)
        self._clock = clock
        self._lock = threading.Lock()
        self._background: Set[asyncio.Task] = set()

    # ==================== Detections ====================

    async def ingest(self, submission: DetectionSubmission) -> Detection:
        """
        Accept one detection from the edge device.

        The image (if any) is fully written before anything is recorded; a
        storage failure aborts the whole submission.

        Raises:
            InvalidInput: if the image is not valid base64
            Internal: if the image could not be stored
        """
        image_ref: Optional[str] = None
        if submission.image:
            data = decode_image(submission.image)
            try:
                image_ref = await asyncio.to_thread(self.blob_store.save, data)
            except Exception as e:
                logger.error(f"❌ Failed to store image: {e}")
                raise Internal() from e

        try:
            detection = self._record(submission, image_ref)
        except Exception:
            if image_ref:
                self._cleanup_image(image_ref)
            raise

        names = ", ".join(obj.name for obj in detection.detections) or "(none)"
        logger.info(f"✅ Detection received: {names} [{detection.priority.value}]")
        return detection

    def _record(self, submission: DetectionSubmission, image_ref: Optional[str]) -> Detection:
        with self._lock:
            detection = Detection(
                id=new_id("det"),
                timestamp=submission.timestamp,
                image=image_ref,
                detections=submission.detections,
                stats=submission.stats,
                priority=classify(submission.detections, self._priority_classes),
            )
            self.detections.insert(detection)
            self.stats.record_detection(detection.detections)

            alert = None
            if detection.priority is Priority.HIGH:
                alert = Alert(
                    id=new_id("alert"),
                    timestamp=self._clock(),
                    message=alert_message(detection.detections),
                    detection=detection,
                )
                self.alerts.insert(alert)

            self.publisher.broadcast(NEW_DETECTION, to_payload(detection))
            if alert is not None:
                self.publisher.broadcast(NEW_ALERT, to_payload(alert))
        return detection

    def delete_detection(self, detection_id: str) -> Detection:
        """
        Remove a detection. Its image is deleted in the background and a
        failure there is only logged. Stats are not adjusted.

        Raises:
            NotFound: if no detection has this id
        """
        with self._lock:
            detection = self.detections.delete(detection_id)
        if detection.image:
            self._cleanup_image(detection.image)
        return detection

    def _cleanup_image(self, ref: str) -> None:
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._delete_blob, ref))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _delete_blob(self, ref: str) -> None:
        try:
            self.blob_store.delete(ref)
        except Exception as e:
            logger.warning(f"⚠️ Failed to delete image {ref}: {e}")

    async def drain(self) -> None:
        """Wait for pending background image cleanups."""
        if self._background:
            await asyncio.gather(*list(self._background))

    # ==================== Alerts ====================

    def acknowledge_alert(self, alert_id: str) -> Alert:
        """
        Raises:
            NotFound: if no alert has this id (nothing is broadcast)
        """
        with self._lock:
            alert = self.alerts.acknowledge(alert_id)
            self.publisher.broadcast(ALERT_ACKNOWLEDGED, to_payload(alert))
        return alert

    # ==================== Stream URL ====================

    def update_stream_url(self, url: str) -> StreamEndpoint:
        """
        Raises:
            InvalidInput: if the URL is not https (nothing is broadcast)
        """
        with self._lock:
            endpoint = self.stream.set_url(url)
            self.publisher.broadcast(STREAM_URL_UPDATED, {
                "url": endpoint.url,
                "timestamp": endpoint.last_update.isoformat(),
            })
        logger.info(f"✅ Stream URL updated: {url}")
        return endpoint

    # ==================== Stats ====================

    def stats_view(self) -> StatsView:
        snapshot = self.stats.snapshot()
        return StatsView(
            **snapshot.model_dump(),
            active_alerts=self.alerts.active_count(),
            recent_detections=len(self.detections.recent(RECENT_DETECTIONS)),
        )
