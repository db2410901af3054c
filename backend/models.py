"""
Pydantic models for detections, alerts, stats and API request/response validation.

Wire names follow what the edge device and the dashboard already speak:
object fields are in French (objet, nom_anglais, categorie) and the stats
block is camelCase.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Dict

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Server clock, timezone-aware."""
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class DetectedObject(BaseModel):
    """
    One object reported by the edge device.

    Only the names and the category are read by the backend; any other field
    (confidence, bbox, ...) is kept and forwarded untouched.
    """
    name: str = Field(alias="objet")
    english_name: Optional[str] = Field(default=None, alias="nom_anglais")
    category: Optional[str] = Field(default=None, alias="categorie")

    class Config:
        extra = "allow"
        populate_by_name = True


class Detection(BaseModel):
    """A stored detection event. Immutable once inserted."""
    id: str
    timestamp: datetime
    image: Optional[str] = None
    detections: List[DetectedObject] = Field(default_factory=list)
    stats: Optional[Any] = None
    priority: Priority

    class Config:
        frozen = True


class Alert(BaseModel):
    """Raised for every high-priority detection."""
    id: str
    timestamp: datetime
    message: str
    detection: Detection
    acknowledged: bool = False


class Stats(BaseModel):
    """Process-lifetime counters. Never decremented."""
    total_detections: int = Field(default=0, alias="totalDetections")
    by_category: Dict[str, int] = Field(default_factory=dict, alias="byCategory")
    last_update: Optional[datetime] = Field(default=None, alias="lastUpdate")

    class Config:
        populate_by_name = True


class StatsView(Stats):
    """Stats plus the values derived from the live stores."""
    active_alerts: int = Field(default=0, alias="activeAlerts")
    recent_detections: int = Field(default=0, alias="recentDetections")


class StreamEndpoint(BaseModel):
    url: str
    last_update: datetime


# ==================== Requests ====================

class DetectionSubmission(BaseModel):
    """Payload posted by the edge device."""
    timestamp: datetime
    image: Optional[str] = None  # base64 JPEG
    detections: List[DetectedObject]
    stats: Optional[Any] = None


class StreamUrlUpdate(BaseModel):
    stream_url: str


# ==================== Responses ====================

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime: float


class SubmitResponse(BaseModel):
    success: bool
    message: str
    id: str


class StreamUrlResponse(BaseModel):
    success: bool
    message: str
    url: str


class StreamUrlInfo(BaseModel):
    url: str
    last_update: datetime


class DetectionPage(BaseModel):
    total: int
    data: List[Detection]


class AlertPage(BaseModel):
    total: int
    data: List[Alert]


class AcknowledgeResponse(BaseModel):
    success: bool
    alert: Alert


class SuccessResponse(BaseModel):
    success: bool
