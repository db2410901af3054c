"""
Runtime configuration for the AgriWatch backend.

Values come from environment variables (case-insensitive), with a `.env`
file read as well for local development. A malformed value fails at
startup instead of falling back to its default.
"""
import os
from functools import lru_cache
from typing import Annotated, Optional, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_API_KEY = "change-me"
DEFAULT_UPLOAD_DIR = os.path.join(os.path.dirname(__file__), "uploads")

# Human and livestock labels, in both the device's language and English
DEFAULT_PRIORITY_CLASSES = ("person", "personne", "cow", "vache", "horse", "cheval")


class Settings(BaseSettings):
    """Backend settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    api_key: str = DEFAULT_API_KEY
    log_level: str = "INFO"

    # Image storage: "local" writes to upload_dir, "supabase" uses a bucket
    blob_backend: str = "local"
    upload_dir: str = DEFAULT_UPLOAD_DIR
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_bucket: str = "agriwatch-images"

    # In-memory retention
    max_detections: int = 1000
    max_alerts: int = 100

    stream_url_ttl_seconds: int = 2 * 60 * 60
    # Comma-separated in the environment, e.g. PRIORITY_CLASSES=person,loup
    priority_classes: Annotated[Tuple[str, ...], NoDecode] = DEFAULT_PRIORITY_CLASSES
    other_category: str = "other"
    subscriber_queue_size: int = 100

    # mDNS advertisement for edge devices on the LAN
    mdns_enabled: bool = False
    mdns_hostname: str = "agriwatch"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
        frozen = True

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("blob_backend")
    @classmethod
    def _lower_blob_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("priority_classes", mode="before")
    @classmethod
    def _split_priority_classes(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        classes = tuple(item.strip().lower() for item in value if item.strip())
        return classes or DEFAULT_PRIORITY_CLASSES


@lru_cache()
def get_settings() -> Settings:
    return Settings()
