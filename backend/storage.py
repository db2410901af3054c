"""
Image blob storage for AgriWatch.

Handles saving and deleting detection snapshots, either on the local
filesystem (served under /uploads) or in a Supabase Storage bucket.
"""
import logging
import os
import time
import uuid
from typing import Optional, Protocol
from urllib.parse import urlparse

from supabase import create_client, Client

from config import Settings

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads/"


def make_filename() -> str:
    """Unique, time-ordered filename for a snapshot."""
    return f"detect_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.jpg"


class BlobStore(Protocol):
    def save(self, data: bytes) -> str:
        """Persist the bytes and return a reference a client can fetch."""
        ...

    def delete(self, ref: str) -> None:
        ...


# ==================== Local filesystem ====================

class LocalBlobStore:
    """Writes images to a directory mounted as static files at /uploads."""

    def __init__(self, upload_dir: str):
        self.upload_dir = os.path.abspath(upload_dir)
        os.makedirs(self.upload_dir, exist_ok=True)

    def save(self, data: bytes) -> str:
        filename = make_filename()
        with open(os.path.join(self.upload_dir, filename), "wb") as f:
            f.write(data)
        logger.debug(f"📷 Image saved: {filename}")
        return f"{UPLOAD_URL_PREFIX}{filename}"

    def path_for(self, ref: str) -> str:
        """
        Resolve a reference returned by save() back to a file path.

        Raises:
            ValueError: if the reference points outside the upload directory
        """
        filename = os.path.basename(ref)
        if not ref.startswith(UPLOAD_URL_PREFIX) or not filename or filename != ref[len(UPLOAD_URL_PREFIX):]:
            raise ValueError(f"Not a local upload reference: {ref}")
        return os.path.join(self.upload_dir, filename)

    def delete(self, ref: str) -> None:
        os.remove(self.path_for(ref))
        logger.debug(f"🗑️ Image deleted: {ref}")


# ==================== Supabase Storage ====================

class SupabaseBlobStore:
    """Uploads images to a Supabase Storage bucket and returns public URLs."""

    def __init__(self, url: Optional[str], key: Optional[str], bucket: str, client: Optional[Client] = None):
        if client is None:
            if not url or not key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
            client = create_client(url, key)
        self._client = client
        self.bucket = bucket

    def save(self, data: bytes) -> str:
        filename = make_filename()
        storage = self._client.storage.from_(self.bucket)
        storage.upload(
            path=filename,
            file=data,
            file_options={"content-type": "image/jpeg"}
        )
        public_url = storage.get_public_url(filename)
        logger.debug(f"✅ Image uploaded: {filename}")
        return public_url

    def delete(self, ref: str) -> None:
        filename = os.path.basename(urlparse(ref).path)
        if not filename:
            raise ValueError(f"Not a storage reference: {ref}")
        self._client.storage.from_(self.bucket).remove([filename])
        logger.debug(f"🗑️ Image deleted: {filename}")

    def check(self) -> bool:
        """
        Verify the bucket exists and is accessible.
        """
        try:
            self._client.storage.from_(self.bucket).list()
            logger.info(f"✅ Supabase Storage bucket '{self.bucket}' ready")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Storage bucket warning: {e}")
            logger.warning(f"   Create bucket '{self.bucket}' in Supabase Dashboard")
            return False


def build_blob_store(settings: Settings) -> BlobStore:
    """Pick the storage backend configured by BLOB_BACKEND."""
    if settings.blob_backend == "supabase":
        return SupabaseBlobStore(settings.supabase_url, settings.supabase_key, settings.storage_bucket)
    if settings.blob_backend == "local":
        return LocalBlobStore(settings.upload_dir)
    raise ValueError(f"Unknown BLOB_BACKEND: {settings.blob_backend}")
