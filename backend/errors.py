"""
Error taxonomy for the AgriWatch backend.

Each error carries the HTTP status it maps to, so the FastAPI layer can
render every failure through a single exception handler.
"""
from datetime import datetime
from typing import Any, Dict, Optional


class AgriWatchError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class Unauthorized(AgriWatchError):
    """Missing or mismatched credential."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class InvalidInput(AgriWatchError):
    """Malformed URL, bad payload or missing required field."""

    status_code = 400


class NotFound(AgriWatchError):
    """Unknown id, or a value that was never set."""

    status_code = 404


class Expired(AgriWatchError):
    """A stored value is older than its freshness window."""

    status_code = 410

    def __init__(self, message: str, last_update: Optional[datetime] = None):
        super().__init__(message)
        self.last_update = last_update

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.last_update is not None:
            body["last_update"] = self.last_update.isoformat()
        return body


class Internal(AgriWatchError):
    """Storage or blob failure. The caller is expected to retry."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
