"""
Registry for the edge device's public video stream URL.

The device exposes its camera through a tunnel whose URL rotates
unpredictably, so it re-posts the URL periodically. A URL that has not been
refreshed within the TTL is reported as expired instead of being served.
"""
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from errors import Expired, InvalidInput, NotFound
from models import StreamEndpoint, utcnow

SECURE_SCHEME = "https://"
DEFAULT_TTL = timedelta(hours=2)


class StreamRegistry:
    """Single-slot store for the current stream URL."""

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow):
        self._ttl = ttl
        self._clock = clock
        self._current: Optional[StreamEndpoint] = None
        self._lock = threading.Lock()

    def set_url(self, url: str) -> StreamEndpoint:
        """
        Replace the current URL.

        Raises:
            InvalidInput: if the URL does not use https
        """
        if not url or not url.startswith(SECURE_SCHEME):
            raise InvalidInput("Invalid URL")

        endpoint = StreamEndpoint(url=url, last_update=self._clock())
        with self._lock:
            self._current = endpoint
        return endpoint

    def get_url(self) -> StreamEndpoint:
        """
        Get the current URL if it is still fresh.

        Expiry does not clear the stored value; the next set_url simply
        overwrites it.

        Raises:
            NotFound: if no URL was ever set
            Expired: if the last update is older than the TTL
        """
        with self._lock:
            endpoint = self._current

        if endpoint is None:
            raise NotFound("Stream URL not available")
        if self._clock() - endpoint.last_update > self._ttl:
            raise Expired("Stream URL expired", last_update=endpoint.last_update)
        return endpoint
