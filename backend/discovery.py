"""
mDNS advertisement so the edge device can find the server on the LAN.
"""
import logging
import socket
from typing import Optional

from zeroconf import ServiceInfo, Zeroconf

logger = logging.getLogger(__name__)

SERVICE_NAME = "AgriWatch Server"
SERVICE_TYPE = "_agriwatch._tcp.local."


def get_local_ip() -> str:
    """Get the local IP address of this machine."""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "127.0.0.1"


class ServiceAdvertiser:
    """Registers the HTTP service under SERVICE_TYPE while the app runs."""

    def __init__(self, hostname: str, port: int, version: str):
        self.hostname = hostname
        self.port = port
        self.version = version
        self._zeroconf: Optional[Zeroconf] = None
        self._info: Optional[ServiceInfo] = None

    @property
    def running(self) -> bool:
        return self._zeroconf is not None

    def start(self) -> bool:
        """Start mDNS advertisement. Returns False if registration failed."""
        try:
            local_ip = get_local_ip()
            logger.info(f"📡 Starting mDNS advertisement on {local_ip}...")

            info = ServiceInfo(
                SERVICE_TYPE,
                f"{SERVICE_NAME}.{SERVICE_TYPE}",
                addresses=[socket.inet_aton(local_ip)],
                port=self.port,
                properties={
                    "version": self.version,
                    "path": "/api",
                },
                server=f"{self.hostname}.local.",
            )
            zc = Zeroconf()
        except Exception as e:
            logger.warning(f"⚠️ mDNS setup failed: {e}")
            return False

        try:
            zc.register_service(info)
        except Exception as e:
            logger.warning(f"⚠️ mDNS registration failed: {e}")
            zc.close()
            return False

        self._zeroconf, self._info = zc, info
        logger.info(f"✅ mDNS: Server available at http://{self.hostname}.local:{self.port}")
        return True

    def stop(self) -> None:
        """Stop mDNS advertisement."""
        if self._zeroconf is None:
            return
        try:
            if self._info is not None:
                self._zeroconf.unregister_service(self._info)
            self._zeroconf.close()
            logger.info("📡 mDNS service stopped")
        except Exception as e:
            logger.warning(f"⚠️ mDNS shutdown failed: {e}")
        finally:
            self._zeroconf, self._info = None, None
