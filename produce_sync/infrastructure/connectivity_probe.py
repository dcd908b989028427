from __future__ import annotations

import logging
import socket
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

FALLBACK_ENDPOINT = ("8.8.8.8", 53)


def endpoint_for_url(url: str | None) -> tuple[str, int]:
    if not url:
        return FALLBACK_ENDPOINT
    parts = urlsplit(url if "://" in url else f"https://{url}")
    if not parts.hostname:
        return FALLBACK_ENDPOINT
    port = parts.port or (80 if parts.scheme == "http" else 443)
    return parts.hostname, port


class SocketReachabilityProbe:
    """One-shot TCP reachability check, used where no change stream is available (CLI start-up)."""

    def __init__(self, backend_url: str | None = None) -> None:
        self._endpoint = endpoint_for_url(backend_url)

    @property
    def endpoint(self) -> tuple[str, int]:
        return self._endpoint

    def check(self, *, timeout_seconds: float = 3.0) -> bool:
        try:
            socket.create_connection(self._endpoint, timeout=timeout_seconds).close()
        except OSError as exc:
            logger.info("Backend unreachable host=%s port=%s error=%s", *self._endpoint, exc)
            return False
        return True
