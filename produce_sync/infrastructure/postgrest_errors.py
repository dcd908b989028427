from __future__ import annotations

import json

from produce_sync.core.errors import (
    RemoteAuthError,
    RemoteRejectedError,
    RemoteUnavailableError,
    RemoteWriteError,
)

_UNAVAILABLE_STATUS = {408, 425, 429}


def extract_error_message(body: str) -> str:
    """Pull the human message out of a PostgREST error body, falling back to the raw text."""
    text = (body or "").strip()
    if not text:
        return ""
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:500]
    if isinstance(payload, dict):
        parts = [str(payload[field]) for field in ("message", "details", "hint") if payload.get(field)]
        if parts:
            return " | ".join(parts)
    return text[:500]


def map_http_error(status_code: int, body: str = "", *, context: str = "") -> RemoteWriteError:
    message = extract_error_message(body) or f"HTTP {status_code}"
    if context:
        message = f"{context}: {message}"
    if status_code in {401, 403}:
        return RemoteAuthError(message, status_code=status_code)
    if status_code in _UNAVAILABLE_STATUS or status_code >= 500:
        return RemoteUnavailableError(message, status_code=status_code)
    return RemoteRejectedError(message, status_code=status_code)
