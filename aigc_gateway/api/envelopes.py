"""
Per-surface error envelopes.

Each client surface emulates a different product and its clients parse
errors in that product's shape:

- video jobs / chat: {"error": "..."}
- kling:             {"message": "..."}
- generateContent:   {"error": {"code": 400, "message": "...", "status": "INVALID_ARGUMENT"}}
- proxy endpoints:   {"success": false, "message": "..."}
"""

from typing import Callable, Optional

from fastapi.responses import JSONResponse

from ..errors import GatewayError

Envelope = Callable[[GatewayError], JSONResponse]

_GOOGLE_STATUS = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    413: "INVALID_ARGUMENT",
    499: "CANCELLED",
    502: "UNAVAILABLE",
    504: "DEADLINE_EXCEEDED",
}


def error_envelope(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def message_envelope(exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def google_envelope(exc: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": exc.message,
                "status": _GOOGLE_STATUS.get(exc.status_code, "INTERNAL"),
            }
        },
    )


def proxy_envelope(exc: GatewayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content={"success": False, "message": exc.message}
    )


_SURFACE_PREFIXES: tuple[tuple[str, Envelope], ...] = (
    ("/v1beta/", google_envelope),
    ("/kling/", message_envelope),
    ("/v1/videos", error_envelope),
    ("/v1/chat/", error_envelope),
    ("/api/proxy/", proxy_envelope),
    ("/proxy/", proxy_envelope),
)


def envelope_for_path(path: str) -> Optional[Envelope]:
    """
    Pick the envelope of the surface serving `path`, or None outside any surface.

    Used by the top-level handler for errors raised before a route handler
    runs (e.g. a missing credential in a dependency).
    """
    for prefix, envelope in _SURFACE_PREFIXES:
        if path.startswith(prefix):
            return envelope
    return None


__all__ = [
    "Envelope",
    "envelope_for_path",
    "error_envelope",
    "google_envelope",
    "message_envelope",
    "proxy_envelope",
]
