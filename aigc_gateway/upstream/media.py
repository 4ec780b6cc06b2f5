"""
Media ingestion: turn an in-request binary payload into a URL the upstream
can fetch, by uploading it through one of several candidate upload routes.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..auth import Credential
from ..errors import IngestionFailed, InvalidPayload, PayloadTooLarge
from ..logging_config import logger
from .candidates import CandidateRejected, first_success
from .client import UpstreamClient

UPLOAD_ROUTE_CANDIDATES: tuple[str, ...] = (
    "/api/v1/files/upload",
    "/api/v1/file/upload",
    "/api/v1/upload",
)

HOSTED_URL_FIELDS = (
    "url",
    "fileUrl",
    "file_url",
    "downloadUrl",
    "download_url",
    "resultUrl",
    "result_url",
)

DEFAULT_MIME = "image/png"


def sniff_mime(buffer: bytes) -> str:
    """Guess an image MIME from magic bytes; unknown content is reported as PNG."""
    head = bytes(buffer[:12])
    if head[:4] == b"\x89PNG":
        return "image/png"
    if head[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if head[:3] == b"GIF":
        return "image/gif"
    if head[:4] == b"RIFF" and (len(head) < 12 or head[8:12] == b"WEBP"):
        return "image/webp"
    return DEFAULT_MIME


def ext_from_mime(mime: str | None) -> str:
    if not mime:
        return "bin"
    mime = mime.lower()
    if "png" in mime:
        return "png"
    if "jpeg" in mime or "jpg" in mime:
        return "jpg"
    if "gif" in mime:
        return "gif"
    if "webp" in mime:
        return "webp"
    return "bin"


def extract_hosted_url(body: Any) -> str | None:
    if not isinstance(body, Mapping):
        return None
    data = body.get("data")
    container = data if isinstance(data, Mapping) else body
    for name in HOSTED_URL_FIELDS:
        value = container.get(name)
        if isinstance(value, str) and value:
            return value
    return None


class MediaIngestor:
    def __init__(self, client: UpstreamClient, *, max_bytes: int) -> None:
        self.client = client
        self.max_bytes = max_bytes

    async def ingest(
        self,
        credential: Credential,
        buffer: bytes,
        filename: str | None = None,
        mime_hint: str | None = None,
    ) -> str:
        """
        Upload `buffer` and return its hosted URL.

        Raises InvalidPayload for an empty buffer, PayloadTooLarge above
        `max_bytes`, and IngestionFailed once every upload route failed.
        """
        if not buffer:
            raise InvalidPayload("Empty upload")
        if len(buffer) > self.max_bytes:
            raise PayloadTooLarge(
                f"Upload of {len(buffer)} bytes exceeds the {self.max_bytes} byte limit"
            )

        mime = mime_hint or sniff_mime(buffer)
        name = filename or f"upload.{ext_from_mime(mime)}"

        def strategy(path: str):
            async def run() -> str:
                reply = await self.client.send(
                    "POST",
                    self.client.url(path),
                    credential=credential,
                    files={"file": (name, bytes(buffer), mime)},
                )
                if not reply.ok:
                    raise CandidateRejected("upload rejected", status_code=reply.effective_status)
                hosted = extract_hosted_url(reply.body)
                if not hosted:
                    raise CandidateRejected("upload reply carries no url", status_code=reply.status_code)
                return hosted

            return run

        result = await first_success(
            [strategy(p) for p in UPLOAD_ROUTE_CANDIDATES],
            label="media upload",
            on_exhausted=lambda attempts: IngestionFailed(
                "File upload failed on every known upload route; "
                "check KIE_API_BASE or the upload route list",
                attempts=attempts,
            ),
        )
        logger.info("media upload: %s (%d bytes, %s) hosted", name, len(buffer), mime)
        return result.value


__all__ = [
    "DEFAULT_MIME",
    "HOSTED_URL_FIELDS",
    "MediaIngestor",
    "UPLOAD_ROUTE_CANDIDATES",
    "ext_from_mime",
    "extract_hosted_url",
    "sniff_mime",
]
