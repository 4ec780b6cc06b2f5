from __future__ import annotations

import base64
import binascii
from typing import Any, Dict

from ..auth import Credential
from ..errors import InvalidPayload
from ..logging_config import logger
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor, ext_from_mime, sniff_mime
from ..upstream.poll_cache import PollCache
from ..upstream.status import JobRecord, JobStatus
from ..usage.ledger import UsageEntry, UsageLedger
from .video_jobs import map_aspect_ratio

TEXT_TO_VIDEO_MODEL = "kling-2.6/text-to-video"
IMAGE_TO_VIDEO_MODEL = "kling-2.6/image-to-video"

TEXT_TO_VIDEO_PATH = "/kling/v1/videos/text2video"
IMAGE_TO_VIDEO_PATH = "/kling/v1/videos/image2video"

# Image-seeded jobs ignore the caller's ratio; upstream frames them as 16:9.
IMAGE_TO_VIDEO_ASPECT_RATIO = "16:9"
DEFAULT_DURATION = "5"


def _text(body: Dict[str, Any], name: str, default: str = "") -> str:
    value = body.get(name)
    if value is None or value == "":
        return default
    return str(value).strip()


def decode_image(value: str) -> tuple[bytes, str | None]:
    """
    Decode a base64 image, with or without a `data:<mime>;base64,` prefix.
    """
    mime: str | None = None
    data = value.strip()
    if data.startswith("data:") and "," in data:
        header, data = data.split(",", 1)
        mime = header[5:].split(";")[0] or None
    try:
        buffer = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPayload("image is not valid base64") from exc
    if not buffer:
        raise InvalidPayload("Missing image (base64)")
    return buffer, mime


async def submit_text2video(
    client: UpstreamClient,
    ledger: UsageLedger,
    credential: Credential,
    body: Dict[str, Any],
) -> Dict[str, Any]:
    prompt = _text(body, "prompt")
    input_params = {
        "prompt": prompt,
        "aspect_ratio": map_aspect_ratio(body.get("aspect_ratio")),
        "duration": _text(body, "duration", DEFAULT_DURATION),
        "sound": False,
    }
    job_id = await client.create_job(credential, TEXT_TO_VIDEO_MODEL, input_params)
    ledger.append(
        credential.key_hash,
        UsageEntry.record(
            model_name=TEXT_TO_VIDEO_MODEL,
            prompt=prompt,
            image_count=0,
            path=TEXT_TO_VIDEO_PATH,
            kind="create",
        ),
    )
    return {"data": {"task_id": job_id}}


async def submit_image2video(
    client: UpstreamClient,
    ingestor: MediaIngestor,
    ledger: UsageLedger,
    credential: Credential,
    body: Dict[str, Any],
) -> Dict[str, Any]:
    prompt = _text(body, "prompt")
    encoded = _text(body, "image")
    if not encoded:
        raise InvalidPayload("Missing image (base64)")
    buffer, mime = decode_image(encoded)
    mime = mime or sniff_mime(buffer)
    image_url = await ingestor.ingest(
        credential, buffer, f"kling-input.{ext_from_mime(mime)}", mime
    )

    input_params = {
        "prompt": prompt,
        "aspect_ratio": IMAGE_TO_VIDEO_ASPECT_RATIO,
        "duration": _text(body, "duration", DEFAULT_DURATION),
        "sound": False,
        "image_urls": [image_url],
    }
    job_id = await client.create_job(credential, IMAGE_TO_VIDEO_MODEL, input_params)
    ledger.append(
        credential.key_hash,
        UsageEntry.record(
            model_name=IMAGE_TO_VIDEO_MODEL,
            prompt=prompt,
            image_count=1,
            path=IMAGE_TO_VIDEO_PATH,
            kind="create",
        ),
    )
    logger.info("kling image2video job %s submitted", job_id)
    return {"data": {"task_id": job_id}}


async def fetch_kling_status(
    client: UpstreamClient,
    cache: PollCache,
    credential: Credential,
    job_id: str,
) -> Dict[str, Any]:
    raw = await cache.fetch(
        credential.key_hash, job_id, lambda: client.fetch_record(credential, job_id)
    )
    return shape_kling_status(raw)


def shape_kling_status(raw: Any) -> Dict[str, Any]:
    record = JobRecord.from_raw(raw)
    if record.status is JobStatus.COMPLETED:
        return {
            "data": {
                "task_status": "succeed",
                "task_result": {"videos": [{"url": record.first_url}]},
            }
        }
    if record.status is JobStatus.FAILED:
        return {
            "data": {
                "task_status": "failed",
                "task_status_msg": record.error_message or "failed",
            }
        }
    return {"data": {"task_status": "processing"}}


__all__ = [
    "IMAGE_TO_VIDEO_ASPECT_RATIO",
    "IMAGE_TO_VIDEO_MODEL",
    "IMAGE_TO_VIDEO_PATH",
    "TEXT_TO_VIDEO_MODEL",
    "TEXT_TO_VIDEO_PATH",
    "decode_image",
    "fetch_kling_status",
    "shape_kling_status",
    "submit_image2video",
    "submit_text2video",
]
