"""
Video-job surface: model-family classification, job submission and
status shaping for the `/v1/videos` protocol.

Two model families are served:
- veo: vendor-specific video route, job ids prefixed with `veo`
- sora: generic market jobs, `<tier>/text-to-video` or `<tier>/image-to-video`
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..auth import Credential
from ..errors import UnsupportedModel
from ..logging_config import logger
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor
from ..upstream.poll_cache import PollCache
from ..upstream.status import JobRecord, JobStatus, progress
from ..usage.ledger import UsageEntry, UsageLedger

VIDEO_JOBS_PATH = "/v1/videos"

ASPECT_RATIOS = ("16:9", "9:16", "1:1", "4:3", "3:4")
DEFAULT_ASPECT_RATIO = "16:9"


class ModelFamily(str, Enum):
    VEO = "veo"
    SORA = "sora"


@dataclass(frozen=True)
class VideoModel:
    family: ModelFamily
    upstream_model: str

    @property
    def usage_name(self) -> str:
        if self.family is ModelFamily.VEO:
            return f"veo:{self.upstream_model}"
        return self.upstream_model


@dataclass(frozen=True)
class UploadedFile:
    content: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


def map_aspect_ratio(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        return DEFAULT_ASPECT_RATIO
    if text in ASPECT_RATIOS:
        return text
    if text.lower() == "auto":
        return "Auto"
    return DEFAULT_ASPECT_RATIO


def classify_model(model: str, *, image_seeded: bool) -> VideoModel:
    """
    Map a caller model id onto an upstream family and size tier.

    >>> classify_model("veo3-fast", image_seeded=False).upstream_model
    'veo3_fast'
    >>> classify_model("sora-2-pro", image_seeded=True).upstream_model
    'sora-2-pro/image-to-video'
    """
    lowered = (model or "").strip().lower()
    if "veo" in lowered:
        tier = "veo3_fast" if "fast" in lowered else "veo3"
        return VideoModel(ModelFamily.VEO, tier)
    if "sora" in lowered:
        tier = "sora-2-pro" if ("pro" in lowered or "all" in lowered) else "sora-2"
        kind = "image-to-video" if image_seeded else "text-to-video"
        return VideoModel(ModelFamily.SORA, f"{tier}/{kind}")
    raise UnsupportedModel(f"Unsupported model: {model or '(empty)'}")


def is_veo_job(job_id: str) -> bool:
    return job_id.lower().startswith("veo")


async def create_video_job(
    client: UpstreamClient,
    ingestor: MediaIngestor,
    ledger: UsageLedger,
    credential: Credential,
    *,
    model: str,
    prompt: str,
    seconds: str = "",
    size: str = "",
    resolution: str = "",
    upload: UploadedFile | None = None,
) -> Dict[str, Any]:
    video_model = classify_model(model, image_seeded=upload is not None)
    aspect_ratio = map_aspect_ratio(size)

    image_urls: list[str] = []
    if upload is not None:
        image_urls.append(
            await ingestor.ingest(
                credential, upload.content, upload.filename, upload.content_type
            )
        )

    if video_model.family is ModelFamily.VEO:
        job_id = await client.create_veo_job(
            credential,
            {
                "prompt": prompt,
                "model": video_model.upstream_model,
                "aspectRatio": aspect_ratio,
                "imageUrls": image_urls,
            },
        )
        response: Dict[str, Any] = {"id": job_id, "status": "processing"}
    else:
        input_params: Dict[str, Any] = {"prompt": prompt, "aspect_ratio": aspect_ratio}
        if seconds:
            input_params["duration"] = seconds
        if resolution:
            input_params["resolution"] = resolution
        if image_urls:
            input_params["image_urls"] = image_urls
        job_id = await client.create_job(credential, video_model.upstream_model, input_params)
        response = {"task_id": job_id, "id": job_id, "status": "processing"}

    ledger.append(
        credential.key_hash,
        UsageEntry.record(
            model_name=video_model.usage_name,
            prompt=prompt,
            image_count=len(image_urls),
            path=VIDEO_JOBS_PATH,
            kind="create",
        ),
    )
    logger.info("video job %s submitted (%s)", job_id, video_model.usage_name)
    return response


async def fetch_video_record(
    client: UpstreamClient,
    cache: PollCache,
    credential: Credential,
    job_id: str,
) -> Any:
    """One upstream poll, routed by the job id's family."""

    async def load() -> Any:
        if is_veo_job(job_id):
            return await client.fetch_veo_record(credential, job_id)
        return await client.fetch_record(credential, job_id)

    return await cache.fetch(credential.key_hash, job_id, load)


def shape_video_status(raw: Any) -> Dict[str, Any]:
    record = JobRecord.from_raw(raw)
    if record.status is JobStatus.COMPLETED:
        return {"status": "completed", "video_url": record.first_url, "progress": 1}
    if record.status is JobStatus.FAILED:
        return {
            "status": "failed",
            "video_url": None,
            "progress": 0,
            "message": record.error_message,
        }
    return {"status": "processing", "video_url": None, "progress": progress(raw) or 0}


__all__ = [
    "ASPECT_RATIOS",
    "ModelFamily",
    "UploadedFile",
    "VIDEO_JOBS_PATH",
    "VideoModel",
    "classify_model",
    "create_video_job",
    "fetch_video_record",
    "is_veo_job",
    "map_aspect_ratio",
    "shape_video_status",
]
