from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from ..auth import Credential, require_credential
from ..deps import get_media_ingestor, get_poll_cache, get_upstream_client, get_usage_ledger
from ..services.kling import fetch_kling_status, submit_image2video, submit_text2video
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor
from ..upstream.poll_cache import PollCache
from ..usage.ledger import UsageLedger

router = APIRouter(prefix="/kling/v1/videos", tags=["kling"])


@router.post("/text2video")
async def text2video_endpoint(
    body: Optional[Dict[str, Any]] = Body(default=None),
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Dict[str, Any]:
    return await submit_text2video(client, ledger, credential, body or {})


@router.get("/text2video/{job_id}")
async def text2video_status_endpoint(
    job_id: str,
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    cache: PollCache = Depends(get_poll_cache),
) -> Dict[str, Any]:
    return await fetch_kling_status(client, cache, credential, job_id)


@router.post("/image2video")
async def image2video_endpoint(
    body: Optional[Dict[str, Any]] = Body(default=None),
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    ingestor: MediaIngestor = Depends(get_media_ingestor),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Dict[str, Any]:
    return await submit_image2video(client, ingestor, ledger, credential, body or {})


@router.get("/image2video/{job_id}")
async def image2video_status_endpoint(
    job_id: str,
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    cache: PollCache = Depends(get_poll_cache),
) -> Dict[str, Any]:
    """Both vendor operations create generic market jobs, so polling is identical."""
    return await fetch_kling_status(client, cache, credential, job_id)
