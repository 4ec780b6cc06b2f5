from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.datastructures import UploadFile

from ..auth import Credential, require_credential
from ..deps import get_media_ingestor, get_poll_cache, get_upstream_client, get_usage_ledger
from ..errors import InvalidPayload
from ..services.video_jobs import (
    UploadedFile,
    create_video_job,
    fetch_video_record,
    shape_video_status,
)
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor
from ..upstream.poll_cache import PollCache
from ..upstream.status import first_result_url
from ..usage.ledger import UsageLedger

router = APIRouter(tags=["videos"])

_FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def _read_video_request(request: Request) -> tuple[Dict[str, Any], UploadedFile | None]:
    """
    Accept both multipart forms (with an optional file under any field name)
    and plain JSON bodies.
    """
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(_FORM_TYPES):
        form = await request.form()
        fields: Dict[str, Any] = {}
        upload: UploadedFile | None = None
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                if upload is None:
                    upload = UploadedFile(
                        content=await value.read(),
                        filename=value.filename or None,
                        content_type=value.content_type or None,
                    )
                continue
            fields.setdefault(name, value)
        return fields, upload

    raw = await request.body()
    if not raw:
        return {}, None
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayload("Invalid JSON in request body") from exc
    if not isinstance(payload, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return payload, None


def _field(fields: Dict[str, Any], name: str) -> str:
    value = fields.get(name)
    return "" if value is None else str(value).strip()


@router.post("/v1/videos")
async def create_video_endpoint(
    request: Request,
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    ingestor: MediaIngestor = Depends(get_media_ingestor),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Dict[str, Any]:
    fields, upload = await _read_video_request(request)
    return await create_video_job(
        client,
        ingestor,
        ledger,
        credential,
        model=_field(fields, "model"),
        prompt=_field(fields, "prompt"),
        seconds=_field(fields, "seconds"),
        size=_field(fields, "size"),
        resolution=_field(fields, "resolution"),
        upload=upload,
    )


@router.get("/v1/videos/{job_id}")
async def get_video_status_endpoint(
    job_id: str,
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    cache: PollCache = Depends(get_poll_cache),
) -> Dict[str, Any]:
    raw = await fetch_video_record(client, cache, credential, job_id)
    return shape_video_status(raw)


@router.get("/v1/videos/{job_id}/content")
async def get_video_content_endpoint(
    job_id: str,
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
    cache: PollCache = Depends(get_poll_cache),
):
    """
    Redirect to the first artifact of the job, or 404 while there is none.
    """
    raw = await fetch_video_record(client, cache, credential, job_id)
    url = first_result_url(raw)
    if not url:
        return JSONResponse(status_code=404, content={"error": "No content"})
    return RedirectResponse(url, status_code=307)
