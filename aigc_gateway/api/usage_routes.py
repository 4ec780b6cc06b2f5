from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..auth import Credential, require_credential
from ..deps import get_upstream_client, get_usage_ledger
from ..errors import NoCandidateAvailable
from ..logging_config import logger
from ..upstream.client import UpstreamClient
from ..usage.ledger import UsageLedger

router = APIRouter(tags=["proxy"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@router.get("/api/proxy/log/self")
@router.get("/proxy/log/self")
async def usage_log_endpoint(
    p: int = Query(0),
    size: int = Query(DEFAULT_PAGE_SIZE),
    credential: Credential = Depends(require_credential),
    ledger: UsageLedger = Depends(get_usage_ledger),
) -> Dict[str, Any]:
    """
    当前 APIKey 的调用记录（内存中，最近在前），按页返回。
    """
    size = min(MAX_PAGE_SIZE, max(1, size))
    entries, total = ledger.page(credential.key_hash, page=max(0, p), size=size)
    return {"data": [entry.to_dict() for entry in entries], "total": total}


@router.get("/api/proxy/token/info")
@router.get("/proxy/token/info")
async def token_info_endpoint(
    credential: Credential = Depends(require_credential),
    client: UpstreamClient = Depends(get_upstream_client),
):
    try:
        data = await client.fetch_credits(credential)
    except NoCandidateAvailable as exc:
        logger.warning("token_info: credit lookup exhausted after %d route(s)", exc.attempts)
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "message": "Unable to fetch credits from upstream (credit endpoint not reachable).",
            },
        )
    return {"success": True, "data": data}
