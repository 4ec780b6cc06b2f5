from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from ..auth import Credential, require_credential_or_query_key
from ..cancellation import DisconnectWatcher
from ..deps import get_media_ingestor, get_upstream_client, get_usage_ledger, get_wait_policy
from ..services.gemini import generate_content
from ..upstream.client import UpstreamClient
from ..upstream.media import MediaIngestor
from ..upstream.waiter import WaitPolicy
from ..usage.ledger import UsageLedger

router = APIRouter(tags=["gemini"])


@router.post("/v1beta/models/{model_id}:generateContent")
async def generate_content_endpoint(
    request: Request,
    model_id: str,
    body: Optional[Dict[str, Any]] = Body(default=None),
    credential: Credential = Depends(require_credential_or_query_key),
    client: UpstreamClient = Depends(get_upstream_client),
    ingestor: MediaIngestor = Depends(get_media_ingestor),
    ledger: UsageLedger = Depends(get_usage_ledger),
    policy: WaitPolicy = Depends(get_wait_policy),
) -> Dict[str, Any]:
    """
    Gemini-style generateContent.

    Image requests block until the upstream job finishes (bounded by the
    configured wait budget); a disconnecting caller stops the wait.
    """
    async with DisconnectWatcher(request) as watcher:
        return await generate_content(
            client,
            ingestor,
            ledger,
            credential,
            model_id,
            body or {},
            policy=policy,
            cancel=watcher.event,
        )
