from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..auth import Credential, require_credential
from ..cancellation import DisconnectWatcher
from ..deps import HttpClientFactory, get_http_client_factory, get_usage_ledger
from ..logging_config import logger
from ..services.chat_proxy import open_chat_stream
from ..settings import Settings, get_settings
from ..usage.ledger import UsageLedger

router = APIRouter(tags=["chat"])


@router.post("/v1/chat/completions")
async def chat_completions_endpoint(
    request: Request,
    credential: Credential = Depends(require_credential),
    http_factory: HttpClientFactory = Depends(get_http_client_factory),
    ledger: UsageLedger = Depends(get_usage_ledger),
    settings: Settings = Depends(get_settings),
):
    """
    OpenAI-compatible chat passthrough.

    The upstream client is not request-scoped here: it lives exactly as long
    as the relayed stream and is closed by the stream itself.
    """
    raw_body = await request.body()
    watcher = DisconnectWatcher(request)
    watcher.start()
    stream = await open_chat_stream(
        http_factory,
        ledger,
        credential,
        raw_body,
        base_url=settings.upstream_base,
        cancel=watcher.event,
        on_close=watcher.stop,
    )
    logger.info("chat_completions: streaming upstream status %s", stream.status_code)
    return StreamingResponse(
        stream.body,
        status_code=stream.status_code,
        headers=stream.headers,
    )
