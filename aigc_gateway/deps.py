from typing import AsyncIterator, Callable

import httpx
from fastapi import Depends, Request

from .settings import Settings, get_settings
from .upstream.client import UpstreamClient
from .upstream.media import MediaIngestor
from .upstream.poll_cache import PollCache
from .upstream.waiter import WaitPolicy
from .usage.ledger import UsageLedger

HttpClientFactory = Callable[[], httpx.AsyncClient]


def get_http_client_factory(
    settings: Settings = Depends(get_settings),
) -> HttpClientFactory:
    """
    Builds fresh AsyncClients for upstream calls.

    Tests override this with a factory bound to an `httpx.MockTransport`.
    """

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.fetch_timeout_seconds)

    return factory


async def get_http_client(
    factory: HttpClientFactory = Depends(get_http_client_factory),
) -> AsyncIterator[httpx.AsyncClient]:
    """
    Short-lived AsyncClient for upstream HTTP calls.
    """
    async with factory() as client:
        yield client


def get_upstream_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> UpstreamClient:
    return UpstreamClient(
        http,
        base_url=settings.upstream_base,
        timeout=settings.fetch_timeout_seconds,
    )


def get_media_ingestor(
    client: UpstreamClient = Depends(get_upstream_client),
    settings: Settings = Depends(get_settings),
) -> MediaIngestor:
    return MediaIngestor(client, max_bytes=settings.max_upload_bytes)


def get_wait_policy(settings: Settings = Depends(get_settings)) -> WaitPolicy:
    return WaitPolicy.from_settings(settings)


def get_usage_ledger(request: Request) -> UsageLedger:
    """
    Process-wide ledger created in `create_app` and kept on `app.state`.
    """
    return request.app.state.usage_ledger


def get_poll_cache(request: Request) -> PollCache:
    return request.app.state.poll_cache


__all__ = [
    "HttpClientFactory",
    "get_http_client",
    "get_http_client_factory",
    "get_media_ingestor",
    "get_poll_cache",
    "get_upstream_client",
    "get_usage_ledger",
    "get_wait_policy",
]
