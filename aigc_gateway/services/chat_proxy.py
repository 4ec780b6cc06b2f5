"""
OpenAI-compatible chat passthrough.

The caller's body is forwarded unchanged to the first upstream chat route
that does not answer 404; status, headers and the byte stream are relayed
back without buffering. When the caller disconnects, the upstream request
is aborted and both the response and the HTTP client are closed.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from ..auth import Credential
from ..cancellation import race_cancellation
from ..errors import ClientDisconnected, InvalidPayload, NoChatEndpoint
from ..logging_config import logger
from ..upstream.candidates import CandidateRejected, first_success
from ..usage.ledger import UsageEntry, UsageLedger

CHAT_PATH = "/v1/chat/completions"

CHAT_ROUTE_CANDIDATES: tuple[str, ...] = (
    "/v1/chat/completions",
    "/api/v1/chat/completions",
)

# httpx already decoded the body and the relay re-chunks it.
DROPPED_RESPONSE_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection"}
)


@dataclass
class ChatStream:
    status_code: int
    headers: Dict[str, str]
    body: AsyncIterator[bytes]


def parse_chat_body(raw: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(raw or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayload("Invalid JSON in request body") from exc
    if not isinstance(payload, dict):
        raise InvalidPayload("Chat request body must be a JSON object")
    return payload


def relay_headers(headers: httpx.Headers) -> Dict[str, str]:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in DROPPED_RESPONSE_HEADERS
    }


async def open_chat_stream(
    http_factory: Callable[[], httpx.AsyncClient],
    ledger: UsageLedger,
    credential: Credential,
    raw_body: bytes,
    *,
    base_url: str,
    cancel: asyncio.Event | None = None,
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> ChatStream:
    """
    Open the upstream stream and return it ready to be relayed.

    The returned `body` iterator owns the upstream response and the HTTP
    client; both are released when it finishes, fails or is closed.
    `on_close` runs once at that point too. Raises NoChatEndpoint when
    every route answered 404 or failed.
    """
    base = base_url.rstrip("/")
    client = http_factory()
    headers = {
        "Authorization": f"Bearer {credential.token}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream, application/json",
    }

    def strategy(url: str):
        async def run() -> httpx.Response:
            request = client.build_request("POST", url, headers=headers, content=raw_body)
            response = await race_cancellation(client.send(request, stream=True), cancel)
            if response.status_code == 404:
                await response.aclose()
                raise CandidateRejected("chat route not found", status_code=404)
            return response

        return run

    try:
        payload = parse_chat_body(raw_body)
        result = await first_success(
            [strategy(f"{base}{path}") for path in CHAT_ROUTE_CANDIDATES],
            label="chat completions",
            on_exhausted=lambda attempts: NoChatEndpoint(
                "Chat endpoint is not available on this upstream base; "
                "set KIE_API_BASE to a host that serves OpenAI-compatible chat",
                attempts=attempts,
            ),
        )
    except BaseException:
        await client.aclose()
        if on_close is not None:
            await on_close()
        raise

    response = result.value
    logger.info(
        "chat: relaying upstream %s (status %s)", response.request.url.path, response.status_code
    )
    ledger.append(
        credential.key_hash,
        UsageEntry.record(
            model_name=str(payload.get("model") or "chat"),
            prompt="(chat)",
            image_count=0,
            path=CHAT_PATH,
            kind="chat",
        ),
    )

    async def relay() -> AsyncIterator[bytes]:
        chunks = response.aiter_bytes()
        try:
            while True:
                try:
                    chunk = await race_cancellation(chunks.__anext__(), cancel)
                except StopAsyncIteration:
                    break
                except ClientDisconnected:
                    logger.info("chat: caller went away, aborting upstream stream")
                    break
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            # Status and headers are already sent; end the body.
            logger.warning("chat: upstream stream broke: %s: %s", type(exc).__name__, exc)
        finally:
            await response.aclose()
            await client.aclose()
            if on_close is not None:
                await on_close()

    return ChatStream(
        status_code=response.status_code,
        headers=relay_headers(response.headers),
        body=relay(),
    )


__all__ = [
    "CHAT_PATH",
    "CHAT_ROUTE_CANDIDATES",
    "ChatStream",
    "DROPPED_RESPONSE_HEADERS",
    "open_chat_stream",
    "parse_chat_body",
    "relay_headers",
]
