import asyncio

import httpx
import pytest

from aigc_gateway.errors import InvalidPayload
from aigc_gateway.services.chat_proxy import open_chat_stream
from aigc_gateway.usage.ledger import UsageLedger

BODY = b'{"model": "gpt-4o", "stream": true, "messages": []}'


class HangingStream:
    """Yields one SSE chunk, then blocks until the consumer gives up."""

    async def __call__(self):
        yield b"data: {\"id\": 1}\n\n"
        await asyncio.Event().wait()
        yield b"data: never\n\n"


@pytest.mark.asyncio
async def test_disconnect_aborts_upstream_stream(credential):
    upstream = HangingStream()

    def handler(request):
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=upstream()
        )

    closed = []

    async def on_close():
        closed.append(True)

    cancel = asyncio.Event()
    ledger = UsageLedger()
    stream = await open_chat_stream(
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ledger,
        credential,
        BODY,
        base_url="https://kie.test",
        cancel=cancel,
        on_close=on_close,
    )

    assert stream.status_code == 200
    first = await stream.body.__anext__()
    assert first.startswith(b"data:")

    cancel.set()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(stream.body.__anext__(), timeout=5)

    assert closed == [True]
    assert ledger.snapshot(credential.key_hash)[0].model_name == "gpt-4o"


@pytest.mark.asyncio
async def test_invalid_body_releases_client_before_upstream_call(credential):
    requests = []
    closed = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200)

    async def on_close():
        closed.append(True)

    with pytest.raises(InvalidPayload) as exc_info:
        await open_chat_stream(
            lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            UsageLedger(),
            credential,
            b"{not json",
            base_url="https://kie.test",
            on_close=on_close,
        )

    assert exc_info.value.status_code == 400
    assert requests == []
    assert closed == [True]
