import asyncio
import base64
import json

import httpx
import pytest

from aigc_gateway.services.gemini import COMPLETION_TEXT, expand_prompt
from aigc_gateway.upstream.client import IMAGE_ROUTE_CANDIDATES
from aigc_gateway.upstream.media import UPLOAD_ROUTE_CANDIDATES

GENERATE, RECORD = IMAGE_ROUTE_CANDIDATES[0]
PNG = b"\x89PNG\r\n\x1a\n" + b"\x01" * 8


def _text_body(*texts):
    return {"contents": [{"role": "user", "parts": [{"text": t} for t in texts]}]}


def test_text_only_request_makes_no_upstream_call(client, fake_upstream, auth_headers, app, credential):
    response = client.post(
        "/v1beta/models/gemini-2.5-flash:generateContent",
        json=_text_body("  a cat on a roof ", "at dusk"),
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert fake_upstream.requests == []
    assert response.json() == {
        "candidates": [
            {"content": {"parts": [{"text": expand_prompt("a cat on a roof\n\nat dusk")}]}}
        ]
    }
    (entry,) = app.state.usage_ledger.snapshot(credential.key_hash)
    assert entry.kind == "text"
    assert entry.model_name == "local-prompt-polish:gemini-2.5-flash"


def test_text_expansion_is_deterministic(client, auth_headers):
    first = client.post(
        "/v1beta/models/gemini-pro:generateContent", json=_text_body("hello"), headers=auth_headers
    )
    second = client.post(
        "/v1beta/models/gemini-pro:generateContent", json=_text_body("hello"), headers=auth_headers
    )

    assert first.json() == second.json()


def test_query_key_is_accepted(client, fake_upstream):
    response = client.post(
        "/v1beta/models/gemini-pro:generateContent?key=sk-query",
        json=_text_body("hi"),
    )

    assert response.status_code == 200
    assert fake_upstream.requests == []


def test_missing_key_uses_google_envelope(client):
    response = client.post("/v1beta/models/gemini-pro:generateContent", json=_text_body("hi"))

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == 401
    assert error["status"] == "UNAUTHENTICATED"


def test_image_request_waits_and_inlines_result(client, fake_upstream, auth_headers):
    fake_upstream.on(
        "POST", UPLOAD_ROUTE_CANDIDATES[0], {"code": 200, "data": {"url": "https://h/in.png"}}
    )
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-7"}})
    fake_upstream.on(
        "GET",
        RECORD,
        {"code": 200, "data": {"successFlag": 0}},
        {
            "code": 200,
            "data": {
                "successFlag": 1,
                "response": {"resultUrls": ["https://kie.test/results/1.png", "https://kie.test/results/2.png"]},
            },
        },
    )
    fake_upstream.on(
        "GET",
        "/results/1.png",
        lambda request: httpx.Response(200, content=PNG, headers={"content-type": "image/png"}),
    )

    body = {
        "contents": [
            {
                "parts": [
                    {"text": "make it blue"},
                    {"inline_data": {"mime_type": "image/png", "data": base64.b64encode(PNG).decode()}},
                ]
            }
        ],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }
    response = client.post(
        "/v1beta/models/gemini-2.5-flash:generateContent", json=body, headers=auth_headers
    )

    assert response.status_code == 200
    parts = response.json()["candidates"][0]["content"]["parts"]
    assert parts[0] == {"text": COMPLETION_TEXT}
    assert parts[1] == {
        "inline_data": {"mime_type": "image/png", "data": base64.b64encode(PNG).decode()}
    }
    # candidateCount defaults to one, so only the first artifact is downloaded.
    assert len(parts) == 2
    assert fake_upstream.calls("/results/2.png") == []

    (submit,) = fake_upstream.calls(GENERATE)
    payload = json.loads(submit.content)
    assert payload["prompt"] == "make it blue"
    assert payload["filesUrl"] == ["https://h/in.png"]
    assert len(fake_upstream.calls(RECORD)) == 2


def test_image_model_without_prompt_uses_default_prompt(client, fake_upstream, auth_headers):
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-8"}})
    fake_upstream.on("GET", RECORD, {"code": 200, "data": {"state": "success"}})

    response = client.post(
        "/v1beta/models/gemini-2.5-flash-image:generateContent",
        json={"contents": []},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["candidates"][0]["content"]["parts"] == [{"text": COMPLETION_TEXT}]
    assert json.loads(fake_upstream.calls(GENERATE)[0].content)["prompt"] == "Generate an image"


def test_failed_image_job_uses_google_envelope(client, fake_upstream, auth_headers):
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-9"}})
    fake_upstream.on(
        "GET", RECORD, {"code": 200, "data": {"successFlag": 2, "errorMessage": "nsfw"}}
    )

    response = client.post(
        "/v1beta/models/gemini-2.5-flash-image:generateContent",
        json=_text_body("x"),
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json() == {
        "error": {"code": 502, "message": "nsfw", "status": "UNAVAILABLE"}
    }


def test_pending_image_job_times_out_with_504(client, fake_upstream, auth_headers, gateway_settings):
    gateway_settings.sync_wait_budget_seconds = 0.05
    gateway_settings.sync_poll_interval_seconds = 0.01
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-10"}})
    fake_upstream.on("GET", RECORD, {"code": 200, "data": {"state": "generating"}})

    response = client.post(
        "/v1beta/models/gemini-2.5-flash-image:generateContent",
        json=_text_body("x"),
        headers=auth_headers,
    )

    assert response.status_code == 504
    assert response.json()["error"]["status"] == "DEADLINE_EXCEEDED"
    assert len(fake_upstream.calls(RECORD)) >= 1


async def _post_through_asgi(app, path, body, headers):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gateway") as http:
        return await asyncio.wait_for(http.post(path, json=body, headers=headers), timeout=5)


@pytest.mark.asyncio
async def test_image_job_done_on_first_poll_returns_promptly(app, fake_upstream, auth_headers):
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-11"}})
    fake_upstream.on("GET", RECORD, {"code": 200, "data": {"state": "success"}})

    response = await _post_through_asgi(
        app,
        "/v1beta/models/gemini-2.5-flash-image:generateContent",
        _text_body("x"),
        auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["candidates"][0]["content"]["parts"] == [{"text": COMPLETION_TEXT}]
    assert len(fake_upstream.calls(RECORD)) == 1


@pytest.mark.asyncio
async def test_image_job_failed_on_first_poll_returns_promptly(app, fake_upstream, auth_headers):
    fake_upstream.on("POST", GENERATE, {"code": 200, "data": {"taskId": "img-12"}})
    fake_upstream.on(
        "GET", RECORD, {"code": 200, "data": {"successFlag": 2, "errorMessage": "nsfw"}}
    )

    response = await _post_through_asgi(
        app,
        "/v1beta/models/gemini-2.5-flash-image:generateContent",
        _text_body("x"),
        auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["error"]["message"] == "nsfw"
