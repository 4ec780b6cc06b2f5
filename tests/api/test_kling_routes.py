import base64
import json

from aigc_gateway.services.kling import IMAGE_TO_VIDEO_MODEL, TEXT_TO_VIDEO_MODEL
from aigc_gateway.upstream.media import UPLOAD_ROUTE_CANDIDATES

CREATE = "/api/v1/jobs/createTask"
RECORD = "/api/v1/jobs/recordInfo"
RESULT_URL = "https://cdn.kie.test/out/cat.mp4"


def test_text2video_submit_then_poll_until_succeed(client, fake_upstream, auth_headers):
    fake_upstream.on("POST", CREATE, {"code": 200, "data": {"taskId": "kling-1"}})
    fake_upstream.on(
        "GET",
        RECORD,
        {"code": 200, "data": {"state": "generating"}},
        {
            "code": 200,
            "data": {
                "state": "success",
                "resultJson": json.dumps({"resultUrls": [RESULT_URL]}),
            },
        },
    )

    created = client.post(
        "/kling/v1/videos/text2video",
        json={"prompt": "a cat", "aspect_ratio": "16:9", "duration": "5"},
        headers=auth_headers,
    )
    assert created.status_code == 200
    assert created.json() == {"data": {"task_id": "kling-1"}}

    (submit,) = fake_upstream.calls(CREATE)
    assert json.loads(submit.content) == {
        "model": TEXT_TO_VIDEO_MODEL,
        "input": {"prompt": "a cat", "aspect_ratio": "16:9", "duration": "5", "sound": False},
    }

    first = client.get("/kling/v1/videos/text2video/kling-1", headers=auth_headers)
    assert first.json() == {"data": {"task_status": "processing"}}

    second = client.get("/kling/v1/videos/text2video/kling-1", headers=auth_headers)
    assert second.status_code == 200
    assert second.json() == {
        "data": {"task_status": "succeed", "task_result": {"videos": [{"url": RESULT_URL}]}}
    }


def test_failed_job_reports_upstream_message(client, fake_upstream, auth_headers):
    fake_upstream.on(
        "GET", RECORD, {"code": 200, "data": {"successFlag": 2, "failMsg": "prompt rejected"}}
    )

    response = client.get("/kling/v1/videos/image2video/job-x", headers=auth_headers)

    assert response.json() == {
        "data": {"task_status": "failed", "task_status_msg": "prompt rejected"}
    }


def test_image2video_uploads_image_and_forces_16_9(
    client, fake_upstream, auth_headers, app, credential
):
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8
    fake_upstream.on(
        "POST", UPLOAD_ROUTE_CANDIDATES[0], {"code": 200, "data": {"downloadUrl": "https://h/in.png"}}
    )
    fake_upstream.on("POST", CREATE, {"code": 200, "data": {"taskId": "kling-2"}})

    response = client.post(
        "/kling/v1/videos/image2video",
        json={
            "prompt": "make it move",
            "image": "data:image/png;base64," + base64.b64encode(png).decode(),
            "aspect_ratio": "9:16",
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"data": {"task_id": "kling-2"}}
    (upload,) = fake_upstream.calls(UPLOAD_ROUTE_CANDIDATES[0])
    assert b'filename="kling-input.png"' in upload.content
    (submit,) = fake_upstream.calls(CREATE)
    payload = json.loads(submit.content)
    assert payload["model"] == IMAGE_TO_VIDEO_MODEL
    assert payload["input"]["aspect_ratio"] == "16:9"
    assert payload["input"]["image_urls"] == ["https://h/in.png"]
    assert payload["input"]["duration"] == "5"

    entries = app.state.usage_ledger.snapshot(credential.key_hash)
    assert entries[0].image_count == 1
    assert entries[0].path == "/kling/v1/videos/image2video"


def test_image2video_without_image_is_400(client, fake_upstream, auth_headers):
    response = client.post(
        "/kling/v1/videos/image2video", json={"prompt": "x"}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Missing image (base64)"}
    assert fake_upstream.requests == []


def test_missing_credential_uses_kling_envelope(client, fake_upstream):
    response = client.post("/kling/v1/videos/text2video", json={"prompt": "x"})

    assert response.status_code == 401
    assert "message" in response.json()
    assert fake_upstream.requests == []


def test_upstream_rejection_is_502(client, fake_upstream, auth_headers):
    fake_upstream.on("POST", CREATE, (500, {"code": 500, "msg": "busy"}))

    response = client.post(
        "/kling/v1/videos/text2video", json={"prompt": "x"}, headers=auth_headers
    )

    assert response.status_code == 502
    assert "busy" in response.json()["message"]
