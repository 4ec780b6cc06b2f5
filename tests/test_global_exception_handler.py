from fastapi.testclient import TestClient

from aigc_gateway.errors import WaitTimeout


def test_unhandled_exception_returns_structured_error(app):
    @app.get("/__raise_unhandled_error")
    async def raise_error():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/__raise_unhandled_error")

    assert response.status_code == 500
    payload = response.json()
    assert payload["error_code"] == "internal_error"
    assert payload["message"] == "服务器内部错误，请稍后再试"
    assert payload["error_id"]


def test_gateway_error_outside_surfaces_uses_error_response(app):
    @app.get("/__raise_gateway_error")
    async def raise_error():
        raise WaitTimeout("job-1", 180)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/__raise_gateway_error")

    assert response.status_code == 504
    assert response.json() == {
        "error": "wait_timeout",
        "message": "Job job-1 did not finish within 180s",
        "code": 504,
        "details": {"job_id": "job-1"},
    }
