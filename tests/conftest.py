"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import aigc_gateway`
works consistently in all tests, and provides a scripted fake of the upstream
job API built on `httpx.MockTransport`.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest
import pytest_asyncio

# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fastapi.testclient import TestClient  # noqa: E402

from aigc_gateway.auth import Credential  # noqa: E402
from aigc_gateway.deps import get_http_client_factory  # noqa: E402
from aigc_gateway.routes import create_app  # noqa: E402
from aigc_gateway.settings import Settings, get_settings  # noqa: E402
from aigc_gateway.upstream.client import UpstreamClient  # noqa: E402

UPSTREAM_BASE = "https://kie.test"
TEST_TOKEN = "sk-test-token"  # pragma: allowlist secret
AUTH_HEADERS = {"Authorization": f"Bearer {TEST_TOKEN}"}

Reply = Any  # dict (200 JSON), (status, body) tuple, httpx.Response factory or callable(request)


class FakeUpstream:
    """
    Scripted upstream keyed by (method, path).

    Each route holds a queue of replies; the last reply repeats once the
    queue is drained. Unknown routes answer 404 so unexpected calls show up.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, *replies: Reply) -> "FakeUpstream":
        self.routes[(method.upper(), path)] = list(replies)
        return self

    def calls(self, path: str, method: str | None = None) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.url.path == path and (method is None or r.method == method.upper())
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"code": 404, "msg": "not found"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        if isinstance(reply, tuple):
            status, body = reply
            if isinstance(body, (bytes, str)):
                return httpx.Response(status, content=body)
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=reply)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def gateway_settings() -> Settings:
    return Settings(
        upstream_base=UPSTREAM_BASE,
        fetch_timeout_seconds=5.0,
        sync_wait_budget_seconds=2.0,
        sync_poll_interval_seconds=0.0,
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def credential() -> Credential:
    return Credential.from_token(TEST_TOKEN)


@pytest.fixture
def upstream_client_factory(fake_upstream) -> Callable[[], httpx.AsyncClient]:
    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream))

    return factory


@pytest_asyncio.fixture
async def upstream_client(upstream_client_factory):
    async with upstream_client_factory() as http:
        yield UpstreamClient(http, base_url=UPSTREAM_BASE, timeout=5.0)


@pytest.fixture
def app(gateway_settings, upstream_client_factory):
    app = create_app(gateway_settings)
    app.dependency_overrides[get_settings] = lambda: gateway_settings
    app.dependency_overrides[get_http_client_factory] = lambda: upstream_client_factory
    return app


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return dict(AUTH_HEADERS)
