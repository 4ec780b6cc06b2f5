import pytest

from aigc_gateway.middleware import ApiPrefixMiddleware


@pytest.fixture
def middleware():
    async def app(scope, receive, send):  # pragma: no cover
        return None

    return ApiPrefixMiddleware(app)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/v1/videos", "/v1/videos"),
        ("/api/v1/videos/abc/content", "/v1/videos/abc/content"),
        ("/api/v1beta/models/m:generateContent", "/v1beta/models/m:generateContent"),
        ("/api/kling/v1/videos/text2video", "/kling/v1/videos/text2video"),
        ("/api/v1", "/v1"),
        ("/api/health", None),
        ("/api/proxy/log/self", None),
        ("/api/v1x/thing", None),
        ("/api/unknown", None),
        ("/v1/videos", None),
    ],
)
def test_rewrite(middleware, path, expected):
    assert middleware.rewrite(path) == expected
