"""
Path rewriting for deployments that forward every request under `/api`.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

DEFAULT_STRIP_PREFIXES = ("/v1", "/v1beta", "/kling", "/sora", "/veo")


class ApiPrefixMiddleware(BaseHTTPMiddleware):
    """
    把 `/api/v1/...` 这类请求还原为 `/v1/...`。

    只处理已知的兼容接口前缀；`/api/health` 与 `/api/proxy/*` 本身就是
    正式路由，保持不变。
    """

    def __init__(self, app: ASGIApp, prefixes: tuple[str, ...] = DEFAULT_STRIP_PREFIXES):
        super().__init__(app)
        self.prefixes = prefixes

    def rewrite(self, path: str) -> str | None:
        if not path.startswith("/api/"):
            return None
        rest = path[len("/api") :]
        if rest == "/health" or rest.startswith("/proxy/"):
            return None
        if any(rest == p or rest.startswith(p + "/") for p in self.prefixes):
            return rest
        return None

    async def dispatch(self, request: Request, call_next):
        rewritten = self.rewrite(request.scope["path"])
        if rewritten is not None:
            request.scope["path"] = rewritten
            request.scope["raw_path"] = rewritten.encode("utf-8")
        return await call_next(request)


__all__ = ["ApiPrefixMiddleware", "DEFAULT_STRIP_PREFIXES"]
