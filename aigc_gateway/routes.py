import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.chat_routes import router as chat_router
from .api.envelopes import envelope_for_path
from .api.gemini_routes import router as gemini_router
from .api.kling_routes import router as kling_router
from .api.system_routes import router as system_router
from .api.usage_routes import router as usage_router
from .api.video_routes import router as video_router
from .errors import GatewayError
from .log_sanitizer import sanitize_headers_for_log, sanitize_url_for_log
from .logging_config import logger
from .middleware import ApiPrefixMiddleware
from .settings import Settings, get_settings
from .upstream.poll_cache import PollCache
from .usage.ledger import UsageLedger


async def handle_gateway_error(request: Request, exc: GatewayError):
    """
    Errors the core can explain. Inside a surface the surface's own envelope
    is used; elsewhere the standard ErrorResponse body.
    """
    logger.warning(
        "%s %s failed: %s (%s)",
        request.method,
        request.url.path,
        exc.error,
        exc.message,
    )
    envelope = envelope_for_path(request.url.path)
    if envelope is not None:
        return envelope(exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    全局异常处理器，统一返回结构化错误响应并打印日志。
    """
    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "服务器内部错误，请稍后再试",
            "error_id": error_id,
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the gateway app. Process-wide state is sized from `settings`,
    which defaults to the same object the `get_settings` dependency returns.
    """
    if settings is None:
        settings = get_settings()
    docs_url = "/docs" if settings.enable_api_docs else None
    redoc_url = "/redoc" if settings.enable_api_docs else None
    openapi_url = "/openapi.json" if settings.enable_api_docs else None

    app = FastAPI(
        title="AIGC Compatibility Gateway",
        version="0.1.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
    )
    app.add_exception_handler(GatewayError, handle_gateway_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    if not settings.enable_api_docs:
        logger.info(
            "API docs routes are disabled (environment=%s); set ENABLE_API_DOCS=true to enable.",
            settings.environment,
        )

    # Process-wide state; everything else lives for one request.
    app.state.usage_ledger = UsageLedger(settings.usage_ledger_capacity)
    app.state.poll_cache = PollCache(settings.poll_cache_ttl_seconds)

    app.include_router(video_router)
    app.include_router(kling_router)
    app.include_router(gemini_router)
    app.include_router(chat_router)
    app.include_router(usage_router)
    # Last: owns the /api/* not-found catch-all.
    app.include_router(system_router)

    app.add_middleware(ApiPrefixMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Basic request/response logging middleware. Credentials are masked
        in both headers and the query string.
        """
        client_host = request.client.host if request.client else "-"
        target = sanitize_url_for_log(str(request.url))
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            target,
            client_host,
            sanitize_headers_for_log(request.headers),
        )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error while processing %s %s",
                request.method,
                request.url.path,
            )
            raise
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    return app


__all__ = ["create_app", "handle_gateway_error", "handle_unexpected_error"]
