import datetime
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..deps import get_http_client
from ..logging_config import logger
from ..settings import Settings, get_settings

router = APIRouter(tags=["system"])


class HealthResponse(BaseModel):
    ok: bool = True
    time: str
    upstream_base: str
    upstream_reachable: Optional[bool] = None
    upstream_status: Optional[int] = None
    upstream_error: Optional[str] = None


async def probe_upstream(
    http: httpx.AsyncClient, settings: Settings
) -> Dict[str, Any]:
    """
    Unauthenticated GET on the upstream model list. 401 still proves the
    upstream is reachable.
    """
    try:
        resp = await http.get(
            f"{settings.upstream_base}/api/v1/models",
            headers={"Accept": "application/json"},
            timeout=settings.health_check_timeout_seconds,
        )
    except httpx.HTTPError as exc:
        logger.warning("health: upstream probe failed: %s", type(exc).__name__)
        return {"upstream_reachable": False, "upstream_error": str(exc) or type(exc).__name__}
    return {
        "upstream_reachable": resp.is_success or resp.status_code == 401,
        "upstream_status": resp.status_code,
    }


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
@router.get("/api/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health(
    check: Optional[str] = Query(default=None),
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    payload: Dict[str, Any] = {
        "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "upstream_base": settings.upstream_base,
    }
    if check in ("upstream", "kie"):
        payload.update(await probe_upstream(http, settings))
    return HealthResponse(**payload)


@router.api_route(
    "/api/{rest:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def api_not_found(request: Request, rest: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": "API endpoint not found", "path": request.url.path},
    )
