"""
SnipVault Backend — Health Check Route
========================================

What:  GET /health for container and load balancer probes.
How:   Pings the database through the app's SnippetStore (SELECT 1).

    healthy   → database answers     (HTTP 200)
    unhealthy → database unreachable (HTTP 503, stop routing traffic here)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app import __version__
from app.database import SnippetStore
from app.dependencies import get_store
from app.schemas.snippet import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(store: SnippetStore = Depends(get_store)):
    database_ok = await store.ping()
    body = HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        version=__version__,
        database="connected" if database_ok else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not database_ok:
        logger.warning("Health check: database unreachable")
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))
    return body
