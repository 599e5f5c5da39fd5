"""
Clutch Backend — Health Check Route
=====================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Pings the document store the request would use. Healthy answers 200,
       an unreachable store answers 503 so the balancer routes away.
       No authentication, and the access log skips this path.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response, status

from clutch import __version__
from clutch.config import settings
from clutch.dependencies import get_store
from clutch.schemas.envelope import HealthResponse
from clutch.services.store_base import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(response: Response, store: DocumentStore = Depends(get_store)) -> HealthResponse:
    connected = await store.ping()
    if not connected:
        logger.warning("Health check: document store unreachable")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        store=settings.store_backend,
        database="connected" if connected else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
