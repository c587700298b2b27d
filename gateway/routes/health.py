"""
API Gateway — Health Check Route
==================================

What:  Liveness endpoint for Docker health checks and load balancers.
Why:   Load balancers need a cheap endpoint to decide whether to route traffic
       to this instance.
How:   Answers from the process alone. Dependencies are NOT checked here: the
       gateway stays available while the search cluster is down (see the
       Dependency Gate in gateway.server).
"""

import time

from fastapi import APIRouter

from gateway import __version__
from gateway.schemas import HealthResponse

router = APIRouter(tags=["Health"])

HEALTHY_MESSAGE = "API Gateway service is healthy and OK."

_start_time = time.time()


@router.api_route(
    "/gateway-health",
    methods=["GET", "HEAD"],
    response_model=HealthResponse,
    summary="Gateway liveness check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        message=HEALTHY_MESSAGE,
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
