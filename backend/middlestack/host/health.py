"""
Middlestack — Health Route
===========================

What:  ``GET /health`` reporting whether the pipeline is assembled and serving.
Who:   Load balancers, container health checks, monitoring.

Status levels:
    healthy      pipeline started (HTTP 200)
    starting     lifespan has not finished starting the system (HTTP 503)
"""

import time
from typing import List

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from middlestack import __version__

router = APIRouter(tags=["Health"])

_start_time = time.time()


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or starting")
    version: str
    routes: int = Field(description="Number of routes in the route table")
    components: List[str] = Field(description="Started lifecycle components, in start order")
    uptime_seconds: float


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request) -> JSONResponse:
    system = getattr(request.app.state, "system", None)
    started = system is not None and system.started
    body = HealthResponse(
        status="healthy" if started else "starting",
        version=__version__,
        routes=len(system.routes or []) if system is not None else 0,
        components=system.started_components if started else [],
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(status_code=200 if started else 503, content=body.model_dump())
