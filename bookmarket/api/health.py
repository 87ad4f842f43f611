"""Liveness and readiness probes."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from bookmarket.infrastructure.config import settings
from bookmarket.infrastructure.container import get_container
from bookmarket.infrastructure.database import get_session_factory

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness payload."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """The process is up and serving."""
    return HealthResponse(status="healthy", service="bookmarket-api", version=settings.api_version)


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Report whether storage is reachable.

    The memory backend is always ready. The SQL backend must answer a
    trivial query, otherwise the probe returns 503.
    """
    body = {
        "status": "ready",
        "storage_backend": settings.storage_backend,
        "sweeper_running": get_container().sweeper.is_running,
    }
    if settings.storage_backend != "sql":
        return JSONResponse(content=body)

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        body.update(status="not_ready", error=str(e))
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return JSONResponse(content=body)
