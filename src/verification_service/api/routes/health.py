"""Health check endpoints."""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text

from verification_service import __version__
from verification_service.persistence import session_scope

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ReadinessResponse(HealthResponse):
    database: bool
    scheduled_jobs: int


@router.get("/", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/ready", response_model=ReadinessResponse)
def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness check: the policy store answers and the scheduler is up.

    Returns:
        Readiness status with dependency details
    """
    database = True
    try:
        with session_scope(request.app.state.session_factory) as session:
            session.execute(text("SELECT 1"))
    except Exception:  # noqa: BLE001
        database = False

    sync_service = getattr(request.app.state, "sync_service", None)
    jobs = len(sync_service.scheduler.keys()) if sync_service else 0
    return ReadinessResponse(
        status="ready" if database else "degraded",
        version=__version__,
        database=database,
        scheduled_jobs=jobs,
    )


@router.get("/live", response_model=HealthResponse)
async def liveness_check() -> HealthResponse:
    """Liveness check for orchestration."""
    return HealthResponse(status="alive", version=__version__)
