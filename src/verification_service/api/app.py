"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from prometheus_client import make_asgi_app
from sqlalchemy.orm import sessionmaker

from verification_service import __version__
from verification_service.api.routes import health
from verification_service.config import settings
from verification_service.persistence import get_session_factory
from verification_service.services.sync import SyncService


def create_app(
    session_factory: Optional[sessionmaker] = None,
    sync_service: Optional[SyncService] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The lifespan owns the synchronization scheduler: jobs are registered on
    startup and the scheduler is shut down with the process.
    """
    factory = session_factory or get_session_factory()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        service = app.state.sync_service
        if start_scheduler:
            service.start()
        try:
            yield
        finally:
            if start_scheduler:
                service.stop()

    app = FastAPI(
        title=settings.app_name,
        description="Policy verification, numbering and insurer synchronization",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.session_factory = factory
    app.state.sync_service = sync_service or SyncService(session_factory=factory)

    app.include_router(health.router, prefix="/health", tags=["health"])

    # Prometheus metrics endpoint
    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app
