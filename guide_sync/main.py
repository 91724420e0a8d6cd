"""FastAPI application setup for the guide sync service."""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from guide_sync.api import router as api_router
from guide_sync.guide_service import GuideService, build_guide_service
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="guide_sync/main")


def create_app(service_factory: Optional[Callable[[], GuideService]] = None) -> FastAPI:
    """Build the app; the service is created at startup and closed at shutdown."""
    factory = service_factory or build_guide_service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = factory()
        app.state.guide_service = service
        try:
            yield
        finally:
            await service.aclose()
            app.state.guide_service = None
            logger.info("Guide service closed")

    app = FastAPI(title="Guide Sync", lifespan=lifespan)

    @app.get("/healthz")
    def healthz():
        """Liveness probe."""
        return {"status": "ok"}

    app.include_router(api_router, prefix="/v1")
    return app


app = create_app()
