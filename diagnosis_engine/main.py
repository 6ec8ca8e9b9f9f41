"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from diagnosis_engine.api import router as api_router
from diagnosis_engine.api.deps import Services, build_services
from diagnosis_engine.core.logging import get_logger

logger = get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-wired services (tests); built from settings at startup otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            from diagnosis_engine.core.config import get_settings

            app.state.services = build_services(get_settings())
        yield
        await app.state.services.aclose()
        logger.info("Services closed")

    app = FastAPI(
        title="Diagnosis Engine",
        description="Retrieval-augmented consulting diagnostics chat service",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse(content={"status": "ok"}, status_code=200)

    app.include_router(api_router, prefix="/v1", tags=["v1"])
    return app


app = create_app()
