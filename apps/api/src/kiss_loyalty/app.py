from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from kiss_loyalty.core.settings import settings
from kiss_loyalty.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Loyalty service starting",
        environment=settings.environment,
        database=engine.url.render_as_string(hide_password=True),
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Loyalty service stopped")


def create_app() -> FastAPI:
    """Application factory for the Kiss loyalty FastAPI service."""
    configure_logging(
        service_name="kiss-loyalty",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Kiss Loyalty API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="kiss-loyalty",
        service_version=APP_VERSION,
        environment=settings.environment,
        exporter_enabled=settings.tracing_exporter_enabled,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
