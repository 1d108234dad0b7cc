import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from provisioning.config import settings
from provisioning.core.exceptions import register_exception_handlers
from provisioning.core.logging import configure_logging
from provisioning.core.middleware import RequestIdMiddleware
from provisioning.providers.registry import PROVIDERS

_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global _start_time
    logger = logging.getLogger(__name__)

    logger.info(
        "Application starting",
        extra={"version": settings.app_version, "env": settings.env, "debug": settings.debug},
    )

    _start_time = time.monotonic()
    logger.info("Application ready", extra={"version": settings.app_version, "providers": sorted(PROVIDERS)})

    yield

    logger.info("Application shutting down")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Uniform server provisioning API over Linode, OnApp, SolusVM, VirtFusion, "
            "Virtualizor and Virtuozzo."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    from provisioning.api.v1.router import router as v1_router

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        uptime = int(time.monotonic() - _start_time) if _start_time else 0
        return JSONResponse(
            status_code=200,
            content={
                "status": "healthy",
                "version": settings.app_version,
                "env": settings.env,
                "uptime_s": uptime,
            },
        )

    return app


app = create_app()
