"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from brocomp.api.v1 import router as api_v1_router
from brocomp.core.config import settings
from brocomp.core.redis import close_redis_pool
from brocomp.services.realtime import realtime_listener

logger = logging.getLogger(__name__)

# Reachable while maintenance mode is on.
MAINTENANCE_EXEMPT_PREFIXES = (
    f"{settings.api_v1_prefix}/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting BroComp API...")
    realtime_listener.start()
    yield
    # Shutdown
    logger.info("Shutting down BroComp API...")
    await realtime_listener.stop()
    await close_redis_pool()


app = FastAPI(
    title="BroComp API",
    description="Student complaint tracking and community chat API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def maintenance_mode(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    if settings.maintenance_mode and not request.url.path.startswith(MAINTENANCE_EXEMPT_PREFIXES):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service under maintenance"},
        )
    return await call_next(request)


# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "BroComp API",
        "version": "0.1.0",
        "docs": "/docs",
    }
