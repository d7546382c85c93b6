"""Liveness and readiness endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from brocomp.core.database import ping_database
from brocomp.core.redis import ping_redis

router = APIRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """503 unless both PostgreSQL and Redis answer."""
    checks = {
        "database": await ping_database(),
        "redis": await ping_redis(),
    }
    ready = all(checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "unavailable",
            "checks": {name: "ok" if ok else "failed" for name, ok in checks.items()},
        },
    )
