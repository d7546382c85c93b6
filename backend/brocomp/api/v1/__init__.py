"""API v1 module."""

from fastapi import APIRouter

from brocomp.api.v1 import (
    admin_complaints,
    analytics,
    auth,
    community,
    complaints,
    devices,
    health,
    notifications,
    realtime,
    reference,
    security,
    users,
)

router = APIRouter()

router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(devices.router, prefix="/devices", tags=["devices"])
router.include_router(reference.router, prefix="/reference", tags=["reference"])
router.include_router(complaints.router, prefix="/complaints", tags=["complaints"])
router.include_router(admin_complaints.router, prefix="/admin/complaints", tags=["admin"])
router.include_router(community.router, prefix="/community", tags=["community"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(security.router, prefix="/security", tags=["security"])
router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
router.include_router(realtime.router, prefix="/realtime", tags=["realtime"])
