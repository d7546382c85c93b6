"""Admin analytics endpoints."""

from fastapi import APIRouter
from sqlalchemy import select

from brocomp.api.deps import AdminUser, DbSession
from brocomp.models.complaint import (
    Complaint,
    ComplaintCategory,
    ComplaintFeedback,
    ComplaintPriority,
)
from brocomp.schemas.analytics import AnalyticsOverview
from brocomp.services.analytics import build_overview

router = APIRouter()


@router.get("/overview", response_model=AnalyticsOverview)
async def overview(admin: AdminUser, db: DbSession) -> AnalyticsOverview:
    complaints = list((await db.execute(select(Complaint))).scalars().all())
    ratings = list((await db.execute(select(ComplaintFeedback.rating))).scalars().all())
    categories = dict((await db.execute(select(ComplaintCategory.id, ComplaintCategory.name))).all())
    priorities = dict((await db.execute(select(ComplaintPriority.id, ComplaintPriority.name))).all())
    return AnalyticsOverview(**build_overview(complaints, ratings, categories, priorities))
