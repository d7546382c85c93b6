"""Complaint categories and priorities."""

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from brocomp.api.deps import AdminUser, CurrentUser, DbSession
from brocomp.models.complaint import ComplaintCategory, ComplaintPriority
from brocomp.schemas.complaint import (
    CategoryCreate,
    CategoryResponse,
    PriorityCreate,
    PriorityResponse,
)

router = APIRouter()


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(current_user: CurrentUser, db: DbSession) -> list[CategoryResponse]:
    result = await db.execute(select(ComplaintCategory).order_by(ComplaintCategory.name))
    return [CategoryResponse.model_validate(c) for c in result.scalars().all()]


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(body: CategoryCreate, admin: AdminUser, db: DbSession) -> CategoryResponse:
    category = ComplaintCategory(**body.model_dump())
    try:
        async with db.begin_nested():
            db.add(category)
            await db.flush()
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category already exists",
        ) from None
    await db.refresh(category)
    return CategoryResponse.model_validate(category)


@router.get("/priorities", response_model=list[PriorityResponse])
async def list_priorities(current_user: CurrentUser, db: DbSession) -> list[PriorityResponse]:
    result = await db.execute(select(ComplaintPriority).order_by(ComplaintPriority.level))
    return [PriorityResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/priorities", response_model=PriorityResponse, status_code=status.HTTP_201_CREATED)
async def create_priority(body: PriorityCreate, admin: AdminUser, db: DbSession) -> PriorityResponse:
    priority = ComplaintPriority(**body.model_dump())
    try:
        async with db.begin_nested():
            db.add(priority)
            await db.flush()
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Priority already exists",
        ) from None
    await db.refresh(priority)
    return PriorityResponse.model_validate(priority)
