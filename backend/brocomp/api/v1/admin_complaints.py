"""Admin complaint triage endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.api.deps import AdminUser, DbSession
from brocomp.api.v1.complaints import build_detail, get_visible_complaint
from brocomp.models.complaint import (
    Complaint,
    ComplaintChannel,
    ComplaintResponse,
    ComplaintStatus,
)
from brocomp.models.user import ADMIN_ROLES, User
from brocomp.schemas.common import PaginatedResponse, PaginationMeta
from brocomp.schemas.complaint import (
    BulkAssign,
    BulkFailure,
    BulkResult,
    BulkStatusUpdate,
    ComplaintDetail,
    ComplaintResponseItem,
    ComplaintSummary,
    ResponseCreate,
    StatusUpdate,
)
from brocomp.services.complaint_workflow import (
    InvalidStatusTransitionError,
    apply_status,
    status_label,
)
from brocomp.services.notifications import (
    ComplaintUpdate,
    dispatch_complaint_updates,
    record_complaint_notification,
)
from brocomp.services.sanitize import escape_like, sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter()


def _change_status(db: AsyncSession, complaint: Complaint, new_status: str) -> ComplaintUpdate:
    """Apply a workflow transition and record the owner's notification."""
    apply_status(complaint, new_status)
    return record_complaint_notification(
        db,
        complaint,
        "status_change",
        f"Your complaint status changed to {status_label(new_status)}.",
    )


@router.get("", response_model=PaginatedResponse[ComplaintSummary])
async def list_complaints(
    admin: AdminUser,
    db: DbSession,
    status_filter: ComplaintStatus | None = Query(None, alias="status"),
    channel: ComplaintChannel | None = Query(None),
    category_id: UUID | None = Query(None),
    priority_id: UUID | None = Query(None),
    assigned_to: UUID | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[ComplaintSummary]:
    query = select(Complaint)
    if status_filter is not None:
        query = query.where(Complaint.status == status_filter.value)
    if channel is not None:
        query = query.where(Complaint.channel == channel.value)
    if category_id is not None:
        query = query.where(Complaint.category_id == category_id)
    if priority_id is not None:
        query = query.where(Complaint.priority_id == priority_id)
    if assigned_to is not None:
        query = query.where(Complaint.assigned_to == assigned_to)
    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.where(
            or_(
                Complaint.tracking_id.ilike(pattern, escape="\\"),
                Complaint.subject.ilike(pattern, escape="\\"),
                Complaint.description.ilike(pattern, escape="\\"),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(Complaint.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return PaginatedResponse(
        data=[ComplaintSummary.model_validate(c) for c in result.scalars().all()],
        pagination=PaginationMeta.build(page, per_page, total),
    )


@router.get("/{complaint_id}", response_model=ComplaintDetail)
async def get_complaint(complaint_id: UUID, admin: AdminUser, db: DbSession) -> ComplaintDetail:
    """Full detail including internal notes."""
    complaint = await get_visible_complaint(db, complaint_id, admin, with_details=True)
    return build_detail(complaint, include_internal=True)


@router.patch("/{complaint_id}/status", response_model=ComplaintSummary)
async def update_status(
    complaint_id: UUID,
    body: StatusUpdate,
    admin: AdminUser,
    db: DbSession,
) -> ComplaintSummary:
    complaint = await get_visible_complaint(db, complaint_id, admin)
    try:
        update = _change_status(db, complaint, body.status.value)
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    await db.flush()
    await db.refresh(complaint)
    await db.commit()

    await dispatch_complaint_updates([update])
    logger.info(f"Admin {admin.id} moved {complaint.tracking_id} to {body.status.value}")
    return ComplaintSummary.model_validate(complaint)


@router.post("/bulk/status", response_model=BulkResult)
async def bulk_update_status(body: BulkStatusUpdate, admin: AdminUser, db: DbSession) -> BulkResult:
    """Move many complaints; each goes through the workflow individually."""
    result = await db.execute(select(Complaint).where(Complaint.id.in_(body.complaint_ids)))
    found = {c.id: c for c in result.scalars().all()}

    updated: list[UUID] = []
    failed: list[BulkFailure] = []
    updates: list[ComplaintUpdate] = []
    for complaint_id in dict.fromkeys(body.complaint_ids):
        complaint = found.get(complaint_id)
        if complaint is None:
            failed.append(BulkFailure(id=complaint_id, reason="Complaint not found"))
            continue
        try:
            updates.append(_change_status(db, complaint, body.status.value))
        except InvalidStatusTransitionError as e:
            failed.append(BulkFailure(id=complaint_id, reason=str(e)))
            continue
        updated.append(complaint_id)

    await db.commit()
    await dispatch_complaint_updates(updates)
    logger.info(f"Bulk status by {admin.id}: {len(updated)} updated, {len(failed)} failed")
    return BulkResult(updated=updated, failed=failed)


@router.post("/bulk/assign", response_model=BulkResult)
async def bulk_assign(body: BulkAssign, admin: AdminUser, db: DbSession) -> BulkResult:
    assignee = await db.get(User, body.assignee_id)
    if assignee is None or assignee.role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignee must be an admin",
        )

    result = await db.execute(select(Complaint).where(Complaint.id.in_(body.complaint_ids)))
    found = {c.id: c for c in result.scalars().all()}

    updated: list[UUID] = []
    failed: list[BulkFailure] = []
    for complaint_id in dict.fromkeys(body.complaint_ids):
        complaint = found.get(complaint_id)
        if complaint is None:
            failed.append(BulkFailure(id=complaint_id, reason="Complaint not found"))
            continue
        complaint.assigned_to = assignee.id
        updated.append(complaint_id)

    logger.info(f"Admin {admin.id} assigned {len(updated)} complaints to {assignee.id}")
    return BulkResult(updated=updated, failed=failed)


@router.post(
    "/{complaint_id}/responses",
    response_model=ComplaintResponseItem,
    status_code=status.HTTP_201_CREATED,
)
async def add_response(
    complaint_id: UUID,
    body: ResponseCreate,
    admin: AdminUser,
    db: DbSession,
) -> ComplaintResponseItem:
    """Reply to a complaint. Internal notes stay admin-only and are never emailed."""
    complaint = await get_visible_complaint(db, complaint_id, admin)
    message = sanitize_text(body.message)
    if not message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Response cannot be empty",
        )

    response = ComplaintResponse(
        complaint_id=complaint.id,
        responder_id=admin.id,
        message=message,
        is_internal_note=body.is_internal_note,
    )
    db.add(response)

    update = None
    if not body.is_internal_note:
        update = record_complaint_notification(db, complaint, "admin_response", message)

    await db.flush()
    await db.refresh(response)
    await db.commit()

    if update is not None:
        await dispatch_complaint_updates([update])
    return ComplaintResponseItem.model_validate(response)
