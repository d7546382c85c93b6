"""Student complaint endpoints."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response, StreamingResponse
from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from brocomp.api.deps import CurrentUser, DbSession
from brocomp.core.config import settings
from brocomp.core.rate_limit import enforce_rate_limit
from brocomp.models.complaint import (
    Complaint,
    ComplaintCategory,
    ComplaintFeedback,
    ComplaintFile,
    ComplaintPriority,
    ComplaintStatus,
)
from brocomp.models.user import User
from brocomp.schemas.complaint import (
    ComplaintCreate,
    ComplaintCreated,
    ComplaintDetail,
    ComplaintFileResponse,
    ComplaintResponseItem,
    ComplaintSummary,
    FeedbackCreate,
    FeedbackResponse,
    OfflineDraft,
    OfflineSyncRequest,
    OfflineSyncResponse,
    OfflineSyncResult,
    SupportHistory,
)
from brocomp.services.analytics import (
    average_rating,
    average_resolution_hours,
    complaints_to_csv,
)
from brocomp.services.audit import record_audit
from brocomp.services.complaint_workflow import (
    TRACKING_ID_MAX_ATTEMPTS,
    generate_tracking_id,
    is_valid_tracking_id,
)
from brocomp.services.file_validation import (
    MAX_FILE_SIZE,
    SIZE_ERROR,
    FileValidationError,
    check_file_count,
    validate_upload,
)
from brocomp.services.object_storage import (
    ObjectStorageError,
    attachment_key,
    get_attachment_storage,
)
from brocomp.services.sanitize import escape_like, sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helpers
# =============================================================================


def _detail_options():
    return (
        selectinload(Complaint.category),
        selectinload(Complaint.priority),
        selectinload(Complaint.responses),
        selectinload(Complaint.files),
    )


async def get_visible_complaint(
    db: AsyncSession,
    complaint_id: UUID,
    user: User,
    with_details: bool = False,
) -> Complaint:
    """Load a complaint the user may see; 404 otherwise (no existence leak)."""
    query = select(Complaint).where(Complaint.id == complaint_id)
    if not user.is_admin:
        query = query.where(Complaint.user_id == user.id)
    if with_details:
        query = query.options(*_detail_options())
    result = await db.execute(query)
    complaint = result.scalar_one_or_none()
    if complaint is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Complaint not found",
        )
    return complaint


def build_detail(complaint: Complaint, include_internal: bool) -> ComplaintDetail:
    detail = ComplaintDetail.model_validate(complaint)
    detail.responses = [
        ComplaintResponseItem.model_validate(r)
        for r in complaint.responses
        if include_internal or not r.is_internal_note
    ]
    return detail


async def create_complaint(
    db: AsyncSession,
    user: User,
    data: ComplaintCreate,
) -> Complaint:
    """Insert a complaint, retrying on tracking ID collisions.

    Raises:
        HTTPException(400): unknown category or priority
        HTTPException(500): no unique tracking ID after the retries
    """
    category = await db.get(ComplaintCategory, data.category_id)
    priority = await db.get(ComplaintPriority, data.priority_id)
    if category is None or priority is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid category or priority",
        )

    subject = sanitize_text(data.subject)
    description = sanitize_text(data.description)

    for attempt in range(1, TRACKING_ID_MAX_ATTEMPTS + 1):
        complaint = Complaint(
            tracking_id=generate_tracking_id(),
            user_id=user.id,
            subject=subject,
            description=description,
            channel=data.channel.value,
            category_id=data.category_id,
            priority_id=data.priority_id,
            status=ComplaintStatus.SUBMITTED.value,
        )
        try:
            async with db.begin_nested():
                db.add(complaint)
                await db.flush()
        except IntegrityError:
            logger.warning(f"Tracking ID collision (attempt {attempt})")
            continue
        await db.refresh(complaint)
        logger.info(f"Complaint {complaint.tracking_id} created by {user.id}")
        return complaint

    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Could not allocate a tracking ID",
    )


# =============================================================================
# Create / list
# =============================================================================


@router.post("", response_model=ComplaintCreated, status_code=status.HTTP_201_CREATED)
async def submit_complaint(
    body: ComplaintCreate,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ComplaintCreated:
    """Submit a complaint; returns its tracking ID."""
    await enforce_rate_limit(request, action="complaint", user_id=str(current_user.id))
    complaint = await create_complaint(db, current_user, body)
    return ComplaintCreated(
        id=complaint.id,
        tracking_id=complaint.tracking_id,
        status=complaint.status,
    )


@router.get("", response_model=list[ComplaintSummary])
async def list_my_complaints(
    current_user: CurrentUser,
    db: DbSession,
    status_filter: ComplaintStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=200),
) -> list[ComplaintSummary]:
    query = select(Complaint).where(Complaint.user_id == current_user.id)
    if status_filter is not None:
        query = query.where(Complaint.status == status_filter.value)
    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.where(
            or_(
                Complaint.tracking_id.ilike(pattern, escape="\\"),
                Complaint.subject.ilike(pattern, escape="\\"),
            )
        )
    result = await db.execute(query.order_by(Complaint.created_at.desc()))
    return [ComplaintSummary.model_validate(c) for c in result.scalars().all()]


@router.post("/offline-sync", response_model=OfflineSyncResponse)
async def offline_sync(
    body: OfflineSyncRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> OfflineSyncResponse:
    """Create complaints from drafts saved while offline.

    Each draft is validated on its own so one bad draft does not fail the batch.
    """
    if len(body.drafts) > settings.offline_sync_max_batch:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.offline_sync_max_batch} drafts per sync",
        )

    results: list[OfflineSyncResult] = []
    for raw in body.drafts:
        draft_id = str(raw["id"]) if raw.get("id") is not None else None
        try:
            draft = OfflineDraft.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            results.append(
                OfflineSyncResult(draft_id=draft_id, success=False, error=first.get("msg"))
            )
            continue

        try:
            await enforce_rate_limit(request, action="complaint", user_id=str(current_user.id))
            complaint = await create_complaint(db, current_user, draft)
        except HTTPException as e:
            results.append(
                OfflineSyncResult(draft_id=draft_id, success=False, error=str(e.detail))
            )
            continue

        results.append(
            OfflineSyncResult(draft_id=draft_id, success=True, tracking_id=complaint.tracking_id)
        )

    synced = sum(1 for r in results if r.success)
    logger.info(f"Offline sync for {current_user.id}: {synced}/{len(results)} drafts")
    return OfflineSyncResponse(results=results, synced=synced, failed=len(results) - synced)


# =============================================================================
# Support history
# =============================================================================


async def _own_complaints_with_feedback(db: AsyncSession, user: User) -> list[Complaint]:
    result = await db.execute(
        select(Complaint)
        .where(Complaint.user_id == user.id)
        .options(selectinload(Complaint.feedback), selectinload(Complaint.category))
        .order_by(Complaint.created_at.desc())
    )
    return list(result.scalars().all())


@router.get("/history", response_model=SupportHistory)
async def support_history(current_user: CurrentUser, db: DbSession) -> SupportHistory:
    complaints = await _own_complaints_with_feedback(db, current_user)
    resolved = sum(1 for c in complaints if c.status == ComplaintStatus.RESOLVED.value)
    return SupportHistory(
        total=len(complaints),
        resolved=resolved,
        open=len(complaints) - resolved,
        avg_resolution_hours=average_resolution_hours(complaints),
        avg_rating=average_rating(f.rating for c in complaints for f in c.feedback),
        complaints=[ComplaintSummary.model_validate(c) for c in complaints],
    )


@router.get("/history/export")
async def export_history(current_user: CurrentUser, db: DbSession) -> Response:
    complaints = await _own_complaints_with_feedback(db, current_user)
    category_names = {c.category_id: c.category.name for c in complaints if c.category}
    filename = f"support-history-{datetime.now(UTC):%Y-%m-%d}.csv"
    return Response(
        content=complaints_to_csv(complaints, category_names),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# Detail / tracking
# =============================================================================


@router.get("/track/{tracking_id}", response_model=ComplaintDetail)
async def track_complaint(
    tracking_id: str,
    current_user: CurrentUser,
    db: DbSession,
) -> ComplaintDetail:
    """Look up one of your complaints by tracking ID."""
    tracking_id = tracking_id.strip().upper()
    if not is_valid_tracking_id(tracking_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid tracking ID format",
        )
    result = await db.execute(
        select(Complaint)
        .where(
            Complaint.tracking_id == tracking_id,
            Complaint.user_id == current_user.id,
        )
        .options(*_detail_options())
    )
    complaint = result.scalar_one_or_none()
    if complaint is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Complaint not found",
        )
    return build_detail(complaint, include_internal=False)


@router.get("/{complaint_id}", response_model=ComplaintDetail)
async def get_complaint(
    complaint_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> ComplaintDetail:
    complaint = await get_visible_complaint(db, complaint_id, current_user, with_details=True)
    return build_detail(complaint, include_internal=current_user.is_admin)


# =============================================================================
# Attachments
# =============================================================================


@router.post(
    "/{complaint_id}/files",
    response_model=ComplaintFileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_file(
    complaint_id: UUID,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
    file: UploadFile = File(...),
) -> ComplaintFileResponse:
    """Attach a file (max 5 per complaint, 5MB each)."""
    await enforce_rate_limit(request, action="file_upload", user_id=str(current_user.id))
    complaint = await get_visible_complaint(db, complaint_id, current_user)

    existing = (
        await db.execute(
            select(func.count())
            .select_from(ComplaintFile)
            .where(ComplaintFile.complaint_id == complaint.id)
        )
    ).scalar_one()

    try:
        check_file_count(existing)
        if file.size is not None and file.size > MAX_FILE_SIZE:
            raise FileValidationError(
                SIZE_ERROR, status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            )
        # One byte past the limit is enough to reject an oversized body.
        data = await file.read(MAX_FILE_SIZE + 1)
        validated = validate_upload(
            file.filename or "",
            len(data),
            file.content_type or "application/octet-stream",
            header=data[:16],
        )
    except FileValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    key = attachment_key(complaint.id, validated.file_name)
    storage = get_attachment_storage()
    try:
        await storage.put_object(key, data, validated.content_type)
    except ObjectStorageError as e:
        logger.error(f"Attachment upload failed for {complaint.tracking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="File storage is unavailable",
        ) from e

    record = ComplaintFile(
        complaint_id=complaint.id,
        uploaded_by=current_user.id,
        file_name=validated.file_name,
        file_path=key,
        file_size=validated.size,
        content_type=validated.content_type,
    )
    db.add(record)
    await record_audit(
        db,
        "file_upload_validated",
        user_id=current_user.id,
        request=request,
        resource_type="file",
        resource_id=complaint.id,
        metadata={
            "file_name": validated.file_name,
            "file_size": validated.size,
            "mime_type": validated.content_type,
        },
    )
    try:
        await db.flush()
    except SQLAlchemyError:
        logger.warning(f"Removing orphaned attachment {key} after a failed insert")
        try:
            await storage.delete_object(key)
        except ObjectStorageError as cleanup_error:
            logger.error(f"Failed to remove orphaned attachment {key}: {cleanup_error}")
        raise
    await db.refresh(record)
    return ComplaintFileResponse.model_validate(record)


@router.get("/{complaint_id}/files/{file_id}")
async def download_file(
    complaint_id: UUID,
    file_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> StreamingResponse:
    complaint = await get_visible_complaint(db, complaint_id, current_user)
    result = await db.execute(
        select(ComplaintFile).where(
            ComplaintFile.id == file_id,
            ComplaintFile.complaint_id == complaint.id,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    try:
        data = await get_attachment_storage().get_object(record.file_path)
    except ObjectStorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="File storage is unavailable",
        ) from e
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return StreamingResponse(
        iter([data]),
        media_type=record.content_type,
        headers={"Content-Disposition": f'attachment; filename="{record.file_name}"'},
    )


# =============================================================================
# Feedback
# =============================================================================


@router.post(
    "/{complaint_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_feedback(
    complaint_id: UUID,
    body: FeedbackCreate,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> FeedbackResponse:
    """Rate a resolved complaint (once)."""
    await enforce_rate_limit(request, action="feedback", user_id=str(current_user.id))

    result = await db.execute(
        select(Complaint).where(
            Complaint.id == complaint_id,
            Complaint.user_id == current_user.id,
        )
    )
    complaint = result.scalar_one_or_none()
    if complaint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Complaint not found")
    if complaint.status != ComplaintStatus.RESOLVED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Feedback can only be left on resolved complaints",
        )

    feedback = ComplaintFeedback(
        complaint_id=complaint.id,
        user_id=current_user.id,
        rating=body.rating,
        comment=sanitize_text(body.comment) if body.comment else None,
        is_anonymous=body.is_anonymous,
    )
    try:
        async with db.begin_nested():
            db.add(feedback)
            await db.flush()
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Feedback already submitted for this complaint",
        ) from None
    await db.refresh(feedback)
    return FeedbackResponse.model_validate(feedback)


@router.get("/{complaint_id}/feedback", response_model=list[FeedbackResponse])
async def list_feedback(
    complaint_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[FeedbackResponse]:
    """Feedback on a complaint; anonymous authors are hidden from admins."""
    complaint = await get_visible_complaint(db, complaint_id, current_user)
    result = await db.execute(
        select(ComplaintFeedback)
        .where(ComplaintFeedback.complaint_id == complaint.id)
        .order_by(ComplaintFeedback.created_at.desc())
    )
    items = []
    for feedback in result.scalars().all():
        item = FeedbackResponse.model_validate(feedback)
        if feedback.is_anonymous and feedback.user_id != current_user.id:
            item.user_id = None
        items.append(item)
    return items
