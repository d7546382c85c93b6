"""Security dashboard endpoints: audit log, metrics, alerts, file validation."""

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, select

from brocomp.api.deps import AdminUser, CurrentUser, DbSession, SuperAdminUser
from brocomp.core.rate_limit import RATE_LIMITS
from brocomp.models.audit_log import AuditLog
from brocomp.schemas.security import (
    AuditLogResponse,
    FileValidationRequest,
    FileValidationResponse,
    RateLimitRuleResponse,
    SecurityAlertQueued,
    SecurityAlertRequest,
    SecurityMetrics,
)
from brocomp.services.audit import CRITICAL_ACTION_MARKERS, client_ip, record_audit
from brocomp.services.file_validation import (
    FileValidationError,
    decode_header,
    validate_upload,
)

logger = logging.getLogger(__name__)

router = APIRouter()

AUDIT_LOG_LIMIT = 100


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def list_audit_logs(
    admin: AdminUser,
    db: DbSession,
    action: str | None = Query(None, max_length=100),
) -> list[AuditLogResponse]:
    """Latest audit entries."""
    query = select(AuditLog)
    if action:
        query = query.where(AuditLog.action == action)
    result = await db.execute(query.order_by(AuditLog.created_at.desc()).limit(AUDIT_LOG_LIMIT))
    return [AuditLogResponse.model_validate(entry) for entry in result.scalars().all()]


@router.get("/metrics", response_model=SecurityMetrics)
async def security_metrics(admin: AdminUser, db: DbSession) -> SecurityMetrics:
    total = (await db.execute(select(func.count()).select_from(AuditLog))).scalar_one()
    critical = (
        await db.execute(
            select(func.count())
            .select_from(AuditLog)
            .where(or_(*(AuditLog.action.contains(m) for m in CRITICAL_ACTION_MARKERS)))
        )
    ).scalar_one()
    since = datetime.now(UTC) - timedelta(hours=24)
    recent = (
        await db.execute(
            select(func.count()).select_from(AuditLog).where(AuditLog.created_at >= since)
        )
    ).scalar_one()
    return SecurityMetrics(total_logs=total, critical_actions=critical, recent_activity=recent)


@router.get("/rate-limits", response_model=list[RateLimitRuleResponse])
async def rate_limit_rules(admin: AdminUser) -> list[RateLimitRuleResponse]:
    return [
        RateLimitRuleResponse(
            action=action,
            max_attempts=rule.max_attempts,
            window_minutes=rule.window_seconds / 60,
            backoff=rule.backoff,
        )
        for action, rule in RATE_LIMITS.items()
    ]


@router.post("/alerts", response_model=SecurityAlertQueued, status_code=status.HTTP_202_ACCEPTED)
async def trigger_alert(
    body: SecurityAlertRequest,
    request: Request,
    admin: SuperAdminUser,
) -> SecurityAlertQueued:
    """Email a security alert to every super admin."""
    from brocomp.workers.notifications import send_security_alert

    task = send_security_alert.delay(
        alert_type=body.alert_type,
        severity=body.severity,
        details=body.message,
        user_id=str(body.user_id) if body.user_id else str(admin.id),
        ip_address=client_ip(request),
        metadata=body.metadata,
    )
    logger.info(f"Security alert {body.alert_type} queued by {admin.id}")
    return SecurityAlertQueued(task_id=task.id)


@router.post("/validate-file", response_model=FileValidationResponse, response_model_exclude_none=True)
async def validate_file(
    body: FileValidationRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> FileValidationResponse | JSONResponse:
    """Check size, type and signature of a file before uploading it."""
    header = decode_header(body.file_data) if body.file_data else None
    try:
        validated = validate_upload(body.file_name, body.file_size, body.mime_type, header=header)
    except FileValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "error": str(e)},
        )

    await record_audit(
        db,
        "file_upload_validated",
        user_id=current_user.id,
        request=request,
        resource_type="file",
        metadata={
            "file_name": validated.file_name,
            "file_size": validated.size,
            "mime_type": validated.content_type,
        },
    )
    return FileValidationResponse(valid=True, sanitized_file_name=validated.file_name)
