"""Notification email and security alert tasks."""

import logging
from typing import Any

from sqlalchemy import select

from brocomp.core.celery import celery_app
from brocomp.core.config import settings
from brocomp.core.database import get_sync_session
from brocomp.services.email import (
    EmailDeliveryError,
    ResendClient,
    render_notification_email,
    render_security_alert_email,
)

logger = logging.getLogger(__name__)

# Notification type -> per-type preference switch
PREFERENCE_KEYS = {
    "status_change": "statusChanges",
    "admin_response": "adminResponses",
}

VALID_SEVERITIES = frozenset({"critical", "high", "medium", "low"})


class SecurityAlertError(ValueError):
    """Raised for an invalid security alert request."""


def should_send_email(preferences: dict[str, Any] | None, notification_type: str) -> bool:
    """Honour the master email switch and the per-type switch."""
    preferences = preferences or {}
    if preferences.get("email") is False:
        return False
    key = PREFERENCE_KEYS.get(notification_type)
    if key and preferences.get(key) is False:
        return False
    return True


@celery_app.task(name="brocomp.workers.notifications.send_notification_email")
def send_notification_email(
    user_id: str,
    notification_type: str,
    tracking_id: str,
    subject: str,
    message: str,
) -> dict:
    """
    Email a student about a status change or admin response.

    Returns:
        dict with ``status`` of ``sent`` or ``skipped``

    Raises:
        ValueError: user not found
        EmailDeliveryError: Resend rejected the message (Celery records it)
    """
    from brocomp.models.user import User

    logger.info(f"Sending {notification_type} email for {tracking_id} to user {user_id}")

    with get_sync_session() as db:
        user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
        if user is None:
            raise ValueError(f"User {user_id} not found")
        email = user.email
        full_name = user.full_name
        preferences = dict(user.notification_preferences or {})

    if not should_send_email(preferences, notification_type):
        logger.info(f"User {user_id} has disabled {notification_type} emails")
        return {"status": "skipped", "user_id": user_id, "reason": "preferences"}

    title, html = render_notification_email(
        notification_type,  # type: ignore[arg-type]
        full_name=full_name,
        tracking_id=tracking_id,
        subject=subject,
        message=message,
    )
    try:
        result = ResendClient().send(email, title, html, settings.support_email_from)
    except EmailDeliveryError as e:
        logger.error(f"Notification email to {user_id} failed: {e}")
        raise

    return {"status": "sent", "user_id": user_id, "email_id": result.get("id")}


@celery_app.task(name="brocomp.workers.notifications.send_security_alert")
def send_security_alert(
    alert_type: str,
    severity: str,
    details: str,
    user_id: str | None = None,
    ip_address: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """
    Email every super admin about a security event and record it in the audit log.

    Individual delivery failures are counted, not raised.
    """
    from brocomp.models.audit_log import AuditLog
    from brocomp.models.user import User, UserRole

    if not alert_type or not details:
        raise SecurityAlertError("Missing required fields: alert_type, details")
    if severity not in VALID_SEVERITIES:
        raise SecurityAlertError(f"Invalid severity level: {severity}")

    logger.info(f"Security alert triggered: {alert_type} ({severity})")

    with get_sync_session() as db:
        recipients = list(
            db.execute(
                select(User.email).where(User.role == UserRole.SUPER_ADMIN.value)
            ).scalars()
        )

        subject, html = render_security_alert_email(
            alert_type,
            severity,
            details,
            user_id=user_id,
            ip_address=ip_address,
            metadata=metadata,
        )

        client = ResendClient()
        success_count = 0
        failure_count = 0
        for email in recipients:
            try:
                client.send(email, subject, html, settings.security_email_from)
                success_count += 1
            except EmailDeliveryError as e:
                failure_count += 1
                logger.warning(f"Security alert to {email} failed: {e}")

        logger.info(
            f"Security alert sent: {success_count} succeeded, {failure_count} failed"
        )

        db.add(
            AuditLog(
                user_id=user_id,
                action=alert_type,
                resource_type="security_alert",
                ip_address=ip_address,
                log_metadata={
                    "severity": severity,
                    "details": details,
                    **(metadata or {}),
                    "notification_sent": success_count > 0,
                },
            )
        )

    return {
        "success": True,
        "notified": success_count,
        "failed": failure_count,
    }
