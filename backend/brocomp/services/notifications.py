"""Complaint notifications: in-app row, realtime push and queued email.

Recording and delivery are separate steps. Handlers record the in-app row
inside their transaction, commit, and only then dispatch, so clients never
hear about a change that was rolled back.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from brocomp.models.complaint import Complaint
from brocomp.models.notification import Notification
from brocomp.services.complaint_workflow import status_label
from brocomp.services.realtime import EventType, publish_event, user_channel

logger = logging.getLogger(__name__)

ComplaintNotificationType = Literal["status_change", "admin_response"]


def complaint_link(complaint: Complaint) -> str:
    return f"/student/complaints/{complaint.tracking_id}"


@dataclass(frozen=True)
class ComplaintUpdate:
    """A recorded complaint notification waiting to be pushed and emailed."""

    user_id: UUID
    complaint_id: UUID
    tracking_id: str
    status: str
    subject: str
    type: ComplaintNotificationType
    title: str
    message: str

    @property
    def event(self) -> EventType:
        if self.type == "status_change":
            return EventType.COMPLAINT_STATUS_CHANGED
        return EventType.COMPLAINT_RESPONSE


def record_complaint_notification(
    db: AsyncSession,
    complaint: Complaint,
    type_: ComplaintNotificationType,
    message: str,
) -> ComplaintUpdate:
    """Add the owner's in-app notification to the session.

    Internal notes must never reach this function.
    """
    if type_ == "status_change":
        title = f"Complaint {complaint.tracking_id} is now {status_label(complaint.status)}"
    else:
        title = f"New response on {complaint.tracking_id}"

    db.add(
        Notification(
            user_id=complaint.user_id,
            type=type_,
            title=title,
            message=message,
            link=complaint_link(complaint),
        )
    )
    return ComplaintUpdate(
        user_id=complaint.user_id,
        complaint_id=complaint.id,
        tracking_id=complaint.tracking_id,
        status=complaint.status,
        subject=complaint.subject,
        type=type_,
        title=title,
        message=message,
    )


async def dispatch_complaint_updates(updates: Iterable[ComplaintUpdate]) -> None:
    """Push and email committed updates. Delivery failures are logged, not raised."""
    from brocomp.workers.notifications import send_notification_email

    for update in updates:
        await publish_event(
            user_channel(update.user_id),
            update.event,
            {
                "complaint_id": str(update.complaint_id),
                "tracking_id": update.tracking_id,
                "status": update.status,
                "title": update.title,
                "message": update.message,
            },
        )
        try:
            send_notification_email.delay(
                user_id=str(update.user_id),
                notification_type=update.type,
                tracking_id=update.tracking_id,
                subject=update.subject,
                message=update.message,
            )
            logger.info(f"Queued {update.type} notification for {update.tracking_id}")
        except Exception as e:
            logger.error(f"Failed to queue {update.type} email for {update.tracking_id}: {e}")
