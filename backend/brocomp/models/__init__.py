"""SQLAlchemy models."""

from brocomp.models.audit_log import AuditLog
from brocomp.models.chat import ChatMessage, MessageReaction
from brocomp.models.complaint import (
    Complaint,
    ComplaintCategory,
    ComplaintChannel,
    ComplaintFeedback,
    ComplaintFile,
    ComplaintPriority,
    ComplaintResponse,
    ComplaintStatus,
)
from brocomp.models.device_session import DeviceSession
from brocomp.models.notification import Notification
from brocomp.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Complaint",
    "ComplaintCategory",
    "ComplaintChannel",
    "ComplaintFeedback",
    "ComplaintFile",
    "ComplaintPriority",
    "ComplaintResponse",
    "ComplaintStatus",
    "ChatMessage",
    "MessageReaction",
    "Notification",
    "DeviceSession",
    "AuditLog",
]
