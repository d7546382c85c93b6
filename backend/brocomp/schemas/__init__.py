"""Pydantic schemas for request/response validation."""

from brocomp.schemas.analytics import AnalyticsOverview, DailyCount
from brocomp.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenRefresh,
    UserInfo,
)
from brocomp.schemas.chat import (
    ALLOWED_REACTIONS,
    ChatMessageCreate,
    ChatMessageResponse,
    ChatMessageUpdate,
    OnlineUser,
    ReactionCreate,
    ReactionSummary,
    ReactionToggleResult,
)
from brocomp.schemas.common import (
    BaseSchema,
    PaginatedResponse,
    PaginationMeta,
    SuccessResponse,
)
from brocomp.schemas.complaint import (
    BulkAssign,
    BulkResult,
    BulkStatusUpdate,
    CategoryCreate,
    CategoryResponse,
    ComplaintCreate,
    ComplaintCreated,
    ComplaintDetail,
    ComplaintSummary,
    FeedbackCreate,
    FeedbackResponse,
    OfflineSyncRequest,
    OfflineSyncResponse,
    PriorityCreate,
    PriorityResponse,
    ResponseCreate,
    StatusUpdate,
    SupportHistory,
)
from brocomp.schemas.device import DeviceSessionResponse
from brocomp.schemas.notification import NotificationResponse, UnreadCount
from brocomp.schemas.security import (
    AuditLogResponse,
    FileValidationRequest,
    FileValidationResponse,
    RateLimitRuleResponse,
    SecurityAlertQueued,
    SecurityAlertRequest,
    SecurityMetrics,
)
from brocomp.schemas.user import (
    NotificationPreferences,
    ProfileUpdate,
    UserApprovalUpdate,
    UserResponse,
    UserRoleUpdate,
)

__all__ = [
    # Analytics
    "AnalyticsOverview",
    "DailyCount",
    # Auth
    "AuthResponse",
    "LoginRequest",
    "RefreshRequest",
    "RegisterRequest",
    "TokenRefresh",
    "UserInfo",
    # Chat
    "ALLOWED_REACTIONS",
    "ChatMessageCreate",
    "ChatMessageResponse",
    "ChatMessageUpdate",
    "OnlineUser",
    "ReactionCreate",
    "ReactionSummary",
    "ReactionToggleResult",
    # Common
    "BaseSchema",
    "PaginatedResponse",
    "PaginationMeta",
    "SuccessResponse",
    # Complaint
    "BulkAssign",
    "BulkResult",
    "BulkStatusUpdate",
    "CategoryCreate",
    "CategoryResponse",
    "ComplaintCreate",
    "ComplaintCreated",
    "ComplaintDetail",
    "ComplaintSummary",
    "FeedbackCreate",
    "FeedbackResponse",
    "OfflineSyncRequest",
    "OfflineSyncResponse",
    "PriorityCreate",
    "PriorityResponse",
    "ResponseCreate",
    "StatusUpdate",
    "SupportHistory",
    # Device
    "DeviceSessionResponse",
    # Notification
    "NotificationResponse",
    "UnreadCount",
    # Security
    "AuditLogResponse",
    "FileValidationRequest",
    "FileValidationResponse",
    "RateLimitRuleResponse",
    "SecurityAlertQueued",
    "SecurityAlertRequest",
    "SecurityMetrics",
    # User
    "NotificationPreferences",
    "ProfileUpdate",
    "UserApprovalUpdate",
    "UserResponse",
    "UserRoleUpdate",
]
