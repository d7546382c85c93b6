"""Device session schemas."""

from datetime import datetime
from uuid import UUID

from brocomp.schemas.common import BaseSchema


class DeviceSessionResponse(BaseSchema):
    id: UUID
    device_name: str
    device_type: str
    browser: str
    ip_address: str | None = None
    last_active: datetime
    created_at: datetime
    current: bool = False
