"""Recording and dispatching complaint notifications."""

import logging
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from brocomp.models import Complaint, Notification
from brocomp.services.notifications import (
    dispatch_complaint_updates,
    record_complaint_notification,
)
from brocomp.services.realtime import EventType


def _complaint(status: str = "in_review") -> Complaint:
    now = datetime.now(UTC)
    return Complaint(
        id=uuid.uuid4(),
        tracking_id="BRC-20250101-ABC123",
        user_id=uuid.uuid4(),
        subject="Wifi down in hostel",
        description="The hostel wifi has been down since Monday evening.",
        channel="ticket",
        category_id=uuid.uuid4(),
        priority_id=uuid.uuid4(),
        status=status,
        created_at=now,
        updated_at=now,
    )


class TestRecordComplaintNotification:
    def test_status_change_adds_row_only(self):
        db = MagicMock()
        complaint = _complaint("processing")

        update = record_complaint_notification(db, complaint, "status_change", "Moved on.")

        [notification] = [c.args[0] for c in db.add.call_args_list]
        assert isinstance(notification, Notification)
        assert notification.title == "Complaint BRC-20250101-ABC123 is now Processing"
        assert update.event == EventType.COMPLAINT_STATUS_CHANGED
        assert update.user_id == complaint.user_id

    def test_admin_response_event(self):
        update = record_complaint_notification(MagicMock(), _complaint(), "admin_response", "Hi")

        assert update.title == "New response on BRC-20250101-ABC123"
        assert update.event == EventType.COMPLAINT_RESPONSE


class TestDispatchComplaintUpdates:
    @pytest.mark.asyncio
    async def test_publishes_and_queues_email(self):
        complaint = _complaint()
        update = record_complaint_notification(MagicMock(), complaint, "status_change", "Moved on.")

        with patch("brocomp.services.notifications.publish_event", AsyncMock()) as publish, patch(
            "brocomp.workers.notifications.send_notification_email"
        ) as task:
            await dispatch_complaint_updates([update])

        channel, event, payload = publish.await_args.args
        assert channel == f"user:{complaint.user_id}"
        assert event == EventType.COMPLAINT_STATUS_CHANGED
        assert payload["tracking_id"] == "BRC-20250101-ABC123"
        task.delay.assert_called_once_with(
            user_id=str(complaint.user_id),
            notification_type="status_change",
            tracking_id="BRC-20250101-ABC123",
            subject="Wifi down in hostel",
            message="Moved on.",
        )

    @pytest.mark.asyncio
    async def test_broker_outage_is_logged_not_raised(self, caplog):
        updates = [
            record_complaint_notification(MagicMock(), _complaint(), "status_change", "One"),
            record_complaint_notification(MagicMock(), _complaint(), "admin_response", "Two"),
        ]

        with patch("brocomp.services.notifications.publish_event", AsyncMock()) as publish, patch(
            "brocomp.workers.notifications.send_notification_email"
        ) as task, caplog.at_level(logging.ERROR, logger="brocomp.services.notifications"):
            task.delay.side_effect = ConnectionError("broker unreachable")
            await dispatch_complaint_updates(updates)

        assert publish.await_count == 2
        assert task.delay.call_count == 2
        assert "broker unreachable" in caplog.text
