"""Admin triage endpoints: status workflow, bulk actions and responses.

Owner notifications are pushed and emailed only after the transaction that
recorded them has committed.
"""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from brocomp.api.v1.admin_complaints import (
    add_response,
    bulk_assign,
    bulk_update_status,
    update_status,
)
from brocomp.models import Complaint, ComplaintResponse, Notification, User
from brocomp.schemas.complaint import BulkAssign, BulkStatusUpdate, ResponseCreate, StatusUpdate


def _user(role: str = "admin") -> User:
    return User(
        id=uuid.uuid4(),
        email=f"{role}@brocomp.dev",
        hashed_password="x",
        full_name="Alex Kim",
        role=role,
        admin_approved=True,
    )


def _complaint(status: str = "submitted") -> Complaint:
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


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalars.return_value.all.return_value = value if isinstance(value, list) else [value]
    return result


async def _fill_server_defaults(obj, *args, **kwargs):
    if getattr(obj, "id", None) is None:
        obj.id = uuid.uuid4()
    if getattr(obj, "created_at", None) is None:
        obj.created_at = datetime.now(UTC)


def _mock_db(*results) -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    db.refresh.side_effect = _fill_server_defaults
    db.execute.side_effect = [_result(r) for r in results]
    return db


def _added(db: AsyncMock, model) -> list:
    return [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], model)]


@pytest.fixture
def timeline():
    """Records commits and notification dispatches in the order they happen."""
    events: list = []

    async def dispatch(updates):
        events.append(("dispatch", [u.complaint_id for u in updates]))

    with patch(
        "brocomp.api.v1.admin_complaints.dispatch_complaint_updates",
        AsyncMock(side_effect=dispatch),
    ) as mock_dispatch:
        mock_dispatch.events = events
        yield mock_dispatch


def _track_commits(db: AsyncMock, events: list) -> None:
    db.commit.side_effect = lambda: events.append("commit")


# =============================================================================
# Single status change
# =============================================================================


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_notification_dispatched_after_commit(self, timeline):
        complaint = _complaint()
        db = _mock_db(complaint)
        _track_commits(db, timeline.events)

        summary = await update_status(
            complaint.id, StatusUpdate(status="in_review"), admin=_user(), db=db
        )

        assert summary.status == "in_review"
        assert timeline.events == ["commit", ("dispatch", [complaint.id])]
        [notification] = _added(db, Notification)
        assert notification.user_id == complaint.user_id
        assert notification.link == "/student/complaints/BRC-20250101-ABC123"

    @pytest.mark.asyncio
    async def test_failed_commit_sends_nothing(self, timeline):
        complaint = _complaint()
        db = _mock_db(complaint)
        db.commit.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(SQLAlchemyError):
            await update_status(complaint.id, StatusUpdate(status="resolved"), admin=_user(), db=db)

        timeline.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backward_transition_rejected(self, timeline):
        complaint = _complaint("processing")
        db = _mock_db(complaint)

        with pytest.raises(HTTPException) as exc_info:
            await update_status(complaint.id, StatusUpdate(status="submitted"), admin=_user(), db=db)

        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
        assert complaint.status == "processing"
        db.commit.assert_not_awaited()
        timeline.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolving_stamps_resolved_at(self, timeline):
        complaint = _complaint("processing")

        await update_status(
            complaint.id, StatusUpdate(status="resolved"), admin=_user(), db=_mock_db(complaint)
        )

        assert complaint.resolved_at is not None


# =============================================================================
# Bulk actions
# =============================================================================


class TestBulkStatus:
    @pytest.mark.asyncio
    async def test_mixed_batch_reports_each_complaint(self, timeline):
        movable = _complaint("submitted")
        finished = _complaint("resolved")
        missing = uuid.uuid4()
        db = _mock_db([movable, finished])
        _track_commits(db, timeline.events)

        result = await bulk_update_status(
            BulkStatusUpdate(complaint_ids=[movable.id, finished.id, missing], status="processing"),
            admin=_user(),
            db=db,
        )

        assert result.updated == [movable.id]
        failures = {f.id: f.reason for f in result.failed}
        assert "Invalid status transition" in failures[finished.id]
        assert failures[missing] == "Complaint not found"
        assert (movable.status, finished.status) == ("processing", "resolved")
        assert timeline.events == ["commit", ("dispatch", [movable.id])]
        assert len(_added(db, Notification)) == 1

    @pytest.mark.asyncio
    async def test_duplicate_ids_counted_once(self, timeline):
        complaint = _complaint()
        db = _mock_db([complaint])

        result = await bulk_update_status(
            BulkStatusUpdate(complaint_ids=[complaint.id, complaint.id], status="in_review"),
            admin=_user(),
            db=db,
        )

        assert result.updated == [complaint.id]
        assert result.failed == []


class TestBulkAssign:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("assignee", [None, _user("student")])
    async def test_assignee_must_be_admin(self, assignee):
        db = _mock_db()
        db.get.return_value = assignee
        complaint = _complaint()

        with pytest.raises(HTTPException) as exc_info:
            await bulk_assign(
                BulkAssign(complaint_ids=[complaint.id], assignee_id=uuid.uuid4()),
                admin=_user(),
                db=db,
            )

        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assigns_to_admin(self):
        assignee = _user("super_admin")
        complaint = _complaint()
        missing = uuid.uuid4()
        db = _mock_db([complaint])
        db.get.return_value = assignee

        result = await bulk_assign(
            BulkAssign(complaint_ids=[complaint.id, missing], assignee_id=assignee.id),
            admin=_user(),
            db=db,
        )

        assert complaint.assigned_to == assignee.id
        assert result.updated == [complaint.id]
        assert [f.id for f in result.failed] == [missing]


# =============================================================================
# Responses
# =============================================================================


class TestAddResponse:
    @pytest.mark.asyncio
    async def test_internal_note_never_notifies_owner(self, timeline):
        complaint = _complaint()
        db = _mock_db(complaint)

        item = await add_response(
            complaint.id,
            ResponseCreate(message="Router in block C is dead.", is_internal_note=True),
            admin=_user(),
            db=db,
        )

        assert item.is_internal_note is True
        assert _added(db, Notification) == []
        timeline.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_public_response_notifies_after_commit(self, timeline):
        complaint = _complaint()
        db = _mock_db(complaint)
        _track_commits(db, timeline.events)

        item = await add_response(
            complaint.id,
            ResponseCreate(message="A technician is on the way."),
            admin=_user(),
            db=db,
        )

        assert item.message == "A technician is on the way."
        [response] = _added(db, ComplaintResponse)
        assert response.is_internal_note is False
        [notification] = _added(db, Notification)
        assert notification.type == "admin_response"
        assert timeline.events == ["commit", ("dispatch", [complaint.id])]

    @pytest.mark.asyncio
    async def test_markup_only_response_rejected(self, timeline):
        complaint = _complaint()

        with pytest.raises(HTTPException) as exc_info:
            await add_response(
                complaint.id,
                ResponseCreate(message="<p></p>"),
                admin=_user(),
                db=_mock_db(complaint),
            )

        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
