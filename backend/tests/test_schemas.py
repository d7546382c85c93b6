"""Tests for request schema validation (complaints, chat, feedback, profile)."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from brocomp.schemas.auth import RegisterRequest
from brocomp.schemas.chat import ChatMessageCreate, ReactionCreate
from brocomp.schemas.complaint import ComplaintCreate, FeedbackCreate, OfflineDraft
from brocomp.schemas.security import FileValidationRequest, FileValidationResponse
from brocomp.schemas.user import NotificationPreferences, ProfileUpdate
from brocomp.services.sanitize import sanitize_text


def _complaint(**overrides):
    data = {
        "subject": "Cannot access course portal",
        "description": "Since Monday the portal shows an error on login.",
        "channel": "ticket",
        "category_id": str(uuid4()),
        "priority_id": str(uuid4()),
    }
    data.update(overrides)
    return data


class TestComplaintCreate:
    def test_valid_complaint(self):
        complaint = ComplaintCreate(**_complaint())
        assert complaint.channel.value == "ticket"

    def test_fields_are_stripped(self):
        complaint = ComplaintCreate(**_complaint(subject="   Wifi is down   "))
        assert complaint.subject == "Wifi is down"

    @pytest.mark.parametrize("subject", ["abc", "x" * 201, "Email me @ home", "<b>Help</b>"])
    def test_invalid_subject(self, subject):
        with pytest.raises(ValidationError):
            ComplaintCreate(**_complaint(subject=subject))

    def test_description_too_short(self):
        with pytest.raises(ValidationError):
            ComplaintCreate(**_complaint(description="too short"))

    def test_description_too_long(self):
        with pytest.raises(ValidationError):
            ComplaintCreate(**_complaint(description="x" * 2001))

    def test_description_script_rejected(self):
        with pytest.raises(ValidationError, match="Description contains invalid content"):
            ComplaintCreate(**_complaint(description="Please look <script>alert(1)</script>"))

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValidationError):
            ComplaintCreate(**_complaint(channel="fax"))

    def test_offline_draft_accepts_client_fields(self):
        draft = OfflineDraft(**_complaint(id="draft-1", timestamp=1_700_000_000_000))
        assert draft.id == "draft-1"
        assert draft.timestamp == 1_700_000_000_000


class TestFeedbackCreate:
    @pytest.mark.parametrize("rating", [1, 3, 5])
    def test_valid_ratings(self, rating):
        assert FeedbackCreate(rating=rating).rating == rating

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_out_of_range(self, rating):
        with pytest.raises(ValidationError):
            FeedbackCreate(rating=rating)

    def test_rating_must_be_integer(self):
        with pytest.raises(ValidationError):
            FeedbackCreate(rating="5")

    def test_blank_comment_becomes_none(self):
        assert FeedbackCreate(rating=4, comment="   ").comment is None

    def test_malicious_comment_rejected(self):
        with pytest.raises(ValidationError):
            FeedbackCreate(rating=4, comment="<iframe src=x>")


class TestChatSchemas:
    def test_message_stripped(self):
        assert ChatMessageCreate(message="  hi all  ").message == "hi all"

    def test_whitespace_only_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessageCreate(message="    ")

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessageCreate(message="x" * 1001)

    def test_inline_handler_rejected(self):
        with pytest.raises(ValidationError, match="Message contains invalid content"):
            ChatMessageCreate(message='<img onerror="x">')

    def test_split_script_tag_is_stored_escaped(self):
        body = ChatMessageCreate(message="hi <<b>script>alert(document.cookie)<</b>/script>")
        assert "<" not in sanitize_text(body.message)

    def test_allowed_reaction(self):
        assert ReactionCreate(reaction="👍").reaction == "👍"

    def test_unsupported_reaction(self):
        with pytest.raises(ValidationError, match="Unsupported reaction"):
            ReactionCreate(reaction="💩")


class TestProfileSchemas:
    def test_valid_profile(self):
        profile = ProfileUpdate(full_name="Mary O'Neil-Smith", phone="+1 (555) 010-0000")
        assert profile.full_name == "Mary O'Neil-Smith"

    def test_empty_phone_is_none(self):
        assert ProfileUpdate(full_name="Sam Lee", phone="  ").phone is None

    @pytest.mark.parametrize("name", ["J", "R2D2", "Name<script>"])
    def test_invalid_name(self, name):
        with pytest.raises(ValidationError):
            ProfileUpdate(full_name=name)

    def test_invalid_phone(self):
        with pytest.raises(ValidationError):
            ProfileUpdate(full_name="Sam Lee", phone="call me")

    def test_notification_defaults_all_on(self):
        assert NotificationPreferences().model_dump() == {
            "email": True,
            "push": True,
            "statusChanges": True,
            "adminResponses": True,
            "communityMentions": True,
        }

    def test_register_password_length(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="a@example.com", password="short", full_name="Sam Lee")


class TestFileValidationSchemas:
    def test_camel_case_aliases(self):
        body = FileValidationRequest.model_validate(
            {"fileName": "a.png", "fileSize": 10, "mimeType": "image/png", "fileData": "iVBORw=="}
        )
        assert body.file_name == "a.png"
        assert body.file_size == 10

    def test_response_serializes_camel_case(self):
        response = FileValidationResponse(valid=True, sanitized_file_name="a.png")
        assert response.model_dump(by_alias=True, exclude_none=True) == {
            "valid": True,
            "sanitizedFileName": "a.png",
        }
