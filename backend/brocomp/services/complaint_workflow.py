"""Complaint tracking IDs and the status workflow.

Statuses only move forward: submitted -> in_review -> processing -> resolved.
Skipping ahead is allowed; going back or re-applying a status is not.
"""

import logging
import re
import secrets
import string
from datetime import UTC, datetime

from brocomp.models.complaint import Complaint, ComplaintStatus

logger = logging.getLogger(__name__)

STATUS_ORDER: tuple[str, ...] = tuple(s.value for s in ComplaintStatus)

STATUS_LABELS: dict[str, str] = {
    ComplaintStatus.SUBMITTED.value: "Submitted",
    ComplaintStatus.IN_REVIEW.value: "In Review",
    ComplaintStatus.PROCESSING.value: "Processing",
    ComplaintStatus.RESOLVED.value: "Resolved",
}

TRACKING_ID_PREFIX = "BRC"
TRACKING_SUFFIX_LENGTH = 6
TRACKING_ID_MAX_ATTEMPTS = 5
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_ID_RE = re.compile(rf"^{TRACKING_ID_PREFIX}-\d{{8}}-[A-Z0-9]{{6}}$")


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change does not move the complaint forward."""

    def __init__(self, current_status: str, new_status: str):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid status transition: '{current_status}' -> '{new_status}'"
        )


def generate_tracking_id(now: datetime | None = None) -> str:
    """Return an ID like ``BRC-20250101-7K2Q9X``."""
    now = now or datetime.now(UTC)
    suffix = "".join(
        secrets.choice(_TRACKING_ALPHABET) for _ in range(TRACKING_SUFFIX_LENGTH)
    )
    return f"{TRACKING_ID_PREFIX}-{now:%Y%m%d}-{suffix}"


def is_valid_tracking_id(value: str) -> bool:
    return bool(TRACKING_ID_RE.match(value))


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status.replace("_", " ").title())


def can_transition(current_status: str, new_status: str) -> bool:
    if current_status not in STATUS_ORDER or new_status not in STATUS_ORDER:
        return False
    return STATUS_ORDER.index(new_status) > STATUS_ORDER.index(current_status)


def validate_transition(current_status: str, new_status: str) -> None:
    """Raises InvalidStatusTransitionError unless new_status is later."""
    if not can_transition(current_status, new_status):
        raise InvalidStatusTransitionError(current_status, new_status)


def apply_status(
    complaint: Complaint,
    new_status: str,
    now: datetime | None = None,
) -> str:
    """Move complaint to new_status and return the previous status.

    Entering ``resolved`` stamps ``resolved_at``.
    """
    previous = complaint.status
    validate_transition(previous, new_status)
    complaint.status = new_status
    if new_status == ComplaintStatus.RESOLVED.value:
        complaint.resolved_at = now or datetime.now(UTC)
    logger.info(f"Complaint {complaint.tracking_id}: {previous} -> {new_status}")
    return previous
