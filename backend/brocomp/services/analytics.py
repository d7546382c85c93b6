"""Complaint statistics for the admin dashboard and student history.

Pure functions over loaded rows so they can be tested without a database.
"""

import csv
import io
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from brocomp.models.complaint import ComplaintStatus

CSV_HEADERS = ("Tracking ID", "Subject", "Category", "Status", "Created", "Resolved")


class ComplaintRow(Protocol):
    tracking_id: str
    subject: str
    status: str
    channel: str
    created_at: datetime
    resolved_at: datetime | None


def _round(value: float | None) -> float | None:
    return round(value, 1) if value is not None else None


def average_resolution_hours(complaints: Iterable[ComplaintRow]) -> float | None:
    durations = [
        (c.resolved_at - c.created_at).total_seconds() / 3600
        for c in complaints
        if c.status == ComplaintStatus.RESOLVED.value and c.resolved_at is not None
    ]
    if not durations:
        return None
    return _round(sum(durations) / len(durations))


def average_rating(ratings: Iterable[int]) -> float | None:
    values = list(ratings)
    if not values:
        return None
    return _round(sum(values) / len(values))


def daily_counts(
    complaints: Iterable[ComplaintRow],
    days: int = 7,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Complaints created per day, oldest first, including empty days."""
    today = (now or datetime.now(UTC)).date()
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    counts = Counter(c.created_at.date() for c in complaints)
    return [{"date": day.isoformat(), "count": counts.get(day, 0)} for day in window]


def build_overview(
    complaints: Sequence[Any],
    ratings: Iterable[int],
    category_names: dict[Any, str],
    priority_names: dict[Any, str],
    now: datetime | None = None,
) -> dict[str, Any]:
    by_status = Counter(c.status for c in complaints)
    resolved = by_status.get(ComplaintStatus.RESOLVED.value, 0)
    return {
        "total": len(complaints),
        "open": len(complaints) - resolved,
        "resolved": resolved,
        "by_status": {s.value: by_status.get(s.value, 0) for s in ComplaintStatus},
        "by_channel": dict(Counter(c.channel for c in complaints)),
        "by_category": dict(
            Counter(category_names.get(c.category_id, "Unknown") for c in complaints)
        ),
        "by_priority": dict(
            Counter(priority_names.get(c.priority_id, "Unknown") for c in complaints)
        ),
        "avg_resolution_hours": average_resolution_hours(complaints),
        "avg_rating": average_rating(ratings),
        "last_7_days": daily_counts(complaints, days=7, now=now),
    }


def complaints_to_csv(complaints: Iterable[Any], category_names: dict[Any, str]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for c in complaints:
        writer.writerow(
            [
                c.tracking_id,
                c.subject,
                category_names.get(c.category_id, "N/A"),
                c.status,
                c.created_at.date().isoformat(),
                c.resolved_at.date().isoformat() if c.resolved_at else "N/A",
            ]
        )
    return buffer.getvalue()
