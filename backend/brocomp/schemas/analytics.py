"""Analytics schemas."""

from pydantic import BaseModel


class DailyCount(BaseModel):
    date: str
    count: int


class AnalyticsOverview(BaseModel):
    total: int
    open: int
    resolved: int
    by_status: dict[str, int]
    by_channel: dict[str, int]
    by_category: dict[str, int]
    by_priority: dict[str, int]
    avg_resolution_hours: float | None = None
    avg_rating: float | None = None
    last_7_days: list[DailyCount]
