"""
Pydantic models for the statistics view.

Every per-person row carries all five status counters, even when they
are zero, so charts always render the same legend.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class StatusCounts(BaseModel):
    new: int = 0
    closed: int = 0
    viewing_scheduled: int = 0
    in_progress: int = 0
    not_closed: int = 0
    total: int = 0


class PersonStatistics(StatusCounts):
    """Counts for one marketer or one manager."""

    id: int
    name: str


class DailyStatistics(StatusCounts):
    """Counts for one calendar day of ``created_at`` (``YYYY-MM-DD``)."""

    date: str


class StatusSlice(BaseModel):
    status: str
    label: str
    value: int


class StatisticsReport(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    marketers: List[PersonStatistics] = []
    managers: List[PersonStatistics] = []
    daily: List[DailyStatistics] = []
    marketer_status_distribution: List[StatusSlice] = []
    manager_status_distribution: List[StatusSlice] = []
    marketer_performance: List[Dict[str, Any]] = []
    manager_performance: List[Dict[str, Any]] = []
