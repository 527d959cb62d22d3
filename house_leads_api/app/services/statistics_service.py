"""
Service layer for the guest statistics view.

Aggregation runs over the guests the caller may see, restricted to a
``created_at`` window.  Per-marketer and per-manager rows always carry
all five status counters plus a total, so tables and charts render the
same columns whether or not a status occurs.  Guests without a
marketer are left out of the marketer table; guests whose house has no
manager are left out of the manager table.

The aggregation helpers are plain functions so they can be reused by
the spreadsheet export and tested without a database.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from house_leads_api.app.core.config import settings
from house_leads_api.app.core.enums import GuestStatus
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.schemas.common import DataResult
from house_leads_api.app.schemas.guest import GuestRead
from house_leads_api.app.schemas.statistics import (
    DailyStatistics,
    PersonStatistics,
    StatisticsReport,
    StatusSlice,
)
from house_leads_api.app.services.filtering import date_range_for_preset, filter_guests
from house_leads_api.app.services.guest_service import GuestService

logger = logging.getLogger(__name__)

STATUS_KEYS = [status.value for status in GuestStatus]


def _tally(
    guests: Sequence[GuestRead], owner: Callable[[GuestRead], Optional[Tuple[int, str]]]
) -> List[PersonStatistics]:
    rows: Dict[int, PersonStatistics] = {}
    for guest in guests:
        key = owner(guest)
        if key is None:
            continue
        person_id, name = key
        row = rows.get(person_id)
        if row is None:
            row = rows[person_id] = PersonStatistics(id=person_id, name=name)
        setattr(row, guest.status.value, getattr(row, guest.status.value) + 1)
        row.total += 1
    return [rows[person_id] for person_id in sorted(rows)]


def marketer_statistics(guests: Sequence[GuestRead]) -> List[PersonStatistics]:
    """One row per marketer, ordered by marketer id."""
    return _tally(
        guests,
        lambda guest: (guest.marketer.id, guest.marketer.full_name) if guest.marketer else None,
    )


def manager_statistics(guests: Sequence[GuestRead]) -> List[PersonStatistics]:
    """One row per house manager, ordered by manager id."""
    return _tally(
        guests,
        lambda guest: (guest.manager.id, guest.manager.full_name) if guest.manager else None,
    )


def daily_statistics(guests: Sequence[GuestRead]) -> List[DailyStatistics]:
    """Per-day buckets of ``created_at`` (``YYYY-MM-DD``), oldest day first."""
    buckets: Dict[str, DailyStatistics] = {}
    for guest in guests:
        day = guest.created_at.strftime("%Y-%m-%d")
        bucket = buckets.setdefault(day, DailyStatistics(date=day))
        setattr(bucket, guest.status.value, getattr(bucket, guest.status.value) + 1)
        bucket.total += 1
    return [buckets[day] for day in sorted(buckets)]


def status_distribution(rows: Sequence[PersonStatistics]) -> List[StatusSlice]:
    """Sum each status over the rows, in display order."""
    totals: "OrderedDict[str, int]" = OrderedDict((key, 0) for key in STATUS_KEYS)
    for row in rows:
        for key in STATUS_KEYS:
            totals[key] += getattr(row, key)
    return [
        StatusSlice(status=key, label=GuestStatus(key).label, value=value)
        for key, value in totals.items()
    ]


def performance_series(
    rows: Sequence[PersonStatistics], name_key: str, top_n: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Bar-chart series keyed by status label, busiest people first.

    ``name_key`` is the key holding the person's name (``marketer`` or
    ``manager``).  Only the first ``top_n`` rows are kept.
    """
    top_n = settings.chart_top_n if top_n is None else top_n
    ranked = sorted(rows, key=lambda row: row.total, reverse=True)[:top_n]
    series = []
    for row in ranked:
        point: Dict[str, Any] = {name_key: row.name}
        for key in STATUS_KEYS:
            point[GuestStatus(key).label] = getattr(row, key)
        series.append(point)
    return series


def build_report(
    guests: Sequence[GuestRead],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StatisticsReport:
    """Aggregate ``guests`` inside the ``[start_date, end_date]`` created_at window."""
    window = filter_guests(guests, start_date=start_date, end_date=end_date)
    marketers = marketer_statistics(window)
    managers = manager_statistics(window)
    return StatisticsReport(
        start_date=start_date,
        end_date=end_date,
        marketers=marketers,
        managers=managers,
        daily=daily_statistics(window),
        marketer_status_distribution=status_distribution(marketers),
        manager_status_distribution=status_distribution(managers),
        marketer_performance=performance_series(marketers, "marketer"),
        manager_performance=performance_series(managers, "manager"),
    )


class StatisticsService:
    """Service producing the statistics view for the current caller."""

    @classmethod
    async def guest_statistics(
        cls,
        caller: CallerContext,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        preset: Optional[str] = None,
    ) -> DataResult:
        """Return a ``StatisticsReport`` over the caller-visible guests.

        A ``preset`` (``today``, ``thisWeek``, ...) overrides explicit
        dates; with neither, the current week is used.
        """
        if preset:
            start_date, end_date = date_range_for_preset(preset)
        elif start_date is None and end_date is None:
            start_date, end_date = date_range_for_preset("thisWeek")

        visible = await GuestService.list_guests(caller)
        if not visible.ok:
            return DataResult.failure("Lỗi khi lấy dữ liệu thống kê", visible.error)
        report = build_report(visible.data, start_date, end_date)
        logger.debug(
            "Statistics for account %s: %d marketer rows, %d manager rows",
            caller.id,
            len(report.marketers),
            len(report.managers),
        )
        return DataResult(data=report, message="Lấy dữ liệu thống kê thành công")
