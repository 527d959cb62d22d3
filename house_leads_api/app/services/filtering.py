"""
Search, filter and sort helpers for already-loaded collections.

The list screens load the caller-visible rows once and then narrow
and order them in memory; these functions are that step.  They are
pure: the input list is never modified and a new list is returned.
Sorting uses Python's stable ``sorted`` so ties keep their input order.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from house_leads_api.app.schemas.account import AccountRead
from house_leads_api.app.schemas.guest import GuestFilters, GuestRead
from house_leads_api.app.schemas.house import HouseRead

ASC = "asc"
DESC = "desc"

# Missing view dates sort as the epoch.
EPOCH = datetime(1970, 1, 1)

GUEST_SORT_FIELDS = (
    "id",
    "guest_name",
    "guest_phone_number",
    "marketer",
    "house",
    "view_date",
    "status",
    "created_at",
    "updated_at",
)
ACCOUNT_SORT_FIELDS = ("id", "full_name", "phone_number", "role", "created_at")
HOUSE_SORT_FIELDS = ("id", "address", "manager", "created_at")

DATE_PRESETS = ("today", "yesterday", "thisWeek", "lastWeek", "thisMonth", "lastMonth")


@dataclass
class SortState:
    """Current sort column and direction of a list screen."""

    field: str = "created_at"
    direction: str = DESC

    def toggle(self, field: str) -> "SortState":
        """Flip the direction on the same field; start ascending on a new one."""
        if field == self.field:
            self.direction = ASC if self.direction == DESC else DESC
        else:
            self.field = field
            self.direction = ASC
        return self


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------

def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _naive(value: datetime) -> datetime:
    """Timestamps are compared as naive local time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def in_day_window(value: Optional[datetime], start: Optional[date], end: Optional[date]) -> bool:
    """True if ``value`` lies strictly after start-of-day and strictly before end-of-day.

    An unset bound does not constrain; a missing value never matches
    once either bound is set.
    """
    if start is None and end is None:
        return True
    if value is None:
        return False
    value = _naive(value)
    if start is not None and not value > start_of_day(start):
        return False
    if end is not None and not value < end_of_day(end):
        return False
    return True


def date_range_for_preset(preset: str, today: Optional[date] = None) -> Tuple[date, date]:
    """Return ``(start, end)`` dates for one of the statistics screen presets.

    Weeks run Sunday to Saturday.  Raises ``ValueError`` for an unknown
    preset name.
    """
    today = today or date.today()
    # date.weekday(): Monday == 0, so Sunday-based offset is (weekday + 1) % 7
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    month_start = today.replace(day=1)
    if preset == "today":
        return today, today
    if preset == "yesterday":
        yesterday = today - timedelta(days=1)
        return yesterday, yesterday
    if preset == "thisWeek":
        return week_start, week_start + timedelta(days=6)
    if preset == "lastWeek":
        start = week_start - timedelta(days=7)
        return start, start + timedelta(days=6)
    if preset == "thisMonth":
        next_month = (month_start + timedelta(days=32)).replace(day=1)
        return month_start, next_month - timedelta(days=1)
    if preset == "lastMonth":
        last_month_end = month_start - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    raise ValueError(f"Unknown date preset: {preset}")


# ---------------------------------------------------------------------------
# Generic pieces
# ---------------------------------------------------------------------------

def _normalise_query(query: Optional[str]) -> str:
    return (query or "").strip().lower()


def _matches(query: str, values: Iterable[Optional[str]]) -> bool:
    return any(query in (value or "").lower() for value in values)


def _sort_value(value):
    # None sorts before everything else and never gets compared to a real value.
    if value is None:
        return (0, "")
    if isinstance(value, str):
        return (1, value.lower())
    if isinstance(value, datetime):
        return (1, _naive(value))
    if hasattr(value, "value"):
        return (1, str(value.value).lower())
    return (1, value)


def _sorted(items: Sequence, key: Callable, direction: str) -> List:
    return sorted(items, key=lambda item: _sort_value(key(item)), reverse=direction == DESC)


# ---------------------------------------------------------------------------
# Guests
# ---------------------------------------------------------------------------

def search_guests(guests: Sequence[GuestRead], query: Optional[str]) -> List[GuestRead]:
    """Case-insensitive substring search over name, phone, house address and marketer name."""
    needle = _normalise_query(query)
    if not needle:
        return list(guests)
    return [
        guest
        for guest in guests
        if _matches(
            needle,
            (guest.guest_name, guest.guest_phone_number, guest.house_address, guest.marketer_name),
        )
    ]


def filter_guests(
    guests: Sequence[GuestRead],
    filters: Optional[GuestFilters] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[GuestRead]:
    """Apply the equality filters, the view-date range and the created_at window.

    All active conditions must hold.
    """
    filters = filters or GuestFilters()
    result = []
    for guest in guests:
        if filters.marketer_id is not None and guest.marketer_id != filters.marketer_id:
            continue
        if filters.house_id is not None and guest.house_id != filters.house_id:
            continue
        if filters.status is not None and guest.status != filters.status:
            continue
        if not in_day_window(guest.view_date, filters.view_date_from, filters.view_date_to):
            continue
        if not in_day_window(guest.created_at, start_date, end_date):
            continue
        result.append(guest)
    return result


def _guest_sort_key(field: str) -> Callable[[GuestRead], object]:
    if field == "marketer":
        return lambda guest: guest.marketer_name
    if field == "house":
        return lambda guest: guest.house_address
    if field == "view_date":
        return lambda guest: guest.view_date or EPOCH
    if field == "status":
        return lambda guest: guest.status.label
    return lambda guest: getattr(guest, field)


def sort_guests(
    guests: Sequence[GuestRead], field: str = "created_at", direction: str = DESC
) -> List[GuestRead]:
    """Sort guests by ``field``; unknown fields fall back to ``created_at``."""
    if field not in GUEST_SORT_FIELDS:
        field = "created_at"
    return _sorted(guests, _guest_sort_key(field), direction)


def apply_guest_view(
    guests: Sequence[GuestRead],
    query: Optional[str] = None,
    filters: Optional[GuestFilters] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort: Optional[SortState] = None,
) -> List[GuestRead]:
    """Search, filter and sort in the order the guest screen applies them."""
    sort = sort or SortState()
    narrowed = filter_guests(search_guests(guests, query), filters, start_date, end_date)
    return sort_guests(narrowed, sort.field, sort.direction)


# ---------------------------------------------------------------------------
# Accounts and houses
# ---------------------------------------------------------------------------

def search_accounts(accounts: Sequence[AccountRead], query: Optional[str]) -> List[AccountRead]:
    needle = _normalise_query(query)
    if not needle:
        return list(accounts)
    return [
        account
        for account in accounts
        if _matches(
            needle, (account.full_name, account.phone_number, account.role.label, account.role.value)
        )
    ]


def sort_accounts(
    accounts: Sequence[AccountRead], field: str = "id", direction: str = ASC
) -> List[AccountRead]:
    if field not in ACCOUNT_SORT_FIELDS:
        field = "id"
    if field == "role":
        return _sorted(accounts, lambda account: account.role.label, direction)
    return _sorted(accounts, lambda account: getattr(account, field), direction)


def search_houses(houses: Sequence[HouseRead], query: Optional[str]) -> List[HouseRead]:
    needle = _normalise_query(query)
    if not needle:
        return list(houses)
    return [house for house in houses if _matches(needle, (house.address, house.manager_name))]


def sort_houses(houses: Sequence[HouseRead], field: str = "id", direction: str = ASC) -> List[HouseRead]:
    if field not in HOUSE_SORT_FIELDS:
        field = "id"
    if field == "manager":
        return _sorted(houses, lambda house: house.manager_name or "", direction)
    return _sorted(houses, lambda house: getattr(house, field), direction)
