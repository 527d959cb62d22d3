"""
Stable codes for account roles and guest statuses.

Codes are what the database stores and what the API accepts; the
Vietnamese labels are what staff see on screen and in exported
spreadsheets.  ``parse`` accepts either form so that older clients
sending labels keep working.
"""

from enum import Enum
from typing import Dict, List, Optional


class Role(str, Enum):
    MANAGER = "manager"
    MARKETING = "marketing"
    ADMIN = "admin"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]

    @classmethod
    def parse(cls, value) -> Optional["Role"]:
        """Resolve a code or a display label to a ``Role``; ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        for role in cls:
            if text == role.value or text == role.label:
                return role
        return None


class GuestStatus(str, Enum):
    NEW = "new"
    CLOSED = "closed"
    VIEWING_SCHEDULED = "viewing_scheduled"
    IN_PROGRESS = "in_progress"
    NOT_CLOSED = "not_closed"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def parse(cls, value) -> Optional["GuestStatus"]:
        """Resolve a code or a display label to a ``GuestStatus``; ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        for status in cls:
            if text == status.value or text == status.label:
                return status
        return None


ROLE_LABELS: Dict[Role, str] = {
    Role.MANAGER: "Quản lý",
    Role.MARKETING: "Marketing",
    Role.ADMIN: "Quản trị viên",
}

STATUS_LABELS: Dict[GuestStatus, str] = {
    GuestStatus.NEW: "Mới",
    GuestStatus.CLOSED: "Đã chốt",
    GuestStatus.VIEWING_SCHEDULED: "Chuẩn bị xem",
    GuestStatus.IN_PROGRESS: "Đang chăm sóc",
    GuestStatus.NOT_CLOSED: "Không chốt",
}

# Badge colours used by the guest screens.
STATUS_COLORS: Dict[GuestStatus, str] = {
    GuestStatus.NEW: "teal",
    GuestStatus.CLOSED: "green",
    GuestStatus.VIEWING_SCHEDULED: "blue",
    GuestStatus.IN_PROGRESS: "orange",
    GuestStatus.NOT_CLOSED: "red",
}


def status_options() -> List[Dict[str, str]]:
    """All guest statuses in display order, as ``{value, label, color}``."""
    return [
        {"value": status.value, "label": status.label, "color": STATUS_COLORS[status]}
        for status in GuestStatus
    ]
