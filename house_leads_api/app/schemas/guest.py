"""
Pydantic models for guests (leads).

``GuestCreate`` is deliberately permissive: the required-field check
for name, phone and house happens in ``GuestService`` so that a missing
field produces the usual ``{data, message}`` envelope instead of a
schema error.  ``GuestRead`` embeds the marketer and the house (with
its manager) the way the list screen displays them.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from house_leads_api.app.core.enums import GuestStatus


def _coerce_status(value):
    if value is None or value == "":
        return None
    parsed = GuestStatus.parse(value)
    return parsed if parsed is not None else value


class PersonRef(BaseModel):
    id: int
    full_name: str
    phone_number: Optional[str] = None


class HouseRef(BaseModel):
    id: int
    address: str
    manager: Optional[PersonRef] = None


class GuestCreate(BaseModel):
    marketer_id: Optional[int] = Field(None, examples=[7])
    house_id: Optional[int] = Field(None, examples=[3])
    guest_name: Optional[str] = Field(None, examples=["Tran B"])
    guest_phone_number: Optional[str] = Field(None, examples=["0909999999"])
    view_date: Optional[datetime] = Field(None, examples=["2026-10-20T09:00:00"])
    status: GuestStatus = Field(GuestStatus.NEW, examples=["new"])
    admin_note: Optional[str] = None
    manager_note: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_label(cls, value):
        coerced = _coerce_status(value)
        return GuestStatus.NEW if coerced is None else coerced


class GuestUpdate(BaseModel):
    """Schema for updating a guest.

    All fields are optional; only provided fields will be updated.
    """

    marketer_id: Optional[int] = None
    house_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_phone_number: Optional[str] = None
    view_date: Optional[datetime] = None
    status: Optional[GuestStatus] = None
    admin_note: Optional[str] = None
    manager_note: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_label(cls, value):
        return _coerce_status(value)


class GuestRead(BaseModel):
    id: int
    marketer_id: Optional[int] = None
    house_id: Optional[int] = None
    guest_name: str
    guest_phone_number: str
    view_date: Optional[datetime] = None
    status: GuestStatus
    status_label: str = ""
    admin_note: Optional[str] = None
    manager_note: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    marketer: Optional[PersonRef] = None
    house: Optional[HouseRef] = None

    model_config = {
        "from_attributes": True,
    }

    @property
    def marketer_name(self) -> str:
        return self.marketer.full_name if self.marketer else ""

    @property
    def house_address(self) -> str:
        return self.house.address if self.house else ""

    @property
    def manager(self) -> Optional[PersonRef]:
        return self.house.manager if self.house else None


class GuestFilters(BaseModel):
    """Equality and view-date filters of the guest list screen."""

    marketer_id: Optional[int] = None
    house_id: Optional[int] = None
    status: Optional[GuestStatus] = None
    view_date_from: Optional[date] = None
    view_date_to: Optional[date] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_label(cls, value):
        return _coerce_status(value)

    def is_active(self) -> bool:
        return any(value is not None for value in self.model_dump().values())
