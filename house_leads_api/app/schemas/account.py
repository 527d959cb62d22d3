"""
Pydantic models for staff accounts.

Accounts have no password: the phone number is the login credential.
``role`` accepts either the stored code (``manager``) or the display
label (``Quản lý``); responses carry both.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from house_leads_api.app.core.enums import Role


def _coerce_role(value):
    parsed = Role.parse(value)
    return parsed if parsed is not None else value


class AccountBase(BaseModel):
    full_name: str = Field(..., examples=["Nguyen Van A"])
    phone_number: str = Field(..., examples=["0901234567"])
    role: Role = Field(..., examples=["marketing"])

    @field_validator("role", mode="before")
    @classmethod
    def _role_from_label(cls, value):
        return _coerce_role(value)


class AccountCreate(AccountBase):
    """Schema for signup and for the admin console's create form."""
    pass


class AccountUpdate(BaseModel):
    """Schema for updating an account.

    All fields are optional; only provided fields will be updated.
    """

    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("role", mode="before")
    @classmethod
    def _role_from_label(cls, value):
        if value is None:
            return value
        return _coerce_role(value)


class AccountRead(AccountBase):
    id: int
    role_label: str = ""
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }

    @classmethod
    def from_row(cls, row) -> "AccountRead":
        role = Role.parse(row["role"])
        return cls(
            id=row["id"],
            full_name=row["full_name"],
            phone_number=row["phone_number"],
            role=role,
            role_label=role.label if role else str(row["role"]),
            created_at=row["created_at"],
        )


class LoginRequest(BaseModel):
    phone_number: str = Field(..., examples=["0901234567"])


class LoginPayload(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account: AccountRead
