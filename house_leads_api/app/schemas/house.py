"""
Pydantic models for houses (listings).

Each house belongs to one manager account.  ``HouseRead`` carries the
manager's name so list screens can search and sort by it without a
second lookup.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class HouseBase(BaseModel):
    address: str = Field(..., examples=["12 Le Loi"])
    manager_id: Optional[int] = Field(None, examples=[3])


class HouseCreate(HouseBase):
    """Schema for creating a house."""
    pass


class HouseUpdate(BaseModel):
    """Schema for updating a house.

    All fields are optional; only provided fields will be updated.
    """

    address: Optional[str] = None
    manager_id: Optional[int] = None


class HouseRead(HouseBase):
    id: int
    manager_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }
