"""
Result envelopes shared by every service.

Services never raise for expected outcomes.  Reads and writes that
return a record produce a ``DataResult`` (``{data, message}``);
deletes produce an ``ActionResult`` (``{success, message}``).  The
``error`` kind is kept off the wire and only tells the HTTP layer which
status code to use.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    PERMISSION = "permission"
    CONFLICT = "conflict"
    STORE = "store"


class DataResult(BaseModel):
    data: Any = None
    message: str = ""
    error: Optional[ErrorKind] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str, error: ErrorKind, data: Any = None) -> "DataResult":
        return cls(data=data, message=message, error=error)


class ActionResult(BaseModel):
    success: bool
    message: str = ""
    error: Optional[ErrorKind] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.success

    @classmethod
    def failure(cls, message: str, error: ErrorKind) -> "ActionResult":
        return cls(success=False, message=message, error=error)
