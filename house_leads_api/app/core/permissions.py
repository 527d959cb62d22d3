"""
Single authorization predicate for every read and mutation path.

Services never compare roles and ids themselves; they build the
ownership keys of the target row and ask ``can_access``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .enums import Role


class Action(str, Enum):
    READ_GUEST = "read_guest"
    CREATE_GUEST = "create_guest"
    UPDATE_GUEST = "update_guest"
    DELETE_GUEST = "delete_guest"
    REASSIGN_MARKETER = "reassign_marketer"
    MANAGE_HOUSES = "manage_houses"
    MANAGE_ACCOUNTS = "manage_accounts"


@dataclass(frozen=True)
class CallerContext:
    """The authenticated account on whose behalf a service call runs."""

    id: int
    role: Role
    full_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class OwnerKeys:
    """Ownership of a guest row: its marketer and the manager of its house."""

    marketer_id: Optional[int] = None
    manager_id: Optional[int] = None


_OWNED_GUEST_ACTIONS = {Action.READ_GUEST, Action.UPDATE_GUEST, Action.DELETE_GUEST}
_ADMIN_ONLY_ACTIONS = {Action.REASSIGN_MARKETER, Action.MANAGE_HOUSES, Action.MANAGE_ACCOUNTS}
_OPEN_ACTIONS = {Action.CREATE_GUEST}


def can_access(
    caller: Optional[CallerContext],
    action: Action,
    owner_keys: Optional[OwnerKeys] = None,
) -> bool:
    """Return whether ``caller`` may perform ``action`` on a row owned by ``owner_keys``.

    Admin may do everything.  Marketing owns guests through
    ``marketer_id``, managers through the manager of the guest's house.
    Owned actions without ``owner_keys`` are refused.
    """
    if caller is None:
        return False
    if caller.role == Role.ADMIN:
        return True
    if action in _ADMIN_ONLY_ACTIONS:
        return False
    if action in _OPEN_ACTIONS:
        return True
    if action in _OWNED_GUEST_ACTIONS:
        if owner_keys is None:
            return False
        if caller.role == Role.MARKETING:
            return owner_keys.marketer_id is not None and owner_keys.marketer_id == caller.id
        if caller.role == Role.MANAGER:
            return owner_keys.manager_id is not None and owner_keys.manager_id == caller.id
    return False
