import pytest

from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.permissions import Action, CallerContext, OwnerKeys, can_access

ADMIN = CallerContext(1, Role.ADMIN)
MARKETER = CallerContext(7, Role.MARKETING)
MANAGER = CallerContext(9, Role.MANAGER)


@pytest.mark.parametrize("action", list(Action))
def test_admin_may_do_everything(action):
    assert can_access(ADMIN, action, OwnerKeys())


@pytest.mark.parametrize("action", list(Action))
def test_missing_caller_is_refused(action):
    assert not can_access(None, action, OwnerKeys(marketer_id=7, manager_id=9))


@pytest.mark.parametrize("action", [Action.READ_GUEST, Action.UPDATE_GUEST, Action.DELETE_GUEST])
def test_marketer_owns_guests_through_marketer_id(action):
    assert can_access(MARKETER, action, OwnerKeys(marketer_id=7, manager_id=99))
    assert not can_access(MARKETER, action, OwnerKeys(marketer_id=8, manager_id=9))
    assert not can_access(MARKETER, action, OwnerKeys(marketer_id=None))


@pytest.mark.parametrize("action", [Action.READ_GUEST, Action.UPDATE_GUEST, Action.DELETE_GUEST])
def test_manager_owns_guests_through_house_manager(action):
    assert can_access(MANAGER, action, OwnerKeys(marketer_id=7, manager_id=9))
    assert not can_access(MANAGER, action, OwnerKeys(marketer_id=9, manager_id=10))
    assert not can_access(MANAGER, action, OwnerKeys(manager_id=None))


def test_owned_actions_without_keys_are_refused():
    assert not can_access(MARKETER, Action.UPDATE_GUEST)
    assert not can_access(MANAGER, Action.DELETE_GUEST)


@pytest.mark.parametrize("caller", [MARKETER, MANAGER])
def test_admin_only_actions(caller):
    for action in (Action.REASSIGN_MARKETER, Action.MANAGE_HOUSES, Action.MANAGE_ACCOUNTS):
        assert not can_access(caller, action)


@pytest.mark.parametrize("caller", [MARKETER, MANAGER])
def test_without_owner_keys_only_guest_creation_is_open(caller):
    assert [action for action in Action if can_access(caller, action)] == [Action.CREATE_GUEST]
