"""
Account endpoints for API v1.

Every authenticated account may list accounts and read the id → name
lookup maps used by dropdowns.  Creating, editing and deleting
accounts is limited to administrators; the check lives in
``AccountService`` so the response is the usual envelope with 403.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account
from house_leads_api.app.schemas.account import AccountCreate, AccountUpdate
from house_leads_api.app.schemas.common import DataResult
from house_leads_api.app.services.account_service import AccountService
from house_leads_api.app.services.filtering import search_accounts, sort_accounts

router = APIRouter()


@router.get("/")
async def list_accounts(
    q: Optional[str] = Query(None, description="Search in name, phone and role"),
    sort_by: str = Query("id"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """List accounts with optional search and sorting.

    - **q**: case-insensitive search over full name, phone number and role.
    - **sort_by**: `id`, `full_name`, `phone_number`, `role`, `created_at`.
    - **order**: `asc` or `desc`.
    """
    result = await AccountService.list_accounts()
    if not result.ok:
        return envelope_response(result)
    accounts = sort_accounts(search_accounts(result.data, q), sort_by, order)
    return envelope_response(DataResult(data=accounts, message=result.message))


@router.get("/name-map")
async def account_name_map(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(await AccountService.name_map())


@router.get("/managers")
async def manager_name_map(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(await AccountService.name_map(Role.MANAGER))


@router.get("/marketers")
async def marketer_name_map(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(await AccountService.name_map(Role.MARKETING))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_account(
    account: AccountCreate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """Create an account (administrators only)."""
    result = await AccountService.create_account(account, caller)
    return envelope_response(result, status.HTTP_201_CREATED)


@router.put("/{account_id}")
async def update_account(
    account_id: int,
    updates: AccountUpdate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await AccountService.update_account(account_id, updates, caller))


@router.delete("/{account_id}")
async def delete_account(
    account_id: int,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await AccountService.delete_account(account_id, caller))
