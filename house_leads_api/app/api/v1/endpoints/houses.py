"""
House endpoints for API v1.

Managers only ever see their own houses; marketing staff and
administrators see all of them (marketing needs the full list to
attach new guests to a house).  Mutations are for administrators.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account
from house_leads_api.app.schemas.common import DataResult
from house_leads_api.app.schemas.house import HouseCreate, HouseUpdate
from house_leads_api.app.services.filtering import search_houses, sort_houses
from house_leads_api.app.services.house_service import HouseService

router = APIRouter()


def _scope(caller: CallerContext, manager_id: Optional[int]) -> Optional[int]:
    """Managers are always restricted to their own houses."""
    if caller.role == Role.MANAGER:
        return caller.id
    return manager_id


@router.get("/")
async def list_houses(
    q: Optional[str] = Query(None, description="Search in address and manager name"),
    manager_id: Optional[int] = Query(None),
    sort_by: str = Query("id"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """List houses.

    - **q**: case-insensitive search over address and manager name.
    - **sort_by**: `id`, `address`, `manager`, `created_at`.
    """
    result = await HouseService.list_houses(_scope(caller, manager_id))
    if not result.ok:
        return envelope_response(result)
    houses = sort_houses(search_houses(result.data, q), sort_by, order)
    return envelope_response(DataResult(data=houses, message=result.message))


@router.get("/address-map")
async def house_address_map(
    manager_id: Optional[int] = Query(None),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await HouseService.address_map(_scope(caller, manager_id)))


@router.get("/with-managers")
async def houses_with_managers(
    manager_id: Optional[int] = Query(None),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await HouseService.houses_with_managers_map(_scope(caller, manager_id)))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_house(
    house: HouseCreate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    result = await HouseService.create_house(house, caller)
    return envelope_response(result, status.HTTP_201_CREATED)


@router.put("/{house_id}")
async def update_house(
    house_id: int,
    updates: HouseUpdate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await HouseService.update_house(house_id, updates, caller))


@router.delete("/{house_id}")
async def delete_house(
    house_id: int,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """Delete a house.  Houses that still have guests cannot be deleted."""
    return envelope_response(await HouseService.delete_house(house_id, caller))
