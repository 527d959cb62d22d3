"""
Information endpoints for API v1.

``/info/navigation`` returns the menu entries the caller may open.
Every account gets the guest screen; administrators also get the
account and house screens.  Requests without a valid token are
rejected with 401 by ``get_current_account``, which acts as the login
gate for the whole back-office.
"""

from typing import Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.config import settings
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account
from house_leads_api.app.schemas.common import DataResult

router = APIRouter()

GUEST_SCREEN = {"label": "Quản lý khách hàng", "path": "/quan-ly-khach"}
ADMIN_SCREENS = [
    {"label": "Quản lý tài khoản", "path": "/quan-ly-tai-khoan"},
    {"label": "Quản lý nhà", "path": "/quan-ly-nha"},
]


def navigation_for(caller: CallerContext) -> List[Dict[str, str]]:
    items = [dict(GUEST_SCREEN)]
    if caller.role == Role.ADMIN:
        items += [dict(screen) for screen in ADMIN_SCREENS]
    return items


@router.get("/")
async def get_info() -> Dict[str, str]:
    """Public service name and version."""
    return {"name": settings.project_name, "version": settings.api_version}


@router.get("/navigation")
async def get_navigation(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(
        DataResult(
            data={
                "account": {
                    "id": caller.id,
                    "full_name": caller.full_name,
                    "role": caller.role.value,
                    "role_label": caller.role.label,
                },
                "items": navigation_for(caller),
            },
            message="Lấy menu thành công",
        )
    )
