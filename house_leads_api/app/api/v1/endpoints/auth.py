"""
Authentication endpoints for API v1.

Login is phone-number only: a registered phone number receives a
bearer token for that account.  Logging out is a client-side action
(the client drops its stored token), so there is no logout route.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account
from house_leads_api.app.schemas.account import AccountCreate, LoginRequest
from house_leads_api.app.schemas.common import DataResult, ErrorKind
from house_leads_api.app.services.account_service import AccountService

router = APIRouter()


@router.post("/login")
async def login(credentials: LoginRequest) -> JSONResponse:
    """Exchange a registered phone number for a bearer token."""
    return envelope_response(await AccountService.login(credentials.phone_number))


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(account: AccountCreate) -> JSONResponse:
    """Public registration with a new phone number."""
    result = await AccountService.signup(account)
    return envelope_response(result, status.HTTP_201_CREATED)


@router.get("/me")
async def read_me(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    account = await AccountService.get_account_by_id(caller.id)
    if account is None:
        return envelope_response(DataResult.failure("Không tìm thấy tài khoản", ErrorKind.NOT_FOUND))
    return envelope_response(DataResult(data=account, message="Lấy thông tin tài khoản thành công"))
