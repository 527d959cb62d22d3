"""
Guest endpoints for API v1.

The list route returns the caller-visible guests after search,
filters and sorting are applied; the export route produces the same
rows as an ``.xlsx`` download.  ``/guests/changes`` is a websocket that
forwards a short notice for every committed guest write so that open
screens can re-fetch.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse, Response

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.enums import GuestStatus
from house_leads_api.app.core.events import ChangeEvent, change_feed
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account, resolve_token
from house_leads_api.app.schemas.common import DataResult, ErrorKind
from house_leads_api.app.schemas.guest import GuestCreate, GuestFilters, GuestUpdate
from house_leads_api.app.services.export_service import XLSX_MEDIA_TYPE, ExportService
from house_leads_api.app.services.filtering import SortState, apply_guest_view
from house_leads_api.app.services.guest_service import GuestService

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class GuestView:
    query: Optional[str]
    filters: GuestFilters
    start_date: Optional[date]
    end_date: Optional[date]
    sort: SortState
    problem: Optional[str] = None


def guest_view_params(
    q: Optional[str] = Query(None, description="Search in name, phone, house address and marketer"),
    marketer_id: Optional[int] = Query(None),
    house_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status", description="Status code or label"),
    view_date_from: Optional[date] = Query(None),
    view_date_to: Optional[date] = Query(None),
    start_date: Optional[date] = Query(None, description="created_at lower bound (day)"),
    end_date: Optional[date] = Query(None, description="created_at upper bound (day)"),
    sort_by: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
) -> GuestView:
    problem = None
    parsed_status = None
    if status_filter:
        parsed_status = GuestStatus.parse(status_filter)
        if parsed_status is None:
            problem = "Trạng thái không hợp lệ"
    filters = GuestFilters(
        marketer_id=marketer_id,
        house_id=house_id,
        status=parsed_status,
        view_date_from=view_date_from,
        view_date_to=view_date_to,
    )
    return GuestView(q, filters, start_date, end_date, SortState(sort_by, order), problem)


@router.get("/")
async def list_guests(
    view: GuestView = Depends(guest_view_params),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """List the guests visible to the caller.

    - **q**: case-insensitive search.
    - **marketer_id**, **house_id**, **status**: equality filters.
    - **view_date_from**, **view_date_to**: view-date range (days).
    - **start_date**, **end_date**: creation-date window (days).
    - **sort_by**: `guest_name`, `guest_phone_number`, `marketer`, `house`,
      `view_date`, `status`, `created_at`, `updated_at`; **order**: `asc`/`desc`.
    """
    if view.problem:
        return envelope_response(DataResult.failure(view.problem, ErrorKind.VALIDATION, data=[]))
    result = await GuestService.list_guests(caller)
    if not result.ok:
        return envelope_response(result)
    guests = apply_guest_view(
        result.data, view.query, view.filters, view.start_date, view.end_date, view.sort
    )
    return envelope_response(DataResult(data=guests, message=result.message))


@router.get("/status-options")
async def guest_status_options(caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(
        DataResult(data=GuestService.status_options(), message="Lấy danh sách trạng thái thành công")
    )


@router.get("/export")
async def export_guests(
    view: GuestView = Depends(guest_view_params),
    caller: CallerContext = Depends(get_current_account),
):
    """Download the filtered guest list as an Excel workbook."""
    if view.problem:
        return envelope_response(DataResult.failure(view.problem, ErrorKind.VALIDATION))
    result = await ExportService.export_guests(
        caller, view.query, view.filters, view.start_date, view.end_date, view.sort
    )
    if not result.ok:
        return envelope_response(result)
    filename, content = result.data
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/changes")
async def guest_changes(websocket: WebSocket, token: Optional[str] = Query(None)) -> None:
    """Push ``{table, eventType, id, commit_timestamp}`` for every guest write.

    The token is passed as a query parameter because browsers cannot set
    headers on websocket requests.  Row contents are not forwarded;
    clients re-fetch their own visible list.
    """
    caller = resolve_token(token)
    if caller is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[dict]" = asyncio.Queue()

    def forward(event: ChangeEvent) -> None:
        row = event.new or event.old or {}
        notice = {
            "table": event.table,
            "eventType": event.event_type,
            "id": row.get("id"),
            "commit_timestamp": event.commit_timestamp,
        }
        loop.call_soon_threadsafe(queue.put_nowait, notice)

    unsubscribe = change_feed.subscribe("Guest", forward)
    logger.debug("Account %s subscribed to guest changes", caller.id)
    disconnected = None
    try:
        await websocket.accept()
        disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
        while not disconnected.done():
            notice = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({notice, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if notice in done:
                await websocket.send_json(notice.result())
            else:
                notice.cancel()
    except WebSocketDisconnect:
        pass
    finally:
        if disconnected is not None:
            disconnected.cancel()
        unsubscribe()
        logger.debug("Account %s unsubscribed from guest changes", caller.id)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_guest(
    guest: GuestCreate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """Create a guest, or close the existing guest with the same phone number."""
    result = await GuestService.create_guest(guest, caller)
    return envelope_response(result, status.HTTP_201_CREATED)


@router.get("/{guest_id}")
async def get_guest(guest_id: int, caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(await GuestService.get_guest(guest_id, caller))


@router.put("/{guest_id}")
async def update_guest(
    guest_id: int,
    updates: GuestUpdate,
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    return envelope_response(await GuestService.update_guest(guest_id, updates, caller))


@router.delete("/{guest_id}")
async def delete_guest(guest_id: int, caller: CallerContext = Depends(get_current_account)) -> JSONResponse:
    return envelope_response(await GuestService.delete_guest(guest_id, caller))
