"""
Statistics endpoints for API v1.

Both routes aggregate the caller-visible guests inside a creation-date
window.  ``preset`` selects one of the screen's quick ranges
(``today``, ``yesterday``, ``thisWeek``, ``lastWeek``, ``thisMonth``,
``lastMonth``) and overrides explicit dates.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response

from house_leads_api.app.api.v1.responses import envelope_response
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import get_current_account
from house_leads_api.app.services.export_service import XLSX_MEDIA_TYPE, ExportService
from house_leads_api.app.services.statistics_service import StatisticsService

router = APIRouter()


@router.get("/guests")
async def guest_statistics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    preset: Optional[str] = Query(None),
    caller: CallerContext = Depends(get_current_account),
) -> JSONResponse:
    """Per-marketer, per-manager and per-day counts plus chart series."""
    try:
        result = await StatisticsService.guest_statistics(caller, start_date, end_date, preset)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return envelope_response(result)


@router.get("/guests/export")
async def export_guest_statistics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    preset: Optional[str] = Query(None),
    caller: CallerContext = Depends(get_current_account),
):
    """Download the statistics tables visible to the caller's role as ``.xlsx``."""
    try:
        result = await ExportService.export_statistics(caller, start_date, end_date, preset)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    if not result.ok:
        return envelope_response(result)
    filename, content = result.data
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
