"""
Spreadsheet export of the guest list and of the statistics tables.

Workbooks are built in memory with pandas and the openpyxl engine and
returned as bytes together with a download filename.  Column headers,
sheet names and dates use the Vietnamese display format staff expect
(``DD/MM/YYYY HH:mm``).
"""

import logging
from datetime import date, datetime
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl.utils import get_column_letter

from house_leads_api.app.core.enums import GuestStatus, Role
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.schemas.common import DataResult
from house_leads_api.app.schemas.guest import GuestFilters, GuestRead
from house_leads_api.app.schemas.statistics import PersonStatistics, StatisticsReport
from house_leads_api.app.services.filtering import SortState, apply_guest_view
from house_leads_api.app.services.guest_service import GuestService
from house_leads_api.app.services.statistics_service import StatisticsService

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

GUEST_SHEET = "Danh sách khách hàng"
GUEST_COLUMNS = [
    "STT",
    "Tên khách hàng",
    "Số điện thoại",
    "Marketing",
    "Nhà",
    "Ngày xem",
    "Trạng thái",
    "Ghi chú Admin",
    "Ghi chú Quản lý",
    "Ngày tạo",
    "Ngày cập nhật",
]
GUEST_WIDTHS = [5, 20, 15, 20, 30, 18, 15, 30, 30, 18, 18]

MARKETER_SHEET = "Thống kê Marketing"
MANAGER_SHEET = "Thống kê Quản lý"
STATISTICS_WIDTHS = [5, 25, 10, 10, 15, 15, 12, 10]


def format_datetime(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def guest_export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Danh_sach_khach_hang_{now.strftime('%d-%m-%Y_%H-%M')}.xlsx"


def statistics_export_filename(start_date: date, end_date: date) -> str:
    return (
        f"Thong_ke_khach_hang_{start_date.strftime('%d-%m-%Y')}"
        f"_den_{end_date.strftime('%d-%m-%Y')}.xlsx"
    )


def _set_widths(worksheet, widths: Sequence[int]) -> None:
    for index, width in enumerate(widths, start=1):
        worksheet.column_dimensions[get_column_letter(index)].width = width


def guests_frame(guests: Sequence[GuestRead]) -> pd.DataFrame:
    rows = [
        [
            index,
            guest.guest_name,
            guest.guest_phone_number,
            guest.marketer_name,
            guest.house_address,
            format_datetime(guest.view_date),
            guest.status.label,
            guest.admin_note or "",
            guest.manager_note or "",
            format_datetime(guest.created_at),
            format_datetime(guest.updated_at),
        ]
        for index, guest in enumerate(guests, start=1)
    ]
    return pd.DataFrame(rows, columns=GUEST_COLUMNS)


def statistics_frame(rows: Sequence[PersonStatistics], name_header: str) -> pd.DataFrame:
    columns = ["STT", name_header] + [status.label for status in GuestStatus] + ["Tổng"]
    data = [
        [index, row.name] + [getattr(row, status.value) for status in GuestStatus] + [row.total]
        for index, row in enumerate(rows, start=1)
    ]
    return pd.DataFrame(data, columns=columns)


def guests_workbook(guests: Sequence[GuestRead]) -> bytes:
    """Write the guest list to a single-sheet workbook."""
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        guests_frame(guests).to_excel(writer, sheet_name=GUEST_SHEET, index=False)
        _set_widths(writer.sheets[GUEST_SHEET], GUEST_WIDTHS)
    return output.getvalue()


def statistics_sheets(report: StatisticsReport, role: Role) -> List[Tuple[str, pd.DataFrame]]:
    """Sheets visible to ``role``: marketers for admin/marketing, managers for admin/manager."""
    sheets = []
    if role in (Role.ADMIN, Role.MARKETING):
        sheets.append((MARKETER_SHEET, statistics_frame(report.marketers, "Nhân viên Marketing")))
    if role in (Role.ADMIN, Role.MANAGER):
        sheets.append((MANAGER_SHEET, statistics_frame(report.managers, "Quản lý")))
    return sheets


def statistics_workbook(report: StatisticsReport, role: Role) -> bytes:
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        for name, frame in statistics_sheets(report, role):
            frame.to_excel(writer, sheet_name=name, index=False)
            _set_widths(writer.sheets[name], STATISTICS_WIDTHS)
    return output.getvalue()


class ExportService:
    """Build downloadable workbooks for the current caller."""

    @classmethod
    async def export_guests(
        cls,
        caller: CallerContext,
        query: Optional[str] = None,
        filters: Optional[GuestFilters] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        sort: Optional[SortState] = None,
    ) -> DataResult:
        """Export the guest list exactly as the list screen shows it.

        ``data`` is a ``(filename, content)`` tuple on success.
        """
        visible = await GuestService.list_guests(caller)
        if not visible.ok:
            return visible
        guests = apply_guest_view(visible.data, query, filters, start_date, end_date, sort)
        content = guests_workbook(guests)
        filename = guest_export_filename()
        logger.info("Account %s exported %d guests", caller.id, len(guests))
        return DataResult(data=(filename, content), message="Xuất dữ liệu thành công")

    @classmethod
    async def export_statistics(
        cls,
        caller: CallerContext,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        preset: Optional[str] = None,
    ) -> DataResult:
        result = await StatisticsService.guest_statistics(caller, start_date, end_date, preset)
        if not result.ok:
            return result
        report: StatisticsReport = result.data
        content = statistics_workbook(report, caller.role)
        start = report.start_date or report.end_date or date.today()
        end = report.end_date or date.today()
        filename = statistics_export_filename(start, end)
        logger.info("Account %s exported statistics %s", caller.id, filename)
        return DataResult(data=(filename, content), message="Xuất thống kê thành công")
