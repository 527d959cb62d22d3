from datetime import date, datetime
from io import BytesIO

import pandas as pd
from openpyxl import load_workbook

from conftest import insert_guest, run

from house_leads_api.app.core.enums import GuestStatus, Role
from house_leads_api.app.schemas.guest import GuestFilters
from house_leads_api.app.schemas.statistics import PersonStatistics, StatisticsReport
from house_leads_api.app.services.export_service import (
    GUEST_COLUMNS,
    GUEST_SHEET,
    MANAGER_SHEET,
    MARKETER_SHEET,
    ExportService,
    guest_export_filename,
    statistics_export_filename,
    statistics_workbook,
)


def test_filenames():
    assert guest_export_filename(datetime(2026, 10, 19, 8, 5)) == "Danh_sach_khach_hang_19-10-2026_08-05.xlsx"
    assert (
        statistics_export_filename(date(2026, 10, 12), date(2026, 10, 18))
        == "Thong_ke_khach_hang_12-10-2026_den_18-10-2026.xlsx"
    )


def test_guest_export_matches_visible_filtered_rows(team):
    view = datetime(2026, 10, 20, 9, 30)
    insert_guest(team.h1, "Khach A", "0911000001", team.lan.id, GuestStatus.CLOSED,
                 created_at=datetime(2026, 10, 1, 8, 0), view_date=view)
    insert_guest(team.h1, "Khach B", "0911000002", team.lan.id, GuestStatus.NEW,
                 created_at=datetime(2026, 10, 2, 8, 0))
    insert_guest(team.h3, "Khach C", "0911000003", team.hoa.id, GuestStatus.CLOSED)

    result = run(ExportService.export_guests(team.lan, filters=GuestFilters(status=GuestStatus.CLOSED)))
    assert result.ok
    filename, content = result.data
    assert filename.startswith("Danh_sach_khach_hang_") and filename.endswith(".xlsx")

    sheets = pd.read_excel(BytesIO(content), sheet_name=None, dtype=str)
    assert list(sheets) == [GUEST_SHEET]
    frame = sheets[GUEST_SHEET]
    assert list(frame.columns) == GUEST_COLUMNS
    assert len(frame) == 1
    row = frame.iloc[0]
    assert row["Tên khách hàng"] == "Khach A"
    assert row["Marketing"] == "Lan Marketing"
    assert row["Nhà"] == "12 Le Loi"
    assert row["Ngày xem"] == "20/10/2026 09:30"
    assert row["Trạng thái"] == "Đã chốt"
    assert row["Ngày tạo"] == "01/10/2026 08:00"

    worksheet = load_workbook(BytesIO(content))[GUEST_SHEET]
    assert worksheet.column_dimensions["A"].width == 5
    assert worksheet.column_dimensions["E"].width == 30
    assert worksheet.column_dimensions["K"].width == 18


def report():
    return StatisticsReport(
        start_date=date(2026, 10, 12),
        end_date=date(2026, 10, 18),
        marketers=[PersonStatistics(id=7, name="Lan", closed=2, new=1, total=3)],
        managers=[PersonStatistics(id=9, name="Mai", in_progress=1, total=1)],
    )


def test_statistics_sheets_depend_on_role():
    assert load_workbook(BytesIO(statistics_workbook(report(), Role.ADMIN))).sheetnames == [
        MARKETER_SHEET,
        MANAGER_SHEET,
    ]
    assert load_workbook(BytesIO(statistics_workbook(report(), Role.MARKETING))).sheetnames == [MARKETER_SHEET]
    assert load_workbook(BytesIO(statistics_workbook(report(), Role.MANAGER))).sheetnames == [MANAGER_SHEET]


def test_statistics_sheet_layout():
    content = statistics_workbook(report(), Role.ADMIN)
    marketers = pd.read_excel(BytesIO(content), sheet_name=MARKETER_SHEET)
    assert list(marketers.columns) == [
        "STT", "Nhân viên Marketing", "Mới", "Đã chốt", "Chuẩn bị xem", "Đang chăm sóc", "Không chốt", "Tổng",
    ]
    assert marketers.iloc[0].tolist() == [1, "Lan", 1, 2, 0, 0, 0, 3]
    managers = pd.read_excel(BytesIO(content), sheet_name=MANAGER_SHEET)
    assert list(managers.columns)[1] == "Quản lý"
    widths = [load_workbook(BytesIO(content))[MANAGER_SHEET].column_dimensions[c].width for c in "ABCDEFGH"]
    assert widths == [5, 25, 10, 10, 15, 15, 12, 10]


def test_statistics_export_filename_uses_window(team):
    result = run(ExportService.export_statistics(team.mai, date(2026, 10, 12), date(2026, 10, 18)))
    assert result.ok
    filename, content = result.data
    assert filename == "Thong_ke_khach_hang_12-10-2026_den_18-10-2026.xlsx"
    assert load_workbook(BytesIO(content)).sheetnames == [MANAGER_SHEET]
