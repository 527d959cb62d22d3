"""
Business logic for guests (leads).

Visibility follows the caller's role: marketing staff see the guests
they brought in, managers see the guests of the houses they manage,
administrators see everything.  Every mutation re-reads the target's
ownership keys and asks ``can_access`` before writing.

Creating a guest whose phone number is already on file does not add a
second row: the existing guest is marked as closed ("Đã chốt") and
keeps its original marketer and house, so the credit stays with the
marketer who first brought the lead in.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from house_leads_api.app.core.db import get_connection, now_iso
from house_leads_api.app.core.enums import GuestStatus, Role, status_options
from house_leads_api.app.core.events import DELETE, INSERT, UPDATE, ChangeEvent, change_feed
from house_leads_api.app.core.permissions import Action, CallerContext, OwnerKeys, can_access
from house_leads_api.app.schemas.common import ActionResult, DataResult, ErrorKind
from house_leads_api.app.schemas.guest import (
    GuestCreate,
    GuestRead,
    GuestUpdate,
    HouseRef,
    PersonRef,
)
from house_leads_api.app.services.house_service import HouseService

logger = logging.getLogger(__name__)

MSG_REQUIRED = "Vui lòng điền đầy đủ thông tin"
MSG_NOT_FOUND = "Không tìm thấy khách hàng"
MSG_NO_HOUSES = "Không tìm thấy nhà nào"
MSG_NO_UPDATE_PERMISSION = "Không có quyền cập nhật khách hàng này"
MSG_NO_DELETE_PERMISSION = "Không có quyền xóa khách hàng này"
MSG_NO_VIEW_PERMISSION = "Không có quyền xem khách hàng này"

_SELECT_GUESTS = """
    SELECT g.*,
           m.full_name AS marketer_full_name,
           m.phone_number AS marketer_phone_number,
           h.address AS house_address,
           h.manager_id AS house_manager_id,
           mg.full_name AS manager_full_name
    FROM Guest g
    LEFT JOIN Account m ON m.id = g.marketer_id
    LEFT JOIN House h ON h.id = g.house_id
    LEFT JOIN Account mg ON mg.id = h.manager_id
"""

_ORDER_NEWEST_FIRST = " ORDER BY g.created_at DESC, g.id DESC"


def _guest_from_row(row) -> GuestRead:
    status = GuestStatus.parse(row["status"]) or GuestStatus.NEW
    marketer = None
    if row["marketer_id"] is not None and row["marketer_full_name"] is not None:
        marketer = PersonRef(
            id=row["marketer_id"],
            full_name=row["marketer_full_name"],
            phone_number=row["marketer_phone_number"],
        )
    house = None
    if row["house_address"] is not None:
        manager = None
        if row["house_manager_id"] is not None and row["manager_full_name"] is not None:
            manager = PersonRef(id=row["house_manager_id"], full_name=row["manager_full_name"])
        house = HouseRef(id=row["house_id"], address=row["house_address"], manager=manager)
    return GuestRead(
        id=row["id"],
        marketer_id=row["marketer_id"],
        house_id=row["house_id"],
        guest_name=row["guest_name"],
        guest_phone_number=row["guest_phone_number"],
        view_date=row["view_date"],
        status=status,
        status_label=status.label,
        admin_note=row["admin_note"],
        manager_note=row["manager_note"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        marketer=marketer,
        house=house,
    )


def _iso(value) -> Optional[str]:
    return value.isoformat(timespec="seconds") if value is not None else None


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class GuestService:
    """Service for the ``Guest`` table."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @classmethod
    async def list_guests(cls, caller: CallerContext) -> DataResult:
        """Return every guest the caller may see, newest first.

        A manager without houses gets an empty list and the message
        "Không tìm thấy nhà nào"; this is not an error.
        """
        house_ids: List[int] = []
        if caller.role == Role.MANAGER:
            try:
                house_ids = await HouseService.house_ids_for_manager(caller.id)
            except sqlite3.Error:
                logger.exception("Error fetching houses of manager %s", caller.id)
                return DataResult.failure("Lỗi khi lấy dữ liệu khách", ErrorKind.STORE)
            if not house_ids:
                return DataResult(data=[], message=MSG_NO_HOUSES)

        conn = get_connection()
        try:
            if caller.role == Role.MARKETING:
                rows = conn.execute(
                    _SELECT_GUESTS + " WHERE g.marketer_id = ?" + _ORDER_NEWEST_FIRST,
                    (caller.id,),
                ).fetchall()
            elif caller.role == Role.MANAGER:
                placeholders = ", ".join("?" for _ in house_ids)
                rows = conn.execute(
                    _SELECT_GUESTS + f" WHERE g.house_id IN ({placeholders})" + _ORDER_NEWEST_FIRST,
                    tuple(house_ids),
                ).fetchall()
            else:
                rows = conn.execute(_SELECT_GUESTS + _ORDER_NEWEST_FIRST).fetchall()
        except sqlite3.Error:
            logger.exception("Error fetching guests for account %s", caller.id)
            return DataResult.failure("Lỗi khi lấy dữ liệu khách", ErrorKind.STORE)
        finally:
            conn.close()

        guests = [_guest_from_row(row) for row in rows]
        message = "Lấy dữ liệu khách thành công" if guests else "Không tìm thấy khách nào"
        return DataResult(data=guests, message=message)

    @classmethod
    async def _fetch(cls, guest_id: int) -> Optional[GuestRead]:
        conn = get_connection()
        try:
            row = conn.execute(_SELECT_GUESTS + " WHERE g.id = ?", (guest_id,)).fetchone()
        finally:
            conn.close()
        return _guest_from_row(row) if row else None

    @classmethod
    async def get_guest(cls, guest_id: int, caller: CallerContext) -> DataResult:
        guest = await cls._fetch(guest_id)
        if guest is None:
            return DataResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        if not can_access(caller, Action.READ_GUEST, cls.owner_keys_of(guest)):
            return DataResult.failure(MSG_NO_VIEW_PERMISSION, ErrorKind.PERMISSION)
        return DataResult(data=guest, message="Lấy dữ liệu khách thành công")

    @classmethod
    async def find_by_phone(cls, phone_number: str) -> Optional[GuestRead]:
        """Look up a guest by exact (trimmed) phone number across the whole table."""
        phone = (phone_number or "").strip()
        if not phone:
            return None
        conn = get_connection()
        try:
            row = conn.execute(
                _SELECT_GUESTS + " WHERE g.guest_phone_number = ? ORDER BY g.id LIMIT 1",
                (phone,),
            ).fetchone()
        finally:
            conn.close()
        return _guest_from_row(row) if row else None

    @staticmethod
    def owner_keys_of(guest: GuestRead) -> OwnerKeys:
        manager = guest.manager
        return OwnerKeys(marketer_id=guest.marketer_id, manager_id=manager.id if manager else None)

    @classmethod
    async def _owner_keys(cls, guest_id: int) -> Optional[OwnerKeys]:
        """Re-read the ownership keys of a stored guest; ``None`` if it does not exist."""
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT g.marketer_id, h.manager_id FROM Guest g "
                "LEFT JOIN House h ON h.id = g.house_id WHERE g.id = ?",
                (guest_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return OwnerKeys(marketer_id=row["marketer_id"], manager_id=row["manager_id"])

    @classmethod
    async def _house_manager(cls, house_id: int) -> Tuple[bool, Optional[int]]:
        """Return ``(exists, manager_id)`` for a house."""
        conn = get_connection()
        try:
            row = conn.execute("SELECT manager_id FROM House WHERE id = ?", (house_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return False, None
        return True, row["manager_id"]

    @classmethod
    async def _is_marketer(cls, account_id: int) -> bool:
        conn = get_connection()
        try:
            row = conn.execute("SELECT role FROM Account WHERE id = ?", (account_id,)).fetchone()
        finally:
            conn.close()
        return row is not None and Role.parse(row["role"]) == Role.MARKETING

    # ------------------------------------------------------------------
    # Create (with duplicate-phone merge)
    # ------------------------------------------------------------------
    @classmethod
    async def create_guest(cls, data: GuestCreate, caller: CallerContext) -> DataResult:
        """Create a guest, or re-engage the existing guest with the same phone number.

        Name, phone and house are required.  When the phone number is
        already on file the existing row becomes "Đã chốt", keeps its
        marketer and house, and takes the new name, view date and notes
        only where they are non-empty.
        """
        if _is_blank(data.guest_name) or _is_blank(data.guest_phone_number) or data.house_id is None:
            return DataResult.failure(MSG_REQUIRED, ErrorKind.VALIDATION)

        existing = await cls.find_by_phone(data.guest_phone_number)
        if existing is not None:
            return await cls._merge_into(existing, data, caller)
        return await cls._insert(data, caller)

    @classmethod
    async def _merge_into(cls, existing: GuestRead, data: GuestCreate, caller: CallerContext) -> DataResult:
        if not can_access(caller, Action.UPDATE_GUEST, cls.owner_keys_of(existing)):
            return DataResult.failure(
                "Khách hàng với số điện thoại này đã tồn tại và bạn không có quyền cập nhật",
                ErrorKind.PERMISSION,
            )
        merge = GuestUpdate(
            status=GuestStatus.CLOSED,
            marketer_id=existing.marketer_id,
            house_id=existing.house_id,
            guest_name=(data.guest_name or "").strip() or existing.guest_name,
            view_date=data.view_date or existing.view_date,
            admin_note=data.admin_note or existing.admin_note,
            manager_note=data.manager_note or existing.manager_note,
        )
        result = await cls.update_guest(existing.id, merge, caller)
        if not result.ok:
            return result
        credited = existing.marketer_name or "nhân viên marketing"
        logger.info(
            "Guest %s re-engaged by account %s; credit stays with marketer %s",
            existing.id,
            caller.id,
            existing.marketer_id,
        )
        return DataResult(
            data=result.data,
            message=(
                "Khách hàng đã tồn tại với số điện thoại này. "
                f'Đã cập nhật trạng thái thành "{GuestStatus.CLOSED.label}" '
                f"và tính KPI cho {credited} ban đầu."
            ),
        )

    @classmethod
    async def _insert(cls, data: GuestCreate, caller: CallerContext) -> DataResult:
        if caller.role == Role.MARKETING:
            marketer_id = caller.id
        elif caller.role == Role.MANAGER:
            marketer_id = None
        else:
            marketer_id = data.marketer_id
            if marketer_id is not None and not await cls._is_marketer(marketer_id):
                return DataResult.failure("Nhân viên marketing không hợp lệ", ErrorKind.VALIDATION)

        exists, manager_id = await cls._house_manager(data.house_id)
        if not exists:
            return DataResult.failure("Không tìm thấy nhà", ErrorKind.VALIDATION)
        if not can_access(caller, Action.CREATE_GUEST) or not can_access(
            caller, Action.READ_GUEST, OwnerKeys(marketer_id=marketer_id, manager_id=manager_id)
        ):
            return DataResult.failure("Không có quyền thêm khách cho nhà này", ErrorKind.PERMISSION)

        timestamp = now_iso()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Guest (marketer_id, house_id, guest_name, guest_phone_number,
                                   view_date, status, admin_note, manager_note,
                                   created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    marketer_id,
                    data.house_id,
                    (data.guest_name or "").strip(),
                    (data.guest_phone_number or "").strip(),
                    _iso(data.view_date),
                    data.status.value,
                    data.admin_note or None,
                    data.manager_note or None,
                    timestamp,
                    timestamp,
                ),
            )
            guest_id = cursor.lastrowid
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error creating guest")
            return DataResult.failure("Không thể thêm khách", ErrorKind.STORE)
        finally:
            conn.close()

        guest = await cls._fetch(guest_id)
        logger.info("Guest %s created by account %s", guest_id, caller.id)
        change_feed.publish(ChangeEvent("Guest", INSERT, new=guest.model_dump(mode="json")))
        return DataResult(data=guest, message="Thêm khách thành công")

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------
    @classmethod
    async def update_guest(cls, guest_id: int, updates: GuestUpdate, caller: CallerContext) -> DataResult:
        """Apply a partial update after the ownership check.

        Only administrators may reassign ``marketer_id``; the field is
        dropped from other callers' updates.  Moving a guest to another
        house is allowed only if the caller would still own it.
        """
        owner = await cls._owner_keys(guest_id)
        if owner is None:
            return DataResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        if not can_access(caller, Action.UPDATE_GUEST, owner):
            return DataResult.failure(MSG_NO_UPDATE_PERMISSION, ErrorKind.PERMISSION)

        changes: Dict[str, Any] = updates.model_dump(exclude_unset=True)
        if not can_access(caller, Action.REASSIGN_MARKETER):
            changes.pop("marketer_id", None)
        if changes.get("status", "") is None:
            changes.pop("status")
        for required in ("guest_name", "guest_phone_number", "house_id"):
            if required in changes and _is_blank(changes[required]):
                return DataResult.failure(MSG_REQUIRED, ErrorKind.VALIDATION)

        new_owner = owner
        if "house_id" in changes:
            exists, manager_id = await cls._house_manager(changes["house_id"])
            if not exists:
                return DataResult.failure("Không tìm thấy nhà", ErrorKind.VALIDATION)
            new_owner = OwnerKeys(marketer_id=owner.marketer_id, manager_id=manager_id)
        if changes.get("marketer_id") is not None and not await cls._is_marketer(changes["marketer_id"]):
            return DataResult.failure("Nhân viên marketing không hợp lệ", ErrorKind.VALIDATION)
        if not can_access(caller, Action.UPDATE_GUEST, new_owner):
            return DataResult.failure(MSG_NO_UPDATE_PERMISSION, ErrorKind.PERMISSION)

        for text_field in ("guest_name", "guest_phone_number"):
            if text_field in changes:
                changes[text_field] = changes[text_field].strip()
        if "status" in changes:
            changes["status"] = GuestStatus(changes["status"]).value
        if "view_date" in changes:
            changes["view_date"] = _iso(changes["view_date"])
        changes["updated_at"] = now_iso()

        before = await cls._fetch(guest_id)
        conn = get_connection()
        try:
            fields = ", ".join(f"{key} = ?" for key in changes)
            conn.execute(f"UPDATE Guest SET {fields} WHERE id = ?", (*changes.values(), guest_id))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error updating guest %s", guest_id)
            return DataResult.failure("Không thể cập nhật", ErrorKind.STORE)
        finally:
            conn.close()

        guest = await cls._fetch(guest_id)
        change_feed.publish(
            ChangeEvent(
                "Guest",
                UPDATE,
                new=guest.model_dump(mode="json"),
                old=before.model_dump(mode="json") if before else None,
            )
        )
        return DataResult(data=guest, message="Cập nhật thành công")

    @classmethod
    async def delete_guest(cls, guest_id: int, caller: CallerContext) -> ActionResult:
        owner = await cls._owner_keys(guest_id)
        if owner is None:
            return ActionResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        if not can_access(caller, Action.DELETE_GUEST, owner):
            return ActionResult.failure(MSG_NO_DELETE_PERMISSION, ErrorKind.PERMISSION)

        before = await cls._fetch(guest_id)
        conn = get_connection()
        try:
            conn.execute("DELETE FROM Guest WHERE id = ?", (guest_id,))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error deleting guest %s", guest_id)
            return ActionResult.failure("Không thể xóa khách", ErrorKind.STORE)
        finally:
            conn.close()

        logger.info("Guest %s deleted by account %s", guest_id, caller.id)
        change_feed.publish(
            ChangeEvent("Guest", DELETE, old=before.model_dump(mode="json") if before else {"id": guest_id})
        )
        return ActionResult(success=True, message="Xóa khách thành công")

    @staticmethod
    def status_options() -> List[Dict[str, str]]:
        return status_options()
