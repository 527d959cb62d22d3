"""
Business logic for houses.

Every authenticated account may read houses and the address lookup
maps; creating, editing and deleting houses is reserved for
administrators.  A house's manager must be an account with the
manager role.
"""

import logging
import sqlite3
from typing import Dict, List, Optional

from house_leads_api.app.core.db import get_connection, now_iso
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.events import DELETE, INSERT, UPDATE, ChangeEvent, change_feed
from house_leads_api.app.core.permissions import Action, CallerContext, can_access
from house_leads_api.app.schemas.common import ActionResult, DataResult, ErrorKind
from house_leads_api.app.schemas.house import HouseCreate, HouseRead, HouseUpdate

logger = logging.getLogger(__name__)

MSG_NO_PERMISSION = "Không có quyền quản lý nhà"
MSG_NOT_FOUND = "Không tìm thấy nhà"

_SELECT_HOUSES = """
    SELECT h.id, h.address, h.manager_id, h.created_at, a.full_name AS manager_name
    FROM House h
    LEFT JOIN Account a ON a.id = h.manager_id
"""


def _house_from_row(row) -> HouseRead:
    return HouseRead(
        id=row["id"],
        address=row["address"],
        manager_id=row["manager_id"],
        manager_name=row["manager_name"],
        created_at=row["created_at"],
    )


class HouseService:
    """Service for the ``House`` table."""

    @classmethod
    async def list_houses(cls, manager_id: Optional[int] = None) -> DataResult:
        conn = get_connection()
        try:
            if manager_id is None:
                rows = conn.execute(_SELECT_HOUSES + " ORDER BY h.id").fetchall()
            else:
                rows = conn.execute(
                    _SELECT_HOUSES + " WHERE h.manager_id = ? ORDER BY h.id", (manager_id,)
                ).fetchall()
        except sqlite3.Error:
            logger.exception("Error fetching houses")
            return DataResult.failure("Không có nhà nào hoặc lỗi khi lấy dữ liệu", ErrorKind.STORE)
        finally:
            conn.close()
        return DataResult(
            data=[_house_from_row(row) for row in rows],
            message="Danh sách nhà đã được lấy thành công",
        )

    @classmethod
    async def get_house_by_id(cls, house_id: int) -> Optional[HouseRead]:
        conn = get_connection()
        try:
            row = conn.execute(_SELECT_HOUSES + " WHERE h.id = ?", (house_id,)).fetchone()
        finally:
            conn.close()
        return _house_from_row(row) if row else None

    @classmethod
    async def house_ids_for_manager(cls, manager_id: int) -> List[int]:
        """Ids of the houses managed by ``manager_id``."""
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT id FROM House WHERE manager_id = ? ORDER BY id", (manager_id,)
            ).fetchall()
        finally:
            conn.close()
        return [row["id"] for row in rows]

    @classmethod
    async def _check_manager(cls, manager_id: Optional[int]) -> Optional[str]:
        if manager_id is None:
            return "Vui lòng chọn quản lý cho nhà"
        conn = get_connection()
        try:
            row = conn.execute("SELECT role FROM Account WHERE id = ?", (manager_id,)).fetchone()
        finally:
            conn.close()
        if row is None or Role.parse(row["role"]) != Role.MANAGER:
            return "Người quản lý phải là tài khoản có vai trò Quản lý"
        return None

    @classmethod
    async def create_house(cls, data: HouseCreate, caller: CallerContext) -> DataResult:
        if not can_access(caller, Action.MANAGE_HOUSES):
            return DataResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        address = (data.address or "").strip()
        if not address:
            return DataResult.failure("Vui lòng nhập địa chỉ nhà", ErrorKind.VALIDATION)
        problem = await cls._check_manager(data.manager_id)
        if problem:
            return DataResult.failure(problem, ErrorKind.VALIDATION)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO House (address, manager_id, created_at) VALUES (?, ?, ?)",
                (address, data.manager_id, now_iso()),
            )
            house_id = cursor.lastrowid
            conn.commit()
            row = cursor.execute(_SELECT_HOUSES + " WHERE h.id = ?", (house_id,)).fetchone()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error creating house")
            return DataResult.failure("Lỗi khi tạo nhà", ErrorKind.STORE)
        finally:
            conn.close()

        house = _house_from_row(row)
        logger.info("House %s created for manager %s", house.id, house.manager_id)
        change_feed.publish(ChangeEvent("House", INSERT, new=house.model_dump(mode="json")))
        return DataResult(data=house, message="Tạo nhà thành công")

    @classmethod
    async def update_house(cls, house_id: int, updates: HouseUpdate, caller: CallerContext) -> DataResult:
        if not can_access(caller, Action.MANAGE_HOUSES):
            return DataResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        existing = await cls.get_house_by_id(house_id)
        if existing is None:
            return DataResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        changes = updates.model_dump(exclude_none=True)
        if "address" in changes:
            changes["address"] = changes["address"].strip()
            if not changes["address"]:
                return DataResult.failure("Vui lòng nhập địa chỉ nhà", ErrorKind.VALIDATION)
        if "manager_id" in changes:
            problem = await cls._check_manager(changes["manager_id"])
            if problem:
                return DataResult.failure(problem, ErrorKind.VALIDATION)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            if changes:
                fields = ", ".join(f"{key} = ?" for key in changes)
                cursor.execute(
                    f"UPDATE House SET {fields} WHERE id = ?", (*changes.values(), house_id)
                )
                conn.commit()
            row = cursor.execute(_SELECT_HOUSES + " WHERE h.id = ?", (house_id,)).fetchone()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error updating house %s", house_id)
            return DataResult.failure("Lỗi khi cập nhật nhà", ErrorKind.STORE)
        finally:
            conn.close()

        house = _house_from_row(row)
        change_feed.publish(
            ChangeEvent(
                "House",
                UPDATE,
                new=house.model_dump(mode="json"),
                old=existing.model_dump(mode="json"),
            )
        )
        return DataResult(data=house, message="Cập nhật nhà thành công")

    @classmethod
    async def delete_house(cls, house_id: int, caller: CallerContext) -> ActionResult:
        """Delete a house that no guest refers to any more."""
        if not can_access(caller, Action.MANAGE_HOUSES):
            return ActionResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        existing = await cls.get_house_by_id(house_id)
        if existing is None:
            return ActionResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)

        conn = get_connection()
        try:
            attached = conn.execute(
                "SELECT COUNT(*) FROM Guest WHERE house_id = ?", (house_id,)
            ).fetchone()[0]
            if attached:
                return ActionResult.failure(
                    f"Nhà đang có {attached} khách, không thể xóa", ErrorKind.VALIDATION
                )
            conn.execute("DELETE FROM House WHERE id = ?", (house_id,))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error deleting house %s", house_id)
            return ActionResult.failure("Lỗi khi xóa nhà", ErrorKind.STORE)
        finally:
            conn.close()

        logger.info("House %s deleted by %s", house_id, caller.id)
        change_feed.publish(ChangeEvent("House", DELETE, old=existing.model_dump(mode="json")))
        return ActionResult(success=True, message="Xóa nhà thành công")

    @classmethod
    async def address_map(cls, manager_id: Optional[int] = None) -> DataResult:
        """Map house ids to addresses, optionally for one manager's houses."""
        result = await cls.list_houses(manager_id)
        if not result.ok:
            return DataResult.failure("Lỗi khi lấy dữ liệu nhà", result.error, data={})
        addresses: Dict[int, str] = {house.id: house.address for house in result.data}
        return DataResult(data=addresses, message="Lấy dữ liệu nhà thành công")

    @classmethod
    async def houses_with_managers_map(cls, manager_id: Optional[int] = None) -> DataResult:
        """Map house ids to ``{address, manager_name}``; missing managers show as ``N/A``."""
        result = await cls.list_houses(manager_id)
        if not result.ok:
            return DataResult.failure("Lỗi khi lấy dữ liệu nhà", result.error, data={})
        houses = {
            house.id: {"address": house.address, "manager_name": house.manager_name or "N/A"}
            for house in result.data
        }
        return DataResult(data=houses, message="Lấy dữ liệu nhà thành công")
