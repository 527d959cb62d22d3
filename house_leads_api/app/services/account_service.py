"""
Business logic for staff accounts.

Accounts are looked up by phone number at login, created through the
public signup form or by an administrator, and edited or removed only
by administrators.  Every method returns a result envelope; store
errors are logged and reported through the envelope's message.
"""

import logging
import re
import sqlite3
from typing import Dict, Optional

from house_leads_api.app.core.db import get_connection, now_iso
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.events import DELETE, INSERT, UPDATE, ChangeEvent, change_feed
from house_leads_api.app.core.permissions import Action, CallerContext, can_access
from house_leads_api.app.core.security import create_access_token
from house_leads_api.app.schemas.account import (
    AccountCreate,
    AccountRead,
    AccountUpdate,
    LoginPayload,
)
from house_leads_api.app.schemas.common import ActionResult, DataResult, ErrorKind

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\d{10,11}$")

MSG_NO_PERMISSION = "Không có quyền quản lý tài khoản"
MSG_NOT_FOUND = "Không tìm thấy tài khoản"
MSG_PHONE_TAKEN = "Số điện thoại đã được sử dụng"


def _validate(full_name: Optional[str], phone_number: Optional[str]) -> Optional[str]:
    """Return a validation message, or ``None`` when the values are acceptable."""
    if full_name is not None and len(full_name.strip()) < 2:
        return "Tên phải có ít nhất 2 ký tự"
    if phone_number is not None and not PHONE_RE.match(phone_number.strip()):
        return "Số điện thoại phải có 10-11 chữ số"
    return None


class AccountService:
    """Service for the ``Account`` table."""

    @classmethod
    async def get_account_by_phone(cls, phone_number: str) -> Optional[AccountRead]:
        """Return the account registered with ``phone_number`` or ``None``."""
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM Account WHERE phone_number = ?",
                ((phone_number or "").strip(),),
            ).fetchone()
            return AccountRead.from_row(row) if row else None
        except sqlite3.Error:
            logger.exception("Error fetching account by phone")
            return None
        finally:
            conn.close()

    @classmethod
    async def get_account_by_id(cls, account_id: int) -> Optional[AccountRead]:
        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM Account WHERE id = ?", (account_id,)).fetchone()
            return AccountRead.from_row(row) if row else None
        finally:
            conn.close()

    @classmethod
    async def login(cls, phone_number: str) -> DataResult:
        """Log in with a registered phone number and issue a session token."""
        account = await cls.get_account_by_phone(phone_number)
        if account is None:
            return DataResult.failure("Số điện thoại chưa được đăng ký", ErrorKind.NOT_FOUND)
        token = create_access_token({"sub": str(account.id)})
        logger.info("Account %s logged in", account.id)
        return DataResult(
            data=LoginPayload(access_token=token, account=account),
            message=f"Xin chào {account.full_name}",
        )

    @classmethod
    async def signup(cls, data: AccountCreate) -> DataResult:
        """Public signup with an unused phone number.

        Administrator accounts cannot be self-registered; they are created
        by another administrator or with ``bootstrap_admin.py``.
        """
        if data.role == Role.ADMIN:
            return DataResult.failure(
                "Không thể tự đăng ký tài khoản Quản trị viên", ErrorKind.PERMISSION
            )
        return await cls._insert(data)

    @classmethod
    async def create_account(cls, data: AccountCreate, caller: CallerContext) -> DataResult:
        """Create an account from the admin console."""
        if not can_access(caller, Action.MANAGE_ACCOUNTS):
            return DataResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        return await cls._insert(data)

    @classmethod
    async def _insert(cls, data: AccountCreate) -> DataResult:
        problem = _validate(data.full_name, data.phone_number)
        if problem:
            return DataResult.failure(problem, ErrorKind.VALIDATION)
        if await cls.get_account_by_phone(data.phone_number):
            return DataResult.failure(MSG_PHONE_TAKEN, ErrorKind.CONFLICT)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO Account (full_name, phone_number, role, created_at) VALUES (?, ?, ?, ?)",
                (data.full_name.strip(), data.phone_number.strip(), data.role.value, now_iso()),
            )
            account_id = cursor.lastrowid
            conn.commit()
            row = cursor.execute("SELECT * FROM Account WHERE id = ?", (account_id,)).fetchone()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error creating account")
            return DataResult.failure("Lỗi khi tạo tài khoản", ErrorKind.STORE)
        finally:
            conn.close()

        account = AccountRead.from_row(row)
        logger.info("Account %s created with role %s", account.id, account.role.value)
        change_feed.publish(ChangeEvent("Account", INSERT, new=account.model_dump(mode="json")))
        return DataResult(data=account, message="Tạo tài khoản thành công")

    @classmethod
    async def list_accounts(cls) -> DataResult:
        conn = get_connection()
        try:
            rows = conn.execute("SELECT * FROM Account ORDER BY id").fetchall()
        except sqlite3.Error:
            logger.exception("Error fetching accounts")
            return DataResult.failure(
                "Không có tài khoản nào hoặc lỗi khi lấy dữ liệu", ErrorKind.STORE
            )
        finally:
            conn.close()
        return DataResult(
            data=[AccountRead.from_row(row) for row in rows],
            message="Danh sách tài khoản đã được lấy thành công",
        )

    @classmethod
    async def update_account(
        cls, account_id: int, updates: AccountUpdate, caller: CallerContext
    ) -> DataResult:
        """Update name, phone or role of an account (administrators only)."""
        if not can_access(caller, Action.MANAGE_ACCOUNTS):
            return DataResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        changes = updates.model_dump(exclude_none=True)
        problem = _validate(changes.get("full_name"), changes.get("phone_number"))
        if problem:
            return DataResult.failure(problem, ErrorKind.VALIDATION)

        existing = await cls.get_account_by_id(account_id)
        if existing is None:
            return DataResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)
        if "phone_number" in changes:
            changes["phone_number"] = changes["phone_number"].strip()
            other = await cls.get_account_by_phone(changes["phone_number"])
            if other is not None and other.id != account_id:
                return DataResult.failure(MSG_PHONE_TAKEN, ErrorKind.CONFLICT)
        if "full_name" in changes:
            changes["full_name"] = changes["full_name"].strip()
        if "role" in changes:
            changes["role"] = Role(changes["role"]).value

        conn = get_connection()
        try:
            cursor = conn.cursor()
            if changes:
                fields = ", ".join(f"{key} = ?" for key in changes)
                cursor.execute(
                    f"UPDATE Account SET {fields} WHERE id = ?",
                    (*changes.values(), account_id),
                )
                conn.commit()
            row = cursor.execute("SELECT * FROM Account WHERE id = ?", (account_id,)).fetchone()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error updating account %s", account_id)
            return DataResult.failure("Lỗi khi cập nhật tài khoản", ErrorKind.STORE)
        finally:
            conn.close()

        account = AccountRead.from_row(row)
        change_feed.publish(
            ChangeEvent(
                "Account",
                UPDATE,
                new=account.model_dump(mode="json"),
                old=existing.model_dump(mode="json"),
            )
        )
        return DataResult(data=account, message="Cập nhật tài khoản thành công")

    @classmethod
    async def delete_account(cls, account_id: int, caller: CallerContext) -> ActionResult:
        """Delete an account (administrators only).

        Guests keep their rows; their ``marketer_id`` becomes null, and
        houses managed by the account lose their manager.
        """
        if not can_access(caller, Action.MANAGE_ACCOUNTS):
            return ActionResult.failure(MSG_NO_PERMISSION, ErrorKind.PERMISSION)
        if caller.id == account_id:
            return ActionResult.failure("Không thể xóa tài khoản đang đăng nhập", ErrorKind.VALIDATION)
        existing = await cls.get_account_by_id(account_id)
        if existing is None:
            return ActionResult.failure(MSG_NOT_FOUND, ErrorKind.NOT_FOUND)

        conn = get_connection()
        try:
            conn.execute("DELETE FROM Account WHERE id = ?", (account_id,))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Error deleting account %s", account_id)
            return ActionResult.failure("Lỗi khi xóa tài khoản", ErrorKind.STORE)
        finally:
            conn.close()

        logger.info("Account %s deleted by %s", account_id, caller.id)
        change_feed.publish(ChangeEvent("Account", DELETE, old=existing.model_dump(mode="json")))
        return ActionResult(success=True, message="Xóa tài khoản thành công")

    @classmethod
    async def name_map(cls, role: Optional[Role] = None) -> DataResult:
        """Map account ids to full names, optionally for one role only.

        Used to fill the marketer and manager dropdowns.
        """
        conn = get_connection()
        try:
            if role is None:
                rows = conn.execute("SELECT id, full_name FROM Account ORDER BY id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT id, full_name FROM Account WHERE role = ? ORDER BY id",
                    (role.value,),
                ).fetchall()
        except sqlite3.Error:
            logger.exception("Error fetching account names")
            return DataResult.failure(
                "Không có tài khoản nào hoặc lỗi khi lấy dữ liệu", ErrorKind.STORE, data={}
            )
        finally:
            conn.close()
        names: Dict[int, str] = {row["id"]: row["full_name"] for row in rows}
        if role == Role.MANAGER:
            message = "Danh sách quản lý đã được lấy thành công"
        elif role == Role.MARKETING:
            message = "Lấy dữ liệu nhân viên marketing thành công"
        else:
            message = "Danh sách tài khoản đã được lấy thành công"
        return DataResult(data=names, message=message)
