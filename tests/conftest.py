import asyncio
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from house_leads_api.app.core import db
from house_leads_api.app.core.config import settings
from house_leads_api.app.core.enums import GuestStatus, Role
from house_leads_api.app.core.permissions import CallerContext
from house_leads_api.app.core.security import create_access_token


def run(coro):
    return asyncio.run(coro)


def insert_account(full_name, phone_number, role):
    conn = db.get_connection()
    try:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO Account (full_name, phone_number, role, created_at) VALUES (?, ?, ?, ?)",
            (full_name, phone_number, role.value, db.now_iso()),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def insert_house(address, manager_id):
    conn = db.get_connection()
    try:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO House (address, manager_id, created_at) VALUES (?, ?, ?)",
            (address, manager_id, db.now_iso()),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def insert_guest(house_id, name, phone, marketer_id=None, status=GuestStatus.NEW, created_at=None,
                 view_date=None):
    created = (created_at or datetime.now()).isoformat(timespec="seconds")
    conn = db.get_connection()
    try:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO Guest (marketer_id, house_id, guest_name, guest_phone_number, view_date, "
            "status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                marketer_id,
                house_id,
                name,
                phone,
                view_date.isoformat(timespec="seconds") if view_date else None,
                status.value,
                created,
                created,
            ),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def fetch_guest_row(guest_id):
    conn = db.get_connection()
    try:
        return conn.execute("SELECT * FROM Guest WHERE id = ?", (guest_id,)).fetchone()
    finally:
        conn.close()


def count_guests():
    conn = db.get_connection()
    try:
        return conn.execute("SELECT COUNT(*) FROM Guest").fetchone()[0]
    finally:
        conn.close()


@pytest.fixture
def database(tmp_path, monkeypatch):
    """A fresh, migrated SQLite file per test."""
    path = tmp_path / "house_leads_test.db"
    monkeypatch.setattr(settings, "database_url", str(path))
    db.init_db()
    return path


@pytest.fixture
def team(database):
    """One admin, two marketers, two managers and three houses.

    Manager ``mai`` owns houses ``h1`` and ``h2``; manager ``nam`` owns ``h3``.
    """
    admin = insert_account("Admin Chinh", "0900000001", Role.ADMIN)
    lan = insert_account("Lan Marketing", "0900000002", Role.MARKETING)
    hoa = insert_account("Hoa Marketing", "0900000003", Role.MARKETING)
    mai = insert_account("Mai Quan Ly", "0900000004", Role.MANAGER)
    nam = insert_account("Nam Quan Ly", "0900000005", Role.MANAGER)
    h1 = insert_house("12 Le Loi", mai)
    h2 = insert_house("34 Tran Hung Dao", mai)
    h3 = insert_house("56 Nguyen Hue", nam)
    return SimpleNamespace(
        admin=CallerContext(admin, Role.ADMIN, "Admin Chinh"),
        lan=CallerContext(lan, Role.MARKETING, "Lan Marketing"),
        hoa=CallerContext(hoa, Role.MARKETING, "Hoa Marketing"),
        mai=CallerContext(mai, Role.MANAGER, "Mai Quan Ly"),
        nam=CallerContext(nam, Role.MANAGER, "Nam Quan Ly"),
        h1=h1,
        h2=h2,
        h3=h3,
    )


@pytest.fixture
def client(database):
    from house_leads_api.app.main import app

    with TestClient(app) as test_client:
        yield test_client


def auth_headers(caller):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(caller.id)})}"}
