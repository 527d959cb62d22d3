from datetime import datetime

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import auth_headers, fetch_guest_row, insert_guest

from house_leads_api.app.core.enums import GuestStatus

API = "/api/v1"


def test_protected_routes_require_a_token(client):
    response = client.get(f"{API}/guests/")
    assert response.status_code == 401
    bad = client.get(f"{API}/guests/", headers={"Authorization": "Bearer not.a.token"})
    assert bad.status_code == 401


def test_info_is_public(client):
    response = client.get(f"{API}/info/")
    assert response.status_code == 200
    assert set(response.json()) == {"name", "version"}


def test_login_with_phone_number(client, team):
    response = client.post(f"{API}/auth/login", json={"phone_number": " 0900000002 "})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Xin chào Lan Marketing"
    assert body["data"]["account"]["role"] == "marketing"

    token = body["data"]["access_token"]
    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["id"] == team.lan.id

    unknown = client.post(f"{API}/auth/login", json={"phone_number": "0999999999"})
    assert unknown.status_code == 404
    assert unknown.json() == {"data": None, "message": "Số điện thoại chưa được đăng ký"}


def test_signup_cannot_create_admin(client, team):
    response = client.post(
        f"{API}/auth/signup",
        json={"full_name": "Ke Gian", "phone_number": "0977777777", "role": "admin"},
    )
    assert response.status_code == 403
    created = client.post(
        f"{API}/auth/signup",
        json={"full_name": "Moi Vao", "phone_number": "0977777777", "role": "marketing"},
    )
    assert created.status_code == 201
    assert created.json()["data"]["full_name"] == "Moi Vao"


def test_navigation_depends_on_role(client, team):
    admin = client.get(f"{API}/info/navigation", headers=auth_headers(team.admin)).json()["data"]
    assert [item["path"] for item in admin["items"]] == ["/quan-ly-khach", "/quan-ly-tai-khoan", "/quan-ly-nha"]
    assert admin["account"]["role_label"] == "Quản trị viên"

    lan = client.get(f"{API}/info/navigation", headers=auth_headers(team.lan)).json()["data"]
    assert [item["path"] for item in lan["items"]] == ["/quan-ly-khach"]


def test_account_list_search_and_admin_only_writes(client, team):
    response = client.get(
        f"{API}/accounts/", params={"q": "quan ly", "order": "desc"}, headers=auth_headers(team.lan)
    )
    assert response.status_code == 200
    assert [a["full_name"] for a in response.json()["data"]] == ["Nam Quan Ly", "Mai Quan Ly"]

    body = {"full_name": "Moi", "phone_number": "0966666666", "role": "marketing"}
    assert client.post(f"{API}/accounts/", json=body, headers=auth_headers(team.lan)).status_code == 403
    assert client.post(f"{API}/accounts/", json=body, headers=auth_headers(team.admin)).status_code == 201


def test_create_list_and_merge_guests(client, team):
    headers = auth_headers(team.lan)
    created = client.post(
        f"{API}/guests/",
        json={"house_id": team.h1, "guest_name": "Khach A", "guest_phone_number": "0911000001"},
        headers=headers,
    )
    assert created.status_code == 201
    guest = created.json()["data"]
    assert guest["marketer_id"] == team.lan.id
    assert guest["status"] == "new"
    assert guest["status_label"] == "Mới"

    merged = client.post(
        f"{API}/guests/",
        json={"house_id": team.h2, "guest_name": "Khach A2", "guest_phone_number": "0911000001"},
        headers=headers,
    )
    assert merged.status_code == 201
    assert merged.json()["message"].startswith("Khách hàng đã tồn tại với số điện thoại này.")
    assert merged.json()["data"]["id"] == guest["id"]
    assert fetch_guest_row(guest["id"])["status"] == "closed"

    listed = client.get(f"{API}/guests/", params={"status": "Đã chốt"}, headers=headers).json()
    assert [g["guest_name"] for g in listed["data"]] == ["Khach A2"]
    assert client.get(f"{API}/guests/", params={"status": "new"}, headers=headers).json()["data"] == []


def test_missing_fields_use_the_envelope(client, team):
    response = client.post(
        f"{API}/guests/", json={"house_id": team.h1, "guest_name": "Khach"}, headers=auth_headers(team.lan)
    )
    assert response.status_code == 400
    assert response.json() == {"data": None, "message": "Vui lòng điền đầy đủ thông tin"}


def test_null_required_fields_use_the_envelope(client, team):
    for body in (
        {"house_id": team.h1, "guest_name": None, "guest_phone_number": "0911000001"},
        {"house_id": team.h1, "guest_name": "Khach", "guest_phone_number": None},
    ):
        response = client.post(f"{API}/guests/", json=body, headers=auth_headers(team.admin))
        assert response.status_code == 400
        assert response.json() == {"data": None, "message": "Vui lòng điền đầy đủ thông tin"}
    assert client.get(f"{API}/guests/", headers=auth_headers(team.admin)).json()["data"] == []


def test_schema_errors_return_422_envelope(client, team):
    response = client.post(f"{API}/guests/", json={"house_id": "abc"}, headers=auth_headers(team.lan))
    assert response.status_code == 422
    body = response.json()
    assert body["data"] is None
    assert body["message"] == "Dữ liệu không hợp lệ"
    assert body["errors"]


def test_bad_status_filter(client, team):
    response = client.get(f"{API}/guests/", params={"status": "unknown"}, headers=auth_headers(team.admin))
    assert response.status_code == 400
    assert response.json()["message"] == "Trạng thái không hợp lệ"


def test_foreign_guest_update_is_forbidden(client, team):
    guest_id = insert_guest(team.h3, "Khach", "0911000009", team.hoa.id)
    response = client.put(
        f"{API}/guests/{guest_id}", json={"status": "closed"}, headers=auth_headers(team.lan)
    )
    assert response.status_code == 403
    assert fetch_guest_row(guest_id)["status"] == "new"

    allowed = client.put(
        f"{API}/guests/{guest_id}", json={"status": "Đang chăm sóc"}, headers=auth_headers(team.nam)
    )
    assert allowed.status_code == 200
    assert allowed.json()["data"]["status"] == "in_progress"

    assert client.delete(f"{API}/guests/{guest_id}", headers=auth_headers(team.lan)).status_code == 403
    deleted = client.delete(f"{API}/guests/{guest_id}", headers=auth_headers(team.admin))
    assert deleted.json() == {"success": True, "message": "Xóa khách thành công"}
    assert client.get(f"{API}/guests/{guest_id}", headers=auth_headers(team.admin)).status_code == 404


def test_guest_export_download(client, team):
    insert_guest(team.h1, "Khach A", "0911000001", team.lan.id, GuestStatus.CLOSED,
                 created_at=datetime(2026, 10, 1, 8, 0))
    response = client.get(f"{API}/guests/export", params={"sort_by": "guest_name"}, headers=auth_headers(team.mai))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert 'filename="Danh_sach_khach_hang_' in response.headers["content-disposition"]
    assert response.content[:2] == b"PK"


def test_statistics_routes(client, team):
    insert_guest(team.h1, "Khach A", "0911000001", team.lan.id, GuestStatus.CLOSED,
                 created_at=datetime(2026, 10, 5, 8, 0))
    headers = auth_headers(team.admin)
    response = client.get(
        f"{API}/statistics/guests", params={"start_date": "2026-10-05", "end_date": "2026-10-05"}, headers=headers
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["marketers"][0]["closed"] == 1
    assert data["managers"][0]["name"] == "Mai Quan Ly"

    assert client.get(f"{API}/statistics/guests", params={"preset": "lastYear"}, headers=headers).status_code == 400

    export = client.get(
        f"{API}/statistics/guests/export",
        params={"start_date": "2026-10-05", "end_date": "2026-10-11"},
        headers=headers,
    )
    assert export.status_code == 200
    assert 'filename="Thong_ke_khach_hang_05-10-2026_den_11-10-2026.xlsx"' in export.headers["content-disposition"]


def test_change_notices_reach_open_sockets(client, team):
    token = auth_headers(team.mai)["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"{API}/guests/changes?token={token}") as websocket:
        created = client.post(
            f"{API}/guests/",
            json={"house_id": team.h1, "guest_name": "Khach", "guest_phone_number": "0911000001"},
            headers=auth_headers(team.lan),
        )
        notice = websocket.receive_json()
    assert notice["table"] == "Guest"
    assert notice["eventType"] == "INSERT"
    assert notice["id"] == created.json()["data"]["id"]
    assert notice["commit_timestamp"]


def test_change_socket_rejects_bad_token(client, team):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"{API}/guests/changes?token=bad"):
            pass
