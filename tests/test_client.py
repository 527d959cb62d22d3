import json
import queue
import threading
from urllib.parse import urlsplit

import pytest
import requests

from conftest import auth_headers

from house_leads_client import AccountStorage, AppSession, BackOfficeClient, GuestBoard

ACCOUNT = {"id": 7, "full_name": "Lan Marketing", "phone_number": "0900000002", "role": "marketing"}


def make_response(status_code, body, url="http://testserver"):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.url = url
    return response


class FakeSession:
    """Records requests and replays canned responses keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = url.split("/api/v1", 1)[1]
        self.calls.append({"method": method, "path": path, "params": params, "json": json, "headers": headers})
        handler = self.routes[(method, path)]
        status_code, body = handler(params, json) if callable(handler) else handler
        return make_response(status_code, body, url)


@pytest.fixture
def storage(tmp_path):
    return AccountStorage(str(tmp_path))


def login_routes():
    return {
        ("POST", "/auth/login"): lambda params, body: (
            (200, {"data": {"access_token": "tok", "token_type": "bearer", "account": ACCOUNT},
                   "message": "Xin chào Lan Marketing"})
            if body["phone_number"] == "0900000002"
            else (404, {"data": None, "message": "Số điện thoại chưa được đăng ký"})
        ),
    }


def test_login_persists_whole_record(storage):
    client = BackOfficeClient(base_url="http://testserver", session=FakeSession(login_routes()))
    session = AppSession(client, storage)
    account, error = session.login("0900000002")
    assert error is None
    assert account == ACCOUNT
    assert session.is_authenticated
    assert session.role == "marketing"
    assert client.last_message == "Xin chào Lan Marketing"

    with open(storage.path, encoding="utf-8") as f:
        record = json.load(f)
    assert storage.path.name == "account-storage.json"
    assert record == {"state": {"account": ACCOUNT, "access_token": "tok"}, "version": 0}


def test_failed_login_reports_envelope_message(storage):
    client = BackOfficeClient(base_url="http://testserver", session=FakeSession(login_routes()))
    session = AppSession(client, storage)
    account, error = session.login("0999999999")
    assert account is None
    assert error == {"status_code": 404, "message": "Số điện thoại chưa được đăng ký"}
    assert not session.is_authenticated
    assert storage.load() is None


def test_restart_resumes_and_logout_clears(storage):
    first = AppSession(BackOfficeClient(base_url="http://testserver", session=FakeSession(login_routes())), storage)
    first.login("0900000002")

    restarted_client = BackOfficeClient(base_url="http://testserver", session=FakeSession({}))
    restarted = AppSession(restarted_client, storage)
    assert restarted.load()
    assert restarted.account == ACCOUNT
    assert restarted_client.token == "tok"

    restarted.logout()
    assert restarted.account is None
    assert restarted_client.token is None
    assert not storage.path.exists()
    assert not AppSession(BackOfficeClient(base_url="http://testserver"), storage).load()


def test_corrupt_storage_is_ignored(storage):
    storage.path.parent.mkdir(parents=True, exist_ok=True)
    storage.path.write_text("{not json", encoding="utf-8")
    assert storage.load() is None


def test_token_is_sent_and_none_params_dropped():
    session = FakeSession({("GET", "/guests/"): (200, {"data": [], "message": "Không tìm thấy khách nào"})})
    client = BackOfficeClient(base_url="http://testserver/", token="tok", session=session)
    guests, error = client.list_guests(q="lan", status=None)
    assert (guests, error) == ([], None)
    call = session.calls[0]
    assert call["headers"]["Authorization"] == "Bearer tok"
    assert call["params"] == {"q": "lan"}


def test_network_errors_become_error_tuples():
    class Offline:
        def request(self, **kwargs):
            raise requests.ConnectionError("connection refused")

    client = BackOfficeClient(base_url="http://testserver", session=Offline())
    data, error = client.me()
    assert data is None
    assert error["status_code"] is None
    assert "connection refused" in error["message"]


class TestGuestBoard:
    def make_board(self):
        rows = {"value": [{"id": 1}]}

        def list_guests(params, body):
            return 200, {"data": list(rows["value"]), "message": "Lấy dữ liệu khách thành công"}

        session = FakeSession({("GET", "/guests/"): list_guests})
        board = GuestBoard(BackOfficeClient(base_url="http://testserver", token="tok", session=session))
        return board, session, rows

    def test_refresh_and_change_notices_refetch(self):
        board, session, rows = self.make_board()
        seen = []
        board.listeners.append(seen.append)
        assert board.refresh() == [{"id": 1}]

        rows["value"] = [{"id": 2}, {"id": 1}]
        board.on_change({"eventType": "INSERT", "id": 2})
        board.on_change({"eventType": "UPDATE", "id": 2})
        assert board.guests == [{"id": 2}, {"id": 1}]
        assert len(session.calls) == 3
        assert len(seen) == 3

    def test_toggle_sort_and_filters_are_sent(self):
        board, session, _ = self.make_board()
        board.toggle_sort("guest_name")
        assert session.calls[-1]["params"]["sort_by"] == "guest_name"
        assert session.calls[-1]["params"]["order"] == "asc"
        board.toggle_sort("guest_name")
        assert session.calls[-1]["params"]["order"] == "desc"

        board.search = "lan"
        board.set_filters(status="closed", house_id=None, marketer_id="")
        params = session.calls[-1]["params"]
        assert params["q"] == "lan"
        assert params["status"] == "closed"
        assert "house_id" not in params and "marketer_id" not in params

        board.clear_filters()
        assert "status" not in session.calls[-1]["params"]


class QueueSocket:
    """In-memory connection with the ``recv``/``close`` interface of websocket-client."""

    def __init__(self):
        self.messages = queue.Queue()
        self.closed = False

    def recv(self):
        return self.messages.get()

    def close(self):
        self.closed = True
        self.messages.put("")


class ServerSocket:
    """A ``TestClient`` websocket session behind the same interface."""

    def __init__(self, test_client, url):
        parts = urlsplit(url)
        self.session = test_client.websocket_connect(f"{parts.path}?{parts.query}")
        self.session.__enter__()

    def recv(self):
        message = self.session.receive()
        if message["type"] == "websocket.close":
            return ""
        return message.get("text") or ""

    def close(self):
        self.session.__exit__(None, None, None)


class TestChangeSubscription:
    def test_changes_url_follows_scheme_and_token(self):
        client = BackOfficeClient(base_url="https://leads.example.com/", token="a.b=c")
        assert client.guest_changes_url() == "wss://leads.example.com/api/v1/guests/changes?token=a.b%3Dc"
        plain = BackOfficeClient(base_url="http://localhost:8000", token="t")
        assert plain.guest_changes_url() == "ws://localhost:8000/api/v1/guests/changes?token=t"

    def test_subscription_needs_a_token(self):
        unsubscribe, error = BackOfficeClient(base_url="http://testserver").subscribe_guest_changes(print)
        assert unsubscribe is None
        assert error["status_code"] == 401

    def test_notices_reach_callback_until_unsubscribed(self):
        socket = QueueSocket()
        opened = []
        received = []
        done = threading.Event()

        def connect(url):
            opened.append(url)
            return socket

        def callback(notice):
            received.append(notice)
            if len(received) == 2:
                done.set()

        client = BackOfficeClient(base_url="http://testserver", token="tok", timeout=1)
        unsubscribe, error = client.subscribe_guest_changes(callback, connect=connect)
        assert error is None
        assert opened == ["ws://testserver/api/v1/guests/changes?token=tok"]

        socket.messages.put(json.dumps({"table": "Guest", "eventType": "INSERT", "id": 1}))
        socket.messages.put("not json")
        socket.messages.put(json.dumps({"table": "Guest", "eventType": "DELETE", "id": 1}))
        assert done.wait(5)
        unsubscribe()
        assert socket.closed
        assert [notice["eventType"] for notice in received] == ["INSERT", "DELETE"]

    def test_failed_connect_is_reported(self):
        def connect(url):
            raise ConnectionRefusedError("connection refused")

        client = BackOfficeClient(base_url="http://testserver", token="tok")
        unsubscribe, error = client.subscribe_guest_changes(print, connect=connect)
        assert unsubscribe is None
        assert error == {"status_code": None, "message": "connection refused"}

    def test_board_refetches_after_server_write(self, client, team):
        token = auth_headers(team.mai)["Authorization"].split(" ", 1)[1]
        api = BackOfficeClient(base_url="http://testserver", token=token, session=client, timeout=1)
        board = GuestBoard(api)
        assert board.refresh() == []

        refreshed = threading.Event()

        def listener(guests):
            if guests:
                refreshed.set()

        board.listeners.append(listener)
        unsubscribe, error = board.follow_changes(connect=lambda url: ServerSocket(client, url))
        assert error is None and unsubscribe is not None
        try:
            created = client.post(
                "/api/v1/guests/",
                json={"house_id": team.h1, "guest_name": "Khach Moi", "guest_phone_number": "0911000001"},
                headers=auth_headers(team.lan),
            )
            assert created.status_code == 201
            assert refreshed.wait(5)
        finally:
            board.stop_following()
        assert [guest["guest_name"] for guest in board.guests] == ["Khach Moi"]
