"""House Leads back-office API client.

This module wraps the REST API of :mod:`house_leads_api` for scripts
and front-ends.  It has three layers:

* :class:`BackOfficeClient` – thin ``requests`` wrapper.  Every method
  returns a tuple ``(data, error)``: ``data`` is the envelope's
  ``data`` field on success and ``error`` is ``None``; on failure
  ``data`` is ``None`` and ``error`` is a dictionary with
  ``status_code`` and ``message``.  The message of the last response is
  kept in :attr:`BackOfficeClient.last_message` for display.
* :class:`AccountStorage` and :class:`AppSession` – the logged-in
  account and its token, persisted as one named record
  (``account-storage``) so a restarted client resumes the session.
  The session object is created once and passed explicitly to whatever
  needs the current user.
* :class:`GuestBoard` – the guest list screen: it keeps the current
  search, filters and sort, re-fetches on demand, and re-fetches in full
  whenever a change notice arrives.  Notices come from the
  ``/guests/changes`` websocket, read by
  :meth:`BackOfficeClient.subscribe_guest_changes` with ``websocket-client``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
import websocket


logger = logging.getLogger(__name__)

Error = Optional[Dict[str, Any]]
Unsubscribe = Callable[[], None]


class BackOfficeClient:
    """Client for the ``/api/v1`` routes of the back-office API."""

    def __init__(
        self,
        *,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        api_prefix: str = "/api/v1",
        timeout: int = 15,
    ) -> None:
        """Initialise the API client.

        Args:
            base_url: Base URL of the server, e.g. ``http://localhost:8000``.
            token: Optional bearer token from a previous login.
            session: Optional requests session.  If not supplied a
                session will be created automatically.
            api_prefix: Prefix of the versioned routes.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/") + api_prefix
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.last_message = ""

    def _request(
        self, method: str, path: str, *, params: Dict[str, Any] | None = None,
        json_body: Any | None = None, raw: bool = False
    ) -> Tuple[Optional[Any], Error]:
        """Perform an HTTP request to the API.

        Args:
            method: HTTP method (``GET``, ``POST``, ``PUT``, ``DELETE``).
            path: Path relative to the API prefix (e.g. ``/guests/``).
            params: Query parameters; ``None`` values are dropped.
            json_body: JSON body to send with the request.
            raw: Return the response itself instead of the parsed envelope.
        Returns:
            A tuple ``(data, error)``.
        """
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if raw:
                return response, None
            if not response.content:
                return None, None
            body = response.json()
            if isinstance(body, dict) and "message" in body:
                self.last_message = body["message"]
            return body, None
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            message = ""
            if exc.response is not None:
                try:
                    err_json = exc.response.json()
                    message = err_json.get("message") or err_json.get("detail") or str(err_json)
                except ValueError:
                    message = exc.response.text
            if not message:
                message = str(exc)
            self.last_message = message
            logger.error("API request failed (%s): %s", status, message)
            return None, {"status_code": status, "message": message}
        except requests.RequestException as exc:
            self.last_message = str(exc)
            logger.error("API request failed: %s", exc)
            return None, {"status_code": None, "message": str(exc)}

    def _data(self, method: str, path: str, **kwargs) -> Tuple[Optional[Any], Error]:
        """Like :meth:`_request` but unwraps the ``data`` field of the envelope."""
        body, error = self._request(method, path, **kwargs)
        if error:
            return None, error
        if isinstance(body, dict) and "data" in body:
            return body["data"], None
        return body, None

    def _download(self, path: str, target_dir: str, params: Dict[str, Any]) -> Tuple[Optional[Path], Error]:
        response, error = self._request("GET", path, params=params, raw=True)
        if error:
            return None, error
        filename = "export.xlsx"
        disposition = response.headers.get("Content-Disposition", "")
        if "filename=" in disposition:
            filename = disposition.split("filename=", 1)[1].strip('"')
        target = Path(target_dir) / filename
        target.write_bytes(response.content)
        logger.info("Saved %s", target)
        return target, None

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    def login(self, phone_number: str) -> Tuple[Optional[Dict[str, Any]], Error]:
        """Log in with a phone number; returns ``{access_token, token_type, account}``."""
        return self._data("POST", "/auth/login", json_body={"phone_number": phone_number})

    def signup(self, full_name: str, phone_number: str, role: str) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data(
            "POST",
            "/auth/signup",
            json_body={"full_name": full_name, "phone_number": phone_number, "role": role},
        )

    def me(self) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("GET", "/auth/me")

    def navigation(self) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("GET", "/info/navigation")

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def list_accounts(self, **params: Any) -> Tuple[Optional[List[Dict[str, Any]]], Error]:
        return self._data("GET", "/accounts/", params=params)

    def create_account(self, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("POST", "/accounts/", json_body=body)

    def update_account(self, account_id: int, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("PUT", f"/accounts/{account_id}", json_body=body)

    def delete_account(self, account_id: int) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._request("DELETE", f"/accounts/{account_id}")

    def account_names(self) -> Tuple[Optional[Dict[str, str]], Error]:
        return self._data("GET", "/accounts/name-map")

    def manager_names(self) -> Tuple[Optional[Dict[str, str]], Error]:
        return self._data("GET", "/accounts/managers")

    def marketer_names(self) -> Tuple[Optional[Dict[str, str]], Error]:
        return self._data("GET", "/accounts/marketers")

    # ------------------------------------------------------------------
    # Houses
    # ------------------------------------------------------------------
    def list_houses(self, **params: Any) -> Tuple[Optional[List[Dict[str, Any]]], Error]:
        return self._data("GET", "/houses/", params=params)

    def house_addresses(self, manager_id: Optional[int] = None) -> Tuple[Optional[Dict[str, str]], Error]:
        return self._data("GET", "/houses/address-map", params={"manager_id": manager_id})

    def houses_with_managers(self) -> Tuple[Optional[Dict[str, Dict[str, str]]], Error]:
        return self._data("GET", "/houses/with-managers")

    def create_house(self, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("POST", "/houses/", json_body=body)

    def update_house(self, house_id: int, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("PUT", f"/houses/{house_id}", json_body=body)

    def delete_house(self, house_id: int) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._request("DELETE", f"/houses/{house_id}")

    # ------------------------------------------------------------------
    # Guests
    # ------------------------------------------------------------------
    def list_guests(self, **params: Any) -> Tuple[Optional[List[Dict[str, Any]]], Error]:
        """List visible guests.  Accepts the query parameters of ``GET /guests/``."""
        return self._data("GET", "/guests/", params=params)

    def create_guest(self, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        """Create a guest; a known phone number closes the existing guest instead."""
        return self._data("POST", "/guests/", json_body=body)

    def update_guest(self, guest_id: int, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data("PUT", f"/guests/{guest_id}", json_body=body)

    def delete_guest(self, guest_id: int) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._request("DELETE", f"/guests/{guest_id}")

    def status_options(self) -> Tuple[Optional[List[Dict[str, str]]], Error]:
        return self._data("GET", "/guests/status-options")

    def export_guests(self, target_dir: str = ".", **params: Any) -> Tuple[Optional[Path], Error]:
        return self._download("/guests/export", target_dir, params)

    def guest_changes_url(self) -> str:
        if self.base_url.startswith("https://"):
            url = "wss://" + self.base_url[len("https://"):]
        elif self.base_url.startswith("http://"):
            url = "ws://" + self.base_url[len("http://"):]
        else:
            url = self.base_url
        return f"{url}/guests/changes?token={quote(self.token or '', safe='')}"

    def subscribe_guest_changes(
        self,
        callback: Callable[[Dict[str, Any]], None],
        connect: Optional[Callable[[str], Any]] = None,
    ) -> Tuple[Optional[Unsubscribe], Error]:
        """Listen to ``/guests/changes`` in a background thread.

        ``callback`` receives each notice (``{table, eventType, id,
        commit_timestamp}``) in the reader thread.  Returns
        ``(unsubscribe, None)`` once the socket is open, or ``(None,
        error)`` when it cannot be opened.

        Args:
            callback: Called once per notice.
            connect: Factory returning an open connection with ``recv``
                and ``close``; defaults to ``websocket.create_connection``.
        """
        if not self.token:
            return None, {"status_code": 401, "message": "Chưa đăng nhập"}
        connect = connect or websocket.create_connection
        try:
            conn = connect(self.guest_changes_url())
        except (websocket.WebSocketException, OSError) as exc:
            logger.error("Could not open guest change feed: %s", exc)
            return None, {"status_code": None, "message": str(exc)}

        stopped = threading.Event()

        def read() -> None:
            while not stopped.is_set():
                try:
                    message = conn.recv()
                except (websocket.WebSocketException, OSError) as exc:
                    if not stopped.is_set():
                        logger.warning("Guest change feed closed: %s", exc)
                    return
                if not message:
                    return
                try:
                    notice = json.loads(message)
                except ValueError:
                    logger.warning("Ignoring malformed change notice: %r", message)
                    continue
                try:
                    callback(notice)
                except Exception:
                    logger.exception("Change notice handler failed")

        reader = threading.Thread(target=read, name="guest-changes", daemon=True)
        reader.start()

        def unsubscribe() -> None:
            if stopped.is_set():
                return
            stopped.set()
            try:
                conn.close()
            except (websocket.WebSocketException, OSError) as exc:
                logger.debug("Error closing guest change feed: %s", exc)
            reader.join(timeout=self.timeout)

        return unsubscribe, None

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------
    def guest_statistics(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None, preset: Optional[str] = None
    ) -> Tuple[Optional[Dict[str, Any]], Error]:
        return self._data(
            "GET",
            "/statistics/guests",
            params={"start_date": start_date, "end_date": end_date, "preset": preset},
        )

    def export_statistics(
        self, target_dir: str = ".", start_date: Optional[str] = None,
        end_date: Optional[str] = None, preset: Optional[str] = None
    ) -> Tuple[Optional[Path], Error]:
        return self._download(
            "/statistics/guests/export",
            target_dir,
            {"start_date": start_date, "end_date": end_date, "preset": preset},
        )


class AccountStorage:
    """The persisted ``account-storage`` record.

    The record is one JSON file holding ``{"state": {"account": ...,
    "access_token": ...}, "version": 0}``.  It is always written and
    removed as a whole.
    """

    NAME = "account-storage"
    VERSION = 0

    def __init__(self, directory: Optional[str] = None) -> None:
        base = directory or os.getenv("HOUSE_LEADS_STATE_DIR") or "~/.house_leads"
        self.path = Path(base).expanduser() / f"{self.NAME}.json"

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable %s: %s", self.path, e)
            return None
        state = record.get("state") if isinstance(record, dict) else None
        if not isinstance(state, dict) or not state.get("account"):
            return None
        return state

    def save(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"state": state, "version": self.VERSION}, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class AppSession:
    """The logged-in account of this client process."""

    def __init__(self, client: BackOfficeClient, storage: Optional[AccountStorage] = None) -> None:
        self.client = client
        self.storage = storage or AccountStorage()
        self.account: Optional[Dict[str, Any]] = None

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None and bool(self.client.token)

    @property
    def role(self) -> Optional[str]:
        return self.account.get("role") if self.account else None

    def load(self) -> bool:
        """Restore the persisted session; returns whether an account was found."""
        state = self.storage.load()
        if not state or not state.get("access_token"):
            return False
        self.account = state["account"]
        self.client.token = state["access_token"]
        return True

    def login(self, phone_number: str) -> Tuple[Optional[Dict[str, Any]], Error]:
        payload, error = self.client.login(phone_number)
        if error:
            return None, error
        self.account = payload["account"]
        self.client.token = payload["access_token"]
        self.storage.save({"account": self.account, "access_token": self.client.token})
        logger.info("Logged in as %s", self.account.get("full_name"))
        return self.account, None

    def logout(self) -> None:
        self.account = None
        self.client.token = None
        self.storage.clear()


class GuestBoard:
    """State of the guest list screen.

    ``search``, ``filters`` and the sort column are sent as query
    parameters, so the server returns the rows already narrowed and
    ordered.  :meth:`follow_changes` subscribes :meth:`on_change` to the
    ``/guests/changes`` websocket; each notice triggers a full
    re-fetch.
    """

    def __init__(self, client: BackOfficeClient) -> None:
        self.client = client
        self.guests: List[Dict[str, Any]] = []
        self.search = ""
        self.filters: Dict[str, Any] = {}
        self.start_date: Optional[str] = None
        self.end_date: Optional[str] = None
        self.sort_by = "created_at"
        self.order = "desc"
        self.message = ""
        self.error: Error = None
        self.listeners: List[Callable[[List[Dict[str, Any]]], None]] = []
        self._unsubscribe: Optional[Unsubscribe] = None

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(self.filters)
        params.update(
            q=self.search or None,
            start_date=self.start_date,
            end_date=self.end_date,
            sort_by=self.sort_by,
            order=self.order,
        )
        return params

    def refresh(self) -> List[Dict[str, Any]]:
        guests, error = self.client.list_guests(**self.params())
        self.error = error
        self.message = self.client.last_message
        if error is None:
            self.guests = guests or []
            for listener in self.listeners:
                listener(self.guests)
        return self.guests

    def toggle_sort(self, field: str) -> List[Dict[str, Any]]:
        """Same column flips the direction; a new column starts ascending."""
        if field == self.sort_by:
            self.order = "asc" if self.order == "desc" else "desc"
        else:
            self.sort_by = field
            self.order = "asc"
        return self.refresh()

    def set_filters(self, **filters: Any) -> List[Dict[str, Any]]:
        self.filters = {key: value for key, value in filters.items() if value not in (None, "")}
        return self.refresh()

    def clear_filters(self) -> List[Dict[str, Any]]:
        self.filters = {}
        return self.refresh()

    def on_change(self, notice: Dict[str, Any]) -> None:
        logger.debug("Guest change %s; refreshing", notice.get("eventType"))
        self.refresh()

    def follow_changes(self, connect: Optional[Callable[[str], Any]] = None) -> Tuple[Optional[Unsubscribe], Error]:
        """Re-fetch on every guest change notice until ``stop_following`` is called."""
        self.stop_following()
        unsubscribe, error = self.client.subscribe_guest_changes(self.on_change, connect=connect)
        self._unsubscribe = unsubscribe
        return unsubscribe, error

    def stop_following(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
