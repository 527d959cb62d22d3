"""
Session tokens and caller resolution.

Staff log in with a registered phone number (no password).  On login
the API issues a signed token using a lightweight JSON Web Token
mechanism built on HMAC-SHA256 and base64url encoding; the token
carries the account id in ``sub`` and an expiration timestamp
(``exp``).  Every protected route resolves the token back to the
stored account through ``get_current_account``, so the role and id a
service sees always come from the database, never from request
parameters.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .enums import Role
from .permissions import CallerContext


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64-url encoded string, adding padding if necessary."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(data: Dict[str, str], expires_delta: Optional[int] = None) -> str:
    """Create a signed token with the given payload.

    The payload is extended with an ``exp`` field representing the
    expiration time as a UNIX timestamp.  The token has the form
    ``header.payload.signature``, each part base64url encoded, and is
    sent by clients as ``Authorization: Bearer <token>``.

    Parameters
    ----------
    data : dict
        Claims to embed in the token (e.g. ``{"sub": "12"}``).
    expires_delta : Optional[int]
        Lifetime of the token in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    to_encode = data.copy()
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    to_encode["exp"] = int(time.time()) + exp_seconds
    header = {"alg": settings.algorithm, "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def decode_access_token(token: str) -> Optional[Dict[str, str]]:
    """Verify and decode a token.

    Returns the payload dictionary when the signature matches and the
    token has not expired, otherwise ``None``.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    expected_sig = _sign(signing_input, settings.secret_key)
    try:
        actual_sig = _b64_url_decode(signature_b64)
        if not hmac.compare_digest(expected_sig, actual_sig):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    if data.get("exp") is None or int(data["exp"]) < int(time.time()):
        return None
    return data


security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _account_for_token(token: str):
    """Return ``(caller, problem)`` for a raw token string."""
    payload = decode_access_token(token)
    if not payload:
        return None, "Phiên đăng nhập không hợp lệ hoặc đã hết hạn"
    try:
        account_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None, "Phiên đăng nhập không hợp lệ hoặc đã hết hạn"

    from house_leads_api.app.core.db import get_connection

    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT id, full_name, role FROM Account WHERE id = ?",
            (account_id,),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return None, "Tài khoản không còn tồn tại"
    role = Role.parse(row["role"])
    if role is None:
        return None, "Tài khoản không có vai trò hợp lệ"
    return CallerContext(id=row["id"], role=role, full_name=row["full_name"]), None


def resolve_token(token: Optional[str]) -> Optional[CallerContext]:
    """Resolve a raw token (e.g. a websocket query parameter) to the caller, or ``None``."""
    if not token:
        return None
    caller, _ = _account_for_token(token)
    return caller


def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CallerContext:
    """Dependency that resolves the bearer token to the stored account.

    Raises HTTP 401 when the header is missing, the token is invalid
    or expired, or the account no longer exists.  This is the login
    gate for every protected route.
    """
    if credentials is None:
        raise _unauthorized("Chưa đăng nhập")
    caller, problem = _account_for_token(credentials.credentials)
    if caller is None:
        raise _unauthorized(problem)
    return caller
