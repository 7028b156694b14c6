"""
Session authentication for the Habit Tracker backend.

Authentication supports two modes:
  - Bearer token via Authorization header (cross-domain SPA deployment)
  - Signed session cookie (same-site browser sessions)

Both carry the same HMAC-signed token produced by ``create_token``.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import HTTPException, Request
from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)

COOKIE_NAME = "habit_session"

_hasher = PasswordHasher()


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash with argon2id; returns a PHC-format string with its own salt."""
    return _hasher.hash(password)


def verify_password(password: str, stored: str) -> bool:
    try:
        return _hasher.verify(stored, password)
    except (VerificationError, InvalidHashError):
        return False


# ---------------------------------------------------------------------------
# HMAC-signed session tokens
# ---------------------------------------------------------------------------

def _sign(secret: str, payload_bytes: bytes) -> str:
    """Create HMAC-SHA256 signature."""
    return hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()


def create_token(user_id: int, username: str, secret: str, ttl_seconds: int) -> str:
    """Create a signed session token for a user."""
    payload = {
        "sub": user_id,
        "username": username,
        "exp": int(time.time()) + ttl_seconds,
    }
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    sig = _sign(secret, payload_b64.encode())
    return f"{payload_b64}.{sig}"


def decode_token(token: str, secret: str) -> Optional[dict]:
    """Decode and verify a signed session token.

    Returns ``None`` for malformed, tampered or expired tokens.
    """
    parts = token.split(".", 1)
    if len(parts) != 2:
        return None
    payload_b64, sig = parts
    if not hmac.compare_digest(sig, _sign(secret, payload_b64.encode())):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, TypeError):
        return None
    if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
        return None
    return payload


def token_from_connection(conn: HTTPConnection) -> Optional[str]:
    """Pull the raw token from the Authorization header, cookie or query string."""
    auth_header = conn.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    token = conn.cookies.get(COOKIE_NAME)
    if token:
        return token
    # Browsers cannot set headers on WebSocket handshakes.
    return conn.query_params.get("token")


def session_from_connection(conn: HTTPConnection) -> Optional[dict]:
    """Return the verified token payload for a request or websocket, if any."""
    token = token_from_connection(conn)
    if not token:
        return None
    return decode_token(token, conn.app.state.settings.auth_secret)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def get_current_session(request: Request) -> dict:
    """Dependency: the caller's session payload, or 401."""
    session = session_from_connection(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


def get_current_user_id(request: Request) -> int:
    return int(get_current_session(request)["sub"])
