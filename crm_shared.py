from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.errors import Unauthenticated

MISSING_HEADER_MESSAGE = "Missing or malformed Authorization header"
INVALID_TOKEN_MESSAGE = "Invalid token"
EXPIRED_TOKEN_MESSAGE = "Token expired"
MALFORMED_PAYLOAD_MESSAGE = "Malformed token payload"

PASSWORD_HASH_ITERATIONS = 100_000


@dataclass(frozen=True)
class SessionClaim:
    user_id: int
    company_id: int
    role: str
    issued_at: int
    expires_at: int


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(raw: str) -> Optional[bytes]:
    value = str(raw or "").strip()
    if not value:
        return None
    padding = "=" * ((4 - len(value) % 4) % 4)
    try:
        return base64.urlsafe_b64decode(value + padding)
    except (ValueError, TypeError):
        return None


def _sign(secret: str, payload_bytes: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256).digest()


def _now_ts(now: Optional[datetime]) -> int:
    return int((now or datetime.now(timezone.utc)).timestamp())


def issue_session_token(
    *,
    user_id: int,
    company_id: int,
    role: str,
    secret: str,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> str:
    issued_at = _now_ts(now)
    payload: Dict[str, Any] = {
        "userId": int(user_id),
        "companyId": int(company_id),
        "role": str(role or "member").strip().lower(),
        "iat": issued_at,
        "exp": issued_at + int(ttl_seconds),
    }
    payload_bytes = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return f"{_b64url_encode(payload_bytes)}.{_b64url_encode(_sign(secret, payload_bytes))}"


def extract_bearer_token(header_value: Optional[str]) -> str:
    raw = str(header_value or "").strip()
    parts = raw.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise Unauthenticated(MISSING_HEADER_MESSAGE)
    return parts[1].strip()


def verify_session_token(token: str, secret: str, now: Optional[datetime] = None) -> SessionClaim:
    raw = str(token or "").strip()
    if raw.count(".") != 1:
        raise Unauthenticated(INVALID_TOKEN_MESSAGE)
    payload_part, sig_part = raw.split(".", 1)
    payload_bytes = _b64url_decode(payload_part)
    sig_bytes = _b64url_decode(sig_part)
    if not payload_bytes or not sig_bytes:
        raise Unauthenticated(INVALID_TOKEN_MESSAGE)
    if not hmac.compare_digest(_sign(secret, payload_bytes), sig_bytes):
        raise Unauthenticated(INVALID_TOKEN_MESSAGE)
    try:
        payload = json.loads(payload_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise Unauthenticated(INVALID_TOKEN_MESSAGE) from None
    if not isinstance(payload, dict):
        raise Unauthenticated(INVALID_TOKEN_MESSAGE)

    # Only a real past expiry is reported as expired; a missing one is malformed.
    try:
        exp_ts = int(payload["exp"])
    except (KeyError, TypeError, ValueError, OverflowError):
        raise Unauthenticated(MALFORMED_PAYLOAD_MESSAGE) from None
    if exp_ts <= 0:
        raise Unauthenticated(MALFORMED_PAYLOAD_MESSAGE)
    if exp_ts <= _now_ts(now):
        raise Unauthenticated(EXPIRED_TOKEN_MESSAGE)

    # A valid signature over a payload without tenant or user is still rejected.
    try:
        user_id = int(payload.get("userId"))
        company_id = int(payload.get("companyId"))
    except (TypeError, ValueError, OverflowError):
        raise Unauthenticated(MALFORMED_PAYLOAD_MESSAGE) from None
    if user_id <= 0 or company_id <= 0:
        raise Unauthenticated(MALFORMED_PAYLOAD_MESSAGE)

    return SessionClaim(
        user_id=user_id,
        company_id=company_id,
        role=str(payload.get("role") or "member").strip().lower(),
        issued_at=int(payload.get("iat") or 0),
        expires_at=exp_ts,
    )


def authenticate_header(header_value: Optional[str], secret: str, now: Optional[datetime] = None) -> SessionClaim:
    """Turn a raw Authorization header into a verified claim or raise Unauthenticated."""
    return verify_session_token(extract_bearer_token(header_value), secret, now)


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    hashed = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PASSWORD_HASH_ITERATIONS)
    return f"pbkdf2_sha256${PASSWORD_HASH_ITERATIONS}${salt}${hashed.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    parts = str(stored or "").split("$")
    if len(parts) != 4 or parts[0] != "pbkdf2_sha256" or not parts[1].isdigit():
        return False
    _, iterations, salt, expected = parts
    check = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return secrets.compare_digest(check.hex(), expected)
