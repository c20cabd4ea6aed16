"""
JWT Service — token generation, verification and session persistence.

Access token: 7 days (configurable via JWT_ACCESS_EXPIRES)
Algorithm:    HS256

Token payload:
{
    "sub": "<user_id>",
    "email": "...",
    "role": "admin",
    "tenant_id": <tenant_id | null>,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Every issued token is backed by a Session row keyed by the SHA-256 of the
token, so logging out (deleting sessions) invalidates it before ``exp``.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.models import db
from app.models.auth import Session


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 604800   # 7 days
DEFAULT_SESSION_DAYS = 7
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def session_lifetime() -> timedelta:
    return timedelta(days=current_app.config.get("SESSION_LIFETIME_DAYS", DEFAULT_SESSION_DAYS))


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(
    user_id: int,
    email: str,
    role: str | None,
    tenant_id: int | None = None,
) -> tuple[str, datetime]:
    """Generate a signed access token. Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_access_expires())
    payload = {
        # PyJWT requires "sub" to be a string
        "sub": str(user_id),
        "email": email,
        "role": role,
        "tenant_id": tenant_id,
        "type": "access",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM), expires_at


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


def hash_token(token: str) -> str:
    """SHA-256 hash of a token; only hashes are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════
# Session Management
# All session persistence belongs in this service, not in blueprints.
# ═══════════════════════════════════════════════════════════════
def create_session(
    user_id: int,
    token: str,
    ip_address: str | None,
    user_agent: str | None,
) -> Session:
    """Persist a new session that expires ``SESSION_LIFETIME_DAYS`` from now.

    The caller owns the commit so the session lands in the same transaction
    as the login bookkeeping.
    """
    session = Session(
        user_id=user_id,
        token_hash=hash_token(token),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=datetime.now(timezone.utc) + session_lifetime(),
    )
    db.session.add(session)
    return session


def get_active_session(user_id: int, token: str) -> Session | None:
    """Return the unexpired session matching this user and token, if any."""
    session = Session.query.filter_by(user_id=user_id, token_hash=hash_token(token)).first()
    if session is None or session.is_expired:
        return None
    return session


def delete_user_sessions(user_id: int) -> int:
    """Delete every session for a user (logout everywhere). Caller commits."""
    return Session.query.filter_by(user_id=user_id).delete(synchronize_session=False)
