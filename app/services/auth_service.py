"""
Auth Service — login with lockout, sessions, password reset, profile.

Lockout state machine:
    UNLOCKED ──(MAX_LOGIN_ATTEMPTS failures)──▶ LOCKED
    LOCKED ──(lock expiry + successful login | admin unlock | password reset)──▶ UNLOCKED

Every attempt (successful or not) writes a LoginLog row. Failure reasons:
"user not found", "account locked", "account inactive", "invalid password".

Emails triggered here are sent after the state change is committed and
never affect the outcome of the request.
"""

import logging
from datetime import timedelta

import jwt
from flask import current_app
from sqlalchemy import func, or_

from app.core.exceptions import BadRequestError, NotFoundError, UnauthorizedError
from app.models import db
from app.models.auth import LoginLog, User
from app.services import email_service
from app.services.jwt_service import (
    create_session,
    decode_access_token,
    delete_user_sessions,
    generate_access_token,
    get_active_session,
)
from app.services.permission_service import get_role_permissions
from app.utils.crypto import generate_reset_token, hash_password, needs_rehash, verify_password
from app.utils.helpers import as_utc, check_password_policy, utcnow

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "user not found"
REASON_LOCKED = "account locked"
REASON_INACTIVE = "account inactive"
REASON_BAD_PASSWORD = "invalid password"

PROFILE_FIELDS = (
    "first_name", "last_name", "phone", "address", "city", "country", "postal_code", "avatar",
)


def _max_attempts() -> int:
    return current_app.config.get("MAX_LOGIN_ATTEMPTS", 5)


def _lock_minutes() -> int:
    return current_app.config.get("LOCK_TIME_MINUTES", 30)


def _find_by_identifier(identifier: str) -> User | None:
    ident = identifier.strip()
    return User.query.filter(
        or_(func.lower(User.email) == ident.lower(), User.code == ident)
    ).first()


def _record_attempt(user, identifier, ip_address, user_agent, success, reason=None):
    db.session.add(LoginLog(
        user_id=user.id if user else None,
        identifier=identifier[:255],
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        success=success,
        reason=reason,
    ))


def _fail(user, identifier, ip_address, user_agent, reason, message):
    _record_attempt(user, identifier, ip_address, user_agent, False, reason)
    db.session.commit()
    logger.warning(
        "Login failed for '%s': %s (ip=%s)", identifier, reason, ip_address,
        extra={"event_type": "login_failed"},
    )
    raise UnauthorizedError(message)


# ═══════════════════════════════════════════════════════════════
# Login / Logout
# ═══════════════════════════════════════════════════════════════
def login(identifier, password, ip_address=None, user_agent=None) -> dict:
    """Authenticate by email or code and open a session.

    Returns {access_token, token_type, expires_at, user}.
    """
    if not identifier or not password:
        raise BadRequestError("Email and password are required")

    user = _find_by_identifier(identifier)
    if user is None:
        _fail(None, identifier, ip_address, user_agent, REASON_NOT_FOUND, "Invalid credentials")

    now = utcnow()
    if user.is_locked(now):
        _fail(user, identifier, ip_address, user_agent, REASON_LOCKED,
              "Account is temporarily locked")

    if not user.is_active or user.is_deleted:
        _fail(user, identifier, ip_address, user_agent, REASON_INACTIVE, "Account is inactive")

    if user.locked_until is not None:
        # Lock has expired; start a fresh attempt window
        user.locked_until = None
        user.login_attempts = 0

    if not verify_password(password, user.password_hash):
        user.login_attempts = (user.login_attempts or 0) + 1
        just_locked = user.login_attempts >= _max_attempts()
        if just_locked:
            user.locked_until = now + timedelta(minutes=_lock_minutes())
            logger.warning(
                "Account %s locked until %s after %d failed attempts",
                user.id, user.locked_until.isoformat(), user.login_attempts,
                extra={"event_type": "account_locked"},
            )
        _record_attempt(user, identifier, ip_address, user_agent, False, REASON_BAD_PASSWORD)
        db.session.commit()
        if just_locked:
            email_service.send_account_locked(user, user.login_attempts)
        logger.warning(
            "Login failed for '%s': %s (attempt %d, ip=%s)",
            identifier, REASON_BAD_PASSWORD, user.login_attempts, ip_address,
            extra={"event_type": "login_failed"},
        )
        raise UnauthorizedError("Invalid credentials")

    user.login_attempts = 0
    user.locked_until = None
    user.last_login = now
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    token, expires_at = generate_access_token(user.id, user.email, user.role_name, user.tenant_id)
    create_session(user.id, token, ip_address, user_agent)
    _record_attempt(user, identifier, ip_address, user_agent, True)
    db.session.commit()
    logger.info("User %s logged in", user.id, extra={"event_type": "login_success"})

    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_at": expires_at.isoformat(),
        "user": user.to_dict(include_permissions=True),
    }


def logout(user_id: int) -> int:
    """Delete every session of the user. Returns the number removed."""
    removed = delete_user_sessions(user_id)
    db.session.commit()
    logger.info("User %s logged out (%d sessions)", user_id, removed)
    return removed


def authenticate_token(token: str) -> User:
    """Resolve a bearer token to an active user or raise UnauthorizedError."""
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid token")

    if get_active_session(user_id, token) is None:
        raise UnauthorizedError("Session expired or revoked")

    user = db.session.get(User, user_id)
    if user is None or user.is_deleted or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    if user.is_locked():
        raise UnauthorizedError("Account is temporarily locked")
    return user


# ═══════════════════════════════════════════════════════════════
# Password reset / change
# ═══════════════════════════════════════════════════════════════
def forgot_password(email) -> None:
    """Issue a reset token. Silent when the address is unknown."""
    if not email or not isinstance(email, str):
        raise BadRequestError("Email is required")
    user = User.query.filter(func.lower(User.email) == email.strip().lower()).first()
    if user is None or user.is_deleted or not user.is_active:
        logger.info("Password reset requested for unknown or inactive address")
        return

    expires_minutes = current_app.config.get("RESET_TOKEN_EXPIRES_MINUTES", 60)
    token = generate_reset_token()
    user.reset_token = token
    user.reset_token_expires = utcnow() + timedelta(minutes=expires_minutes)
    db.session.commit()
    logger.info("Password reset token issued for user %s", user.id)
    email_service.send_password_reset(user, token, expires_minutes)


def reset_password(token, new_password) -> None:
    if not token:
        raise BadRequestError("Invalid or expired reset token")
    check_password_policy(new_password)

    user = User.query.filter_by(reset_token=token).first()
    if (
        user is None
        or user.reset_token_expires is None
        or as_utc(user.reset_token_expires) < utcnow()
    ):
        raise BadRequestError("Invalid or expired reset token")

    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires = None
    user.login_attempts = 0
    user.locked_until = None
    delete_user_sessions(user.id)
    db.session.commit()
    logger.info("Password reset completed for user %s", user.id,
                extra={"event_type": "password_reset"})
    email_service.send_password_changed(user)


def change_password(user_id: int, current_password, new_password) -> None:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not current_password or not verify_password(current_password, user.password_hash):
        raise BadRequestError("Current password is incorrect")
    check_password_policy(new_password)
    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("User %s changed their password", user.id)
    email_service.send_password_changed(user)


# ═══════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════
def get_profile(user_id: int) -> dict:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    d = user.to_dict(include_permissions=True)
    d["permissions"] = sorted(get_role_permissions(user.role_id))
    return d


def update_profile(user_id: int, data: dict) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, data[field])
    if "preferences" in data:
        if data["preferences"] is not None and not isinstance(data["preferences"], dict):
            raise BadRequestError("preferences must be an object")
        user.preferences = data["preferences"]
    db.session.commit()
    return user


def get_login_history(user_id: int, limit: int = 50) -> list[LoginLog]:
    return (
        LoginLog.query.filter_by(user_id=user_id)
        .order_by(LoginLog.created_at.desc(), LoginLog.id.desc())
        .limit(limit)
        .all()
    )
