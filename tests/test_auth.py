"""
Auth Tests — credentials, sessions, lockout and password flows.

Tests cover:
  - Password hashing (bcrypt) and reset tokens
  - JWT token generation / verification
  - Login by email or code, login log rows
  - Lockout after repeated failures and its expiry
  - Bearer middleware: missing, invalid, revoked tokens
  - Forgot / reset / change password
  - Profile read & update, own login history
"""

from datetime import timedelta

import jwt
import pytest
from werkzeug.security import generate_password_hash

from app.middleware.jwt_auth import is_public_path
from app.models import db
from app.models.auth import LoginLog, Session, User
from app.models.email_log import EmailLog
from app.services import auth_service
from app.services.jwt_service import decode_access_token, generate_access_token, hash_token
from app.utils.crypto import generate_reset_token, hash_password, needs_rehash, verify_password
from app.utils.helpers import utcnow

from tests.conftest import DEFAULT_PASSWORD


def _login(client, identifier, password=DEFAULT_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": identifier, "password": password})


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Crypto & JWT
# ═══════════════════════════════════════════════════════════════

class TestCrypto:
    def test_hash_and_verify(self):
        hashed = hash_password("CorrectHorse1")
        assert hashed.startswith("$2")
        assert verify_password("CorrectHorse1", hashed)
        assert not verify_password("wrong", hashed)

    def test_verify_rejects_garbage_hash(self):
        assert not verify_password("anything", "not-a-hash")

    def test_reset_tokens_are_unique(self):
        assert generate_reset_token() != generate_reset_token()
        assert len(generate_reset_token()) == 64

    def test_legacy_werkzeug_hash_still_verifies(self):
        legacy = generate_password_hash("CorrectHorse1")
        assert verify_password("CorrectHorse1", legacy)
        assert needs_rehash(legacy)
        assert not needs_rehash(hash_password("CorrectHorse1"))

    def test_long_passwords_hash(self):
        long_password = "x" * 100
        assert verify_password(long_password, hash_password(long_password))


class TestJWT:
    def test_roundtrip_claims(self):
        token, expires_at = generate_access_token(7, "a@example.com", "user", 3)
        payload = decode_access_token(token)
        assert payload["sub"] == "7"
        assert payload["email"] == "a@example.com"
        assert payload["role"] == "user"
        assert payload["tenant_id"] == 3
        assert expires_at > utcnow()

    def test_tampered_token_rejected(self):
        token, _ = generate_access_token(1, "a@example.com", "user", None)
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token.rsplit(".", 1)[0] + ".bogus-signature")

    def test_token_hash_is_stable_sha256(self):
        assert hash_token("abc") == hash_token("abc")
        assert len(hash_token("abc")) == 64


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Login
# ═══════════════════════════════════════════════════════════════

class TestLogin:
    def test_login_by_email_returns_token_and_user(self, client, regular_user):
        res = _login(client, "ALICE@example.com")
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        data = body["data"]
        assert data["token_type"] == "Bearer"
        assert data["access_token"]
        assert data["user"]["email"] == "alice@example.com"
        assert "password_hash" not in data["user"]
        assert Session.query.filter_by(user_id=regular_user.id).count() == 1

    def test_login_by_code(self, client, regular_user):
        res = _login(client, regular_user.code)
        assert res.status_code == 200

    def test_legacy_hash_upgraded_on_login(self, client, regular_user):
        regular_user.password_hash = generate_password_hash(DEFAULT_PASSWORD)
        db.session.commit()
        assert _login(client, "alice@example.com").status_code == 200
        assert db.session.get(User, regular_user.id).password_hash.startswith("$2")

    def test_login_records_success_log(self, client, regular_user):
        _login(client, "alice@example.com")
        log = LoginLog.query.filter_by(user_id=regular_user.id).one()
        assert log.success is True
        assert db.session.get(User, regular_user.id).last_login is not None

    def test_unknown_user_is_unauthorized(self, client, roles):
        res = _login(client, "nobody@example.com")
        assert res.status_code == 401
        body = res.get_json()
        assert body["success"] is False
        assert body["statusCode"] == 401
        assert body["message"] == "Invalid credentials"
        assert body["path"] == "/api/v1/auth/login"
        assert LoginLog.query.filter_by(identifier="nobody@example.com").count() == 1

    def test_missing_fields_is_bad_request(self, client, roles):
        res = client.post("/api/v1/auth/login", json={"email": "x@example.com"})
        assert res.status_code == 400

    def test_inactive_account(self, client, make_user):
        make_user("user", email="gone@example.com", is_active=False)
        res = _login(client, "gone@example.com")
        assert res.status_code == 401
        assert res.get_json()["message"] == "Account is inactive"


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Lockout
# ═══════════════════════════════════════════════════════════════

class TestLockout:
    def test_four_failures_leave_account_unlocked(self, client, regular_user):
        for _ in range(4):
            assert _login(client, "alice@example.com", "wrong-password").status_code == 401
        user = db.session.get(User, regular_user.id)
        assert user.login_attempts == 4
        assert user.locked_until is None

    def test_fifth_failure_locks_account(self, client, regular_user):
        for _ in range(5):
            _login(client, "alice@example.com", "wrong-password")
        user = db.session.get(User, regular_user.id)
        assert user.is_locked()
        assert user.locked_until.replace(tzinfo=None) > utcnow().replace(tzinfo=None)

    def test_locked_account_rejects_correct_password(self, client, regular_user):
        for _ in range(5):
            _login(client, "alice@example.com", "wrong-password")
        res = _login(client, "alice@example.com")
        assert res.status_code == 401
        assert "temporarily locked" in res.get_json()["message"]

    def test_lock_sends_notification(self, client, regular_user):
        for _ in range(5):
            _login(client, "alice@example.com", "wrong-password")
        log = EmailLog.query.filter_by(template_name="account_locked").one()
        assert log.recipient_email == "alice@example.com"

    def test_expired_lock_allows_login_and_resets_attempts(self, client, regular_user):
        regular_user.login_attempts = 5
        regular_user.locked_until = utcnow() - timedelta(minutes=1)
        db.session.commit()

        res = _login(client, "alice@example.com")
        assert res.status_code == 200
        user = db.session.get(User, regular_user.id)
        assert user.login_attempts == 0
        assert user.locked_until is None

    def test_expired_lock_starts_fresh_attempt_window(self, client, regular_user):
        regular_user.login_attempts = 5
        regular_user.locked_until = utcnow() - timedelta(minutes=1)
        db.session.commit()

        _login(client, "alice@example.com", "wrong-password")
        user = db.session.get(User, regular_user.id)
        assert user.login_attempts == 1
        assert not user.is_locked()

    def test_success_resets_attempt_counter(self, client, regular_user):
        _login(client, "alice@example.com", "wrong-password")
        _login(client, "alice@example.com")
        assert db.session.get(User, regular_user.id).login_attempts == 0


# ═══════════════════════════════════════════════════════════════
# BLOCK 4: Bearer middleware & sessions
# ═══════════════════════════════════════════════════════════════

class TestBearerAuth:
    def test_missing_header(self, client, roles):
        res = client.get("/api/v1/auth/profile")
        assert res.status_code == 401
        assert res.get_json()["message"] == "Authentication required"

    def test_garbage_token(self, client, roles):
        res = client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401
        assert res.get_json()["message"] == "Invalid token"

    def test_token_without_session(self, client, regular_user):
        token, _ = generate_access_token(regular_user.id, regular_user.email, "user", None)
        res = client.get("/api/v1/auth/profile", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["message"] == "Session expired or revoked"

    def test_expired_session(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        for s in Session.query.filter_by(user_id=regular_user.id):
            s.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert client.get("/api/v1/auth/profile", headers=headers).status_code == 401

    def test_deactivated_user_rejected(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        regular_user.is_active = False
        db.session.commit()
        res = client.get("/api/v1/auth/profile", headers=headers)
        assert res.status_code == 401
        assert res.get_json()["message"] == "User not found or inactive"

    def test_logout_revokes_all_sessions(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        other = auth_headers(regular_user)
        assert client.post("/api/v1/auth/logout", headers=headers).status_code == 200
        assert Session.query.filter_by(user_id=regular_user.id).count() == 0
        assert client.get("/api/v1/auth/profile", headers=other).status_code == 401

    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["success"] is True

    def test_route_sharing_a_public_prefix_still_needs_token(self, client, roles):
        res = client.get("/api/v1/auth/login-history")
        assert res.status_code == 401
        assert res.get_json()["message"] == "Authentication required"

    def test_route_sharing_a_public_prefix_resolves_user(self, client, regular_user, auth_headers):
        res = client.get("/api/v1/auth/login-history", headers=auth_headers(regular_user))
        assert res.status_code == 200
        assert res.get_json()["data"] == []

    @pytest.mark.parametrize("path,public", [
        ("/api/v1/auth/login", True),
        ("/api/v1/auth/login/", True),
        ("/api/v1/health", True),
        ("/api/v1/health/db", True),
        ("/api/v1/auth/login-history", False),
        ("/api/v1/healthcheck", False),
        ("/api/v1/auth/reset-password-admin", False),
    ])
    def test_public_paths_match_whole_segments(self, path, public):
        assert is_public_path(path) is public


# ═══════════════════════════════════════════════════════════════
# BLOCK 5: Password flows
# ═══════════════════════════════════════════════════════════════

class TestPasswordFlows:
    def test_forgot_password_unknown_email_same_answer(self, client, roles):
        res = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert res.status_code == 200
        assert EmailLog.query.count() == 0

    def test_forgot_password_issues_one_hour_token(self, client, regular_user):
        res = client.post("/api/v1/auth/forgot-password", json={"email": "alice@example.com"})
        assert res.status_code == 200
        user = db.session.get(User, regular_user.id)
        assert user.reset_token
        remaining = user.reset_token_expires.replace(tzinfo=None) - utcnow().replace(tzinfo=None)
        assert timedelta(minutes=59) < remaining <= timedelta(minutes=60)
        assert EmailLog.query.filter_by(template_name="password_reset").count() == 1

    def test_reset_password_unlocks_and_revokes(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        auth_service.forgot_password("alice@example.com")
        user = db.session.get(User, regular_user.id)
        user.login_attempts = 5
        user.locked_until = utcnow() + timedelta(minutes=30)
        db.session.commit()

        res = client.post("/api/v1/auth/reset-password",
                          json={"token": user.reset_token, "new_password": "BrandNew!2024"})
        assert res.status_code == 200
        user = db.session.get(User, regular_user.id)
        assert user.reset_token is None
        assert user.locked_until is None
        assert user.login_attempts == 0
        assert client.get("/api/v1/auth/profile", headers=headers).status_code == 401
        assert _login(client, "alice@example.com", "BrandNew!2024").status_code == 200

    def test_reset_password_expired_token(self, client, regular_user):
        regular_user.reset_token = "t" * 64
        regular_user.reset_token_expires = utcnow() - timedelta(minutes=1)
        db.session.commit()
        res = client.post("/api/v1/auth/reset-password",
                          json={"token": "t" * 64, "new_password": "BrandNew!2024"})
        assert res.status_code == 400
        assert res.get_json()["message"] == "Invalid or expired reset token"

    def test_change_password_wrong_current(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/auth/change-password", headers=auth_headers(regular_user),
                          json={"current_password": "nope", "new_password": "BrandNew!2024"})
        assert res.status_code == 400
        assert res.get_json()["message"] == "Current password is incorrect"

    def test_change_password(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/auth/change-password", headers=auth_headers(regular_user),
                          json={"current_password": DEFAULT_PASSWORD, "new_password": "BrandNew!2024"})
        assert res.status_code == 200
        assert verify_password("BrandNew!2024", db.session.get(User, regular_user.id).password_hash)


# ═══════════════════════════════════════════════════════════════
# BLOCK 6: Profile
# ═══════════════════════════════════════════════════════════════

class TestProfile:
    def test_profile_includes_permissions(self, client, regular_user, auth_headers):
        res = client.get("/api/v1/auth/profile", headers=auth_headers(regular_user))
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["role_name"] == "user"
        assert "project:read" in data["permissions"]
        assert "project:delete" not in data["permissions"]

    def test_update_profile_ignores_protected_fields(self, client, regular_user, auth_headers):
        res = client.put("/api/v1/auth/profile", headers=auth_headers(regular_user),
                         json={"city": "Oslo", "email": "hijack@example.com", "role_id": 1})
        assert res.status_code == 200
        user = db.session.get(User, regular_user.id)
        assert user.city == "Oslo"
        assert user.email == "alice@example.com"

    def test_own_login_history(self, client, regular_user):
        _login(client, "alice@example.com", "wrong-password")
        token = _login(client, "alice@example.com").get_json()["data"]["access_token"]
        res = client.get("/api/v1/auth/login-history", headers={"Authorization": f"Bearer {token}"})
        logs = res.get_json()["data"]
        assert [entry["success"] for entry in logs] == [True, False]
