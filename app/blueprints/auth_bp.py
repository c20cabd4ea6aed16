"""
Auth Blueprint — login, sessions, password flows and the caller's profile.

Endpoints:
  POST /api/v1/auth/login             — email/code + password → bearer token  (public)
  POST /api/v1/auth/forgot-password   — issue a reset token by email          (public)
  POST /api/v1/auth/reset-password    — token + new password                  (public)
  POST /api/v1/auth/logout            — revoke every session of the caller
  POST /api/v1/auth/change-password   — current + new password
  GET  /api/v1/auth/profile           — caller with role and permissions
  PUT  /api/v1/auth/profile           — update own profile fields
  GET  /api/v1/auth/login-history     — caller's last 50 login attempts
"""

from flask import Blueprint

from app.blueprints import client_info, current_user, json_body
from app.middleware.permission_required import require_permission
from app.services import auth_service
from app.utils.responses import api_success

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# Public
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "..." }   ("code" is accepted in place of email)
    """
    data = json_body()
    identifier = data.get("email") or data.get("code") or data.get("identifier")
    ip_address, user_agent = client_info()
    result = auth_service.login(identifier, data.get("password"), ip_address, user_agent)
    return api_success(result)


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    auth_service.forgot_password(json_body().get("email"))
    # Same answer whether or not the address exists
    return api_success({"message": "If the email exists, a password reset link has been sent"})


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    data = json_body()
    auth_service.reset_password(data.get("token"), data.get("new_password") or data.get("password"))
    return api_success({"message": "Password has been reset successfully"})


# ═══════════════════════════════════════════════════════════════
# Authenticated
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    auth_service.logout(current_user().id)
    return api_success({"message": "Logged out successfully"})


@auth_bp.route("/change-password", methods=["POST"])
def change_password():
    data = json_body()
    auth_service.change_password(
        current_user().id, data.get("current_password"), data.get("new_password"),
    )
    return api_success({"message": "Password changed successfully"})


@auth_bp.route("/profile", methods=["GET"])
@require_permission("profile:read")
def get_profile():
    return api_success(auth_service.get_profile(current_user().id))


@auth_bp.route("/profile", methods=["PUT"])
@require_permission("profile:update")
def update_profile():
    user = auth_service.update_profile(current_user().id, json_body())
    return api_success(user.to_dict())


@auth_bp.route("/login-history", methods=["GET"])
def login_history():
    logs = auth_service.get_login_history(current_user().id)
    return api_success([log.to_dict() for log in logs])
