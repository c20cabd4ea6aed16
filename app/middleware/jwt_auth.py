"""
JWT Auth Middleware — resolves the bearer token into ``g.current_user``.

Every ``/api/v1/`` request outside the public paths must carry
``Authorization: Bearer <token>``. The token has to decode, match an
unexpired session, and belong to an active, non-deleted, unlocked user.
Anything else is rejected with 401 before the view runs.

On success:
    g.current_user   CurrentUser with the role's permission set (computed once)
    g.current_token  the raw bearer token
"""

from flask import g, request

from app.core.exceptions import UnauthorizedError
from app.services.auth_service import authenticate_token
from app.services.permission_service import build_current_user


# Paths (and their sub-paths) that skip JWT auth entirely
JWT_SKIP_PATHS = (
    "/api/v1/auth/login",
    "/api/v1/auth/forgot-password",
    "/api/v1/auth/reset-password",
    "/api/v1/health",
)


def is_public_path(path: str) -> bool:
    path = path.rstrip("/")
    return any(path == public or path.startswith(public + "/") for public in JWT_SKIP_PATHS)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.current_token = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return
        if is_public_path(path):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            raise UnauthorizedError("Authentication required")

        token = auth_header[7:].strip()  # Strip "Bearer "
        if not token:
            raise UnauthorizedError("Authentication required")

        user = authenticate_token(token)
        g.current_user = build_current_user(user)
        g.current_token = token
