"""
Platform-wide exception hierarchy.

Services raise these types; a single application error handler renders
them in the standard error envelope:

    {"success": false, "statusCode": 404, "message": "...",
     "timestamp": "...", "path": "/api/v1/..."}

Usage:
    from app.core.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError("Project not found")
    raise ForbiddenError("Access denied to this project")
"""


class AppError(Exception):
    """Base class for every error that maps to an HTTP status.

    Args:
        message: Human-readable explanation returned to the client.
        status_code: HTTP status used by the error handler.
    """

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(AppError):
    """Raised when a requested entity does not exist (404)."""

    status_code = 404


class ConflictError(AppError):
    """Raised on a uniqueness violation: email, code, indicator name (409)."""

    status_code = 409


class BadRequestError(AppError):
    """Raised for invalid references, circular parents and rule violations (400)."""

    status_code = 400


class ForbiddenError(AppError):
    """Raised on permission, ownership or tenant-membership denial (403).

    Also covers attempted privilege escalation and mutation of
    protected accounts.
    """

    status_code = 403


class UnauthorizedError(AppError):
    """Raised for bad credentials, invalid tokens and locked accounts (401)."""

    status_code = 401


class UpstreamError(AppError):
    """Raised when an external collaborator fails to answer (502)."""

    status_code = 502
