# backend/backoffice/errors.py
from __future__ import annotations

from typing import Any, Optional


class ApiError(Exception):
    """
    Error with a stable machine code.

    Rendered by the handlers in main.py as:
        {"success": false, "error": {"code", "message", "details"?}}
    """

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def envelope(self) -> dict[str, Any]:
        err: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            err["details"] = self.details
        return {"success": False, "error": err}


class AuthError(ApiError):
    status_code = 401
    code = "INVALID_TOKEN"


class ForbiddenError(ApiError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class StateError(ApiError):
    status_code = 400
    code = "INVALID_STATUS"


class ConflictError(ApiError):
    status_code = 409
    code = "CONFLICT"


class ValidationFailed(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"


def error_for_denial(code: str, message: str) -> ApiError:
    """Map a policy denial code onto the matching error class."""
    if code == "INSUFFICIENT_PERMISSIONS":
        return ForbiddenError(message, code=code)
    if code in ("INVALID_STATUS", "PROPERTY_NOT_BOOKABLE"):
        return StateError(message, code=code)
    if code == "UNKNOWN_ACTION":
        return ValidationFailed(message, code=code)
    return ApiError(message, code=code)
