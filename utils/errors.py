"""
Error taxonomy shared by the OTP and pairing services.

Every error carries the HTTP status it maps to and a short dialog title;
`main.py` renders them as `{"ok": false, "title", "error", ...}`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable


class AppError(Exception):
    status_code = 500
    title = "Error!"

    def __init__(self, detail: str, *, status_code: int | None = None, title: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        if title is not None:
            self.title = title

    def extra(self) -> Dict[str, Any]:
        return {}


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401
    title = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    title = "Not Found"


class ExpiredError(AppError):
    status_code = 410
    title = "OTP Expired"


class InvalidCodeError(AppError):
    status_code = 401
    title = "Invalid OTP"


class RateLimitError(AppError):
    status_code = 429
    title = "Too Many Requests"

    def __init__(self, wait_seconds: int) -> None:
        super().__init__(f"Please wait {wait_seconds} seconds before requesting a new OTP.")
        self.wait_seconds = wait_seconds

    def extra(self) -> Dict[str, Any]:
        return {"wait_seconds": self.wait_seconds}


class EmptyGroupError(AppError):
    status_code = 400


class InsufficientCapacityError(AppError):
    status_code = 400


class ConflictError(AppError):
    status_code = 409

    def __init__(self, detail: str, names: Iterable[str] = ()) -> None:
        super().__init__(detail)
        self.names = list(names)

    def extra(self) -> Dict[str, Any]:
        return {"names": self.names} if self.names else {}


class StorageError(AppError):
    status_code = 500


class DispatchError(AppError):
    status_code = 500
