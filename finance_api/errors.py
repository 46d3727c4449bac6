from __future__ import annotations


class FinanceError(Exception):
    """Base class for errors rendered as the API error envelope."""

    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FinanceError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class Unauthorized(FinanceError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class TokenInvalid(Unauthorized):
    error_code = "INVALID_TOKEN"


class TokenExpired(Unauthorized):
    error_code = "TOKEN_EXPIRED"


class Forbidden(FinanceError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(FinanceError):
    status_code = 404
    error_code = "NOT_FOUND"


class Conflict(FinanceError):
    status_code = 409
    error_code = "CONFLICT"


class StorageError(FinanceError):
    status_code = 500
    error_code = "STORAGE_ERROR"
