from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    LOGIN_LOCKED = "LOGIN_LOCKED"
    REFRESH_REQUIRED = "REFRESH_REQUIRED"
    SESSION_INVALID = "SESSION_INVALID"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    REFRESH_REUSE = "REFRESH_REUSE"
    EMAIL_VERIFICATION_INVALID = "EMAIL_VERIFICATION_INVALID"
    EMAIL_VERIFICATION_EXPIRED = "EMAIL_VERIFICATION_EXPIRED"
    PASSWORD_RESET_INVALID = "PASSWORD_RESET_INVALID"
    PASSWORD_RESET_EXPIRED = "PASSWORD_RESET_EXPIRED"
    JWT_ACCESS_INVALID = "JWT_ACCESS_INVALID"
    JWT_ACCESS_EXPIRED = "JWT_ACCESS_EXPIRED"
    JWT_REFRESH_INVALID = "JWT_REFRESH_INVALID"
    JWT_REFRESH_EXPIRED = "JWT_REFRESH_EXPIRED"


class AppError(Exception):
    """Intentional, client-facing failure carrying an HTTP status and a machine code.

    `expose` controls whether the message may be shown to clients as-is; it
    defaults to True for 4xx statuses.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: Optional[ErrorCode] = None,
        expose: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.expose = status_code < 500 if expose is None else expose

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.status_code}, {self.code}, {self.message!r})"


class TokenInvalid(AppError):
    """Bad signature, malformed structure or unexpected claims."""

    def __init__(self, message: str, code: ErrorCode) -> None:
        super().__init__(message, 401, code)


class TokenExpired(AppError):
    """Signature checked out but the `exp` claim is in the past."""

    def __init__(self, message: str, code: ErrorCode) -> None:
        super().__init__(message, 401, code)


def validation_error(message: str) -> AppError:
    return AppError(message, 400, ErrorCode.VALIDATION)


def unauthorized() -> AppError:
    return AppError("Unauthorized", 401, ErrorCode.UNAUTHORIZED)


def forbidden() -> AppError:
    return AppError("Forbidden", 403, ErrorCode.FORBIDDEN)
