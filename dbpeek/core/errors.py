from typing import Any, Dict, Optional

from fastapi import status


class DbPeekError(Exception):
    """Base for failures that are rendered as part of the response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ConnectionFailure(DbPeekError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, host: Optional[str], database: Optional[str], reason: str):
        # Host and database only, credentials never leave the process
        super().__init__(
            "DB connection failed.",
            extra={"host": host, "database": database, "error": reason},
        )


class NotFound(DbPeekError):
    status_code = status.HTTP_404_NOT_FOUND


class PolicyViolation(DbPeekError):
    status_code = status.HTTP_403_FORBIDDEN


class EngineError(DbPeekError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthFailure(DbPeekError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class CsrfFailure(AuthFailure):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self):
        super().__init__("Bad CSRF")


def engine_message(error: Exception) -> str:
    """The driver's own message, without SQLAlchemy's statement/background suffix."""
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)
