"""Custom exceptions and helpers for consistent error responses."""

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure taxonomy shared by the client, services and handlers."""

    FRONTEND_RENDER = "frontend-render"
    FRONTEND_VALIDATION = "frontend-validation"
    FRONTEND_AUTH = "frontend-auth"
    FRONTEND_NETWORK = "frontend-network"

    BACKEND_TIMEOUT = "backend-timeout"
    BACKEND_AUTH = "backend-auth"
    BACKEND_DB = "backend-db"
    BACKEND_INTERNAL = "backend-internal"

    LLM_TIMEOUT = "llm-timeout"
    LLM_SAFETY = "llm-safety"
    LLM_TOKEN_LIMIT = "llm-token-limit"
    LLM_GENERIC = "llm-generic"

    DATA_QUERY = "data-query"
    DATA_SCHEMA = "data-schema"


_USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.FRONTEND_RENDER: "Something went wrong displaying this section. Try reloading the page.",
    ErrorKind.FRONTEND_VALIDATION: "Check the information provided and try again.",
    ErrorKind.FRONTEND_AUTH: "Your session has expired or is invalid. Please sign in again.",
    ErrorKind.BACKEND_AUTH: "Your session has expired or is invalid. Please sign in again.",
    ErrorKind.FRONTEND_NETWORK: "No connection to the server. Check your network.",
    ErrorKind.BACKEND_TIMEOUT: "The server took too long to respond. Try again later.",
    ErrorKind.LLM_TIMEOUT: "The server took too long to respond. Try again later.",
    ErrorKind.LLM_SAFETY: "The generated content was blocked by safety filters.",
    ErrorKind.LLM_TOKEN_LIMIT: "The response is too long. Try simplifying your request.",
    ErrorKind.BACKEND_DB: "Could not reach the database. Contact support if this persists.",
    ErrorKind.DATA_QUERY: "Could not reach the database. Contact support if this persists.",
}

DEFAULT_USER_MESSAGE = "An unexpected error occurred. Please try again."


def user_message(kind: Optional[ErrorKind]) -> str:
    """Return the human-facing message for an error kind."""
    if kind is None:
        return DEFAULT_USER_MESSAGE
    return _USER_MESSAGES.get(kind, DEFAULT_USER_MESSAGE)


class AppError(Exception):
    """Base class for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        kind: ErrorKind = ErrorKind.BACKEND_INTERNAL,
        details: Any = None,
        is_operational: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind
        self.details = details
        self.is_operational = is_operational

    @property
    def user_message(self) -> str:
        return user_message(self.kind)


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404, kind=ErrorKind.DATA_QUERY)


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Invalid input", details: Any = None):
        super().__init__(
            message, status_code=422, kind=ErrorKind.FRONTEND_VALIDATION, details=details
        )


class NetworkError(AppError):
    """Raised when the server could not be reached."""

    def __init__(self, message: str = "Could not reach the server", details: Any = None):
        super().__init__(
            message, status_code=503, kind=ErrorKind.FRONTEND_NETWORK, details=details
        )


class RequestTimeoutError(AppError):
    """Raised when the server kept timing out after every retry."""

    def __init__(self, message: str = "The server did not respond in time", details: Any = None):
        super().__init__(
            message, status_code=504, kind=ErrorKind.BACKEND_TIMEOUT, details=details
        )


class AuthError(AppError):
    """Raised on a 401 that a token refresh could not recover."""

    def __init__(self, message: str = "Not authorized", details: Any = None):
        super().__init__(message, status_code=401, kind=ErrorKind.BACKEND_AUTH, details=details)


class InternalServerError(AppError):
    """Raised on any 5xx from the backend; never retried."""

    def __init__(self, message: str, status: int = 500, details: Any = None):
        super().__init__(
            message,
            status_code=status,
            kind=ErrorKind.BACKEND_INTERNAL,
            details=details,
        )


def to_response(error: AppError, correlation_id: Optional[str] = None) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    body: Dict[str, Any] = {
        "message": str(error),
        "status": "error",
        "code": error.kind.value,
        "user_message": error.user_message,
    }
    if correlation_id:
        body["correlation_id"] = correlation_id
    return {
        "statusCode": error.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }
