from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ServerErrorMessage(BaseModel):
    """Error payload returned by the API on non-success responses."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    message: str
    error: str | None = None
    severity: str | None = None


class ProcessingErrorKind(StrEnum):
    CONTENT_TOO_LARGE = "content_too_large"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT = "transport"


class TDClientError(RuntimeError):
    """Base class for every error raised by the request engine."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        request_method: str | None = None,
        request_path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.request_method = request_method
        self.request_path = request_path


class TDClientHttpError(TDClientError):
    """Raised for a non-retryable HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        server_message: ServerErrorMessage | None = None,
        attempts: int = 1,
        request_method: str | None = None,
        request_path: str | None = None,
    ) -> None:
        super().__init__(
            message,
            attempts=attempts,
            request_method=request_method,
            request_path=request_path,
        )
        self.status_code = status_code
        self.server_message = server_message

    @property
    def error_code(self) -> str | None:
        return self.server_message.error if self.server_message is not None else None


class UnauthorizedError(TDClientHttpError):
    """HTTP 401."""


class ForbiddenError(TDClientHttpError):
    """HTTP 403."""


class NotFoundError(TDClientHttpError):
    """HTTP 404."""


class ConflictError(TDClientHttpError):
    """HTTP 409."""


_HTTP_ERRORS_BY_STATUS: dict[int, type[TDClientHttpError]] = {
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def http_error_for_status(status_code: int) -> type[TDClientHttpError]:
    return _HTTP_ERRORS_BY_STATUS.get(status_code, TDClientHttpError)


class RateLimitBudgetExceededError(TDClientHttpError):
    """Raised when a 429's required wait would overrun the retry time budget."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: datetime,
        attempts: int = 1,
        request_method: str | None = None,
        request_path: str | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=429,
            attempts=attempts,
            request_method=request_method,
            request_path=request_path,
        )
        self.retry_after = retry_after


class RetryLimitExceededError(TDClientError):
    """Raised when retryable responses persist past the attempt ceiling."""

    def __init__(
        self,
        message: str,
        *,
        last_status_code: int,
        attempts: int,
        retry_after: datetime | None = None,
        request_method: str | None = None,
        request_path: str | None = None,
    ) -> None:
        super().__init__(
            message,
            attempts=attempts,
            request_method=request_method,
            request_path=request_path,
        )
        self.last_status_code = last_status_code
        self.retry_after = retry_after


class ProcessingError(TDClientError):
    """Local failure unrelated to the server status."""

    def __init__(
        self,
        message: str,
        *,
        kind: ProcessingErrorKind,
        attempts: int = 1,
        request_method: str | None = None,
        request_path: str | None = None,
    ) -> None:
        super().__init__(
            message,
            attempts=attempts,
            request_method=request_method,
            request_path=request_path,
        )
        self.kind = kind
