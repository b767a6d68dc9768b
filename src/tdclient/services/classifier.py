from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

import httpx
from pydantic import ValidationError

from tdclient.adapters.transport import MalformedBodyFailure
from tdclient.domain.errors import ServerErrorMessage
from tdclient.domain.exchange import Exchange
from tdclient.services.retry_after import parse_retry_after

logger = logging.getLogger(__name__)

DEFAULT_TRANSIENT_STATUS_CODES = frozenset({500, 502, 503, 504})
DEFAULT_MAX_ERROR_BODY_BYTES = 64 * 1024


class FatalKind(StrEnum):
    HTTP = "http"
    CONTENT_TOO_LARGE = "content_too_large"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class Success:
    exchange: Exchange


@dataclass(frozen=True)
class RateLimited:
    exchange: Exchange
    retry_after: datetime | None


@dataclass(frozen=True)
class TransientFailure:
    exchange: Exchange | None
    cause: Exception | None = None

    @property
    def status_code(self) -> int | None:
        return self.exchange.status_code if self.exchange is not None else None


@dataclass(frozen=True)
class FatalFailure:
    kind: FatalKind
    status_code: int | None = None
    server_message: ServerErrorMessage | None = None
    cause: Exception | None = None
    detail: str = ""


Outcome = Success | RateLimited | TransientFailure | FatalFailure


def parse_server_error(body: bytes) -> ServerErrorMessage | None:
    """Best-effort decode of an API error payload; never raises."""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if not text.strip():
        return None
    try:
        return ServerErrorMessage.model_validate_json(text)
    except ValidationError:
        return None


def is_permanent_transport_error(exc: httpx.TransportError) -> bool:
    # A server dropping the connection mid-response is a reset, not a permanent failure.
    if isinstance(exc, httpx.RemoteProtocolError):
        return False
    permanent_errors = (
        httpx.UnsupportedProtocol,
        httpx.ProtocolError,
    )
    if isinstance(exc, permanent_errors):
        return True

    cause = getattr(exc, "__cause__", None)
    return isinstance(cause, ssl.SSLCertVerificationError)


class ErrorClassifier:
    """Maps one exchange, or one transport failure, to a classification outcome."""

    def __init__(
        self,
        *,
        transient_status_codes: frozenset[int] = DEFAULT_TRANSIENT_STATUS_CODES,
        max_error_body_bytes: int = DEFAULT_MAX_ERROR_BODY_BYTES,
    ) -> None:
        if max_error_body_bytes < 0:
            raise ValueError("max_error_body_bytes must be >= 0")
        self._transient_status_codes = frozenset(transient_status_codes)
        self._max_error_body_bytes = max_error_body_bytes

    def classify(self, exchange: Exchange) -> Outcome:
        status = exchange.status_code
        if exchange.is_success:
            return Success(exchange)
        if status == 429:
            return RateLimited(exchange, parse_retry_after(exchange.headers, exchange.started_at))
        if status in self._transient_status_codes:
            return TransientFailure(exchange)

        try:
            body = exchange.read_limited(self._max_error_body_bytes)
        except MalformedBodyFailure:
            logger.debug("undecodable_error_body", extra={"extra": {"status_code": status}})
            return FatalFailure(kind=FatalKind.HTTP, status_code=status)
        if body is None:
            return FatalFailure(
                kind=FatalKind.CONTENT_TOO_LARGE,
                status_code=status,
                detail=f"error body exceeds {self._max_error_body_bytes} bytes",
            )
        server_message = parse_server_error(body)
        if server_message is None and body:
            logger.debug("unparsed_error_body", extra={"extra": {"status_code": status}})
        return FatalFailure(kind=FatalKind.HTTP, status_code=status, server_message=server_message)

    def classify_transport_error(self, exc: httpx.TransportError) -> Outcome:
        if is_permanent_transport_error(exc):
            return FatalFailure(kind=FatalKind.TRANSPORT, cause=exc, detail=str(exc))
        return TransientFailure(None, cause=exc)
