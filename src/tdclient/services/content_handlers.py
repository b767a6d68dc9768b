"""Strategies that consume the body of a successful exchange."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar

from tdclient.domain.errors import ProcessingError, ProcessingErrorKind
from tdclient.domain.exchange import Exchange

T_co = TypeVar("T_co", covariant=True)

DEFAULT_MAX_CONTENT_LENGTH = 64 * 1024 * 1024


class ContentHandler(Protocol[T_co]):
    def handle(self, exchange: Exchange) -> T_co: ...


def _too_large(limit: int, *, declared: int | None = None) -> ProcessingError:
    if declared is not None:
        message = f"declared Content-Length {declared} exceeds max content length {limit}"
    else:
        message = f"response body exceeds max content length {limit}"
    return ProcessingError(message, kind=ProcessingErrorKind.CONTENT_TOO_LARGE)


def _check_limit(limit: int) -> int:
    if limit < 0:
        raise ValueError("max_content_length must be >= 0")
    return limit


class BufferingContentHandler:
    """Buffers the full body, failing as soon as it grows past the limit."""

    def __init__(self, max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH) -> None:
        self.max_content_length = _check_limit(max_content_length)

    def handle(self, exchange: Exchange) -> bytes:
        body = exchange.read_limited(self.max_content_length)
        if body is None:
            raise _too_large(self.max_content_length)
        return body


class DeclaredLengthContentHandler(BufferingContentHandler):
    """Rejects an oversized ``Content-Length`` before reading any of the body."""

    def handle(self, exchange: Exchange) -> bytes:
        try:
            declared = exchange.declared_content_length()
        except ValueError as exc:
            raise ProcessingError(str(exc), kind=ProcessingErrorKind.MALFORMED_RESPONSE) from exc
        if declared is not None and declared > self.max_content_length:
            raise _too_large(self.max_content_length, declared=declared)
        return super().handle(exchange)


class TextContentHandler:
    def __init__(
        self,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        *,
        encoding: str = "utf-8",
    ) -> None:
        self._buffering = DeclaredLengthContentHandler(max_content_length)
        self.encoding = encoding

    def handle(self, exchange: Exchange) -> str:
        body = self._buffering.handle(exchange)
        try:
            return body.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise ProcessingError(
                f"response body is not valid {self.encoding}",
                kind=ProcessingErrorKind.MALFORMED_RESPONSE,
            ) from exc


class StreamingContentHandler:
    """Forwards body chunks to ``sink`` without buffering; returns the byte count.

    The limit is checked before each chunk is forwarded, so the sink never
    receives more than ``max_content_length`` bytes.
    """

    def __init__(
        self,
        sink: Callable[[bytes], object],
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
    ) -> None:
        self._sink = sink
        self.max_content_length = _check_limit(max_content_length)

    def handle(self, exchange: Exchange) -> int:
        try:
            declared = exchange.declared_content_length()
        except ValueError as exc:
            raise ProcessingError(str(exc), kind=ProcessingErrorKind.MALFORMED_RESPONSE) from exc
        if declared is not None and declared > self.max_content_length:
            raise _too_large(self.max_content_length, declared=declared)

        total = 0
        for chunk in exchange.iter_bytes():
            total += len(chunk)
            if total > self.max_content_length:
                raise _too_large(self.max_content_length)
            self._sink(chunk)
        return total
