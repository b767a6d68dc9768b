from __future__ import annotations

from typing import Protocol

import httpx

from tdclient.domain.exchange import Exchange
from tdclient.domain.request import ApiRequest


class TransportFailure(Exception):
    """Raised by a transport when no HTTP response was received."""

    def __init__(self, request: ApiRequest, cause: httpx.TransportError) -> None:
        super().__init__(f"{request.describe()} failed: {type(cause).__name__}: {cause}")
        self.request = request
        self.cause = cause


class MalformedBodyFailure(Exception):
    """Raised while reading a response body whose content encoding is corrupt."""

    def __init__(self, request: ApiRequest, cause: httpx.DecodingError) -> None:
        super().__init__(f"{request.describe()} body could not be decoded: {cause}")
        self.request = request
        self.cause = cause


class Transport(Protocol):
    def submit(self, request: ApiRequest) -> Exchange: ...
