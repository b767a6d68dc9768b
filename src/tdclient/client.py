from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import httpx

from tdclient.adapters.httpx_transport import HttpxTransport
from tdclient.adapters.transport import Transport
from tdclient.config import Settings
from tdclient.domain.exchange import utc_now
from tdclient.domain.request import ApiRequest
from tdclient.logging_utils import configure_logging
from tdclient.services.backoff import RandomSource
from tdclient.services.classifier import ErrorClassifier
from tdclient.services.content_handlers import (
    ContentHandler,
    DeclaredLengthContentHandler,
    TextContentHandler,
)
from tdclient.services.executor import RequestExecutor, blocking_sleep


class TDHttpClient:
    """Entry point used by API collaborators to run requests with retries."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: Transport | None = None,
        http_transport: httpx.BaseTransport | None = None,
        default_headers: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = blocking_sleep,
        rng: RandomSource | None = None,
    ) -> None:
        self.settings = settings or Settings()
        if self.settings.log_json:
            configure_logging(self.settings)
        self._owned_transport: HttpxTransport | None = None
        if transport is None:
            self._owned_transport = HttpxTransport(
                base_url=self.settings.api_endpoint,
                timeout=self.settings.http_timeout(),
                default_headers=default_headers,
                user_agent=self.settings.user_agent,
                transport=http_transport,
                clock=clock,
            )
            transport = self._owned_transport
        self.executor = RequestExecutor(
            transport,
            self.settings.backoff_config(),
            ErrorClassifier(max_error_body_bytes=self.settings.max_error_body_length),
            default_handler=DeclaredLengthContentHandler(self.settings.max_content_length),
            clock=clock,
            sleep=sleep,
            rng=rng,
            max_total_wait=self.settings.max_total_wait(),
        )

    def __enter__(self) -> TDHttpClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close()

    def close(self) -> None:
        if self._owned_transport is not None:
            self._owned_transport.close()

    def submit(self, request: ApiRequest, handler: ContentHandler[Any] | None = None) -> Any:
        """Run ``request`` and return what ``handler`` (bytes by default) produces."""
        if handler is None:
            return self.executor.execute(request)
        return self.executor.execute(request, handler)

    def call(self, request: ApiRequest) -> str:
        """Run ``request`` and return the body as text."""
        return self.executor.execute(request, TextContentHandler(self.settings.max_content_length))
