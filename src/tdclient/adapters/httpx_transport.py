from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime

import httpx

from tdclient.adapters.transport import MalformedBodyFailure, TransportFailure
from tdclient.domain.exchange import Exchange, utc_now
from tdclient.domain.request import ApiRequest

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.treasuredata.com"
DEFAULT_USER_AGENT = "tdclient-python"


class HttpxTransport:
    """Synchronous transport backed by a pooled ``httpx.Client``."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_ENDPOINT,
        timeout: float | httpx.Timeout = 30.0,
        default_headers: Mapping[str, str] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._clock = clock
        resolved_timeout = (
            timeout
            if isinstance(timeout, httpx.Timeout)
            else httpx.Timeout(timeout=timeout, connect=min(timeout, 10.0))
        )
        headers = {"User-Agent": user_agent}
        headers.update(default_headers or {})
        self.client = httpx.Client(
            base_url=base_url,
            timeout=resolved_timeout,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close()

    def close(self) -> None:
        self.client.close()

    def submit(self, request: ApiRequest) -> Exchange:
        headers = dict(request.headers)
        if request.body is not None and request.content_type and request.header("Content-Type") is None:
            headers["Content-Type"] = request.content_type
        http_request = self.client.build_request(
            request.method.value,
            request.path,
            params=dict(request.query_params) or None,
            headers=headers,
            content=request.body,
        )
        started_at = self._clock()
        try:
            response = self.client.send(http_request, stream=True)
        except httpx.TransportError as exc:
            logger.debug(
                "transport_failure",
                extra={"extra": {"error_type": type(exc).__name__, "path": request.path}},
            )
            raise TransportFailure(request, exc) from exc

        return Exchange(
            status_code=response.status_code,
            headers=response.headers,
            started_at=started_at,
            chunks=_ResponseChunks(request, response),
            closer=response.close,
        )


class _ResponseChunks:
    """Re-raises mid-body httpx errors as transport-level failures."""

    def __init__(self, request: ApiRequest, response: httpx.Response) -> None:
        self._request = request
        self._response = response

    def __iter__(self):
        try:
            yield from self._response.iter_bytes()
        except httpx.DecodingError as exc:
            raise MalformedBodyFailure(self._request, exc) from exc
        except httpx.TransportError as exc:
            raise TransportFailure(self._request, exc) from exc
