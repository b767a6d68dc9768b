from __future__ import annotations

import json

import httpx
import pytest

from tdclient.adapters.httpx_transport import HttpxTransport
from tdclient.adapters.transport import MalformedBodyFailure, TransportFailure
from tdclient.domain.request import ApiRequest


def test_submit_sends_method_path_headers_params_and_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    transport = HttpxTransport(
        base_url="https://api.example.com",
        default_headers={"Authorization": "TD1 secret"},
        user_agent="tdclient-tests",
        transport=httpx.MockTransport(handler),
    )
    request = (
        ApiRequest.post("/v3/table/create/db/tbl")
        .add_header("TEST_HEADER", "hello td-client")
        .add_query_param("type", "log")
        .set_json_body({"schema": []})
        .build()
    )

    exchange = transport.submit(request)
    body = b"".join(exchange.iter_bytes())
    exchange.close()
    transport.close()

    sent = seen[0]
    assert sent.method == "POST"
    assert sent.url.path == "/v3/table/create/db/tbl"
    assert sent.url.params["type"] == "log"
    assert sent.headers["TEST_HEADER"] == "hello td-client"
    assert sent.headers["User-Agent"] == "tdclient-tests"
    assert sent.headers["Authorization"] == "TD1 secret"
    assert sent.headers["Content-Type"] == "application/json"
    assert sent.content == b'{"schema":[]}'
    assert exchange.status_code == 200
    assert json.loads(body) == {"ok": True}


def test_response_headers_are_case_insensitive_and_multi_valued() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers=[("Retry-After", "3"), ("retry-after", "9")])

    with HttpxTransport(transport=httpx.MockTransport(handler)) as transport:
        exchange = transport.submit(ApiRequest.get("/v3/job/list").build())

    assert exchange.header("RETRY-AFTER") == "3"
    assert exchange.headers.get_list("retry-after") == ["3", "9"]


def test_transport_errors_are_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    request = ApiRequest.delete("/v3/dummy_endpoint").build()
    with HttpxTransport(transport=httpx.MockTransport(handler)) as transport:
        with pytest.raises(TransportFailure) as excinfo:
            transport.submit(request)

    assert isinstance(excinfo.value.cause, httpx.ConnectTimeout)
    assert excinfo.value.request is request
    assert "DELETE /v3/dummy_endpoint" in str(excinfo.value)


def test_corrupt_content_encoding_is_reported_while_reading() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"Content-Encoding": "gzip"},
            stream=httpx.ByteStream(b"not gzip at all"),
        )

    request = ApiRequest.get("/v3/job/result/1").build()
    with HttpxTransport(transport=httpx.MockTransport(handler)) as transport:
        exchange = transport.submit(request)
        with pytest.raises(MalformedBodyFailure) as excinfo:
            b"".join(exchange.iter_bytes())
        exchange.close()

    assert isinstance(excinfo.value.cause, httpx.DecodingError)
    assert excinfo.value.request is request
