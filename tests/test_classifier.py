from __future__ import annotations

import ssl
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from tdclient.adapters.transport import MalformedBodyFailure
from tdclient.domain.exchange import Exchange
from tdclient.domain.request import ApiRequest
from tdclient.services.classifier import (
    ErrorClassifier,
    FatalFailure,
    FatalKind,
    RateLimited,
    Success,
    TransientFailure,
    parse_server_error,
)

STARTED = datetime(2024, 3, 1, 0, 0, 0, tzinfo=UTC)


def _exchange(status: int, body: bytes = b"", headers: dict[str, str] | None = None) -> Exchange:
    return Exchange.from_bytes(status, body, headers=headers, started_at=STARTED)


@pytest.mark.parametrize("status", [200, 201, 204, 299])
def test_2xx_is_success(status: int) -> None:
    outcome = ErrorClassifier().classify(_exchange(status))
    assert isinstance(outcome, Success)
    assert outcome.exchange.status_code == status


def test_429_carries_retry_after_relative_to_attempt_start() -> None:
    outcome = ErrorClassifier().classify(_exchange(429, headers={"Retry-After": "7"}))

    assert isinstance(outcome, RateLimited)
    assert outcome.retry_after == STARTED + timedelta(seconds=7)


def test_429_with_invalid_retry_after_has_no_instant() -> None:
    outcome = ErrorClassifier().classify(_exchange(429, headers={"Retry-After": "foobar"}))

    assert isinstance(outcome, RateLimited)
    assert outcome.retry_after is None


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_default_transient_statuses(status: int) -> None:
    outcome = ErrorClassifier().classify(_exchange(status, b"oops"))
    assert isinstance(outcome, TransientFailure)
    assert outcome.status_code == status


def test_transient_status_set_is_configurable() -> None:
    classifier = ErrorClassifier(transient_status_codes=frozenset({503}))

    assert isinstance(classifier.classify(_exchange(503)), TransientFailure)
    outcome = classifier.classify(_exchange(500))
    assert isinstance(outcome, FatalFailure)
    assert outcome.status_code == 500


def test_fatal_status_parses_server_message() -> None:
    body = b'{"error":"ParameterError","message":"Unknown table","severity":"error"}'

    outcome = ErrorClassifier().classify(_exchange(404, body))

    assert isinstance(outcome, FatalFailure)
    assert outcome.kind is FatalKind.HTTP
    assert outcome.status_code == 404
    assert outcome.server_message is not None
    assert outcome.server_message.message == "Unknown table"
    assert outcome.server_message.error == "ParameterError"


@pytest.mark.parametrize(
    "body",
    [b"", b"{invalid json response}", b"[1, 2]", b'{"error": "x"}', b"\xff\xfe", b"null"],
)
def test_unparseable_error_body_keeps_status_classification(body: bytes) -> None:
    outcome = ErrorClassifier().classify(_exchange(400, body))

    assert isinstance(outcome, FatalFailure)
    assert outcome.kind is FatalKind.HTTP
    assert outcome.status_code == 400
    assert outcome.server_message is None


def test_oversized_error_body_is_content_too_large() -> None:
    classifier = ErrorClassifier(max_error_body_bytes=10)

    outcome = classifier.classify(_exchange(400, b"x" * 11))

    assert isinstance(outcome, FatalFailure)
    assert outcome.kind is FatalKind.CONTENT_TOO_LARGE
    assert outcome.status_code == 400


def test_parse_server_error_never_raises() -> None:
    assert parse_server_error(b"{invalid json response}") is None
    assert parse_server_error(b'{"message": "boom"}').message == "boom"


def test_timeouts_and_resets_are_transient() -> None:
    classifier = ErrorClassifier()
    request = httpx.Request("GET", "https://api.example.com/v3/job/list")

    for exc in (
        httpx.ReadTimeout("slow", request=request),
        httpx.ConnectError("reset", request=request),
        httpx.RemoteProtocolError("server disconnected", request=request),
    ):
        outcome = classifier.classify_transport_error(exc)
        assert isinstance(outcome, TransientFailure)
        assert outcome.exchange is None
        assert outcome.cause is exc


def test_permanent_transport_errors_are_fatal() -> None:
    classifier = ErrorClassifier()
    unsupported = httpx.UnsupportedProtocol("ftp not supported")
    tls = httpx.ConnectError("certificate verify failed")
    tls.__cause__ = ssl.SSLCertVerificationError("bad cert")

    for exc in (unsupported, tls):
        outcome = classifier.classify_transport_error(exc)
        assert isinstance(outcome, FatalFailure)
        assert outcome.kind is FatalKind.TRANSPORT


def test_undecodable_error_body_keeps_status_classification() -> None:
    request = ApiRequest.get("/v3/job/show/1").build()

    def _chunks():
        raise MalformedBodyFailure(request, httpx.DecodingError("incorrect header check"))
        yield b""  # pragma: no cover

    exchange = Exchange(
        status_code=403,
        headers=httpx.Headers({"Content-Encoding": "gzip"}),
        started_at=STARTED,
        chunks=_chunks(),
    )

    outcome = ErrorClassifier().classify(exchange)

    assert isinstance(outcome, FatalFailure)
    assert outcome.kind is FatalKind.HTTP
    assert outcome.status_code == 403
    assert outcome.server_message is None


def test_out_of_range_retry_after_date_has_no_instant() -> None:
    exchange = _exchange(429, headers={"Retry-After": "Fri, 31 Dec 9999 23:59:59 EST"})

    outcome = ErrorClassifier().classify(exchange)

    assert isinstance(outcome, RateLimited)
    assert outcome.retry_after is None
