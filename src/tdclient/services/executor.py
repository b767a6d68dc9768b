"""Retry loop that drives one API call from submission to a terminal result.

Every call walks ``IDLE -> ATTEMPTING -> CLASSIFYING`` and then either
``SUCCEEDED``, ``FAILED`` or ``RETRYING`` (which loops back to ``ATTEMPTING``).
Attempts for a call are strictly sequential and all per-call state lives in a
``RetryState`` local to ``execute``, so one executor can serve many threads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, TypeVar, overload
from uuid import uuid4

from tdclient.adapters.transport import MalformedBodyFailure, Transport, TransportFailure
from tdclient.domain.errors import (
    ProcessingError,
    ProcessingErrorKind,
    RateLimitBudgetExceededError,
    RetryLimitExceededError,
    TDClientError,
    http_error_for_status,
)
from tdclient.domain.exchange import Exchange, utc_now
from tdclient.domain.request import ApiRequest
from tdclient.logging_context import set_attempt, with_logging_context
from tdclient.observability import get_instrumentation
from tdclient.security.redaction import sanitize_text
from tdclient.services.backoff import BackoffConfig, RandomSource, compute_backoff
from tdclient.services.classifier import (
    ErrorClassifier,
    FatalFailure,
    FatalKind,
    Outcome,
    RateLimited,
    Success,
    TransientFailure,
)
from tdclient.services.content_handlers import BufferingContentHandler, ContentHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutorState(StrEnum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    CLASSIFYING = "classifying"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RetryState:
    attempt: int = 0
    elapsed_wait: timedelta = timedelta(0)
    last_status_code: int | None = None
    last_retry_after: datetime | None = None
    state: ExecutorState = ExecutorState.IDLE

    @property
    def submissions(self) -> int:
        return self.attempt + 1


def blocking_sleep(seconds: float) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        time.sleep(seconds)
        return
    raise RuntimeError("Blocking retry sleep called from an active event loop")


class RequestExecutor:
    def __init__(
        self,
        transport: Transport,
        backoff: BackoffConfig,
        classifier: ErrorClassifier | None = None,
        *,
        default_handler: ContentHandler[Any] | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = blocking_sleep,
        rng: RandomSource | None = None,
        max_total_wait: timedelta | None = None,
    ) -> None:
        if max_total_wait is not None and max_total_wait < timedelta(0):
            raise ValueError("max_total_wait must be >= 0")
        self._transport = transport
        self._backoff = backoff
        self._classifier = classifier or ErrorClassifier()
        self._default_handler = default_handler or BufferingContentHandler()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._max_total_wait = max_total_wait

    @property
    def backoff(self) -> BackoffConfig:
        return self._backoff

    @property
    def time_budget(self) -> timedelta:
        budget = self._backoff.time_budget
        if self._max_total_wait is not None:
            budget = min(budget, self._max_total_wait)
        return budget

    @overload
    def execute(self, request: ApiRequest) -> Any: ...

    @overload
    def execute(self, request: ApiRequest, handler: ContentHandler[T]) -> T: ...

    def execute(self, request: ApiRequest, handler: ContentHandler[Any] | None = None) -> Any:
        resolved_handler = handler or self._default_handler
        retry = RetryState()
        with with_logging_context(
            request_id=uuid4().hex,
            method=request.method.value,
            path=request.path,
            attempt=0,
        ):
            while True:
                set_attempt(retry.attempt)
                outcome = self._attempt(request, retry)

                if isinstance(outcome, Success):
                    self._transition(retry, ExecutorState.SUCCEEDED)
                    return self._consume(outcome.exchange, resolved_handler, request, retry)

                if isinstance(outcome, FatalFailure):
                    self._transition(retry, ExecutorState.FAILED)
                    raise self._fatal_error(outcome, request, retry) from outcome.cause

                wait = self._next_wait(outcome, request, retry)
                self._transition(retry, ExecutorState.RETRYING)
                get_instrumentation().counter(
                    "td_retries_total", 1, attrs={"path": request.path}
                )
                get_instrumentation().histogram(
                    "td_retry_wait_seconds", wait.total_seconds(), attrs={"path": request.path}
                )
                self._sleep(wait.total_seconds())
                retry.elapsed_wait += wait
                retry.attempt += 1

    def _transition(self, retry: RetryState, state: ExecutorState) -> None:
        logger.debug(
            "executor_transition",
            extra={
                "extra": {
                    "from_state": retry.state.value,
                    "to_state": state.value,
                    "attempt": retry.attempt,
                }
            },
        )
        retry.state = state

    def _attempt(self, request: ApiRequest, retry: RetryState) -> Outcome:
        self._transition(retry, ExecutorState.ATTEMPTING)
        try:
            with get_instrumentation().trace(
                "td_request", attrs={"method": request.method.value, "path": request.path}
            ):
                exchange = self._transport.submit(request)
        except TransportFailure as exc:
            self._transition(retry, ExecutorState.CLASSIFYING)
            retry.last_status_code = None
            get_instrumentation().counter(
                "td_requests_total", 1, attrs={"path": request.path, "status": "transport_error"}
            )
            return self._classifier.classify_transport_error(exc.cause)

        self._transition(retry, ExecutorState.CLASSIFYING)
        retry.last_status_code = exchange.status_code
        get_instrumentation().counter(
            "td_requests_total",
            1,
            attrs={"path": request.path, "status": str(exchange.status_code)},
        )
        try:
            outcome = self._classifier.classify(exchange)
        except TransportFailure as exc:
            exchange.close()
            return self._classifier.classify_transport_error(exc.cause)
        except BaseException:
            exchange.close()
            raise
        if not isinstance(outcome, Success):
            exchange.close()
        return outcome

    def _next_wait(
        self,
        outcome: RateLimited | TransientFailure,
        request: ApiRequest,
        retry: RetryState,
    ) -> timedelta:
        if isinstance(outcome, RateLimited):
            get_instrumentation().counter("td_429_total", 1, attrs={"path": request.path})
            if outcome.retry_after is not None:
                retry.last_retry_after = outcome.retry_after

        if retry.attempt >= self._backoff.retry_limit:
            self._transition(retry, ExecutorState.FAILED)
            raise self._exhausted_error(outcome, request, retry) from _outcome_cause(outcome)

        now = self._clock()
        if isinstance(outcome, RateLimited):
            if outcome.retry_after is not None:
                wait = max(timedelta(0), outcome.retry_after - now)
                resume_at = outcome.retry_after
            else:
                wait = compute_backoff(retry.attempt + 1, self._backoff, self._rng)
                resume_at = now + wait
            if retry.elapsed_wait + wait > self.time_budget:
                self._transition(retry, ExecutorState.FAILED)
                raise RateLimitBudgetExceededError(
                    f"{request.describe()} rate limited; resume at {resume_at.isoformat()} "
                    f"needs {wait.total_seconds():.3f}s more wait after "
                    f"{retry.elapsed_wait.total_seconds():.3f}s, budget is "
                    f"{self.time_budget.total_seconds():.3f}s (attempts={retry.submissions})",
                    retry_after=resume_at,
                    attempts=retry.submissions,
                    request_method=request.method.value,
                    request_path=request.path,
                )
        else:
            wait = compute_backoff(retry.attempt + 1, self._backoff, self._rng)
            if retry.elapsed_wait + wait > self.time_budget:
                self._transition(retry, ExecutorState.FAILED)
                raise self._exhausted_error(outcome, request, retry) from outcome.cause

        logger.warning(
            "request_retry_scheduled",
            extra={
                "extra": {
                    "status_code": retry.last_status_code,
                    "outcome": type(outcome).__name__,
                    "wait_seconds": wait.total_seconds(),
                    "used_retry_after": isinstance(outcome, RateLimited)
                    and outcome.retry_after is not None,
                }
            },
        )
        return wait

    def _consume(
        self,
        exchange: Exchange,
        handler: ContentHandler[T],
        request: ApiRequest,
        retry: RetryState,
    ) -> T:
        try:
            return handler.handle(exchange)
        except TransportFailure as exc:
            raise ProcessingError(
                f"{request.describe()} body read failed: {exc}",
                kind=ProcessingErrorKind.TRANSPORT,
                attempts=retry.submissions,
                request_method=request.method.value,
                request_path=request.path,
            ) from exc
        except MalformedBodyFailure as exc:
            raise ProcessingError(
                f"{request.describe()} body is malformed: {exc.cause}",
                kind=ProcessingErrorKind.MALFORMED_RESPONSE,
                attempts=retry.submissions,
                request_method=request.method.value,
                request_path=request.path,
            ) from exc
        except TDClientError as exc:
            exc.attempts = retry.submissions
            exc.request_method = exc.request_method or request.method.value
            exc.request_path = exc.request_path or request.path
            raise
        finally:
            exchange.close()

    def _fatal_error(
        self,
        outcome: FatalFailure,
        request: ApiRequest,
        retry: RetryState,
    ) -> TDClientError:
        if outcome.kind is FatalKind.HTTP and outcome.status_code is not None:
            server_message = outcome.server_message
            detail = ""
            if server_message is not None:
                detail = f" error={server_message.error} message={sanitize_text(server_message.message)}"
            error_type = http_error_for_status(outcome.status_code)
            logger.info(
                "request_failed",
                extra={"extra": {"status_code": outcome.status_code, "attempts": retry.submissions}},
            )
            return error_type(
                f"{request.describe()} failed with status={outcome.status_code}{detail} "
                f"(attempts={retry.submissions})",
                status_code=outcome.status_code,
                server_message=server_message,
                attempts=retry.submissions,
                request_method=request.method.value,
                request_path=request.path,
            )

        kind = (
            ProcessingErrorKind.CONTENT_TOO_LARGE
            if outcome.kind is FatalKind.CONTENT_TOO_LARGE
            else ProcessingErrorKind.TRANSPORT
        )
        status = f" status={outcome.status_code}" if outcome.status_code is not None else ""
        return ProcessingError(
            f"{request.describe()} failed:{status} {outcome.detail} (attempts={retry.submissions})",
            kind=kind,
            attempts=retry.submissions,
            request_method=request.method.value,
            request_path=request.path,
        )

    def _exhausted_error(
        self,
        outcome: RateLimited | TransientFailure,
        request: ApiRequest,
        retry: RetryState,
    ) -> TDClientError:
        logger.info(
            "request_retries_exhausted",
            extra={"extra": {"status_code": retry.last_status_code, "attempts": retry.submissions}},
        )
        if isinstance(outcome, TransientFailure) and outcome.exchange is None:
            return ProcessingError(
                f"{request.describe()} transport failure persisted after "
                f"{retry.submissions} attempts: {outcome.cause}",
                kind=ProcessingErrorKind.TRANSPORT,
                attempts=retry.submissions,
                request_method=request.method.value,
                request_path=request.path,
            )

        last_status = outcome.exchange.status_code if outcome.exchange is not None else 0
        retry_after = (
            f" retry_after={retry.last_retry_after.isoformat()}"
            if retry.last_retry_after is not None
            else ""
        )
        return RetryLimitExceededError(
            f"{request.describe()} still failing with status={last_status} after "
            f"{retry.submissions} attempts{retry_after}",
            last_status_code=last_status,
            attempts=retry.submissions,
            retry_after=retry.last_retry_after,
            request_method=request.method.value,
            request_path=request.path,
        )


def _outcome_cause(outcome: Outcome) -> Exception | None:
    if isinstance(outcome, TransientFailure | FatalFailure):
        return outcome.cause
    return None
