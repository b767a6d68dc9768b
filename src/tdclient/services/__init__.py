from tdclient.services.backoff import BackoffConfig, compute_backoff
from tdclient.services.classifier import (
    ErrorClassifier,
    FatalFailure,
    FatalKind,
    Outcome,
    RateLimited,
    Success,
    TransientFailure,
    parse_server_error,
)
from tdclient.services.content_handlers import (
    BufferingContentHandler,
    ContentHandler,
    DeclaredLengthContentHandler,
    StreamingContentHandler,
    TextContentHandler,
)
from tdclient.services.executor import ExecutorState, RequestExecutor, RetryState
from tdclient.services.retry_after import parse_retry_after

__all__ = [
    "BackoffConfig",
    "BufferingContentHandler",
    "ContentHandler",
    "DeclaredLengthContentHandler",
    "ErrorClassifier",
    "ExecutorState",
    "FatalFailure",
    "FatalKind",
    "Outcome",
    "RateLimited",
    "RequestExecutor",
    "RetryState",
    "StreamingContentHandler",
    "Success",
    "TextContentHandler",
    "TransientFailure",
    "compute_backoff",
    "parse_retry_after",
    "parse_server_error",
]
