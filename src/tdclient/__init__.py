from tdclient.client import TDHttpClient
from tdclient.config import Settings
from tdclient.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ProcessingError,
    ProcessingErrorKind,
    RateLimitBudgetExceededError,
    RetryLimitExceededError,
    ServerErrorMessage,
    TDClientError,
    TDClientHttpError,
    UnauthorizedError,
)
from tdclient.domain.exchange import Exchange
from tdclient.domain.request import ApiRequest, ApiRequestBuilder, HttpMethod
from tdclient.services.backoff import BackoffConfig

__all__ = [
    "ApiRequest",
    "ApiRequestBuilder",
    "BackoffConfig",
    "ConflictError",
    "Exchange",
    "ForbiddenError",
    "HttpMethod",
    "NotFoundError",
    "ProcessingError",
    "ProcessingErrorKind",
    "RateLimitBudgetExceededError",
    "RetryLimitExceededError",
    "ServerErrorMessage",
    "Settings",
    "TDClientError",
    "TDClientHttpError",
    "TDHttpClient",
    "UnauthorizedError",
]
