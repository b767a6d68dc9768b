from __future__ import annotations

import logging
from datetime import timedelta

import httpx
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tdclient.adapters.httpx_transport import DEFAULT_ENDPOINT, DEFAULT_USER_AGENT
from tdclient.services.backoff import BackoffConfig
from tdclient.services.classifier import DEFAULT_MAX_ERROR_BODY_BYTES
from tdclient.services.content_handlers import DEFAULT_MAX_CONTENT_LENGTH


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_endpoint: str = Field(default=DEFAULT_ENDPOINT, alias="TD_API_ENDPOINT")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="TD_USER_AGENT")

    retry_limit: int = Field(default=7, alias="TD_RETRY_LIMIT")
    retry_initial_interval_ms: int = Field(default=500, alias="TD_RETRY_INITIAL_INTERVAL_MS")
    retry_max_interval_ms: int = Field(default=60_000, alias="TD_RETRY_MAX_INTERVAL_MS")
    retry_jitter: float = Field(default=0.5, alias="TD_RETRY_JITTER")
    retry_max_total_wait_seconds: float | None = Field(
        default=None, alias="TD_RETRY_MAX_TOTAL_WAIT_SECONDS"
    )

    max_content_length: int = Field(
        default=DEFAULT_MAX_CONTENT_LENGTH, alias="TD_MAX_CONTENT_LENGTH"
    )
    max_error_body_length: int = Field(
        default=DEFAULT_MAX_ERROR_BODY_BYTES, alias="TD_MAX_ERROR_BODY_LENGTH"
    )
    connect_timeout_seconds: float = Field(default=10.0, alias="TD_CONNECT_TIMEOUT_SECONDS")
    read_timeout_seconds: float = Field(default=60.0, alias="TD_READ_TIMEOUT_SECONDS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="TD_LOG_JSON")
    httpx_log_level: str | None = Field(default=None, alias="HTTPX_LOG_LEVEL")
    httpcore_log_level: str | None = Field(default=None, alias="HTTPCORE_LOG_LEVEL")

    @field_validator(
        "retry_limit",
        "retry_initial_interval_ms",
        "retry_max_interval_ms",
        "max_content_length",
        "max_error_body_length",
    )
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("retry_jitter")
    def validate_jitter(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("TD_RETRY_JITTER must be within [0, 1]")
        return value

    @field_validator("retry_max_total_wait_seconds", mode="before")
    def parse_optional_wait(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("connect_timeout_seconds", "read_timeout_seconds")
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be > 0")
        return value

    @field_validator("log_level", "httpx_log_level", "httpcore_log_level")
    def validate_log_level(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None or not value.strip():
            return "INFO" if info.field_name == "log_level" else None
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value}")
        return normalized

    @field_validator("api_endpoint")
    def validate_endpoint(cls, value: str) -> str:
        endpoint = value.strip().rstrip("/")
        if not endpoint.startswith(("http://", "https://")):
            raise ValueError("TD_API_ENDPOINT must be an http(s) URL")
        return endpoint

    def backoff_config(self) -> BackoffConfig:
        return BackoffConfig(
            initial_interval_ms=self.retry_initial_interval_ms,
            max_interval_ms=self.retry_max_interval_ms,
            retry_limit=self.retry_limit,
            jitter=self.retry_jitter,
        )

    def max_total_wait(self) -> timedelta | None:
        if self.retry_max_total_wait_seconds is None:
            return None
        return timedelta(seconds=max(0.0, self.retry_max_total_wait_seconds))

    def http_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            timeout=self.read_timeout_seconds,
            connect=self.connect_timeout_seconds,
        )
