from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


def _frozen(values: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class ApiRequest:
    """One API call: verb, path, headers, query parameters and optional body."""

    method: HttpMethod
    path: str
    headers: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    query_params: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    body: bytes | None = None
    content_type: str | None = None

    @classmethod
    def get(cls, path: str) -> ApiRequestBuilder:
        return ApiRequestBuilder(HttpMethod.GET, path)

    @classmethod
    def post(cls, path: str) -> ApiRequestBuilder:
        return ApiRequestBuilder(HttpMethod.POST, path)

    @classmethod
    def put(cls, path: str) -> ApiRequestBuilder:
        return ApiRequestBuilder(HttpMethod.PUT, path)

    @classmethod
    def delete(cls, path: str) -> ApiRequestBuilder:
        return ApiRequestBuilder(HttpMethod.DELETE, path)

    def header(self, name: str) -> str | None:
        wanted = name.casefold()
        for key, value in self.headers.items():
            if key.casefold() == wanted:
                return value
        return None

    def describe(self) -> str:
        return f"{self.method.value} {self.path}"


class ApiRequestBuilder:
    """Accumulates headers and parameters, then freezes them into an ``ApiRequest``."""

    def __init__(self, method: HttpMethod | str, path: str) -> None:
        if not path.startswith("/"):
            raise ValueError(f"request path must start with '/': {path!r}")
        self._method = HttpMethod(str(method).upper())
        self._path = path
        self._headers: dict[str, str] = {}
        self._query_params: dict[str, str] = {}
        self._body: bytes | None = None
        self._content_type: str | None = None

    def add_header(self, name: str, value: str) -> ApiRequestBuilder:
        if not name.strip():
            raise ValueError("header name must not be empty")
        self._headers[name] = str(value)
        return self

    def add_headers(self, headers: Mapping[str, str]) -> ApiRequestBuilder:
        for name, value in headers.items():
            self.add_header(name, value)
        return self

    def add_query_param(self, name: str, value: object) -> ApiRequestBuilder:
        if not name.strip():
            raise ValueError("query parameter name must not be empty")
        self._query_params[name] = str(value)
        return self

    def set_body(self, body: bytes | str, *, content_type: str | None = None) -> ApiRequestBuilder:
        if self._method is HttpMethod.GET:
            raise ValueError("GET requests cannot carry a body")
        self._body = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        self._content_type = content_type
        return self

    def set_json_body(self, payload: Any) -> ApiRequestBuilder:
        encoded = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        return self.set_body(encoded, content_type="application/json")

    def build(self) -> ApiRequest:
        return ApiRequest(
            method=self._method,
            path=self._path,
            headers=_frozen(self._headers),
            query_params=_frozen(self._query_params),
            body=self._body,
            content_type=self._content_type,
        )
