from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta

import pytest

from tdclient.config import Settings
from tdclient.domain.exchange import Exchange
from tdclient.domain.request import ApiRequest
from tdclient.observability import NoopInstrumentation, set_instrumentation


@pytest.fixture(autouse=True)
def isolate_settings_from_host_env(monkeypatch: pytest.MonkeyPatch):
    original_env_file = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    settings_env_keys: set[str] = set()
    for field in Settings.model_fields.values():
        if isinstance(field.alias, str):
            settings_env_keys.add(field.alias)

    for key in list(os.environ):
        if key in settings_env_keys or key in {"HTTPX_LOG_LEVEL", "HTTPCORE_LOG_LEVEL"}:
            monkeypatch.delenv(key, raising=False)

    yield
    Settings.model_config["env_file"] = original_env_file


@pytest.fixture(autouse=True)
def reset_instrumentation() -> Iterator[None]:
    previous = set_instrumentation(NoopInstrumentation())
    yield
    set_instrumentation(previous)


class FakeClock:
    """Wall clock that only moves when the recorded sleep is called."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


class FixedFactor:
    def __init__(self, factor: float = 1.0) -> None:
        self.factor = factor

    def uniform(self, a: float, b: float) -> float:
        del a, b
        return self.factor


class ScriptedTransport:
    """Returns canned exchanges built by ``responders``, one per submission."""

    def __init__(self, clock: FakeClock, *responders: Callable[[datetime], Exchange]) -> None:
        self.clock = clock
        self.responders = list(responders)
        self.submissions: list[datetime] = []
        self.requests: list[ApiRequest] = []

    def submit(self, request: ApiRequest) -> Exchange:
        started = self.clock()
        self.submissions.append(started)
        self.requests.append(request)
        index = min(len(self.submissions), len(self.responders)) - 1
        return self.responders[index](started)


def respond(
    status_code: int,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
) -> Callable[[datetime], Exchange]:
    def _build(started: datetime) -> Exchange:
        return Exchange.from_bytes(status_code, body, headers=headers, started_at=started)

    return _build


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fixed_factor() -> FixedFactor:
    return FixedFactor(1.0)


@pytest.fixture
def scripted_transport(clock: FakeClock) -> Callable[..., ScriptedTransport]:
    def _factory(*responders: Callable[[datetime], Exchange]) -> ScriptedTransport:
        return ScriptedTransport(clock, *responders)

    return _factory


@pytest.fixture(name="respond")
def respond_fixture() -> Callable[..., Callable[[datetime], Exchange]]:
    return respond
