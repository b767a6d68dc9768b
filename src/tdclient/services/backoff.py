from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


@dataclass(frozen=True)
class BackoffConfig:
    """Retry limits and exponential backoff configuration."""

    initial_interval_ms: int = 500
    max_interval_ms: int = 60_000
    retry_limit: int = 7
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.initial_interval_ms < 0:
            raise ValueError("initial_interval_ms must be >= 0")
        if self.max_interval_ms < 0:
            raise ValueError("max_interval_ms must be >= 0")
        if self.retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be within [0, 1]")

    @property
    def max_interval(self) -> timedelta:
        return timedelta(milliseconds=self.max_interval_ms)

    @property
    def time_budget(self) -> timedelta:
        """Ceiling on cumulative waiting across all retries of one call."""
        return self.max_interval * self.retry_limit


def compute_backoff(
    attempt: int,
    config: BackoffConfig,
    rng: RandomSource | None = None,
) -> timedelta:
    bounded_attempt = max(1, attempt)
    maximum_ms = float(config.max_interval_ms)
    base_ms = min(config.initial_interval_ms * (2 ** (bounded_attempt - 1)), maximum_ms)
    source = rng if rng is not None else random
    factor = source.uniform(1.0 - config.jitter, 1.0 + config.jitter)
    delay_ms = min(maximum_ms, max(0.0, base_ms * factor))
    return min(timedelta(milliseconds=delay_ms), config.max_interval)
