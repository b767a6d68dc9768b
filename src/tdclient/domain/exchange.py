from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx


def utc_now() -> datetime:
    return datetime.now(UTC)


def _noop_close() -> None:
    return None


@dataclass(frozen=True)
class Exchange:
    """Result of one transport round-trip.

    The body is exposed as a one-shot chunk stream so content handlers decide how
    much of it is materialized. ``close`` releases the underlying connection and is
    safe to call more than once.
    """

    status_code: int
    headers: httpx.Headers
    started_at: datetime
    chunks: Iterable[bytes] = field(default=(), repr=False)
    closer: Callable[[], None] = field(default=_noop_close, repr=False, compare=False)

    @classmethod
    def from_bytes(
        cls,
        status_code: int,
        body: bytes = b"",
        *,
        headers: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
        started_at: datetime | None = None,
        chunk_size: int = 64 * 1024,
    ) -> Exchange:
        chunks = tuple(body[i : i + chunk_size] for i in range(0, len(body), chunk_size))
        return cls(
            status_code=status_code,
            headers=httpx.Headers(headers or {}),
            started_at=started_at or utc_now(),
            chunks=chunks,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        values = self.headers.get_list(name)
        return values[0] if values else None

    def declared_content_length(self) -> int | None:
        raw = self.header("Content-Length")
        if raw is None:
            return None
        candidate = raw.strip()
        if not candidate.isdigit():
            raise ValueError(f"malformed Content-Length header: {raw!r}")
        return int(candidate)

    def iter_bytes(self) -> Iterator[bytes]:
        for chunk in self.chunks:
            if chunk:
                yield chunk

    def read_limited(self, limit: int) -> bytes | None:
        """Buffer the body, or return ``None`` once more than ``limit`` bytes arrive."""
        buffer = bytearray()
        for chunk in self.iter_bytes():
            buffer.extend(chunk)
            if len(buffer) > limit:
                return None
        return bytes(buffer)

    def close(self) -> None:
        self.closer()

