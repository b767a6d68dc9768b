from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime

import httpx

RETRY_AFTER_HEADER = "Retry-After"


def _first_header_value(headers: httpx.Headers | Mapping[str, str], name: str) -> str | None:
    if isinstance(headers, httpx.Headers):
        values = headers.get_list(name)
        return values[0] if values else None
    wanted = name.casefold()
    for key, value in headers.items():
        if key.casefold() == wanted:
            return value
    return None


def parse_retry_after_value(value: str | None, now: datetime) -> datetime | None:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None

    if candidate.isascii() and candidate.isdigit():
        try:
            return now + timedelta(seconds=int(candidate))
        except OverflowError:
            return None

    try:
        parsed = parsedate_to_datetime(candidate)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def parse_retry_after(
    headers: httpx.Headers | Mapping[str, str],
    now: datetime,
) -> datetime | None:
    """Return the instant a rate-limited request may be retried.

    Accepts delta-seconds (``"120"``) relative to ``now`` or an HTTP-date such as
    ``"Fri, 31 Dec 1999 23:59:59 GMT"``, which is absolute and ignores ``now``.
    Returns ``None`` when the header is missing or unusable.
    """
    return parse_retry_after_value(_first_header_value(headers, RETRY_AFTER_HEADER), now)
