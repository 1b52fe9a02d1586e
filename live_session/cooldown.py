"""Submission cooldowns derived from throttling responses.

The backend signals throttling with HTTP 429 but reports the wait in several
shapes: a ``Retry-After`` header (seconds or HTTP date), an absolute
``cooldown_until`` body field, relative body fields, or only a free-text
``detail`` message. ``extract_cooldown_seconds`` folds these into a single
number of seconds; ``CooldownWindow`` turns that into a deadline that expires
on its own.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

logger = logging.getLogger(__name__)

THROTTLED_STATUS = 429

# Magnitudes above these are absolute epoch timestamps rather than durations
_EPOCH_MS_THRESHOLD = 1_000_000_000_000
_EPOCH_S_THRESHOLD = 1_000_000_000

_RELATIVE_FIELDS = ("retry_after", "retry_after_seconds", "cooldown_seconds")

_DETAIL_SECONDS = re.compile(
    r"(\d+)\s*(?:seconds?|secs?|s|сек(?:унд[аы]?)?)",
    re.IGNORECASE,
)


def _positive_seconds(value: Any) -> int | None:
    """Whole seconds (ceiled) for a positive finite number or numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value) and value > 0:
        return math.ceil(value)
    return None


def _extract_status(error: Any) -> int | None:
    """Status code from an ApiError or any response-carrying exception."""
    for attr in ("status", "status_code"):
        status = getattr(error, attr, None)
        if isinstance(status, int):
            return status
    response = getattr(error, "response", None)
    if response is not None:
        code = getattr(response, "status", None) or getattr(response, "status_code", None)
        if isinstance(code, int):
            return code
    return None


def _extract_headers(error: Any) -> Any:
    headers = getattr(error, "headers", None)
    if headers is None:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
    return headers or {}


def _extract_body(error: Any) -> dict[str, Any]:
    body = getattr(error, "body", None)
    if body is None:
        response = getattr(error, "response", None)
        body = getattr(response, "data", None)
    return body if isinstance(body, dict) else {}


def _header(headers: Any, name: str) -> Any:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value


def _parse_http_date(value: str) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _from_retry_after(value: Any, now: float) -> int | None:
    seconds = _positive_seconds(value)
    if seconds is not None:
        return seconds
    if isinstance(value, str) and value.strip():
        retry_at = _parse_http_date(value.strip())
        if retry_at is not None:
            left = retry_at.timestamp() - now
            if left > 0:
                return math.ceil(left)
    return None


def _from_cooldown_until(value: Any, now: float) -> int | None:
    raw = _positive_seconds(value)
    if raw is None:
        return None
    if raw > _EPOCH_MS_THRESHOLD:
        left = (raw - now * 1000) / 1000
    elif raw > _EPOCH_S_THRESHOLD:
        left = raw - now
    else:
        return raw
    return math.ceil(left) if left > 0 else None


def _from_detail(detail: Any) -> int | None:
    if not isinstance(detail, str):
        return None
    match = _DETAIL_SECONDS.search(detail)
    if match:
        return _positive_seconds(match.group(1))
    return None


def extract_cooldown_seconds(
    error: Any,
    fallback_seconds: int | float | None,
    now: float | None = None,
) -> int | None:
    """Seconds a throttled submission must wait, or None when not throttled.

    Only HTTP 429 responses produce a cooldown. Resolution order, first
    match wins:

    1. ``Retry-After`` header (numeric seconds or an HTTP date)
    2. ``cooldown_until`` body field (epoch seconds or epoch milliseconds)
    3. ``retry_after`` / ``retry_after_seconds`` / ``cooldown_seconds`` body fields
    4. A "<N> seconds"-style phrase inside ``detail``
    5. ``fallback_seconds``

    Args:
        error: ApiError, or any object exposing status/headers/body
        fallback_seconds: Last known cooldown for the module
        now: Current epoch time in seconds (defaults to time.time())

    Returns:
        Positive whole seconds, or None. Non-positive values never produce
        a cooldown.
    """
    if _extract_status(error) != THROTTLED_STATUS:
        return None

    current = time.time() if now is None else now
    headers = _extract_headers(error)
    body = _extract_body(error)

    seconds = _from_retry_after(_header(headers, "Retry-After"), current)
    if seconds is None:
        seconds = _from_cooldown_until(body.get("cooldown_until"), current)
    if seconds is None:
        for name in _RELATIVE_FIELDS:
            seconds = _positive_seconds(body.get(name))
            if seconds is not None:
                break
    if seconds is None:
        seconds = _from_detail(body.get("detail"))
    if seconds is None:
        seconds = _positive_seconds(fallback_seconds)

    logger.debug(f"Throttled submission, cooldown={seconds}s")
    return seconds


class CooldownWindow:
    """Client-side deadline gating a submit action.

    The restriction is derived from the clock on every read: once the
    deadline passes the window reports itself inactive and ``until_epoch_ms``
    returns None, without any explicit clear.
    """

    def __init__(
        self,
        until_epoch_ms: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._until_epoch_ms = until_epoch_ms
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @property
    def until_epoch_ms(self) -> int | None:
        """The deadline, or None when unrestricted or already expired."""
        if self._until_epoch_ms is None or self._now_ms() >= self._until_epoch_ms:
            return None
        return self._until_epoch_ms

    @property
    def is_active(self) -> bool:
        return self.until_epoch_ms is not None

    @property
    def remaining_seconds(self) -> int:
        """Whole seconds left for display; 0 when inactive."""
        until = self.until_epoch_ms
        if until is None:
            return 0
        return math.ceil((until - self._now_ms()) / 1000)

    def start(self, seconds: int | float | None) -> None:
        """Restrict for ``seconds`` from now; non-positive values are ignored."""
        if seconds is None or seconds <= 0:
            return
        self._until_epoch_ms = int(self._now_ms() + seconds * 1000)

    def clear(self) -> None:
        self._until_epoch_ms = None

    def __repr__(self) -> str:
        return f"CooldownWindow(until_epoch_ms={self.until_epoch_ms!r})"
