"""
Custom exceptions for the live session core.

Orchestration code distinguishes between a backend that answered with an
error (ApiError) and a request that never completed (RequestFailedError);
both are handled through the same error paths by callers.

User-visible messages are derived from backend payloads by a single parser,
``parse_backend_error``. The backend reports failures either as a plain
string, as ``{"detail": "..."}`` or as a validation list
``{"detail": [{"loc": [...], "msg": "...", ...}]}``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def parse_backend_error(data: Any, fallback: str) -> str:
    """Turn a backend error payload into a user-facing message.

    Args:
        data: Decoded response body (dict, str, list or None)
        fallback: Message used when nothing usable is found

    Returns:
        A non-empty message, or ``fallback`` when the payload carries none.
    """
    if not data:
        return fallback
    if isinstance(data, str):
        return data.strip() or fallback
    if not isinstance(data, dict):
        return fallback

    detail = data.get("detail")
    if isinstance(detail, str):
        return detail.strip() or fallback
    if isinstance(detail, list) and detail:
        first = detail[0]
        if isinstance(first, dict):
            msg = first.get("msg")
            if isinstance(msg, str) and msg.strip():
                return msg
        elif isinstance(first, str) and first.strip():
            return first
    return fallback


class LiveSessionError(Exception):
    """Base exception for all live session errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ApiError(LiveSessionError):
    """Raised when the backend responds with a non-2xx status."""

    def __init__(
        self,
        status: int,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        method: str | None = None,
        url: str | None = None,
    ):
        details: dict[str, Any] = {"status": status}
        if method:
            details["method"] = method
        if url:
            details["url"] = url
        message = f"HTTP {status}"
        if method and url:
            message = f"{method} {url} failed with HTTP {status}"
        super().__init__(message, details)
        self.status = status
        self.body = body
        self.headers: Mapping[str, str] = headers if headers is not None else {}
        self.method = method
        self.url = url

    def user_message(self, fallback: str) -> str:
        """Human-readable message derived from the response body."""
        return parse_backend_error(self.body, fallback)


class RequestFailedError(LiveSessionError):
    """Raised when a request fails in transport or times out."""

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause) or type(cause).__name__
        super().__init__(f"Request failed: {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationRequiredError(LiveSessionError):
    """Raised when the token authoritative for an entry mode is absent."""

    def __init__(self, entry_mode: str, token_kind: str | None = None):
        details = {"entry_mode": entry_mode}
        if token_kind:
            details["token_kind"] = token_kind
        super().__init__("Authentication required", details)
        self.entry_mode = entry_mode
        self.token_kind = token_kind


class EntryModeUnavailableError(LiveSessionError):
    """Raised for entry modes that are recognised but not implemented (SSO)."""

    def __init__(self, entry_mode: str):
        super().__init__(
            f"Entry mode '{entry_mode}' is not available", {"entry_mode": entry_mode}
        )
        self.entry_mode = entry_mode


class UnsupportedModuleError(LiveSessionError):
    """Raised when a module type has no live view wired to it."""

    def __init__(self, module_type: str):
        super().__init__(
            f"Module type '{module_type}' is not supported", {"module_type": module_type}
        )
        self.module_type = module_type


class QueueFullError(LiveSessionError):
    """Raised when adding a module would exceed the queue capacity."""

    def __init__(self, limit: int):
        super().__init__(f"Module queue is full (limit {limit})", {"limit": limit})
        self.limit = limit


class ModuleNotFoundInSessionError(LiveSessionError):
    """Raised when a session or library module id is unknown."""

    def __init__(self, module_id: str, source: str = "session"):
        super().__init__(
            f"Unknown {source} module: {module_id}",
            {"module_id": module_id, "source": source},
        )
        self.module_id = module_id
        self.source = source


class ConfigurationError(LiveSessionError):
    """Raised when configuration values are invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid configuration for {field}: {reason}", {"field": field, "reason": reason}
        )
        self.field = field
        self.reason = reason


class ValidationError(LiveSessionError):
    """Raised when local validation rejects a submission before it is sent."""

    def __init__(self, field: str, reason: str):
        super().__init__(reason, {"field": field, "reason": reason})
        self.field = field
        self.reason = reason


def error_message(exc: BaseException, fallback: str) -> str:
    """Derive a user-visible message from any failure.

    Backend errors go through the shared error-shape parser; every other
    failure (transport, timeout, unexpected) maps to the fallback.
    """
    if isinstance(exc, ApiError):
        return exc.user_message(fallback)
    if isinstance(
        exc,
        (AuthenticationRequiredError, EntryModeUnavailableError, ValidationError, QueueFullError),
    ):
        return exc.message
    return fallback
