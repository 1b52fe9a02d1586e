"""Tests for the error hierarchy and backend error parsing."""

from __future__ import annotations

import pytest

from live_session.exceptions import (
    ApiError,
    AuthenticationRequiredError,
    EntryModeUnavailableError,
    LiveSessionError,
    QueueFullError,
    RequestFailedError,
    ValidationError,
    error_message,
    parse_backend_error,
)


class TestParseBackendError:
    """Tests for parse_backend_error."""

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ("Session is full", "Session is full"),
            ({"detail": "Session not found"}, "Session not found"),
            ({"detail": [{"loc": ["body", "email"], "msg": "invalid email"}]}, "invalid email"),
            ({"detail": ["first problem"]}, "first problem"),
            ({"detail": "   "}, "fallback"),
            ({"detail": []}, "fallback"),
            ({"other": "x"}, "fallback"),
            (None, "fallback"),
            ("", "fallback"),
            (["not", "a", "dict"], "fallback"),
        ],
    )
    def test_shapes(self, payload: object, expected: str) -> None:
        """Every documented payload shape maps to a message or the fallback."""
        assert parse_backend_error(payload, "fallback") == expected


class TestApiError:
    """Tests for ApiError."""

    def test_carries_response(self) -> None:
        error = ApiError(
            404, body={"detail": "Not found"}, headers={"X": "1"}, method="GET", url="/s"
        )

        assert isinstance(error, LiveSessionError)
        assert error.status == 404
        assert error.headers == {"X": "1"}
        assert error.details == {"status": 404, "method": "GET", "url": "/s"}
        assert str(error) == "GET /s failed with HTTP 404"

    def test_user_message(self) -> None:
        error = ApiError(400, body={"detail": "Display name taken"})

        assert error.user_message("Failed") == "Display name taken"
        assert ApiError(500).user_message("Failed") == "Failed"


class TestErrorMessage:
    """Tests for error_message."""

    def test_api_error_uses_body(self) -> None:
        error = ApiError(409, body={"detail": "Already joined"})

        assert error_message(error, "Failed to join session") == "Already joined"

    def test_transport_failure_uses_fallback(self) -> None:
        error = RequestFailedError("GET /x", ConnectionError("reset"))

        assert error.details["cause"] == "reset"
        assert error_message(error, "Failed to load") == "Failed to load"

    def test_unexpected_exception_uses_fallback(self) -> None:
        assert error_message(RuntimeError("boom"), "Failed") == "Failed"

    def test_local_errors_keep_their_message(self) -> None:
        assert error_message(AuthenticationRequiredError("anonymous"), "x") == (
            "Authentication required"
        )
        assert error_message(ValidationError("content", "Too long"), "x") == "Too long"
        assert "full" in error_message(QueueFullError(3), "x")
        assert error_message(EntryModeUnavailableError("sso"), "x") == (
            "Entry mode 'sso' is not available"
        )
