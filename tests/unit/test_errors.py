"""Tests for error sanitization utilities."""

from __future__ import annotations

from atlas_operator.utils.errors import (
    sanitize_error_message,
    sanitize_exception,
)


class TestSanitizeErrorMessage:
    """Test cases for sanitize_error_message function."""

    def test_sanitize_private_api_key(self):
        """Test that private API keys are sanitized."""
        message = "Error: privateApiKey: 0a1b2c3d-aaaa-bbbb-cccc-0123456789ab"
        result = sanitize_error_message(message)
        assert "0a1b2c3d-aaaa-bbbb-cccc-0123456789ab" not in result
        assert "[REDACTED]" in result

    def test_sanitize_digest_username(self):
        """Test that digest usernames are sanitized."""
        message = 'Authorization failed for Digest username="abcdefgh", realm="MMS Public API"'
        result = sanitize_error_message(message)
        assert "abcdefgh" not in result
        assert "[REDACTED]" in result

    def test_sanitize_password(self):
        """Test that passwords are sanitized."""
        message = "Error: password: mysecretpassword123"
        result = sanitize_error_message(message)
        assert "mysecretpassword123" not in result
        assert "[REDACTED]" in result

    def test_sanitize_case_insensitive(self):
        """Test that sanitization is case-insensitive."""
        message = "Error: TOKEN: abc123"
        result = sanitize_error_message(message)
        assert "abc123" not in result

    def test_no_sanitization_needed(self):
        """Test that messages without sensitive data remain unchanged."""
        message = "Error: Resource not found"
        assert sanitize_error_message(message) == message


class TestSanitizeException:
    """Test cases for sanitize_exception function."""

    def test_sanitize_exception(self):
        """Test sanitizing an exception message."""
        error = RuntimeError("request failed, password: hunter2")
        result = sanitize_exception(error)
        assert "hunter2" not in result
        assert "request failed" in result
