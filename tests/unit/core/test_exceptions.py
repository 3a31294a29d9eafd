#!/usr/bin/env python3
"""
Unit Tests for Custom Exceptions
Tests for media_access/core/exceptions.py
"""

from datetime import datetime

import pytest

from media_access.core.exceptions import (
    AccessDeniedException,
    AppException,
    AuthenticationException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TransientException,
    ValidationException,
)


class TestAppException:
    """Test base AppException"""

    def test_default_values(self):
        """Test exception with default values"""
        exc = AppException("Test error")
        assert exc.message == "Test error"
        assert exc.code == "app_error"
        assert exc.status_code == 500
        assert exc.details == {}

    def test_with_details(self):
        """Test exception with details dict"""
        exc = AppException("Test error", details={"key": "value"})
        assert exc.details == {"key": "value"}

    def test_timestamp_is_iso(self):
        """Test exception timestamp is a parseable ISO string"""
        exc = AppException("Test error")
        assert isinstance(exc.timestamp, str)
        assert datetime.fromisoformat(exc.timestamp).tzinfo is not None

    def test_str(self):
        """Test str() gives the message"""
        assert str(AppException("boom")) == "boom"


class TestTaxonomy:
    """Test the code and status of each exception"""

    @pytest.mark.parametrize(
        "exc,code,status",
        [
            (ValidationException("bad"), "validation_error", 400),
            (AuthenticationException(), "authentication_error", 401),
            (NotFoundException("Video"), "not_found", 404),
            (AccessDeniedException(reason="insufficient_permission"), "not_found", 404),
            (ForbiddenException(), "forbidden", 403),
            (ConflictException("taken"), "conflict", 409),
            (TransientException(), "transient_error", 503),
        ],
    )
    def test_code_and_status(self, exc, code, status):
        """Test code and HTTP status"""
        assert isinstance(exc, AppException)
        assert exc.code == code
        assert exc.status_code == status

    def test_not_found_message(self):
        """Test NotFound names the missing thing"""
        exc = NotFoundException("Access code")
        assert exc.message == "Access code not found"
        assert exc.resource == "Access code"

    def test_denied_looks_like_not_found(self):
        """Test a denial surfaces with the same code and message as a missing resource"""
        denied = AccessDeniedException(reason="no_applicable_layer")
        missing = NotFoundException()
        assert (denied.code, denied.status_code, denied.message) == (
            missing.code,
            missing.status_code,
            missing.message,
        )

    def test_denied_keeps_reason(self):
        """Test the internal reason stays on the exception"""
        exc = AccessDeniedException(reason="code_expired", user_message="Invalid or expired access code")
        assert exc.reason == "code_expired"
        assert exc.user_message == "Invalid or expired access code"
        assert "code_expired" not in exc.message

    def test_transient_operation(self):
        """Test transient failures record the failed operation"""
        exc = TransientException(operation="resolve")
        assert exc.details == {"operation": "resolve"}
        assert exc.message == "Service temporarily unavailable"

    def test_transient_is_not_a_denial(self):
        """Test Transient is not a subclass of the denial exceptions"""
        assert not isinstance(TransientException(), (AccessDeniedException, ForbiddenException))
