import pytest
from fastapi import HTTPException
from core.exceptions import (
    VideoTubeError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    PersistenceError,
    StorageError,
    to_http_exception,
)


class TestCustomExceptions:
    """Test custom exception classes."""

    def test_base_error(self):
        """Test VideoTubeError defaults."""
        error = VideoTubeError("Something broke")
        assert str(error) == "Something broke"
        assert error.status_code == 500
        assert error.error_code == "VIDEOTUBE_ERROR"
        assert error.details == {}

    def test_validation_error(self):
        """Test ValidationError creation and properties."""
        error = ValidationError("Invalid input", "title")
        assert str(error) == "Invalid input"
        assert error.status_code == 400
        assert error.error_code == "VALIDATION_ERROR"
        assert error.details == {"field": "title"}

    def test_validation_error_without_field(self):
        assert ValidationError("Invalid input").details == {}

    def test_authentication_error(self):
        error = AuthenticationError()
        assert error.message == "Unauthorized request"
        assert error.status_code == 401

    def test_authorization_error(self):
        error = AuthorizationError("You are not allowed to edit this post")
        assert error.status_code == 403
        assert error.error_code == "AUTHORIZATION_ERROR"

    def test_not_found_error(self):
        """Test NotFoundError message and details."""
        error = NotFoundError("Video", "abc")
        assert error.message == "Video not found"
        assert error.status_code == 404
        assert error.details == {"resource": "Video", "id": "abc"}

    def test_conflict_error(self):
        error = ConflictError("Video is already in this playlist")
        assert error.status_code == 409
        assert error.error_code == "CONFLICT"

    def test_persistence_error(self):
        error = PersistenceError("add comment", "disk full")
        assert error.status_code == 500
        assert "add comment" in error.message
        assert "disk full" not in error.message
        assert error.details == {"operation": "add comment"}
        assert error.reason == "disk full"

    def test_storage_error(self):
        error = StorageError("timeout")
        assert error.status_code == 502
        assert error.message == "Media upload failed: timeout"

    @pytest.mark.parametrize(
        "error_class",
        [ValidationError, AuthenticationError, AuthorizationError, ConflictError, StorageError],
    )
    def test_hierarchy(self, error_class):
        assert issubclass(error_class, VideoTubeError)


class TestExceptionConversion:
    """Test exception conversion to HTTP exceptions."""

    def test_convert_not_found(self):
        http_exc = to_http_exception(NotFoundError("Comment", "c1"))

        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == 404
        assert http_exc.detail["error_code"] == "NOT_FOUND"
        assert http_exc.detail["message"] == "Comment not found"
        assert http_exc.detail["details"]["id"] == "c1"

    def test_convert_validation_error(self):
        http_exc = to_http_exception(ValidationError("Bad offset", "timezoneOffset"))

        assert http_exc.status_code == 400
        assert http_exc.detail["details"] == {"field": "timezoneOffset"}
