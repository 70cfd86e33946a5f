"""
Custom Exception Classes for the VideoTube API.

This module defines the exception hierarchy used across services and routers.
Every error the API reports deliberately is one of these classes; anything else
reaching the error middleware is treated as an unexpected 500.

Key Components:
- `VideoTubeError`: The base exception class. It carries a message, an error
  code, optional details and a class-level HTTP status code.
- Taxonomy: `ValidationError` (400), `AuthenticationError` (401),
  `AuthorizationError` (403), `NotFoundError` (404), `ConflictError` (409),
  `PersistenceError` (500) and `StorageError` (502).
- `to_http_exception`: Maps a `VideoTubeError` to FastAPI's `HTTPException`.

Architectural Design:
- Services raise these exceptions before any write whenever possible, so a
  validation or ownership failure never leaves partial state behind.
- `NotFoundError` is also used for records that exist but are hidden from the
  caller (an unpublished video requested by a non-owner), so the response does
  not reveal whether the record exists.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class VideoTubeError(Exception):
    """Base exception class for VideoTube API"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "VIDEOTUBE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(VideoTubeError):
    """Raised when input validation fails"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            "VALIDATION_ERROR",
            {"field": field} if field else None,
        )


class AuthenticationError(VideoTubeError):
    """Raised when the caller identity is missing or invalid"""

    status_code = 401

    def __init__(self, message: str = "Unauthorized request"):
        super().__init__(message, "AUTHENTICATION_ERROR")


class AuthorizationError(VideoTubeError):
    """Raised when the caller does not own the subject being mutated"""

    status_code = 403

    def __init__(self, message: str = "You are not allowed to modify this resource"):
        super().__init__(message, "AUTHORIZATION_ERROR")


class NotFoundError(VideoTubeError):
    """Raised when a record is absent or hidden from the caller"""

    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        super().__init__(
            f"{resource} not found",
            "NOT_FOUND",
            {"resource": resource, "id": identifier} if identifier else {"resource": resource},
        )


class ConflictError(VideoTubeError):
    """Raised on uniqueness violations that cannot be reconciled"""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")


class PersistenceError(VideoTubeError):
    """Raised when a write fails after validation passed"""

    status_code = 500

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed",
            "DATABASE_ERROR",
            {"operation": operation},
        )
        # Raw driver text (SQL, parameters) is for the logs only
        self.reason = reason


class StorageError(VideoTubeError):
    """Raised when the media storage backend rejects an upload"""

    status_code = 502

    def __init__(self, reason: str):
        super().__init__(
            f"Media upload failed: {reason}",
            "STORAGE_ERROR",
            {"reason": reason},
        )


def to_http_exception(exc: VideoTubeError) -> HTTPException:
    """Convert VideoTubeError to FastAPI HTTPException"""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
