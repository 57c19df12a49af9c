"""Custom exceptions for the face access-control service."""

from typing import Iterable, Optional


class AccessControlError(Exception):
    """Base exception for registration and verification operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize access control error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AccessControlError):
    """Raised when caller input is missing or malformed."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        self.fields = list(fields)
        super().__init__(message, {"fields": self.fields} if self.fields else None)


class ImageDecodingError(ValidationError):
    """Raised when the image payload cannot be decoded."""

    def __init__(self, message: str):
        super().__init__(message, fields=["image"])


class NoFaceDetectedError(AccessControlError):
    """Raised when no face is detected in the image."""
    pass


class EmptyRegistryError(AccessControlError):
    """Raised when verification is attempted with no registered users."""
    pass


class UserNotFoundError(AccessControlError):
    """Raised when a user id is not present in the registry."""
    pass


class StorageError(AccessControlError):
    """Raised when the durable descriptor store cannot be read or written."""
    pass


class UpstreamUnavailableError(AccessControlError):
    """Raised when the recognition backend cannot be reached."""
    pass
