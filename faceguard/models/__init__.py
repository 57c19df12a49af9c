"""Data models for the face access-control service."""

from .api_models import (
    RegisterRequest,
    RegisterResponse,
    RecognizeRequest,
    RecognizeResponse,
    TriggerResponse,
    UserSummary,
    UserListResponse,
    DeleteUserResponse,
    HealthResponse,
    ErrorResponse
)
from .internal_models import (
    UserRecord,
    VerificationOutcome
)

__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "RecognizeRequest",
    "RecognizeResponse",
    "TriggerResponse",
    "UserSummary",
    "UserListResponse",
    "DeleteUserResponse",
    "HealthResponse",
    "ErrorResponse",
    "UserRecord",
    "VerificationOutcome"
]
